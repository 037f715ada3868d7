"""Tests for the connectivity signal."""

from unittest.mock import AsyncMock, MagicMock

import pytest

from currents.sync.connectivity import Connectivity


def test_listener_fires_on_reconnect_only():
    connectivity = Connectivity(online=False)
    listener = MagicMock()
    connectivity.add_listener(listener)

    connectivity.set_online(True)
    connectivity.set_online(True)
    connectivity.set_online(False)
    connectivity.set_online(False)

    assert listener.call_count == 1


def test_remove_listener():
    connectivity = Connectivity(online=False)
    listener = MagicMock()
    connectivity.add_listener(listener)
    connectivity.remove_listener(listener)
    connectivity.remove_listener(listener)

    connectivity.set_online(True)
    listener.assert_not_called()


@pytest.mark.asyncio
async def test_probe_uses_health_check():
    connectivity = Connectivity(online=False)
    store = MagicMock()
    store.health_check = AsyncMock(return_value=True)

    assert await connectivity.probe(store) is True
    assert connectivity.is_online


@pytest.mark.asyncio
async def test_probe_error_means_offline():
    connectivity = Connectivity(online=True)
    store = MagicMock()
    store.health_check = AsyncMock(side_effect=ConnectionError("boom"))

    assert await connectivity.probe(store) is False
    assert not connectivity.is_online
