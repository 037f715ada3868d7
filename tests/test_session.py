"""Tests for ChatSession wiring, restart recovery and hydration."""

import pytest

from currents.config import Settings
from currents.remote.base import UnconfiguredStore
from currents.remote.client import RemoteStoreClient
from currents.session import SNAPSHOT_KEY, ChatSession
from currents.sync.storage import InMemoryStorage


@pytest.fixture
def settings(tmp_path):
    return Settings(data_dir=tmp_path, remote_url=None, max_attempts=None)


class TestOpen:
    """Tests for ChatSession.open."""

    def test_without_remote_is_offline(self, settings):
        session = ChatSession.open(settings)

        assert isinstance(session.store, UnconfiguredStore)
        assert session.status()["online"] is False

    @pytest.mark.asyncio
    async def test_remote_url_builds_client(self, tmp_path):
        session = ChatSession.open(
            Settings(data_dir=tmp_path, remote_url="http://proxy.test", auth_token="t")
        )

        assert isinstance(session.store, RemoteStoreClient)
        assert session.connectivity.is_online
        await session.store.close()

    def test_corrupt_snapshot_starts_empty(self, settings):
        storage = InMemoryStorage()
        storage.set(SNAPSHOT_KEY, "{broken")

        session = ChatSession.open(settings, storage=storage)
        assert session.tree.threads == {}

    def test_status(self, settings, remote):
        session = ChatSession.open(settings, remote=remote, online=False)
        tid = session.tree.create_thread()
        session.tree.add_message(tid, None, "user", "hi")

        status = session.status()
        assert status["pending"] == 3
        assert status["head"]["type"] == "chat.upsert_thread"
        assert status["threads"] == 1
        assert status["messages"] == 1
        assert status["dead_letters"] == 0


class TestSync:
    """Tests for local mutations reaching the remote store."""

    @pytest.mark.asyncio
    async def test_online_writes_through(self, settings, remote):
        session = ChatSession.open(settings, remote=remote)
        tid = session.tree.create_thread("Hello")
        m1 = session.tree.add_message(tid, None, "user", "hi")

        await session.executor.wait_idle()

        assert session.pending_count == 0
        assert remote.rows("chat_messages")[m1.id]["content"] == "hi"
        assert remote.rows("chat_threads")[tid]["metadata"]["leaf_message_id"] == m1.id

    @pytest.mark.asyncio
    async def test_offline_changes_survive_restart(self, settings, remote):
        session = ChatSession.open(settings, remote=remote, online=False)
        tid = session.tree.create_thread()
        session.tree.add_message(tid, None, "user", "written offline")
        await session.close()
        assert remote.calls == []

        reopened = ChatSession.open(settings, remote=remote, online=False)
        assert reopened.pending_count == 3
        assert [m.content for m in reopened.tree.get_active_chain(tid)] == [
            "written offline"
        ]

        reopened.go_online()
        await reopened.executor.wait_idle()

        assert reopened.pending_count == 0
        assert [row["content"] for row in remote.rows("chat_messages").values()] == [
            "written offline"
        ]

    @pytest.mark.asyncio
    async def test_refresh_connectivity_drains(self, settings, remote):
        session = ChatSession.open(settings, remote=remote, online=False)
        session.tree.create_thread()
        await session.executor.wait_idle()

        assert await session.refresh_connectivity() is True
        await session.executor.wait_idle()
        assert session.pending_count == 0

    @pytest.mark.asyncio
    async def test_go_offline_queues(self, settings, remote):
        session = ChatSession.open(settings, remote=remote)
        session.go_offline()
        session.tree.create_thread()
        await session.executor.wait_idle()

        assert session.pending_count == 1
        assert remote.calls == []


class TestHydrate:
    """Tests for ChatSession.hydrate."""

    @pytest.mark.asyncio
    async def test_replaces_local_state(self, tmp_path, remote):
        writer = ChatSession.open(Settings(data_dir=tmp_path / "a"), remote=remote)
        tid = writer.tree.create_thread("Shared")
        m1 = writer.tree.add_message(tid, None, "user", "q")
        m2 = writer.tree.add_message(tid, m1.id, "assistant", "a")
        writer.tree.update_draft(tid, "draft")
        await writer.close()

        reader = ChatSession.open(Settings(data_dir=tmp_path / "b"), remote=remote)
        assert await reader.hydrate() is True

        assert [m.id for m in reader.tree.get_active_chain(tid)] == [m1.id, m2.id]
        assert reader.tree.get_thread(tid).title == "Shared"
        assert reader.tree.get_draft(tid) == "draft"
        assert reader.pending_count == 0

    @pytest.mark.asyncio
    async def test_skipped_with_pending_writes(self, settings, remote):
        session = ChatSession.open(settings, remote=remote, online=False)
        session.tree.create_thread("local only")

        assert await session.hydrate() is False
        assert len(session.tree.threads) == 1

    @pytest.mark.asyncio
    async def test_unreachable_store(self, settings, remote):
        session = ChatSession.open(settings, remote=remote)
        remote.healthy = False

        assert await session.hydrate() is False
