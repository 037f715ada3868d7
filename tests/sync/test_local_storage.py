"""Tests for local key/value storage."""

import os
from unittest.mock import patch

import pytest

from currents.sync.storage import FileStorage, InMemoryStorage, StorageError


class TestInMemoryStorage:
    """Tests for InMemoryStorage."""

    def test_get_missing(self):
        assert InMemoryStorage().get("nothing") is None

    def test_set_and_delete(self):
        storage = InMemoryStorage()
        storage.set("k", "v")
        assert storage.get("k") == "v"

        storage.delete("k")
        storage.delete("k")
        assert storage.get("k") is None


class TestFileStorage:
    """Tests for FileStorage."""

    def test_creates_base_dir(self, tmp_path):
        base = tmp_path / "nested" / "state"
        FileStorage(base)
        assert base.is_dir()

    def test_round_trip(self, tmp_path):
        storage = FileStorage(tmp_path)
        storage.set("pending_ops_v1", '[{"id": "a"}]')

        assert storage.get("pending_ops_v1") == '[{"id": "a"}]'
        assert (tmp_path / "pending_ops_v1.json").exists()

    def test_survives_new_instance(self, tmp_path):
        """A value written by one instance is visible to the next."""
        FileStorage(tmp_path).set("snapshot", "data")
        assert FileStorage(tmp_path).get("snapshot") == "data"

    def test_overwrite_leaves_no_temp_files(self, tmp_path):
        storage = FileStorage(tmp_path)
        storage.set("key", "first")
        storage.set("key", "second")

        assert storage.get("key") == "second"
        assert [p.name for p in tmp_path.iterdir()] == ["key.json"]

    def test_failed_write_keeps_previous_value(self, tmp_path):
        """A crash during replace must not clobber the stored blob."""
        storage = FileStorage(tmp_path)
        storage.set("key", "original")

        with patch("currents.sync.storage.os.replace", side_effect=OSError("disk full")):
            with pytest.raises(StorageError):
                storage.set("key", "replacement")

        assert storage.get("key") == "original"
        assert not any(name.endswith(".tmp") for name in os.listdir(tmp_path))

    @pytest.mark.parametrize("key", ["../escape", "a/b", "", "sp ace"])
    def test_rejects_unsafe_keys(self, tmp_path, key):
        with pytest.raises(StorageError):
            FileStorage(tmp_path).set(key, "x")

    def test_delete_missing_is_noop(self, tmp_path):
        FileStorage(tmp_path).delete("absent")
