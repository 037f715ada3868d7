"""Tests for the durable operation log."""

import json

import pytest

from currents.sync.operations import OperationType, PendingOperation
from currents.sync.oplog import DEAD_LETTER_KEY, PENDING_OPS_KEY, OperationLog
from currents.sync.storage import FileStorage, InMemoryStorage, StorageError


def draft_op(text: str, thread_id: str = "t1") -> PendingOperation:
    return PendingOperation(
        type=OperationType.UPSERT_DRAFT,
        payload={"thread_id": thread_id, "draft_text": text},
    )


class TestPendingOperation:
    """Tests for PendingOperation."""

    def test_wire_names(self):
        assert OperationType.UPSERT_THREAD.value == "chat.upsert_thread"
        assert OperationType.UPSERT_BORDER.value == "layout.upsert_border"

    def test_accepts_wire_name_string(self):
        op = PendingOperation(type="chat.delete_message", payload={"id": "m1"})
        assert op.type is OperationType.DELETE_MESSAGE
        assert op.collection == "chat_messages"

    def test_missing_payload_key(self):
        with pytest.raises(ValueError, match="draft_text"):
            PendingOperation(type=OperationType.UPSERT_DRAFT, payload={"thread_id": "t"})

    def test_unknown_type(self):
        with pytest.raises(ValueError):
            PendingOperation(type="chat.explode", payload={})

    def test_dict_round_trip_keeps_id_and_attempts(self):
        op = draft_op("wip")
        op.attempts = 2
        restored = PendingOperation.from_dict(json.loads(json.dumps(op.to_dict())))

        assert restored == op


class TestOperationLog:
    """Tests for OperationLog."""

    def test_fifo_order(self, storage):
        log = OperationLog(storage)
        ops = [draft_op(str(i)) for i in range(3)]
        for op in ops:
            log.enqueue(op)

        assert [log.dequeue_head().id for _ in range(3)] == [op.id for op in ops]
        assert log.dequeue_head() is None

    def test_peek_does_not_remove(self, storage):
        log = OperationLog(storage)
        op = draft_op("a")
        log.enqueue(op)

        assert log.peek_head().id == op.id
        assert len(log) == 1

    def test_persists_every_change(self, storage):
        log = OperationLog(storage)
        log.enqueue(draft_op("a"))
        log.enqueue(draft_op("b"))
        assert len(json.loads(storage.get(PENDING_OPS_KEY))) == 2

        log.dequeue_head()
        stored = json.loads(storage.get(PENDING_OPS_KEY))
        assert [entry["payload"]["draft_text"] for entry in stored] == ["b"]

    def test_survives_restart(self, tmp_path):
        """Operations enqueued before a restart are present afterwards, in order."""
        first = OperationLog(FileStorage(tmp_path))
        ops = [draft_op("one"), draft_op("two")]
        for op in ops:
            first.enqueue(op)

        second = OperationLog(FileStorage(tmp_path))
        assert [op.id for op in second] == [op.id for op in ops]

    def test_corrupt_log_loads_empty(self, storage):
        storage.set(PENDING_OPS_KEY, "{not json")
        assert len(OperationLog(storage)) == 0

    def test_non_list_log_loads_empty(self, storage):
        storage.set(PENDING_OPS_KEY, json.dumps({"id": "x"}))
        assert len(OperationLog(storage)) == 0

    def test_replace_head(self, storage):
        log = OperationLog(storage)
        op = draft_op("a")
        log.enqueue(op)
        op.attempts = 3
        log.replace_head(op)

        assert OperationLog(storage).peek_head().attempts == 3

    def test_replace_head_rejects_other_op(self, storage):
        log = OperationLog(storage)
        log.enqueue(draft_op("a"))

        with pytest.raises(ValueError):
            log.replace_head(draft_op("b"))

    def test_clear_returns_removed(self, storage):
        log = OperationLog(storage)
        log.enqueue(draft_op("a"))

        removed = log.clear()
        assert len(removed) == 1
        assert not log
        assert json.loads(storage.get(PENDING_OPS_KEY)) == []

    def test_separate_keys_are_independent(self, storage):
        pending = OperationLog(storage)
        dead = OperationLog(storage, DEAD_LETTER_KEY)
        pending.enqueue(draft_op("a"))

        assert len(dead) == 0
        assert storage.get(DEAD_LETTER_KEY) is None

    def test_iteration_is_a_copy(self, storage):
        log = OperationLog(storage)
        log.enqueue(draft_op("a"))
        log.enqueue(draft_op("b"))

        for _ in log:
            log.dequeue_head()
        assert len(log) == 0

    def test_storage_failure_keeps_memory_log(self):
        class BrokenStorage(InMemoryStorage):
            def set(self, key, value):
                raise StorageError("read-only")

        log = OperationLog(BrokenStorage())
        log.enqueue(draft_op("a"))

        assert len(log) == 1
