"""Sync executor: drains the operation log against the remote store.

Every local mutation becomes a ``PendingOperation``. When online and nothing
older is pending, the executor writes it immediately; otherwise the operation
is appended to the durable log and written later by ``drain()``, strictly in
log order. Remote failures never propagate past this module: they leave the
operation pending and are retried on the next trigger (reconnect or a
successful submission).
"""

import asyncio
import logging
import time
from collections import deque
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from currents.remote.base import RemoteStore
from currents.sync.connectivity import Connectivity
from currents.sync.operations import OperationType, PendingOperation
from currents.sync.oplog import DEAD_LETTER_KEY, OperationLog

logger = logging.getLogger(__name__)

UPSERT_TYPES = frozenset(
    {
        OperationType.UPSERT_THREAD,
        OperationType.UPSERT_MESSAGE,
        OperationType.UPSERT_DRAFT,
        OperationType.UPSERT_BORDER,
    }
)


class ImmediateResult(str, Enum):
    """Outcome of the low-latency write attempt."""

    SUCCESS = "success"
    NEEDS_QUEUE = "needs_queue"


@dataclass
class DrainResult:
    """Result of one drain cycle."""

    succeeded: list[PendingOperation] = field(default_factory=list)
    failed: PendingOperation | None = None
    dead_lettered: list[PendingOperation] = field(default_factory=list)
    remaining: int = 0
    duration: float = 0.0
    skipped: bool = False

    @property
    def completed(self) -> bool:
        """True when the cycle ran and left the log empty."""
        return not self.skipped and self.remaining == 0


class SyncExecutor:
    """Writes pending operations to the remote store in FIFO order.

    State machine: Idle -> Draining -> Idle. ``is_draining`` prevents a second
    drain (for example one triggered by a reconnect) from racing the one in
    flight and sending the head operation twice.
    """

    def __init__(
        self,
        store: RemoteStore,
        log: OperationLog,
        connectivity: Connectivity,
        dead_letters: OperationLog | None = None,
        max_attempts: int | None = None,
    ):
        """Initialize the executor.

        Args:
            store: Remote store receiving the writes
            log: Durable log of pending operations
            connectivity: Online signal; reconnects trigger a drain
            dead_letters: Log receiving operations that exhausted max_attempts
            max_attempts: Failures after which a head operation is moved to the
                dead-letter log. None keeps retrying it forever.
        """
        self.store = store
        self.log = log
        self.connectivity = connectivity
        self.max_attempts = max_attempts
        if dead_letters is None and max_attempts is not None:
            dead_letters = OperationLog(log.storage, DEAD_LETTER_KEY)
        self.dead_letters = dead_letters

        self._draining = False
        self._pending: deque[tuple[PendingOperation, "asyncio.Future[bool] | None"]] = deque()
        self._worker: asyncio.Task | None = None
        self._tasks: set[asyncio.Task] = set()

        connectivity.add_listener(self._on_online)

    @property
    def is_draining(self) -> bool:
        return self._draining

    @property
    def pending_count(self) -> int:
        return len(self.log)

    # ------------------------------------------------------------------
    # Remote execution
    # ------------------------------------------------------------------

    async def _apply(self, op: PendingOperation) -> None:
        payload = op.payload
        if op.type in UPSERT_TYPES:
            await self.store.upsert(op.collection, payload)
        elif op.type is OperationType.UPDATE_MESSAGE:
            await self.store.update(op.collection, payload["id"], payload["fields"])
        elif op.type is OperationType.DELETE_MESSAGE:
            await self.store.delete(op.collection, payload["id"])
        elif op.type is OperationType.DELETE_DRAFT:
            await self.store.delete(op.collection, payload["thread_id"])
        else:
            raise ValueError(f"Unsupported operation type: {op.type}")

    async def execute_operation(self, op: PendingOperation) -> bool:
        """Run one operation against the remote store.

        Returns:
            True on success, False on any failure (logged, never raised)
        """
        try:
            await self._apply(op)
        except Exception as e:
            logger.warning(f"Operation failed: {op.type.value} ({op.id}): {e}")
            return False

        logger.debug(f"Applied {op.type.value} ({op.id})")
        return True

    # ------------------------------------------------------------------
    # Submission
    # ------------------------------------------------------------------

    async def attempt_immediate(self, op: PendingOperation) -> ImmediateResult:
        """Try the low-latency path: write now if online."""
        if not self.connectivity.is_online:
            return ImmediateResult.NEEDS_QUEUE

        if await self.execute_operation(op):
            return ImmediateResult.SUCCESS

        op.attempts += 1
        return ImmediateResult.NEEDS_QUEUE

    def enqueue_on_failure_or_offline(self, op: PendingOperation) -> None:
        """Append an operation that could not be written immediately."""
        self.log.enqueue(op)
        logger.info(
            f"Queued {op.type.value} ({op.id}); {len(self.log)} pending operations"
        )

    async def _submit_now(self, op: PendingOperation) -> bool:
        if self.log and self.connectivity.is_online:
            await self.drain()
        if self.log:
            self.enqueue_on_failure_or_offline(op)
            return False

        result = await self.attempt_immediate(op)
        if result is ImmediateResult.SUCCESS:
            await self.drain()
            return True

        self.enqueue_on_failure_or_offline(op)
        return False

    def _claim(
        self, op: PendingOperation, future: "asyncio.Future[bool] | None" = None
    ) -> None:
        """Reserve the next submission slot for ``op``.

        Slots are taken synchronously at call time and served by a single
        worker task, so operations reach the store (or the log) in exactly
        the order they were claimed.
        """
        self._pending.append((op, future))
        loop = asyncio.get_running_loop()
        if (
            self._worker is None
            or self._worker.done()
            or self._worker.get_loop() is not loop
        ):
            self._worker = loop.create_task(self._run_pending())
            self._track(self._worker)

    async def _run_pending(self) -> None:
        while self._pending:
            op, future = self._pending.popleft()
            try:
                written = await self._submit_now(op)
            except Exception as e:
                if future is not None and not future.done():
                    future.set_exception(e)
                else:
                    logger.error(f"Submission of {op.type.value} ({op.id}) failed: {e}")
                continue
            if future is not None and not future.done():
                future.set_result(written)

    async def submit_operation(self, op: PendingOperation) -> bool:
        """Write ``op`` now if possible, otherwise queue it.

        The operation takes its place behind every earlier ``submit`` and
        ``schedule`` call before this coroutine first suspends. A non-empty
        backlog is drained first; if anything is still pending afterwards,
        ``op`` queues behind it instead of overtaking it.

        Returns:
            True if the write reached the remote store, False if it was queued
        """
        future = asyncio.get_running_loop().create_future()
        self._claim(op, future)
        return await future

    async def submit(self, op_type: OperationType | str, payload: dict[str, Any]) -> bool:
        """Submit a remote write for any entity.

        Returns:
            True if written immediately, False if queued for a later drain
        """
        return await self.submit_operation(PendingOperation(type=op_type, payload=payload))

    def schedule(
        self, op_type: OperationType | str, payload: dict[str, Any]
    ) -> PendingOperation:
        """Fire-and-forget submission for synchronous callers.

        The operation claims its submission slot immediately, in call order.
        With a running event loop it is written by the submission worker;
        without one it goes straight to the durable log so it is never lost.
        """
        op = PendingOperation(type=op_type, payload=payload)
        try:
            asyncio.get_running_loop()
        except RuntimeError:
            # Slots left behind by a finished loop keep their place ahead of op
            while self._pending:
                self.enqueue_on_failure_or_offline(self._pending.popleft()[0])
            self.enqueue_on_failure_or_offline(op)
            return op

        self._claim(op)
        return op

    def _track(self, task: asyncio.Task) -> None:
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def wait_idle(self) -> None:
        """Wait until every scheduled submission and triggered drain finishes."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    # ------------------------------------------------------------------
    # Draining
    # ------------------------------------------------------------------

    def _on_online(self) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.debug("Back online without a running loop; drain deferred")
            return
        self._track(loop.create_task(self.drain()))

    async def drain(self) -> DrainResult:
        """Execute queued operations head-first until empty or one fails.

        A failed head stays at the head, so later drains retry it before
        anything queued behind it.
        """
        if self._draining or not self.connectivity.is_online:
            return DrainResult(skipped=True, remaining=len(self.log))

        self._draining = True
        start = time.monotonic()
        result = DrainResult()
        try:
            while True:
                op = self.log.peek_head()
                if op is None:
                    break

                if await self.execute_operation(op):
                    self.log.dequeue_head()
                    result.succeeded.append(op)
                    continue

                op.attempts += 1
                if self.max_attempts is not None and op.attempts >= self.max_attempts:
                    self.log.dequeue_head()
                    self.dead_letters.enqueue(op)
                    result.dead_lettered.append(op)
                    logger.error(
                        f"Moved {op.type.value} ({op.id}) to dead letters after "
                        f"{op.attempts} failed attempts"
                    )
                    continue

                self.log.replace_head(op)
                result.failed = op
                break
        finally:
            self._draining = False

        result.remaining = len(self.log)
        result.duration = time.monotonic() - start
        if result.succeeded or result.failed:
            logger.info(
                f"Drain: {len(result.succeeded)} applied, "
                f"{result.remaining} remaining"
            )
        return result

    def requeue_dead_letters(self) -> int:
        """Move dead-lettered operations back to the tail of the live log.

        Returns:
            Number of operations requeued
        """
        if self.dead_letters is None:
            return 0

        ops = self.dead_letters.clear()
        for op in ops:
            op.attempts = 0
            self.log.enqueue(op)
        if ops:
            logger.info(f"Requeued {len(ops)} dead-lettered operations")
        return len(ops)
