"""Operation Queue - remote mutations waiting to be replayed.

Records inserts/updates/deletes against remote tables so a change made while
offline (or before sign-in) is not lost, and replays them oldest-first when
the sync coordinator drains the queue.

State machine:
    pending → in_progress → completed (deleted) | failed
    failed → pending                 (manual retry, retry_count + 1)
    failed → scheduled → pending     (opt-in retry policy, retry_count + 1)
    in_progress → pending            (interrupted drain, reset by the next drain)

Nothing here runs on a timer: scheduled items only move back to pending when
a caller invokes promote_due().
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any

from taleforge.models.offline import OperationStatus, OperationType
from taleforge.models.schemas import OperationQueueItem
from taleforge.storage.local_store import LocalStore

logger = logging.getLogger(__name__)

OperationExecutor = Callable[[OperationQueueItem], Awaitable[None]]


class OperationQueueError(Exception):
    """Base exception for operation queue errors."""
    pass


class OperationNotFoundError(OperationQueueError):
    """Operation is not in the queue."""

    def __init__(self, operation_id: str):
        self.operation_id = operation_id
        super().__init__(f"Operation '{operation_id}' not found")


class InvalidTransitionError(OperationQueueError):
    """Status change not allowed from the operation's current status."""
    pass


class OperationConflictError(OperationQueueError):
    """Another operation for the same record is already in progress."""
    pass


class ExecutorNotSetError(OperationQueueError):
    """process_queue() called before an executor was configured."""
    pass


@dataclass
class OperationResult:
    """Outcome of replaying one queued operation."""

    success: bool
    operation_id: str
    error: str | None = None


@dataclass
class RetryPolicy:
    """Explicit retry scheduling for failed operations.

    Attributes:
        auto_retry: Schedule failed operations instead of leaving them failed
        max_retry_attempts: Stop scheduling once retry_count reaches this
        base_delay_seconds: Delay before the first retry (doubles each time)
        max_delay_seconds: Upper bound for the delay
    """

    auto_retry: bool = False
    max_retry_attempts: int = 5
    base_delay_seconds: float = 1.0
    max_delay_seconds: float = 60.0

    def delay_for(self, retry_count: int) -> float:
        return min(self.base_delay_seconds * (2**retry_count), self.max_delay_seconds)

    def should_retry(self, retry_count: int) -> bool:
        return self.auto_retry and retry_count < self.max_retry_attempts


def _iso(moment: datetime) -> str:
    return moment.isoformat(timespec="microseconds").replace("+00:00", "Z")


class OperationQueue:
    """Persistent queue of remote mutations.

    Usage:
        queue = OperationQueue(store)
        await queue.enqueue(OperationType.INSERT, "stories", story.id, story.model_dump())

        queue.set_executor(sync_service.execute_operation)
        results = await queue.process_queue()
    """

    def __init__(
        self,
        store: LocalStore,
        *,
        executor: OperationExecutor | None = None,
        retry_policy: RetryPolicy | None = None,
    ):
        self.store = store
        self.retry_policy = retry_policy or RetryPolicy()
        self._executor = executor
        self._lock = asyncio.Lock()
        self._processing: asyncio.Future[list[OperationResult]] | None = None
        self._last_created_at: datetime | None = None

    def set_executor(self, executor: OperationExecutor) -> None:
        """Set the coroutine that replays one operation against the remote."""
        self._executor = executor

    @property
    def is_processing(self) -> bool:
        return self._processing is not None

    def _next_created_at(self) -> str:
        # Strictly increasing within the process so oldest-first replay keeps
        # enqueue order even for operations created in the same microsecond.
        now = datetime.now(timezone.utc)
        if self._last_created_at is not None and now <= self._last_created_at:
            now = self._last_created_at + timedelta(microseconds=1)
        self._last_created_at = now
        return _iso(now)

    # =========================================================================
    # Enqueue and lookups
    # =========================================================================

    async def enqueue(
        self,
        operation_type: OperationType | str,
        target_table: str,
        record_id: str,
        payload: Any = None,
    ) -> OperationQueueItem:
        """Append a pending operation.

        The record_id is stored once and never rewritten, so every retry of
        this mutation carries the same id for idempotent replay.
        """
        item = OperationQueueItem(
            id=str(uuid.uuid4()),
            operation_type=OperationType(operation_type),
            target_table=target_table,
            record_id=record_id,
            payload=payload,
            created_at=self._next_created_at(),
            retry_count=0,
            status=OperationStatus.PENDING,
        )
        await self.store.add_operation(item)
        logger.info(
            f"Operation added to queue: {item.id} ({item.operation_type.value} on {target_table})",
            extra={"operation_id": item.id, "record_id": record_id},
        )
        return item

    async def get(self, operation_id: str) -> OperationQueueItem | None:
        return await self.store.get_operation(operation_id)

    async def get_pending(self) -> list[OperationQueueItem]:
        """Pending operations, oldest first."""
        return await self.store.get_pending_operations()

    async def get_failed(self) -> list[OperationQueueItem]:
        return await self.store.get_failed_operations()

    async def get_scheduled(self) -> list[OperationQueueItem]:
        return await self.store.get_operations_by_status(OperationStatus.SCHEDULED)

    async def pending_count(self) -> int:
        return len(await self.get_pending())

    async def failed_count(self) -> int:
        return len(await self.get_failed())

    async def has_pending(self) -> bool:
        return await self.pending_count() > 0

    # =========================================================================
    # Status transitions
    # =========================================================================

    async def _require(self, operation_id: str) -> OperationQueueItem:
        operation = await self.store.get_operation(operation_id)
        if operation is None:
            raise OperationNotFoundError(operation_id)
        return operation

    async def _transition(
        self,
        operation: OperationQueueItem,
        allowed: set[OperationStatus],
        status: OperationStatus,
        **changes: Any,
    ) -> OperationQueueItem:
        if operation.status not in allowed:
            raise InvalidTransitionError(
                f"Operation '{operation.id}' cannot move from {operation.status.value} to {status.value}"
            )
        updated = operation.model_copy(update={"status": status, **changes})
        return await self.store.update_operation(updated)

    async def mark_in_progress(self, operation_id: str) -> OperationQueueItem:
        """Claim a pending operation for replay.

        Raises:
            OperationNotFoundError: If the operation is not queued
            InvalidTransitionError: If it is not pending
            OperationConflictError: If another operation for the same record is in progress
        """
        async with self._lock:
            operation = await self._require(operation_id)
            siblings = await self.store.get_operations_for_record(operation.record_id)
            busy = [
                op for op in siblings
                if op.id != operation.id and op.status == OperationStatus.IN_PROGRESS
            ]
            if busy:
                raise OperationConflictError(
                    f"Record '{operation.record_id}' already has operation {busy[0].id} in progress"
                )
            return await self._transition(
                operation, {OperationStatus.PENDING}, OperationStatus.IN_PROGRESS
            )

    async def mark_completed(self, operation_id: str) -> None:
        """Finish an operation. Completed operations are deleted, not kept."""
        async with self._lock:
            await self.store.delete_operation(operation_id)
        logger.info(f"Operation {operation_id} completed", extra={"operation_id": operation_id})

    async def mark_failed(self, operation_id: str, error: str) -> OperationQueueItem:
        """Record a failed replay; the error and retry_count stay visible."""
        async with self._lock:
            operation = await self._require(operation_id)
            failed = await self._transition(
                operation,
                {OperationStatus.PENDING, OperationStatus.IN_PROGRESS},
                OperationStatus.FAILED,
                error=error,
            )
        logger.warning(
            f"Operation {operation_id} failed: {error}",
            extra={"operation_id": operation_id, "record_id": failed.record_id},
        )
        return failed

    async def dequeue(self, operation_id: str) -> None:
        """Remove an operation regardless of status (e.g. user cancellation)."""
        async with self._lock:
            await self.store.delete_operation(operation_id)

    async def retry(self, operation_id: str) -> OperationQueueItem:
        """Move a failed operation back to pending for another attempt."""
        async with self._lock:
            operation = await self._require(operation_id)
            return await self._transition(
                operation,
                {OperationStatus.FAILED},
                OperationStatus.PENDING,
                retry_count=operation.retry_count + 1,
                next_attempt_at=None,
            )

    async def retry_all_failed(self) -> list[OperationQueueItem]:
        failed = await self.get_failed()
        if failed:
            logger.info(f"Retrying {len(failed)} failed operations")
        return [await self.retry(op.id) for op in failed]

    async def schedule_retry(self, operation_id: str, *, now: datetime | None = None) -> OperationQueueItem:
        """Park a failed operation until its backoff delay has elapsed."""
        now = now or datetime.now(timezone.utc)
        async with self._lock:
            operation = await self._require(operation_id)
            delay = self.retry_policy.delay_for(operation.retry_count)
            scheduled = await self._transition(
                operation,
                {OperationStatus.FAILED},
                OperationStatus.SCHEDULED,
                next_attempt_at=_iso(now + timedelta(seconds=delay)),
            )
        logger.info(
            f"Scheduling retry for operation {operation_id} in {delay}s",
            extra={"operation_id": operation_id},
        )
        return scheduled

    async def promote_due(self, *, now: datetime | None = None) -> list[OperationQueueItem]:
        """Move scheduled operations whose next_attempt_at has passed back to pending."""
        cutoff = _iso(now or datetime.now(timezone.utc))
        promoted = []
        async with self._lock:
            for operation in await self.get_scheduled():
                if operation.next_attempt_at is not None and operation.next_attempt_at > cutoff:
                    continue
                promoted.append(
                    await self._transition(
                        operation,
                        {OperationStatus.SCHEDULED},
                        OperationStatus.PENDING,
                        retry_count=operation.retry_count + 1,
                        next_attempt_at=None,
                    )
                )
        return promoted

    async def requeue_stalled(self) -> list[OperationQueueItem]:
        """Move operations left in_progress by an interrupted drain back to pending.

        Only safe while no drain is running, which is how _drain() and the
        application start-up call it.
        """
        async with self._lock:
            stalled = await self.store.get_operations_by_status(OperationStatus.IN_PROGRESS)
            requeued = [
                await self._transition(op, {OperationStatus.IN_PROGRESS}, OperationStatus.PENDING)
                for op in stalled
            ]
        if requeued:
            logger.warning(f"Requeued {len(requeued)} operations left in progress")
        return requeued

    # =========================================================================
    # Draining
    # =========================================================================

    async def process_queue(self) -> list[OperationResult]:
        """Replay all pending operations in order through the executor.

        Concurrent callers share the drain already in flight.

        Raises:
            ExecutorNotSetError: If no executor is configured
        """
        if self._executor is None:
            raise ExecutorNotSetError("No operation executor set")

        if self._processing is not None:
            logger.info("Queue is already being processed")
            return await self._processing

        task = asyncio.ensure_future(self._drain())
        self._processing = task
        try:
            return await task
        finally:
            self._processing = None

    async def _drain(self) -> list[OperationResult]:
        await self.requeue_stalled()
        pending = await self.get_pending()
        logger.info(f"Processing {len(pending)} pending operations")

        results: list[OperationResult] = []
        for operation in pending:
            try:
                claimed = await self.mark_in_progress(operation.id)
            except OperationQueueError as exc:
                logger.warning(f"Skipping operation {operation.id}: {exc}")
                continue

            try:
                await self._executor(claimed)
            except Exception as exc:  # noqa: BLE001
                failed = await self.mark_failed(claimed.id, str(exc))
                if self.retry_policy.should_retry(failed.retry_count):
                    await self.schedule_retry(failed.id)
                results.append(OperationResult(success=False, operation_id=claimed.id, error=str(exc)))
            else:
                await self.mark_completed(claimed.id)
                results.append(OperationResult(success=True, operation_id=claimed.id))

        return results
