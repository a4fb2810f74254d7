"""Tests for the operation queue."""

from datetime import datetime, timedelta, timezone

import pytest

from taleforge.models import OperationStatus, OperationType
from taleforge.storage import (
    ExecutorNotSetError,
    InvalidTransitionError,
    OperationConflictError,
    OperationNotFoundError,
    OperationQueue,
    RetryPolicy,
)


class TestEnqueue:
    """Test adding operations."""

    async def test_enqueue_defaults(self, queue) -> None:
        item = await queue.enqueue(OperationType.INSERT, "stories", "abc123", {"id": "abc123"})

        assert item.status == OperationStatus.PENDING
        assert item.retry_count == 0
        assert item.error is None
        assert item.id
        assert (await queue.get(item.id)) == item

    async def test_enqueue_accepts_string_type(self, queue) -> None:
        item = await queue.enqueue("update", "stories", "abc123")
        assert item.operation_type == OperationType.UPDATE

    async def test_pending_is_oldest_first(self, queue) -> None:
        ids = [
            (await queue.enqueue(OperationType.INSERT, "story_segments", f"seg-{n}")).id
            for n in range(5)
        ]
        assert [op.id for op in await queue.get_pending()] == ids

    async def test_counts(self, queue) -> None:
        await queue.enqueue(OperationType.INSERT, "stories", "a")
        await queue.enqueue(OperationType.INSERT, "stories", "b")
        assert await queue.pending_count() == 2
        assert await queue.has_pending() is True
        assert await queue.failed_count() == 0


class TestTransitions:
    """Test the status state machine."""

    async def test_completed_operation_is_removed(self, queue) -> None:
        item = await queue.enqueue(OperationType.INSERT, "stories", "abc123")
        await queue.mark_in_progress(item.id)
        await queue.mark_completed(item.id)

        assert await queue.get(item.id) is None
        assert await queue.get_pending() == []
        assert await queue.get_failed() == []

    async def test_failed_keeps_error_and_retry_count(self, queue) -> None:
        item = await queue.enqueue(OperationType.INSERT, "stories", "abc123")
        await queue.mark_in_progress(item.id)
        failed = await queue.mark_failed(item.id, "network error")

        assert failed.status == OperationStatus.FAILED
        assert failed.error == "network error"
        assert failed.retry_count == 0
        assert [op.id for op in await queue.get_failed()] == [item.id]

    async def test_retry_moves_failed_back_to_pending(self, queue) -> None:
        item = await queue.enqueue(OperationType.INSERT, "stories", "abc123")
        await queue.mark_failed(item.id, "boom")

        retried = await queue.retry(item.id)

        assert retried.status == OperationStatus.PENDING
        assert retried.retry_count == 1
        assert retried.record_id == "abc123"

    async def test_retry_requires_failed_status(self, queue) -> None:
        item = await queue.enqueue(OperationType.INSERT, "stories", "abc123")
        with pytest.raises(InvalidTransitionError):
            await queue.retry(item.id)

    async def test_in_progress_requires_pending(self, queue) -> None:
        item = await queue.enqueue(OperationType.INSERT, "stories", "abc123")
        await queue.mark_failed(item.id, "boom")
        with pytest.raises(InvalidTransitionError):
            await queue.mark_in_progress(item.id)

    async def test_missing_operation_raises(self, queue) -> None:
        with pytest.raises(OperationNotFoundError):
            await queue.mark_in_progress("missing")

    async def test_one_in_progress_per_record(self, queue) -> None:
        first = await queue.enqueue(OperationType.INSERT, "stories", "abc123")
        second = await queue.enqueue(OperationType.UPDATE, "stories", "abc123")
        other = await queue.enqueue(OperationType.INSERT, "stories", "other")

        await queue.mark_in_progress(first.id)
        with pytest.raises(OperationConflictError):
            await queue.mark_in_progress(second.id)
        await queue.mark_in_progress(other.id)

    async def test_dequeue_removes_any_status(self, queue) -> None:
        item = await queue.enqueue(OperationType.DELETE, "stories", "abc123")
        await queue.mark_failed(item.id, "boom")
        await queue.dequeue(item.id)
        assert await queue.get(item.id) is None

    async def test_retry_all_failed(self, queue) -> None:
        for record_id in ("a", "b"):
            item = await queue.enqueue(OperationType.INSERT, "stories", record_id)
            await queue.mark_failed(item.id, "boom")

        retried = await queue.retry_all_failed()

        assert len(retried) == 2
        assert await queue.failed_count() == 0
        assert await queue.pending_count() == 2


class TestRetryPolicy:
    """Test opt-in scheduled retries."""

    def test_delay_doubles_up_to_max(self) -> None:
        policy = RetryPolicy(base_delay_seconds=1.0, max_delay_seconds=5.0)
        assert [policy.delay_for(n) for n in range(5)] == [1.0, 2.0, 4.0, 5.0, 5.0]

    def test_disabled_by_default(self) -> None:
        assert RetryPolicy().should_retry(0) is False

    def test_stops_at_max_attempts(self) -> None:
        policy = RetryPolicy(auto_retry=True, max_retry_attempts=2)
        assert policy.should_retry(1) is True
        assert policy.should_retry(2) is False

    async def test_schedule_and_promote(self, store) -> None:
        queue = OperationQueue(store, retry_policy=RetryPolicy(auto_retry=True, base_delay_seconds=10))
        item = await queue.enqueue(OperationType.INSERT, "stories", "abc123")
        await queue.mark_failed(item.id, "boom")
        now = datetime(2024, 1, 1, tzinfo=timezone.utc)

        scheduled = await queue.schedule_retry(item.id, now=now)
        assert scheduled.status == OperationStatus.SCHEDULED
        assert scheduled.next_attempt_at is not None

        assert await queue.promote_due(now=now + timedelta(seconds=5)) == []
        promoted = await queue.promote_due(now=now + timedelta(seconds=10))

        assert [op.id for op in promoted] == [item.id]
        assert promoted[0].status == OperationStatus.PENDING
        assert promoted[0].retry_count == 1
        assert promoted[0].next_attempt_at is None


class TestProcessQueue:
    """Test draining the queue through an executor."""

    async def test_requires_executor(self, queue) -> None:
        with pytest.raises(ExecutorNotSetError):
            await queue.process_queue()

    async def test_replays_in_order_and_removes_completed(self, queue) -> None:
        seen: list[str] = []

        async def executor(operation) -> None:
            assert operation.status == OperationStatus.IN_PROGRESS
            seen.append(operation.record_id)

        queue.set_executor(executor)
        for record_id in ("a", "b", "c"):
            await queue.enqueue(OperationType.INSERT, "stories", record_id)

        results = await queue.process_queue()

        assert seen == ["a", "b", "c"]
        assert all(result.success for result in results)
        assert await queue.pending_count() == 0

    async def test_failures_are_recorded(self, queue) -> None:
        async def executor(operation) -> None:
            if operation.record_id == "bad":
                raise RuntimeError("server said no")

        queue.set_executor(executor)
        await queue.enqueue(OperationType.INSERT, "stories", "good")
        bad = await queue.enqueue(OperationType.INSERT, "stories", "bad")

        results = await queue.process_queue()

        assert [r.success for r in results] == [True, False]
        failed = await queue.get(bad.id)
        assert failed.status == OperationStatus.FAILED
        assert failed.error == "server said no"

    async def test_auto_retry_schedules_failures(self, store) -> None:
        async def executor(operation) -> None:
            raise RuntimeError("timeout")

        queue = OperationQueue(store, executor=executor, retry_policy=RetryPolicy(auto_retry=True))
        item = await queue.enqueue(OperationType.INSERT, "stories", "abc123")

        await queue.process_queue()

        scheduled = await queue.get(item.id)
        assert scheduled.status == OperationStatus.SCHEDULED
        assert scheduled.error == "timeout"

    async def test_interrupted_operation_is_replayed_by_next_drain(self, store) -> None:
        interrupted = OperationQueue(store)
        stalled = await interrupted.enqueue(OperationType.UPDATE, "stories", "abc123")
        await interrupted.mark_in_progress(stalled.id)

        seen: list[str] = []

        async def executor(operation) -> None:
            seen.append(operation.id)

        queue = OperationQueue(store, executor=executor)
        later = await queue.enqueue(OperationType.UPDATE, "stories", "abc123")

        results = await queue.process_queue()

        assert seen == [stalled.id, later.id]
        assert all(result.success for result in results)
        assert await queue.pending_count() == 0
        assert await queue.get(stalled.id) is None

    async def test_requeue_stalled(self, queue) -> None:
        item = await queue.enqueue(OperationType.INSERT, "stories", "abc123")
        await queue.mark_in_progress(item.id)

        requeued = await queue.requeue_stalled()

        assert [op.id for op in requeued] == [item.id]
        assert (await queue.get(item.id)).status == OperationStatus.PENDING
        assert await queue.requeue_stalled() == []
