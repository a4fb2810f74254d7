"""Offline router for locally stored stories, the operation queue and recovery.

Endpoints for inspecting what is waiting to sync, retrying failed remote
mutations, triggering a sync and resolving unsynced stories on start-up.
"""

from dataclasses import asdict

from fastapi import APIRouter, Query, status
from pydantic import BaseModel

from taleforge.api.deps import OptionalUserId, Queue, Recovery, Store, Stories, Sync
from taleforge.api.exceptions import NotFoundError
from taleforge.models.schemas import OfflineStory, OperationQueueItem
from taleforge.services.recovery import RecoveryOutcome

router = APIRouter()


# =============================================================================
# Schemas
# =============================================================================


class StorySyncSummaryResponse(BaseModel):
    """Sync state of one story and its segments."""

    story_id: str
    story_synced: bool
    total_segments: int
    synced_segments: int
    fully_synced: bool


class SyncResultResponse(BaseModel):
    """Summary of a sync run."""

    success: bool
    synced_stories: int
    synced_segments: int
    processed_operations: int
    failed_operations: int
    conflicts: int
    errors: list[str]


class RecoveryOfferResponse(BaseModel):
    """Story offered for resume or discard."""

    story_id: str
    title: str
    last_saved: str | None
    segment_count: int
    is_completed: bool


class RecoveryCheckResponse(BaseModel):
    """Result of checking for unsynced stories."""

    offer: RecoveryOfferResponse | None
    unsynced_count: int


class RecoveryOutcomeResponse(BaseModel):
    """Result of resuming or discarding a story."""

    story_id: str
    action: str
    success: bool
    message: str
    error_category: str | None = None
    sync: SyncResultResponse | None = None
    removed_segments: int | None = None
    removed_operations: int | None = None


def _outcome_response(outcome: RecoveryOutcome) -> RecoveryOutcomeResponse:
    return RecoveryOutcomeResponse(
        story_id=outcome.story_id,
        action=outcome.action.value,
        success=outcome.success,
        message=outcome.user_message,
        error_category=outcome.error.category.value if outcome.error else None,
        sync=SyncResultResponse(**asdict(outcome.sync_result)) if outcome.sync_result else None,
        removed_segments=outcome.removed.segments if outcome.removed else None,
        removed_operations=outcome.removed.operations if outcome.removed else None,
    )


# =============================================================================
# Stories
# =============================================================================


@router.get("/stories", response_model=list[OfflineStory])
async def list_offline_stories(
    stories: Stories,
    user_id: OptionalUserId,
    unsynced: bool = Query(default=False, description="Only stories not yet on the server"),
) -> list[OfflineStory]:
    """List stories stored on this device.

    Signed-in users see their own stories; anonymous requests see all.
    """
    items = await stories.list_stories(user_id)
    if unsynced:
        items = [story for story in items if not story.is_synced]
    return items


@router.get("/stories/{story_id}/sync-summary", response_model=StorySyncSummaryResponse)
async def get_sync_summary(story_id: str, stories: Stories) -> StorySyncSummaryResponse:
    """Report how much of a story has reached the server."""
    summary = await stories.sync_summary(story_id)
    if summary is None:
        raise NotFoundError("Story", story_id)
    return StorySyncSummaryResponse(
        story_id=summary.story_id,
        story_synced=summary.story_synced,
        total_segments=summary.total_segments,
        synced_segments=summary.synced_segments,
        fully_synced=summary.fully_synced,
    )


# =============================================================================
# Operation queue
# =============================================================================


@router.get("/queue/pending", response_model=list[OperationQueueItem])
async def list_pending_operations(queue: Queue) -> list[OperationQueueItem]:
    """Pending operations, oldest first."""
    return await queue.get_pending()


@router.get("/queue/failed", response_model=list[OperationQueueItem])
async def list_failed_operations(queue: Queue) -> list[OperationQueueItem]:
    """Failed operations with their last error."""
    return await queue.get_failed()


@router.post("/queue/{operation_id}/retry", response_model=OperationQueueItem)
async def retry_operation(operation_id: str, queue: Queue) -> OperationQueueItem:
    """Move a failed operation back to pending."""
    return await queue.retry(operation_id)


@router.delete("/queue/{operation_id}", status_code=status.HTTP_204_NO_CONTENT)
async def remove_operation(operation_id: str, queue: Queue) -> None:
    """Drop an operation from the queue without replaying it."""
    if await queue.get(operation_id) is None:
        raise NotFoundError("Operation", operation_id)
    await queue.dequeue(operation_id)


# =============================================================================
# Sync
# =============================================================================


@router.post("/sync", response_model=SyncResultResponse)
async def sync_now(sync: Sync) -> SyncResultResponse:
    """Replay queued operations and push unsynced records."""
    result = await sync.sync_all()
    return SyncResultResponse(**asdict(result))


# =============================================================================
# Recovery
# =============================================================================


@router.get("/recovery", response_model=RecoveryCheckResponse)
async def check_recovery(recovery: Recovery) -> RecoveryCheckResponse:
    """Offer the most recently updated unsynced story, if any."""
    offer = await recovery.check_for_unsaved()
    unsynced = await recovery.list_unsynced() if offer is not None else []
    return RecoveryCheckResponse(
        offer=RecoveryOfferResponse(**asdict(offer)) if offer else None,
        unsynced_count=len(unsynced),
    )


@router.post("/recovery/{story_id}/resume", response_model=RecoveryOutcomeResponse)
async def resume_story(
    story_id: str,
    recovery: Recovery,
    store: Store,
    user_id: OptionalUserId,
) -> RecoveryOutcomeResponse:
    """Keep an unsynced story and hand it to the sync coordinator."""
    if await store.get_story(story_id) is None:
        raise NotFoundError("Story", story_id)
    outcome = await recovery.resume(story_id, user_id)
    return _outcome_response(outcome)


@router.post("/recovery/{story_id}/discard", response_model=RecoveryOutcomeResponse)
async def discard_story(story_id: str, recovery: Recovery) -> RecoveryOutcomeResponse:
    """Delete an unsynced story with its segments and queued operations."""
    outcome = await recovery.discard(story_id)
    return _outcome_response(outcome)
