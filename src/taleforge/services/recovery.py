"""Story recovery - offer unsynced stories back to the user on start-up.

A story that never reached the server (the app closed mid-story, the device
went offline, the user was not signed in) is still in the local store with
is_synced = False. On start-up the most recently updated one is offered:

    resume  → hand the story to the sync coordinator
    discard → delete the story, its segments and its queued operations

Other unsynced stories stay where they are and are offered on a later check.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum

from taleforge.models.schemas import OfflineStory
from taleforge.services.error_handler import HandledError, handle_error
from taleforge.storage.local_store import (
    CascadeResult,
    LocalStore,
    LocalStoreError,
    parse_iso_timestamp,
)
from taleforge.sync.service import SyncError, SyncResult, SyncService

logger = logging.getLogger(__name__)

DEFAULT_STORY_TITLE = "Untitled Story"


class RecoveryAction(str, Enum):
    RESUME = "resume"
    DISCARD = "discard"


@dataclass
class RecoveryOffer:
    """What the user sees when asked to resume or discard a story."""

    story_id: str
    title: str
    last_saved: str | None
    segment_count: int
    is_completed: bool


@dataclass
class RecoveryOutcome:
    """Result of resuming or discarding a story.

    Attributes:
        story_id: The story acted on
        action: resume or discard
        success: Whether the action went through
        user_message: Text to show the user
        error: Classified error when success is False
        sync_result: Result of the hand-off when resume triggered a sync
        removed: Counts of deleted records for a discard
    """

    story_id: str
    action: RecoveryAction
    success: bool
    user_message: str
    error: HandledError | None = None
    sync_result: SyncResult | None = None
    removed: CascadeResult | None = None


class StoryRecoveryService:
    """Finds unsynced stories and resumes or discards them.

    Usage:
        recovery = StoryRecoveryService(store, sync_service)
        offer = await recovery.check_for_unsaved()
        if offer:
            outcome = await recovery.resume(offer.story_id, user_id)
    """

    def __init__(self, store: LocalStore, sync: SyncService | None = None):
        self.store = store
        self.sync = sync

    async def list_unsynced(self) -> list[OfflineStory]:
        """All unsynced stories, most recently updated first."""
        stories = await self.store.get_unsynced_stories()
        return sorted(stories, key=lambda s: parse_iso_timestamp(s.updated_at), reverse=True)

    async def check_for_unsaved(self) -> RecoveryOffer | None:
        """Return an offer for the most recent unsynced story, if any.

        Storage failures are logged and reported as "nothing to recover" so
        that start-up is never blocked by the check.
        """
        try:
            unsynced = await self.list_unsynced()
            if not unsynced:
                return None
            story = unsynced[0]
            segments = await self.store.get_story_segments_by_story_id(story.id)
        except LocalStoreError as exc:
            handle_error(exc, context="recovery check")
            return None

        logger.info(
            f"Found {len(unsynced)} unsynced stories, offering {story.id}",
            extra={"story_id": story.id},
        )
        return RecoveryOffer(
            story_id=story.id,
            title=story.title or DEFAULT_STORY_TITLE,
            last_saved=story.updated_at,
            segment_count=len(segments),
            is_completed=story.is_completed,
        )

    async def resume(self, story_id: str, user_id: str | None = None) -> RecoveryOutcome:
        """Keep the story and hand it to the sync coordinator.

        A story written before sign-in has no owner; user_id is assigned to it
        here. Without a signed-in owner or a sync coordinator the story simply
        stays local and is offered again next time.
        """
        try:
            story = await self.store.get_story(story_id)
            if story is None:
                return RecoveryOutcome(
                    story_id=story_id,
                    action=RecoveryAction.RESUME,
                    success=False,
                    user_message="This story is no longer saved on this device.",
                )

            if user_id and not story.user_id:
                story = await self.store.update_story(
                    story.model_copy(update={"user_id": user_id}), touch=False
                )

            if self.sync is None or not story.user_id:
                logger.info(f"Story {story_id} kept locally until sign-in", extra={"story_id": story_id})
                return RecoveryOutcome(
                    story_id=story_id,
                    action=RecoveryAction.RESUME,
                    success=True,
                    user_message="Your story is saved on this device and will sync once you sign in.",
                )

            sync_result = await self.sync.sync_all()
        except (LocalStoreError, SyncError) as exc:
            handled = handle_error(exc, context="recovery resume")
            return RecoveryOutcome(
                story_id=story_id,
                action=RecoveryAction.RESUME,
                success=False,
                user_message=handled.user_message,
                error=handled,
            )

        if sync_result.success:
            message = "Your story has been restored and saved."
        else:
            message = "Your story has been restored. It will finish syncing when you're back online."
        logger.info(
            f"Resumed story {story_id} (sync success={sync_result.success})",
            extra={"story_id": story_id},
        )
        return RecoveryOutcome(
            story_id=story_id,
            action=RecoveryAction.RESUME,
            success=True,
            user_message=message,
            sync_result=sync_result,
        )

    async def discard(self, story_id: str) -> RecoveryOutcome:
        """Delete the story together with its segments and queued operations."""
        try:
            removed = await self.store.delete_story_cascade(story_id)
        except LocalStoreError as exc:
            handled = handle_error(exc, context="recovery discard")
            return RecoveryOutcome(
                story_id=story_id,
                action=RecoveryAction.DISCARD,
                success=False,
                user_message=handled.user_message,
                error=handled,
            )

        return RecoveryOutcome(
            story_id=story_id,
            action=RecoveryAction.DISCARD,
            success=True,
            user_message="The unsaved story has been discarded.",
            removed=removed,
        )
