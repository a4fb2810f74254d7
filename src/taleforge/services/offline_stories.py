"""Offline story service - the story-facing entry point to offline storage.

Writes go to the local store first and a matching operation is queued for
the sync coordinator, so a story being written offline is never lost:

    start_story / append_segment / attach_media
        → LocalStore (durable copy)
        → OperationQueue (remote mutation for later replay)
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from typing import Any

from taleforge.models.offline import OperationType, StoreName
from taleforge.models.schemas import OfflineStory, OfflineStorySegment
from taleforge.services.media_cache import MediaUrlCache, MediaUrls
from taleforge.storage.local_store import CascadeResult, LocalStore, RecordNotFoundError
from taleforge.storage.operation_queue import OperationQueue
from taleforge.sync.service import SyncResult, SyncService

logger = logging.getLogger(__name__)


@dataclass
class StorySyncSummary:
    """Sync state of a story and its segments.

    A segment's own is_synced flag is authoritative for that segment; the
    story counts as fully synced only when it and every segment are synced.
    """

    story_id: str
    story_synced: bool
    total_segments: int
    synced_segments: int

    @property
    def pending_segments(self) -> int:
        return self.total_segments - self.synced_segments

    @property
    def fully_synced(self) -> bool:
        return self.story_synced and self.pending_segments == 0


class OfflineStoryService:
    """Create, extend and manage stories that may be written offline."""

    def __init__(
        self,
        store: LocalStore,
        queue: OperationQueue,
        media_cache: MediaUrlCache | None = None,
        sync: SyncService | None = None,
    ):
        self.store = store
        self.queue = queue
        self.media_cache = media_cache or MediaUrlCache()
        self.sync = sync

    # =========================================================================
    # Writing
    # =========================================================================

    async def start_story(self, story: OfflineStory | dict[str, Any]) -> OfflineStory:
        """Save a new story locally and queue its remote insert.

        Raises:
            DuplicateKeyError: If a story with the same id exists
        """
        data = story.model_dump() if isinstance(story, OfflineStory) else dict(story)
        data.setdefault("id", str(uuid.uuid4()))
        data["is_synced"] = False
        saved = await self.store.add_story(data)
        await self.queue.enqueue(
            OperationType.INSERT, StoreName.STORIES.value, saved.id, saved.model_dump(mode="json")
        )
        logger.info(f"Story {saved.id} saved offline", extra={"story_id": saved.id})
        return saved

    async def append_segment(
        self,
        story_id: str,
        segment_text: str,
        *,
        choices: list[str] | None = None,
        is_end: bool = False,
        segment_id: str | None = None,
        **extra: Any,
    ) -> OfflineStorySegment:
        """Add the next segment of a story.

        The segment gets the next sequence number after the existing ones.
        Ending segments mark the story completed.

        Raises:
            RecordNotFoundError: If the story is not stored locally
        """
        story = await self.store.get_story(story_id)
        if story is None:
            raise RecordNotFoundError(StoreName.STORIES.value, story_id)

        existing = await self.store.get_story_segments_by_story_id(story_id)
        next_number = existing[-1].sequence_number + 1 if existing else 0

        segment = await self.store.add_story_segment(
            OfflineStorySegment(
                id=segment_id or str(uuid.uuid4()),
                story_id=story_id,
                sequence_number=next_number,
                segment_text=segment_text,
                choices=choices or [],
                is_end=is_end,
                is_synced=False,
                **extra,
            )
        )
        await self.queue.enqueue(
            OperationType.INSERT,
            StoreName.STORY_SEGMENTS.value,
            segment.id,
            segment.model_dump(mode="json"),
        )

        changes: dict[str, Any] = {"is_synced": False}
        if is_end:
            changes["is_completed"] = True
        await self.store.update_story(story.model_copy(update=changes))
        return segment

    async def attach_media(
        self,
        segment_id: str,
        *,
        image_url: str | None = None,
        audio_url: str | None = None,
    ) -> OfflineStorySegment:
        """Record generated media URLs on a segment and queue the remote update.

        URLs left as None keep their current value.

        Raises:
            RecordNotFoundError: If the segment is not stored locally
        """
        segment = await self.store.get_story_segment(segment_id)
        if segment is None:
            raise RecordNotFoundError(StoreName.STORY_SEGMENTS.value, segment_id)

        changes: dict[str, Any] = {"is_synced": False}
        if image_url is not None:
            changes["image_url"] = image_url
        if audio_url is not None:
            changes["audio_url"] = audio_url
        updated = await self.store.update_story_segment(segment.model_copy(update=changes))

        self.media_cache.put(
            segment_id, MediaUrls(image_url=updated.image_url, audio_url=updated.audio_url)
        )
        await self.queue.enqueue(
            OperationType.UPDATE,
            StoreName.STORY_SEGMENTS.value,
            segment_id,
            updated.model_dump(mode="json"),
        )
        return updated

    async def get_media(self, segment_id: str) -> MediaUrls | None:
        """Media URLs of a segment, from the cache when fresh."""
        cached = self.media_cache.get(segment_id)
        if cached is not None:
            return cached
        segment = await self.store.get_story_segment(segment_id)
        if segment is None:
            return None
        urls = MediaUrls(image_url=segment.image_url, audio_url=segment.audio_url)
        self.media_cache.put(segment_id, urls)
        return urls

    # =========================================================================
    # Reading and housekeeping
    # =========================================================================

    async def list_stories(self, user_id: str | None = None) -> list[OfflineStory]:
        """Stories of a signed-in user, or every local story when anonymous."""
        if user_id:
            return await self.store.get_stories_by_user_id(user_id)
        return await self.store.get_all_stories()

    async def mark_synced(self, story_id: str, is_synced: bool = True) -> OfflineStory | None:
        story = await self.store.get_story(story_id)
        if story is None:
            return None
        return await self.store.update_story(
            story.model_copy(update={"is_synced": is_synced}), touch=False
        )

    async def delete_story(self, story_id: str) -> CascadeResult:
        """Remove a story and everything queued for it.

        Segments and the story that already reached the server get remote
        deletes queued, segments first.
        """
        story = await self.store.get_story(story_id)
        segments = await self.store.get_story_segments_by_story_id(story_id)
        removed = await self.store.delete_story_cascade(story_id)
        for segment in segments:
            self.media_cache.invalidate(segment.id)
            if segment.is_synced:
                await self.queue.enqueue(
                    OperationType.DELETE, StoreName.STORY_SEGMENTS.value, segment.id
                )
        if story is not None and story.is_synced:
            await self.queue.enqueue(OperationType.DELETE, StoreName.STORIES.value, story_id)
        return removed

    async def sync_summary(self, story_id: str) -> StorySyncSummary | None:
        story = await self.store.get_story(story_id)
        if story is None:
            return None
        segments = await self.store.get_story_segments_by_story_id(story_id)
        return StorySyncSummary(
            story_id=story_id,
            story_synced=story.is_synced,
            total_segments=len(segments),
            synced_segments=sum(1 for s in segments if s.is_synced),
        )

    async def sync_all(self) -> SyncResult:
        """Push everything offline to the server."""
        if self.sync is None:
            return SyncResult(success=False, errors=["Sync is not configured"])
        return await self.sync.sync_all()

    def clear_session(self) -> None:
        """Forget per-session state; call on logout."""
        self.media_cache.clear()
