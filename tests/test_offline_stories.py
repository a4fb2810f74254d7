"""Tests for the offline story service."""

import pytest

from taleforge.models import OperationType
from taleforge.services import MediaUrlCache, OfflineStoryService
from taleforge.storage import DuplicateKeyError, RecordNotFoundError
from taleforge.sync import NetworkMonitor, NetworkStatus, SyncService


@pytest.fixture()
def service(store, queue) -> OfflineStoryService:
    return OfflineStoryService(store, queue, MediaUrlCache())


class TestWriting:
    """Test writing stories while offline."""

    async def test_start_story_saves_and_queues_insert(self, service, store, queue) -> None:
        story = await service.start_story({"id": "abc123", "title": "The Brave Fox", "user_id": "u1"})

        assert story.is_synced is False
        assert (await store.get_story("abc123")).title == "The Brave Fox"
        pending = await queue.get_pending()
        assert [(op.operation_type, op.target_table, op.record_id) for op in pending] == [
            (OperationType.INSERT, "stories", "abc123")
        ]

    async def test_start_story_generates_id(self, service) -> None:
        story = await service.start_story({"title": "No id yet"})
        assert story.id

    async def test_start_story_twice_raises(self, service) -> None:
        await service.start_story({"id": "abc123"})
        with pytest.raises(DuplicateKeyError):
            await service.start_story({"id": "abc123"})

    async def test_append_segment_numbers_segments(self, service) -> None:
        await service.start_story({"id": "abc123"})
        first = await service.append_segment("abc123", "Once upon a time", choices=["Go left", "Go right"])
        second = await service.append_segment("abc123", "The fox went left")

        assert (first.sequence_number, second.sequence_number) == (0, 1)
        assert first.choices == ["Go left", "Go right"]

    async def test_ending_segment_completes_story(self, service, store) -> None:
        await service.start_story({"id": "abc123"})
        await service.append_segment("abc123", "The end", is_end=True)
        assert (await store.get_story("abc123")).is_completed is True

    async def test_append_to_missing_story_raises(self, service) -> None:
        with pytest.raises(RecordNotFoundError):
            await service.append_segment("ghost", "text")

    async def test_attach_media_updates_segment_and_cache(self, service, queue) -> None:
        await service.start_story({"id": "abc123"})
        segment = await service.append_segment("abc123", "Once upon a time", segment_id="seg-1")

        updated = await service.attach_media("seg-1", image_url="https://img/1.png")
        await service.attach_media("seg-1", audio_url="https://audio/1.mp3")

        assert updated.image_url == "https://img/1.png"
        urls = await service.get_media(segment.id)
        assert (urls.image_url, urls.audio_url) == ("https://img/1.png", "https://audio/1.mp3")
        updates = [op for op in await queue.get_pending() if op.operation_type == OperationType.UPDATE]
        assert len(updates) == 2

    async def test_get_media_falls_back_to_store(self, service, store) -> None:
        await store.add_story_segment(
            {"id": "seg-1", "story_id": "abc123", "sequence_number": 0, "image_url": "https://img/1.png"}
        )
        assert (await service.get_media("seg-1")).image_url == "https://img/1.png"
        assert service.media_cache.get("seg-1") is not None
        assert await service.get_media("missing") is None


class TestHousekeeping:
    """Test listing, marking and deleting stories."""

    async def test_list_stories_per_user_or_all(self, service) -> None:
        await service.start_story({"id": "a", "user_id": "u1"})
        await service.start_story({"id": "b", "user_id": "u2"})

        assert [s.id for s in await service.list_stories("u1")] == ["a"]
        assert [s.id for s in await service.list_stories()] == ["a", "b"]

    async def test_mark_synced(self, service) -> None:
        await service.start_story({"id": "abc123"})
        story = await service.mark_synced("abc123")
        assert story.is_synced is True
        assert await service.mark_synced("ghost") is None

    async def test_delete_unsynced_story_queues_nothing(self, service, queue) -> None:
        await service.start_story({"id": "abc123"})
        await service.append_segment("abc123", "text", segment_id="seg-1")
        await service.attach_media("seg-1", image_url="https://img/1.png")

        removed = await service.delete_story("abc123")

        assert removed.segments == 1
        assert await queue.get_pending() == []
        assert service.media_cache.get("seg-1") is None

    async def test_delete_synced_story_queues_remote_delete(self, service, queue) -> None:
        await service.start_story({"id": "abc123"})
        await service.mark_synced("abc123")
        await queue.dequeue((await queue.get_pending())[0].id)

        await service.delete_story("abc123")

        pending = await queue.get_pending()
        assert [(op.operation_type, op.record_id) for op in pending] == [
            (OperationType.DELETE, "abc123")
        ]

    async def test_sync_summary_requires_every_segment(self, service, store) -> None:
        await service.start_story({"id": "abc123"})
        await service.append_segment("abc123", "one", segment_id="seg-1")
        await service.append_segment("abc123", "two", segment_id="seg-2")
        await service.mark_synced("abc123")
        segment = await store.get_story_segment("seg-1")
        await store.update_story_segment(segment.model_copy(update={"is_synced": True}))

        summary = await service.sync_summary("abc123")

        assert summary.story_synced is True
        assert (summary.total_segments, summary.synced_segments) == (2, 1)
        assert summary.pending_segments == 1
        assert summary.fully_synced is False
        assert await service.sync_summary("ghost") is None

    async def test_sync_all_without_coordinator(self, service) -> None:
        result = await service.sync_all()
        assert result.success is False

    async def test_sync_all_pushes_everything(self, store, queue, remote) -> None:
        network = NetworkMonitor()
        network.set_status(NetworkStatus.ONLINE)
        sync = SyncService(store, queue, remote, network)
        service = OfflineStoryService(store, queue, MediaUrlCache(), sync)
        await service.start_story({"id": "abc123", "user_id": "u1"})
        await service.append_segment("abc123", "Once upon a time", segment_id="seg-1")

        result = await service.sync_all()

        assert result.success is True
        assert "abc123" in remote.rows("stories")
        assert "seg-1" in remote.rows("story_segments")
        summary = await service.sync_summary("abc123")
        assert summary.fully_synced is True

    def test_clear_session_empties_media_cache(self, service) -> None:
        from taleforge.services import MediaUrls

        service.media_cache.put("seg-1", MediaUrls())
        service.clear_session()
        assert len(service.media_cache) == 0


class TestSyncAfterLocalChanges:
    """Test that edits made after an operation was queued reach the server."""

    @pytest.fixture()
    def synced_service(self, store, queue, remote) -> OfflineStoryService:
        network = NetworkMonitor()
        network.set_status(NetworkStatus.ONLINE)
        return OfflineStoryService(store, queue, MediaUrlCache(), SyncService(store, queue, remote, network))

    async def test_completing_story_after_queued_insert(self, synced_service, store, remote) -> None:
        await synced_service.start_story({"id": "abc123", "title": "The Brave Fox", "user_id": "u1"})
        await synced_service.append_segment("abc123", "The end", segment_id="seg-1", is_end=True)

        result = await synced_service.sync_all()

        assert result.success is True
        assert remote.rows("stories")["abc123"]["is_completed"] is True
        assert remote.rows("story_segments")["seg-1"]["is_end"] is True
        local = await store.get_story("abc123")
        assert (local.is_completed, local.is_synced) == (True, True)

    async def test_media_attached_after_sync(self, synced_service, store, remote) -> None:
        await synced_service.start_story({"id": "abc123", "user_id": "u1"})
        await synced_service.append_segment("abc123", "Once upon a time", segment_id="seg-1")
        await synced_service.sync_all()

        await synced_service.attach_media("seg-1", image_url="https://img/1.png")
        assert (await store.get_story_segment("seg-1")).is_synced is False

        result = await synced_service.sync_all()

        assert result.success is True
        assert remote.rows("story_segments")["seg-1"]["image_url"] == "https://img/1.png"
        assert remote.rows("story_segments")["seg-1"]["segment_text"] == "Once upon a time"
        assert (await synced_service.sync_summary("abc123")).fully_synced is True

    async def test_deleting_synced_story_removes_remote_segments(self, synced_service, queue, remote) -> None:
        await synced_service.start_story({"id": "abc123", "user_id": "u1"})
        await synced_service.append_segment("abc123", "one", segment_id="seg-1")
        await synced_service.append_segment("abc123", "two", segment_id="seg-2")
        await synced_service.sync_all()

        await synced_service.delete_story("abc123")

        pending = await queue.get_pending()
        assert [(op.operation_type, op.target_table, op.record_id) for op in pending] == [
            (OperationType.DELETE, "story_segments", "seg-1"),
            (OperationType.DELETE, "story_segments", "seg-2"),
            (OperationType.DELETE, "stories", "abc123"),
        ]
        await synced_service.sync_all()
        assert remote.rows("stories") == {}
        assert remote.rows("story_segments") == {}
