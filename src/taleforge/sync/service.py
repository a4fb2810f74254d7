"""Sync Coordinator - reconcile local records with the remote database.

Drains the operation queue and pushes unsynced stories and segments to the
remote backend, resolving conflicts when the remote copy already exists.

Replays are idempotent per record: inserts are sent as upserts keyed by the
record id, so replaying the same queued insert twice leaves one remote row.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from taleforge.models.offline import OperationType, StoreName
from taleforge.models.schemas import OperationQueueItem
from taleforge.storage.local_store import LocalStore, parse_iso_timestamp, utcnow_iso
from taleforge.storage.operation_queue import OperationQueue
from taleforge.sync.network import NetworkEventType, NetworkMonitor, NetworkStatus
from taleforge.sync.remote import RemoteBackend

logger = logging.getLogger(__name__)

SYNCABLE_TABLES = frozenset({StoreName.STORIES.value, StoreName.STORY_SEGMENTS.value})

# Fields that only make sense on the device
LOCAL_ONLY_FIELDS = frozenset({"is_synced"})


class ConflictStrategy(str, Enum):
    """How to merge a local record with an existing remote one."""

    SERVER_WINS = "server_wins"
    CLIENT_WINS = "client_wins"
    TIMESTAMP_BASED = "timestamp_based"
    MANUAL_RESOLUTION = "manual_resolution"


class SyncEventType(str, Enum):
    """Events delivered to sync handlers."""

    SYNC_STARTED = "sync_started"
    SYNC_COMPLETED = "sync_completed"
    SYNC_FAILED = "sync_failed"
    CONFLICT_DETECTED = "conflict_detected"
    CONFLICT_RESOLVED = "conflict_resolved"


SyncEventHandler = Callable[[SyncEventType, Any], None]
ConflictResolver = Callable[[dict[str, Any], dict[str, Any], str, str], Awaitable[dict[str, Any]]]


class SyncError(Exception):
    """Base exception for sync errors."""
    pass


class OfflineError(SyncError):
    """Remote work attempted while offline."""
    pass


class InvalidTableError(SyncError):
    """Queued operation targets a table that is not synced."""
    pass


@dataclass
class SyncOptions:
    """Configuration for the sync coordinator.

    Attributes:
        conflict_strategy: Default strategy when no per-table resolver is registered
        auto_sync_on_reconnect: Run sync_all() after the network comes back
        reconnect_delay_seconds: Delay before that automatic sync
        max_batch_size: Maximum stories (and segments) pushed per sync_all()
    """

    conflict_strategy: ConflictStrategy = ConflictStrategy.TIMESTAMP_BASED
    auto_sync_on_reconnect: bool = True
    reconnect_delay_seconds: float = 2.0
    max_batch_size: int = 50

    def __post_init__(self) -> None:
        self.conflict_strategy = ConflictStrategy(self.conflict_strategy)


@dataclass
class SyncResult:
    """Summary of one sync_all() run."""

    success: bool = True
    synced_stories: int = 0
    synced_segments: int = 0
    processed_operations: int = 0
    failed_operations: int = 0
    conflicts: int = 0
    errors: list[str] = field(default_factory=list)


def _remote_payload(data: dict[str, Any]) -> dict[str, Any]:
    return {k: v for k, v in data.items() if k not in LOCAL_ONLY_FIELDS}


class SyncService:
    """Coordinates the local store, the operation queue and the remote backend.

    Usage:
        sync = SyncService(store, queue, SupabaseBackend(client), network)
        sync.start()
        result = await sync.sync_all()
    """

    def __init__(
        self,
        store: LocalStore,
        queue: OperationQueue,
        remote: RemoteBackend,
        network: NetworkMonitor | None = None,
        options: SyncOptions | None = None,
    ):
        self.store = store
        self.queue = queue
        self.remote = remote
        self.network = network
        self.options = options or SyncOptions()
        self.last_sync_time: str | None = None
        self._handlers: list[SyncEventHandler] = []
        self._conflict_handlers: dict[str, ConflictResolver] = {}
        self._syncing = False
        self._conflict_count = 0
        self._auto_sync_task: asyncio.Task | None = None

        self.queue.set_executor(self.execute_operation)

    # =========================================================================
    # Lifecycle and handlers
    # =========================================================================

    def start(self) -> None:
        """Listen for reconnects on the network monitor."""
        if self.network is not None:
            self.network.register_handler(self._handle_network_event)
        logger.info("Sync service initialized")

    async def stop(self) -> None:
        if self.network is not None:
            self.network.unregister_handler(self._handle_network_event)
        if self._auto_sync_task is not None:
            self._auto_sync_task.cancel()
            try:
                await self._auto_sync_task
            except asyncio.CancelledError:
                pass
            self._auto_sync_task = None
        logger.info("Sync service stopped")

    def register_handler(self, handler: SyncEventHandler) -> None:
        self._handlers.append(handler)

    def unregister_handler(self, handler: SyncEventHandler) -> None:
        self._handlers = [h for h in self._handlers if h is not handler]

    def register_conflict_handler(self, table: str, resolver: ConflictResolver) -> None:
        """Use a custom resolver for conflicts on one table."""
        self._conflict_handlers[table] = resolver

    @property
    def is_syncing(self) -> bool:
        return self._syncing

    def is_online(self) -> bool:
        return self.network is None or self.network.is_online()

    def _notify(self, event_type: SyncEventType, data: Any = None) -> None:
        for handler in list(self._handlers):
            try:
                handler(event_type, data)
            except Exception:
                logger.exception("Error in sync event handler")

    def _handle_network_event(self, status: NetworkStatus, event_type: NetworkEventType) -> None:
        if event_type != NetworkEventType.RECONNECTED or not self.options.auto_sync_on_reconnect:
            return
        if self._auto_sync_task is not None and not self._auto_sync_task.done():
            return
        logger.info(
            f"Network reconnected, scheduling sync in {self.options.reconnect_delay_seconds}s"
        )
        self._auto_sync_task = asyncio.get_running_loop().create_task(self._delayed_sync())

    async def _delayed_sync(self) -> None:
        await asyncio.sleep(self.options.reconnect_delay_seconds)
        await self.sync_all()

    # =========================================================================
    # Queue executor
    # =========================================================================

    async def execute_operation(self, operation: OperationQueueItem) -> None:
        """Replay one queued operation against the remote backend.

        Raises:
            OfflineError: If the network is down
            InvalidTableError: If the operation targets an unsynced table
        """
        logger.info(
            f"Executing operation: {operation.id} "
            f"({operation.operation_type.value} on {operation.target_table})",
            extra={"operation_id": operation.id, "record_id": operation.record_id},
        )
        if not self.is_online():
            raise OfflineError("Cannot execute operation while offline")
        if operation.target_table not in SYNCABLE_TABLES:
            raise InvalidTableError(f"Invalid table name: {operation.target_table}")

        table = operation.target_table
        payload = dict(operation.payload or {})
        payload.setdefault("id", operation.record_id)

        if operation.operation_type == OperationType.DELETE:
            await self.remote.delete(table, operation.record_id)
            return
        if operation.operation_type not in (OperationType.INSERT, OperationType.UPDATE):
            raise SyncError(f"Unknown operation type: {operation.operation_type}")

        # The local copy may have moved on since this operation was queued
        local = await self._load_local(table, operation.record_id)
        if local is not None:
            payload.update(local)

        if operation.operation_type == OperationType.INSERT:
            await self.remote.upsert(table, _remote_payload(payload))
        else:
            await self._push_record(table, operation.record_id, payload)
        await self._mark_synced(table, operation.record_id, payload.get("updated_at"))

    async def _load_local(self, table: str, record_id: str) -> dict[str, Any] | None:
        if table == StoreName.STORIES.value:
            record = await self.store.get_story(record_id)
        else:
            record = await self.store.get_story_segment(record_id)
        return record.model_dump(mode="json") if record is not None else None

    async def _push_record(self, table: str, record_id: str, data: dict[str, Any]) -> None:
        server_data = await self.remote.fetch(table, record_id)
        if server_data is not None:
            resolved = await self._resolve_conflict(server_data, data, table, record_id)
            await self.remote.update(table, record_id, _remote_payload(resolved))
        else:
            await self.remote.upsert(table, _remote_payload(data))

    async def _mark_synced(self, table: str, record_id: str, pushed_updated_at: str | None) -> None:
        """Flag the local record synced unless it was edited after the pushed version."""
        if table == StoreName.STORIES.value:
            story = await self.store.get_story(record_id)
            if story is not None and story.updated_at == pushed_updated_at:
                await self.store.update_story(
                    story.model_copy(update={"is_synced": True}), touch=False
                )
        elif table == StoreName.STORY_SEGMENTS.value:
            segment = await self.store.get_story_segment(record_id)
            if segment is not None and segment.updated_at == pushed_updated_at:
                await self.store.update_story_segment(
                    segment.model_copy(update={"is_synced": True}), touch=False
                )

    # =========================================================================
    # Conflict resolution
    # =========================================================================

    async def _resolve_conflict(
        self,
        server_data: dict[str, Any],
        client_data: dict[str, Any],
        table: str,
        record_id: str,
    ) -> dict[str, Any]:
        self._conflict_count += 1
        self._notify(
            SyncEventType.CONFLICT_DETECTED,
            {"table": table, "record_id": record_id, "server_data": server_data, "client_data": client_data},
        )

        resolver = self._conflict_handlers.get(table)
        if resolver is not None:
            resolved = await resolver(server_data, client_data, table, record_id)
            strategy = "custom"
        else:
            strategy = self.options.conflict_strategy
            if strategy == ConflictStrategy.SERVER_WINS:
                resolved = dict(server_data)
            elif strategy == ConflictStrategy.TIMESTAMP_BASED:
                # Ties go to the client
                if parse_iso_timestamp(client_data.get("updated_at")) >= parse_iso_timestamp(
                    server_data.get("updated_at")
                ):
                    resolved = dict(client_data)
                else:
                    resolved = dict(server_data)
            else:
                # Manual resolution has no UI here; the local edit wins.
                resolved = dict(client_data)
                strategy = ConflictStrategy.CLIENT_WINS
            strategy = strategy.value

        self._notify(
            SyncEventType.CONFLICT_RESOLVED,
            {"table": table, "record_id": record_id, "resolved_data": resolved, "strategy": strategy},
        )
        return resolved

    # =========================================================================
    # Full sync
    # =========================================================================

    async def sync_all(self) -> SyncResult:
        """Drain the queue, then push unsynced stories and segments."""
        if self._syncing:
            logger.info("Sync already in progress")
            return SyncResult(success=False, errors=["Sync already in progress"])
        if not self.is_online():
            logger.info("Cannot sync while offline")
            return SyncResult(success=False, errors=["Cannot sync while offline"])

        self._syncing = True
        self._notify(SyncEventType.SYNC_STARTED)
        conflicts_before = self._conflict_count
        result = SyncResult()

        try:
            for outcome in await self.queue.process_queue():
                if outcome.success:
                    result.processed_operations += 1
                else:
                    result.failed_operations += 1
                    result.errors.append(f"operation {outcome.operation_id}: {outcome.error}")

            stories = (await self.store.get_unsynced_stories())[: self.options.max_batch_size]
            logger.info(f"Found {len(stories)} unsynced stories")
            for story in stories:
                try:
                    await self._push_record(
                        StoreName.STORIES.value, story.id, story.model_dump(mode="json")
                    )
                    await self._mark_synced(StoreName.STORIES.value, story.id, story.updated_at)
                    result.synced_stories += 1
                except Exception as exc:  # noqa: BLE001
                    logger.error(f"Error syncing story {story.id}: {exc}", extra={"story_id": story.id})
                    result.errors.append(f"story {story.id}: {exc}")

            segments = (await self.store.get_unsynced_story_segments())[: self.options.max_batch_size]
            logger.info(f"Found {len(segments)} unsynced story segments")
            for segment in segments:
                try:
                    await self._push_record(
                        StoreName.STORY_SEGMENTS.value, segment.id, segment.model_dump(mode="json")
                    )
                    await self._mark_synced(
                        StoreName.STORY_SEGMENTS.value, segment.id, segment.updated_at
                    )
                    result.synced_segments += 1
                except Exception as exc:  # noqa: BLE001
                    logger.error(f"Error syncing story segment {segment.id}: {exc}")
                    result.errors.append(f"segment {segment.id}: {exc}")

            self.last_sync_time = utcnow_iso()
            result.conflicts = self._conflict_count - conflicts_before
            result.success = not result.errors
            self._notify(SyncEventType.SYNC_COMPLETED, result)
        except Exception as exc:
            logger.exception("Error during sync")
            result.success = False
            result.conflicts = self._conflict_count - conflicts_before
            result.errors.append(str(exc))
            self._notify(SyncEventType.SYNC_FAILED, {"error": str(exc), "result": result})
        finally:
            self._syncing = False

        return result
