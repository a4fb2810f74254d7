"""Local Store - durable on-device tables for offline stories.

Stores stories, story segments and queued operations in a local SQLite
database so in-progress stories survive restarts and network loss.

Architecture:
    caller → LocalStore (this) → SQLite (aiosqlite) ← SyncService

Every operation runs in its own transaction. Reads for a missing id return
None; writes raise a LocalStoreError subclass when the database refuses them.
No network calls originate here.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

from pydantic import BaseModel
from pydantic_core import to_jsonable_python
from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError, OperationalError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from taleforge.models.database import close_engine, create_local_engine, create_tables
from taleforge.models.offline import (
    STORE_MODELS,
    OperationRecord,
    OperationStatus,
    StoreName,
    StoryRecord,
    StorySegmentRecord,
)
from taleforge.models.schemas import OfflineStory, OfflineStorySegment, OperationQueueItem

logger = logging.getLogger(__name__)

Table = StoreName | str


class LocalStoreError(Exception):
    """Base exception for local store errors."""
    pass


class StorageUnavailableError(LocalStoreError):
    """The device database cannot be opened or written (disabled, full, locked)."""
    pass


class UnknownTableError(LocalStoreError):
    """Table name is not one of the local tables."""
    pass


class UnknownIndexError(LocalStoreError):
    """Index name is not declared for the table."""
    pass


class DuplicateKeyError(LocalStoreError):
    """A record with the same id already exists."""

    def __init__(self, table: str, record_id: str):
        self.table = table
        self.record_id = record_id
        super().__init__(f"Record '{record_id}' already exists in {table}")


class RecordNotFoundError(LocalStoreError):
    """Strict update targeted a record that does not exist."""

    def __init__(self, table: str, record_id: str):
        self.table = table
        self.record_id = record_id
        super().__init__(f"Record '{record_id}' not found in {table}")


def utcnow_iso() -> str:
    """Current UTC time as an ISO-8601 string with millisecond precision."""
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def parse_iso_timestamp(value: object) -> float:
    """Seconds since the epoch for an ISO-8601 string; 0.0 when missing or malformed."""
    if not value:
        return 0.0
    try:
        return datetime.fromisoformat(str(value).replace("Z", "+00:00")).timestamp()
    except ValueError:
        return 0.0


@dataclass
class CascadeResult:
    """Counts of records removed by a cascading story delete."""

    story_id: str
    stories: int = 0
    segments: int = 0
    operations: int = 0

    @property
    def total(self) -> int:
        return self.stories + self.segments + self.operations


def _as_dict(item: BaseModel | dict[str, Any]) -> dict[str, Any]:
    if isinstance(item, BaseModel):
        return item.model_dump(mode="json")
    return dict(item)


def _payload_story_id(data: dict[str, Any]) -> str | None:
    payload = data.get("payload")
    if isinstance(payload, dict):
        return payload.get("story_id")
    return None


class LocalStore:
    """Durable, indexed storage of offline records.

    Usage:
        store = await LocalStore.open("sqlite+aiosqlite:///./offline.db")
        await store.add_story({"id": "abc123", "title": "The Brave Fox"})
        unsynced = await store.get_unsynced_stories()
        await store.close()
    """

    def __init__(self, engine: AsyncEngine, *, owns_engine: bool = False):
        """Initialize the store on an existing engine.

        Args:
            engine: Async engine whose tables already exist.
            owns_engine: Dispose the engine on close().
        """
        self.engine = engine
        self._owns_engine = owns_engine
        self._session_factory = async_sessionmaker(
            engine,
            class_=AsyncSession,
            expire_on_commit=False,
            autoflush=False,
        )

    @classmethod
    async def open(cls, database_url: str, **engine_kwargs: Any) -> LocalStore:
        """Open (and create if needed) the local database.

        Raises:
            StorageUnavailableError: If the database cannot be opened.
        """
        engine = create_local_engine(database_url, **engine_kwargs)
        try:
            await create_tables(engine)
        except (OperationalError, OSError) as exc:
            await engine.dispose()
            logger.error(f"Local store could not be opened: {exc}")
            raise StorageUnavailableError("Failed to open local store") from exc
        logger.info("Local store opened")
        return cls(engine, owns_engine=True)

    async def close(self) -> None:
        """Release the engine if this store created it."""
        if self._owns_engine:
            await close_engine(self.engine)
            logger.info("Local store closed")

    # =========================================================================
    # Plumbing
    # =========================================================================

    @staticmethod
    def _resolve(table: Table) -> tuple[StoreName, type]:
        try:
            name = StoreName(table)
        except ValueError:
            raise UnknownTableError(f"Unknown table '{table}'") from None
        return name, STORE_MODELS[name]

    @staticmethod
    def _normalize(item: BaseModel | dict[str, Any]) -> dict[str, Any]:
        data = to_jsonable_python(_as_dict(item))
        record_id = data.get("id")
        if not isinstance(record_id, str) or not record_id:
            raise ValueError("Records must have a non-empty string 'id'")
        return data

    @staticmethod
    def _build_row(model: type, data: dict[str, Any]) -> Any:
        columns = {field: data.get(field) for field in model.index_fields}
        return model(id=data["id"], data=data, **columns)

    @asynccontextmanager
    async def _transaction(self, action: str, table: StoreName) -> AsyncIterator[AsyncSession]:
        try:
            async with self._session_factory() as session:
                async with session.begin():
                    yield session
        except LocalStoreError:
            raise
        except (OperationalError, OSError) as exc:
            logger.error(
                f"Storage unavailable during {action} on {table.value}: {exc}",
                extra={"table": table.value},
            )
            raise StorageUnavailableError(f"Failed to {action} {table.value}") from exc
        except SQLAlchemyError as exc:
            logger.error(
                f"Storage error during {action} on {table.value}: {exc}",
                extra={"table": table.value},
            )
            raise LocalStoreError(f"Failed to {action} {table.value}") from exc

    # =========================================================================
    # Generic table operations
    # =========================================================================

    async def add_item(self, table: Table, item: BaseModel | dict[str, Any]) -> dict[str, Any]:
        """Insert a new record.

        Raises:
            DuplicateKeyError: If a record with the same id exists.
        """
        name, model = self._resolve(table)
        data = self._normalize(item)
        async with self._transaction("add item to", name) as session:
            if await session.get(model, data["id"]) is not None:
                raise DuplicateKeyError(name.value, data["id"])
            session.add(self._build_row(model, data))
            try:
                await session.flush()
            except IntegrityError as exc:
                raise DuplicateKeyError(name.value, data["id"]) from exc
        return data

    async def update_item(self, table: Table, item: BaseModel | dict[str, Any]) -> dict[str, Any]:
        """Insert or replace a record by id.

        Succeeds whether or not the id existed; use update_existing() when a
        missing record is a bug.
        """
        name, model = self._resolve(table)
        data = self._normalize(item)
        async with self._transaction("update item in", name) as session:
            await session.merge(self._build_row(model, data))
        return data

    upsert = update_item

    async def update_existing(self, table: Table, item: BaseModel | dict[str, Any]) -> dict[str, Any]:
        """Replace a record that must already exist.

        Raises:
            RecordNotFoundError: If the id is not in the table.
        """
        name, model = self._resolve(table)
        data = self._normalize(item)
        async with self._transaction("update item in", name) as session:
            row = await session.get(model, data["id"])
            if row is None:
                raise RecordNotFoundError(name.value, data["id"])
            for field in model.index_fields:
                setattr(row, field, data.get(field))
            row.data = data
        return data

    async def get_item(self, table: Table, record_id: str) -> dict[str, Any] | None:
        """Return the record, or None when it does not exist."""
        name, model = self._resolve(table)
        async with self._transaction("get item from", name) as session:
            row = await session.get(model, record_id)
            return dict(row.data) if row is not None else None

    async def delete_item(self, table: Table, record_id: str) -> None:
        """Remove a record. Deleting a missing id is not an error."""
        name, model = self._resolve(table)
        async with self._transaction("delete item from", name) as session:
            await session.execute(delete(model).where(model.id == record_id))

    async def get_all_items(self, table: Table) -> list[dict[str, Any]]:
        """Return every record in the table."""
        name, model = self._resolve(table)
        async with self._transaction("get all items from", name) as session:
            result = await session.execute(select(model).order_by(model.id))
            return [dict(row.data) for row in result.scalars()]

    async def query_by_index(self, table: Table, index_name: str, value: Any) -> list[dict[str, Any]]:
        """Return records whose indexed field equals value.

        Records that do not carry the field at all are not indexed and never
        match, not even for value=None.

        Raises:
            UnknownIndexError: If the table has no such index.
        """
        name, model = self._resolve(table)
        if index_name not in model.index_fields:
            raise UnknownIndexError(f"Table {name.value} has no index '{index_name}'")
        column = getattr(model, index_name)
        async with self._transaction("query index on", name) as session:
            result = await session.execute(
                select(model).where(column == value).order_by(model.id)
            )
            return [
                dict(row.data) for row in result.scalars() if index_name in row.data
            ]

    async def clear_store(self, table: Table) -> None:
        """Remove all records from a table."""
        name, model = self._resolve(table)
        async with self._transaction("clear", name) as session:
            await session.execute(delete(model))
        logger.info(f"Cleared local table {name.value}", extra={"table": name.value})

    # =========================================================================
    # Stories
    # =========================================================================

    async def add_story(self, story: OfflineStory | dict[str, Any]) -> OfflineStory:
        """Add a story, defaulting is_synced to False and stamping updated_at."""
        record = OfflineStory.model_validate({**_as_dict(story), "updated_at": utcnow_iso()})
        return OfflineStory.model_validate(await self.add_item(StoreName.STORIES, record))

    async def update_story(
        self, story: OfflineStory | dict[str, Any], *, touch: bool = True
    ) -> OfflineStory:
        """Upsert a story, refreshing its updated_at unless touch is False."""
        data = _as_dict(story)
        if touch or not data.get("updated_at"):
            data["updated_at"] = utcnow_iso()
        record = OfflineStory.model_validate(data)
        return OfflineStory.model_validate(await self.update_item(StoreName.STORIES, record))

    async def get_story(self, story_id: str) -> OfflineStory | None:
        data = await self.get_item(StoreName.STORIES, story_id)
        return OfflineStory.model_validate(data) if data is not None else None

    async def delete_story(self, story_id: str) -> None:
        await self.delete_item(StoreName.STORIES, story_id)

    async def get_all_stories(self) -> list[OfflineStory]:
        return [OfflineStory.model_validate(d) for d in await self.get_all_items(StoreName.STORIES)]

    async def get_stories_by_user_id(self, user_id: str) -> list[OfflineStory]:
        rows = await self.query_by_index(StoreName.STORIES, "user_id", user_id)
        return [OfflineStory.model_validate(d) for d in rows]

    async def get_unsynced_stories(self) -> list[OfflineStory]:
        rows = await self.query_by_index(StoreName.STORIES, "is_synced", False)
        return [OfflineStory.model_validate(d) for d in rows]

    # =========================================================================
    # Story segments
    # =========================================================================

    async def add_story_segment(
        self, segment: OfflineStorySegment | dict[str, Any]
    ) -> OfflineStorySegment:
        """Add a segment, stamping updated_at."""
        record = OfflineStorySegment.model_validate({**_as_dict(segment), "updated_at": utcnow_iso()})
        return OfflineStorySegment.model_validate(
            await self.add_item(StoreName.STORY_SEGMENTS, record)
        )

    async def update_story_segment(
        self, segment: OfflineStorySegment | dict[str, Any], *, touch: bool = True
    ) -> OfflineStorySegment:
        """Upsert a segment, refreshing its updated_at unless touch is False."""
        data = _as_dict(segment)
        if touch or not data.get("updated_at"):
            data["updated_at"] = utcnow_iso()
        record = OfflineStorySegment.model_validate(data)
        return OfflineStorySegment.model_validate(
            await self.update_item(StoreName.STORY_SEGMENTS, record)
        )

    async def get_story_segment(self, segment_id: str) -> OfflineStorySegment | None:
        data = await self.get_item(StoreName.STORY_SEGMENTS, segment_id)
        return OfflineStorySegment.model_validate(data) if data is not None else None

    async def delete_story_segment(self, segment_id: str) -> None:
        await self.delete_item(StoreName.STORY_SEGMENTS, segment_id)

    async def get_story_segments_by_story_id(self, story_id: str) -> list[OfflineStorySegment]:
        """Segments of a story in presentation order."""
        rows = await self.query_by_index(StoreName.STORY_SEGMENTS, "story_id", story_id)
        segments = [OfflineStorySegment.model_validate(d) for d in rows]
        return sorted(segments, key=lambda s: s.sequence_number)

    async def get_unsynced_story_segments(self) -> list[OfflineStorySegment]:
        rows = await self.query_by_index(StoreName.STORY_SEGMENTS, "is_synced", False)
        return [OfflineStorySegment.model_validate(d) for d in rows]

    # =========================================================================
    # Operation queue records
    # =========================================================================

    async def add_operation(self, operation: OperationQueueItem) -> OperationQueueItem:
        return OperationQueueItem.model_validate(
            await self.add_item(StoreName.OPERATION_QUEUE, operation)
        )

    async def update_operation(self, operation: OperationQueueItem) -> OperationQueueItem:
        return OperationQueueItem.model_validate(
            await self.update_item(StoreName.OPERATION_QUEUE, operation)
        )

    async def get_operation(self, operation_id: str) -> OperationQueueItem | None:
        data = await self.get_item(StoreName.OPERATION_QUEUE, operation_id)
        return OperationQueueItem.model_validate(data) if data is not None else None

    async def delete_operation(self, operation_id: str) -> None:
        await self.delete_item(StoreName.OPERATION_QUEUE, operation_id)

    async def get_operations_by_status(self, status: OperationStatus) -> list[OperationQueueItem]:
        """Operations in a given status, oldest created_at first."""
        rows = await self.query_by_index(StoreName.OPERATION_QUEUE, "status", status.value)
        items = [OperationQueueItem.model_validate(d) for d in rows]
        return sorted(items, key=lambda op: op.created_at)

    async def get_pending_operations(self) -> list[OperationQueueItem]:
        return await self.get_operations_by_status(OperationStatus.PENDING)

    async def get_failed_operations(self) -> list[OperationQueueItem]:
        return await self.get_operations_by_status(OperationStatus.FAILED)

    async def get_operations_for_record(self, record_id: str) -> list[OperationQueueItem]:
        rows = await self.query_by_index(StoreName.OPERATION_QUEUE, "record_id", record_id)
        return [OperationQueueItem.model_validate(d) for d in rows]

    # =========================================================================
    # Cascades
    # =========================================================================

    async def delete_story_cascade(self, story_id: str) -> CascadeResult:
        """Delete a story, its segments and every queued operation touching them.

        Runs in one transaction: either everything referencing the story is
        gone afterwards or nothing changed.
        """
        async with self._transaction("cascade delete from", StoreName.STORIES) as session:
            segment_ids = list(
                (
                    await session.execute(
                        select(StorySegmentRecord.id).where(StorySegmentRecord.story_id == story_id)
                    )
                ).scalars()
            )
            referenced = {story_id, *segment_ids}

            operations = (await session.execute(select(OperationRecord))).scalars().all()
            doomed = [
                op.id
                for op in operations
                if op.record_id in referenced or _payload_story_id(op.data) == story_id
            ]
            if doomed:
                await session.execute(delete(OperationRecord).where(OperationRecord.id.in_(doomed)))

            segments = await session.execute(
                delete(StorySegmentRecord).where(StorySegmentRecord.story_id == story_id)
            )
            stories = await session.execute(delete(StoryRecord).where(StoryRecord.id == story_id))

        result = CascadeResult(
            story_id=story_id,
            stories=stories.rowcount or 0,
            segments=segments.rowcount or 0,
            operations=len(doomed),
        )
        logger.info(
            f"Deleted story {story_id} with {result.segments} segments and {result.operations} operations",
            extra={"story_id": story_id},
        )
        return result
