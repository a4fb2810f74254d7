"""On-device tables for offline stories.

Each table keeps the full record as a JSON document in ``data`` and copies
the indexed fields into real columns, so lookups by secondary index are
plain SQL while records round-trip exactly as they were written.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, ClassVar

from sqlalchemy import JSON, Boolean, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from .database import Base


class StoreName(str, Enum):
    """Names of the local tables."""

    STORIES = "stories"
    STORY_SEGMENTS = "story_segments"
    OPERATION_QUEUE = "operation_queue"


class OperationType(str, Enum):
    """Kind of remote mutation recorded in the queue."""

    INSERT = "insert"
    UPDATE = "update"
    DELETE = "delete"


class OperationStatus(str, Enum):
    """Lifecycle status of a queued operation."""

    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"
    SCHEDULED = "scheduled"


class StoryRecord(Base):
    """Local copy of a story."""

    __tablename__ = "stories"

    index_fields: ClassVar[tuple[str, ...]] = (
        "user_id",
        "is_completed",
        "is_synced",
        "updated_at",
    )

    id: Mapped[str] = mapped_column(String(255), primary_key=True)
    user_id: Mapped[str | None] = mapped_column(String(255), nullable=True, index=True)
    is_completed: Mapped[bool | None] = mapped_column(Boolean, nullable=True, index=True)
    is_synced: Mapped[bool | None] = mapped_column(Boolean, nullable=True, index=True)
    updated_at: Mapped[str | None] = mapped_column(String(64), nullable=True, index=True)
    data: Mapped[dict[str, Any]] = mapped_column(JSON, default=dict)

    def __repr__(self) -> str:
        return f"<StoryRecord(id='{self.id}', is_synced={self.is_synced})>"


class StorySegmentRecord(Base):
    """Local copy of a story segment.

    ``story_id`` is a back-reference only; segments may point at stories
    that exist remotely but not locally.
    """

    __tablename__ = "story_segments"

    index_fields: ClassVar[tuple[str, ...]] = (
        "story_id",
        "is_end",
        "is_synced",
        "sequence_number",
    )

    id: Mapped[str] = mapped_column(String(255), primary_key=True)
    story_id: Mapped[str | None] = mapped_column(String(255), nullable=True, index=True)
    is_end: Mapped[bool | None] = mapped_column(Boolean, nullable=True, index=True)
    is_synced: Mapped[bool | None] = mapped_column(Boolean, nullable=True, index=True)
    sequence_number: Mapped[int | None] = mapped_column(Integer, nullable=True, index=True)
    data: Mapped[dict[str, Any]] = mapped_column(JSON, default=dict)

    def __repr__(self) -> str:
        return (
            f"<StorySegmentRecord(id='{self.id}', story_id='{self.story_id}', "
            f"sequence_number={self.sequence_number})>"
        )


class OperationRecord(Base):
    """Pending remote mutation."""

    __tablename__ = "operation_queue"

    index_fields: ClassVar[tuple[str, ...]] = (
        "status",
        "target_table",
        "created_at",
        "record_id",
    )

    id: Mapped[str] = mapped_column(String(255), primary_key=True)
    status: Mapped[str | None] = mapped_column(String(20), nullable=True, index=True)
    target_table: Mapped[str | None] = mapped_column(String(100), nullable=True, index=True)
    created_at: Mapped[str | None] = mapped_column(String(64), nullable=True, index=True)
    record_id: Mapped[str | None] = mapped_column(String(255), nullable=True, index=True)
    data: Mapped[dict[str, Any]] = mapped_column(JSON, default=dict)

    def __repr__(self) -> str:
        return f"<OperationRecord(id='{self.id}', status='{self.status}')>"


STORE_MODELS: dict[StoreName, type[Base]] = {
    StoreName.STORIES: StoryRecord,
    StoreName.STORY_SEGMENTS: StorySegmentRecord,
    StoreName.OPERATION_QUEUE: OperationRecord,
}
