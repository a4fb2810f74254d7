"""Typed views of offline records.

Records are stored as plain JSON documents; these pydantic models give the
story, segment and queue helpers a typed shape. Unknown attributes are kept
so that records written by newer clients survive a round trip.
"""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from .offline import OperationStatus, OperationType


class OfflineStory(BaseModel):
    """Local copy of a story."""

    model_config = ConfigDict(extra="allow")

    id: str
    user_id: str | None = None
    title: str | None = None
    description: str | None = None
    story_mode: str | None = None
    target_age: str | int | None = None
    is_completed: bool = False
    is_synced: bool = False
    updated_at: str | None = None


class OfflineStorySegment(BaseModel):
    """Local copy of one generated story segment."""

    model_config = ConfigDict(extra="allow")

    id: str
    story_id: str
    sequence_number: int = Field(..., ge=0)
    segment_text: str = ""
    choices: list[str] = Field(default_factory=list)
    image_url: str | None = None
    audio_url: str | None = None
    is_end: bool = False
    is_synced: bool = False
    updated_at: str | None = None


class OperationQueueItem(BaseModel):
    """Remote mutation waiting to be replayed."""

    id: str
    operation_type: OperationType
    target_table: str
    record_id: str
    payload: Any = None
    created_at: str
    retry_count: int = Field(default=0, ge=0)
    status: OperationStatus = OperationStatus.PENDING
    error: str | None = None
    next_attempt_at: str | None = None
