"""Database models for the Tale Forge offline store.

SQLAlchemy tables for:
- Stories and story segments cached on the device
- The pending-operation queue

Plus pydantic views of the stored records.
"""

from .database import Base, close_engine, create_local_engine, create_tables
from .offline import (
    STORE_MODELS,
    OperationRecord,
    OperationStatus,
    OperationType,
    StoreName,
    StoryRecord,
    StorySegmentRecord,
)
from .schemas import OfflineStory, OfflineStorySegment, OperationQueueItem

__all__ = [
    # Database
    "Base",
    "create_local_engine",
    "create_tables",
    "close_engine",
    # Tables
    "STORE_MODELS",
    "StoreName",
    "StoryRecord",
    "StorySegmentRecord",
    "OperationRecord",
    "OperationType",
    "OperationStatus",
    # Records
    "OfflineStory",
    "OfflineStorySegment",
    "OperationQueueItem",
]
