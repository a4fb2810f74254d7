"""Tests for local tables and record schemas."""

import pytest
from pydantic import ValidationError

from taleforge.models import (
    STORE_MODELS,
    Base,
    OfflineStory,
    OfflineStorySegment,
    OperationQueueItem,
    OperationRecord,
    OperationStatus,
    OperationType,
    StoreName,
    StoryRecord,
    StorySegmentRecord,
)


class TestModelImports:
    """Test that all tables import correctly."""

    def test_base_metadata_tables(self) -> None:
        """Test that all local tables are registered in Base.metadata."""
        expected_tables = {"stories", "story_segments", "operation_queue"}
        assert set(Base.metadata.tables.keys()) == expected_tables

    def test_store_models_cover_every_table(self) -> None:
        """Test that every StoreName maps to the table of the same name."""
        assert set(STORE_MODELS) == set(StoreName)
        for name, model in STORE_MODELS.items():
            assert model.__tablename__ == name.value

    def test_story_indexes(self) -> None:
        """Test StoryRecord indexes the fields stories are looked up by."""
        assert StoryRecord.index_fields == ("user_id", "is_completed", "is_synced", "updated_at")
        table = Base.metadata.tables["stories"]
        indexed = {col.name for index in table.indexes for col in index.columns}
        assert set(StoryRecord.index_fields) <= indexed

    def test_segment_indexes(self) -> None:
        """Test StorySegmentRecord indexes."""
        assert StorySegmentRecord.index_fields == ("story_id", "is_end", "is_synced", "sequence_number")

    def test_operation_indexes(self) -> None:
        """Test OperationRecord indexes status, table, creation time and record id."""
        assert {"status", "target_table", "created_at", "record_id"} == set(
            OperationRecord.index_fields
        )


class TestEnums:
    """Test enum definitions."""

    def test_operation_type_values(self) -> None:
        assert OperationType.INSERT.value == "insert"
        assert OperationType.UPDATE.value == "update"
        assert OperationType.DELETE.value == "delete"

    def test_operation_status_values(self) -> None:
        assert OperationStatus.PENDING.value == "pending"
        assert OperationStatus.IN_PROGRESS.value == "in_progress"
        assert OperationStatus.COMPLETED.value == "completed"
        assert OperationStatus.FAILED.value == "failed"
        assert OperationStatus.SCHEDULED.value == "scheduled"

    def test_operation_status_is_str_enum(self) -> None:
        """Test OperationStatus inherits from str for JSON serialization."""
        assert isinstance(OperationStatus.PENDING, str)
        assert OperationStatus.PENDING.value == "pending"


class TestRecordSchemas:
    """Test pydantic views of stored records."""

    def test_story_defaults(self) -> None:
        story = OfflineStory(id="abc123")
        assert story.is_synced is False
        assert story.is_completed is False
        assert story.user_id is None

    def test_story_keeps_unknown_fields(self) -> None:
        """Test fields written by other clients survive a round trip."""
        story = OfflineStory.model_validate({"id": "abc123", "genre": "fantasy"})
        assert story.model_dump()["genre"] == "fantasy"

    def test_segment_rejects_negative_sequence_number(self) -> None:
        with pytest.raises(ValidationError):
            OfflineStorySegment(id="seg-1", story_id="abc123", sequence_number=-1)

    def test_queue_item_serializes_enums_as_strings(self) -> None:
        item = OperationQueueItem(
            id="op-1",
            operation_type=OperationType.INSERT,
            target_table="stories",
            record_id="abc123",
            created_at="2024-01-01T00:00:00.000000Z",
        )
        data = item.model_dump(mode="json")
        assert data["operation_type"] == "insert"
        assert data["status"] == "pending"
        assert data["retry_count"] == 0
