"""Offline store schema.

Revision ID: 0001
Revises:
Create Date: 2025-01-15

Creates the on-device tables:
- stories: Local copies of stories
- story_segments: Local copies of story segments
- operation_queue: Remote mutations waiting to be replayed

Each table keeps the full record in a JSON ``data`` column; indexed fields
are copied into their own columns.
"""

from collections.abc import Sequence

import sqlalchemy as sa

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "0001"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    """Create the local tables and their secondary indexes."""
    # Create stories table
    op.create_table(
        "stories",
        sa.Column("id", sa.String(length=255), nullable=False),
        sa.Column("user_id", sa.String(length=255), nullable=True),
        sa.Column("is_completed", sa.Boolean(), nullable=True),
        sa.Column("is_synced", sa.Boolean(), nullable=True),
        sa.Column("updated_at", sa.String(length=64), nullable=True),
        sa.Column("data", sa.JSON(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_stories_user_id", "stories", ["user_id"])
    op.create_index("ix_stories_is_completed", "stories", ["is_completed"])
    op.create_index("ix_stories_is_synced", "stories", ["is_synced"])
    op.create_index("ix_stories_updated_at", "stories", ["updated_at"])

    # Create story_segments table
    op.create_table(
        "story_segments",
        sa.Column("id", sa.String(length=255), nullable=False),
        sa.Column("story_id", sa.String(length=255), nullable=True),
        sa.Column("is_end", sa.Boolean(), nullable=True),
        sa.Column("is_synced", sa.Boolean(), nullable=True),
        sa.Column("sequence_number", sa.Integer(), nullable=True),
        sa.Column("data", sa.JSON(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_story_segments_story_id", "story_segments", ["story_id"])
    op.create_index("ix_story_segments_is_end", "story_segments", ["is_end"])
    op.create_index("ix_story_segments_is_synced", "story_segments", ["is_synced"])
    op.create_index("ix_story_segments_sequence_number", "story_segments", ["sequence_number"])

    # Create operation_queue table
    op.create_table(
        "operation_queue",
        sa.Column("id", sa.String(length=255), nullable=False),
        sa.Column("status", sa.String(length=20), nullable=True),
        sa.Column("target_table", sa.String(length=100), nullable=True),
        sa.Column("created_at", sa.String(length=64), nullable=True),
        sa.Column("record_id", sa.String(length=255), nullable=True),
        sa.Column("data", sa.JSON(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_operation_queue_status", "operation_queue", ["status"])
    op.create_index("ix_operation_queue_target_table", "operation_queue", ["target_table"])
    op.create_index("ix_operation_queue_created_at", "operation_queue", ["created_at"])
    op.create_index("ix_operation_queue_record_id", "operation_queue", ["record_id"])


def downgrade() -> None:
    """Drop the local tables and their indexes."""
    op.drop_index("ix_operation_queue_record_id", table_name="operation_queue")
    op.drop_index("ix_operation_queue_created_at", table_name="operation_queue")
    op.drop_index("ix_operation_queue_target_table", table_name="operation_queue")
    op.drop_index("ix_operation_queue_status", table_name="operation_queue")
    op.drop_table("operation_queue")

    op.drop_index("ix_story_segments_sequence_number", table_name="story_segments")
    op.drop_index("ix_story_segments_is_synced", table_name="story_segments")
    op.drop_index("ix_story_segments_is_end", table_name="story_segments")
    op.drop_index("ix_story_segments_story_id", table_name="story_segments")
    op.drop_table("story_segments")

    op.drop_index("ix_stories_updated_at", table_name="stories")
    op.drop_index("ix_stories_is_synced", table_name="stories")
    op.drop_index("ix_stories_is_completed", table_name="stories")
    op.drop_index("ix_stories_user_id", table_name="stories")
    op.drop_table("stories")
