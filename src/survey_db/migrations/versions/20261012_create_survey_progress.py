"""Create survey_progress table.

Holds one overwrite-in-place progress snapshot per (survey_name,
session_id).  Rows are deleted on completion/abandonment and purged by
age through ``survey-cleanup``.

Revision ID: 20261012_progress
Revises:
Create Date: 2026-10-12
"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import JSONB, TIMESTAMP, UUID

# revision identifiers, used by Alembic.
revision = "20261012_progress"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "survey_progress",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        # Identity
        sa.Column("survey_name", sa.Text, nullable=False),
        sa.Column("session_id", sa.Text, nullable=False),
        # Snapshot payload
        sa.Column(
            "field_values",
            JSONB,
            nullable=False,
            server_default=sa.text("'{}'::jsonb"),
        ),
        sa.Column(
            "dynamic_state",
            JSONB,
            nullable=False,
            server_default=sa.text("'{}'::jsonb"),
        ),
        # Timestamps
        sa.Column(
            "created_at",
            TIMESTAMP(timezone=True),
            nullable=False,
            server_default=sa.text("now()"),
        ),
        sa.Column(
            "updated_at",
            TIMESTAMP(timezone=True),
            nullable=False,
            server_default=sa.text("now()"),
        ),
        sa.UniqueConstraint("survey_name", "session_id", name="uq_survey_session"),
    )
    op.create_index("ix_progress_updated_at", "survey_progress", ["updated_at"])


def downgrade() -> None:
    op.drop_index("ix_progress_updated_at", table_name="survey_progress")
    op.drop_table("survey_progress")
