"""Create survey_logs table.

Append-only event log written in batches by the server's session log
handler.  Rows are never updated.

Revision ID: 20261019_logs
Revises: 20261012_progress
Create Date: 2026-10-19
"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import TIMESTAMP

# revision identifiers, used by Alembic.
revision = "20261019_logs"
down_revision = "20261012_progress"
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "survey_logs",
        sa.Column("id", sa.BigInteger, sa.Identity(), primary_key=True),
        # Identity
        sa.Column("session_id", sa.Text, nullable=False),
        sa.Column("survey_name", sa.Text, nullable=False),
        # Event
        sa.Column(
            "timestamp",
            TIMESTAMP(timezone=True),
            nullable=False,
            server_default=sa.text("now()"),
        ),
        sa.Column("zone", sa.Text, nullable=False),
        sa.Column("message", sa.Text, nullable=False),
        sa.Column("type", sa.Text, nullable=False),
    )
    op.create_index("ix_logs_session", "survey_logs", ["survey_name", "session_id"])
    op.create_index("ix_logs_timestamp", "survey_logs", ["timestamp"])


def downgrade() -> None:
    op.drop_index("ix_logs_timestamp", table_name="survey_logs")
    op.drop_index("ix_logs_session", table_name="survey_logs")
    op.drop_table("survey_logs")
