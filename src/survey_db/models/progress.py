"""SurveyProgress ORM model — one row per in-progress survey session.

A row holds the latest progress snapshot for a browser session: the
answered field values plus the derived dynamic-field state (parent value,
dependent fields, choice hints).  Each save overwrites the row; the row
is deleted when the survey is completed or abandoned, and rows older
than the retention window are purged by ``survey-cleanup``.
"""

import uuid
from datetime import datetime, timezone

from sqlalchemy import Index, Text, UniqueConstraint, text
from sqlalchemy.dialects.postgresql import JSONB, TIMESTAMP, UUID
from sqlalchemy.orm import Mapped, mapped_column

from survey_db.models.base import Base


class SurveyProgress(Base):
    """Latest saved progress for a (survey_name, session_id) pair."""

    __tablename__ = "survey_progress"

    # --- Primary key ---
    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )

    # --- Identity ---
    # Survey the snapshot belongs to (one deployment may host several)
    survey_name: Mapped[str] = mapped_column(Text, nullable=False)
    # Client-held session key (cookie / local store)
    session_id: Mapped[str] = mapped_column(Text, nullable=False)

    # --- Snapshot payload ---
    # Flat {field_name: value} map of answers entered so far
    field_values: Mapped[dict] = mapped_column(
        JSONB,
        nullable=False,
        server_default=text("'{}'::jsonb"),
    )
    # {"parent_fields": {...}, "child_choices": {...}}, display hints only;
    # dependent choices are always re-resolved on restore.
    dynamic_state: Mapped[dict] = mapped_column(
        JSONB,
        nullable=False,
        server_default=text("'{}'::jsonb"),
    )

    # --- Timestamps ---
    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )
    updated_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    __table_args__ = (
        UniqueConstraint("survey_name", "session_id", name="uq_survey_session"),
        # Retention purge scans by age
        Index("ix_progress_updated_at", "updated_at"),
    )

    def __repr__(self) -> str:
        return (
            f"<SurveyProgress(survey={self.survey_name!r}, "
            f"session={self.session_id!r}, updated_at={self.updated_at!s})>"
        )
