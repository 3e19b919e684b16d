"""SurveyLog ORM model — append-only per-session event log.

Each row records one notable event for a survey session: when it
started, why a submission was blocked, which lookups failed.  ``zone``
tells where it happened (SURVEY for form flow, DATABASE for queries) and
``type`` carries the severity (INFO / WARN / ERROR).
"""

from datetime import datetime, timezone

from sqlalchemy import BigInteger, Identity, Index, Text
from sqlalchemy.dialects.postgresql import TIMESTAMP
from sqlalchemy.orm import Mapped, mapped_column

from survey_db.models.base import Base


class SurveyLog(Base):
    """One logged event for a (survey_name, session_id) pair."""

    __tablename__ = "survey_logs"

    id: Mapped[int] = mapped_column(BigInteger, Identity(), primary_key=True)

    # --- Identity ---
    session_id: Mapped[str] = mapped_column(Text, nullable=False)
    survey_name: Mapped[str] = mapped_column(Text, nullable=False)

    # --- Event ---
    # When the event was logged, not when it was written
    timestamp: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )
    zone: Mapped[str] = mapped_column(Text, nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    type: Mapped[str] = mapped_column(Text, nullable=False)

    __table_args__ = (
        Index("ix_logs_session", "survey_name", "session_id"),
        Index("ix_logs_timestamp", "timestamp"),
    )

    def __repr__(self) -> str:
        return (
            f"<SurveyLog(session={self.session_id!r}, zone={self.zone!r}, "
            f"type={self.type!r})>"
        )
