"""Async CRUD repositories for SurveyProgress and SurveyLog.

All public methods accept an ``AsyncSession`` so the caller controls
transaction boundaries.  Methods call ``flush()`` but never ``commit()``.

The repositories deliberately avoid business logic: snapshot shape and
retention belong to ``survey_fields.progress``, log batching to
``survey_fields.session_log``.
"""

import uuid
from datetime import datetime, timedelta, timezone
from typing import Any

from sqlalchemy import delete, select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.ext.asyncio import AsyncSession

from survey_db.models.log import SurveyLog
from survey_db.models.progress import SurveyProgress


def progress_upsert_stmt(
    *,
    survey_name: str,
    session_id: str,
    field_values: dict[str, Any],
    dynamic_state: dict[str, Any],
):
    """INSERT ... ON CONFLICT (survey_name, session_id) DO UPDATE, returning the row."""
    now = datetime.now(timezone.utc)
    stmt = pg_insert(SurveyProgress).values(
        id=uuid.uuid4(),
        survey_name=survey_name,
        session_id=session_id,
        field_values=dict(field_values),
        dynamic_state=dict(dynamic_state),
        created_at=now,
        updated_at=now,
    )
    return stmt.on_conflict_do_update(
        constraint="uq_survey_session",
        set_={
            "field_values": stmt.excluded.field_values,
            "dynamic_state": stmt.excluded.dynamic_state,
            "updated_at": stmt.excluded.updated_at,
        },
    ).returning(SurveyProgress)


class ProgressRepository:
    """Async read/write operations on the ``survey_progress`` table."""

    # ------------------------------------------------------------------
    # Read
    # ------------------------------------------------------------------

    async def get(
        self, db: AsyncSession, survey_name: str, session_id: str
    ) -> SurveyProgress | None:
        """Fetch the snapshot row for a (survey_name, session_id) pair."""
        stmt = select(SurveyProgress).where(
            SurveyProgress.survey_name == survey_name,
            SurveyProgress.session_id == session_id,
        )
        result = await db.execute(stmt)
        return result.scalar_one_or_none()

    # ------------------------------------------------------------------
    # Write
    # ------------------------------------------------------------------

    async def upsert(
        self,
        db: AsyncSession,
        *,
        survey_name: str,
        session_id: str,
        field_values: dict[str, Any],
        dynamic_state: dict[str, Any],
    ) -> SurveyProgress:
        """Overwrite the session's snapshot, creating the row if needed.

        Snapshots are replaced wholesale, never merged: the latest save is
        the only one that matters.  Concurrent saves for one session
        resolve through ``ON CONFLICT`` instead of failing the unique key.
        """
        stmt = progress_upsert_stmt(
            survey_name=survey_name,
            session_id=session_id,
            field_values=field_values,
            dynamic_state=dynamic_state,
        )
        result = await db.execute(
            stmt, execution_options={"populate_existing": True}
        )
        return result.scalar_one()

    async def delete(
        self, db: AsyncSession, survey_name: str, session_id: str
    ) -> bool:
        """Delete the snapshot row.  Returns True if a row was removed."""
        stmt = delete(SurveyProgress).where(
            SurveyProgress.survey_name == survey_name,
            SurveyProgress.session_id == session_id,
        )
        result = await db.execute(stmt)
        await db.flush()
        return (result.rowcount or 0) > 0

    # ------------------------------------------------------------------
    # Bulk retention
    # ------------------------------------------------------------------

    async def purge_older_than(
        self,
        db: AsyncSession,
        *,
        older_than_days: int,
        survey_name: str | None = None,
    ) -> int:
        """Delete snapshots not updated within ``older_than_days`` days.

        ``older_than_days=0`` removes every snapshot (optionally scoped to
        one survey).  Returns the number of rows deleted.
        """
        stmt = delete(SurveyProgress)
        if older_than_days > 0:
            cutoff = datetime.now(timezone.utc) - timedelta(days=older_than_days)
            stmt = stmt.where(SurveyProgress.updated_at < cutoff)
        if survey_name is not None:
            stmt = stmt.where(SurveyProgress.survey_name == survey_name)
        result = await db.execute(stmt)
        await db.flush()
        return result.rowcount or 0


class LogRepository:
    """Append-only writes to the ``survey_logs`` table."""

    async def add_entries(
        self, db: AsyncSession, entries: list[dict[str, Any]]
    ) -> int:
        """Insert a batch of log entries.  Returns the number written.

        Each entry carries ``session_id``, ``survey_name``, ``timestamp``,
        ``zone``, ``message`` and ``type``.
        """
        if not entries:
            return 0
        db.add_all([SurveyLog(**entry) for entry in entries])
        await db.flush()
        return len(entries)

    async def for_session(
        self, db: AsyncSession, survey_name: str, session_id: str
    ) -> list[SurveyLog]:
        """All entries of one session, oldest first."""
        stmt = (
            select(SurveyLog)
            .where(
                SurveyLog.survey_name == survey_name,
                SurveyLog.session_id == session_id,
            )
            .order_by(SurveyLog.timestamp, SurveyLog.id)
        )
        result = await db.execute(stmt)
        return list(result.scalars().all())
