"""SessionProgressStore — server-side save/restore of in-progress answers.

Snapshots live in the ``survey_progress`` table, one row per
``(survey_name, session_id)``.  Each save overwrites the row; completing
or abandoning the survey deletes it; rows idle longer than the retention
window are treated as absent and removed.

Saving never blocks field resolution: :meth:`schedule_save` hands the
snapshot to a background task, and rapid successive saves for one
session collapse into a single write of the latest snapshot.
"""

from __future__ import annotations

import asyncio
import logging
from contextlib import AbstractAsyncContextManager
from datetime import datetime, timedelta, timezone
from typing import Callable

from sqlalchemy.ext.asyncio import AsyncSession

from survey_db.repository import ProgressRepository
from survey_fields.models.state import DynamicState, SessionSnapshot

logger = logging.getLogger(__name__)

SessionScope = Callable[[], AbstractAsyncContextManager[AsyncSession]]


class SessionProgressStore:
    """Persists :class:`SessionSnapshot` objects for one survey.

    Args:
        session_scope: zero-argument callable returning a transactional
            ``AsyncSession`` context (e.g. ``DatabasePool.session``)
        survey_name: scopes every row to this survey
        retention_days: snapshots older than this are expired; 0 keeps
            them forever
    """

    def __init__(
        self,
        session_scope: SessionScope,
        *,
        survey_name: str,
        retention_days: int = 7,
    ) -> None:
        self._scope = session_scope
        self._repo = ProgressRepository()
        self.survey_name = survey_name
        self.retention_days = retention_days
        # Latest unsaved snapshot and the task writing it, per session
        self._pending: dict[str, SessionSnapshot] = {}
        self._tasks: dict[str, asyncio.Task] = {}

    # ------------------------------------------------------------------
    # Save
    # ------------------------------------------------------------------

    async def save(self, session_id: str, snapshot: SessionSnapshot) -> None:
        """Overwrite the stored snapshot for ``session_id``."""
        async with self._scope() as db:
            await self._repo.upsert(
                db,
                survey_name=self.survey_name,
                session_id=session_id,
                field_values=snapshot.field_values,
                dynamic_state=snapshot.dynamic_state.model_dump(mode="json"),
            )
        logger.debug("Saved progress for session %s", session_id)

    def schedule_save(self, session_id: str, snapshot: SessionSnapshot) -> None:
        """Queue a background save; only the newest queued snapshot is written."""
        self._pending[session_id] = snapshot
        task = self._tasks.get(session_id)
        if task is None or task.done():
            self._tasks[session_id] = asyncio.create_task(self._drain(session_id))

    async def _drain(self, session_id: str) -> None:
        while session_id in self._pending:
            snapshot = self._pending.pop(session_id)
            try:
                await self.save(session_id, snapshot)
            except Exception:
                # Progress is best-effort; the next change saves again
                logger.exception("Failed to save progress for session %s", session_id)
        self._tasks.pop(session_id, None)

    async def flush(self, session_id: str | None = None) -> None:
        """Wait for queued saves (for one session, or all)."""
        if session_id is not None:
            tasks = [self._tasks[session_id]] if session_id in self._tasks else []
        else:
            tasks = list(self._tasks.values())
        if tasks:
            await asyncio.gather(*tasks)

    # ------------------------------------------------------------------
    # Restore / discard
    # ------------------------------------------------------------------

    async def restore(self, session_id: str) -> SessionSnapshot | None:
        """Latest snapshot, or None when missing or past retention."""
        await self.flush(session_id)
        async with self._scope() as db:
            row = await self._repo.get(db, self.survey_name, session_id)
            if row is None:
                return None
            if self._expired(row.updated_at):
                logger.info("Progress for session %s expired; discarding", session_id)
                await self._repo.delete(db, self.survey_name, session_id)
                return None
            return SessionSnapshot(
                field_values=dict(row.field_values or {}),
                dynamic_state=DynamicState.model_validate(row.dynamic_state or {}),
                saved_at=row.updated_at,
            )

    async def discard(self, session_id: str) -> bool:
        """Delete the snapshot after any in-flight save has landed."""
        self._pending.pop(session_id, None)
        await self.flush(session_id)
        async with self._scope() as db:
            removed = await self._repo.delete(db, self.survey_name, session_id)
        if removed:
            logger.debug("Discarded progress for session %s", session_id)
        return removed

    async def purge_expired(self) -> int:
        """Delete this survey's snapshots older than the retention window."""
        if self.retention_days <= 0:
            return 0
        async with self._scope() as db:
            count = await self._repo.purge_older_than(
                db,
                older_than_days=self.retention_days,
                survey_name=self.survey_name,
            )
        logger.info("Purged %d expired progress snapshots", count)
        return count

    def _expired(self, updated_at: datetime | None) -> bool:
        if self.retention_days <= 0 or updated_at is None:
            return False
        if updated_at.tzinfo is None:
            updated_at = updated_at.replace(tzinfo=timezone.utc)
        cutoff = datetime.now(timezone.utc) - timedelta(days=self.retention_days)
        return updated_at < cutoff
