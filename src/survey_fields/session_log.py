"""SessionLogHandler — batches tagged log records into ``survey_logs``.

Records logged with a ``zone`` extra (``SURVEY``, ``DATABASE``) are
queued in memory and written in the background through the pool, at most
once per ``flush_interval``.  Everything else passes through untouched,
so ordinary module logging never reaches the table.

Usage::

    handler = SessionLogHandler(pool.session, survey_name="feedback")
    handler.install("survey_fields", "survey_server")
    logger.info("Started session", extra={"zone": ZONE_SURVEY, "session_id": sid})
    ...
    await handler.aclose()
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any

from survey_db.repository import LogRepository
from survey_fields.progress import SessionScope

logger = logging.getLogger(__name__)

# --- Zones ---
ZONE_SURVEY = "SURVEY"
ZONE_DATABASE = "DATABASE"
ZONE_DEFAULT = "DEFAULT"

# Session id recorded for events not tied to a browser session
SERVER_SESSION = "server"


def log_type(levelno: int) -> str:
    """Map a logging level to the stored INFO / WARN / ERROR type."""
    if levelno >= logging.ERROR:
        return "ERROR"
    if levelno >= logging.WARNING:
        return "WARN"
    return "INFO"


def log_extra(session_id: str | None, zone: str = ZONE_SURVEY) -> dict[str, str]:
    """``extra=`` mapping that routes a record into the session log."""
    return {"session_id": session_id or SERVER_SESSION, "zone": zone}


class SessionLogHandler(logging.Handler):
    """Queues zone-tagged records and flushes them to the database.

    Args:
        session_scope: zero-argument callable returning a transactional
            ``AsyncSession`` context (e.g. ``DatabasePool.session``)
        survey_name: written on every row
        flush_interval: seconds to gather records before a write
        max_queue: oldest entries are dropped beyond this many unwritten
    """

    def __init__(
        self,
        session_scope: SessionScope,
        *,
        survey_name: str,
        flush_interval: float = 1.0,
        max_queue: int = 10_000,
        level: int = logging.INFO,
    ) -> None:
        super().__init__(level)
        self._scope = session_scope
        self._repo = LogRepository()
        self.survey_name = survey_name
        self.flush_interval = flush_interval
        self.max_queue = max_queue
        self._queue: list[dict[str, Any]] = []
        self._task: asyncio.Task | None = None
        self._write_lock = asyncio.Lock()
        self._installed: list[logging.Logger] = []
        self.setFormatter(logging.Formatter("%(message)s"))

    # ------------------------------------------------------------------
    # logging.Handler
    # ------------------------------------------------------------------

    def emit(self, record: logging.LogRecord) -> None:
        zone = getattr(record, "zone", None)
        if zone is None:
            return
        try:
            entry = {
                "session_id": str(getattr(record, "session_id", None) or SERVER_SESSION),
                "survey_name": self.survey_name,
                "timestamp": datetime.fromtimestamp(record.created, timezone.utc),
                "zone": str(zone),
                "message": self.format(record),
                "type": log_type(record.levelno),
            }
        except Exception:
            self.handleError(record)
            return
        self._queue.append(entry)
        self._trim()
        self._schedule()

    def _trim(self) -> None:
        overflow = len(self._queue) - self.max_queue
        if overflow > 0:
            del self._queue[:overflow]

    def _schedule(self) -> None:
        if self._task is not None and not self._task.done():
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            # No loop (startup code, CLI); the next flush() writes it
            return
        self._task = loop.create_task(self._flush_later())

    async def _flush_later(self) -> None:
        await asyncio.sleep(self.flush_interval)
        await self.flush()

    # ------------------------------------------------------------------
    # Writing
    # ------------------------------------------------------------------

    @property
    def pending(self) -> int:
        """Entries logged but not yet written."""
        return len(self._queue)

    async def flush(self) -> int:
        """Write every queued entry.  Returns the number written.

        A failed write keeps the batch queued for the next flush.
        """
        async with self._write_lock:
            if not self._queue:
                return 0
            batch, self._queue = self._queue, []
            try:
                async with self._scope() as db:
                    written = await self._repo.add_entries(db, batch)
            except Exception:
                self._requeue(batch)
                logger.exception("Failed to write %d session log entries", len(batch))
                return 0
            except BaseException:
                self._requeue(batch)
                raise
        return written

    def _requeue(self, batch: list[dict[str, Any]]) -> None:
        self._queue[:0] = batch
        self._trim()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def install(self, *logger_names: str) -> None:
        """Attach to the named loggers (records propagate only once each)."""
        for name in logger_names:
            target = logging.getLogger(name)
            if self not in target.handlers:
                target.addHandler(self)
                self._installed.append(target)

    def uninstall(self) -> None:
        for target in self._installed:
            target.removeHandler(self)
        self._installed.clear()

    async def aclose(self) -> None:
        """Detach, cancel the pending timer and write what is queued."""
        self.uninstall()
        task, self._task = self._task, None
        if task is not None and not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        await self.flush()
        self.close()
