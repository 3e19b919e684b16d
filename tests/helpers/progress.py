"""In-memory stand-ins for ProgressRepository and LogRepository.

Mutates ``MockProgressRow`` objects exactly like the real repository
mutates ORM rows, so SessionProgressStore and SessionLogHandler can be
tested without a DB.
"""

from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any
from unittest.mock import AsyncMock


@dataclass
class MockProgressRow:
    """In-memory stand-in for the SurveyProgress ORM model."""

    survey_name: str
    session_id: str
    field_values: dict = field(default_factory=dict)
    dynamic_state: dict = field(default_factory=dict)
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


class MockProgressRepository:
    """Dict-backed implementation of every ProgressRepository method."""

    def __init__(self) -> None:
        self.rows: dict[tuple[str, str], MockProgressRow] = {}
        self.upserts = 0

    async def get(self, db, survey_name, session_id):
        return self.rows.get((survey_name, session_id))

    async def upsert(self, db, *, survey_name, session_id, field_values, dynamic_state):
        self.upserts += 1
        row = self.rows.get((survey_name, session_id))
        if row is None:
            row = MockProgressRow(survey_name=survey_name, session_id=session_id)
            self.rows[(survey_name, session_id)] = row
        row.field_values = dict(field_values)
        row.dynamic_state = dict(dynamic_state)
        row.updated_at = datetime.now(timezone.utc)
        return row

    async def delete(self, db, survey_name, session_id):
        return self.rows.pop((survey_name, session_id), None) is not None

    async def purge_older_than(self, db, *, older_than_days, survey_name=None):
        cutoff = datetime.now(timezone.utc) - timedelta(days=older_than_days)
        doomed = [
            key for key, row in self.rows.items()
            if (older_than_days == 0 or row.updated_at < cutoff)
            and (survey_name is None or row.survey_name == survey_name)
        ]
        for key in doomed:
            del self.rows[key]
        return len(doomed)

    def age(self, survey_name: str, session_id: str, days: int) -> None:
        """Pretend the row was last saved ``days`` days ago."""
        row = self.rows[(survey_name, session_id)]
        row.updated_at = datetime.now(timezone.utc) - timedelta(days=days)


@asynccontextmanager
async def mock_session_scope():
    """Yields an AsyncMock in place of AsyncSession."""
    yield AsyncMock()


def make_store(survey_name: str = "feedback", retention_days: int = 7, **kwargs: Any):
    """SessionProgressStore wired to a fresh MockProgressRepository."""
    from survey_fields.progress import SessionProgressStore

    store = SessionProgressStore(
        mock_session_scope,
        survey_name=survey_name,
        retention_days=retention_days,
        **kwargs,
    )
    store._repo = MockProgressRepository()
    return store


class MockLogRepository:
    """List-backed LogRepository; ``fail`` makes the next writes raise."""

    def __init__(self) -> None:
        self.entries: list[dict] = []
        self.batches = 0
        self.fail = False

    async def add_entries(self, db, entries):
        if self.fail:
            raise ConnectionError("database went away")
        self.batches += 1
        self.entries.extend(dict(e) for e in entries)
        return len(entries)


def make_session_log(survey_name: str = "feedback", **kwargs: Any):
    """SessionLogHandler wired to a fresh MockLogRepository."""
    from survey_fields.session_log import SessionLogHandler

    handler = SessionLogHandler(mock_session_scope, survey_name=survey_name, **kwargs)
    handler._repo = MockLogRepository()
    return handler
