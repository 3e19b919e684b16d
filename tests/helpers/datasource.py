"""In-memory DataSource used in place of PostgreSQL.

Tables are lists of row dicts; list order stands in for primary-key
order.  Failures and slow queries can be injected per table.
"""

import asyncio
from typing import Any, Iterable

from survey_db.engine import PoolExhaustedError
from survey_db.responses import TRACKING_COLUMNS, sanitize_table_name
from survey_fields.errors import DataSourceError
from survey_fields.interfaces import DataSource
from survey_fields.models.state import Choice
from survey_fields.unique import normalize


def package_tables() -> dict[str, list[dict[str, Any]]]:
    """The packages/versions/sources fixture data."""
    return {
        "packages": [
            {"id": 1, "package": "batchLLM"},
            {"id": 2, "package": "shinysurveyjs"},
        ],
        "versions": [
            {"id": 1, "package_id": 1, "version": "CRAN-0.2.0"},
            {"id": 2, "package_id": 2, "version": "CRAN-0.1.0"},
            {"id": 3, "package_id": 2, "version": "GitHub-0.2.0"},
            # Duplicate of row 2, must be de-duplicated
            {"id": 4, "package_id": 2, "version": "CRAN-0.1.0"},
        ],
        "sources": [
            {"id": 1, "source": "github", "display_name": "GitHub"},
            {"id": 2, "source": "cran", "display_name": "CRAN"},
        ],
        "issues": [
            {"id": 1, "issue_title": "Bug In Parser"},
        ],
    }


class InMemoryDataSource(DataSource):
    """DataSource over plain Python lists.

    Attributes:
        queries: log of ``(method, table)`` calls, in order
        inserted: ``(table, row)`` pairs written by ``insert_response``
        failing: tables whose lookups raise ``DataSourceError``
        pool_failures: number of upcoming calls that raise
            ``PoolExhaustedError`` before succeeding
        delays: per-table sleep (seconds) before answering
    """

    def __init__(self, tables: dict[str, list[dict[str, Any]]] | None = None) -> None:
        self.tables = tables if tables is not None else package_tables()
        self.queries: list[tuple[str, str]] = []
        self.inserted: list[tuple[str, dict[str, Any]]] = []
        self.failing: set[str] = set()
        self.pool_failures = 0
        self.delays: dict[str, float] = {}

    async def _enter(self, method: str, table: str) -> list[dict[str, Any]]:
        self.queries.append((method, table))
        if self.pool_failures > 0:
            self.pool_failures -= 1
            raise PoolExhaustedError("No database connection available")
        delay = self.delays.get(table)
        if delay:
            await asyncio.sleep(delay)
        if table in self.failing:
            raise DataSourceError(f"Query on '{table}' failed", table=table)
        if table not in self.tables:
            raise DataSourceError(f"Table '{table}' does not exist", table=table)
        return self.tables[table]

    @staticmethod
    def _choices(rows: Iterable[dict[str, Any]], column: str, label: str | None) -> list[Choice]:
        out: list[Choice] = []
        for row in rows:
            value = row.get(column)
            if value is None:
                continue
            out.append(Choice(value=value, text=row.get(label, value) if label else value))
        return out

    async def select_distinct(self, table, column, *, label_column=None):
        rows = await self._enter("select_distinct", table)
        return self._choices(rows, column, label_column)

    async def select_joined(
        self,
        table,
        column,
        *,
        parent_table,
        parent_id_column,
        parent_column,
        parent_value,
        parent_key_column="id",
        label_column=None,
    ):
        rows = await self._enter("select_joined", table)
        parents = self.tables.get(parent_table, [])
        keys = {
            p[parent_key_column]
            for p in parents
            if str(p.get(parent_column)) == str(parent_value)
        }
        matched = [r for r in rows if r.get(parent_id_column) in keys]
        return self._choices(matched, column, label_column)

    async def contains_value(self, table, column, value):
        rows = await self._enter("contains_value", table)
        return any(str(r.get(column)) == str(value) for r in rows)

    async def lookup_display(self, table, column, value, display_column):
        rows = await self._enter("lookup_display", table)
        for r in rows:
            if str(r.get(column)) == str(value):
                return r.get(display_column)
        return None

    async def exists_value(self, table, column, normalized_value):
        if table not in self.tables and table not in self.failing:
            self.queries.append(("exists_value", table))
            return False
        rows = await self._enter("exists_value", table)
        return any(normalize(r.get(column)) == normalized_value for r in rows)

    async def insert_response(self, table, row, *, session_id, ip_address, text_fields=()):
        self.queries.append(("insert_response", table))
        if self.pool_failures > 0:
            self.pool_failures -= 1
            raise PoolExhaustedError("No database connection available")
        name = sanitize_table_name(table)
        stored = {k: v for k, v in row.items() if k not in TRACKING_COLUMNS}
        stored["session_id"] = session_id
        stored["ip_address"] = ip_address
        self.tables.setdefault(name, []).append(stored)
        self.inserted.append((name, stored))
        return name

    async def column_names(self, table):
        rows = await self._enter("column_names", table)
        names: list[str] = []
        for row in rows:
            for key in row:
                if key not in names:
                    names.append(key)
        return names
