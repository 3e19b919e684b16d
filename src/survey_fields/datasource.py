"""SqlDataSource — the SQLAlchemy-backed :class:`DataSource`.

Configuration tables are reflected on first use and cached for the life
of the data source.  Each call checks a connection out of the shared
:class:`~survey_db.engine.DatabasePool` for just that query.

Choice queries keep storage order: rows are read in primary-key order
and de-duplicated in Python (``SELECT DISTINCT`` cannot be ordered by a
column it does not return).  The statement builders are module-level so
they can be compiled and inspected without a database.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Iterable

from sqlalchemy import MetaData, Select, Table, distinct, select
from sqlalchemy.exc import NoSuchTableError, SQLAlchemyError

from survey_db.engine import DatabasePool
from survey_db.responses import ResponseTableWriter
from survey_fields.errors import DataSourceError
from survey_fields.interfaces import DataSource
from survey_fields.models.state import Choice, hashable_value
from survey_fields.unique import normalize

logger = logging.getLogger(__name__)


class _Uncoercible(Exception):
    """A URL-sourced value cannot be compared with the column's type."""


# ---------------------------------------------------------------------------
# Statement builders
# ---------------------------------------------------------------------------

def _order_by_key(table: Table) -> list:
    return list(table.primary_key.columns)


def distinct_values_stmt(
    table: Table, column: str, *, label_column: str | None = None
) -> Select:
    """Non-null ``column`` values (and labels) in primary-key order."""
    value = table.c[column]
    columns = [value, table.c[label_column]] if label_column else [value]
    return (
        select(*columns)
        .where(value.isnot(None))
        .order_by(*_order_by_key(table))
    )


def joined_values_stmt(
    table: Table,
    column: str,
    *,
    parent: Table,
    parent_id_column: str,
    parent_key_column: str,
    parent_column: str,
    parent_value: Any,
    label_column: str | None = None,
) -> Select:
    """Child values whose parent row's ``parent_column`` equals ``parent_value``."""
    value = table.c[column]
    columns = [value, table.c[label_column]] if label_column else [value]
    return (
        select(*columns)
        .select_from(
            table.join(parent, table.c[parent_id_column] == parent.c[parent_key_column])
        )
        .where(parent.c[parent_column] == parent_value, value.isnot(None))
        .order_by(*_order_by_key(table))
    )


def contains_value_stmt(table: Table, column: str, value: Any) -> Select:
    return select(table.c[column]).where(table.c[column] == value).limit(1)


def display_lookup_stmt(
    table: Table, column: str, value: Any, display_column: str
) -> Select:
    return (
        select(table.c[display_column])
        .where(table.c[column] == value)
        .order_by(*_order_by_key(table))
        .limit(1)
    )


def stored_values_stmt(table: Table, column: str) -> Select:
    """Every distinct non-null stored value, for normalized comparison."""
    return select(distinct(table.c[column])).where(table.c[column].isnot(None))


def coerce_for_column(table: Table, column: str, value: Any) -> Any:
    """Convert a string (as read from a URL) to the column's Python type."""
    if not isinstance(value, str):
        return value
    try:
        python_type = table.c[column].type.python_type
    except NotImplementedError:
        return value
    if python_type is str:
        return value
    try:
        if python_type is bool:
            lowered = value.strip().lower()
            if lowered not in ("true", "false", "1", "0"):
                raise ValueError(value)
            return lowered in ("true", "1")
        return python_type(value.strip())
    except (TypeError, ValueError) as exc:
        raise _Uncoercible(value) from exc


def _rows_to_choices(rows: Iterable[Any]) -> list[Choice]:
    seen: set[Any] = set()
    choices: list[Choice] = []
    for row in rows:
        value = row[0]
        label = row[1] if len(row) > 1 else value
        key = hashable_value(value)
        if key in seen:
            continue
        seen.add(key)
        choices.append(Choice(value=value, text=label if label is not None else value))
    return choices


# ---------------------------------------------------------------------------
# SqlDataSource
# ---------------------------------------------------------------------------

class SqlDataSource(DataSource):
    """Data source over a :class:`DatabasePool`.

    Args:
        pool: shared connection pool (owned by the caller)
        writer: response writer; a default one is created when omitted
    """

    def __init__(
        self,
        pool: DatabasePool,
        writer: ResponseTableWriter | None = None,
    ) -> None:
        self._pool = pool
        self._writer = writer or ResponseTableWriter()
        self._tables: dict[str, Table] = {}

    # ------------------------------------------------------------------
    # Reflection
    # ------------------------------------------------------------------

    async def _table(self, name: str) -> Table:
        table = self._tables.get(name)
        if table is not None:
            return table
        async with self._errors(name):
            async with self._pool.connect() as conn:
                table = await conn.run_sync(
                    lambda sync_conn: Table(name, MetaData(), autoload_with=sync_conn)
                )
        self._tables[name] = table
        return table

    @staticmethod
    def _check_columns(table: Table, *columns: str | None) -> None:
        for column in columns:
            if column is not None and column not in table.c:
                raise DataSourceError(
                    f"Column '{table.name}.{column}' does not exist",
                    table=table.name,
                    column=column,
                )

    @asynccontextmanager
    async def _errors(self, table: str, column: str | None = None) -> AsyncIterator[None]:
        """Translate driver errors into :class:`DataSourceError`."""
        try:
            yield
        except NoSuchTableError as exc:
            raise DataSourceError(
                f"Table '{table}' does not exist", table=table
            ) from exc
        except SQLAlchemyError as exc:
            logger.error("Query on %s failed: %s", table, exc)
            raise DataSourceError(
                f"Query on '{table}' failed", table=table, column=column
            ) from exc

    async def column_names(self, table: str) -> list[str]:
        reflected = await self._table(table)
        return [c.name for c in reflected.columns]

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    async def select_distinct(
        self,
        table: str,
        column: str,
        *,
        label_column: str | None = None,
    ) -> list[Choice]:
        reflected = await self._table(table)
        self._check_columns(reflected, column, label_column)
        stmt = distinct_values_stmt(reflected, column, label_column=label_column)
        async with self._errors(table, column):
            async with self._pool.connect() as conn:
                result = await conn.execute(stmt)
                rows = result.all()
        return _rows_to_choices(rows)

    async def select_joined(
        self,
        table: str,
        column: str,
        *,
        parent_table: str,
        parent_id_column: str,
        parent_column: str,
        parent_value: Any,
        parent_key_column: str = "id",
        label_column: str | None = None,
    ) -> list[Choice]:
        child = await self._table(table)
        parent = await self._table(parent_table)
        self._check_columns(child, column, parent_id_column, label_column)
        self._check_columns(parent, parent_key_column, parent_column)
        try:
            parent_value = coerce_for_column(parent, parent_column, parent_value)
        except _Uncoercible:
            return []
        stmt = joined_values_stmt(
            child,
            column,
            parent=parent,
            parent_id_column=parent_id_column,
            parent_key_column=parent_key_column,
            parent_column=parent_column,
            parent_value=parent_value,
            label_column=label_column,
        )
        async with self._errors(table, column):
            async with self._pool.connect() as conn:
                result = await conn.execute(stmt)
                rows = result.all()
        return _rows_to_choices(rows)

    async def contains_value(self, table: str, column: str, value: Any) -> bool:
        reflected = await self._table(table)
        self._check_columns(reflected, column)
        try:
            value = coerce_for_column(reflected, column, value)
        except _Uncoercible:
            return False
        async with self._errors(table, column):
            async with self._pool.connect() as conn:
                result = await conn.execute(contains_value_stmt(reflected, column, value))
                return result.first() is not None

    async def lookup_display(
        self,
        table: str,
        column: str,
        value: Any,
        display_column: str,
    ) -> Any:
        reflected = await self._table(table)
        self._check_columns(reflected, column, display_column)
        try:
            value = coerce_for_column(reflected, column, value)
        except _Uncoercible:
            return None
        stmt = display_lookup_stmt(reflected, column, value, display_column)
        async with self._errors(table, column):
            async with self._pool.connect() as conn:
                result = await conn.execute(stmt)
                return result.scalar_one_or_none()

    async def exists_value(
        self, table: str, column: str, normalized_value: str
    ) -> bool:
        try:
            reflected = await self._table(table)
        except DataSourceError as exc:
            if isinstance(exc.__cause__, NoSuchTableError):
                # Nothing has been stored yet
                logger.debug("Unique check table %s missing: %s", table, exc)
                return False
            raise
        if column not in reflected.c:
            return False
        async with self._errors(table, column):
            async with self._pool.connect() as conn:
                result = await conn.stream(stored_values_stmt(reflected, column))
                async for (stored,) in result:
                    if normalize(stored) == normalized_value:
                        return True
        return False

    # ------------------------------------------------------------------
    # Responses
    # ------------------------------------------------------------------

    async def insert_response(
        self,
        table: str,
        row: dict[str, Any],
        *,
        session_id: str,
        ip_address: str,
        text_fields: Iterable[str] = (),
    ) -> str:
        async with self._errors(table):
            async with self._pool.connect() as conn:
                name = await self._writer.insert(
                    conn,
                    table,
                    row,
                    session_id=session_id,
                    ip_address=ip_address,
                    text_fields=text_fields,
                )
        # The writer may have created the table or added columns
        self._tables.pop(name, None)
        return name
