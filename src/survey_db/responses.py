"""Response table writer — stores completed survey submissions.

Survey responses land in a plain table named by the deployment (e.g.
``survey_responses``).  The table is created on first use with column
types inferred from the submitted values, and columns that appear in
later submissions are added with ``ALTER TABLE``.  Every row carries four
tracking columns: ``date_created``, ``date_updated``, ``session_id`` and
``ip_address``.

All work happens on a caller-supplied ``AsyncConnection`` so the insert
shares the caller's transaction.
"""

from __future__ import annotations

import json
import logging
import re
from typing import Any, Iterable

from sqlalchemy import (
    JSON,
    BigInteger,
    Boolean,
    Column,
    Connection,
    Identity,
    MetaData,
    Numeric,
    String,
    Table,
    Text,
    func,
    inspect,
    text,
)
from sqlalchemy.dialects.postgresql import TIMESTAMP
from sqlalchemy.ext.asyncio import AsyncConnection
from sqlalchemy.types import TypeEngine

logger = logging.getLogger(__name__)

# Columns managed by the writer; submitted data may not override them.
TRACKING_COLUMNS: tuple[str, ...] = (
    "date_created",
    "date_updated",
    "session_id",
    "ip_address",
)


def sanitize_table_name(name: str) -> str:
    """Lowercase and replace every non-alphanumeric character with ``_``."""
    return re.sub(r"[^0-9A-Za-z]", "_", name).lower()


def infer_column_type(value: Any, *, free_text: bool = False) -> TypeEngine:
    """Pick a column type for a submitted value.

    ``free_text`` forces TEXT — used for questions with an "other" option,
    whose answers mix choice codes with arbitrary user text.
    """
    if free_text:
        return Text()
    # bool first: bool is a subclass of int
    if isinstance(value, bool):
        return Boolean()
    if isinstance(value, int):
        return BigInteger()
    if isinstance(value, float):
        return Numeric(12, 2)
    if isinstance(value, (list, dict)):
        return JSON()
    return Text()


def _coerce(value: Any, column_type: TypeEngine) -> Any:
    """Fit a submitted value to the type of the column it lands in."""
    # Structured answers stored in a TEXT column are serialised
    if isinstance(value, (list, dict)):
        if isinstance(column_type, JSON):
            return value
        return json.dumps(value, ensure_ascii=False)
    # Numeric choice codes of "other" questions go into TEXT columns
    if isinstance(column_type, String) and not isinstance(value, str):
        return str(value)
    return value


def _tracking_columns() -> list[Column]:
    return [
        Column("date_created", TIMESTAMP(timezone=True), server_default=func.now()),
        Column("date_updated", TIMESTAMP(timezone=True), server_default=func.now()),
        Column("session_id", Text),
        Column("ip_address", String(45)),
    ]


class ResponseTableWriter:
    """Creates/extends the response table and inserts submissions."""

    async def insert(
        self,
        conn: AsyncConnection,
        table_name: str,
        row: dict[str, Any],
        *,
        session_id: str,
        ip_address: str,
        text_fields: Iterable[str] = (),
    ) -> str:
        """Insert one submission and return the sanitized table name."""
        name = sanitize_table_name(table_name)
        data = {k: v for k, v in row.items() if k not in TRACKING_COLUMNS}
        free_text = frozenset(text_fields)
        await conn.run_sync(
            self._insert_sync, name, data, session_id, ip_address, free_text,
        )
        logger.info("Inserted response into '%s' (session=%s)", name, session_id)
        return name

    # ------------------------------------------------------------------
    # Sync helpers (run inside ``AsyncConnection.run_sync``)
    # ------------------------------------------------------------------

    def _insert_sync(
        self,
        conn: Connection,
        name: str,
        data: dict[str, Any],
        session_id: str,
        ip_address: str,
        free_text: frozenset[str],
    ) -> None:
        inspector = inspect(conn)
        if not inspector.has_table(name):
            columns = self._create_table(conn, name, data, free_text)
        else:
            columns = [Column(c["name"], c["type"]) for c in inspector.get_columns(name)]
            existing = {c.name for c in columns}
            columns.extend(
                self._add_missing_columns(conn, name, data, existing, free_text)
            )

        table = Table(name, MetaData(), *columns)
        values: dict[str, Any] = {}
        for key, value in data.items():
            if value is None or key not in table.c:
                continue
            values[key] = _coerce(value, table.c[key].type)
        values["session_id"] = session_id
        values["ip_address"] = ip_address
        conn.execute(table.insert().values(**values))

    def _create_table(
        self,
        conn: Connection,
        name: str,
        data: dict[str, Any],
        free_text: frozenset[str],
    ) -> list[Column]:
        columns = [Column("id", BigInteger, Identity(), primary_key=True)]
        for key, value in data.items():
            # Unanswered questions get a column once a value arrives
            if value is None:
                continue
            columns.append(
                Column(key, infer_column_type(value, free_text=key in free_text))
            )
        columns.extend(_tracking_columns())
        Table(name, MetaData(), *columns).create(conn)
        logger.info("Created response table '%s' with %d columns", name, len(columns))
        return [Column(c.name, c.type) for c in columns]

    def _add_missing_columns(
        self,
        conn: Connection,
        name: str,
        data: dict[str, Any],
        existing: set[str],
        free_text: frozenset[str],
    ) -> list[Column]:
        quote = conn.dialect.identifier_preparer.quote
        wanted = {c.name: c.type for c in _tracking_columns()}
        for key, value in data.items():
            if value is None:
                continue
            wanted.setdefault(key, infer_column_type(value, free_text=key in free_text))
        added: list[Column] = []
        for column_name, column_type in wanted.items():
            if column_name in existing:
                continue
            ddl = column_type.compile(dialect=conn.dialect)
            conn.execute(
                text(f"ALTER TABLE {quote(name)} ADD COLUMN {quote(column_name)} {ddl}")
            )
            logger.info("Added column '%s' to table '%s'", column_name, name)
            added.append(Column(column_name, column_type))
        return added
