"""ResponseTableWriter tests — table creation and value fitting.

The sync half of the writer runs against a mocked ``Connection`` with a
real PostgreSQL dialect, so DDL and insert statements can be inspected
without a database.
"""

from unittest.mock import MagicMock, patch

import pytest
from sqlalchemy import JSON, BigInteger, String, Text
from sqlalchemy.dialects import postgresql
from sqlalchemy.dialects.postgresql import TIMESTAMP

from survey_db.responses import ResponseTableWriter


TRACKING = [
    {"name": "date_created", "type": TIMESTAMP(timezone=True)},
    {"name": "date_updated", "type": TIMESTAMP(timezone=True)},
    {"name": "session_id", "type": Text()},
    {"name": "ip_address", "type": String(45)},
]


@pytest.fixture
def conn():
    c = MagicMock()
    c.dialect = postgresql.dialect()
    return c


def _write(conn, data, *, existing=None, free_text=()):
    with patch("survey_db.responses.inspect") as inspect_:
        inspector = inspect_.return_value
        inspector.has_table.return_value = existing is not None
        inspector.get_columns.return_value = existing or []
        ResponseTableWriter()._insert_sync(
            conn, "survey_responses", data, "s1", "203.0.113.5", frozenset(free_text),
        )


def _inserted(conn):
    stmt = conn.execute.call_args_list[-1].args[0]
    return stmt.compile(dialect=postgresql.dialect()).params


def _ddl(conn):
    return [str(call.args[0]) for call in conn.execute.call_args_list[:-1]]


class TestNewTable:

    def test_numeric_other_answer_is_stored_as_text(self, conn):
        _write(conn, {"platform": 2, "score": 3}, free_text=["platform"])

        created = conn._run_ddl_visitor.call_args.args[1]
        assert isinstance(created.c.platform.type, Text)
        assert isinstance(created.c.score.type, BigInteger)
        assert _inserted(conn) == {
            "platform": "2",
            "score": 3,
            "session_id": "s1",
            "ip_address": "203.0.113.5",
        }

    def test_unanswered_question_gets_no_column_yet(self, conn):
        _write(conn, {"package": "batchLLM", "comment": None})

        created = conn._run_ddl_visitor.call_args.args[1]
        assert "comment" not in created.c
        assert "comment" not in _inserted(conn)


class TestExistingTable:

    def test_scalar_into_text_column_is_converted(self, conn):
        existing = [{"name": "id", "type": BigInteger()}, {"name": "comment", "type": Text()}]
        _write(conn, {"comment": 5, "flag": True}, existing=existing + TRACKING)

        params = _inserted(conn)
        assert params["comment"] == "5"
        assert params["flag"] is True
        assert _ddl(conn) == [
            "ALTER TABLE survey_responses ADD COLUMN flag BOOLEAN",
        ]

    def test_missing_columns_are_added(self, conn):
        existing = [{"name": "id", "type": BigInteger()}]
        _write(conn, {"tags": ["a", "b"], "visits": 1}, existing=existing + TRACKING)

        assert _ddl(conn) == [
            "ALTER TABLE survey_responses ADD COLUMN tags JSON",
            "ALTER TABLE survey_responses ADD COLUMN visits BIGINT",
        ]
        assert _inserted(conn)["tags"] == ["a", "b"]

    def test_list_into_text_column_is_serialised(self, conn):
        existing = [{"name": "tags", "type": Text()}]
        _write(conn, {"tags": ["a", "b"]}, existing=existing + TRACKING)
        assert _inserted(conn)["tags"] == '["a", "b"]'

    def test_json_column_keeps_structure(self, conn):
        existing = [{"name": "tags", "type": JSON()}]
        _write(conn, {"tags": {"k": 1}}, existing=existing + TRACKING)
        assert _inserted(conn)["tags"] == {"k": 1}
