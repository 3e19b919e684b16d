"""SQL builder tests — compiled against the PostgreSQL dialect.

No database is needed: each builder is compiled and the SQL text and
bound parameters are inspected.
"""

import pytest
from sqlalchemy import JSON, BigInteger, Boolean, Column, Integer, MetaData, Numeric, Table, Text
from sqlalchemy.dialects import postgresql

from survey_db.repository import progress_upsert_stmt
from survey_db.responses import infer_column_type, sanitize_table_name
from survey_fields.datasource import (
    _Uncoercible,
    coerce_for_column,
    contains_value_stmt,
    display_lookup_stmt,
    distinct_values_stmt,
    joined_values_stmt,
    stored_values_stmt,
)


@pytest.fixture
def tables():
    meta = MetaData()
    packages = Table(
        "packages", meta,
        Column("id", Integer, primary_key=True),
        Column("package", Text),
    )
    versions = Table(
        "versions", meta,
        Column("id", Integer, primary_key=True),
        Column("package_id", Integer),
        Column("version", Text),
    )
    sources = Table(
        "sources", meta,
        Column("id", Integer, primary_key=True),
        Column("source", Text),
        Column("display_name", Text),
    )
    return packages, versions, sources


def _compile(stmt):
    compiled = stmt.compile(dialect=postgresql.dialect())
    return " ".join(str(compiled).split()), compiled.params


class TestChoiceStatements:

    def test_distinct_values_keep_storage_order(self, tables):
        packages, _, _ = tables
        sql, _ = _compile(distinct_values_stmt(packages, "package"))
        assert sql.startswith("SELECT packages.package FROM packages")
        assert "packages.package IS NOT NULL" in sql
        assert sql.endswith("ORDER BY packages.id")
        assert "DISTINCT" not in sql

    def test_label_column_selected_second(self, tables):
        _, _, sources = tables
        sql, _ = _compile(
            distinct_values_stmt(sources, "source", label_column="display_name")
        )
        assert sql.startswith("SELECT sources.source, sources.display_name")

    def test_joined_values_filter_on_parent(self, tables):
        packages, versions, _ = tables
        stmt = joined_values_stmt(
            versions,
            "version",
            parent=packages,
            parent_id_column="package_id",
            parent_key_column="id",
            parent_column="package",
            parent_value="batchLLM",
        )
        sql, params = _compile(stmt)
        assert "FROM versions JOIN packages ON versions.package_id = packages.id" in sql
        assert "packages.package = %(package_1)s" in sql
        assert "versions.version IS NOT NULL" in sql
        assert sql.endswith("ORDER BY versions.id")
        assert params["package_1"] == "batchLLM"


class TestLookupStatements:

    def test_contains_value(self, tables):
        _, _, sources = tables
        sql, params = _compile(contains_value_stmt(sources, "source", "github"))
        assert "WHERE sources.source = %(source_1)s" in sql
        assert "LIMIT" in sql
        assert params["source_1"] == "github"

    def test_display_lookup(self, tables):
        _, _, sources = tables
        sql, _ = _compile(display_lookup_stmt(sources, "source", "github", "display_name"))
        assert sql.startswith("SELECT sources.display_name FROM sources")
        assert "ORDER BY sources.id" in sql

    def test_stored_values_are_distinct(self, tables):
        _, versions, _ = tables
        sql, _ = _compile(stored_values_stmt(versions, "version"))
        assert sql.startswith("SELECT DISTINCT versions.version")


class TestCoercion:

    def test_integer_column(self, tables):
        packages, _, _ = tables
        assert coerce_for_column(packages, "id", " 2 ") == 2

    def test_uncoercible(self, tables):
        packages, _, _ = tables
        with pytest.raises(_Uncoercible):
            coerce_for_column(packages, "id", "abc")

    def test_text_and_non_strings_unchanged(self, tables):
        packages, _, _ = tables
        assert coerce_for_column(packages, "package", "7") == "7"
        assert coerce_for_column(packages, "id", 7) == 7


class TestResponseTable:

    @pytest.mark.parametrize("name, expected", [
        ("survey_responses", "survey_responses"),
        ("Survey Responses-2024", "survey_responses_2024"),
        ("ünïcode", "_n_code"),
    ])
    def test_sanitize_table_name(self, name, expected):
        assert sanitize_table_name(name) == expected

    @pytest.mark.parametrize("value, type_", [
        (True, Boolean),
        (3, BigInteger),
        (1.5, Numeric),
        (["a", "b"], JSON),
        ({"k": 1}, JSON),
        ("text", Text),
        (None, Text),
    ])
    def test_infer_column_type(self, value, type_):
        assert isinstance(infer_column_type(value), type_)

    def test_other_questions_are_text(self):
        assert isinstance(infer_column_type(3, free_text=True), Text)


class TestProgressUpsert:

    def test_conflict_on_session_key_updates_snapshot(self):
        sql, params = _compile(progress_upsert_stmt(
            survey_name="pkg_survey",
            session_id="s1",
            field_values={"package": "batchLLM"},
            dynamic_state={},
        ))
        assert "ON CONFLICT ON CONSTRAINT uq_survey_session DO UPDATE" in sql
        assert "field_values = excluded.field_values" in sql
        assert "dynamic_state = excluded.dynamic_state" in sql
        assert "RETURNING" in sql
        assert params["session_id"] == "s1"
        assert params["field_values"] == {"package": "batchLLM"}
