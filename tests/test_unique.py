"""Tests for value normalization and the UniquenessValidator."""

import pytest

from helpers.datasource import InMemoryDataSource

from survey_fields.constants import DUPLICATE_MESSAGE
from survey_fields.errors import DataSourceError
from survey_fields.models.config import UniqueConfig
from survey_fields.models.state import VerdictState
from survey_fields.unique import UniquenessValidator, normalize


# =====================================================================
# normalize()
# =====================================================================


class TestNormalize:

    @pytest.mark.parametrize("a, b", [
        ("Hello World!", "hello world"),
        ("  Bug   In Parser ", "bug in parser!!"),
        ("CAFÉ au lait", "café, au lait"),
        ("snake_case", "snakecase"),
    ])
    def test_variants_normalize_equal(self, a, b):
        assert normalize(a) == normalize(b)

    def test_different_values_differ(self):
        assert normalize("Hello World") != normalize("Goodbye")

    @pytest.mark.parametrize("value", [
        "Hello World!",
        "  multiple   spaces\tand\nnewlines ",
        "!!!",
        "",
        "ÀÉÎ õü 123",
        "a_b-c.d",
    ])
    def test_idempotent(self, value):
        once = normalize(value)
        assert normalize(once) == once

    def test_none_and_numbers(self):
        assert normalize(None) == ""
        assert normalize(42) == "42"


# =====================================================================
# UniquenessValidator
# =====================================================================


def _config(result: str) -> UniqueConfig:
    return UniqueConfig(
        table_name="issues",
        config_col="issue_title",
        result=result,
        result_field="issue_title_result",
    )


@pytest.fixture
def validator(datasource):
    return UniquenessValidator(datasource)


class TestUniquenessValidator:

    @pytest.mark.asyncio
    async def test_stop_policy_blocks_normalized_duplicate(self, validator):
        verdict = await validator.check(_config("stop"), "bug   in parser!!")
        assert verdict.state == VerdictState.BLOCKING
        assert verdict.message == DUPLICATE_MESSAGE
        assert verdict.result_field == "issue_title_result"

    @pytest.mark.asyncio
    async def test_stop_policy_accepts_unique_value(self, validator):
        verdict = await validator.check(_config("stop"), "bug in loader")
        assert verdict.state == VerdictState.CLEAN
        assert verdict.message is None

    @pytest.mark.asyncio
    async def test_warn_policy_warns(self, validator):
        verdict = await validator.check(_config("warn"), "BUG IN PARSER")
        assert verdict.state == VerdictState.WARNING
        assert not verdict.is_blocking

    @pytest.mark.asyncio
    async def test_empty_candidate_is_clean_without_query(self, validator, datasource):
        verdict = await validator.check(_config("stop"), "  ?! ")
        assert verdict.is_clean
        assert datasource.queries == []

    @pytest.mark.asyncio
    async def test_advisory_check_degrades_on_failure(self, validator, datasource):
        datasource.failing.add("issues")
        verdict = await validator.check(_config("stop"), "bug in parser")
        assert verdict.is_clean

    @pytest.mark.asyncio
    async def test_authoritative_check_propagates_failure(self, validator, datasource):
        datasource.failing.add("issues")
        with pytest.raises(DataSourceError):
            await validator.check(_config("stop"), "bug in parser", authoritative=True)

    @pytest.mark.asyncio
    async def test_missing_table_has_no_duplicates(self):
        validator = UniquenessValidator(InMemoryDataSource(tables={}))
        verdict = await validator.check(_config("stop"), "anything")
        assert verdict.is_clean
