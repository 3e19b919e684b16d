"""Tests for ConfigLoader, binding construction and table verification."""

import pytest

from helpers.datasource import InMemoryDataSource

from survey_fields.errors import ConfigError
from survey_fields.loader import ConfigLoader, build_bindings, verify
from survey_fields.models.config import (
    ChoiceConfig,
    ParamConfig,
    ResultPolicy,
    UniqueConfig,
)


@pytest.fixture
def loader():
    return ConfigLoader()


# =====================================================================
# Parsing
# =====================================================================


class TestLoad:

    def test_parses_every_kind_in_order(self, loader, raw_config):
        configs = loader.load(raw_config)
        assert [type(c) for c in configs] == [
            ParamConfig, ChoiceConfig, ChoiceConfig, UniqueConfig,
        ]
        assert configs[2].parent_table_name == "packages"
        assert configs[2].parent_key_col == "id"
        assert configs[3].result == ResultPolicy.STOP

    def test_field_defaults_to_column(self, loader):
        (config,) = loader.load(
            [{"config_type": "choice", "table_name": "t", "config_col": "c"}]
        )
        assert config.field == "c"

    def test_field_name_overrides_column(self, loader):
        (config,) = loader.load([
            {"config_type": "choice", "table_name": "t", "config_col": "c",
             "field_name": "q1"},
        ])
        assert config.field == "q1"

    def test_none_is_empty(self, loader):
        assert loader.load(None) == []

    def test_not_a_list(self, loader):
        with pytest.raises(ConfigError):
            loader.load({"config_type": "choice"})

    def test_unknown_type(self, loader):
        with pytest.raises(ConfigError) as exc_info:
            loader.load([{"config_type": "lookup", "table_name": "t", "config_col": "c"}])
        assert exc_info.value.errors[0].startswith("Configuration entry 0: ")

    def test_missing_config_type(self, loader):
        with pytest.raises(ConfigError, match="missing config_type"):
            loader.load([{"table_name": "t", "config_col": "c"}])

    def test_missing_required_column(self, loader):
        with pytest.raises(ConfigError, match="config_col"):
            loader.load([{"config_type": "choice", "table_name": "t"}])

    def test_unique_requires_result(self, loader):
        with pytest.raises(ConfigError, match="result"):
            loader.load([{"config_type": "unique", "table_name": "t", "config_col": "c"}])

    def test_rejects_unknown_keys(self, loader):
        """The group_* naming variant is not accepted alongside config_*."""
        with pytest.raises(ConfigError, match="group_col"):
            loader.load([
                {"config_type": "choice", "table_name": "t", "config_col": "c",
                 "group_col": "c"},
            ])

    def test_parent_keys_must_come_together(self, loader):
        with pytest.raises(ConfigError, match="parent_table_name"):
            loader.load([
                {"config_type": "choice", "table_name": "packages", "config_col": "package"},
                {"config_type": "choice", "table_name": "versions", "config_col": "version",
                 "parent_table_name": "packages"},
            ])

    def test_child_before_parent_is_ordering_error(self, loader, raw_config):
        child, parent = raw_config[2], raw_config[1]
        with pytest.raises(ConfigError, match="earlier") as exc_info:
            loader.load([child, parent])
        assert "Configuration entry 0" in str(exc_info.value)

    def test_self_parent(self, loader):
        with pytest.raises(ConfigError, match="own parent"):
            loader.load([
                {"config_type": "choice", "table_name": "t", "config_col": "c",
                 "parent_table_name": "t", "parent_id_col": "p"},
            ])

    def test_duplicate_field(self, loader):
        entry = {"config_type": "choice", "table_name": "t", "config_col": "c"}
        with pytest.raises(ConfigError, match="already driven"):
            loader.load([entry, dict(entry)])

    def test_collects_all_errors(self, loader):
        with pytest.raises(ConfigError) as exc_info:
            loader.load([
                {"config_type": "choice"},
                "not a mapping",
                {"config_type": "unique", "table_name": "t", "config_col": "c"},
            ])
        prefixes = {e.split(":")[0] for e in exc_info.value.errors}
        assert prefixes == {
            "Configuration entry 0",
            "Configuration entry 1",
            "Configuration entry 2",
        }


class TestLoadFile:

    def test_example_file(self, example_config_path):
        configs = ConfigLoader().load_file(example_config_path)
        assert [c.config_type for c in configs] == ["param", "choice", "choice", "unique"]

    def test_plain_list_file(self, tmp_path):
        path = tmp_path / "config.json"
        path.write_text(
            '[{"config_type": "choice", "table_name": "t", "config_col": "c"}]'
        )
        (config,) = ConfigLoader().load_file(path)
        assert config.table_name == "t"

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigError, match="Missing"):
            ConfigLoader().load_file(tmp_path / "nope.yaml")


# =====================================================================
# Bindings
# =====================================================================


class TestBindings:

    def test_dependent_binding_points_at_parent(self, configs):
        bindings = build_bindings(configs)
        by_field = {b.field_name: b for b in bindings}
        assert by_field["version"].parent_field == "package"
        assert by_field["version"].is_dependent
        assert not by_field["package"].is_dependent

    def test_param_can_be_parent(self):
        configs = ConfigLoader().load([
            {"config_type": "param", "table_name": "packages", "config_col": "package"},
            {"config_type": "choice", "table_name": "versions", "config_col": "version",
             "parent_table_name": "packages", "parent_id_col": "package_id"},
        ])
        assert build_bindings(configs)[1].parent_field == "package"


# =====================================================================
# Verification
# =====================================================================


class TestVerify:

    @pytest.mark.asyncio
    async def test_existing_tables_pass(self, configs):
        await verify(configs, InMemoryDataSource())

    @pytest.mark.asyncio
    async def test_missing_column(self):
        configs = ConfigLoader().load([
            {"config_type": "choice", "table_name": "packages", "config_col": "name"},
        ])
        with pytest.raises(ConfigError, match="packages.name"):
            await verify(configs, InMemoryDataSource())

    @pytest.mark.asyncio
    async def test_missing_table(self):
        configs = ConfigLoader().load([
            {"config_type": "param", "table_name": "referrers", "config_col": "source"},
        ])
        with pytest.raises(ConfigError, match="referrers"):
            await verify(configs, InMemoryDataSource())

    @pytest.mark.asyncio
    async def test_unique_table_may_not_exist_yet(self):
        configs = ConfigLoader().load([
            {"config_type": "unique", "table_name": "survey_responses",
             "config_col": "issue_title", "result": "warn"},
        ])
        await verify(configs, InMemoryDataSource())
