"""ConfigLoader — parses the ``dynamic_config`` list into typed records.

Entry order is meaningful: a dependent choice config must come after the
choice config that populates its parent field.  Every problem in the list
is collected and reported together in a single :class:`ConfigError`.

Usage::

    loader = ConfigLoader()
    configs = loader.load_file("dynamic_config.yaml")
    bindings = build_bindings(configs)
    await verify(configs, datasource)   # tables and columns exist
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Sequence

import yaml
from pydantic import TypeAdapter, ValidationError

from survey_fields.errors import ConfigError, DataSourceError
from survey_fields.interfaces import DataSource
from survey_fields.models.config import (
    ChoiceConfig,
    DynamicFieldConfig,
    ParamConfig,
    UniqueConfig,
)
from survey_fields.models.state import FieldBinding

logger = logging.getLogger(__name__)

_ADAPTER: TypeAdapter[DynamicFieldConfig] = TypeAdapter(DynamicFieldConfig)


def _format_pydantic(exc: ValidationError) -> list[str]:
    """Flatten pydantic errors into ``field: message`` strings."""
    out = []
    for err in exc.errors():
        # Drop the union tag ("choice", "param", ...) pydantic prepends
        loc = [str(p) for p in err["loc"] if p not in ("choice", "param", "unique")]
        where = ".".join(loc)
        out.append(f"{where}: {err['msg']}" if where else err["msg"])
    return out


class ConfigLoader:
    """Validates a raw configuration list; pure, holds no state."""

    def load(self, raw: Any) -> list[DynamicFieldConfig]:
        """Parse ``raw`` (a list of mappings) into typed configs.

        Raises:
            ConfigError: on any malformed entry, unknown ``config_type``,
                inconsistent parent keys, a dependent declared before its
                parent, or two entries driving the same field.
        """
        if raw is None:
            return []
        if not isinstance(raw, list):
            raise ConfigError("dynamic_config must be a list of entries")

        errors: list[str] = []
        configs: list[DynamicFieldConfig] = []

        for index, entry in enumerate(raw):
            prefix = f"Configuration entry {index}: "
            if not isinstance(entry, dict):
                errors.append(prefix + "expected a mapping")
                continue
            if "config_type" not in entry:
                errors.append(prefix + "missing config_type")
                continue
            try:
                config = _ADAPTER.validate_python(entry)
            except ValidationError as exc:
                errors.extend(prefix + msg for msg in _format_pydantic(exc))
                continue

            problem = self._check_against_earlier(config, configs)
            if problem:
                errors.append(prefix + problem)
                continue
            configs.append(config)

        if errors:
            for msg in errors:
                logger.error("Invalid dynamic config: %s", msg)
            raise ConfigError(errors)

        logger.info(
            "Loaded %d dynamic field configs (%d choice, %d param, %d unique)",
            len(configs),
            sum(isinstance(c, ChoiceConfig) for c in configs),
            sum(isinstance(c, ParamConfig) for c in configs),
            sum(isinstance(c, UniqueConfig) for c in configs),
        )
        return configs

    def load_file(self, path: Path | str) -> list[DynamicFieldConfig]:
        """Load configs from a YAML (or JSON) file.

        The file holds either the list itself or a mapping with a
        ``dynamic_config`` key.
        """
        path = Path(path)
        if not path.exists():
            raise ConfigError(f"Missing dynamic config file: {path}")
        with path.open("r", encoding="utf-8") as f:
            try:
                data = yaml.safe_load(f)
            except yaml.YAMLError as exc:
                raise ConfigError(f"{path}: {exc}") from exc
        if isinstance(data, dict):
            data = data.get("dynamic_config")
        return self.load(data)

    @staticmethod
    def _check_against_earlier(
        config: DynamicFieldConfig,
        earlier: Sequence[DynamicFieldConfig],
    ) -> str | None:
        """Ordering and uniqueness checks against already-accepted entries."""
        if isinstance(config, (ChoiceConfig, ParamConfig)):
            for other in earlier:
                if isinstance(other, (ChoiceConfig, ParamConfig)) and other.field == config.field:
                    return f"field '{config.field}' is already driven by another entry"

        if isinstance(config, ChoiceConfig) and config.has_parent:
            if config.parent_table_name == config.table_name:
                return f"'{config.table_name}' cannot be its own parent"
            if _find_parent(config, earlier) is None:
                return (
                    f"parent table '{config.parent_table_name}' must be declared "
                    f"by an earlier choice or param entry"
                )
        return None


def _find_parent(
    child: ChoiceConfig,
    configs: Sequence[DynamicFieldConfig],
) -> ChoiceConfig | ParamConfig | None:
    """The nearest earlier config that populates the child's parent field."""
    for other in reversed(list(configs)):
        if other is child:
            continue
        if (
            isinstance(other, (ChoiceConfig, ParamConfig))
            and other.table_name == child.parent_table_name
        ):
            return other
    return None


def build_bindings(configs: Sequence[DynamicFieldConfig]) -> list[FieldBinding]:
    """One binding per config, with dependent choices pointing at their parent."""
    bindings: list[FieldBinding] = []
    for index, config in enumerate(configs):
        parent_field = None
        if isinstance(config, ChoiceConfig) and config.has_parent:
            parent = _find_parent(config, configs[:index])
            if parent is None:
                raise ConfigError(
                    f"Configuration entry {index}: no parent for "
                    f"'{config.parent_table_name}'"
                )
            parent_field = parent.field
        bindings.append(
            FieldBinding(
                field_name=config.field,
                config_index=index,
                config_type=config.config_type,
                parent_field=parent_field,
            )
        )
    return bindings


def parent_config_for(
    child: ChoiceConfig,
    configs: Sequence[DynamicFieldConfig],
) -> ChoiceConfig | ParamConfig | None:
    """Public form of the parent lookup used by the session."""
    return _find_parent(child, configs[: list(configs).index(child)])


async def verify(
    configs: Sequence[DynamicFieldConfig],
    datasource: DataSource,
) -> None:
    """Check that every referenced table and column exists.

    Raises:
        ConfigError: listing each missing table or column.
    """
    errors: list[str] = []
    columns_by_table: dict[str, set[str] | None] = {}

    async def _columns(table: str) -> set[str] | None:
        if table not in columns_by_table:
            try:
                columns_by_table[table] = set(await datasource.column_names(table))
            except DataSourceError:
                columns_by_table[table] = None
        return columns_by_table[table]

    async def _require(index: int, table: str, *columns: str | None) -> None:
        cols = await _columns(table)
        if cols is None:
            errors.append(f"Configuration entry {index}: table '{table}' does not exist")
            return
        for column in columns:
            if column is not None and column not in cols:
                errors.append(
                    f"Configuration entry {index}: column '{table}.{column}' does not exist"
                )

    for index, config in enumerate(configs):
        if isinstance(config, ChoiceConfig):
            await _require(
                index, config.table_name,
                config.config_col, config.display_col, config.parent_id_col,
            )
            if config.has_parent:
                parent = parent_config_for(config, configs)
                await _require(
                    index, config.parent_table_name,
                    config.parent_key_col, parent.config_col if parent else None,
                )
        elif isinstance(config, ParamConfig):
            await _require(index, config.table_name, config.config_col, config.display_col)
        elif isinstance(config, UniqueConfig):
            # The checked table may be the response table, created on first submit
            if await _columns(config.table_name) is None:
                logger.warning(
                    "Unique check table %r does not exist yet; treating as empty",
                    config.table_name,
                )
                continue
            await _require(index, config.table_name, config.config_col)

    if errors:
        raise ConfigError(errors)
    logger.info("Verified %d dynamic field configs against the database", len(configs))
