"""ChoiceResolver — populates choice fields from configuration tables.

One resolver belongs to one form session.  Resolved sets are cached per
``(field, parent_value)`` and dropped as soon as the parent moves to a
different value, so a child can never show choices for a stale parent.
"""

from __future__ import annotations

import logging
from typing import Any

from survey_fields.interfaces import DataSource
from survey_fields.models.config import ChoiceConfig, ParamConfig
from survey_fields.models.state import Choice, ResolvedChoiceSet, hashable_value

logger = logging.getLogger(__name__)


def is_empty(value: Any) -> bool:
    """Unset, blank string, or empty list."""
    if value is None:
        return True
    if isinstance(value, str):
        return value.strip() == ""
    if isinstance(value, (list, tuple, dict)):
        return len(value) == 0
    return False


def dedupe(choices: list[Choice]) -> list[Choice]:
    """Drop repeated values, keeping the first occurrence's position."""
    seen: set[Any] = set()
    out: list[Choice] = []
    for choice in choices:
        key = hashable_value(choice.value)
        if key in seen:
            continue
        seen.add(key)
        out.append(choice)
    return out


class ChoiceResolver:
    """Resolves and caches choice sets for one session.

    Args:
        datasource: lookup backend
    """

    def __init__(self, datasource: DataSource) -> None:
        self._datasource = datasource
        self._cache: dict[tuple[str, Any], ResolvedChoiceSet] = {}

    async def resolve_initial(self, config: ChoiceConfig) -> ResolvedChoiceSet:
        """Choices for an independent field: every distinct column value.

        Raises:
            DataSourceError: propagated to the caller, nothing is cached.
        """
        key = (config.field, None)
        cached = self._cache.get(key)
        if cached is not None:
            return cached

        choices = await self._datasource.select_distinct(
            config.table_name,
            config.config_col,
            label_column=config.display_col,
        )
        resolved = ResolvedChoiceSet(config_id=config.field, choices=dedupe(choices))
        self._cache[key] = resolved
        logger.debug("Resolved %d choices for %s", len(resolved.choices), config.field)
        return resolved

    async def resolve_for_parent(
        self,
        config: ChoiceConfig,
        parent: ChoiceConfig | ParamConfig,
        parent_value: Any,
    ) -> ResolvedChoiceSet:
        """Choices for a dependent field given its parent's current value.

        An empty parent yields an empty set without touching the database.

        Raises:
            DataSourceError: propagated to the caller, nothing is cached.
        """
        if is_empty(parent_value):
            return ResolvedChoiceSet(config_id=config.field, parent_value=None)

        key = (config.field, hashable_value(parent_value))
        cached = self._cache.get(key)
        if cached is not None:
            return cached

        choices = await self._datasource.select_joined(
            config.table_name,
            config.config_col,
            parent_table=config.parent_table_name,
            parent_id_column=config.parent_id_col,
            parent_column=parent.config_col,
            parent_value=parent_value,
            parent_key_column=config.parent_key_col,
            label_column=config.display_col,
        )
        resolved = ResolvedChoiceSet(
            config_id=config.field,
            parent_value=parent_value,
            choices=dedupe(choices),
        )
        # Only the current parent value is kept for a field
        self.invalidate(config.field)
        self._cache[key] = resolved
        logger.debug(
            "Resolved %d choices for %s (parent=%r)",
            len(resolved.choices), config.field, parent_value,
        )
        return resolved

    def cached(self, field: str, parent_value: Any = None) -> ResolvedChoiceSet | None:
        return self._cache.get((field, hashable_value(parent_value)))

    def invalidate(self, field: str, *, keep: Any = None) -> None:
        """Forget every cached set for ``field`` except the one for ``keep``."""
        keep_key = hashable_value(keep)
        for key in [k for k in self._cache if k[0] == field]:
            if keep is not None and key[1] == keep_key:
                continue
            del self._cache[key]

    def clear(self) -> None:
        self._cache.clear()
