"""ParamBinder — seeds fields from URL query parameters.

A referral link such as ``?source=github`` sets the ``source`` field to
``"github"`` when that value exists in the configured table.  Unknown
values are ignored with a warning verdict; they never block submission
or abort session start.
"""

from __future__ import annotations

import logging
from typing import Any, Mapping
from urllib.parse import parse_qs

from survey_fields.choices import is_empty
from survey_fields.constants import INVALID_PARAM_MESSAGE
from survey_fields.errors import DataSourceError
from survey_fields.interfaces import DataSource
from survey_fields.models.config import ParamConfig
from survey_fields.models.state import BoundValue, ValidationVerdict

logger = logging.getLogger(__name__)


def parse_query(query: str) -> dict[str, Any]:
    """Parse a raw query string.

    Single keys map to a string; repeated keys map to the list of values.
    """
    query = query.lstrip("?")
    parsed = parse_qs(query, keep_blank_values=True)
    return {k: v[0] if len(v) == 1 else v for k, v in parsed.items() if k}


def first_value(raw: Any) -> Any:
    """First element of a repeated parameter, else the value itself."""
    if isinstance(raw, (list, tuple)):
        return raw[0] if raw else None
    return raw


class ParamBinder:
    """Validates URL parameters for one session.

    Verdicts for rejected parameters accumulate in :attr:`verdicts`.
    """

    def __init__(self, datasource: DataSource) -> None:
        self._datasource = datasource
        self.verdicts: list[ValidationVerdict] = []

    async def bind(
        self,
        config: ParamConfig,
        url_params: Mapping[str, Any],
    ) -> BoundValue | None:
        """Bound value for ``config``, or None when absent or invalid."""
        raw = first_value(url_params.get(config.config_col))
        if is_empty(raw):
            return None
        value = raw.strip() if isinstance(raw, str) else raw

        try:
            found = await self._datasource.contains_value(
                config.table_name, config.config_col, value
            )
            text = value
            if found and config.display_col:
                looked_up = await self._datasource.lookup_display(
                    config.table_name, config.config_col, value, config.display_col
                )
                if looked_up is not None:
                    text = looked_up
        except DataSourceError as exc:
            logger.error("Param lookup failed for %s: %s", config.field, exc)
            self._reject(config)
            return None

        if not found:
            logger.info(
                "Ignoring URL parameter %s=%r: not in %s.%s",
                config.config_col, value, config.table_name, config.config_col,
            )
            self._reject(config)
            return None

        return BoundValue(field_name=config.field, value=value, text=text)

    def _reject(self, config: ParamConfig) -> None:
        self.verdicts.append(
            ValidationVerdict.warning(
                config.field,
                INVALID_PARAM_MESSAGE.format(name=config.config_col),
            )
        )
