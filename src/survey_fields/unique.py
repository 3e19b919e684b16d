"""UniquenessValidator — advisory duplicate detection for free-text fields.

Candidate and stored values go through the same :func:`normalize`
pipeline before comparison.  Checks made while the user types are
advisory.  The check made at submission time reads the latest stored
data and is the one that decides.
"""

from __future__ import annotations

import logging
import re
from typing import Any

from survey_fields.constants import DUPLICATE_MESSAGE
from survey_fields.errors import DataSourceError
from survey_fields.interfaces import DataSource
from survey_fields.models.config import ResultPolicy, UniqueConfig
from survey_fields.models.state import ValidationVerdict

logger = logging.getLogger(__name__)

_STRIP = re.compile(r"[^\w\s]|_", re.UNICODE)
_SPACES = re.compile(r"\s+", re.UNICODE)


def normalize(value: Any) -> str:
    """Lowercase, drop everything but letters/digits/whitespace, squeeze spaces.

    >>> normalize("  Bug   In Parser!! ")
    'bug in parser'
    """
    if value is None:
        return ""
    text = str(value).lower()
    text = _STRIP.sub("", text)
    text = _SPACES.sub(" ", text)
    return text.strip()


class UniquenessValidator:
    """Runs unique-type configs against a data source."""

    def __init__(self, datasource: DataSource) -> None:
        self._datasource = datasource

    async def check(
        self,
        config: UniqueConfig,
        candidate: Any,
        *,
        authoritative: bool = False,
    ) -> ValidationVerdict:
        """Verdict for ``candidate``.

        Args:
            authoritative: submission-time check.  Lookup failures
                propagate instead of degrading to a clean verdict.

        Raises:
            DataSourceError: only when ``authoritative`` is set.
        """
        field = config.field
        normalized = normalize(candidate)
        if not normalized:
            return ValidationVerdict.clean(field, result_field=config.result_field)

        try:
            duplicate = await self._datasource.exists_value(
                config.table_name, config.config_col, normalized
            )
        except DataSourceError as exc:
            if authoritative:
                raise
            logger.warning("Advisory unique check on %s skipped: %s", field, exc)
            return ValidationVerdict.clean(field, result_field=config.result_field)

        if not duplicate:
            return ValidationVerdict.clean(field, result_field=config.result_field)

        if config.result == ResultPolicy.STOP:
            return ValidationVerdict.blocking(
                field, DUPLICATE_MESSAGE, result_field=config.result_field
            )
        return ValidationVerdict.warning(
            field, DUPLICATE_MESSAGE, result_field=config.result_field
        )
