"""Exception types raised by the dynamic-field SDK.

Propagation policy:
  - ``ConfigError`` aborts survey initialisation; no partial dynamic-field
    state is ever shown.
  - ``DataSourceError`` is field-local: the affected field is rendered
    with no choices and the session continues.
  - ``ValidationFailure`` is expected and user-facing.  It carries the
    blocking verdicts and is turned into a structured response at the
    HTTP boundary; it is never logged as an error.
  - ``PoolExhaustedError`` (re-exported from ``survey_db``) is transient
    and retried with backoff before being surfaced as "try again".
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from survey_db.engine import PoolExhaustedError

if TYPE_CHECKING:
    from survey_fields.models.state import ValidationVerdict

__all__ = [
    "SurveyFieldError",
    "ConfigError",
    "DataSourceError",
    "ValidationFailure",
    "PoolExhaustedError",
]


class SurveyFieldError(Exception):
    """Base class for SDK errors."""


class ConfigError(SurveyFieldError):
    """The dynamic configuration is malformed or inconsistent.

    ``errors`` lists every problem found, one message per entry, so the
    operator can fix the whole file in one pass.
    """

    def __init__(self, errors: list[str] | str) -> None:
        if isinstance(errors, str):
            errors = [errors]
        self.errors = list(errors)
        super().__init__("; ".join(self.errors))


class DataSourceError(SurveyFieldError):
    """A lookup query failed or referenced a missing table/column."""

    def __init__(
        self,
        message: str,
        *,
        table: str | None = None,
        column: str | None = None,
    ) -> None:
        self.table = table
        self.column = column
        super().__init__(message)


class ValidationFailure(SurveyFieldError):
    """Submission rejected by one or more blocking verdicts."""

    def __init__(self, verdicts: list[ValidationVerdict]) -> None:
        self.verdicts = list(verdicts)
        fields = ", ".join(v.field for v in self.verdicts)
        super().__init__(f"Submission blocked by: {fields}")
