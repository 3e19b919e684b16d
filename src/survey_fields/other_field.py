"""Check for the free-text box behind an "Other" choice.

A comment made only of digits (e.g. ``"123"``) is rejected so that
respondents describe their answer in words.
"""

from __future__ import annotations

from typing import Any

from survey_fields.constants import NUMERIC_OTHER_MESSAGE, OTHER_VALUE
from survey_fields.models.state import ValidationVerdict


def _selected_other(value: Any) -> bool:
    if isinstance(value, (list, tuple)):
        return OTHER_VALUE in value
    return value == OTHER_VALUE


def check_other_text(field: str, value: Any, comment: Any) -> ValidationVerdict:
    """Blocking verdict when "other" is picked and its comment is all digits."""
    if not _selected_other(value) or comment is None:
        return ValidationVerdict.clean(field)
    text = str(comment).strip()
    if text and text.isdigit():
        return ValidationVerdict.blocking(field, NUMERIC_OTHER_MESSAGE)
    return ValidationVerdict.clean(field)
