"""Runtime state models — what the resolver produces and the renderer consumes.

These models are intentionally decoupled from the ORM models in
``survey_db`` so that API consumers never see database internals.

  - Choice / ResolvedChoiceSet: the ordered options installed on a field
  - FieldBinding: which config drives which form field, and its parent
  - BoundValue: a URL-sourced value with its display text
  - ValidationVerdict: clean / warning / blocking outcome for one field
  - SessionSnapshot: saved progress, including dependent-choice hints
  - FieldUpdates: the changes a renderer should apply after an event
"""

from __future__ import annotations

import enum
from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, Field


# ---------------------------------------------------------------------------
# Choices
# ---------------------------------------------------------------------------

class Choice(BaseModel):
    """One selectable option: stored ``value`` and rendered ``text``."""

    value: Any
    text: Any


class ResolvedChoiceSet(BaseModel):
    """Ordered, de-duplicated choices for one field.

    Keyed by ``(config_id, parent_value)``; ``parent_value`` is None for
    independent fields.  ``config_id`` is the bound field name, which is
    unique across choice and param configs.
    """

    config_id: str
    parent_value: Any = None
    choices: list[Choice] = Field(default_factory=list)

    @property
    def key(self) -> tuple[str, Any]:
        return (self.config_id, hashable_value(self.parent_value))

    def values(self) -> list[Any]:
        return [c.value for c in self.choices]

    def __contains__(self, value: Any) -> bool:
        return any(c.value == value for c in self.choices)


def hashable_value(value: Any) -> Any:
    if isinstance(value, list):
        return tuple(value)
    if isinstance(value, dict):
        return tuple(sorted(value.items()))
    return value


# ---------------------------------------------------------------------------
# Bindings
# ---------------------------------------------------------------------------

class FieldBinding(BaseModel):
    """Links a configuration entry to the form field it drives.

    ``parent_field`` is set for dependent choice fields; the binding's
    choices must always match the parent's last committed value.
    """

    field_name: str
    config_index: int
    config_type: str
    parent_field: Optional[str] = None

    @property
    def is_dependent(self) -> bool:
        return self.parent_field is not None


class BoundValue(BaseModel):
    """A field value taken from the URL.

    ``value`` is what gets stored; ``text`` is the looked-up display text
    (equal to ``value`` when no display column is configured) and is only
    used for interpolation into survey content.
    """

    field_name: str
    value: Any
    text: Any


# ---------------------------------------------------------------------------
# Verdicts
# ---------------------------------------------------------------------------

class VerdictState(str, enum.Enum):
    """Severity of a validation outcome, in increasing order."""

    CLEAN = "clean"
    WARNING = "warning"
    BLOCKING = "blocking"


_SEVERITY = {VerdictState.CLEAN: 0, VerdictState.WARNING: 1, VerdictState.BLOCKING: 2}


class ValidationVerdict(BaseModel):
    """Validation outcome for one field.

    ``result_field`` names the form element that should display
    ``message`` (unique-value checks); when None the renderer shows the
    message inline on ``field``.
    """

    field: str
    state: VerdictState = VerdictState.CLEAN
    message: Optional[str] = None
    result_field: Optional[str] = None

    @classmethod
    def clean(cls, field: str, *, result_field: str | None = None) -> ValidationVerdict:
        return cls(field=field, result_field=result_field)

    @classmethod
    def warning(
        cls, field: str, message: str, *, result_field: str | None = None
    ) -> ValidationVerdict:
        return cls(
            field=field,
            state=VerdictState.WARNING,
            message=message,
            result_field=result_field,
        )

    @classmethod
    def blocking(
        cls, field: str, message: str, *, result_field: str | None = None
    ) -> ValidationVerdict:
        return cls(
            field=field,
            state=VerdictState.BLOCKING,
            message=message,
            result_field=result_field,
        )

    @property
    def is_blocking(self) -> bool:
        return self.state == VerdictState.BLOCKING

    @property
    def is_clean(self) -> bool:
        return self.state == VerdictState.CLEAN

    @staticmethod
    def worst(field: str, verdicts: list[ValidationVerdict]) -> ValidationVerdict:
        """Return the most severe verdict (first one wins on ties)."""
        if not verdicts:
            return ValidationVerdict.clean(field)
        return max(verdicts, key=lambda v: _SEVERITY[v.state])


# ---------------------------------------------------------------------------
# Progress snapshot
# ---------------------------------------------------------------------------

class ParentFieldState(BaseModel):
    """Saved state of a field that other fields depend on."""

    value: Any = None
    child_fields: list[str] = Field(default_factory=list)
    # Choices installed on the parent itself (None for URL-bound parents)
    choices: Optional[list[Choice]] = None


class ChildFieldState(BaseModel):
    """Saved state of a dependent field.

    ``choices`` is a display hint only: restore always re-resolves the
    child from the stored parent value.
    """

    parent_field: str
    value: Any = None
    choices: list[Choice] = Field(default_factory=list)


class DynamicState(BaseModel):
    """Derived dynamic-field metadata stored alongside the answers."""

    parent_fields: dict[str, ParentFieldState] = Field(default_factory=dict)
    child_choices: dict[str, ChildFieldState] = Field(default_factory=dict)


class SessionSnapshot(BaseModel):
    """In-progress answers plus the dynamic state needed to rebuild them."""

    field_values: dict[str, Any] = Field(default_factory=dict)
    dynamic_state: DynamicState = Field(default_factory=DynamicState)
    saved_at: Optional[datetime] = None


# ---------------------------------------------------------------------------
# Renderer updates
# ---------------------------------------------------------------------------

class FieldUpdates(BaseModel):
    """Changes for the form renderer to apply, in the order they occurred.

    ``choices`` and ``values`` hold the latest state per touched field.
    ``unavailable`` lists fields whose lookup failed; they should render
    empty with a neutral placeholder.
    """

    choices: dict[str, list[Choice]] = Field(default_factory=dict)
    values: dict[str, Any] = Field(default_factory=dict)
    verdicts: list[ValidationVerdict] = Field(default_factory=list)
    messages: dict[str, Optional[str]] = Field(default_factory=dict)
    unavailable: list[str] = Field(default_factory=list)
