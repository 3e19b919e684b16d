"""Public model re-exports for survey_fields.

Consumers should import from ``survey_fields.models`` rather than
reaching into sub-modules directly.
"""

# --- Configuration ---
from survey_fields.models.config import (
    ChoiceConfig,
    ConfigType,
    DynamicFieldConfig,
    ParamConfig,
    ResultPolicy,
    UniqueConfig,
)

# --- Runtime state ---
from survey_fields.models.state import (
    BoundValue,
    ChildFieldState,
    Choice,
    DynamicState,
    FieldBinding,
    FieldUpdates,
    ParentFieldState,
    ResolvedChoiceSet,
    SessionSnapshot,
    ValidationVerdict,
    VerdictState,
)

__all__ = [
    # Configuration
    "ChoiceConfig",
    "ConfigType",
    "DynamicFieldConfig",
    "ParamConfig",
    "ResultPolicy",
    "UniqueConfig",
    # Runtime state
    "BoundValue",
    "ChildFieldState",
    "Choice",
    "DynamicState",
    "FieldBinding",
    "FieldUpdates",
    "ParentFieldState",
    "ResolvedChoiceSet",
    "SessionSnapshot",
    "ValidationVerdict",
    "VerdictState",
]
