"""Dynamic field configuration models.

Each entry of the ``dynamic_config`` list becomes one typed record:

  - ChoiceConfig: populate a dropdown/radio from the distinct values of a
    table column, optionally filtered by a parent field's selection
  - ParamConfig: seed a field from a URL query parameter, validated against
    a table column, with optional display text for interpolation
  - UniqueConfig: check a typed value against the values already stored
    in a column and warn or block on a duplicate

The discriminated ``DynamicFieldConfig`` union uses ``config_type`` as its
discriminator so Pydantic deserialises YAML/JSON dicts directly into the
correct type.  Unknown keys are rejected, which catches misspelt or
alternative key names (e.g. ``group_col``) at load time.
"""

import enum
from typing import Annotated, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, model_validator

from survey_fields.constants import DEFAULT_PARENT_KEY_COLUMN


class ConfigType(str, enum.Enum):
    """The closed set of configuration kinds."""

    CHOICE = "choice"
    PARAM = "param"
    UNIQUE = "unique"


class ResultPolicy(str, enum.Enum):
    """What a duplicate value in a unique field does to submission."""

    WARN = "warn"
    STOP = "stop"


class _BaseFieldConfig(BaseModel):
    """Fields shared by every configuration kind."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    table_name: str = Field(min_length=1)
    config_col: str = Field(min_length=1)
    # Form field the entry binds to; defaults to the column name
    field_name: Optional[str] = None

    @property
    def field(self) -> str:
        """Name of the form field this entry drives."""
        return self.field_name or self.config_col


class ChoiceConfig(_BaseFieldConfig):
    """Choices sourced from ``table_name.config_col``.

    With ``parent_table_name``/``parent_id_col`` set, the field is a
    dependent child: its rows join to the parent table through
    ``parent_id_col -> parent_key_col`` and only rows whose parent matches
    the parent field's current value are offered.
    """

    config_type: Literal["choice"] = "choice"
    parent_table_name: Optional[str] = None
    parent_id_col: Optional[str] = None
    parent_key_col: str = DEFAULT_PARENT_KEY_COLUMN
    # Column holding the label shown for each value (value is used when unset)
    display_col: Optional[str] = None

    @model_validator(mode="after")
    def _parent_pair(self):
        if (self.parent_table_name is None) != (self.parent_id_col is None):
            raise ValueError(
                "parent_table_name and parent_id_col must be given together"
            )
        return self

    @property
    def has_parent(self) -> bool:
        return self.parent_table_name is not None


class ParamConfig(_BaseFieldConfig):
    """Field seeded from the URL parameter named ``config_col``."""

    config_type: Literal["param"] = "param"
    display_col: Optional[str] = None


class UniqueConfig(_BaseFieldConfig):
    """Duplicate check of a typed value against ``table_name.config_col``."""

    config_type: Literal["unique"] = "unique"
    result: ResultPolicy
    # Form element that displays the duplicate message
    result_field: Optional[str] = None


# Discriminated union: Pydantic picks the right type based on "config_type".
DynamicFieldConfig = Annotated[
    Union[ChoiceConfig, ParamConfig, UniqueConfig],
    Field(discriminator="config_type"),
]
