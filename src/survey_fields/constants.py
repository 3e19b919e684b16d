"""Constants shared across the dynamic-field SDK.

Several values can be overridden via environment variables so that
deployments can adjust wording and timing without code changes.
"""

import os

# Key column of a parent table that a child's ``parent_id_col`` refers to.
DEFAULT_PARENT_KEY_COLUMN = os.getenv("DEFAULT_PARENT_KEY_COLUMN", "id")

# Value the form renderer uses for the "Other (describe)" choice.
OTHER_VALUE = "other"

# Shown on an "other" comment that contains nothing but digits.
NUMERIC_OTHER_MESSAGE = os.getenv(
    "NUMERIC_OTHER_MESSAGE", "Please enter text, not just numbers"
)

# Shown (in the configured result field) when a unique field collides.
DUPLICATE_MESSAGE = os.getenv(
    "DUPLICATE_MESSAGE", "A matching entry already exists."
)

# Attached to a dependent field whose value no longer matches its parent.
STALE_CHOICE_MESSAGE = "Please choose again: the available options have changed."

# Attached to a bound URL parameter that does not exist in its table.
INVALID_PARAM_MESSAGE = "The link parameter '{name}' was not recognised and has been ignored."

# Reactive uniqueness checks wait this long for typing to settle (seconds).
DEFAULT_UNIQUE_DEBOUNCE = float(os.getenv("UNIQUE_DEBOUNCE_MS", "300")) / 1000.0
