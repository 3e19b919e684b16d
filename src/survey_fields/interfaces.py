"""Abstract interfaces for the resolver's external collaborators.

The SDK never talks to a database driver or a browser directly.  It
consumes a ``DataSource`` for table lookups and calls back into
``FormHooks`` to push choices, values and messages to whatever renders
the form.

Typical integration flow::

    datasource = SqlDataSource(pool)
    configs = ConfigLoader().load_file("dynamic_config.yaml")
    await verify(configs, datasource)

    hooks = CollectingHooks()
    session = FormSession(
        session_id, configs, datasource, hooks, progress=store,
    )
    await session.start(url_params)
    # ... renderer applies hooks.drain() ...

    await session.on_value_changed("package", "batchLLM")
    updates = hooks.drain()       # new "version" choices
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Iterable

from survey_fields.models.state import Choice, FieldUpdates, ValidationVerdict


class DataSource(ABC):
    """Read access to configuration tables plus the response writer.

    Every method is a suspension point; implementations must not hold a
    connection across calls.  Failures are raised as
    :class:`~survey_fields.errors.DataSourceError`, except pool
    exhaustion which surfaces as ``PoolExhaustedError``.
    """

    @abstractmethod
    async def select_distinct(
        self,
        table: str,
        column: str,
        *,
        label_column: str | None = None,
    ) -> list[Choice]:
        """Distinct non-null values of ``table.column`` in storage order.

        ``label_column`` supplies each choice's text; without it the
        value doubles as the label.
        """
        ...

    @abstractmethod
    async def select_joined(
        self,
        table: str,
        column: str,
        *,
        parent_table: str,
        parent_id_column: str,
        parent_column: str,
        parent_value: Any,
        parent_key_column: str = "id",
        label_column: str | None = None,
    ) -> list[Choice]:
        """Distinct ``table.column`` values whose parent row matches.

        Rows join on ``table.parent_id_column = parent_table.parent_key_column``
        and are kept where ``parent_table.parent_column = parent_value``.
        """
        ...

    @abstractmethod
    async def contains_value(self, table: str, column: str, value: Any) -> bool:
        """Whether ``value`` appears verbatim in ``table.column``."""
        ...

    @abstractmethod
    async def lookup_display(
        self,
        table: str,
        column: str,
        value: Any,
        display_column: str,
    ) -> Any:
        """Display text stored beside ``value``; None when there is none."""
        ...

    @abstractmethod
    async def exists_value(
        self, table: str, column: str, normalized_value: str
    ) -> bool:
        """Whether any stored value normalizes to ``normalized_value``."""
        ...

    @abstractmethod
    async def insert_response(
        self,
        table: str,
        row: dict[str, Any],
        *,
        session_id: str,
        ip_address: str,
        text_fields: Iterable[str] = (),
    ) -> str:
        """Append one completed response; returns the table written to."""
        ...

    @abstractmethod
    async def column_names(self, table: str) -> list[str]:
        """Columns of ``table``; raises ``DataSourceError`` if it is missing."""
        ...


class FormHooks(ABC):
    """Calls the resolver makes into the form renderer.

    Hooks are synchronous: they only record or apply UI state and must
    never perform I/O, so that invalidating stale choices cannot be
    interleaved with another event.
    """

    @abstractmethod
    def set_choices(self, field: str, choices: list[Choice]) -> None:
        """Replace the choice list of ``field``."""
        ...

    @abstractmethod
    def set_value(self, field: str, value: Any) -> None:
        """Set (or clear, with None) the current value of ``field``."""
        ...

    @abstractmethod
    def show_result(self, field: str, message: str | None) -> None:
        """Write ``message`` into a result element; None clears it."""
        ...

    @abstractmethod
    def show_verdict(self, verdict: ValidationVerdict) -> None:
        """Display a validation outcome beside its field."""
        ...

    @abstractmethod
    def mark_unavailable(self, field: str) -> None:
        """Render ``field`` empty with a neutral placeholder."""
        ...


class CollectingHooks(FormHooks):
    """Buffers hook calls so an HTTP handler can return them as a batch.

    Later calls for the same field overwrite earlier ones; ``drain``
    returns everything collected since the previous drain.
    """

    def __init__(self) -> None:
        self._updates = FieldUpdates()

    def set_choices(self, field: str, choices: list[Choice]) -> None:
        self._updates.choices[field] = list(choices)
        if field in self._updates.unavailable and choices:
            self._updates.unavailable.remove(field)

    def set_value(self, field: str, value: Any) -> None:
        self._updates.values[field] = value

    def show_result(self, field: str, message: str | None) -> None:
        self._updates.messages[field] = message

    def show_verdict(self, verdict: ValidationVerdict) -> None:
        self._updates.verdicts = [
            v for v in self._updates.verdicts if v.field != verdict.field
        ]
        self._updates.verdicts.append(verdict)

    def mark_unavailable(self, field: str) -> None:
        if field not in self._updates.unavailable:
            self._updates.unavailable.append(field)

    def drain(self) -> FieldUpdates:
        updates, self._updates = self._updates, FieldUpdates()
        return updates
