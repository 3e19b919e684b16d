"""FormSession — per-session orchestration of the dynamic-field resolver.

A ``FormSession`` owns every resolved choice set, bound parameter and
verdict for one respondent.  Nothing is shared between sessions except
the data source (and through it the connection pool).

Control flow::

    start(url_params)
      1. ParamBinder      — URL values first, invalid ones become warnings
      2. ChoiceResolver   — independent fields, then dependents in order
      3. progress restore — stored answers applied, dependents re-resolved
    on_value_changed(field, value)
      - descendants' choices cleared immediately, before any I/O
      - events run one at a time in arrival order; a newer event for the
        same field supersedes a queued older one
      - children re-resolved for the new value, stale child values pruned
      - progress saved in the background
    validate_question(field, value)  — advisory, debounced
    submit(data)                     — authoritative; raises ValidationFailure

The event lock is an ``asyncio.Lock``, whose waiters are woken in FIFO
order.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, Callable, Mapping, Sequence

from survey_fields.choices import ChoiceResolver, is_empty
from survey_fields.constants import DEFAULT_UNIQUE_DEBOUNCE, STALE_CHOICE_MESSAGE
from survey_fields.errors import DataSourceError, ValidationFailure
from survey_fields.interfaces import CollectingHooks, DataSource, FormHooks
from survey_fields.loader import build_bindings
from survey_fields.models.config import (
    ChoiceConfig,
    DynamicFieldConfig,
    ParamConfig,
    UniqueConfig,
)
from survey_fields.models.state import (
    BoundValue,
    ChildFieldState,
    DynamicState,
    ParentFieldState,
    ResolvedChoiceSet,
    SessionSnapshot,
    ValidationVerdict,
    VerdictState,
)
from survey_fields.other_field import check_other_text
from survey_fields.params import ParamBinder
from survey_fields.progress import SessionProgressStore
from survey_fields.retry import RetryPolicy
from survey_fields.session_log import ZONE_DATABASE, log_extra
from survey_fields.unique import UniquenessValidator

logger = logging.getLogger(__name__)

# SurveyJS stores the "Other" free text under "<question>-Comment"
COMMENT_SUFFIX = "-Comment"


class FormSession:
    """Dynamic-field state machine for one survey session.

    Args:
        session_id: client-held session key
        configs: loaded dynamic configuration, in declaration order
        datasource: lookup backend shared across sessions
        hooks: renderer callbacks for this session
        progress: snapshot store; None disables save/restore
        write_table: response table; None skips the insert on submit
        other_fields: questions with an "Other" free-text option
        retry: pool-exhaustion retry policy
        unique_debounce: seconds a reactive unique check waits for typing
            to settle
    """

    def __init__(
        self,
        session_id: str,
        configs: Sequence[DynamicFieldConfig],
        datasource: DataSource,
        hooks: FormHooks,
        *,
        progress: SessionProgressStore | None = None,
        write_table: str | None = None,
        other_fields: Sequence[str] = (),
        retry: RetryPolicy | None = None,
        unique_debounce: float = DEFAULT_UNIQUE_DEBOUNCE,
    ) -> None:
        self.session_id = session_id
        self.configs = list(configs)
        self.bindings = build_bindings(self.configs)
        self.hooks = hooks
        self._datasource = datasource
        self._progress = progress
        self._write_table = write_table
        self._other_fields = list(other_fields)
        self._retry = retry or RetryPolicy()
        self._debounce = unique_debounce

        self._resolver = ChoiceResolver(datasource)
        self._binder = ParamBinder(datasource)
        self._unique = UniquenessValidator(datasource)

        # --- Config indexes ---
        self._choice_configs: dict[str, ChoiceConfig] = {}
        self._param_configs: dict[str, ParamConfig] = {}
        self._unique_configs: dict[str, list[UniqueConfig]] = {}
        self._parent_of: dict[str, str] = {}
        self._children_of: dict[str, list[str]] = {}
        for binding in self.bindings:
            config = self.configs[binding.config_index]
            if isinstance(config, ChoiceConfig):
                self._choice_configs[binding.field_name] = config
            elif isinstance(config, ParamConfig):
                self._param_configs[binding.field_name] = config
            elif isinstance(config, UniqueConfig):
                self._unique_configs.setdefault(binding.field_name, []).append(config)
            if binding.parent_field is not None:
                self._parent_of[binding.field_name] = binding.parent_field
                self._children_of.setdefault(binding.parent_field, []).append(
                    binding.field_name
                )

        # --- Session state ---
        self.values: dict[str, Any] = {}
        self.bound: dict[str, BoundValue] = {}
        self.choices: dict[str, ResolvedChoiceSet] = {}
        self.unavailable: set[str] = set()
        self.verdicts: dict[str, ValidationVerdict] = {}
        self.started = False
        self.completed = False
        self.abandoned = False
        self.last_active = time.monotonic()

        self._lock = asyncio.Lock()
        # Event counters used to drop superseded work
        self._event_seq: dict[str, int] = {}
        # Sequence number of the last event whose value was stored, per field
        self._applied_seq: dict[str, int] = {}
        self._check_seq: dict[str, int] = {}
        # Value of the newest event seen per field (set before queuing)
        self._latest: dict[str, Any] = {}

    # ------------------------------------------------------------------
    # Lookup helpers
    # ------------------------------------------------------------------

    def _config_for(self, field: str) -> ChoiceConfig | ParamConfig | None:
        return self._choice_configs.get(field) or self._param_configs.get(field)

    def _descendants(self, field: str) -> list[str]:
        out: list[str] = []
        for child in self._children_of.get(field, []):
            out.append(child)
            out.extend(self._descendants(child))
        return out

    def _newest_value(self, field: str) -> Any:
        """Value ``field`` will hold once its queued events have run."""
        if self._event_seq.get(field, 0) != self._applied_seq.get(field, 0):
            return self._latest.get(field)
        return self.values.get(field)

    def dependent_fields(self) -> list[str]:
        return list(self._parent_of)

    def interpolation_context(self) -> dict[str, Any]:
        """Display texts of bound parameters, keyed by field name."""
        return {name: bound.text for name, bound in self.bound.items()}

    # ------------------------------------------------------------------
    # Start / restore
    # ------------------------------------------------------------------

    async def start(self, url_params: Mapping[str, Any] | None = None) -> bool:
        """Bind URL params, resolve initial choices, restore saved progress.

        Returns True when a saved snapshot was applied.
        """
        self._touch()
        async with self._lock:
            url_params = url_params or {}

            for field, config in self._param_configs.items():
                bound = await self._retry.run(self._binder.bind, config, url_params)
                if bound is None:
                    continue
                self.bound[field] = bound
                self.values[field] = bound.value
                self.hooks.set_value(field, bound.value)
            for verdict in self._binder.verdicts:
                self.verdicts[verdict.field] = verdict
                self.hooks.show_verdict(verdict)
                logger.warning(
                    "URL parameter for %s rejected: %s", verdict.field, verdict.message,
                    extra=log_extra(self.session_id),
                )

            for field, config in self._choice_configs.items():
                if field in self._parent_of:
                    await self._resolve_child(field)
                else:
                    await self._resolve_independent(field, config)

            snapshot = None
            if self._progress is not None:
                snapshot = await self._retry.run(self._progress.restore, self.session_id)
            if snapshot is not None:
                await self._apply_snapshot(snapshot)

            self.started = True
            logger.info(
                "Session %s started (%d bound params, restored=%s)",
                self.session_id, len(self.bound), snapshot is not None,
                extra=log_extra(self.session_id),
            )
            return snapshot is not None

    async def restore(self, snapshot: SessionSnapshot) -> None:
        """Apply a snapshot; dependent choices are re-resolved, not copied."""
        self._touch()
        async with self._lock:
            await self._apply_snapshot(snapshot)

    async def _apply_snapshot(self, snapshot: SessionSnapshot) -> None:
        for field, value in snapshot.field_values.items():
            # A value bound from the current URL wins over a stored one
            if field in self.bound:
                continue
            self.values[field] = value
            self.hooks.set_value(field, value)

        # Configs are parent-first, so each child sees its restored parent
        for field in self._choice_configs:
            if field in self._parent_of:
                await self._resolve_child(field)
            else:
                self._prune(field)

    # ------------------------------------------------------------------
    # Value changes
    # ------------------------------------------------------------------

    async def on_value_changed(self, field: str, value: Any) -> None:
        """Commit a field value and refresh everything that depends on it."""
        self._touch()
        # Clear dependents before yielding so no stale choices stay visible
        previous = self._newest_value(field)
        seq = self._event_seq[field] = self._event_seq.get(field, 0) + 1
        self._latest[field] = value
        if field in self._children_of and value != previous:
            for child in self._descendants(field):
                self._invalidate(child)

        async with self._lock:
            if self._event_seq.get(field) != seq:
                logger.debug("Skipping superseded change of %s", field)
                return
            self._applied_seq[field] = seq
            self._store(field, value)
            for child in self._children_of.get(field, []):
                await self._resolve_child(child)
            self._schedule_save()

    def _store(self, field: str, value: Any) -> None:
        if is_empty(value):
            self.values.pop(field, None)
        else:
            self.values[field] = value

    def _invalidate(self, field: str) -> None:
        self.choices.pop(field, None)
        self._resolver.invalidate(field)
        self.hooks.set_choices(field, [])

    async def _resolve_independent(self, field: str, config: ChoiceConfig) -> None:
        try:
            resolved = await self._retry.run(self._resolver.resolve_initial, config)
        except DataSourceError as exc:
            self._mark_unavailable(field, exc)
            return
        self._install(field, resolved)

    async def _resolve_child(self, field: str) -> None:
        """Re-resolve ``field`` from its parent's current value, then recurse."""
        config = self._choice_configs[field]
        parent_field = self._parent_of[field]
        parent_config = self._config_for(parent_field)
        parent_value = self.values.get(parent_field)
        generation = self._event_seq.get(parent_field, 0)
        try:
            resolved = await self._retry.run(
                self._resolver.resolve_for_parent, config, parent_config, parent_value
            )
        except DataSourceError as exc:
            self._mark_unavailable(field, exc)
        else:
            if (
                self._event_seq.get(parent_field, 0) != generation
                or self._newest_value(parent_field) != parent_value
            ):
                # A newer parent value is queued and will resolve again
                return
            self._install(field, resolved)
        for child in self._children_of.get(field, []):
            await self._resolve_child(child)

    def _install(self, field: str, resolved: ResolvedChoiceSet) -> None:
        self.unavailable.discard(field)
        self.choices[field] = resolved
        self.hooks.set_choices(field, resolved.choices)
        self._prune(field)

    def _mark_unavailable(self, field: str, exc: DataSourceError) -> None:
        logger.error(
            "Choices for %s unavailable: %s", field, exc,
            extra=log_extra(self.session_id, ZONE_DATABASE),
        )
        self.choices.pop(field, None)
        self.unavailable.add(field)
        self.hooks.set_choices(field, [])
        self.hooks.mark_unavailable(field)
        self._prune(field)

    def _prune(self, field: str) -> None:
        """Clear the part of ``field``'s value missing from its choices."""
        if field not in self.values:
            return
        resolved = self.choices.get(field)
        allowed = resolved.values() if resolved is not None else []
        if resolved is None and field not in self.unavailable:
            return
        current = self.values[field]
        if isinstance(current, list):
            kept = [v for v in current if v in allowed]
            if kept == current:
                return
            new_value = kept or None
        elif current in allowed:
            return
        else:
            new_value = None
        logger.debug("Pruning stale value of %s: %r", field, current)
        self._store(field, new_value)
        self.hooks.set_value(field, new_value)

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------

    async def validate_question(
        self,
        field: str,
        value: Any,
        *,
        comment: Any = None,
    ) -> ValidationVerdict | None:
        """Advisory verdict for one question while the user edits it.

        Returns None when a newer check for the same field arrived during
        the debounce window.
        """
        self._touch()
        verdicts: list[ValidationVerdict] = []
        if field in self._other_fields or comment is not None:
            verdicts.append(check_other_text(field, value, comment))

        configs = self._unique_configs.get(field, [])
        if configs:
            seq = self._check_seq[field] = self._check_seq.get(field, 0) + 1
            if self._debounce > 0:
                await asyncio.sleep(self._debounce)
            if self._check_seq.get(field) != seq:
                return None
            for config in configs:
                verdict = await self._retry.run(self._unique.check, config, value)
                if config.result_field:
                    self.hooks.show_result(config.result_field, verdict.message)
                verdicts.append(verdict)

        verdict = ValidationVerdict.worst(field, verdicts)
        self.verdicts[field] = verdict
        self.hooks.show_verdict(verdict)
        return verdict

    async def _final_verdicts(self, row: Mapping[str, Any]) -> list[ValidationVerdict]:
        verdicts: list[ValidationVerdict] = []

        for field, configs in self._unique_configs.items():
            for config in configs:
                verdict = await self._retry.run(
                    self._unique.check, config, row.get(field), authoritative=True
                )
                if config.result_field:
                    self.hooks.show_result(config.result_field, verdict.message)
                verdicts.append(verdict)

        for field in self._other_fields:
            verdicts.append(
                check_other_text(field, row.get(field), row.get(field + COMMENT_SUFFIX))
            )

        for field in self._parent_of:
            verdicts.append(await self._check_dependent(field, row))

        return [v for v in verdicts if not v.is_clean]

    async def _check_dependent(
        self, field: str, row: Mapping[str, Any]
    ) -> ValidationVerdict:
        """A submitted child value must belong to its submitted parent."""
        value = row.get(field)
        if is_empty(value):
            return ValidationVerdict.clean(field)
        parent_field = self._parent_of[field]
        try:
            resolved = await self._retry.run(
                self._resolver.resolve_for_parent,
                self._choice_configs[field],
                self._config_for(parent_field),
                row.get(parent_field),
            )
        except DataSourceError as exc:
            logger.error(
                "Cannot verify %s against %s: %s", field, parent_field, exc,
                extra=log_extra(self.session_id, ZONE_DATABASE),
            )
            return ValidationVerdict.clean(field)
        submitted = value if isinstance(value, list) else [value]
        if all(v in resolved for v in submitted):
            return ValidationVerdict.clean(field)
        return ValidationVerdict.blocking(field, STALE_CHOICE_MESSAGE)

    # ------------------------------------------------------------------
    # Submit / abandon
    # ------------------------------------------------------------------

    async def submit(
        self,
        data: Mapping[str, Any],
        *,
        ip_address: str = "0.0.0.0",
    ) -> list[ValidationVerdict]:
        """Validate against current data and store the response.

        Returns the non-blocking warnings.

        Raises:
            ValidationFailure: one or more blocking verdicts; nothing is
                written and the session stays open.
        """
        self._touch()
        async with self._lock:
            row = dict(data)
            # Hidden fields seeded from the URL
            for field, bound in self.bound.items():
                row.setdefault(field, bound.value)

            verdicts = await self._final_verdicts(row)
            for verdict in verdicts:
                self.verdicts[verdict.field] = verdict
                self.hooks.show_verdict(verdict)

            blocking = [v for v in verdicts if v.is_blocking]
            if blocking:
                logger.info(
                    "Submission for session %s blocked by %s",
                    self.session_id, [v.field for v in blocking],
                    extra=log_extra(self.session_id),
                )
                raise ValidationFailure(blocking)

            if self._write_table:
                await self._retry.run(
                    self._datasource.insert_response,
                    self._write_table,
                    row,
                    session_id=self.session_id,
                    ip_address=ip_address,
                    text_fields=self._other_fields,
                )
            if self._progress is not None:
                await self._retry.run(self._progress.discard, self.session_id)

            self.values = dict(row)
            self.completed = True
            logger.info(
                "Session %s submitted", self.session_id,
                extra=log_extra(self.session_id),
            )
            return [v for v in verdicts if v.state == VerdictState.WARNING]

    async def abandon(self) -> None:
        """Drop saved progress and all in-memory state."""
        async with self._lock:
            if self._progress is not None:
                await self._retry.run(self._progress.discard, self.session_id)
            self.values.clear()
            self.choices.clear()
            self.verdicts.clear()
            self._resolver.clear()
            self.abandoned = True
            logger.info(
                "Session %s abandoned", self.session_id,
                extra=log_extra(self.session_id),
            )

    # ------------------------------------------------------------------
    # Snapshot
    # ------------------------------------------------------------------

    def snapshot(self) -> SessionSnapshot:
        """Current answers plus parent/child dynamic state."""
        state = DynamicState()
        for parent, children in self._children_of.items():
            resolved = self.choices.get(parent)
            state.parent_fields[parent] = ParentFieldState(
                value=self.values.get(parent),
                child_fields=list(children),
                choices=list(resolved.choices) if resolved is not None else None,
            )
        for child, parent in self._parent_of.items():
            resolved = self.choices.get(child)
            state.child_choices[child] = ChildFieldState(
                parent_field=parent,
                value=self.values.get(child),
                choices=list(resolved.choices) if resolved is not None else [],
            )
        return SessionSnapshot(field_values=dict(self.values), dynamic_state=state)

    def _schedule_save(self) -> None:
        if self._progress is None or self.completed or self.abandoned:
            return
        self._progress.schedule_save(self.session_id, self.snapshot())

    def _touch(self) -> None:
        self.last_active = time.monotonic()


# ---------------------------------------------------------------------------
# SessionRegistry
# ---------------------------------------------------------------------------

class SessionRegistry:
    """In-memory map of live sessions, each with its own state and hooks.

    Args:
        factory: builds a ``FormSession`` for a session id and hooks
        max_idle: seconds after which an untouched session is dropped
            from memory (its saved progress is kept)
    """

    def __init__(
        self,
        factory: Callable[[str, FormHooks], FormSession],
        *,
        max_idle: float = 3600.0,
    ) -> None:
        self._factory = factory
        self._max_idle = max_idle
        self._sessions: dict[str, FormSession] = {}

    def create(self, session_id: str) -> FormSession:
        """Fresh session for ``session_id``, replacing any live one."""
        self.prune_idle()
        session = self._factory(session_id, CollectingHooks())
        self._sessions[session_id] = session
        return session

    def get(self, session_id: str) -> FormSession:
        """Live session; raises ``KeyError`` when unknown."""
        return self._sessions[session_id]

    def remove(self, session_id: str) -> FormSession | None:
        return self._sessions.pop(session_id, None)

    def prune_idle(self) -> int:
        now = time.monotonic()
        stale = [
            sid for sid, s in self._sessions.items()
            if now - s.last_active > self._max_idle
        ]
        for sid in stale:
            del self._sessions[sid]
        if stale:
            logger.info("Dropped %d idle sessions", len(stale))
        return len(stale)

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, session_id: str) -> bool:
        return session_id in self._sessions
