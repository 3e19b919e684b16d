"""Survey session endpoints — start, field events, submit, abandon.

A session is keyed by a client-held ``session_id`` (cookie or local
store).  Every event response carries the ``FieldUpdates`` the renderer
should apply: replaced choice lists, cleared values, verdicts and
result-field messages.
"""

import uuid
from typing import Any

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from survey_fields.interfaces import CollectingHooks
from survey_fields.models.state import (
    BoundValue,
    FieldUpdates,
    SessionSnapshot,
    ValidationVerdict,
)
from survey_fields.params import parse_query
from survey_fields.session import FormSession, SessionRegistry

from survey_server.dependencies import get_client_ip, get_registry, get_runtime
from survey_server.runtime import SurveyRuntime

router = APIRouter(tags=["sessions"])


# ------------------------------------------------------------------
# Request / response models
# ------------------------------------------------------------------

class StartSessionRequest(BaseModel):
    """Body for POST /sessions.

    URL parameters may be given parsed (``params``) or as the raw query
    string (``query``); parsed values win on conflict.
    """
    session_id: str | None = None
    params: dict[str, Any] = Field(default_factory=dict)
    query: str | None = None


class StartSessionResponse(BaseModel):
    session_id: str
    restored: bool
    survey: dict[str, Any]
    bound: dict[str, BoundValue]
    values: dict[str, Any]
    updates: FieldUpdates


class ValueChangedRequest(BaseModel):
    """Body for POST /sessions/{id}/values."""
    field: str
    value: Any = None


class ValidateRequest(BaseModel):
    """Body for POST /sessions/{id}/validate."""
    field: str
    value: Any = None
    comment: Any = None


class ValidateResponse(BaseModel):
    # None when superseded by a newer check of the same field
    verdict: ValidationVerdict | None
    updates: FieldUpdates


class SubmitRequest(BaseModel):
    """Body for POST /sessions/{id}/submit."""
    data: dict[str, Any]


class SubmitResponse(BaseModel):
    status: str = "submitted"
    warnings: list[ValidationVerdict]


def _drain(session: FormSession) -> FieldUpdates:
    hooks = session.hooks
    if isinstance(hooks, CollectingHooks):
        return hooks.drain()
    return FieldUpdates()


# ------------------------------------------------------------------
# Endpoints
# ------------------------------------------------------------------

@router.post("/sessions", status_code=201)
async def start_session(
    body: StartSessionRequest,
    runtime: SurveyRuntime = Depends(get_runtime),
    registry: SessionRegistry = Depends(get_registry),
) -> StartSessionResponse:
    """Start (or restart) a session.

    Binds URL parameters, resolves initial choices and restores saved
    progress.  Returns the survey with bound display texts interpolated.
    """
    session_id = body.session_id or uuid.uuid4().hex
    params = parse_query(body.query) if body.query else {}
    params.update(body.params)

    session = registry.create(session_id)
    try:
        restored = await session.start(params)
    except Exception:
        registry.remove(session_id)
        raise

    return StartSessionResponse(
        session_id=session_id,
        restored=restored,
        survey=runtime.survey.render(session.interpolation_context()),
        bound=session.bound,
        values=dict(session.values),
        updates=_drain(session),
    )


@router.post("/sessions/{session_id}/values")
async def value_changed(
    session_id: str,
    body: ValueChangedRequest,
    registry: SessionRegistry = Depends(get_registry),
) -> FieldUpdates:
    """Commit a field value; returns refreshed dependent choices."""
    session = registry.get(session_id)
    await session.on_value_changed(body.field, body.value)
    return _drain(session)


@router.post("/sessions/{session_id}/validate")
async def validate_question(
    session_id: str,
    body: ValidateRequest,
    registry: SessionRegistry = Depends(get_registry),
) -> ValidateResponse:
    """Advisory check for one question (uniqueness, "other" text)."""
    session = registry.get(session_id)
    verdict = await session.validate_question(
        body.field, body.value, comment=body.comment,
    )
    return ValidateResponse(verdict=verdict, updates=_drain(session))


@router.post("/sessions/{session_id}/submit")
async def submit(
    session_id: str,
    body: SubmitRequest,
    registry: SessionRegistry = Depends(get_registry),
    ip_address: str = Depends(get_client_ip),
) -> SubmitResponse:
    """Authoritative validation and response storage.

    Raises 422 with the blocking verdicts when submission is refused;
    the session stays open so the user can correct the answers.
    """
    session = registry.get(session_id)
    warnings = await session.submit(body.data, ip_address=ip_address)
    registry.remove(session_id)
    return SubmitResponse(warnings=warnings)


@router.get("/sessions/{session_id}/progress")
async def get_progress(
    session_id: str,
    registry: SessionRegistry = Depends(get_registry),
) -> SessionSnapshot:
    """Current answers and dynamic state of a live session."""
    return registry.get(session_id).snapshot()


@router.delete("/sessions/{session_id}", status_code=204)
async def abandon_session(
    session_id: str,
    registry: SessionRegistry = Depends(get_registry),
) -> None:
    """Abandon a session and delete its saved progress."""
    session = registry.get(session_id)
    await session.abandon()
    registry.remove(session_id)
