"""Admin endpoints — saved-progress retention.

Protected by the ``ADMIN_API_KEY`` setting.  Every request must include
an ``X-Admin-Key`` header whose value matches the configured key.
"""

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel

from survey_db.repository import ProgressRepository

from survey_server.config import DEFAULT_RETENTION_DAYS
from survey_server.dependencies import get_runtime, require_admin_key
from survey_server.runtime import SurveyRuntime

router = APIRouter(prefix="/admin", tags=["admin"])


# ------------------------------------------------------------------
# Response models
# ------------------------------------------------------------------

class CleanupResult(BaseModel):
    """Response body for cleanup operations."""
    affected_rows: int
    action: str


# ------------------------------------------------------------------
# Endpoints
# ------------------------------------------------------------------

_repo = ProgressRepository()


@router.post("/cleanup/progress")
async def cleanup_progress(
    older_than_days: int = Query(DEFAULT_RETENTION_DAYS, ge=0),
    all_surveys: bool = Query(False),
    runtime: SurveyRuntime = Depends(get_runtime),
    _admin: str = Depends(require_admin_key),
) -> CleanupResult:
    """Delete saved progress idle for more than ``older_than_days`` days.

    Args:
        older_than_days: 0 deletes every snapshot
        all_surveys: include snapshots of other surveys sharing the table
    """
    if runtime.pool is None or runtime.progress is None:
        raise HTTPException(status_code=409, detail="Progress storage is disabled")
    survey_name = None if all_surveys else runtime.progress.survey_name
    async with runtime.pool.session() as db:
        affected = await _repo.purge_older_than(
            db,
            older_than_days=older_than_days,
            survey_name=survey_name,
        )
    return CleanupResult(affected_rows=affected, action="purge_progress")
