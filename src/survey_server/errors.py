"""Global exception handlers — map SDK exceptions to HTTP status codes.

Routes stay focused on the happy path; every SDK error type has one
handler here.  Internal details (table names, session ids) are logged
server-side and never sent to the client.
"""

import logging

from fastapi import Request
from fastapi.responses import JSONResponse

from survey_fields.errors import ConfigError, PoolExhaustedError, ValidationFailure

logger = logging.getLogger(__name__)


async def validation_failure_handler(
    request: Request, exc: ValidationFailure,
) -> JSONResponse:
    """Blocked submission → 422 with the blocking verdicts.

    An expected outcome, so it is logged at info level only.
    """
    logger.info("Submission blocked at %s: %s", request.url.path, exc)
    return JSONResponse(
        status_code=422,
        content={
            "detail": "Submission blocked",
            "verdicts": [v.model_dump(mode="json") for v in exc.verdicts],
        },
    )


async def config_error_handler(request: Request, exc: ConfigError) -> JSONResponse:
    """Broken dynamic configuration → 500; the survey cannot run."""
    logger.error("Configuration error at %s: %s", request.url, exc)
    return JSONResponse(status_code=500, content={"detail": "Survey unavailable"})


async def pool_exhausted_handler(
    request: Request, exc: PoolExhaustedError,
) -> JSONResponse:
    """No database connection after retries → 503 so the client retries."""
    logger.warning("Pool exhausted at %s: %s", request.url, exc)
    return JSONResponse(
        status_code=503,
        content={"detail": "Server busy, please try again"},
        headers={"Retry-After": "1"},
    )


async def key_error_handler(request: Request, exc: KeyError) -> JSONResponse:
    """Map ``KeyError`` (unknown session id) to 404."""
    logger.warning("KeyError at %s: %s", request.url, exc)
    return JSONResponse(status_code=404, content={"detail": "Session not found"})


async def generic_error_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all for unhandled exceptions — log full traceback, return 500."""
    logger.exception("Unhandled exception at %s", request.url)
    return JSONResponse(
        status_code=500,
        content={"detail": "Internal server error"},
    )
