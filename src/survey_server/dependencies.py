"""FastAPI dependency injection — runtime objects and client identity.

Everything shared is built once by the lifespan handler and stashed on
``app.state.runtime``; these helpers hand the pieces to route handlers.
"""

import hmac

from fastapi import Header, HTTPException, Request

from survey_fields.session import SessionRegistry

from survey_server.config import ServerSettings
from survey_server.runtime import SurveyRuntime

# Returned when no address can be determined
UNKNOWN_IP = "0.0.0.0"


# ------------------------------------------------------------------
# Runtime, stashed on app.state during lifespan
# ------------------------------------------------------------------

def get_runtime(request: Request) -> SurveyRuntime:
    """Return the shared runtime from ``app.state``."""
    return request.app.state.runtime


def get_registry(request: Request) -> SessionRegistry:
    """Return the live-session registry."""
    return request.app.state.runtime.registry


def get_settings(request: Request) -> ServerSettings:
    return request.app.state.settings


# ------------------------------------------------------------------
# Client address
# ------------------------------------------------------------------

def get_client_ip(
    request: Request,
    x_real_ip: str | None = Header(None, alias="X-Real-IP"),
    x_forwarded_for: str | None = Header(None, alias="X-Forwarded-For"),
) -> str:
    """Best-effort client IP for the response's ``ip_address`` column.

    Order: ``X-Real-IP``, first ``X-Forwarded-For`` hop, peer address.
    """
    if x_real_ip and x_real_ip.strip():
        return x_real_ip.strip()
    if x_forwarded_for:
        first = x_forwarded_for.split(",")[0].strip()
        if first:
            return first
    if request.client is not None and request.client.host:
        return request.client.host
    return UNKNOWN_IP


# ------------------------------------------------------------------
# Admin key
# ------------------------------------------------------------------

async def require_admin_key(
    request: Request,
    x_admin_key: str | None = Header(None, alias="X-Admin-Key"),
) -> str:
    """Validate the ``X-Admin-Key`` header against ``ADMIN_API_KEY``.

    Raises 403 when admin endpoints are disabled or the key is wrong,
    401 when the header is missing.
    """
    expected: str | None = request.app.state.settings.admin_api_key
    if not expected:
        raise HTTPException(
            status_code=403,
            detail="Admin endpoints are disabled (ADMIN_API_KEY not configured)",
        )
    if not x_admin_key:
        raise HTTPException(status_code=401, detail="X-Admin-Key header is required")
    # Constant-time comparison to prevent timing side-channels.
    if not hmac.compare_digest(x_admin_key, expected):
        raise HTTPException(status_code=403, detail="Invalid admin key")
    return x_admin_key
