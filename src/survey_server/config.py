"""Server configuration — reads settings from environment variables.

All settings have sensible defaults for local development.  In production
the values are typically overridden via env vars or a ``.env`` file.
"""

import os
from dataclasses import dataclass, field

# --- Cleanup default ---
# Read at import time so the CLI and admin Query() defaults can use it.
DEFAULT_RETENTION_DAYS = int(os.getenv("PROGRESS_RETENTION_DAYS", "7"))


@dataclass(frozen=True)
class ServerSettings:
    """Immutable server configuration read from environment at startup."""

    # Network
    host: str = "0.0.0.0"
    port: int = 8080

    # CORS: comma-separated origins, or "*" for wide-open dev mode
    cors_origins: list[str] = field(default_factory=lambda: ["*"])

    # Logging
    log_level: str = "INFO"

    # Survey JSON and its dynamic field configuration (YAML or JSON)
    survey_path: str = "data/survey.json"
    dynamic_config_path: str | None = "data/dynamic_config.yaml"

    # Scopes saved progress; defaults to the survey file's stem
    survey_name: str | None = None

    # Table completed responses are written to (None = don't store)
    write_table: str | None = "survey_responses"

    # Saved progress older than this is discarded; 0 keeps it forever
    progress_retention_days: int = DEFAULT_RETENTION_DAYS

    # Reactive uniqueness checks wait this long for typing to settle
    unique_debounce_ms: int = 300

    # Pool exhaustion retry
    pool_retry_attempts: int = 3
    pool_retry_base_delay: float = 0.2

    # Write SURVEY/DATABASE events to the survey_logs table
    session_log: bool = True

    # Idle in-memory sessions are dropped after this many seconds
    session_idle_seconds: int = 3600

    # Admin API key: shared secret for admin endpoints (None = disabled)
    admin_api_key: str | None = None


def load_settings() -> ServerSettings:
    """Build settings from environment variables."""
    raw_origins = os.getenv("SERVER_CORS_ORIGINS", "*")
    origins = [o.strip() for o in raw_origins.split(",") if o.strip()]

    return ServerSettings(
        host=os.getenv("SERVER_HOST", "0.0.0.0"),
        port=int(os.getenv("SERVER_PORT", "8080")),
        cors_origins=origins,
        log_level=os.getenv("SERVER_LOG_LEVEL", "INFO").upper(),
        survey_path=os.getenv("SURVEY_PATH", "data/survey.json"),
        dynamic_config_path=os.getenv("DYNAMIC_CONFIG_PATH", "data/dynamic_config.yaml") or None,
        survey_name=os.getenv("SURVEY_NAME") or None,
        write_table=os.getenv("WRITE_TABLE", "survey_responses") or None,
        progress_retention_days=int(
            os.getenv("PROGRESS_RETENTION_DAYS", str(DEFAULT_RETENTION_DAYS))
        ),
        unique_debounce_ms=int(os.getenv("UNIQUE_DEBOUNCE_MS", "300")),
        pool_retry_attempts=int(os.getenv("POOL_RETRY_ATTEMPTS", "3")),
        pool_retry_base_delay=float(os.getenv("POOL_RETRY_BASE_DELAY", "0.2")),
        session_idle_seconds=int(os.getenv("SESSION_IDLE_SECONDS", "3600")),
        session_log=os.getenv("SESSION_LOG", "true").lower() in ("1", "true", "yes"),
        admin_api_key=os.getenv("ADMIN_API_KEY") or None,
    )
