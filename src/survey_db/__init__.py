"""survey_db — PostgreSQL persistence layer for survey sessions.

This package provides the connection-pool handle, the progress snapshot
and session log models with their repositories, and the response-table
writer.  It is consumed by the ``survey_fields`` SDK and the FastAPI
server.
"""

from survey_db.engine import DatabasePool, PoolExhaustedError
from survey_db.models.log import SurveyLog
from survey_db.models.progress import SurveyProgress
from survey_db.repository import LogRepository, ProgressRepository
from survey_db.responses import ResponseTableWriter, sanitize_table_name

__all__ = [
    "DatabasePool",
    "PoolExhaustedError",
    "SurveyLog",
    "SurveyProgress",
    "LogRepository",
    "ProgressRepository",
    "ResponseTableWriter",
    "sanitize_table_name",
]
