"""survey_fields — Dynamic-field SDK for database-backed survey forms.

Public API:
    FormSession       — per-session orchestrator (params, choices, checks, submit)
    SessionRegistry   — in-memory map of live sessions
    ConfigLoader      — parses the dynamic_config list into typed records
    ChoiceResolver    — table-backed choice lists, with parent filtering
    ParamBinder       — URL parameter binding with display-text lookup
    UniquenessValidator — normalized duplicate detection
    SessionProgressStore — save/restore of in-progress answers
    SessionLogHandler — batches zone-tagged log records into survey_logs
    SurveyDefinition  — survey JSON walker and template interpolation

Collaborator interfaces:
    DataSource        — ABC for table lookups and the response writer
    SqlDataSource     — SQLAlchemy implementation over a DatabasePool
    FormHooks         — ABC for renderer callbacks
    CollectingHooks   — buffers callbacks for an HTTP response

Errors:
    ConfigError, DataSourceError, ValidationFailure, PoolExhaustedError
"""

from survey_fields.choices import ChoiceResolver
from survey_fields.datasource import SqlDataSource
from survey_fields.errors import (
    ConfigError,
    DataSourceError,
    PoolExhaustedError,
    SurveyFieldError,
    ValidationFailure,
)
from survey_fields.interfaces import CollectingHooks, DataSource, FormHooks
from survey_fields.loader import ConfigLoader, build_bindings, verify
from survey_fields.other_field import check_other_text
from survey_fields.params import ParamBinder, parse_query
from survey_fields.progress import SessionProgressStore
from survey_fields.retry import RetryPolicy, with_pool_retry
from survey_fields.session import FormSession, SessionRegistry
from survey_fields.session_log import SessionLogHandler
from survey_fields.survey import SurveyDefinition
from survey_fields.unique import UniquenessValidator, normalize

__all__ = [
    # Orchestration
    "FormSession",
    "SessionRegistry",
    # Components
    "ChoiceResolver",
    "ConfigLoader",
    "ParamBinder",
    "SessionProgressStore",
    "SessionLogHandler",
    "SurveyDefinition",
    "UniquenessValidator",
    "build_bindings",
    "check_other_text",
    "normalize",
    "parse_query",
    "verify",
    # Interfaces
    "CollectingHooks",
    "DataSource",
    "FormHooks",
    "SqlDataSource",
    # Retry
    "RetryPolicy",
    "with_pool_retry",
    # Errors
    "ConfigError",
    "DataSourceError",
    "PoolExhaustedError",
    "SurveyFieldError",
    "ValidationFailure",
]
