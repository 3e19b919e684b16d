"""SurveyRuntime — the shared objects built once at startup.

The lifespan handler calls :func:`build_runtime` and stashes the result
on ``app.state.runtime``.  Tests pass a runtime of their own (in-memory
data source, no pool) to ``create_app`` instead.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Sequence

from survey_db.engine import DatabasePool
from survey_fields.datasource import SqlDataSource
from survey_fields.errors import ConfigError
from survey_fields.interfaces import DataSource, FormHooks
from survey_fields.loader import ConfigLoader, verify
from survey_fields.models.config import DynamicFieldConfig
from survey_fields.progress import SessionProgressStore
from survey_fields.retry import RetryPolicy
from survey_fields.session import FormSession, SessionRegistry
from survey_fields.session_log import SessionLogHandler, log_extra
from survey_fields.survey import SurveyDefinition

from survey_server.config import ServerSettings

logger = logging.getLogger(__name__)


@dataclass
class SurveyRuntime:
    """Everything a request handler needs, shared across sessions."""

    settings: ServerSettings
    survey: SurveyDefinition
    configs: Sequence[DynamicFieldConfig]
    datasource: DataSource
    registry: SessionRegistry
    progress: SessionProgressStore | None = None
    pool: DatabasePool | None = None
    session_log: SessionLogHandler | None = None

    async def close(self) -> None:
        if self.progress is not None:
            await self.progress.flush()
        if self.session_log is not None:
            await self.session_log.aclose()
        if self.pool is not None:
            await self.pool.dispose()


def make_registry(
    settings: ServerSettings,
    survey: SurveyDefinition,
    configs: Sequence[DynamicFieldConfig],
    datasource: DataSource,
    progress: SessionProgressStore | None,
) -> SessionRegistry:
    """Registry whose sessions share the configs, data source and store."""
    retry = RetryPolicy(settings.pool_retry_attempts, settings.pool_retry_base_delay)
    other_fields = survey.other_fields()

    def factory(session_id: str, hooks: FormHooks) -> FormSession:
        return FormSession(
            session_id,
            configs,
            datasource,
            hooks,
            progress=progress,
            write_table=settings.write_table,
            other_fields=other_fields,
            retry=retry,
            unique_debounce=settings.unique_debounce_ms / 1000.0,
        )

    return SessionRegistry(factory, max_idle=settings.session_idle_seconds)


async def build_runtime(settings: ServerSettings) -> SurveyRuntime:
    """Load the survey and configs, open the pool, verify tables.

    Raises:
        ConfigError: the dynamic configuration is invalid or references
            missing tables; the pool is disposed before raising.
    """
    survey = SurveyDefinition.from_file(settings.survey_path)
    configs: list[DynamicFieldConfig] = []
    if settings.dynamic_config_path:
        configs = ConfigLoader().load_file(settings.dynamic_config_path)
    survey_name = settings.survey_name or Path(settings.survey_path).stem

    pool = DatabasePool()
    session_log = None
    if settings.session_log:
        session_log = SessionLogHandler(pool.session, survey_name=survey_name)
        session_log.install("survey_fields", "survey_server")
    try:
        datasource = SqlDataSource(pool)
        await verify(configs, datasource)
    except BaseException as exc:
        if isinstance(exc, ConfigError):
            logger.error("Dynamic config rejected: %s", exc, extra=log_extra(None))
        if session_log is not None:
            await session_log.aclose()
        await pool.dispose()
        raise

    progress = SessionProgressStore(
        pool.session,
        survey_name=survey_name,
        retention_days=settings.progress_retention_days,
    )
    registry = make_registry(settings, survey, configs, datasource, progress)
    logger.info(
        "Survey '%s' ready with %d dynamic fields", survey_name, len(configs),
        extra=log_extra(None),
    )
    return SurveyRuntime(
        settings=settings,
        survey=survey,
        configs=configs,
        datasource=datasource,
        registry=registry,
        progress=progress,
        pool=pool,
        session_log=session_log,
    )
