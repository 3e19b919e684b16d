"""Retention CLI — ``survey-cleanup``.

Connects to the database and deletes saved survey progress that has not
been updated within the retention window.  Intended for cron jobs or
one-off maintenance.

Examples::

    # Delete snapshots idle for more than $PROGRESS_RETENTION_DAYS (7) days
    uv run survey-cleanup

    # Delete snapshots idle for more than 30 days
    uv run survey-cleanup --days 30

    # Delete every snapshot of one survey
    uv run survey-cleanup --days 0 --survey customer_feedback
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys

from survey_server.config import DEFAULT_RETENTION_DAYS

logger = logging.getLogger(__name__)


async def run_cleanup(
    *,
    days: int = DEFAULT_RETENTION_DAYS,
    survey_name: str | None = None,
) -> int:
    """Purge old snapshots and return the number of deleted rows.

    Opens its own pool, commits, and disposes the pool before returning.
    """
    # Lazy imports to avoid loading DB machinery at module import time
    from survey_db.engine import DatabasePool
    from survey_db.repository import ProgressRepository

    repo = ProgressRepository()
    pool = DatabasePool()

    try:
        async with pool.session() as db:
            affected = await repo.purge_older_than(
                db,
                older_than_days=days,
                survey_name=survey_name,
            )
        logger.info(
            "Cleanup complete: affected_rows=%d, days=%d, survey=%s",
            affected, days, survey_name or "*",
        )
        return affected
    finally:
        await pool.dispose()


def cli() -> None:
    """Console-script entry point: ``survey-cleanup``."""
    parser = argparse.ArgumentParser(
        prog="survey-cleanup",
        description="Delete saved survey progress older than the retention window.",
    )
    parser.add_argument(
        "--days",
        type=int,
        default=DEFAULT_RETENTION_DAYS,
        help=(
            "Age threshold in days (default: $PROGRESS_RETENTION_DAYS, or 7). "
            "0 deletes every snapshot."
        ),
    )
    parser.add_argument(
        "--survey",
        default=None,
        help="Only purge snapshots of this survey name (default: all surveys)",
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Log level (default: INFO)",
    )

    args = parser.parse_args()

    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )

    affected = asyncio.run(run_cleanup(days=args.days, survey_name=args.survey))

    print(f"Deleted snapshots: {affected}")
    sys.exit(0)
