"""ORM models for survey_db."""

from survey_db.models.base import Base
from survey_db.models.log import SurveyLog
from survey_db.models.progress import SurveyProgress

__all__ = ["Base", "SurveyLog", "SurveyProgress"]
