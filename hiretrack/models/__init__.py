from hiretrack.db.base import Base
from hiretrack.models.activity_log import ActivityLog
from hiretrack.models.application import Application, ApplicationComment
from hiretrack.models.job import Job

__all__ = [
    "Base",
    "ActivityLog",
    "Application",
    "ApplicationComment",
    "Job",
]
