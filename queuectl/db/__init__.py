"""
Database module.
Contains the job store connection, models, and repository implementations.
"""

from queuectl.db.connection import Database
from queuectl.db.models import Base, ConfigEntry, Job
from queuectl.db.repository import ConfigRepository, JobRepository

__all__ = [
    "Database",
    "Job",
    "ConfigEntry",
    "Base",
    "JobRepository",
    "ConfigRepository",
]
