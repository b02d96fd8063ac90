# api/models/__init__.py
"""
SQLAlchemy ORM models for the audit log tables.
"""

from api.models.activity_log import ActivityLog
from api.models.call_log import CallLog

__all__ = [
    "ActivityLog",
    "CallLog",
]
