# api/db/__init__.py
"""
Database package for SQLAlchemy setup and session management.
"""

from api.db.base import Base
from api.db.session import get_session_factory, init_models

__all__ = [
    "Base",
    "get_session_factory",
    "init_models",
]
