from __future__ import annotations

import re
from typing import Any, Dict, List, Optional

from sqlalchemy import JSON, Integer, MetaData
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.ext.declarative import declared_attr
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

# Use naming convention for constraints
convention = {
    "ix": "ix_%(column_0_label)s",
    "uq": "uq_%(table_name)s_%(column_0_name)s",
    "ck": "ck_%(table_name)s_%(constraint_name)s",
    "fk": "fk_%(table_name)s_%(column_0_name)s_%(referred_table_name)s",
    "pk": "pk_%(table_name)s",
}

# JSONB on PostgreSQL, plain JSON elsewhere (SQLite in tests).
JSONType = JSON().with_variant(JSONB(), "postgresql")


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models.

    Rows are append-only: there is no updated_at column and no update helper.
    """

    metadata = MetaData(naming_convention=convention)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    @declared_attr
    def __tablename__(cls) -> str:
        """Generate table name from class name (ActivityLog -> activity_logs)."""
        name = re.sub(r'(?<!^)(?=[A-Z])', '_', cls.__name__).lower()
        return name + "s"

    def to_dict(self, exclude: Optional[List[str]] = None) -> Dict[str, Any]:
        """Convert model instance to dictionary."""
        exclude = exclude or []
        result = {}

        for column in self.__table__.columns:
            if column.name in exclude:
                continue
            value = getattr(self, column.name)

            # Handle datetime serialization
            if hasattr(value, 'isoformat'):
                value = value.isoformat()

            result[column.name] = value

        return result

    def __repr__(self) -> str:
        attrs = []
        for column in self.__table__.columns:
            if column.primary_key:
                continue
            value = getattr(self, column.name)
            if value is not None:
                attrs.append(f"{column.name}={repr(value)}")

        return f"<{self.__class__.__name__}({', '.join(attrs)})>"


__all__ = [
    "Base",
    "JSONType",
]
