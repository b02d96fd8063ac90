from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import Boolean, DateTime, Index, Integer, String, Text, false
from sqlalchemy.orm import Mapped, mapped_column

from api.db.base import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class CallLog(Base):
    """Summary row written once per processed call; never updated."""

    call_id: Mapped[str] = mapped_column(String(128), nullable=False)
    customer_phone: Mapped[str] = mapped_column(String(32), nullable=False)
    duration: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    outcome: Mapped[str] = mapped_column(String(32), nullable=False)
    summary: Mapped[str] = mapped_column(Text, nullable=False, default="")
    ended_reason: Mapped[str] = mapped_column(String(128), nullable=False)
    telegram_sent: Mapped[bool] = mapped_column(Boolean, nullable=False, server_default=false())
    attio_updated: Mapped[bool] = mapped_column(Boolean, nullable=False, server_default=false())
    timestamp: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=_utcnow,
        nullable=False,
    )

    # call_id is not unique; a re-import appends a new row
    __table_args__ = (
        Index("idx_call_logs_call_id", "call_id"),
        Index("idx_call_logs_timestamp", "timestamp"),
    )
