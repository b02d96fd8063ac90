from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from api.core.exceptions import DatabaseError
from api.core.logging import get_structlog_logger
from api.models import ActivityLog, CallLog

logger = get_structlog_logger(__name__)


class ActivityStatus(str, Enum):
    SUCCESS = "success"
    FAILED = "failed"
    PENDING = "pending"


class Direction(str, Enum):
    INCOMING = "incoming"
    OUTGOING = "outgoing"


class ActivityType(str, Enum):
    VAPI_WEBHOOK_RECEIVED = "vapi_webhook_received"
    VAPI_CALL_IMPORTED = "vapi_call_imported"
    TELEGRAM_NOTIFICATION_SENT = "telegram_notification_sent"
    ATTIO_RECORD_UPDATED = "attio_record_updated"
    ATTIO_RECORD_CREATED = "attio_record_created"
    FACEBOOK_CONVERSION_SENT = "facebook_conversion_sent"
    FACEBOOK_LEAD_RECEIVED = "facebook_lead_received"


class Service(str, Enum):
    VAPI = "Vapi"
    TELEGRAM = "Telegram"
    ATTIO = "Attio"
    FACEBOOK = "Facebook"


@dataclass(frozen=True)
class ActivityRecord:
    type: ActivityType
    status: ActivityStatus
    service: Service
    direction: Direction
    summary: str
    details: Dict[str, Any] = field(default_factory=dict)
    timestamp: Optional[datetime] = None
    id: Optional[int] = None

    @classmethod
    def from_row(cls, row: ActivityLog) -> "ActivityRecord":
        return cls(
            type=ActivityType(row.type),
            status=ActivityStatus(row.status),
            service=Service(row.service),
            direction=Direction(row.direction),
            summary=row.summary,
            details=row.details or {},
            timestamp=row.timestamp,
            id=row.id,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "type": self.type.value,
            "status": self.status.value,
            "service": self.service.value,
            "direction": self.direction.value,
            "summary": self.summary,
            "details": self.details,
            "timestamp": self.timestamp.isoformat() if self.timestamp else None,
        }


@dataclass(frozen=True)
class CallRecord:
    call_id: str
    customer_phone: str
    duration: int
    outcome: str
    summary: str
    ended_reason: str
    notification_sent: bool
    crm_updated: bool
    timestamp: Optional[datetime] = None
    id: Optional[int] = None

    @classmethod
    def from_row(cls, row: CallLog) -> "CallRecord":
        return cls(
            call_id=row.call_id,
            customer_phone=row.customer_phone,
            duration=row.duration,
            outcome=row.outcome,
            summary=row.summary,
            ended_reason=row.ended_reason,
            notification_sent=row.telegram_sent,
            crm_updated=row.attio_updated,
            timestamp=row.timestamp,
            id=row.id,
        )

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["timestamp"] = self.timestamp.isoformat() if self.timestamp else None
        return data


@dataclass
class ActivityStats:
    total: int = 0
    successful: int = 0
    failed: int = 0
    by_service: Dict[str, Dict[str, int]] = field(default_factory=dict)
    by_type: Dict[str, int] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class SqlAuditLogStore:
    """
    Append-only audit log on top of the async SQLAlchemy session factory.

    Activity writes are best effort: a failure is logged and dropped so that
    bookkeeping never breaks a sink branch. Call records are authoritative and
    a failed write raises ``DatabaseError``.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    async def append_activity(self, record: ActivityRecord) -> Optional[ActivityRecord]:
        row = ActivityLog(
            type=record.type.value,
            status=record.status.value,
            service=record.service.value,
            direction=record.direction.value,
            summary=record.summary,
            details=record.details or {},
        )
        try:
            async with self.session_factory() as session:
                session.add(row)
                await session.commit()
                await session.refresh(row)
        except SQLAlchemyError as e:
            logger.error(
                "audit_log.activity_append_failed",
                activity_type=record.type.value,
                error=str(e)[:200],
            )
            return None
        return ActivityRecord.from_row(row)

    async def append_call(self, record: CallRecord) -> CallRecord:
        row = CallLog(
            call_id=record.call_id,
            customer_phone=record.customer_phone,
            duration=record.duration,
            outcome=record.outcome,
            summary=record.summary,
            ended_reason=record.ended_reason,
            telegram_sent=record.notification_sent,
            attio_updated=record.crm_updated,
        )
        try:
            async with self.session_factory() as session:
                session.add(row)
                await session.commit()
                await session.refresh(row)
        except SQLAlchemyError as e:
            logger.error("audit_log.call_append_failed", call_id=record.call_id, error=str(e)[:200])
            raise DatabaseError(
                "Failed to persist call record",
                details={"call_id": record.call_id},
            ) from e

        logger.info("audit_log.call_appended", call_id=record.call_id, id=row.id)
        return CallRecord.from_row(row)

    async def list_calls(self) -> List[CallRecord]:
        async with self.session_factory() as session:
            result = await session.execute(
                select(CallLog).order_by(CallLog.timestamp.desc(), CallLog.id.desc())
            )
            return [CallRecord.from_row(row) for row in result.scalars().all()]

    async def list_activity(self, limit: int = 50) -> List[ActivityRecord]:
        async with self.session_factory() as session:
            result = await session.execute(
                select(ActivityLog)
                .order_by(ActivityLog.timestamp.desc(), ActivityLog.id.desc())
                .limit(limit)
            )
            return [ActivityRecord.from_row(row) for row in result.scalars().all()]

    async def activity_stats(self) -> ActivityStats:
        async with self.session_factory() as session:
            result = await session.execute(
                select(
                    ActivityLog.service,
                    ActivityLog.type,
                    ActivityLog.status,
                    func.count(ActivityLog.id),
                ).group_by(ActivityLog.service, ActivityLog.type, ActivityLog.status)
            )
            rows = result.all()

        stats = ActivityStats()
        for service, activity_type, status, count in rows:
            per_service = stats.by_service.setdefault(
                service, {"total": 0, "successful": 0, "failed": 0}
            )
            stats.total += count
            per_service["total"] += count
            if status == ActivityStatus.SUCCESS.value:
                stats.successful += count
                per_service["successful"] += count
            elif status == ActivityStatus.FAILED.value:
                stats.failed += count
                per_service["failed"] += count
            stats.by_type[activity_type] = stats.by_type.get(activity_type, 0) + count
        return stats
