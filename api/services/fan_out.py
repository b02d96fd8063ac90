from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass, field, replace
from typing import Any, Awaitable, Dict, List, Optional

from api.core.logging import get_structlog_logger
from api.services.audit_log import (
    ActivityRecord,
    ActivityStatus,
    ActivityType,
    CallRecord,
    Direction,
    Service,
    SqlAuditLogStore,
)
from api.services.call_context import CallContext
from api.services.facebook import OUTCOME_TO_EVENT
from api.services.outcome import Outcome, explain
from api.services.sinks import SinkName, SinkResult

logger = get_structlog_logger(__name__)

_SINK_ACTIVITY = {
    SinkName.NOTIFICATION: (ActivityType.TELEGRAM_NOTIFICATION_SENT, Service.TELEGRAM),
    SinkName.CRM: (ActivityType.ATTIO_RECORD_UPDATED, Service.ATTIO),
    SinkName.CONVERSION: (ActivityType.FACEBOOK_CONVERSION_SENT, Service.FACEBOOK),
}

# Activity rows are appended in this order regardless of completion order
_SINK_ORDER = (SinkName.NOTIFICATION, SinkName.CRM, SinkName.CONVERSION)


@dataclass(frozen=True)
class FanOutResult:
    outcome: Outcome
    rule: str
    sink_results: List[SinkResult] = field(default_factory=list)
    call_record: Optional[CallRecord] = None

    def result_for(self, sink: SinkName) -> Optional[SinkResult]:
        for result in self.sink_results:
            if result.sink == sink:
                return result
        return None

    def _succeeded(self, sink: SinkName) -> bool:
        result = self.result_for(sink)
        return bool(result and result.success)

    @property
    def notification_sent(self) -> bool:
        return self._succeeded(SinkName.NOTIFICATION)

    @property
    def crm_updated(self) -> bool:
        return self._succeeded(SinkName.CRM)

    @property
    def conversion_sent(self) -> bool:
        return self._succeeded(SinkName.CONVERSION)


class FanOutOrchestrator:
    """
    Runs one finished call through classification and every sink.

    Sink failures never propagate: each branch resolves to a SinkResult and one
    audit activity. Classification and call-record persistence errors do.
    """

    def __init__(self, store: SqlAuditLogStore, notifier, crm, conversion):
        self.store = store
        self.notifier = notifier
        self.crm = crm
        self.conversion = conversion

    async def process(self, ctx: CallContext, *, notify: bool = True) -> FanOutResult:
        start = time.time()
        incoming_type = ActivityType.VAPI_WEBHOOK_RECEIVED if notify else ActivityType.VAPI_CALL_IMPORTED
        await self.store.append_activity(
            ActivityRecord(
                type=incoming_type,
                status=ActivityStatus.SUCCESS,
                service=Service.VAPI,
                direction=Direction.INCOMING,
                summary=f"Call from {ctx.customer_phone} ({ctx.duration}s)",
                details={
                    "call_id": ctx.call_id,
                    "duration": ctx.duration,
                    "ended_reason": ctx.ended_reason,
                },
            )
        )

        classification = explain(ctx.ended_reason, ctx.transcript, ctx.summary, ctx.duration)
        outcome = classification.outcome
        logger.info(
            "fan_out.classified",
            call_id=ctx.call_id,
            outcome=outcome.value,
            rule=classification.rule,
        )

        branches: Dict[SinkName, Awaitable[SinkResult]] = {}
        if notify:
            branches[SinkName.NOTIFICATION] = self._notify(ctx, outcome)
        branches[SinkName.CRM] = self._update_crm(ctx, outcome)
        branches[SinkName.CONVERSION] = self._send_conversion(ctx, outcome)

        gathered = await asyncio.gather(
            *(self._guard(sink, branch) for sink, branch in branches.items())
        )
        by_sink = {result.sink: result for result in gathered}
        sink_results = [by_sink[sink] for sink in _SINK_ORDER if sink in by_sink]

        for sink_result in sink_results:
            await self.store.append_activity(self._activity_for(sink_result))

        result = FanOutResult(outcome=outcome, rule=classification.rule, sink_results=sink_results)
        call_record = await self.store.append_call(
            CallRecord(
                call_id=ctx.call_id,
                customer_phone=ctx.customer_phone,
                duration=ctx.duration,
                outcome=outcome.value,
                summary=ctx.summary,
                ended_reason=ctx.ended_reason,
                notification_sent=result.notification_sent,
                crm_updated=result.crm_updated,
            )
        )

        logger.info(
            "fan_out.completed",
            call_id=ctx.call_id,
            outcome=outcome.value,
            notification_sent=result.notification_sent,
            crm_updated=result.crm_updated,
            conversion_sent=result.conversion_sent,
            duration_ms=round((time.time() - start) * 1000, 2),
        )
        return replace(result, call_record=call_record)

    async def process_safely(self, ctx: CallContext, *, notify: bool = True) -> Dict[str, Any]:
        """Boundary form of ``process``: never raises, always a status dict."""
        try:
            result = await self.process(ctx, notify=notify)
        except Exception as e:
            logger.error("fan_out.failed", call_id=ctx.call_id, error=str(e)[:200], exc_info=True)
            return {"status": "error", "error": str(e) or e.__class__.__name__}

        return {
            "status": "success",
            "outcome": result.outcome.value,
            "telegram_sent": result.notification_sent,
            "attio_updated": result.crm_updated,
        }

    # Branches

    async def _guard(self, sink: SinkName, branch: Awaitable[SinkResult]) -> SinkResult:
        try:
            return await branch
        except Exception as e:
            logger.error("fan_out.sink_error", sink=sink.value, error=str(e)[:200])
            return SinkResult(
                sink=sink,
                success=False,
                summary=f"{sink.value} sink raised an error",
                details={"error": str(e)[:200]},
            )

    async def _notify(self, ctx: CallContext, outcome: Outcome) -> SinkResult:
        sent = await self.notifier.send(
            outcome,
            ctx.customer_phone,
            ctx.duration,
            ctx.summary,
            ctx.ended_reason,
        )
        label = f"{outcome.value} notification for {ctx.customer_phone}"
        return SinkResult(
            sink=SinkName.NOTIFICATION,
            success=sent,
            summary=label if sent else f"Failed: {label}",
            details={"outcome": outcome.value, "phone": ctx.customer_phone},
        )

    async def _update_crm(self, ctx: CallContext, outcome: Outcome) -> SinkResult:
        record_id = ctx.crm_record_id
        if not record_id:
            record_id = await self.crm.find_by_phone(ctx.customer_phone)

        if not record_id:
            return SinkResult(
                sink=SinkName.CRM,
                success=False,
                summary="Skipped record update: no record id",
                details={"reason": "no record id", "phone": ctx.customer_phone},
                skipped=True,
            )

        updated = await self.crm.update(record_id, outcome, ctx.summary, ctx.recording_url)
        return SinkResult(
            sink=SinkName.CRM,
            success=updated,
            summary=f'Updated record to "{outcome.value}"' if updated else "Failed to update record",
            details={"record_id": record_id, "outcome": outcome.value},
        )

    async def _send_conversion(self, ctx: CallContext, outcome: Outcome) -> SinkResult:
        sent = await self.conversion.send(outcome, ctx.customer_phone, ctx.email, ctx.lead_id)
        event_name = OUTCOME_TO_EVENT[outcome]
        return SinkResult(
            sink=SinkName.CONVERSION,
            success=sent,
            summary=f'Sent "{outcome.value}" conversion event'
            if sent
            else f'Failed to send "{outcome.value}" conversion event',
            details={"event_name": event_name, "phone": ctx.customer_phone},
        )

    def _activity_for(self, result: SinkResult) -> ActivityRecord:
        activity_type, service = _SINK_ACTIVITY[result.sink]
        return ActivityRecord(
            type=activity_type,
            status=ActivityStatus.SUCCESS if result.success else ActivityStatus.FAILED,
            service=service,
            direction=Direction.OUTGOING,
            summary=result.summary or result.sink.value,
            details=result.details,
        )
