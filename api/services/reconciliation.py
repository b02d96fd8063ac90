from __future__ import annotations

import time
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Optional

from api.core.exceptions import ValidationError
from api.core.logging import get_structlog_logger
from api.services.audit_log import (
    ActivityRecord,
    ActivityStatus,
    ActivityType,
    Direction,
    Service,
    SqlAuditLogStore,
)
from api.services.dedupe import find_existing_record
from api.services.fan_out import FanOutOrchestrator

logger = get_structlog_logger(__name__)


@dataclass
class CallImportResult:
    total: int = 0
    processed: int = 0
    attio_updated: int = 0
    errors: List[str] = field(default_factory=list)
    calls: List[Dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class LeadImportResult:
    total: int = 0
    created: int = 0
    skipped: int = 0
    errors: List[str] = field(default_factory=list)
    leads: List[Dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class ReconciliationImporter:
    """
    Batch counterparts of the real-time paths.

    Calls missed by the webhook are replayed through the orchestrator without the
    notification sink; lead-ad leads missing from the CRM are created. Items are
    processed one at a time and a failing item never aborts the batch.
    """

    def __init__(
        self,
        store: SqlAuditLogStore,
        orchestrator: FanOutOrchestrator,
        call_source,
        lead_source,
        crm,
        *,
        default_page_id: Optional[str] = None,
    ):
        self.store = store
        self.orchestrator = orchestrator
        self.call_source = call_source
        self.lead_source = lead_source
        self.crm = crm
        self.default_page_id = default_page_id

    async def import_calls(self, hours_back: int = 48) -> CallImportResult:
        start = time.time()
        logger.info("reconciliation.calls_started", hours_back=hours_back)

        # CallSourceError propagates; nothing has been processed yet
        contexts = await self.call_source.fetch_ended_calls(hours_back)
        result = CallImportResult(total=len(contexts))

        for ctx in contexts:
            try:
                fan_out = await self.orchestrator.process(ctx, notify=False)
            except Exception as e:
                message = f"Error processing call {ctx.call_id}: {e}"
                logger.error("reconciliation.call_failed", call_id=ctx.call_id, error=str(e)[:200])
                result.errors.append(message)
                continue

            result.processed += 1
            if fan_out.crm_updated:
                result.attio_updated += 1
            result.calls.append(
                {
                    "call_id": ctx.call_id,
                    "phone_number": ctx.customer_phone,
                    "outcome": fan_out.outcome.value,
                    "attio_updated": fan_out.crm_updated,
                    "duration": ctx.duration,
                }
            )

        logger.info(
            "reconciliation.calls_completed",
            total=result.total,
            processed=result.processed,
            attio_updated=result.attio_updated,
            errors=len(result.errors),
            duration_ms=round((time.time() - start) * 1000, 2),
        )
        return result

    async def import_leads(self, source_id: Optional[str] = None) -> LeadImportResult:
        page_id = source_id or self.default_page_id
        if not page_id:
            raise ValidationError(
                "Page ID is required",
                details={"hint": "pass pageId or set FACEBOOK_PAGE_ID"},
            )

        start = time.time()
        logger.info("reconciliation.leads_started", page_id=page_id)
        await self.store.append_activity(
            ActivityRecord(
                type=ActivityType.FACEBOOK_LEAD_RECEIVED,
                status=ActivityStatus.PENDING,
                service=Service.FACEBOOK,
                direction=Direction.INCOMING,
                summary=f"Starting leads import from page {page_id}",
                details={"page_id": page_id},
            )
        )

        leads = await self.lead_source.fetch_all_leads(page_id)
        result = LeadImportResult(total=len(leads))

        for lead in leads:
            entry = {
                "lead_id": lead.lead_id,
                "name": lead.name,
                "email": lead.email,
                "phone": lead.phone,
            }
            try:
                match = await find_existing_record(self.crm, lead.phone, lead.email)
                if match:
                    result.skipped += 1
                    result.leads.append(
                        {**entry, "status": "skipped", "record_id": match.record_id, "matched_on": match.matched_on}
                    )
                    continue

                record_id = await self.crm.create(lead.name, lead.email, lead.phone)
                if not record_id:
                    message = f"Error processing lead {lead.lead_id}: record creation returned no id"
                    result.errors.append(message)
                    result.leads.append({**entry, "status": "error", "error": message})
                    continue

                result.created += 1
                result.leads.append({**entry, "status": "created", "record_id": record_id})
                await self.store.append_activity(
                    ActivityRecord(
                        type=ActivityType.ATTIO_RECORD_CREATED,
                        status=ActivityStatus.SUCCESS,
                        service=Service.ATTIO,
                        direction=Direction.OUTGOING,
                        summary=f"Created record for {lead.label}",
                        details={"record_id": record_id, **entry},
                    )
                )
            except Exception as e:
                message = f"Error processing lead {lead.lead_id}: {e}"
                logger.error("reconciliation.lead_failed", lead_id=lead.lead_id, error=str(e)[:200])
                result.errors.append(message)
                result.leads.append({**entry, "status": "error", "error": message})

        await self.store.append_activity(
            ActivityRecord(
                type=ActivityType.FACEBOOK_LEAD_RECEIVED,
                status=ActivityStatus.SUCCESS if not result.errors else ActivityStatus.FAILED,
                service=Service.FACEBOOK,
                direction=Direction.INCOMING,
                summary=f"Imported {result.created} leads, {result.skipped} skipped",
                details={
                    "page_id": page_id,
                    "total": result.total,
                    "created": result.created,
                    "skipped": result.skipped,
                    "errors": len(result.errors),
                },
            )
        )

        logger.info(
            "reconciliation.leads_completed",
            page_id=page_id,
            total=result.total,
            created=result.created,
            skipped=result.skipped,
            errors=len(result.errors),
            duration_ms=round((time.time() - start) * 1000, 2),
        )
        return result
