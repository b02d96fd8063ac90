from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Iterator, List, Mapping, Optional

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

logger = get_structlog_logger(__name__)


@dataclass(frozen=True)
class LeadIngestResult:
    lead_id: str
    status: str
    record_id: Optional[str] = None
    placeholder: bool = False


def iter_leadgen_changes(body: Mapping[str, Any]) -> Iterator[Dict[str, Any]]:
    """Yield the ``value`` of every ``leadgen`` change in a page webhook body."""
    if body.get("object") != "page":
        return
    for entry in body.get("entry") or []:
        for change in entry.get("changes") or []:
            if change.get("field") == "leadgen" and isinstance(change.get("value"), dict):
                yield change["value"]


class LeadIngestor:
    """Creates a CRM record for each lead announced by the lead-ad webhook."""

    def __init__(self, store: SqlAuditLogStore, lead_source, crm):
        self.store = store
        self.lead_source = lead_source
        self.crm = crm

    async def _log(self, activity_type: ActivityType, status: ActivityStatus, service: Service, direction: Direction, summary: str, details: Dict[str, Any]) -> None:
        await self.store.append_activity(
            ActivityRecord(
                type=activity_type,
                status=status,
                service=service,
                direction=direction,
                summary=summary,
                details=details,
            )
        )

    async def ingest(self, lead_id: str, form_id: Optional[str] = None) -> LeadIngestResult:
        logger.info("lead_ingest.received", lead_id=lead_id, form_id=form_id)
        lead = await self.lead_source.fetch_lead(lead_id)

        await self._log(
            ActivityType.FACEBOOK_LEAD_RECEIVED,
            ActivityStatus.SUCCESS,
            Service.FACEBOOK,
            Direction.INCOMING,
            f"Lead received from form {form_id}",
            {"lead_id": lead_id, "form_id": form_id},
        )

        if lead is None:
            logger.warning("lead_ingest.details_unavailable", lead_id=lead_id)
            record_id = await self.crm.create(name=f"Facebook Lead {lead_id}")
            if not record_id:
                await self._log(
                    ActivityType.ATTIO_RECORD_CREATED,
                    ActivityStatus.FAILED,
                    Service.ATTIO,
                    Direction.OUTGOING,
                    f"Failed to create placeholder record for lead {lead_id}",
                    {"lead_id": lead_id},
                )
                return LeadIngestResult(lead_id=lead_id, status="error", placeholder=True)

            await self._log(
                ActivityType.ATTIO_RECORD_CREATED,
                ActivityStatus.SUCCESS,
                Service.ATTIO,
                Direction.OUTGOING,
                f"Created placeholder record for lead {lead_id}",
                {"record_id": record_id, "lead_id": lead_id},
            )
            return LeadIngestResult(lead_id=lead_id, status="created", record_id=record_id, placeholder=True)

        match = await find_existing_record(self.crm, lead.phone, lead.email)
        if match:
            logger.info("lead_ingest.skipped", lead_id=lead_id, record_id=match.record_id, matched_on=match.matched_on)
            return LeadIngestResult(lead_id=lead_id, status="skipped", record_id=match.record_id)

        details = {"lead_id": lead_id, "name": lead.name, "email": lead.email, "phone": lead.phone}
        record_id = await self.crm.create(lead.name, lead.email, lead.phone)
        if not record_id:
            await self._log(
                ActivityType.ATTIO_RECORD_CREATED,
                ActivityStatus.FAILED,
                Service.ATTIO,
                Direction.OUTGOING,
                f"Failed to create record for lead {lead_id}",
                details,
            )
            return LeadIngestResult(lead_id=lead_id, status="error")

        await self._log(
            ActivityType.ATTIO_RECORD_CREATED,
            ActivityStatus.SUCCESS,
            Service.ATTIO,
            Direction.OUTGOING,
            f"Created record for {lead.name or lead.email or 'lead'}",
            {"record_id": record_id, **details},
        )
        return LeadIngestResult(lead_id=lead_id, status="created", record_id=record_id)

    async def handle_webhook(self, body: Mapping[str, Any]) -> List[LeadIngestResult]:
        """Process every leadgen change; one failing lead does not stop the rest."""
        results: List[LeadIngestResult] = []
        for value in iter_leadgen_changes(body):
            lead_id = str(value.get("leadgen_id") or "")
            if not lead_id:
                logger.warning("lead_ingest.missing_lead_id", value=value)
                continue
            try:
                results.append(await self.ingest(lead_id, value.get("form_id")))
            except Exception as e:
                logger.error("lead_ingest.failed", lead_id=lead_id, error=str(e)[:200], exc_info=True)
                results.append(LeadIngestResult(lead_id=lead_id, status="error"))
        return results
