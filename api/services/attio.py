from __future__ import annotations

import asyncio
from typing import Any, Dict, List, Optional, Tuple

import aiohttp

from api.core.config import AttioConfig
from api.core.logging import get_structlog_logger
from api.services.normalization import canonical_phone, normalize_email
from api.services.outcome import Outcome
from api.services.sinks import AttemptSpec, HttpAdapter, HttpResponse, run_attempts

logger = get_structlog_logger(__name__)

# Outcome -> Attio `call_outcome` select option
OUTCOME_TO_ATTIO = {
    Outcome.BOOKED: "Booked",
    Outcome.INTERESTED: "Answered_Interested",
    Outcome.NOT_INTERESTED: "Answered_Not_Interested",
    Outcome.NO_ANSWER: "No_Answer",
    Outcome.VOICEMAIL: "Voicemail_Left",
    Outcome.NEEDS_REVIEW: "Needs_Review",
}

MISSING_ATTRIBUTE_MARKERS = ("value_not_found", "Cannot find attribute")
LEAD_STATUS_MARKERS = ("lead_status",)


def split_name(full_name: Optional[str]) -> Tuple[str, str, str]:
    """Return (first, last, full) with "Unknown Lead" placeholders."""
    full = (full_name or "").strip() or "Unknown Lead"
    parts = full.split()
    first = parts[0] if parts else "Unknown"
    last = " ".join(parts[1:]) if len(parts) > 1 else "Lead"
    return first, last, full


def _record_id(record: Any) -> Optional[str]:
    """``record["id"]["record_id"]`` when the record has that shape."""
    if not isinstance(record, dict) or not isinstance(record.get("id"), dict):
        return None
    record_id = record["id"].get("record_id")
    return record_id if isinstance(record_id, str) and record_id else None


class AttioCRM(HttpAdapter):
    """CRM sink and record lookup backed by Attio's people object."""

    service = "attio"

    def __init__(self, config: AttioConfig, *, timeout: int = 10) -> None:
        super().__init__(timeout=timeout)
        self.config = config

    @property
    def _headers(self) -> Dict[str, str]:
        return {"Authorization": f"Bearer {self.config.api_key}"}

    def _url(self, path: str) -> str:
        return f"{self.config.api_base.rstrip('/')}/objects/people/records{path}"

    # Lookup

    async def _query_first(self, filter_: Dict[str, str]) -> Optional[str]:
        try:
            response = await self._request(
                "POST",
                self._url("/query"),
                json_body={"filter": filter_, "limit": 1},
                headers=self._headers,
            )
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            logger.error("attio.query_failed", filter=filter_, error=str(e)[:200])
            return None

        if not response.ok:
            logger.error("attio.query_error", filter=filter_, status=response.status, error=response.text[:200])
            return None

        try:
            body = response.json()
        except ValueError:
            logger.error("attio.malformed_response", body=response.text[:200])
            return None

        records = body.get("data") if isinstance(body, dict) else None
        if records is None:
            records = []
        if not isinstance(records, list):
            logger.error("attio.malformed_response", body=response.text[:200])
            return None

        # Several matches: the first one returned wins
        if records:
            record_id = _record_id(records[0])
            if record_id is None:
                logger.error("attio.malformed_response", body=response.text[:200])
            return record_id
        return None

    async def find_by_phone(self, phone: Optional[str]) -> Optional[str]:
        normalized = canonical_phone(phone)
        if not self.config.configured or not normalized:
            return None
        record_id = await self._query_first({"phone_numbers": normalized})
        logger.info("attio.lookup", key="phone", found=record_id is not None)
        return record_id

    async def find_by_email(self, email: Optional[str]) -> Optional[str]:
        normalized = normalize_email(email) or (email or "").strip().lower()
        if not self.config.configured or not normalized:
            return None
        record_id = await self._query_first({"email_addresses": normalized})
        logger.info("attio.lookup", key="email", found=record_id is not None)
        return record_id

    # Writes

    def update_attempts(
        self,
        outcome: Outcome,
        summary: Optional[str],
        recording_url: Optional[str],
    ) -> List[AttemptSpec]:
        attio_outcome = OUTCOME_TO_ATTIO[outcome]
        summary_key = self.config.summary_attribute
        recording_key = self.config.recording_attribute
        return [
            AttemptSpec(
                "full",
                {"call_outcome": attio_outcome, summary_key: summary, recording_key: recording_url},
                MISSING_ATTRIBUTE_MARKERS,
            ),
            AttemptSpec(
                "outcome_and_summary",
                {"call_outcome": attio_outcome, summary_key: summary},
                MISSING_ATTRIBUTE_MARKERS,
            ),
            AttemptSpec("outcome_only", {"call_outcome": attio_outcome}),
        ]

    async def update(
        self,
        record_id: Optional[str],
        outcome: Outcome,
        summary: Optional[str] = None,
        recording_url: Optional[str] = None,
    ) -> bool:
        if not self.config.configured:
            logger.warning("attio.not_configured")
            return False
        if not record_id:
            logger.warning("attio.update_skipped", reason="no record id")
            return False

        async def send(values: Dict[str, Any]) -> HttpResponse:
            return await self._request(
                "PATCH",
                self._url(f"/{record_id}"),
                json_body={"data": {"values": values}},
                headers=self._headers,
            )

        try:
            response, spec = await run_attempts(
                self.update_attempts(outcome, summary, recording_url),
                send,
                service=self.service,
            )
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            logger.error("attio.update_failed", record_id=record_id, error=str(e)[:200])
            return False

        if spec is None:
            return False
        logger.info("attio.updated", record_id=record_id, outcome=outcome.value, attempt=spec.label)
        return True

    async def create(
        self,
        name: Optional[str] = None,
        email: Optional[str] = None,
        phone: Optional[str] = None,
    ) -> Optional[str]:
        if not self.config.configured:
            logger.warning("attio.not_configured")
            return None

        first, last, full = split_name(name)
        values: Dict[str, Any] = {
            "name": [{"first_name": first, "last_name": last, "full_name": full}],
        }
        if email:
            values["email_addresses"] = [{"email_address": email}]
        normalized_phone = canonical_phone(phone)
        if normalized_phone:
            values["phone_numbers"] = [{"original_phone_number": normalized_phone}]

        attempts = [
            AttemptSpec("with_lead_status", {**values, "lead_status": "New"}, LEAD_STATUS_MARKERS),
            AttemptSpec("without_lead_status", values),
        ]

        async def send(payload: Dict[str, Any]) -> HttpResponse:
            return await self._request(
                "POST",
                self._url(""),
                json_body={"data": {"values": payload}},
                headers=self._headers,
            )

        try:
            response, spec = await run_attempts(attempts, send, service=self.service)
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            logger.error("attio.create_failed", error=str(e)[:200])
            return None

        if spec is None:
            return None

        try:
            body = response.json()
        except ValueError:
            logger.error("attio.malformed_response", body=response.text[:200])
            return None

        record_id = _record_id(body.get("data") if isinstance(body, dict) else None)
        if record_id is None:
            logger.error("attio.malformed_response", body=response.text[:200])
            return None

        logger.info("attio.created", record_id=record_id, attempt=spec.label, label=name or phone or email)
        return record_id
