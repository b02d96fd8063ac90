from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

import aiohttp
from pydantic import ValidationError as PydanticValidationError

from api.core.config import VapiConfig
from api.core.logging import get_structlog_logger
from api.schemas.vapi import VapiCall, VapiMetadata, VapiWebhookCall, VapiWebhookPayload
from api.services.call_context import CallContext
from api.services.sinks import HttpAdapter, HttpResponse

logger = get_structlog_logger(__name__)


def webhook_to_context(payload: VapiWebhookPayload) -> CallContext:
    message = payload.message
    call = message.call or VapiWebhookCall()
    metadata = call.metadata or VapiMetadata()
    return CallContext(
        call_id=call.id or "unknown",
        customer_phone=(call.customer.number if call.customer else None) or "Unknown",
        duration=int(call.duration or 0),
        ended_reason=message.ended_reason or "unknown",
        transcript=(message.artifact.transcript if message.artifact else None) or "",
        summary=(message.analysis.summary if message.analysis else None) or "",
        crm_record_id=metadata.attio_record_id,
        recording_url=message.artifact.recording_url if message.artifact else None,
        email=metadata.email,
        lead_id=metadata.lead_id,
    )


def call_to_context(call: VapiCall) -> CallContext:
    metadata = call.metadata or VapiMetadata()
    return CallContext(
        call_id=call.id,
        customer_phone=(call.customer.number if call.customer else None) or "Unknown",
        duration=call.duration_seconds,
        ended_reason=call.ended_reason or "unknown",
        transcript=call.transcript_text(),
        summary=(call.analysis.summary if call.analysis else None) or call.summary or "",
        crm_record_id=metadata.attio_record_id,
        recording_url=call.recording_url,
        email=metadata.email,
        lead_id=metadata.lead_id,
    )


class CallSourceError(Exception):
    def __init__(self, code: str, message: str):
        super().__init__(message)
        self.code = code
        self.message = message


class VapiClient(HttpAdapter):
    """Reads past calls from the Vapi REST API."""

    service = "vapi"

    def __init__(self, config: VapiConfig, *, timeout: int = 10) -> None:
        super().__init__(timeout=timeout)
        self.config = config

    async def _get(self, path: str, params: Optional[Dict[str, str]] = None) -> Any:
        if not self.config.configured:
            raise CallSourceError("not_configured", "VAPI_API_KEY is not configured")

        try:
            response: HttpResponse = await self._request(
                "GET",
                f"{self.config.api_base.rstrip('/')}{path}",
                params=params,
                headers={"Authorization": f"Bearer {self.config.api_key}"},
            )
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise CallSourceError("transport_error", f"Vapi request failed: {e}") from e

        if not response.ok:
            raise CallSourceError("api_error", f"Vapi API error: {response.status} - {response.text[:200]}")

        try:
            return response.json()
        except ValueError as e:
            raise CallSourceError("malformed_response", "Vapi returned a non-JSON body") from e

    async def fetch_historical_calls(self, hours_back: int = 48) -> List[VapiCall]:
        since = datetime.now(timezone.utc) - timedelta(hours=hours_back)
        params = {
            "limit": "100",
            "createdAtGt": since.isoformat().replace("+00:00", "Z"),
        }
        if self.config.assistant_id:
            params["assistantId"] = self.config.assistant_id

        body = await self._get("/call", params)
        if not isinstance(body, list):
            raise CallSourceError("malformed_response", "Expected a list of calls")

        calls: List[VapiCall] = []
        for item in body:
            try:
                calls.append(VapiCall.model_validate(item))
            except PydanticValidationError as e:
                logger.warning("vapi.call_skipped", call_id=item.get("id") if isinstance(item, dict) else None, error=str(e)[:200])
        logger.info("vapi.calls_fetched", hours_back=hours_back, count=len(calls))
        return calls

    async def fetch_call(self, call_id: str) -> VapiCall:
        body = await self._get(f"/call/{call_id}")
        try:
            return VapiCall.model_validate(body)
        except PydanticValidationError as e:
            raise CallSourceError("malformed_response", f"Invalid call {call_id}") from e

    async def fetch_ended_calls(self, hours_back: int = 48) -> List[CallContext]:
        calls = await self.fetch_historical_calls(hours_back)
        return [call_to_context(call) for call in calls if call.ended]
