# api/routes/webhooks.py
from __future__ import annotations

import hmac
import json
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Header, Query, Request
from fastapi.responses import PlainTextResponse
from pydantic import ValidationError as PydanticValidationError

from api.core.config import settings
from api.core.exceptions import AuthenticationError
from api.core.logging import get_structlog_logger
from api.routes.dependencies import get_lead_ingestor, get_orchestrator
from api.schemas.logs import WebhookResponse
from api.schemas.vapi import VapiWebhookPayload
from api.services.facebook import verify_signature, verify_webhook
from api.services.fan_out import FanOutOrchestrator
from api.services.lead_ingest import LeadIngestor
from api.services.vapi import webhook_to_context

logger = get_structlog_logger(__name__)

router = APIRouter(prefix="/webhook", tags=["webhooks"])


def _check_vapi_secret(provided: Optional[str]) -> None:
    secret = settings.vapi_webhook_secret
    if not secret:
        return
    if not provided or not hmac.compare_digest(provided, secret):
        logger.warning("webhook.vapi.invalid_secret")
        raise AuthenticationError("Invalid webhook secret")


@router.post("/vapi", response_model=WebhookResponse, response_model_exclude_none=True)
async def vapi_webhook(
    request: Request,
    x_vapi_secret: Optional[str] = Header(default=None),
    orchestrator: FanOutOrchestrator = Depends(get_orchestrator),
):
    """End-of-call reports are classified and fanned out; everything else is ignored."""
    _check_vapi_secret(x_vapi_secret)

    raw = await request.body()
    try:
        payload = VapiWebhookPayload.model_validate(json.loads(raw or b"{}"))
    except (ValueError, PydanticValidationError) as e:
        logger.warning("webhook.vapi.invalid_payload", error=str(e)[:200])
        return WebhookResponse(status="ignored", reason="No message in payload")

    if not payload.is_end_of_call_report:
        logger.info("webhook.vapi.ignored", message_type=payload.message.type)
        return WebhookResponse(status="ignored", reason=f"Message type {payload.message.type} not processed")

    ctx = webhook_to_context(payload)
    logger.info(
        "webhook.vapi.received",
        call_id=ctx.call_id,
        duration=ctx.duration,
        ended_reason=ctx.ended_reason,
        has_transcript=bool(ctx.transcript),
        has_summary=bool(ctx.summary),
        has_record_id=bool(ctx.crm_record_id),
    )
    result = await orchestrator.process_safely(ctx)
    return WebhookResponse(**result)


@router.get("/facebook")
async def facebook_verify(
    mode: Optional[str] = Query(default=None, alias="hub.mode"),
    token: Optional[str] = Query(default=None, alias="hub.verify_token"),
    challenge: Optional[str] = Query(default=None, alias="hub.challenge"),
):
    """Subscription handshake for the lead-ad webhook."""
    result = verify_webhook(mode, token, challenge, settings.facebook_verify_token)
    if result is None:
        logger.warning("webhook.facebook.verification_failed", mode=mode)
        return PlainTextResponse("Verification failed", status_code=403)

    logger.info("webhook.facebook.verified")
    return PlainTextResponse(result)


@router.post("/facebook")
async def facebook_webhook(
    request: Request,
    x_hub_signature_256: Optional[str] = Header(default=None),
    ingestor: LeadIngestor = Depends(get_lead_ingestor),
):
    raw = await request.body()
    if settings.facebook_app_secret and not verify_signature(raw, x_hub_signature_256, settings.facebook_app_secret):
        logger.warning("webhook.facebook.invalid_signature")
        raise AuthenticationError("Invalid webhook signature")

    try:
        body: Dict[str, Any] = json.loads(raw or b"{}")
    except ValueError:
        logger.warning("webhook.facebook.invalid_payload")
        return PlainTextResponse("EVENT_RECEIVED")

    if not isinstance(body, dict):
        return PlainTextResponse("EVENT_RECEIVED")

    logger.info("webhook.facebook.received", object=body.get("object"), entries=len(body.get("entry") or []))
    try:
        results = await ingestor.handle_webhook(body)
    except Exception as e:
        logger.error("webhook.facebook.failed", error=str(e)[:200], exc_info=True)
    else:
        logger.info("webhook.facebook.processed", leads=len(results))

    return PlainTextResponse("EVENT_RECEIVED")
