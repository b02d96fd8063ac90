# api/routes/imports.py
from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Body, Depends

from api.core.config import settings
from api.core.exceptions import ExternalServiceError
from api.core.logging import get_structlog_logger
from api.routes.dependencies import get_importer
from api.schemas.imports import (
    ImportCallsRequest,
    ImportCallsResponse,
    ImportLeadsRequest,
    ImportLeadsResponse,
)
from api.services.reconciliation import ReconciliationImporter
from api.services.vapi import CallSourceError

logger = get_structlog_logger(__name__)

router = APIRouter(tags=["imports"])


@router.post("/import-historical", response_model=ImportCallsResponse)
async def import_historical_calls(
    payload: Optional[ImportCallsRequest] = Body(default=None),
    importer: ReconciliationImporter = Depends(get_importer),
):
    """Replay recent calls through the CRM and conversion sinks."""
    hours_back = (payload.hours_back if payload else None) or settings.import_default_hours
    try:
        result = await importer.import_calls(hours_back)
    except CallSourceError as e:
        logger.error("imports.call_source_failed", code=e.code, error=e.message)
        raise ExternalServiceError(e.message, code=e.code, details={"service": "vapi"}) from e
    return ImportCallsResponse(**result.to_dict())


@router.post("/import-facebook-leads", response_model=ImportLeadsResponse)
async def import_facebook_leads(
    payload: Optional[ImportLeadsRequest] = Body(default=None),
    importer: ReconciliationImporter = Depends(get_importer),
):
    """Create CRM records for lead-ad leads that have none yet."""
    result = await importer.import_leads(payload.page_id if payload else None)
    return ImportLeadsResponse(**result.to_dict())
