# api/schemas/__init__.py
"""
Pydantic schemas for request/response validation and serialization.
"""

from api.schemas.imports import (
    ImportCallsRequest,
    ImportCallsResponse,
    ImportLeadsRequest,
    ImportLeadsResponse,
)
from api.schemas.logs import (
    ActivityLogOut,
    ActivityStatsOut,
    CallLogOut,
    WebhookResponse,
)
from api.schemas.vapi import VapiCall, VapiWebhookPayload

__all__ = [
    "ActivityLogOut",
    "ActivityStatsOut",
    "CallLogOut",
    "ImportCallsRequest",
    "ImportCallsResponse",
    "ImportLeadsRequest",
    "ImportLeadsResponse",
    "VapiCall",
    "VapiWebhookPayload",
    "WebhookResponse",
]
