# api/schemas/logs.py
from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field


class WebhookResponse(BaseModel):
    status: str
    outcome: Optional[str] = None
    telegram_sent: Optional[bool] = None
    attio_updated: Optional[bool] = None
    reason: Optional[str] = None
    error: Optional[str] = None


class CallLogOut(BaseModel):
    id: Optional[int] = None
    call_id: str
    customer_phone: str
    duration: int
    outcome: str
    summary: str
    ended_reason: str
    notification_sent: bool
    crm_updated: bool
    timestamp: Optional[datetime] = None


class ActivityLogOut(BaseModel):
    id: Optional[int] = None
    type: str
    status: str
    service: str
    direction: str
    summary: str
    details: Dict[str, Any] = Field(default_factory=dict)
    timestamp: Optional[datetime] = None


class ServiceStatsOut(BaseModel):
    total: int = 0
    successful: int = 0
    failed: int = 0


class ActivityStatsOut(BaseModel):
    total: int = 0
    successful: int = 0
    failed: int = 0
    by_service: Dict[str, ServiceStatsOut] = Field(default_factory=dict)
    by_type: Dict[str, int] = Field(default_factory=dict)
