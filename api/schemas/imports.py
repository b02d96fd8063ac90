# api/schemas/imports.py
from __future__ import annotations

from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


class ImportCallsRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    hours_back: Optional[int] = Field(default=None, ge=1, le=24 * 30, alias="hoursBack")


class ImportLeadsRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    page_id: Optional[str] = Field(default=None, min_length=1, max_length=64, alias="pageId")


class ImportedCall(BaseModel):
    call_id: str
    phone_number: str
    outcome: str
    attio_updated: bool
    duration: int


class ImportCallsResponse(BaseModel):
    total: int
    processed: int
    attio_updated: int
    errors: List[str] = Field(default_factory=list)
    calls: List[ImportedCall] = Field(default_factory=list)


class ImportedLead(BaseModel):
    lead_id: str
    status: str
    name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    record_id: Optional[str] = None
    matched_on: Optional[str] = None
    error: Optional[str] = None


class ImportLeadsResponse(BaseModel):
    total: int
    created: int
    skipped: int
    errors: List[str] = Field(default_factory=list)
    leads: List[ImportedLead] = Field(default_factory=list)
