from __future__ import annotations

import math
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

END_OF_CALL_REPORT = "end-of-call-report"


class _VapiModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore", coerce_numbers_to_str=True)


class VapiCustomer(_VapiModel):
    number: Optional[str] = None


class VapiMetadata(_VapiModel):
    attio_record_id: Optional[str] = None
    email: Optional[str] = None
    lead_id: Optional[str] = None


class VapiWebhookCall(_VapiModel):
    id: Optional[str] = None
    duration: Optional[float] = None
    customer: Optional[VapiCustomer] = None
    metadata: Optional[VapiMetadata] = None


class VapiArtifact(_VapiModel):
    transcript: Optional[str] = None
    recording_url: Optional[str] = Field(default=None, alias="recordingUrl")


class VapiAnalysis(_VapiModel):
    summary: Optional[str] = None


class VapiMessage(_VapiModel):
    type: str
    ended_reason: Optional[str] = Field(default=None, alias="endedReason")
    call: Optional[VapiWebhookCall] = None
    artifact: Optional[VapiArtifact] = None
    analysis: Optional[VapiAnalysis] = None


class VapiWebhookPayload(_VapiModel):
    """Server message envelope posted by Vapi."""

    message: VapiMessage

    @property
    def is_end_of_call_report(self) -> bool:
        return self.message.type == END_OF_CALL_REPORT


# Call objects returned by the REST API

class VapiCallMessage(_VapiModel):
    role: Optional[str] = None
    message: Optional[str] = None


class VapiCall(_VapiModel):
    id: str
    status: Optional[str] = None
    created_at: Optional[str] = Field(default=None, alias="createdAt")
    ended_reason: Optional[str] = Field(default=None, alias="endedReason")
    customer: Optional[VapiCustomer] = None
    assistant_id: Optional[str] = Field(default=None, alias="assistantId")
    transcript: Optional[str] = None
    summary: Optional[str] = None
    analysis: Optional[VapiAnalysis] = None
    messages: List[VapiCallMessage] = Field(default_factory=list)
    started_at: Optional[datetime] = Field(default=None, alias="startedAt")
    ended_at: Optional[datetime] = Field(default=None, alias="endedAt")
    recording_url: Optional[str] = Field(default=None, alias="recordingUrl")
    metadata: Optional[VapiMetadata] = None

    @property
    def ended(self) -> bool:
        return self.status == "ended"

    @property
    def duration_seconds(self) -> int:
        if not self.started_at or not self.ended_at:
            return 0
        return max(0, math.floor((self.ended_at - self.started_at).total_seconds()))

    def transcript_text(self) -> str:
        if self.transcript:
            return self.transcript
        lines = [
            f"{'AI' if m.role == 'assistant' else 'User'}: {m.message or ''}"
            for m in self.messages
            if m.role in ("assistant", "user")
        ]
        return " ".join(lines)
