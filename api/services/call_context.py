from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from api.services.normalization import UNKNOWN_PHONE


@dataclass(frozen=True)
class CallContext:
    """Everything known about one finished call, from a webhook or an import."""

    call_id: str = "unknown"
    customer_phone: str = UNKNOWN_PHONE
    duration: int = 0
    ended_reason: str = ""
    transcript: str = ""
    summary: str = ""
    crm_record_id: Optional[str] = None
    recording_url: Optional[str] = None
    email: Optional[str] = None
    lead_id: Optional[str] = None

    def __post_init__(self) -> None:
        if not self.call_id:
            object.__setattr__(self, "call_id", "unknown")
        if not self.customer_phone:
            object.__setattr__(self, "customer_phone", UNKNOWN_PHONE)
        object.__setattr__(self, "duration", max(0, int(self.duration or 0)))
        for name in ("ended_reason", "transcript", "summary"):
            if getattr(self, name) is None:
                object.__setattr__(self, name, "")
