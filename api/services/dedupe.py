from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from api.core.logging import get_structlog_logger
from api.services.normalization import is_known_phone

logger = get_structlog_logger(__name__)


@dataclass(frozen=True)
class DuplicateMatch:
    record_id: str
    matched_on: str


async def find_existing_record(
    crm,
    phone: Optional[str],
    email: Optional[str],
) -> Optional[DuplicateMatch]:
    """
    Look up an existing CRM record for a lead.
    Phone is checked first, then email. Returns None when neither matches.
    """
    if is_known_phone(phone):
        record_id = await crm.find_by_phone(phone)
        if record_id:
            logger.info("dedupe.duplicate_found", matched_on="phone", record_id=record_id)
            return DuplicateMatch(record_id=record_id, matched_on="phone")

    if email:
        record_id = await crm.find_by_email(email)
        if record_id:
            logger.info("dedupe.duplicate_found", matched_on="email", record_id=record_id)
            return DuplicateMatch(record_id=record_id, matched_on="email")

    return None
