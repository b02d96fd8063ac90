from __future__ import annotations

import asyncio
import hashlib
import hmac
import re
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

import aiohttp

from api.core.config import FacebookConfig
from api.core.logging import get_structlog_logger
from api.services.normalization import is_known_phone, phone_digits
from api.services.outcome import Outcome
from api.services.sinks import HttpAdapter, HttpResponse

logger = get_structlog_logger(__name__)

OUTCOME_TO_EVENT = {
    Outcome.BOOKED: "Lead Qualified",
    Outcome.INTERESTED: "Lead Interested",
    Outcome.NOT_INTERESTED: "Lead Not Interested",
    Outcome.NO_ANSWER: "Lead No Answer",
    Outcome.VOICEMAIL: "Lead Voicemail",
    Outcome.NEEDS_REVIEW: "Lead Needs Review",
}

_LEAD_ID_PATTERN = re.compile(r"\d{15,17}")


def hash_sha256(value: str) -> str:
    return hashlib.sha256(value.strip().lower().encode("utf-8")).hexdigest()


def is_numeric_lead_id(lead_id: Optional[str]) -> bool:
    return bool(lead_id and _LEAD_ID_PATTERN.fullmatch(lead_id))


def build_user_data(
    phone: Optional[str],
    email: Optional[str] = None,
    lead_id: Optional[str] = None,
) -> Dict[str, Any]:
    user_data: Dict[str, Any] = {}
    if is_known_phone(phone) and phone_digits(phone):
        user_data["ph"] = [hash_sha256(phone_digits(phone))]
    if email:
        user_data["em"] = [hash_sha256(email)]
    # Malformed lead ids are dropped rather than sent
    if is_numeric_lead_id(lead_id):
        user_data["lead_id"] = int(lead_id)
    return user_data


def verify_webhook(mode: Optional[str], token: Optional[str], challenge: Optional[str], verify_token: str) -> Optional[str]:
    """Subscription handshake: echo the challenge when the verify token matches."""
    if mode == "subscribe" and token is not None and hmac.compare_digest(token, verify_token):
        return challenge
    return None


def verify_signature(payload: bytes, signature: Optional[str], app_secret: str) -> bool:
    """Check an ``X-Hub-Signature-256: sha256=<hex>`` header against the raw body."""
    if not signature or not app_secret:
        return False
    if signature.startswith("sha256="):
        signature = signature[7:]
    expected = hmac.new(app_secret.encode(), payload, hashlib.sha256).hexdigest()
    return hmac.compare_digest(signature, expected)


# Lead field parsing

@dataclass(frozen=True)
class LeadRecord:
    lead_id: str
    created_time: Optional[str] = None
    name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    raw_fields: Dict[str, str] = field(default_factory=dict)

    @property
    def label(self) -> str:
        return self.name or self.email or self.phone or self.lead_id


# Evaluated once per field; first matching predicate assigns the role.
FIELD_ROLES: Sequence[Tuple[Callable[[str], bool], str]] = (
    (lambda name: "name" in name, "name"),
    (lambda name: "email" in name, "email"),
    (lambda name: "phone" in name or "tel" in name, "phone"),
)


def field_role(field_name: str) -> Optional[str]:
    lowered = field_name.lower()
    for predicate, role in FIELD_ROLES:
        if predicate(lowered):
            return role
    return None


def parse_lead(data: Dict[str, Any]) -> LeadRecord:
    """Build a LeadRecord from a Graph API lead object (``field_data`` list)."""
    raw: Dict[str, str] = {}
    roles: Dict[str, str] = {}
    for item in data.get("field_data") or []:
        name = item.get("name") or ""
        values = item.get("values") or []
        value = values[0] if values else ""
        raw[name] = value

        role = field_role(name)
        # The first non-empty value for a role is kept
        if role and value and role not in roles:
            roles[role] = value

    return LeadRecord(
        lead_id=str(data.get("id")),
        created_time=data.get("created_time"),
        name=roles.get("name"),
        email=roles.get("email"),
        phone=roles.get("phone"),
        raw_fields=raw,
    )


class FacebookConversions(HttpAdapter):
    """Conversion sink: one Conversions API event per classified call."""

    service = "facebook"

    def __init__(self, config: FacebookConfig, *, timeout: int = 10) -> None:
        super().__init__(timeout=timeout)
        self.config = config

    def build_payload(
        self,
        outcome: Outcome,
        phone: Optional[str],
        email: Optional[str] = None,
        lead_id: Optional[str] = None,
        event_time: Optional[int] = None,
    ) -> Dict[str, Any]:
        return {
            "data": [
                {
                    "action_source": "system_generated",
                    "event_name": OUTCOME_TO_EVENT[outcome],
                    "event_time": event_time if event_time is not None else int(time.time()),
                    "custom_data": {
                        "event_source": "crm",
                        "lead_event_source": self.config.lead_event_source,
                    },
                    "user_data": build_user_data(phone, email, lead_id),
                }
            ]
        }

    async def send(
        self,
        outcome: Outcome,
        phone: Optional[str],
        email: Optional[str] = None,
        lead_id: Optional[str] = None,
    ) -> bool:
        if not self.config.conversions_configured:
            logger.warning("facebook.conversions_not_configured")
            return False

        url = f"{self.config.graph_url}/{self.config.dataset_id}/events"
        try:
            response = await self._request(
                "POST",
                url,
                json_body=self.build_payload(outcome, phone, email, lead_id),
                params={"access_token": self.config.access_token},
            )
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            logger.error("facebook.conversion_failed", error=str(e)[:200])
            return False

        if not response.ok:
            logger.error("facebook.conversion_error", status=response.status, error=response.text[:200])
            return False

        logger.info("facebook.conversion_sent", event_name=OUTCOME_TO_EVENT[outcome])
        return True


def _data_items(body: Dict[str, Any]) -> List[Any]:
    data = body.get("data")
    return data if isinstance(data, list) else []


class FacebookLeadSource(HttpAdapter):
    """Reads lead-ad forms and leads from the Graph API."""

    service = "facebook"

    def __init__(self, config: FacebookConfig, *, timeout: int = 10) -> None:
        super().__init__(timeout=timeout)
        self.config = config

    async def _get(self, url: str, params: Optional[Dict[str, str]] = None) -> HttpResponse:
        query = {"access_token": self.config.access_token}
        if params:
            query.update(params)
        return await self._request("GET", url, params=query)

    def _json_object(self, response: HttpResponse, **context: Any) -> Optional[Dict[str, Any]]:
        try:
            body = response.json()
        except ValueError:
            body = None
        if not isinstance(body, dict):
            logger.error("facebook.malformed_response", body=response.text[:200], **context)
            return None
        return body

    async def fetch_lead_forms(self, page_id: str) -> List[Dict[str, Any]]:
        if not self.config.configured:
            logger.warning("facebook.not_configured")
            return []

        try:
            response = await self._get(f"{self.config.graph_url}/{page_id}/leadgen_forms")
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            logger.error("facebook.forms_fetch_failed", page_id=page_id, error=str(e)[:200])
            return []

        if not response.ok:
            logger.error("facebook.forms_fetch_error", page_id=page_id, status=response.status, error=response.text[:200])
            return []

        body = self._json_object(response, page_id=page_id)
        if body is None:
            return []

        forms = [form for form in _data_items(body) if isinstance(form, dict)]
        logger.info("facebook.forms_fetched", page_id=page_id, count=len(forms))
        return forms

    async def fetch_leads_from_form(self, form_id: str, limit: int = 100) -> List[LeadRecord]:
        """Follow ``paging.next`` until exhausted or the fetch cap is reached."""
        if not self.config.configured:
            logger.warning("facebook.not_configured")
            return []

        leads: List[LeadRecord] = []
        url: Optional[str] = f"{self.config.graph_url}/{form_id}/leads"
        params: Optional[Dict[str, str]] = {"limit": str(limit)}

        while url and len(leads) < self.config.lead_fetch_cap:
            try:
                response = await (self._get(url, params) if params else self._request("GET", url))
            except (aiohttp.ClientError, asyncio.TimeoutError) as e:
                logger.error("facebook.leads_fetch_failed", form_id=form_id, error=str(e)[:200])
                break

            if not response.ok:
                logger.error("facebook.leads_fetch_error", form_id=form_id, status=response.status, error=response.text[:200])
                break

            body = self._json_object(response, form_id=form_id)
            if body is None:
                break

            leads.extend(parse_lead(item) for item in _data_items(body) if isinstance(item, dict))
            # paging.next already carries the token and cursor
            paging = body.get("paging")
            url = paging.get("next") if isinstance(paging, dict) else None
            params = None

        logger.info("facebook.leads_fetched", form_id=form_id, count=len(leads))
        return leads

    async def fetch_all_leads(self, page_id: str) -> List[LeadRecord]:
        forms = await self.fetch_lead_forms(page_id)
        leads: List[LeadRecord] = []
        for form in forms:
            leads.extend(await self.fetch_leads_from_form(str(form.get("id"))))
        logger.info("facebook.page_leads_fetched", page_id=page_id, forms=len(forms), count=len(leads))
        return leads

    async def fetch_lead(self, lead_id: str) -> Optional[LeadRecord]:
        if not self.config.configured:
            logger.warning("facebook.not_configured")
            return None

        try:
            response = await self._get(f"{self.config.graph_url}/{lead_id}")
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            logger.error("facebook.lead_fetch_failed", lead_id=lead_id, error=str(e)[:200])
            return None

        if not response.ok:
            logger.error("facebook.lead_fetch_error", lead_id=lead_id, status=response.status, error=response.text[:200])
            return None

        body = self._json_object(response, lead_id=lead_id)
        if body is None:
            return None

        lead = parse_lead(body)
        logger.info("facebook.lead_fetched", lead_id=lead_id, has_phone=bool(lead.phone), has_email=bool(lead.email))
        return lead
