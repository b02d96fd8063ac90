from __future__ import annotations

import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Mapping, Optional, Sequence, Tuple

import aiohttp

from api.core.logging import get_structlog_logger

logger = get_structlog_logger(__name__)


class SinkName(str, Enum):
    NOTIFICATION = "notification"
    CRM = "crm"
    CONVERSION = "conversion"


@dataclass(frozen=True)
class SinkResult:
    """Outcome of one propagation attempt (or deliberate skip) for one sink."""

    sink: SinkName
    success: bool
    summary: Optional[str] = None
    details: Dict[str, Any] = field(default_factory=dict)
    skipped: bool = False


@dataclass(frozen=True)
class HttpResponse:
    status: int
    text: str

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300

    def json(self) -> Any:
        return json.loads(self.text) if self.text else None


@dataclass(frozen=True)
class AttemptSpec:
    """
    One step of a degrading write contract.

    Specs are tried in order; the next one is used only when the downstream error
    text contains one of ``fallback_markers``.
    """

    label: str
    values: Mapping[str, Any]
    fallback_markers: Tuple[str, ...] = ()

    def cleaned(self) -> Dict[str, Any]:
        return {key: value for key, value in self.values.items() if value}

    def allows_fallback(self, error_text: str) -> bool:
        return any(marker in error_text for marker in self.fallback_markers)


async def run_attempts(
    specs: Sequence[AttemptSpec],
    send: Callable[[Dict[str, Any]], Awaitable[HttpResponse]],
    *,
    service: str,
) -> Tuple[Optional[HttpResponse], Optional[AttemptSpec]]:
    """
    Try each spec until one succeeds.

    Returns (response, spec) for the first 2xx answer, or (last_response, None) when
    the list is exhausted or a non-fallback error ends it. Transport errors propagate.
    """
    last_response: Optional[HttpResponse] = None
    sent: list[Dict[str, Any]] = []

    for spec in specs:
        values = spec.cleaned()
        if values in sent:
            continue
        sent.append(values)

        response = await send(values)
        last_response = response
        if response.ok:
            return response, spec

        if spec.allows_fallback(response.text):
            logger.info(
                f"{service}.attempt_fallback",
                attempt=spec.label,
                status=response.status,
            )
            continue

        logger.error(
            f"{service}.attempt_failed",
            attempt=spec.label,
            status=response.status,
            error=response.text[:200],
        )
        return response, None

    return last_response, None


class HttpAdapter:
    """Base for outbound REST adapters: one bounded-timeout aiohttp call per request."""

    service: str = "http"
    user_agent = "CallOutcomeRelay/1.0"

    def __init__(self, *, timeout: int = 10) -> None:
        self.timeout = timeout

    async def _request(
        self,
        method: str,
        url: str,
        *,
        json_body: Optional[Any] = None,
        params: Optional[Mapping[str, Any]] = None,
        headers: Optional[Mapping[str, str]] = None,
    ) -> HttpResponse:
        request_headers = {
            "Content-Type": "application/json",
            "User-Agent": self.user_agent,
        }
        if headers:
            request_headers.update(headers)

        async with aiohttp.ClientSession(
            timeout=aiohttp.ClientTimeout(total=self.timeout)
        ) as session:
            async with session.request(
                method,
                url,
                json=json_body,
                params=params,
                headers=request_headers,
            ) as response:
                return HttpResponse(status=response.status, text=await response.text())
