from __future__ import annotations

import asyncio
import html

import aiohttp

from api.core.config import TelegramConfig
from api.core.logging import get_structlog_logger
from api.services.normalization import phone_digits
from api.services.outcome import Outcome
from api.services.sinks import HttpAdapter

logger = get_structlog_logger(__name__)

_WHATSAPP_GREETINGS = {
    Outcome.BOOKED: "Hi,%20thank%20you%20for%20booking!",
    Outcome.INTERESTED: "Hi,%20thanks%20for%20your%20interest!",
    Outcome.NO_ANSWER: "Hi,%20we%20tried%20calling%20you.",
    Outcome.VOICEMAIL: "Hi,%20we%20left%20you%20a%20voicemail.",
}

_HEADLINES = {
    Outcome.BOOKED: "🎉 BOOKING CONFIRMED!",
    Outcome.INTERESTED: "🔥 INTERESTED LEAD!",
    Outcome.NOT_INTERESTED: "❌ Not Interested",
    Outcome.NO_ANSWER: "📵 No Answer",
    Outcome.VOICEMAIL: "📫 Voicemail Left",
    Outcome.NEEDS_REVIEW: "⚠️ Call Completed - Review Needed",
}


def whatsapp_link(phone: str, outcome: Outcome) -> str:
    return f"https://wa.me/{phone_digits(phone)}?text={_WHATSAPP_GREETINGS[outcome]}"


def build_message(
    outcome: Outcome,
    phone: str,
    duration: int,
    summary: str,
    ended_reason: str,
) -> str:
    """Render the chat message for one call (HTML parse mode, so user text is escaped)."""
    safe_phone = html.escape(phone or "")
    safe_summary = html.escape(summary) if summary else "No summary available"

    lines = [_HEADLINES[outcome], "", f"📞 {safe_phone}"]

    if outcome not in (Outcome.NO_ANSWER, Outcome.VOICEMAIL):
        lines.append(f"⏱ Duration: {duration}s")
    if outcome == Outcome.NEEDS_REVIEW:
        lines.append(f"📊 Ended: {html.escape(ended_reason or '')}")
    if outcome not in (Outcome.NO_ANSWER, Outcome.VOICEMAIL):
        lines.extend(["", f"📝 Summary: {safe_summary}"])
    if outcome in _WHATSAPP_GREETINGS:
        lines.extend(["", f"💬 WhatsApp: {whatsapp_link(phone, outcome)}"])

    return "\n".join(lines)


class TelegramNotifier(HttpAdapter):
    """Notification sink: posts one message per call to a Telegram chat."""

    service = "telegram"

    def __init__(self, config: TelegramConfig, *, timeout: int = 10) -> None:
        super().__init__(timeout=timeout)
        self.config = config

    async def send(
        self,
        outcome: Outcome,
        phone: str,
        duration: int,
        summary: str,
        ended_reason: str,
    ) -> bool:
        if not self.config.configured:
            logger.warning("telegram.not_configured")
            return False

        message = build_message(outcome, phone, duration, summary, ended_reason)
        url = f"{self.config.api_base.rstrip('/')}/bot{self.config.bot_token}/sendMessage"

        try:
            response = await self._request(
                "POST",
                url,
                json_body={
                    "chat_id": self.config.chat_id,
                    "text": message,
                    "parse_mode": "HTML",
                    "disable_web_page_preview": True,
                },
            )
        except asyncio.TimeoutError:
            logger.error("telegram.timeout", outcome=outcome.value)
            return False
        except aiohttp.ClientError as e:
            logger.error("telegram.client_error", error=str(e)[:200])
            return False

        if not response.ok:
            logger.error("telegram.api_error", status=response.status, error=response.text[:200])
            return False

        try:
            body = response.json()
        except ValueError:
            logger.error("telegram.malformed_response", body=response.text[:200])
            return False

        sent = isinstance(body, dict) and body.get("ok") is True
        logger.info("telegram.sent" if sent else "telegram.rejected", outcome=outcome.value)
        return sent
