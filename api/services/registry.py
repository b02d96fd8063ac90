from __future__ import annotations

from dataclasses import dataclass

from api.core.config import Settings
from api.services.attio import AttioCRM
from api.services.facebook import FacebookConversions, FacebookLeadSource
from api.services.telegram import TelegramNotifier
from api.services.vapi import VapiClient


@dataclass(frozen=True)
class ServiceRegistry:
    """Outbound adapters, each built from its own config section."""

    notifier: TelegramNotifier
    crm: AttioCRM
    conversion: FacebookConversions
    lead_source: FacebookLeadSource
    call_source: VapiClient


def build_registry(settings: Settings) -> ServiceRegistry:
    timeout = settings.http_timeout_seconds
    facebook = settings.facebook()
    return ServiceRegistry(
        notifier=TelegramNotifier(settings.telegram(), timeout=timeout),
        crm=AttioCRM(settings.attio(), timeout=timeout),
        conversion=FacebookConversions(facebook, timeout=timeout),
        lead_source=FacebookLeadSource(facebook, timeout=timeout),
        call_source=VapiClient(settings.vapi(), timeout=timeout),
    )
