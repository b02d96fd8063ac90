# api/routes/dependencies.py
"""
FastAPI dependency providers. Tests replace these through ``app.dependency_overrides``.
"""
from __future__ import annotations

from functools import lru_cache

from fastapi import Depends

from api.core.config import settings
from api.db.session import get_session_factory
from api.services.audit_log import SqlAuditLogStore
from api.services.fan_out import FanOutOrchestrator
from api.services.lead_ingest import LeadIngestor
from api.services.reconciliation import ReconciliationImporter
from api.services.registry import ServiceRegistry, build_registry


def get_audit_store() -> SqlAuditLogStore:
    return SqlAuditLogStore(get_session_factory())


@lru_cache(maxsize=1)
def get_registry() -> ServiceRegistry:
    return build_registry(settings)


def get_orchestrator(
    store: SqlAuditLogStore = Depends(get_audit_store),
    registry: ServiceRegistry = Depends(get_registry),
) -> FanOutOrchestrator:
    return FanOutOrchestrator(store, registry.notifier, registry.crm, registry.conversion)


def get_importer(
    store: SqlAuditLogStore = Depends(get_audit_store),
    registry: ServiceRegistry = Depends(get_registry),
    orchestrator: FanOutOrchestrator = Depends(get_orchestrator),
) -> ReconciliationImporter:
    return ReconciliationImporter(
        store,
        orchestrator,
        registry.call_source,
        registry.lead_source,
        registry.crm,
        default_page_id=settings.facebook_page_id,
    )


def get_lead_ingestor(
    store: SqlAuditLogStore = Depends(get_audit_store),
    registry: ServiceRegistry = Depends(get_registry),
) -> LeadIngestor:
    return LeadIngestor(store, registry.lead_source, registry.crm)
