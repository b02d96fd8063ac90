# api/services/__init__.py
"""
Business logic services: classification, sink adapters, fan-out and imports.
"""

from api.services.audit_log import (
    ActivityRecord,
    ActivityStats,
    ActivityStatus,
    ActivityType,
    CallRecord,
    Direction,
    Service,
    SqlAuditLogStore,
)
from api.services.call_context import CallContext
from api.services.fan_out import FanOutOrchestrator, FanOutResult
from api.services.lead_ingest import LeadIngestor, LeadIngestResult
from api.services.outcome import Outcome, classify, explain
from api.services.reconciliation import (
    CallImportResult,
    LeadImportResult,
    ReconciliationImporter,
)
from api.services.registry import ServiceRegistry, build_registry
from api.services.sinks import SinkName, SinkResult
from api.services.vapi import CallSourceError

__all__ = [
    # Classification
    "Outcome",
    "classify",
    "explain",
    # Audit log
    "ActivityRecord",
    "ActivityStats",
    "ActivityStatus",
    "ActivityType",
    "CallRecord",
    "Direction",
    "Service",
    "SqlAuditLogStore",
    # Fan-out
    "CallContext",
    "FanOutOrchestrator",
    "FanOutResult",
    "SinkName",
    "SinkResult",
    # Imports and leads
    "CallImportResult",
    "CallSourceError",
    "LeadImportResult",
    "LeadIngestor",
    "LeadIngestResult",
    "ReconciliationImporter",
    # Adapters
    "ServiceRegistry",
    "build_registry",
]
