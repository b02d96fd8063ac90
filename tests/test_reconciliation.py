from unittest.mock import AsyncMock

import pytest

from api.core.config import FacebookConfig
from api.core.exceptions import ValidationError
from api.services.audit_log import ActivityStatus, ActivityType
from api.services.call_context import CallContext
from api.services.facebook import FacebookLeadSource, LeadRecord
from api.services.fan_out import FanOutOrchestrator
from api.services.reconciliation import ReconciliationImporter
from api.services.sinks import HttpResponse
from api.services.vapi import CallSourceError


@pytest.fixture
def importer(store, notifier, crm, conversion, call_source, lead_source):
    orchestrator = FanOutOrchestrator(store, notifier, crm, conversion)
    return ReconciliationImporter(store, orchestrator, call_source, lead_source, crm)


LEADS = [
    LeadRecord(lead_id="1", name="Jane Doe", email="jane@example.com", phone="+15125550123"),
    LeadRecord(lead_id="2", name="John Roe", email="john@example.com"),
]


@pytest.mark.asyncio
async def test_import_calls_replays_without_notification(importer, call_source, notifier, crm, store):
    crm.add_record("rec_1", phone="+15125550123")
    call_source.calls = [
        CallContext(call_id="a", customer_phone="+15125550123", duration=150, transcript="tell me more"),
        CallContext(call_id="b", customer_phone="Unknown", ended_reason="no-answer"),
    ]

    result = await importer.import_calls(24)

    assert call_source.requested == [24]
    assert notifier.calls == []
    assert (result.total, result.processed, result.attio_updated) == (2, 2, 1)
    assert result.errors == []
    assert result.calls[0] == {
        "call_id": "a",
        "phone_number": "+15125550123",
        "outcome": "Interested",
        "attio_updated": True,
        "duration": 150,
    }
    assert result.calls[1]["outcome"] == "No Answer"
    assert len(await store.list_calls()) == 2


@pytest.mark.asyncio
async def test_import_calls_collects_item_errors(importer, call_source, store):
    call_source.calls = [CallContext(call_id="a"), CallContext(call_id="b")]
    real_append = store.append_call

    async def flaky_append(record):
        if record.call_id == "a":
            raise RuntimeError("disk full")
        return await real_append(record)

    store.append_call = flaky_append

    result = await importer.import_calls()

    assert result.processed == 1
    assert result.errors == ["Error processing call a: disk full"]
    assert [c["call_id"] for c in result.calls] == ["b"]


@pytest.mark.asyncio
async def test_import_calls_source_error_propagates(importer, call_source):
    call_source.error = CallSourceError("api_error", "Vapi API error: 500 - boom")
    with pytest.raises(CallSourceError):
        await importer.import_calls()


@pytest.mark.asyncio
async def test_import_leads_creates_missing_records(importer, lead_source, crm, store):
    lead_source.leads = list(LEADS)

    result = await importer.import_leads("page_1")

    assert lead_source.pages == ["page_1"]
    assert (result.total, result.created, result.skipped) == (2, 2, 0)
    assert [lead["status"] for lead in result.leads] == ["created", "created"]
    assert crm.created == [
        ("Jane Doe", "jane@example.com", "+15125550123"),
        ("John Roe", "john@example.com", None),
    ]

    activity = await store.list_activity()
    assert activity[0].type == ActivityType.FACEBOOK_LEAD_RECEIVED
    assert activity[0].status == ActivityStatus.SUCCESS
    assert activity[0].summary == "Imported 2 leads, 0 skipped"
    assert activity[-1].status == ActivityStatus.PENDING
    created = [r for r in activity if r.type == ActivityType.ATTIO_RECORD_CREATED]
    assert len(created) == 2


@pytest.mark.asyncio
async def test_import_leads_is_idempotent(importer, lead_source, crm):
    lead_source.leads = list(LEADS)

    await importer.import_leads("page_1")
    second = await importer.import_leads("page_1")

    assert (second.created, second.skipped) == (0, 2)
    assert [lead["matched_on"] for lead in second.leads] == ["phone", "email"]
    assert len(crm.created) == 2


@pytest.mark.asyncio
async def test_import_leads_batch_resilience(importer, lead_source, crm, store):
    lead_source.leads = list(LEADS)
    crm.create_result = False

    result = await importer.import_leads("page_1")

    assert result.created == 0
    assert result.errors == [
        "Error processing lead 1: record creation returned no id",
        "Error processing lead 2: record creation returned no id",
    ]
    assert [lead["status"] for lead in result.leads] == ["error", "error"]
    assert (await store.list_activity())[0].status == ActivityStatus.FAILED


@pytest.mark.asyncio
async def test_import_leads_exception_is_an_error_item(importer, lead_source, crm):
    lead_source.leads = [LEADS[0]]
    crm.create_error = RuntimeError("rate limited")

    result = await importer.import_leads("page_1")

    assert result.errors == ["Error processing lead 1: rate limited"]


@pytest.mark.asyncio
async def test_import_leads_requires_page_id(importer, lead_source, store):
    with pytest.raises(ValidationError):
        await importer.import_leads()
    assert lead_source.pages == []
    assert await store.list_activity() == []


@pytest.mark.asyncio
async def test_import_leads_uses_default_page(store, notifier, crm, conversion, call_source, lead_source):
    orchestrator = FanOutOrchestrator(store, notifier, crm, conversion)
    importer = ReconciliationImporter(
        store, orchestrator, call_source, lead_source, crm, default_page_id="page_default"
    )
    await importer.import_leads()
    assert lead_source.pages == ["page_default"]


@pytest.mark.asyncio
async def test_import_leads_survives_non_json_graph_answer(store, notifier, crm, conversion, call_source):
    lead_source = FacebookLeadSource(FacebookConfig(access_token="fb-token"))
    lead_source._request = AsyncMock(return_value=HttpResponse(200, "<html>oops</html>"))
    orchestrator = FanOutOrchestrator(store, notifier, crm, conversion)
    importer = ReconciliationImporter(store, orchestrator, call_source, lead_source, crm)

    result = await importer.import_leads("page_1")

    assert (result.total, result.created, result.errors) == (0, 0, [])
    activity = await store.list_activity()
    assert activity[0].summary == "Imported 0 leads, 0 skipped"
    assert activity[0].status == ActivityStatus.SUCCESS
    assert activity[1].status == ActivityStatus.PENDING
