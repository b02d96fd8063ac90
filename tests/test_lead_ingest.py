import pytest

from api.services.audit_log import ActivityStatus, ActivityType
from api.services.facebook import LeadRecord
from api.services.lead_ingest import LeadIngestor, iter_leadgen_changes


def _webhook(*lead_ids):
    return {
        "object": "page",
        "entry": [
            {
                "id": "page_1",
                "changes": [
                    {"field": "leadgen", "value": {"leadgen_id": lead_id, "form_id": "form_1"}}
                    for lead_id in lead_ids
                ],
            }
        ],
    }


@pytest.fixture
def ingestor(store, lead_source, crm):
    return LeadIngestor(store, lead_source, crm)


def test_iter_leadgen_changes_filters():
    body = _webhook("1")
    body["entry"][0]["changes"].append({"field": "feed", "value": {"item": "post"}})
    assert [v["leadgen_id"] for v in iter_leadgen_changes(body)] == ["1"]
    assert list(iter_leadgen_changes({"object": "user", "entry": []})) == []


@pytest.mark.asyncio
async def test_lead_with_details_creates_record(ingestor, lead_source, crm, store):
    lead_source.leads = [LeadRecord(lead_id="1", name="Jane Doe", email="jane@example.com")]

    results = await ingestor.handle_webhook(_webhook("1"))

    assert [(r.status, r.record_id) for r in results] == [("created", "rec_1")]
    assert crm.created == [("Jane Doe", "jane@example.com", None)]
    activity = await store.list_activity()
    assert [r.type for r in activity] == [
        ActivityType.ATTIO_RECORD_CREATED,
        ActivityType.FACEBOOK_LEAD_RECEIVED,
    ]
    assert activity[0].summary == "Created record for Jane Doe"


@pytest.mark.asyncio
async def test_existing_lead_is_skipped(ingestor, lead_source, crm):
    crm.add_record("rec_old", email="jane@example.com")
    lead_source.leads = [LeadRecord(lead_id="1", name="Jane Doe", email="jane@example.com")]

    results = await ingestor.handle_webhook(_webhook("1"))

    assert results[0].status == "skipped"
    assert results[0].record_id == "rec_old"
    assert crm.created == []


@pytest.mark.asyncio
async def test_missing_details_create_placeholder(ingestor, crm, store):
    results = await ingestor.handle_webhook(_webhook("999"))

    assert results[0].placeholder is True
    assert results[0].status == "created"
    assert crm.created == [("Facebook Lead 999", None, None)]
    assert (await store.list_activity())[0].summary == "Created placeholder record for lead 999"


@pytest.mark.asyncio
async def test_failed_create_is_logged(ingestor, lead_source, crm, store):
    lead_source.leads = [LeadRecord(lead_id="1", name="Jane Doe")]
    crm.create_result = False

    results = await ingestor.handle_webhook(_webhook("1"))

    assert results[0].status == "error"
    latest = (await store.list_activity())[0]
    assert latest.type == ActivityType.ATTIO_RECORD_CREATED
    assert latest.status == ActivityStatus.FAILED


@pytest.mark.asyncio
async def test_one_failing_lead_does_not_stop_others(ingestor, lead_source, crm):
    lead_source.leads = [LeadRecord(lead_id="2", name="John Roe")]
    crm.create_error = RuntimeError("boom")

    results = await ingestor.handle_webhook(_webhook("1", "2"))

    assert [r.status for r in results] == ["error", "error"]
