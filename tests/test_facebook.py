import hashlib
import hmac
import json
from unittest.mock import AsyncMock

import pytest

from api.core.config import FacebookConfig
from api.services.facebook import (
    FacebookConversions,
    FacebookLeadSource,
    build_user_data,
    field_role,
    hash_sha256,
    parse_lead,
    verify_signature,
    verify_webhook,
)
from api.services.outcome import Outcome
from api.services.sinks import HttpResponse

CONFIG = FacebookConfig(access_token="fb-token", dataset_id="987", lead_fetch_cap=3)
GRAPH = "https://graph.facebook.com/v24.0"


def _sha(value):
    return hashlib.sha256(value.encode()).hexdigest()


def test_hash_lowercases_and_trims():
    assert hash_sha256("  Jane@Example.COM ") == _sha("jane@example.com")


def test_user_data_rules():
    data = build_user_data("+1 (512) 555-0123", "Jane@Example.com", "123456789012345")
    assert data["ph"] == [_sha("15125550123")]
    assert data["em"] == [_sha("jane@example.com")]
    assert data["lead_id"] == 123456789012345

    assert build_user_data("Unknown", None, "lead-abc") == {}
    assert "lead_id" not in build_user_data(None, None, "12345")
    assert "lead_id" not in build_user_data(None, None, "123456789012345\n")
    assert "lead_id" not in build_user_data(None, None, "1234567890123456789")


def test_verify_webhook():
    assert verify_webhook("subscribe", "tok", "challenge-1", "tok") == "challenge-1"
    assert verify_webhook("subscribe", "wrong", "challenge-1", "tok") is None
    assert verify_webhook("unsubscribe", "tok", "challenge-1", "tok") is None
    assert verify_webhook(None, None, None, "tok") is None


def test_verify_signature():
    body = b'{"object": "page"}'
    digest = hmac.new(b"secret", body, hashlib.sha256).hexdigest()
    assert verify_signature(body, f"sha256={digest}", "secret")
    assert not verify_signature(body, "sha256=deadbeef", "secret")
    assert not verify_signature(body, None, "secret")


def test_field_roles_first_predicate_wins():
    assert field_role("full_name") == "name"
    assert field_role("EMAIL") == "email"
    assert field_role("phone_number") == "phone"
    assert field_role("work_tel") == "phone"
    # "name" is checked before "email"
    assert field_role("email_username") == "name"
    assert field_role("city") is None


def test_parse_lead_keeps_first_value_per_role():
    lead = parse_lead(
        {
            "id": "111222333444555",
            "created_time": "2024-05-01T10:00:00+0000",
            "field_data": [
                {"name": "full_name", "values": ["Jane Doe"]},
                {"name": "email", "values": ["jane@example.com"]},
                {"name": "phone_number", "values": ["+15125550123"]},
                {"name": "work_phone", "values": ["+15125550999"]},
                {"name": "city", "values": ["Austin"]},
                {"name": "first_name", "values": []},
            ],
        }
    )
    assert lead.lead_id == "111222333444555"
    assert lead.name == "Jane Doe"
    assert lead.email == "jane@example.com"
    assert lead.phone == "+15125550123"
    assert lead.raw_fields["city"] == "Austin"
    assert lead.raw_fields["first_name"] == ""
    assert lead.label == "Jane Doe"


@pytest.mark.asyncio
async def test_conversion_payload():
    sink = FacebookConversions(CONFIG)
    sink._request = AsyncMock(return_value=HttpResponse(200, '{"events_received": 1}'))

    assert await sink.send(Outcome.BOOKED, "+15125550123", lead_id="123456789012345")

    method, url = sink._request.call_args.args
    kwargs = sink._request.call_args.kwargs
    assert (method, url) == ("POST", f"{GRAPH}/987/events")
    assert kwargs["params"] == {"access_token": "fb-token"}
    event = kwargs["json_body"]["data"][0]
    assert event["event_name"] == "Lead Qualified"
    assert event["action_source"] == "system_generated"
    assert event["custom_data"] == {"event_source": "crm", "lead_event_source": "CallOutcomeRelay"}
    assert event["user_data"]["ph"] == [_sha("15125550123")]
    assert event["user_data"]["lead_id"] == 123456789012345


@pytest.mark.asyncio
async def test_conversion_failures():
    sink = FacebookConversions(CONFIG)
    sink._request = AsyncMock(return_value=HttpResponse(400, '{"error": {}}'))
    assert await sink.send(Outcome.NO_ANSWER, "+15125550123") is False

    unconfigured = FacebookConversions(FacebookConfig(access_token="fb-token", dataset_id=None))
    unconfigured._request = AsyncMock()
    assert await unconfigured.send(Outcome.NO_ANSWER, "+15125550123") is False
    unconfigured._request.assert_not_called()


def _lead(lead_id):
    return {"id": lead_id, "field_data": [{"name": "email", "values": [f"{lead_id}@example.com"]}]}


@pytest.mark.asyncio
async def test_fetch_leads_follows_paging_until_cap():
    source = FacebookLeadSource(CONFIG)
    source._request = AsyncMock(
        side_effect=[
            HttpResponse(200, json.dumps({"data": [_lead("1"), _lead("2")], "paging": {"next": "https://next/page2"}})),
            HttpResponse(200, json.dumps({"data": [_lead("3"), _lead("4")], "paging": {"next": "https://next/page3"}})),
        ]
    )

    leads = await source.fetch_leads_from_form("form_1")

    assert [lead.lead_id for lead in leads] == ["1", "2", "3", "4"]
    assert source._request.call_count == 2
    first, second = source._request.call_args_list
    assert first.args == ("GET", f"{GRAPH}/form_1/leads")
    assert first.kwargs["params"] == {"access_token": "fb-token", "limit": "100"}
    assert second.args == ("GET", "https://next/page2")


@pytest.mark.asyncio
async def test_fetch_all_leads_across_forms():
    source = FacebookLeadSource(FacebookConfig(access_token="fb-token"))
    source._request = AsyncMock(
        side_effect=[
            HttpResponse(200, json.dumps({"data": [{"id": "f1"}, {"id": "f2"}]})),
            HttpResponse(200, json.dumps({"data": [_lead("1")]})),
            HttpResponse(500, "error"),
        ]
    )

    leads = await source.fetch_all_leads("page_1")

    assert [lead.lead_id for lead in leads] == ["1"]
    assert source._request.call_args_list[0].args == ("GET", f"{GRAPH}/page_1/leadgen_forms")


@pytest.mark.asyncio
async def test_fetch_lead_details():
    source = FacebookLeadSource(FacebookConfig(access_token="fb-token"))
    source._request = AsyncMock(return_value=HttpResponse(200, json.dumps(_lead("777"))))
    lead = await source.fetch_lead("777")
    assert lead.email == "777@example.com"

    source._request = AsyncMock(return_value=HttpResponse(404, "missing"))
    assert await source.fetch_lead("778") is None

    unconfigured = FacebookLeadSource(FacebookConfig(access_token=None))
    assert await unconfigured.fetch_lead_forms("page_1") == []


@pytest.mark.asyncio
async def test_non_json_answers_are_empty_results():
    source = FacebookLeadSource(FacebookConfig(access_token="fb-token"))
    source._request = AsyncMock(return_value=HttpResponse(200, "<html>oops</html>"))

    assert await source.fetch_lead_forms("page_1") == []
    assert await source.fetch_leads_from_form("form_1") == []
    assert await source.fetch_lead("777") is None
    assert await source.fetch_all_leads("page_1") == []


@pytest.mark.asyncio
async def test_malformed_page_stops_paging():
    source = FacebookLeadSource(FacebookConfig(access_token="fb-token"))
    source._request = AsyncMock(
        side_effect=[
            HttpResponse(200, json.dumps({"data": [_lead("1"), "junk"], "paging": {"next": "https://next/page2"}})),
            HttpResponse(200, "truncated{"),
        ]
    )

    leads = await source.fetch_leads_from_form("form_1")

    assert [lead.lead_id for lead in leads] == ["1"]
    assert source._request.call_count == 2

    source._request = AsyncMock(return_value=HttpResponse(200, json.dumps([_lead("1")])))
    assert await source.fetch_lead_forms("page_1") == []
