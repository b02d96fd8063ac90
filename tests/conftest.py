import os

# Settings are read at import time; pin the test environment first.
os.environ["ENVIRONMENT"] = "testing"
os.environ["DATABASE_URL"] = "sqlite+aiosqlite://"
os.environ["DATABASE_AUTO_CREATE"] = "false"
for _name in (
    "TELEGRAM_BOT_TOKEN",
    "TELEGRAM_CHAT_ID",
    "ATTIO_API_KEY",
    "FACEBOOK_ACCESS_TOKEN",
    "FACEBOOK_DATASET_ID",
    "FACEBOOK_PAGE_ID",
    "FACEBOOK_APP_SECRET",
    "VAPI_API_KEY",
    "VAPI_WEBHOOK_SECRET",
    "SENTRY_DSN",
):
    os.environ.pop(_name, None)

from typing import Dict, List, Optional

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

import api.models  # noqa: F401
from api.db.base import Base
from api.services.audit_log import SqlAuditLogStore
from api.services.call_context import CallContext
from api.services.facebook import LeadRecord
from api.services.normalization import canonical_phone


class FakeNotifier:
    def __init__(self, result: bool = True, error: Optional[Exception] = None):
        self.result = result
        self.error = error
        self.calls: List[tuple] = []

    async def send(self, outcome, phone, duration, summary, ended_reason):
        self.calls.append((outcome, phone, duration, summary, ended_reason))
        if self.error:
            raise self.error
        return self.result


class FakeCRM:
    """In-memory CRM: created records become findable by phone and email."""

    def __init__(self, update_result: bool = True, create_result: bool = True):
        self.update_result = update_result
        self.create_result = create_result
        self.by_phone: Dict[str, str] = {}
        self.by_email: Dict[str, str] = {}
        self.updates: List[tuple] = []
        self.created: List[tuple] = []
        self.lookups: List[tuple] = []
        self.create_error: Optional[Exception] = None

    def add_record(self, record_id: str, phone: Optional[str] = None, email: Optional[str] = None):
        if canonical_phone(phone):
            self.by_phone[canonical_phone(phone)] = record_id
        if email:
            self.by_email[email.strip().lower()] = record_id

    async def find_by_phone(self, phone):
        self.lookups.append(("phone", phone))
        normalized = canonical_phone(phone)
        return self.by_phone.get(normalized) if normalized else None

    async def find_by_email(self, email):
        self.lookups.append(("email", email))
        return self.by_email.get((email or "").strip().lower())

    async def update(self, record_id, outcome, summary=None, recording_url=None):
        self.updates.append((record_id, outcome, summary, recording_url))
        return self.update_result

    async def create(self, name=None, email=None, phone=None):
        if self.create_error:
            raise self.create_error
        self.created.append((name, email, phone))
        if not self.create_result:
            return None
        record_id = f"rec_{len(self.created)}"
        self.add_record(record_id, phone=phone, email=email)
        return record_id


class FakeConversion:
    def __init__(self, result: bool = True):
        self.result = result
        self.calls: List[tuple] = []

    async def send(self, outcome, phone, email=None, lead_id=None):
        self.calls.append((outcome, phone, email, lead_id))
        return self.result


class FakeCallSource:
    def __init__(self, calls: Optional[List[CallContext]] = None, error: Optional[Exception] = None):
        self.calls = calls or []
        self.error = error
        self.requested: List[int] = []

    async def fetch_ended_calls(self, hours_back: int = 48):
        self.requested.append(hours_back)
        if self.error:
            raise self.error
        return list(self.calls)


class FakeLeadSource:
    def __init__(self, leads: Optional[List[LeadRecord]] = None):
        self.leads = leads or []
        self.pages: List[str] = []

    async def fetch_all_leads(self, page_id: str):
        self.pages.append(page_id)
        return list(self.leads)

    async def fetch_lead(self, lead_id: str):
        for lead in self.leads:
            if lead.lead_id == lead_id:
                return lead
        return None


@pytest_asyncio.fixture
async def session_factory():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield async_sessionmaker(engine, expire_on_commit=False)
    await engine.dispose()


@pytest.fixture
def store(session_factory):
    return SqlAuditLogStore(session_factory)


@pytest.fixture
def notifier():
    return FakeNotifier()


@pytest.fixture
def crm():
    return FakeCRM()


@pytest.fixture
def conversion():
    return FakeConversion()


@pytest.fixture
def call_source():
    return FakeCallSource()


@pytest.fixture
def lead_source():
    return FakeLeadSource()


@pytest.fixture
def booked_call():
    return CallContext(
        call_id="call_booked",
        customer_phone="+15125550123",
        duration=80,
        ended_reason="assistant-ended-call",
        transcript="yes that works, see you tomorrow at 3pm, book it",
        summary="Appointment confirmed",
    )
