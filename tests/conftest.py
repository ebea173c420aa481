"""
Test configuration and fixtures.

Provides:
- SQLite database (file in a temp dir) with tables truncated after each test
- Fake delivery providers and a recording alert sink
- Composed services and an HTTPX AsyncClient bound to the app
"""
import os
import tempfile
from dataclasses import dataclass, field
from datetime import datetime, time, timezone
from typing import Any, AsyncGenerator, Generator

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.orm import Session

# Settings are read at import time; configure before importing the app
_TEST_DIR = tempfile.mkdtemp(prefix="voicedesk-tests-")
os.environ["DATABASE_URL"] = f"sqlite:///{os.path.join(_TEST_DIR, 'test.db')}"
os.environ["TESTING"] = "1"
os.environ["ENV"] = "dev"
os.environ["QUEUE_PROCESSOR_ENABLED"] = "false"
os.environ["TENANT_CONFIG_DIR"] = _TEST_DIR

from voicedesk.core.cache import TTLCache
from voicedesk.core.container import Services
from voicedesk.core.deps import get_db
from voicedesk.db.base import Base
from voicedesk.db.session import SessionLocal, engine
from voicedesk.db.enums import AlertSeverity
from voicedesk.jobs.runner import BackgroundJobRunner
from voicedesk.main import app
from voicedesk.schemas.tenant import BusinessHoursSchedule, DayHours, TenantConfig
from voicedesk.services.delivery.base import DeliveryOutcome
from voicedesk.services.intent_classifier import RuleBasedClassifier
from voicedesk.services.post_call_processor import PostCallProcessor
from voicedesk.services.queue_processor import QueueProcessor
from voicedesk.services.tenant_config_service import TenantConfigService
from voicedesk.services.webhooks.router import WebhookRouter

import voicedesk.db.models  # noqa: F401

Base.metadata.create_all(bind=engine)


# =============================================================================
# Database Fixtures
# =============================================================================

@pytest.fixture(scope="function")
def session_factory():
    """Session factory for code that opens its own sessions (processor, jobs)."""
    yield SessionLocal
    with engine.begin() as conn:
        for table in reversed(Base.metadata.sorted_tables):
            conn.execute(table.delete())


@pytest.fixture(scope="function")
def db(session_factory) -> Generator[Session, None, None]:
    session = session_factory()
    yield session
    session.close()


# =============================================================================
# Fakes
# =============================================================================

class FakeProvider:
    """Delivery provider returning scripted outcomes (success once the script runs out)."""

    def __init__(self, name: str = "fake", outcomes: list[Any] | None = None, configured: bool = True):
        self.name = name
        self.outcomes = list(outcomes or [])
        self.configured = configured
        self.sent: list[tuple[str, str, str | None]] = []

    def is_configured(self) -> bool:
        return self.configured

    async def send(self, recipient: str, body: str, subject: str | None = None) -> DeliveryOutcome:
        self.sent.append((recipient, body, subject))
        outcome = self.outcomes.pop(0) if self.outcomes else None
        if isinstance(outcome, Exception):
            raise outcome
        if outcome is None:
            return DeliveryOutcome(
                success=True, provider=self.name, provider_message_id=f"{self.name}-{len(self.sent)}"
            )
        return outcome


def failed(error: str = "HTTP 503") -> DeliveryOutcome:
    return DeliveryOutcome(success=False, provider="fake", error=error)


@dataclass
class RecordingAlerts:
    calls: list[tuple[AlertSeverity, str, str, dict]] = field(default_factory=list)

    async def notify(self, severity, title, message, context=None) -> None:
        self.calls.append((severity, title, message, context or {}))

    def titles(self) -> list[str]:
        return [title for _, title, _, _ in self.calls]


class ManualClock:
    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now


# =============================================================================
# Domain Fixtures
# =============================================================================

@pytest.fixture
def weekday_hours() -> BusinessHoursSchedule:
    weekday = DayHours(open=time(9, 0), close=time(17, 0))
    return BusinessHoursSchedule(
        monday=weekday,
        tuesday=weekday,
        wednesday=weekday,
        thursday=weekday,
        friday=weekday,
        saturday=DayHours(closed=True),
        sunday=DayHours(closed=True),
    )


@pytest.fixture
def tenant(weekday_hours) -> TenantConfig:
    return TenantConfig(
        tenant_id="acme",
        name="Acme Dental",
        timezone="America/New_York",
        business_hours=weekday_hours,
        booking_url="https://book.example.com/acme",
    )


@pytest.fixture
def tenants(tenant) -> TenantConfigService:
    service = TenantConfigService(_TEST_DIR, TTLCache(300))
    service.register(tenant)
    return service


@pytest.fixture
def alerts() -> RecordingAlerts:
    return RecordingAlerts()


@pytest.fixture
def sms_provider() -> FakeProvider:
    return FakeProvider("fake_sms")


@pytest.fixture
def email_provider() -> FakeProvider:
    return FakeProvider("fake_email")


@pytest.fixture
def clock() -> ManualClock:
    return ManualClock(datetime.now(timezone.utc))


@pytest.fixture
def processor(session_factory, sms_provider, email_provider, alerts, clock) -> QueueProcessor:
    return QueueProcessor(
        session_factory,
        {"sms": sms_provider, "email": email_provider},
        alerts,
        retry_delay_seconds=60,
        clock=clock,
    )


@pytest.fixture
def services(session_factory, tenants, alerts, processor) -> Services:
    jobs = BackgroundJobRunner(alerts)
    post_call = PostCallProcessor(session_factory, RuleBasedClassifier(), tenants, alerts)
    return Services(
        tenants=tenants,
        alerts=alerts,
        processor=processor,
        jobs=jobs,
        post_call=post_call,
        webhooks=WebhookRouter(jobs, post_call, alerts),
    )


# =============================================================================
# Client Fixtures
# =============================================================================

@pytest.fixture(scope="function")
async def client(db: Session, services: Services) -> AsyncGenerator[AsyncClient, None]:
    """AsyncClient against the app with test services and the test session."""
    def override_get_db():
        yield db

    app.dependency_overrides[get_db] = override_get_db
    app.state.services = services

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as c:
        yield c

    await services.jobs.drain()
    app.dependency_overrides.clear()
    app.state.services = None
