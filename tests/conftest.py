import json

import httpx
import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.database import Base, get_db
from app.main import app
from app.services.conversation_store import InMemoryConversationStore
from app.services.relay_service import RelayService, get_relay_service
from app.services.webhook_client import WebhookClient

ENDPOINTS = ["https://primary.test/webhook", "https://secondary.test/webhook"]


class FakeClock:
    """Manually advanced epoch clock."""

    def __init__(self, start: float = 1_700_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class WorkflowStub:
    """httpx.MockTransport handler that records requests and replays canned responses."""

    def __init__(self, responses=None, default=None):
        self.responses = list(responses or [])
        self.default = default if default is not None else httpx.Response(200, json={"output": "ok"})
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.responses:
            outcome = self.responses.pop(0)
        else:
            outcome = httpx.Response(
                self.default.status_code, headers=self.default.headers, content=self.default.content
            )
        if isinstance(outcome, Exception):
            raise outcome
        return outcome

    @property
    def urls(self) -> list[str]:
        return [str(r.url) for r in self.requests]

    def payload(self, index: int = -1) -> dict:
        return json.loads(self.requests[index].content)


async def no_sleep(_seconds: float) -> None:
    return None


def make_client(stub: WorkflowStub, endpoints=None, attempts_per_endpoint: int = 2) -> WebhookClient:
    return WebhookClient(
        endpoints or ENDPOINTS,
        attempts_per_endpoint=attempts_per_endpoint,
        retry_backoff_seconds=1.0,
        transport=httpx.MockTransport(stub),
        sleep_func=no_sleep,
    )


@pytest.fixture(autouse=True)
def _no_alerts(monkeypatch):
    monkeypatch.setattr("app.services.alert_service.settings.alert_bot_token", None)
    monkeypatch.setattr("app.services.alert_service.settings.alert_chat_id", None)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def workflow():
    return WorkflowStub()


@pytest.fixture
def store():
    return InMemoryConversationStore()


@pytest.fixture
def relay(store, workflow, clock):
    return RelayService(
        store,
        make_client(workflow),
        clock=clock,
        api_call_delay_seconds=72,
        hard_deadline_seconds=300,
        empty_message_interval_seconds=8,
        immediate_timeout_seconds=45,
        webhook_timeout_seconds=100,
    )


@pytest.fixture
def db_session():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    TestingSession = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    session = TestingSession()
    try:
        yield session
    finally:
        session.close()
        engine.dispose()


@pytest.fixture
def client(relay, db_session, monkeypatch):
    monkeypatch.setenv("INIT_DB_ON_STARTUP", "0")
    app.dependency_overrides[get_relay_service] = lambda: relay
    app.dependency_overrides[get_db] = lambda: db_session
    try:
        with TestClient(app) as test_client:
            yield test_client
    finally:
        app.dependency_overrides.clear()
