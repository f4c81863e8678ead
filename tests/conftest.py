"""Shared test fixtures for the paygate tests.

Uses a file-based SQLite database so tests run without PostgreSQL, and an
``httpx.MockTransport`` in place of the real gateway.
"""

from __future__ import annotations

import os

# Override settings before importing anything from app: the Settings
# model reads the environment eagerly via pydantic-settings, and the
# module-level ``engine`` in app.core.database would try to connect to
# PostgreSQL.
os.environ["DATABASE_URL"] = "sqlite:///./test.db"
os.environ["GATEWAY_BASE_URL"] = "https://gateway.test/api-sandbox"
os.environ["GATEWAY_API_KEY"] = "test-api-key"
os.environ["GATEWAY_PRIVATE_KEY"] = "test-private-key"
os.environ["GATEWAY_MERCHANT_CODE"] = "T0001"
os.environ["GATEWAY_RETRY_MAX_WAIT_SECONDS"] = "0"
os.environ["POLLER_ENABLED"] = "false"

import json
from decimal import Decimal
from typing import Any, Callable, Union

import httpx
import pytest
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker
from fastapi.testclient import TestClient

from app.api.deps import get_http_client, get_session_factory
from app.core.config import settings
from app.core.database import Base, get_db
from app.main import app
from app.models.channel import PaymentChannel
from app.services.payment.gateway import GatewayClient
from app.services.payment.signature import SignatureEngine
from app.services.payment.store import TransactionStore

# Use SQLite file-based database for tests (no PostgreSQL needed)
TEST_DATABASE_URL = "sqlite:///./test.db"

GATEWAY_BASE_URL = "https://gateway.test/api-sandbox"
GATEWAY_BASE_PATH = "/api-sandbox"
MERCHANT_CODE = "T0001"
PRIVATE_KEY = "test-private-key"

engine = create_engine(
    TEST_DATABASE_URL,
    connect_args={"check_same_thread": False},
)


# Enable foreign keys for SQLite
@event.listens_for(engine, "connect")
def _set_sqlite_pragma(dbapi_conn, connection_record):
    cursor = dbapi_conn.cursor()
    cursor.execute("PRAGMA foreign_keys=ON;")
    cursor.close()


TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


Responder = Union[dict, httpx.Response, Exception, Callable[[httpx.Request], Any]]


class FakeGateway:
    """Scripted stand-in for the payment gateway.

    Register a responder per ``(method, path)``; a list of responders is
    consumed one per call.  Every request is kept in ``requests``.
    """

    def __init__(self) -> None:
        self.requests: list[httpx.Request] = []
        self.routes: dict[tuple[str, str], Any] = {}

    def on(self, method: str, path: str, *responders: Responder) -> None:
        self.routes[(method.upper(), path)] = list(responders)

    def calls(self, method: str, path: str) -> list[httpx.Request]:
        full = GATEWAY_BASE_PATH + path
        return [r for r in self.requests if r.method == method and r.url.path == full]

    def json_body(self, request: httpx.Request) -> dict:
        return json.loads(request.content)

    def handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path[len(GATEWAY_BASE_PATH):]
        responders = self.routes.get((request.method, path))
        if not responders:
            return httpx.Response(404, json={"success": False, "message": "no route"})

        responder = responders.pop(0) if len(responders) > 1 else responders[0]
        if callable(responder):
            responder = responder(request)
        if isinstance(responder, Exception):
            raise responder
        if isinstance(responder, httpx.Response):
            return responder
        return httpx.Response(200, json=responder)

    def http_client(self) -> httpx.Client:
        return httpx.Client(
            base_url=GATEWAY_BASE_URL,
            transport=httpx.MockTransport(self.handle),
            headers={"Authorization": "Bearer test-api-key"},
        )


@pytest.fixture(scope="function")
def db_session():
    """Create a fresh database for each test."""
    Base.metadata.create_all(bind=engine)
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def session_factory(db_session):
    """Factory for extra sessions on the test database (poller, races)."""
    return TestingSessionLocal


@pytest.fixture
def gateway() -> FakeGateway:
    return FakeGateway()


@pytest.fixture
def signer() -> SignatureEngine:
    return SignatureEngine(MERCHANT_CODE, PRIVATE_KEY)


@pytest.fixture
def store(db_session) -> TransactionStore:
    return TransactionStore(db_session)


@pytest.fixture
def gateway_client(gateway, store, signer):
    http = gateway.http_client()
    yield GatewayClient(http=http, store=store, signer=signer, config=settings)
    http.close()


@pytest.fixture
def channel(db_session) -> PaymentChannel:
    """An active BRIVA channel: 4000 flat + 1.5% merchant fee."""
    ch = PaymentChannel(
        code="BRIVA",
        name="BRI Virtual Account",
        group_name="Virtual Account",
        fee_merchant_flat=4000,
        fee_merchant_percent=Decimal("1.5"),
        fee_customer_flat=0,
        fee_customer_percent=Decimal("0"),
        minimum_fee=0,
        maximum_fee=None,
        minimum_amount=10000,
        maximum_amount=50000000,
        is_active=True,
        is_enabled=True,
        display_order=1,
    )
    db_session.add(ch)
    db_session.commit()
    return ch


@pytest.fixture(scope="function")
def client(db_session, gateway):
    """FastAPI test client with overridden DB, session factory and gateway."""
    http = gateway.http_client()

    def override_get_db():
        try:
            yield db_session
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_session_factory] = lambda: TestingSessionLocal
    app.dependency_overrides[get_http_client] = lambda: http
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()
    http.close()
