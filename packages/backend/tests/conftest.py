"""Test fixtures — a fresh app and an in-memory database per test.

Learn: Testing pattern for async SQLAlchemy + FastAPI without a Postgres:

1. Each test gets its own SQLite (aiosqlite) in-memory engine. StaticPool
   keeps a single connection so every session sees the same database.
2. Tables are created from Base.metadata (no migrations needed).
3. create_app(session_factory=...) builds an app whose routes, rule store,
   and stats snapshot all use that database, and whose EventBus / engine
   are private to the test.

Realtime subscribers are FakeConnections: they record every frame the bus
sends them, so tests can assert on exact deliveries.
"""

import json

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from homedesk.db.models import Base
from homedesk.main import create_app

TEST_DB_URL = "sqlite+aiosqlite://"


class FakeConnection:
    """Records frames pushed to it. Closes on demand or on first send."""

    def __init__(self, fail_on_send: bool = False):
        self.sent: list[str] = []
        self.closed = False
        self.fail_on_send = fail_on_send
        self.inbound: list[str] = []

    @property
    def is_open(self) -> bool:
        return not self.closed

    async def send_text(self, data: str) -> None:
        if self.fail_on_send:
            raise ConnectionResetError("peer went away")
        self.sent.append(data)

    async def iter_text(self):
        for raw in self.inbound:
            yield raw

    @property
    def frames(self) -> list[dict]:
        return [json.loads(raw) for raw in self.sent]

    def frames_of(self, event_type: str) -> list[dict]:
        return [f for f in self.frames if f["type"] == event_type]


@pytest.fixture()
def make_connection():
    return FakeConnection


@pytest_asyncio.fixture()
async def session_factory():
    engine = create_async_engine(
        TEST_DB_URL,
        echo=False,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    await engine.dispose()


@pytest_asyncio.fixture()
async def app(session_factory):
    return create_app(session_factory=session_factory)


@pytest_asyncio.fixture()
async def client(app):
    """HTTP client talking to the app in-process."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


@pytest_asyncio.fixture()
async def dashboard(app, client):
    """A business with one contact, plus a live operator connection for it."""
    r = await client.post("/api/v1/businesses", json={
        "name": "Acme Plumbing",
        "slug": "acme-plumbing",
        "vertical": "plumbing",
        "phone": "+15550001111",
    })
    assert r.status_code == 201
    business = r.json()

    r = await client.post(f"/api/v1/businesses/{business['id']}/contacts", json={
        "first_name": "Jane",
        "last_name": "Doe",
        "phone": "+15551234567",
        "email": "jane@example.com",
    })
    assert r.status_code == 201
    contact = r.json()

    connection = FakeConnection()
    app.state.bus.register_tenant(business["id"], connection)
    return {"business": business, "contact": contact, "connection": connection}
