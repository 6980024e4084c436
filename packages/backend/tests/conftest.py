"""Test fixtures — fresh app, in-memory database, fake sockets.

Learn: Testing pattern for async SQLAlchemy + FastAPI:

1. Each test gets its own app (create_app()), so its LiveUpdateHub —
   registry, bus, heartbeat — starts empty and is never shared.
2. The database is SQLite in memory (aiosqlite + StaticPool, so every
   session sees the same connection), tables created per test.
3. Uploaded files go to pytest's tmp_path via a get_storage override.

No Postgres or Redis needed: rate limiting skips itself without Redis.
"""

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.pool import StaticPool
from starlette.websockets import WebSocketState

from invoiceportal.api.invoices import get_storage
from invoiceportal.auth.dependencies import require_admin
from invoiceportal.auth.password import hash_password
from invoiceportal.config import settings
from invoiceportal.db.engine import get_db
from invoiceportal.db.models import Base
from invoiceportal.main import create_app
from invoiceportal.realtime.registry import Connection, ConnectionRegistry
from invoiceportal.services.storage import FileStorage

TEST_DB_URL = "sqlite+aiosqlite://"

ADMIN_PASSWORD = "correct-horse-battery"
# Low work factor keeps the auth tests fast
ADMIN_PASSWORD_HASH = hash_password(ADMIN_PASSWORD, rounds=4)


# ═══════════════════════════════════════════════════════════
# Fake transport handles
# ═══════════════════════════════════════════════════════════


class _URL:
    def __init__(self, path: str):
        self.path = path


class FakeWebSocket:
    """Just enough of starlette's WebSocket for Connection."""

    def __init__(
        self,
        path: str = "/ws/admin",
        fail_sends: bool = False,
        close_error: Exception | None = None,
    ):
        self.url = _URL(path)
        self.sent: list[str] = []
        self.closed: tuple[int, str] | None = None
        self.application_state = WebSocketState.CONNECTED
        self.fail_sends = fail_sends
        self.close_error = close_error

    async def send_text(self, data: str) -> None:
        if self.fail_sends:
            raise RuntimeError("Cannot call send once a close message has been sent")
        self.sent.append(data)

    async def close(self, code: int = 1000, reason: str | None = None) -> None:
        if self.close_error is not None:
            raise self.close_error
        self.closed = (code, reason)
        self.application_state = WebSocketState.DISCONNECTED


@pytest.fixture()
def make_connection():
    """Factory for Connections wrapped around FakeWebSockets."""

    def _make(
        path: str = "/ws/admin",
        fail_sends: bool = False,
        close_error: Exception | None = None,
    ) -> Connection:
        return Connection(
            FakeWebSocket(path=path, fail_sends=fail_sends, close_error=close_error)
        )

    return _make


@pytest.fixture()
def registry() -> ConnectionRegistry:
    return ConnectionRegistry(admin_path="/ws/admin")


# ═══════════════════════════════════════════════════════════
# Database + app
# ═══════════════════════════════════════════════════════════


@pytest_asyncio.fixture()
async def db_session():
    """Per-test in-memory SQLite session with the schema created."""
    engine = create_async_engine(
        TEST_DB_URL,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    session = AsyncSession(bind=engine, expire_on_commit=False)
    try:
        yield session
    finally:
        await session.close()
        await engine.dispose()


@pytest.fixture()
def storage(tmp_path) -> FileStorage:
    return FileStorage(tmp_path / "uploads")


@pytest.fixture()
def app(db_session, storage):
    """A fresh app wired to the test database and file storage."""
    app = create_app()

    async def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_storage] = lambda: storage
    yield app
    app.dependency_overrides.clear()


@pytest.fixture()
def hub(app):
    return app.state.live


@pytest_asyncio.fixture()
async def client(app):
    """HTTP client with the admin check overridden.

    Learn: Overriding require_admin lets every protected route run
    without logging in first. Auth tests use unauthenticated_client.
    """

    async def override_require_admin():
        return None

    app.dependency_overrides[require_admin] = override_require_admin

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


@pytest_asyncio.fixture()
async def unauthenticated_client(app):
    """HTTP client WITHOUT the auth override — the real session flow runs."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


@pytest.fixture()
def admin_password(monkeypatch) -> str:
    """Configure the admin hash and return the matching password."""
    monkeypatch.setattr(settings, "admin_password_hash", ADMIN_PASSWORD_HASH)
    return ADMIN_PASSWORD
