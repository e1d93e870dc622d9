"""
Test configuration and fixtures.

Provides:
- SQLite database (fresh schema per test) shared with background sync threads
- Captured outbound email (no Resend calls)
- Session cookie minting for member and admin clients
- HTTPX AsyncClient against the ASGI app, with the CSRF header
- Luma API stub via httpx.MockTransport
"""
import os
import tempfile
from dataclasses import dataclass, field
from typing import AsyncGenerator, Callable, Generator

import pytest

_DB_DIR = tempfile.mkdtemp(prefix="portal-tests-")

# Settings are read at import time
os.environ["TESTING"] = "1"
os.environ["ENV"] = "test"
os.environ["DATABASE_URL"] = f"sqlite:///{os.path.join(_DB_DIR, 'test.db')}"
os.environ["JWT_SECRET"] = "test-secret"
os.environ["LUMA_API_KEY"] = "test-luma-key"
os.environ["INTERNAL_SECRET"] = "test-internal-secret"
os.environ["FRONTEND_URL"] = "https://portal.test"
os.environ["CLAIM_EMAIL_COOLDOWN_SECONDS"] = "120"

import httpx
from httpx import AsyncClient, ASGITransport
from sqlalchemy.orm import Session

from app.main import app
from app.db.base import Base
from app.db.session import engine, SessionLocal
from app.core.deps import get_db, get_luma_client_factory, get_session_factory
from app.db.models import User
from app.services import platform_email_service
from app.services.luma_service import LumaClient
from app.services.sync_job_service import SyncJobRegistry, get_registry
from tests.factories import make_user, session_cookie

CSRF_HEADERS = {"X-Requested-With": "XMLHttpRequest"}


# =============================================================================
# Database Fixtures
# =============================================================================

@pytest.fixture(scope="function")
def db() -> Generator[Session, None, None]:
    """
    Fresh schema per test.

    Sync jobs write through their own sessions on worker threads, so tests
    use real commits against a file database instead of a savepoint.
    """
    Base.metadata.create_all(engine)
    session = SessionLocal()
    yield session
    session.close()
    Base.metadata.drop_all(engine)


# =============================================================================
# Email capture
# =============================================================================

@dataclass
class SentEmails:
    messages: list[dict] = field(default_factory=list)
    fail: bool = False

    def to(self, email: str) -> list[dict]:
        return [m for m in self.messages if m["to_email"] == email]

    @property
    def subjects(self) -> list[str]:
        return [m["subject"] for m in self.messages]


@pytest.fixture(autouse=True)
def sent_emails(monkeypatch) -> SentEmails:
    """Record outbound email instead of calling Resend; set .fail to simulate an outage."""
    outbox = SentEmails()

    async def fake_send(*, to_email, subject, html, text, idempotency_key):
        if outbox.fail:
            return {"success": False, "error": "Resend API error: 503"}
        outbox.messages.append(
            {
                "to_email": to_email,
                "subject": subject,
                "html": html,
                "text": text,
                "idempotency_key": idempotency_key,
            }
        )
        return {"success": True, "message_id": f"msg_{len(outbox.messages)}"}

    monkeypatch.setattr(platform_email_service, "_send_resend_email", fake_send)
    return outbox


# =============================================================================
# Luma stub
# =============================================================================

@dataclass
class LumaStub:
    """In-memory Luma calendar served through httpx.MockTransport."""
    events: list[dict] = field(default_factory=list)
    people: list[dict] = field(default_factory=list)
    page_size: int = 50
    fail_people: bool = False
    requests: list[httpx.Request] = field(default_factory=list)

    def _page(self, entries: list[dict], request: httpx.Request) -> httpx.Response:
        start = int(request.url.params.get("pagination_cursor") or 0)
        chunk = entries[start:start + self.page_size]
        has_more = start + self.page_size < len(entries)
        body = {
            "entries": chunk,
            "has_more": has_more,
            "next_cursor": str(start + self.page_size) if has_more else None,
        }
        return httpx.Response(200, json=body)

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if request.url.path.endswith("/calendar/list-events"):
            return self._page(self.events, request)
        if request.url.path.endswith("/calendar/list-people"):
            if self.fail_people:
                return httpx.Response(401, json={"message": "Invalid API key"})
            return self._page(self.people, request)
        return httpx.Response(404, json={"message": "not found"})

    def client_factory(self) -> Callable[[], LumaClient]:
        transport = httpx.MockTransport(self.handler)
        return lambda: LumaClient(
            api_key="test-luma-key",
            base_url="https://luma.test/public/v1",
            transport=transport,
        )


@pytest.fixture
def luma() -> LumaStub:
    return LumaStub()


# =============================================================================
# Users
# =============================================================================

@pytest.fixture
def member(db: Session) -> User:
    return make_user(db, "member@example.com")


@pytest.fixture
def admin(db: Session) -> User:
    return make_user(db, "organizer@example.com", is_admin=True)


# =============================================================================
# Client Fixtures
# =============================================================================

@pytest.fixture
def registry() -> SyncJobRegistry:
    return SyncJobRegistry(history_limit=5)


@pytest.fixture
async def overrides(db: Session, registry: SyncJobRegistry, luma: LumaStub):
    def override_get_db():
        yield db

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_session_factory] = lambda: SessionLocal
    app.dependency_overrides[get_luma_client_factory] = luma.client_factory
    app.dependency_overrides[get_registry] = lambda: registry
    yield
    await registry.shutdown()
    app.dependency_overrides.clear()


def _client(**kwargs) -> AsyncClient:
    return AsyncClient(transport=ASGITransport(app=app), base_url="https://test", **kwargs)


@pytest.fixture
async def client(overrides) -> AsyncGenerator[AsyncClient, None]:
    """Unauthenticated client that sends the CSRF header."""
    async with _client(headers=CSRF_HEADERS) as c:
        yield c


@pytest.fixture
async def authed_client(overrides, member: User) -> AsyncGenerator[AsyncClient, None]:
    async with _client(headers=CSRF_HEADERS, cookies=session_cookie(member)) as c:
        yield c


@pytest.fixture
async def admin_client(overrides, admin: User) -> AsyncGenerator[AsyncClient, None]:
    async with _client(headers=CSRF_HEADERS, cookies=session_cookie(admin)) as c:
        yield c
