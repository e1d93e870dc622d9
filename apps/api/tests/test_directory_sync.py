"""Tests for the Luma client and the directory reset & sync."""
from datetime import datetime, timezone

import httpx
import pytest

from app.db.models import Event, Person, SyncState, User
from app.db.session import SessionLocal
from app.services import directory_sync_service, luma_service
from app.services.luma_service import LumaAPIError, LumaClient
from app.services.sync_job_service import SyncJob
from tests.factories import luma_event, luma_person, make_person, make_user


# =============================================================================
# Luma client
# =============================================================================

async def test_luma_client_follows_cursor_pagination(luma):
    luma.page_size = 2
    luma.events = [luma_event(f"evt-{i}") for i in range(5)]
    pages = []

    async with luma.client_factory()() as client:
        entries = await client.list_events(on_page=pages.append)

    assert len(entries) == 5
    assert pages == [2, 4, 5]
    cursors = [r.url.params.get("pagination_cursor") for r in luma.requests]
    assert cursors == [None, "2", "4"]
    assert all(r.headers["x-luma-api-key"] == "test-luma-key" for r in luma.requests)


async def test_luma_client_sends_created_after(luma):
    since = datetime(2030, 1, 1, 12, 0, tzinfo=timezone.utc)

    async with luma.client_factory()() as client:
        await client.list_people(created_after=since)

    assert luma.requests[0].url.params["created_after"].startswith("2030-01-01T12:00:00")


async def test_luma_client_raises_on_error_status(luma):
    luma.fail_people = True

    async with luma.client_factory()() as client:
        with pytest.raises(LumaAPIError) as exc_info:
            await client.list_people()

    assert exc_info.value.status_code == 401
    assert "Invalid API key" in str(exc_info.value)


async def test_luma_client_rejects_unexpected_payload():
    transport = httpx.MockTransport(lambda request: httpx.Response(200, json={"items": []}))

    async with LumaClient(api_key="k", base_url="https://luma.test", transport=transport) as client:
        with pytest.raises(LumaAPIError):
            await client.list_events()


async def test_luma_client_requires_api_key():
    with pytest.raises(LumaAPIError):
        async with LumaClient(api_key=""):
            pass


def test_parse_event_requires_core_fields():
    assert luma_service.parse_event(luma_event("evt-1"))["title"] == "Meetup"
    assert luma_service.parse_event({"event": {"api_id": "evt-2", "name": "No dates"}}) is None


def test_parse_person_normalizes_email_and_user_fields():
    row = luma_service.parse_person(luma_person("usr-1", " Ada@Example.COM ", "Ada Lovelace"))

    assert row["email"] == "ada@example.com"
    assert row["full_name"] == "Ada Lovelace"
    assert luma_service.parse_person(luma_person("usr-2", None)) is None


def test_prepare_rows_counts_invalid_and_duplicates():
    raw_events = [luma_event("evt-1"), luma_event("evt-1"), {"event": {"api_id": "bad"}}]
    raw_people = [luma_person("usr-1", "a@example.com"), luma_person("usr-2", None)]

    events, people, skipped = directory_sync_service.prepare_rows(raw_events, raw_people)

    assert [e["api_id"] for e in events] == ["evt-1"]
    assert [p["api_id"] for p in people] == ["usr-1"]
    assert skipped == 3


# =============================================================================
# Reset & sync
# =============================================================================

async def test_reset_and_sync_replaces_directory_and_relinks(db, luma):
    old = make_person(db, "ada@example.com", "Old Ada", api_id="usr-old")
    user = make_user(db, "ada@example.com", person=old)
    make_person(db, "stale@example.com", api_id="usr-stale")

    luma.page_size = 30
    luma.events = [luma_event(f"evt-{i}") for i in range(40)]
    luma.people = [luma_person("usr-ada", "ADA@example.com", "Ada Lovelace")]
    luma.people += [luma_person(f"usr-{i}", f"m{i}@example.com") for i in range(60)]
    luma.people += [luma_person(f"usr-x{i}", None) for i in range(20)]

    job = SyncJob()
    result = await directory_sync_service.run_reset_and_sync(
        job, session_factory=SessionLocal, luma_client_factory=luma.client_factory()
    )

    assert result == {
        "total": 121,
        "created": 101,
        "skipped": 20,
        "events": 40,
        "people": 61,
        "relinked": 1,
    }
    db.expire_all()
    assert db.query(Event).count() == 40
    assert db.query(Person).count() == 61
    assert db.query(Person).filter(Person.api_id == "usr-stale").first() is None
    ada = db.query(Person).filter(Person.api_id == "usr-ada").one()
    assert db.get(User, user.id).person_id == ada.id
    assert directory_sync_service.get_last_sync(db) is not None

    progress = [m.progress for m in job.messages]
    assert progress == sorted(progress)
    assert max(progress) < 100


async def test_failed_fetch_leaves_directory_intact(db, luma):
    make_person(db, "keep@example.com", api_id="usr-keep")
    luma.events = [luma_event("evt-1")]
    luma.fail_people = True

    with pytest.raises(LumaAPIError):
        await directory_sync_service.run_reset_and_sync(
            SyncJob(), session_factory=SessionLocal, luma_client_factory=luma.client_factory()
        )

    db.expire_all()
    assert db.query(Person).one().api_id == "usr-keep"
    assert db.query(Event).count() == 0


def test_failed_write_rolls_back(db, monkeypatch):
    person = make_person(db, "keep@example.com", api_id="usr-keep")
    make_user(db, "keep@example.com", person=person)

    def explode(session):
        raise RuntimeError("relink failed")

    monkeypatch.setattr(directory_sync_service.user_service, "relink_users_to_people", explode)

    with pytest.raises(RuntimeError):
        directory_sync_service.replace_directory(
            SessionLocal,
            events=[],
            people=[{"api_id": "usr-new", "email": "new@example.com"}],
            synced_at=datetime.now(timezone.utc),
        )

    db.expire_all()
    assert [p.api_id for p in db.query(Person).all()] == ["usr-keep"]
    assert db.query(User).one().person_id == person.id
    assert db.get(SyncState, directory_sync_service.LAST_SYNC_KEY) is None


async def test_incremental_sync_upserts_since_last_sync(db, luma):
    make_person(db, "ada@example.com", "Ada", api_id="usr-ada")
    make_user(db, "new@example.com")
    last = datetime(2025, 1, 1, tzinfo=timezone.utc)
    directory_sync_service.set_last_sync(db, last)
    db.commit()

    luma.events = [luma_event("evt-1", name="Fresh")]
    luma.people = [
        luma_person("usr-ada", "ada@example.com", "Ada Lovelace"),
        luma_person("usr-new", "new@example.com", "New Person"),
    ]

    result = await directory_sync_service.sync_directory(
        session_factory=SessionLocal,
        luma_client_factory=luma.client_factory(),
        incremental=True,
    )

    assert result["incremental"] is True
    assert result["since"] == last
    assert result["created"] == 2
    assert result["updated"] == 1
    assert result["relinked"] == 1
    assert all("created_after" in r.url.params for r in luma.requests)

    db.expire_all()
    assert db.query(Person).filter(Person.api_id == "usr-ada").one().full_name == "Ada Lovelace"
    assert directory_sync_service.get_last_sync(db) > last


async def test_incremental_sync_without_changes_keeps_last_sync(db, luma):
    last = datetime(2025, 1, 1, tzinfo=timezone.utc)
    directory_sync_service.set_last_sync(db, last)
    db.commit()

    result = await directory_sync_service.sync_directory(
        session_factory=SessionLocal,
        luma_client_factory=luma.client_factory(),
    )

    assert result["created"] == 0
    db.expire_all()
    assert directory_sync_service.get_last_sync(db) == last
