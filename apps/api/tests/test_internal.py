"""Tests for the internal scheduled endpoints."""
import asyncio

from app.core.config import settings
from app.db.models import Event, Person
from tests.factories import luma_event, luma_person, make_person

SECRET = {"X-Internal-Secret": "test-internal-secret"}


async def test_directory_sync_is_incremental_by_default(client, db, luma):
    make_person(db, "kept@example.com", api_id="usr-kept")
    luma.events = [luma_event("evt-1")]
    luma.people = [luma_person("usr-1", "fresh@example.com", "Fresh Face")]

    res = await client.post("/internal/scheduled/directory-sync", headers=SECRET)

    assert res.status_code == 200
    body = res.json()
    assert body["incremental"] is True
    assert body["created"] == 2
    assert body["updated"] == 0
    db.expire_all()
    assert db.query(Person).count() == 2
    assert db.query(Event).count() == 1


async def test_directory_sync_full_replaces_directory(client, db, luma):
    make_person(db, "gone@example.com", api_id="usr-gone")
    luma.people = [luma_person("usr-1", "fresh@example.com")]

    res = await client.post("/internal/scheduled/directory-sync?full=true", headers=SECRET)

    assert res.status_code == 200
    assert res.json()["incremental"] is False
    db.expire_all()
    assert [p.email for p in db.query(Person)] == ["fresh@example.com"]


async def test_full_sync_runs_as_registry_job(client, db, luma, registry):
    luma.people = [luma_person("usr-1", "fresh@example.com")]

    res = await client.post("/internal/scheduled/directory-sync?full=true", headers=SECRET)

    assert res.status_code == 200
    job = registry.latest()
    assert job is not None
    assert job.status.value == "success"
    assert res.json()["people"] == job.result["people"] == 1


async def test_directory_sync_refused_while_reset_running(client, db, luma, registry):
    release = asyncio.Event()

    async def runner(job):
        job.update("Fetching events from Luma...", 10)
        await release.wait()
        return {"total": 0, "created": 0, "skipped": 0, "events": 0, "people": 0, "relinked": 0}

    running, _ = registry.start(runner)
    make_person(db, "kept@example.com", api_id="usr-kept")

    full = await client.post("/internal/scheduled/directory-sync?full=true", headers=SECRET)
    incremental = await client.post("/internal/scheduled/directory-sync", headers=SECRET)

    assert full.status_code == 409
    assert incremental.status_code == 409
    assert registry.latest() is running
    assert luma.requests == []
    db.expire_all()
    assert [p.email for p in db.query(Person)] == ["kept@example.com"]

    release.set()
    await running.task


async def test_directory_sync_reports_luma_failure(client, db, luma):
    luma.fail_people = True

    res = await client.post("/internal/scheduled/directory-sync", headers=SECRET)

    assert res.status_code == 502
    assert "401" in res.json()["detail"]


async def test_claim_invitations_dry_run(client, db, sent_emails):
    make_person(db, "open@example.com")

    res = await client.post("/internal/scheduled/claim-invitations?dry_run=true", headers=SECRET)

    assert res.status_code == 200
    body = res.json()
    assert body["dryRun"] is True
    assert body["initialSent"] == 1
    assert sent_emails.messages == []


async def test_wrong_secret_is_rejected(client, db):
    res = await client.post(
        "/internal/scheduled/claim-invitations",
        headers={"X-Internal-Secret": "guess"},
    )

    assert res.status_code == 403


async def test_unconfigured_secret_disables_endpoints(client, db, monkeypatch):
    monkeypatch.setattr(settings, "INTERNAL_SECRET", "")

    res = await client.post("/internal/scheduled/directory-sync", headers=SECRET)

    assert res.status_code == 501
