"""Tests for the admin reset & sync endpoints and their SSE stream."""
import asyncio
import json

from app.db.models import Person
from app.utils.sse import iter_sse_events
from tests.factories import luma_event, luma_person, make_person, make_user

RESULT = {"total": 120, "created": 80, "skipped": 40, "events": 30, "people": 50, "relinked": 0}


def _seed_luma(luma):
    """30 events and 90 people, 40 of whom have no email."""
    luma.events = [luma_event(f"evt-{i}") for i in range(30)]
    luma.people = [luma_person(f"usr-{i}", f"member{i}@example.com") for i in range(50)]
    luma.people += [luma_person(f"usr-x{i}", None) for i in range(40)]


async def _read_stream(client, url, **kwargs) -> list[tuple[int, dict]]:
    events = []
    async with client.stream("GET", url, **kwargs) as res:
        assert res.status_code == 200
        assert res.headers["content-type"].startswith("text/event-stream")
        async for event_id, event_type, data in iter_sse_events(res.aiter_lines()):
            assert event_type is None
            events.append((int(event_id), json.loads(data)))
    return events


async def test_start_sync_and_stream_to_completion(admin_client, db, luma, registry):
    _seed_luma(luma)

    res = await admin_client.post("/api/admin/sync")

    assert res.status_code == 200
    body = res.json()
    assert body["created"] is True
    assert body["status"] == "running"
    job_id = body["jobId"]
    assert body["streamUrl"] == f"/api/admin/sync/{job_id}/stream"

    events = await _read_stream(admin_client, body["streamUrl"])

    ids = [seq for seq, _ in events]
    assert ids == list(range(1, len(ids) + 1))
    payloads = [payload for _, payload in events]
    assert all(p["jobId"] == job_id for p in payloads)
    progress = [p["progress"] for p in payloads]
    assert progress == sorted(progress)
    assert progress.count(100) == 1
    final = payloads[-1]
    assert final == {
        "type": "status",
        "jobId": job_id,
        "message": "Sync complete",
        "progress": 100,
        "data": RESULT,
    }

    db.expire_all()
    assert db.query(Person).count() == 50


async def test_reattach_replays_only_missed_messages(admin_client, luma, registry):
    _seed_luma(luma)
    res = await admin_client.post("/api/admin/sync")
    job_id = res.json()["jobId"]
    await registry.get(job_id).task
    total = len(registry.get(job_id).messages)

    by_header = await _read_stream(
        admin_client, f"/api/admin/sync/{job_id}/stream", headers={"Last-Event-ID": "3"}
    )
    by_query = await _read_stream(admin_client, f"/api/admin/sync/{job_id}/stream?after=3")

    assert [seq for seq, _ in by_header] == list(range(4, total + 1))
    assert by_query == by_header
    assert by_header[-1][1]["progress"] == 100


async def test_stream_of_failed_job_ends_with_error(admin_client, luma, registry):
    luma.events = [luma_event("evt-1")]
    luma.fail_people = True

    res = await admin_client.post("/api/admin/sync")
    events = await _read_stream(admin_client, res.json()["streamUrl"])

    final = events[-1][1]
    assert final["type"] == "error"
    assert "Invalid API key" in final["message"]
    assert "progress" not in final


async def test_second_start_joins_running_job(admin_client, registry):
    release = asyncio.Event()

    async def runner(job):
        job.update("Fetching events from Luma...", 10)
        await release.wait()
        return RESULT

    running, _ = registry.start(runner)

    res = await admin_client.post("/api/admin/sync")

    assert res.status_code == 200
    assert res.json()["created"] is False
    assert res.json()["jobId"] == running.id
    assert res.json()["progress"] == 10

    release.set()
    await running.task


async def test_job_snapshot_for_polling(admin_client, luma, registry):
    _seed_luma(luma)
    res = await admin_client.post("/api/admin/sync")
    job_id = res.json()["jobId"]
    await registry.get(job_id).task

    snapshot = await admin_client.get(f"/api/admin/sync/{job_id}")

    assert snapshot.status_code == 200
    body = snapshot.json()
    assert body["status"] == "success"
    assert body["progress"] == 100
    assert body["result"] == RESULT
    assert body["finishedAt"] is not None


async def test_unknown_job_is_404(admin_client):
    snapshot = await admin_client.get("/api/admin/sync/missing")
    stream = await admin_client.get("/api/admin/sync/missing/stream")

    assert snapshot.status_code == 404
    assert stream.status_code == 404


async def test_legacy_reset_database_streams_progress(admin_client, luma):
    _seed_luma(luma)

    events = await _read_stream(admin_client, "/api/admin/reset-database")

    assert events[0][1]["message"] == "Connecting to Luma..."
    assert events[-1][1]["data"] == RESULT


async def test_legacy_reconnect_after_finish_does_not_restart(admin_client, luma, registry):
    _seed_luma(luma)
    events = await _read_stream(admin_client, "/api/admin/reset-database")
    first = registry.latest()
    last_seq = events[-1][0]

    res = await admin_client.get("/api/admin/reset-database", headers={"Last-Event-ID": str(last_seq)})

    assert res.status_code == 204
    assert registry.latest() is first
    assert registry.running() is None


async def test_legacy_reconnect_replays_rest_of_same_job(admin_client, luma, registry):
    _seed_luma(luma)
    await _read_stream(admin_client, "/api/admin/reset-database")
    first = registry.latest()
    total = len(first.messages)

    events = await _read_stream(admin_client, "/api/admin/reset-database", headers={"Last-Event-ID": "2"})

    assert [seq for seq, _ in events] == list(range(3, total + 1))
    assert {payload["jobId"] for _, payload in events} == {first.id}
    assert registry.latest() is first


async def test_legacy_reconnect_without_any_job_is_204(admin_client, registry):
    res = await admin_client.get("/api/admin/reset-database", headers={"Last-Event-ID": "4"})

    assert res.status_code == 204
    assert registry.latest() is None


async def test_stats_counts_directory(admin_client, db):
    claimed = make_person(db, "claimed@example.com")
    make_user(db, "claimed@example.com", person=claimed)
    make_person(db, "open@example.com")

    res = await admin_client.get("/api/admin/stats")

    assert res.status_code == 200
    body = res.json()
    assert body["people"] == 2
    assert body["claimedPeople"] == 1
    assert body["unclaimedPeople"] == 1
    assert body["users"] == 2
    assert body["lastSync"] is None


async def test_stats_reports_last_sync_after_reset(admin_client, luma, registry):
    _seed_luma(luma)
    res = await admin_client.post("/api/admin/sync")
    await registry.get(res.json()["jobId"]).task

    stats = (await admin_client.get("/api/admin/stats")).json()

    assert stats["events"] == 30
    assert stats["people"] == 50
    assert stats["lastSync"] is not None


async def test_sync_requires_session(client):
    res = await client.post("/api/admin/sync")

    assert res.status_code == 401


async def test_sync_rejects_members(authed_client, registry):
    res = await authed_client.post("/api/admin/sync")

    assert res.status_code == 403
    assert registry.latest() is None


async def test_sync_requires_csrf_header(admin_client, registry):
    res = await admin_client.post("/api/admin/sync", headers={"X-Requested-With": ""})

    assert res.status_code == 403
    assert registry.latest() is None
