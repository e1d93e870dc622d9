"""Tests for the in-memory sync job state machine and registry."""
import asyncio

import pytest

from app.db.enums import SyncJobStatus
from app.services.sync_job_service import SyncJob, SyncJobRegistry

RESULT = {"total": 120, "created": 80, "skipped": 40, "events": 30, "people": 50, "relinked": 2}


def test_progress_never_decreases():
    job = SyncJob()

    job.update("Fetching events", 30)
    job.update("Late page report", 10)
    job.update("Message only")

    assert job.progress == 30
    assert [m.progress for m in job.messages] == [30, 30, 30]


def test_running_progress_is_capped_below_complete():
    job = SyncJob()

    job.update("Almost", 100)

    assert job.progress == 99
    assert job.status == SyncJobStatus.RUNNING


def test_success_reports_100_with_data():
    job = SyncJob()
    job.update("Importing events...", 40)

    final = job.succeed(RESULT, message="Done")

    assert final.terminal
    assert final.to_payload(job.id) == {
        "type": "status",
        "jobId": job.id,
        "message": "Done",
        "progress": 100,
        "data": RESULT,
    }
    assert job.status == SyncJobStatus.SUCCESS
    assert job.finished_at is not None


def test_only_terminal_message_carries_100():
    job = SyncJob()
    for p in (5, 50, 99):
        job.update("step", p)
    job.succeed(RESULT)

    hundreds = [m for m in job.messages if m.progress == 100]
    assert len(hundreds) == 1
    assert hundreds[0].data == RESULT


def test_failure_payload_and_terminal_state():
    job = SyncJob()
    job.update("Fetching", 20)

    message = job.fail("Sync failed: boom")

    assert message.to_payload(job.id) == {"type": "error", "jobId": job.id, "message": "Sync failed: boom"}
    assert job.status == SyncJobStatus.ERROR
    assert job.progress == 20
    with pytest.raises(RuntimeError):
        job.update("after the end", 50)
    with pytest.raises(RuntimeError):
        job.succeed(RESULT)


def test_sequence_ids_increase():
    job = SyncJob()
    job.update("a", 1)
    job.update("b", 2)
    job.succeed(RESULT)

    assert [m.seq for m in job.messages] == [1, 2, 3]


async def test_stream_replays_history_after_last_event_id():
    job = SyncJob()
    job.update("one", 10)
    job.update("two", 20)
    job.update("three", 30)
    job.succeed(RESULT)

    seen = [m.message async for m in job.stream(last_event_id=2)]

    assert seen == ["three", "Sync complete"]


async def test_stream_delivers_live_updates_until_terminal():
    job = SyncJob()

    async def produce():
        await asyncio.sleep(0)
        job.update("Importing events...", 40)
        await asyncio.sleep(0)
        job.succeed(RESULT, message="Done")

    producer = asyncio.create_task(produce())
    received = [m async for m in job.stream()]
    await producer

    assert [(m.message, m.progress) for m in received] == [
        ("Importing events...", 40),
        ("Done", 100),
    ]
    assert job.subscriber_count == 0


async def test_stream_heartbeat_yields_none_when_idle():
    job = SyncJob()
    stream = job.stream(heartbeat=0.01)

    first = await stream.__anext__()
    assert first is None

    job.fail("stopped")
    messages = [m async for m in stream if m is not None]
    assert [m.message for m in messages] == ["stopped"]


async def test_finished_stream_with_everything_seen_ends_immediately():
    job = SyncJob()
    job.update("one", 10)
    job.succeed(RESULT)

    assert [m async for m in job.stream(last_event_id=2)] == []


async def test_registry_runs_one_job_at_a_time():
    registry = SyncJobRegistry()
    release = asyncio.Event()

    async def runner(job):
        job.update("working", 10)
        await release.wait()
        return RESULT

    job, created = registry.start(runner)
    same, created_again = registry.start(runner)

    assert created is True
    assert created_again is False
    assert same is job

    release.set()
    await job.task
    assert job.status == SyncJobStatus.SUCCESS
    assert job.result == RESULT

    next_job, created = registry.start(runner)
    assert created is True
    assert next_job is not job
    await registry.shutdown()


async def test_registry_turns_exceptions_into_terminal_error(caplog):
    registry = SyncJobRegistry()

    async def runner(job):
        job.update("Fetching", 12)
        raise RuntimeError("Luma API error: 500")

    job, _ = registry.start(runner)
    await job.task

    assert job.status == SyncJobStatus.ERROR
    assert job.error == "Sync failed: Luma API error: 500"
    assert job.progress == 12
    assert any(r.levelname == "ERROR" for r in caplog.records)


async def test_registry_keeps_bounded_history():
    registry = SyncJobRegistry(history_limit=2)

    async def runner(job):
        return RESULT

    ids = []
    for _ in range(4):
        job, _ = registry.start(runner)
        await job.task
        ids.append(job.id)

    assert registry.get(ids[0]) is None
    assert registry.get(ids[-1]) is not None
    assert registry.latest().id == ids[-1]


async def test_shutdown_interrupts_running_job():
    registry = SyncJobRegistry()

    async def runner(job):
        await asyncio.sleep(60)
        return RESULT

    job, _ = registry.start(runner)
    await asyncio.sleep(0)
    await registry.shutdown()

    assert job.status == SyncJobStatus.ERROR
    assert job.error == "Sync was interrupted"
