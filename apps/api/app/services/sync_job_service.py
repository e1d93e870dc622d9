"""In-memory sync jobs with progress streaming and reattach.

A SyncJob is the server-side state machine behind the admin "reset & sync"
operation: running -> success | error. Every state change is appended to the
job's message history with an increasing sequence id, so a client that drops
its stream can reattach (Last-Event-ID) and replay what it missed.

Progress never decreases within a job. Only the terminal success message,
which carries the result counts, reports 100.

Jobs live in process memory and do not survive a restart.
"""

from __future__ import annotations

import asyncio
import logging
from collections import OrderedDict
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import AsyncIterator, Awaitable, Callable
from uuid import uuid4

from app.core.config import settings
from app.db.enums import SyncJobStatus, SyncMessageType

logger = logging.getLogger(__name__)

MAX_RUNNING_PROGRESS = 99


@dataclass(frozen=True)
class SyncMessage:
    seq: int
    type: SyncMessageType
    message: str
    progress: int | None = None
    data: dict | None = None
    terminal: bool = False

    def to_payload(self, job_id: str) -> dict:
        payload: dict = {"type": self.type.value, "jobId": job_id, "message": self.message}
        if self.type == SyncMessageType.STATUS:
            payload["progress"] = self.progress
            if self.data is not None:
                payload["data"] = self.data
        return payload


class SyncJob:
    """One reset & sync run."""

    def __init__(self, job_id: str | None = None):
        self.id = job_id or uuid4().hex
        self.status = SyncJobStatus.RUNNING
        self.progress = 0
        self.message = "Starting sync..."
        self.result: dict | None = None
        self.error: str | None = None
        self.started_at = datetime.now(timezone.utc)
        self.finished_at: datetime | None = None
        self.task: asyncio.Task | None = None
        self._messages: list[SyncMessage] = []
        self._subscribers: set[asyncio.Queue] = set()

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal

    @property
    def messages(self) -> list[SyncMessage]:
        return list(self._messages)

    def _publish(self, message: SyncMessage) -> SyncMessage:
        self._messages.append(message)
        for queue in list(self._subscribers):
            queue.put_nowait(message)
        if message.terminal:
            self._subscribers.clear()
        return message

    def _next_seq(self) -> int:
        return len(self._messages) + 1

    def update(self, message: str, progress: int | None = None) -> SyncMessage:
        """
        Record an intermediate status.

        Lower progress values are clamped to the current value; running
        updates never reach 100.
        """
        if self.is_terminal:
            raise RuntimeError(f"Sync job {self.id} already finished")
        if progress is not None:
            self.progress = max(self.progress, min(int(progress), MAX_RUNNING_PROGRESS))
        self.message = message
        return self._publish(
            SyncMessage(
                seq=self._next_seq(),
                type=SyncMessageType.STATUS,
                message=message,
                progress=self.progress,
            )
        )

    def succeed(self, result: dict, message: str = "Sync complete") -> SyncMessage:
        if self.is_terminal:
            raise RuntimeError(f"Sync job {self.id} already finished")
        self.status = SyncJobStatus.SUCCESS
        self.progress = 100
        self.message = message
        self.result = result
        self.finished_at = datetime.now(timezone.utc)
        return self._publish(
            SyncMessage(
                seq=self._next_seq(),
                type=SyncMessageType.STATUS,
                message=message,
                progress=100,
                data=result,
                terminal=True,
            )
        )

    def fail(self, error: str) -> SyncMessage:
        if self.is_terminal:
            raise RuntimeError(f"Sync job {self.id} already finished")
        self.status = SyncJobStatus.ERROR
        self.message = error
        self.error = error
        self.finished_at = datetime.now(timezone.utc)
        return self._publish(
            SyncMessage(
                seq=self._next_seq(),
                type=SyncMessageType.ERROR,
                message=error,
                terminal=True,
            )
        )

    def subscribe(self, last_event_id: int | None = None) -> asyncio.Queue:
        """
        Queue of messages after `last_event_id`: replayed history, then live updates.
        """
        queue: asyncio.Queue = asyncio.Queue()
        after = last_event_id or 0
        for message in self._messages:
            if message.seq > after:
                queue.put_nowait(message)
        if not self.is_terminal:
            self._subscribers.add(queue)
        return queue

    def unsubscribe(self, queue: asyncio.Queue) -> None:
        self._subscribers.discard(queue)

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    async def stream(
        self,
        last_event_id: int | None = None,
        heartbeat: float | None = None,
    ) -> AsyncIterator[SyncMessage | None]:
        """
        Yield messages until the terminal one.

        With `heartbeat`, yields None after that many idle seconds so the
        caller can keep the connection alive.
        """
        if self.is_terminal and last_event_id and last_event_id >= len(self._messages):
            return
        queue = self.subscribe(last_event_id)
        try:
            while True:
                try:
                    if heartbeat:
                        message = await asyncio.wait_for(queue.get(), timeout=heartbeat)
                    else:
                        message = await queue.get()
                except asyncio.TimeoutError:
                    yield None
                    continue
                yield message
                if message.terminal:
                    return
        finally:
            self.unsubscribe(queue)

    def snapshot(self) -> dict:
        return {
            "job_id": self.id,
            "status": self.status.value,
            "progress": self.progress,
            "message": self.message,
            "result": self.result,
            "error": self.error,
            "started_at": self.started_at,
            "finished_at": self.finished_at,
        }


JobRunner = Callable[[SyncJob], Awaitable[dict]]


class SyncJobRegistry:
    """
    Tracks sync jobs; at most one runs at a time.

    Finished jobs are kept (up to `history_limit`) so clients can reattach
    and read the outcome.
    """

    def __init__(self, history_limit: int | None = None):
        self.history_limit = history_limit or settings.SYNC_JOB_HISTORY_LIMIT
        self._jobs: OrderedDict[str, SyncJob] = OrderedDict()

    def get(self, job_id: str) -> SyncJob | None:
        return self._jobs.get(job_id)

    def running(self) -> SyncJob | None:
        for job in self._jobs.values():
            if not job.is_terminal:
                return job
        return None

    def latest(self) -> SyncJob | None:
        if not self._jobs:
            return None
        return next(reversed(self._jobs.values()))

    def start(self, runner: JobRunner) -> tuple[SyncJob, bool]:
        """
        Start a job, or join the one already running.

        Returns:
            (job, created)
        """
        current = self.running()
        if current is not None:
            return current, False

        job = SyncJob()
        self._jobs[job.id] = job
        self._prune()
        job.task = asyncio.create_task(self._run(job, runner), name=f"sync-job-{job.id}")
        logger.info("Sync job started job_id=%s", job.id)
        return job, True

    async def _run(self, job: SyncJob, runner: JobRunner) -> None:
        try:
            result = await runner(job)
            if not job.is_terminal:
                job.succeed(result)
            logger.info("Sync job finished job_id=%s result=%s", job.id, result)
        except asyncio.CancelledError:
            if not job.is_terminal:
                job.fail("Sync was interrupted")
            raise
        except Exception as exc:
            logger.error("Sync job failed job_id=%s", job.id, exc_info=exc)
            if not job.is_terminal:
                job.fail(f"Sync failed: {exc}")

    def _prune(self) -> None:
        finished = [job_id for job_id, job in self._jobs.items() if job.is_terminal]
        while len(finished) > self.history_limit:
            self._jobs.pop(finished.pop(0), None)

    def clear(self) -> list[asyncio.Task]:
        """Forget all jobs, cancelling running ones. Returns the cancelled tasks."""
        cancelled = []
        for job in self._jobs.values():
            if job.task is not None and not job.task.done():
                job.task.cancel()
                cancelled.append(job.task)
        self._jobs.clear()
        return cancelled

    async def shutdown(self) -> None:
        tasks = self.clear()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)


registry = SyncJobRegistry()


def get_registry() -> SyncJobRegistry:
    """Dependency hook for routers; overridable in tests."""
    return registry
