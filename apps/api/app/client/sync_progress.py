"""
Client-side progress tracking for the admin reset & sync.

SyncProgressStream follows the job's SSE stream; SyncProgressPoller polls the
job snapshot for environments where streaming is unavailable. Both keep the
displayed progress monotonic and stop at the first terminal state.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Awaitable, Callable

import httpx

from app.client.api import PortalAPIError

logger = logging.getLogger(__name__)

CONNECTION_ERROR = "Connection error"
POLL_INTERVAL_SECONDS = 5.0
POLL_PROGRESS_CAP = 95


@dataclass
class SyncProgress:
    status: str = "idle"  # idle | running | success | error
    progress: int = 0
    message: str = ""
    job_id: str | None = None
    result: dict | None = None
    error: str | None = None
    history: list[str] = field(default_factory=list)

    @property
    def is_terminal(self) -> bool:
        return self.status in ("success", "error")

    def begin(self, job_id: str | None = None) -> None:
        """Reset for a new run."""
        self.status = "running"
        self.progress = 0
        self.message = "Starting sync..."
        self.job_id = job_id
        self.result = None
        self.error = None
        self.history = []

    def advance(self, progress: int | None, message: str | None) -> None:
        if progress is not None:
            self.progress = max(self.progress, progress)
        if message:
            self.message = message
            self.history.append(message)

    def succeed(self, result: dict | None, message: str | None = None) -> None:
        self.status = "success"
        self.progress = 100
        self.result = result
        if message:
            self.message = message
            self.history.append(message)

    def fail(self, error: str) -> None:
        self.status = "error"
        self.error = error
        self.message = error
        self.history.append(error)


class SyncProgressStream:
    """
    Follow a sync job over SSE.

    The stream is closed on the terminal message, on an error message, on a
    transport failure (reported as "Connection error"), and on close().
    """

    def __init__(self, api, *, on_update: Callable[[SyncProgress], None] | None = None) -> None:
        self.api = api
        self.on_update = on_update
        self.state = SyncProgress()
        self.last_event_id: int | None = None
        self.closed = False
        self._events = None
        self._task: asyncio.Task | None = None

    async def __aenter__(self) -> "SyncProgressStream":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    def _emit(self) -> None:
        if self.on_update:
            self.on_update(self.state)

    def handle(self, payload: dict) -> SyncProgress:
        """Apply one stream payload to the progress state."""
        if payload.get("type") == "error":
            self.state.fail(payload.get("message") or "Sync failed")
        else:
            progress = payload.get("progress")
            data = payload.get("data")
            if progress == 100 and data is not None:
                self.state.succeed(data, payload.get("message"))
            else:
                self.state.advance(progress, payload.get("message"))
        self._emit()
        return self.state

    async def run(self, job_id: str | None = None) -> SyncProgress:
        """
        Start a sync (or follow `job_id`) and consume its stream to the end.

        Progress starts from zero on every run.
        """
        self._task = asyncio.current_task()
        self.closed = False
        self.last_event_id = None
        self.state.begin(job_id)
        self._emit()
        try:
            if job_id is None:
                job = await self.api.start_sync()
                job_id = job["jobId"]
                self.state.job_id = job_id
            await self._follow(job_id)
        except (httpx.HTTPError, PortalAPIError) as exc:
            logger.warning("Sync progress stream failed: %s", exc)
            self.state.fail(CONNECTION_ERROR)
            self._emit()
        finally:
            await self._close_events()
            self._task = None
        return self.state

    async def _follow(self, job_id: str) -> None:
        self._events = self.api.stream_sync(job_id, self.last_event_id)
        async for seq, payload in self._events:
            if seq is not None:
                self.last_event_id = seq
            self.handle(payload)
            if self.state.is_terminal:
                return
        if not self.state.is_terminal:
            # Server hung up before a terminal message
            self.state.fail(CONNECTION_ERROR)
            self._emit()

    async def _close_events(self) -> None:
        events, self._events = self._events, None
        if events is not None:
            await events.aclose()

    async def close(self) -> None:
        """Stop following the job; the server-side sync keeps running."""
        self.closed = True
        task = self._task
        if task is not None and task is not asyncio.current_task() and not task.done():
            task.cancel()
            await asyncio.gather(task, return_exceptions=True)
        await self._close_events()


class SyncProgressPoller:
    """
    Poll the job snapshot on a fixed interval.

    Displayed progress is max(previous, min(reported, 95)) until the job
    reaches a terminal state, which shows 100 on success.
    """

    def __init__(
        self,
        api,
        *,
        interval: float = POLL_INTERVAL_SECONDS,
        cap: int = POLL_PROGRESS_CAP,
        on_update: Callable[[SyncProgress], None] | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.api = api
        self.interval = interval
        self.cap = cap
        self.on_update = on_update
        self._sleep = sleep
        self.state = SyncProgress()
        self.polls = 0
        self._stopped = False

    def apply(self, snapshot: dict) -> SyncProgress:
        status = snapshot.get("status")
        if status == "success":
            self.state.succeed(snapshot.get("result"), snapshot.get("message"))
        elif status == "error":
            self.state.fail(snapshot.get("error") or snapshot.get("message") or "Sync failed")
        else:
            reported = snapshot.get("progress") or 0
            self.state.advance(min(reported, self.cap), snapshot.get("message"))
        if self.on_update:
            self.on_update(self.state)
        return self.state

    def stop(self) -> None:
        self._stopped = True

    async def run(self, job_id: str | None = None) -> SyncProgress:
        self._stopped = False
        self.state.begin(job_id)
        try:
            if job_id is None:
                job = await self.api.start_sync()
                job_id = job["jobId"]
                self.state.job_id = job_id
            while not self._stopped:
                snapshot = await self.api.get_sync_job(job_id)
                self.polls += 1
                self.apply(snapshot)
                if self.state.is_terminal:
                    break
                await self._sleep(self.interval)
        except PortalAPIError as exc:
            logger.warning("Sync polling failed: %s", exc.message)
            self.state.fail(CONNECTION_ERROR)
        return self.state
