"""Admin router - directory stats and the reset & sync job.

The sync runs as a server task independent of any connection. Clients
follow it over SSE (GET /sync/{job_id}/stream, reattach with Last-Event-ID)
or poll the job snapshot.
"""

import logging
from functools import partial
from typing import AsyncIterator

from fastapi import APIRouter, Depends, Header, HTTPException, Query, Request
from fastapi.responses import Response, StreamingResponse
from sqlalchemy import func
from sqlalchemy.orm import Session

from app.core.deps import (
    get_db,
    get_luma_client_factory,
    get_session_factory,
    require_admin,
    require_csrf_header,
)
from app.core.structured_logging import build_log_context
from app.db.models import User
from app.schemas.sync import StatsResponse, SyncJobRead, SyncStartResponse
from app.services import directory_sync_service, event_service, person_service
from app.services.sync_job_service import SyncJob, SyncJobRegistry, get_registry
from app.utils.sse import STREAM_HEADERS, format_sse, format_sse_comment, sse_preamble

router = APIRouter(prefix="/api/admin", tags=["admin"], dependencies=[Depends(require_admin)])
logger = logging.getLogger(__name__)

HEARTBEAT_SECONDS = 15.0
STREAM_RETRY_MS = 3000


def _parse_last_event_id(header_value: str | None, query_value: int | None) -> int | None:
    if query_value is not None:
        return query_value
    if not header_value:
        return None
    try:
        return int(header_value.strip())
    except ValueError:
        return None


def _stream_url(job: SyncJob) -> str:
    return f"/api/admin/sync/{job.id}/stream"


def _stream_job(job: SyncJob, last_event_id: int | None) -> StreamingResponse:
    async def event_generator() -> AsyncIterator[str]:
        yield sse_preamble(retry_ms=STREAM_RETRY_MS)
        async for message in job.stream(last_event_id, heartbeat=HEARTBEAT_SECONDS):
            if message is None:
                yield format_sse_comment()
                continue
            yield format_sse(None, message.to_payload(job.id), event_id=message.seq)

    return StreamingResponse(event_generator(), media_type="text/event-stream", headers=STREAM_HEADERS)


def _start_sync(
    user: User,
    registry: SyncJobRegistry,
    session_factory,
    luma_client_factory,
) -> tuple[SyncJob, bool]:
    runner = partial(
        directory_sync_service.run_reset_and_sync,
        session_factory=session_factory,
        luma_client_factory=luma_client_factory,
    )
    job, created = registry.start(runner)
    context = build_log_context(user_id=str(user.id), job_id=job.id)
    if created:
        logger.info("Reset & sync started", extra=context)
    else:
        logger.info("Reset & sync already running, joining", extra=context)
    return job, created


@router.get("/stats", response_model=StatsResponse)
def get_stats(db: Session = Depends(get_db)):
    """Directory counts (also the completion oracle for polling clients)."""
    people = person_service.count_people(db)
    claimed = person_service.count_claimed_people(db)
    return StatsResponse(
        events=event_service.count_events(db),
        people=people,
        users=db.query(func.count(User.id)).scalar() or 0,
        claimed_people=claimed,
        unclaimed_people=max(people - claimed, 0),
        last_sync=directory_sync_service.get_last_sync(db),
    )


@router.post(
    "/sync",
    response_model=SyncStartResponse,
    dependencies=[Depends(require_csrf_header)],
)
async def start_sync(
    user: User = Depends(require_admin),
    registry: SyncJobRegistry = Depends(get_registry),
    session_factory=Depends(get_session_factory),
    luma_client_factory=Depends(get_luma_client_factory),
):
    """
    Start a reset & sync (destructive: replaces all events and people).

    When a sync is already running, returns that job with created=false.
    """
    job, created = _start_sync(user, registry, session_factory, luma_client_factory)
    return SyncStartResponse(**job.snapshot(), created=created, stream_url=_stream_url(job))


@router.get("/sync/{job_id}", response_model=SyncJobRead)
def get_sync_job(job_id: str, registry: SyncJobRegistry = Depends(get_registry)):
    """Job snapshot for polling clients."""
    job = registry.get(job_id)
    if not job:
        raise HTTPException(status_code=404, detail="Sync job not found")
    return SyncJobRead(**job.snapshot())


@router.get("/sync/{job_id}/stream")
async def stream_sync_job(
    job_id: str,
    last_event_id: str | None = Header(None, alias="Last-Event-ID"),
    after: int | None = Query(None, ge=0, description="Replay messages after this sequence id"),
    registry: SyncJobRegistry = Depends(get_registry),
):
    """
    SSE progress stream: unnamed events, `id:` is the message sequence.

    Each data payload is {type: "status", jobId, message, progress, data?}
    or {type: "error", jobId, message}. The stream ends after the terminal
    message; reconnecting with Last-Event-ID replays anything missed.
    """
    job = registry.get(job_id)
    if not job:
        raise HTTPException(status_code=404, detail="Sync job not found")
    return _stream_job(job, _parse_last_event_id(last_event_id, after))


@router.get("/reset-database")
async def reset_database(
    request: Request,
    user: User = Depends(require_admin),
    registry: SyncJobRegistry = Depends(get_registry),
    session_factory=Depends(get_session_factory),
    luma_client_factory=Depends(get_luma_client_factory),
):
    """
    Legacy single-request flow for EventSource clients: start (or join) a
    reset & sync and stream its progress.

    An EventSource reconnect (Last-Event-ID set) only reattaches to the
    current or most recent job and never starts a new one. 204 tells the
    browser to stop reconnecting once nothing is left to replay.
    """
    header = request.headers.get("Last-Event-ID")
    if header is None:
        job, _ = _start_sync(user, registry, session_factory, luma_client_factory)
        return _stream_job(job, None)

    last_event_id = _parse_last_event_id(header, None)
    job = registry.running() or registry.latest()
    if job is None or (job.is_terminal and (last_event_id or 0) >= len(job.messages)):
        logger.info(
            "Reset & sync reconnect with nothing to replay",
            extra=build_log_context(user_id=str(user.id), job_id=job.id if job else None),
        )
        return Response(status_code=204)
    return _stream_job(job, last_event_id)
