"""Admin stats and sync job schemas."""

from datetime import datetime

from app.schemas.common import CamelModel


class StatsResponse(CamelModel):
    events: int
    people: int
    users: int
    claimed_people: int
    unclaimed_people: int
    last_sync: datetime | None


class SyncResult(CamelModel):
    total: int
    created: int
    skipped: int
    events: int
    people: int
    relinked: int


class SyncJobRead(CamelModel):
    job_id: str
    status: str
    progress: int
    message: str
    result: SyncResult | None = None
    error: str | None = None
    started_at: datetime
    finished_at: datetime | None = None


class SyncStartResponse(SyncJobRead):
    created: bool
    stream_url: str


class DirectorySyncResponse(CamelModel):
    incremental: bool
    since: datetime | None
    events: int
    people: int
    skipped: int
    created: int
    updated: int
    relinked: int


class ClaimInvitationsResponse(CamelModel):
    completed: int
    initial_sent: int
    follow_ups_sent: int
    final_notices: int
    failed: int
    dry_run: bool
    skipped: bool
