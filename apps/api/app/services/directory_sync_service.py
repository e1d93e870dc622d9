"""Directory sync - rebuilds the event/people directory from Luma.

Full reset & sync:
1. Fetch every event and person from Luma (nothing is touched yet)
2. In one transaction: clear people/events, insert fresh rows, relink
   accounts to people by email, record the sync time
3. Commit; any failure rolls back and the previous directory stays intact

Incremental sync upserts rows created since the last recorded sync.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Callable

from sqlalchemy import update
from sqlalchemy.orm import Session

from app.core.async_utils import run_blocking
from app.db.models import Event, Person, SyncState, User
from app.db.session import SessionLocal
from app.services import luma_service, user_service
from app.services.sync_job_service import SyncJob
from app.utils.datetime_parsing import ensure_utc, isoformat_utc, parse_iso_datetime

logger = logging.getLogger(__name__)

LAST_SYNC_KEY = "last_directory_sync"

LumaClientFactory = Callable[[], luma_service.LumaClient]


# =============================================================================
# Sync state
# =============================================================================

def get_last_sync(db: Session) -> datetime | None:
    state = db.get(SyncState, LAST_SYNC_KEY)
    return parse_iso_datetime(state.value) if state else None


def set_last_sync(db: Session, value: datetime) -> None:
    """Record the sync time. Does not commit."""
    state = db.get(SyncState, LAST_SYNC_KEY)
    if state is None:
        db.add(SyncState(key=LAST_SYNC_KEY, value=isoformat_utc(value)))
    else:
        state.value = isoformat_utc(value)


# =============================================================================
# Parsing
# =============================================================================

def prepare_rows(
    raw_events: list[dict],
    raw_people: list[dict],
) -> tuple[list[dict], list[dict], int]:
    """
    Normalize Luma entries.

    Returns:
        (events, people, skipped) where skipped counts invalid and duplicate entries
    """
    events = [row for row in map(luma_service.parse_event, raw_events) if row]
    people = [row for row in map(luma_service.parse_person, raw_people) if row]
    invalid = (len(raw_events) - len(events)) + (len(raw_people) - len(people))
    if invalid:
        logger.warning("Skipped %s Luma entries with missing required fields", invalid)

    unique_events = luma_service.dedupe_by_api_id(events)
    unique_people = luma_service.dedupe_by_api_id(people)
    duplicates = (len(events) - len(unique_events)) + (len(people) - len(unique_people))
    return unique_events, unique_people, invalid + duplicates


# =============================================================================
# Database writes
# =============================================================================

def replace_directory(
    session_factory: Callable[[], Session],
    events: list[dict],
    people: list[dict],
    synced_at: datetime,
) -> int:
    """
    Swap the directory contents in a single transaction.

    Returns:
        Number of accounts relinked to people
    """
    db = session_factory()
    try:
        # Explicit unlink: SQLite does not enforce ON DELETE SET NULL by default
        db.execute(update(User).values(person_id=None))
        db.query(Person).delete(synchronize_session=False)
        db.query(Event).delete(synchronize_session=False)
        db.expire_all()

        db.add_all(Event(**row, synced_at=synced_at) for row in events)
        db.add_all(Person(**row) for row in people)
        db.flush()

        relinked = user_service.relink_users_to_people(db)
        set_last_sync(db, synced_at)
        db.commit()
        return relinked
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


def upsert_directory(
    session_factory: Callable[[], Session],
    events: list[dict],
    people: list[dict],
    synced_at: datetime,
) -> dict:
    """
    Insert new rows and refresh existing ones by api_id.

    Returns:
        {"created": int, "updated": int, "relinked": int}
    """
    db = session_factory()
    try:
        created = updated = 0
        for model, rows in ((Event, events), (Person, people)):
            if not rows:
                continue
            existing = {
                obj.api_id: obj
                for obj in db.query(model).filter(model.api_id.in_([r["api_id"] for r in rows]))
            }
            for row in rows:
                obj = existing.get(row["api_id"])
                if obj is None:
                    obj = model(**row)
                    db.add(obj)
                    created += 1
                else:
                    for key, value in row.items():
                        setattr(obj, key, value)
                    updated += 1
                if model is Event:
                    obj.synced_at = synced_at
        db.flush()

        relinked = user_service.relink_users_to_people(db)
        if events or people:
            set_last_sync(db, synced_at)
        db.commit()
        return {"created": created, "updated": updated, "relinked": relinked}
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


# =============================================================================
# Jobs
# =============================================================================

def _page_reporter(job: SyncJob, label: str, start: int, cap: int):
    state = {"progress": start}

    def on_page(total: int) -> None:
        state["progress"] = min(cap, state["progress"] + 3)
        job.update(f"Fetched {total} {label} from Luma...", state["progress"])

    return on_page


async def run_reset_and_sync(
    job: SyncJob,
    session_factory: Callable[[], Session] = SessionLocal,
    luma_client_factory: LumaClientFactory = luma_service.LumaClient,
) -> dict:
    """
    Full reset & sync, reporting progress on `job`.

    Returns the result counts {total, created, skipped, events, people, relinked};
    raises on failure (the registry turns that into the terminal error).
    """
    synced_at = datetime.now(timezone.utc)
    job.update("Connecting to Luma...", 2)

    async with luma_client_factory() as luma:
        job.update("Fetching events from Luma...", 5)
        raw_events = await luma.list_events(on_page=_page_reporter(job, "events", 5, 30))
        job.update("Fetching people from Luma...", 35)
        raw_people = await luma.list_people(on_page=_page_reporter(job, "people", 35, 60))

    job.update("Processing directory data...", 65)
    events, people, skipped = prepare_rows(raw_events, raw_people)

    job.update(f"Importing {len(events)} events and {len(people)} people...", 75)
    relinked = await run_blocking(replace_directory, session_factory, events, people, synced_at)
    job.update(f"Relinked {relinked} member accounts", 95)

    created = len(events) + len(people)
    return {
        "total": created + skipped,
        "created": created,
        "skipped": skipped,
        "events": len(events),
        "people": len(people),
        "relinked": relinked,
    }


async def sync_directory(
    session_factory: Callable[[], Session] = SessionLocal,
    luma_client_factory: LumaClientFactory = luma_service.LumaClient,
    incremental: bool = True,
) -> dict:
    """
    Scheduled directory sync without a progress job.

    Incremental mode fetches rows created since the last sync and upserts
    them; the sync time only advances when something new arrived.
    """
    synced_at = datetime.now(timezone.utc)
    since = None
    if incremental:
        db = session_factory()
        try:
            since = get_last_sync(db)
        finally:
            db.close()

    async with luma_client_factory() as luma:
        raw_events = await luma.list_events(created_after=since)
        raw_people = await luma.list_people(created_after=since)

    events, people, skipped = prepare_rows(raw_events, raw_people)
    if incremental:
        counts = await run_blocking(upsert_directory, session_factory, events, people, synced_at)
    else:
        relinked = await run_blocking(replace_directory, session_factory, events, people, synced_at)
        counts = {"created": len(events) + len(people), "updated": 0, "relinked": relinked}

    result = {
        "incremental": incremental,
        "since": ensure_utc(since),
        "events": len(events),
        "people": len(people),
        "skipped": skipped,
        **counts,
    }
    logger.info("Directory sync finished: %s", result)
    return result
