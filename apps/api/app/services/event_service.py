"""Event service - imported events and the featured (next upcoming) event."""

from datetime import datetime, timezone

from sqlalchemy import func
from sqlalchemy.orm import Session

from app.db.models import Event
from app.utils.pagination import PaginationParams, paginate_query

PUBLIC_VISIBILITY = "public"


def _public(query):
    return query.filter(
        (Event.visibility.is_(None)) | (func.lower(Event.visibility) == PUBLIC_VISIBILITY)
    )


def get_event_by_api_id(db: Session, api_id: str) -> Event | None:
    return db.query(Event).filter(Event.api_id == api_id).first()


def get_featured_event(db: Session, now: datetime | None = None) -> Event | None:
    """Next public event that has not ended yet."""
    now = now or datetime.now(timezone.utc)
    return (
        _public(db.query(Event))
        .filter(Event.end_time >= now)
        .order_by(Event.start_time.asc())
        .first()
    )


def list_events(
    db: Session,
    pagination: PaginationParams,
    upcoming: bool | None = None,
    now: datetime | None = None,
) -> tuple[list[Event], int]:
    now = now or datetime.now(timezone.utc)
    query = _public(db.query(Event))
    if upcoming is True:
        query = query.filter(Event.end_time >= now).order_by(Event.start_time.asc())
    elif upcoming is False:
        query = query.filter(Event.end_time < now).order_by(Event.start_time.desc())
    else:
        query = query.order_by(Event.start_time.desc())
    return paginate_query(query.order_by(Event.id), pagination)


def count_events(db: Session) -> int:
    return db.query(func.count(Event.id)).scalar() or 0


def event_summary(event: Event | None) -> dict | None:
    """Minimal event info embedded in invite emails and claim responses."""
    if event is None:
        return None
    start_time = event.start_time
    if start_time.tzinfo is None:
        start_time = start_time.replace(tzinfo=timezone.utc)
    return {
        "api_id": event.api_id,
        "title": event.title,
        "start_time": start_time,
        "url": event.url,
    }
