"""Row and payload builders shared by the tests."""
import uuid
from datetime import datetime, timedelta, timezone

from sqlalchemy.orm import Session

from app.core.deps import COOKIE_NAME
from app.core.security import create_session_token
from app.db.models import Event, Person, User


def make_person(db: Session, email: str, full_name: str | None = None, **fields) -> Person:
    person = Person(
        api_id=fields.pop("api_id", f"usr-{uuid.uuid4().hex[:10]}"),
        email=email,
        full_name=full_name,
        user_name=fields.pop("user_name", full_name),
        **fields,
    )
    db.add(person)
    db.commit()
    db.refresh(person)
    return person


def make_event(
    db: Session,
    title: str = "Tech Meetup",
    starts_in: timedelta = timedelta(days=7),
    duration: timedelta = timedelta(hours=2),
    **fields,
) -> Event:
    start = datetime.now(timezone.utc) + starts_in
    event = Event(
        api_id=fields.pop("api_id", f"evt-{uuid.uuid4().hex[:10]}"),
        title=title,
        start_time=start,
        end_time=start + duration,
        url=fields.pop("url", "https://lu.ma/meetup"),
        visibility=fields.pop("visibility", "public"),
        **fields,
    )
    db.add(event)
    db.commit()
    db.refresh(event)
    return event


def make_user(db: Session, email: str, is_admin: bool = False, person: Person | None = None) -> User:
    user = User(
        id=uuid.uuid4(),
        email=email,
        display_name=email.split("@")[0],
        is_admin=is_admin,
        is_verified=True,
        person=person,
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


def session_cookie(user: User) -> dict[str, str]:
    token = create_session_token(
        user_id=user.id,
        is_admin=user.is_admin,
        token_version=user.token_version,
    )
    return {COOKIE_NAME: token}


def luma_event(api_id: str, name: str = "Meetup", start: str = "2030-01-15T23:00:00Z", **extra) -> dict:
    event = {
        "api_id": api_id,
        "name": name,
        "start_at": start,
        "end_at": extra.pop("end_at", "2030-01-16T01:00:00Z"),
        "url": f"https://lu.ma/{api_id}",
        "visibility": "public",
        "created_at": "2029-12-01T12:00:00Z",
    }
    event.update(extra)
    return {"api_id": api_id, "event": event}


def luma_person(api_id: str, email: str | None, name: str | None = None, **extra) -> dict:
    person = {
        "api_id": api_id,
        "email": email,
        "user": {"name": name, "full_name": name},
        "created_at": "2029-12-01T12:00:00Z",
    }
    person.update(extra)
    return person
