"""SQLAlchemy ORM models."""

from app.db.models.auth import User
from app.db.models.directory import Event, Person
from app.db.models.email import ClaimInvitation, EmailLog, EventInvite
from app.db.models.sync import SyncState

__all__ = [
    "ClaimInvitation",
    "EmailLog",
    "Event",
    "EventInvite",
    "Person",
    "SyncState",
    "User",
]
