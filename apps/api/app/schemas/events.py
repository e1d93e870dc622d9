"""Event schemas."""

from datetime import datetime
from uuid import UUID

from pydantic import Field

from app.schemas.common import CamelModel


class EventRead(CamelModel):
    id: UUID
    api_id: str
    title: str
    description: str | None
    start_time: datetime
    end_time: datetime
    cover_url: str | None
    url: str | None
    timezone: str | None
    location: dict | None
    visibility: str | None


class EventListResponse(CamelModel):
    events: list[EventRead]
    total: int
    page: int
    per_page: int
    pages: int


class FeaturedEventResponse(CamelModel):
    event: EventRead | None


class NextEvent(CamelModel):
    """Event info returned with invite outcomes."""
    title: str
    start_time: datetime
    url: str | None = None


class SendInviteRequest(CamelModel):
    email: str
    event_api_id: str | None = Field(default=None, alias="event_api_id")
