"""Directory (people) schemas."""

from datetime import datetime
from uuid import UUID

from pydantic import Field

from app.schemas.common import CamelModel


class EmailSuggestion(CamelModel):
    """One autocomplete candidate for the claim email field."""
    id: UUID
    api_id: str = Field(alias="api_id")
    email: str
    user_name: str | None = None
    full_name: str | None = None
    avatar_url: str | None = None
    is_claimed: bool


class SearchEmailsResponse(CamelModel):
    results: list[EmailSuggestion]
    seq: int | None = None  # echoed so clients can drop stale responses


class CheckEmailResponse(CamelModel):
    exists: bool
    person_id: UUID | None = None
    is_claimed: bool | None = None


class PersonRead(CamelModel):
    id: UUID
    api_id: str
    display_name: str
    user_name: str | None
    full_name: str | None
    avatar_url: str | None
    role: str | None
    bio: str | None
    organization_name: str | None
    job_title: str | None
    is_claimed: bool
    created_at: datetime | None


class PersonListResponse(CamelModel):
    people: list[PersonRead]
    total: int
    page: int
    per_page: int
    pages: int
