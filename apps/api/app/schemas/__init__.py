"""Pydantic schemas for API request/response models."""

from app.schemas.auth import (
    ClaimProfileRequest,
    ClaimResponse,
    MeResponse,
    SignInLinkRequest,
    VerifyRequest,
    VerifyResponse,
)
from app.schemas.common import CamelModel, ErrorResponse, MessageResponse
from app.schemas.events import (
    EventListResponse,
    EventRead,
    FeaturedEventResponse,
    NextEvent,
    SendInviteRequest,
)
from app.schemas.people import (
    CheckEmailResponse,
    EmailSuggestion,
    PersonListResponse,
    PersonRead,
    SearchEmailsResponse,
)
from app.schemas.sync import (
    ClaimInvitationsResponse,
    DirectorySyncResponse,
    StatsResponse,
    SyncJobRead,
    SyncResult,
    SyncStartResponse,
)

__all__ = [
    # Common
    "CamelModel",
    "ErrorResponse",
    "MessageResponse",
    # Auth
    "ClaimProfileRequest",
    "ClaimResponse",
    "MeResponse",
    "SignInLinkRequest",
    "VerifyRequest",
    "VerifyResponse",
    # Events
    "EventListResponse",
    "EventRead",
    "FeaturedEventResponse",
    "NextEvent",
    "SendInviteRequest",
    # People
    "CheckEmailResponse",
    "EmailSuggestion",
    "PersonListResponse",
    "PersonRead",
    "SearchEmailsResponse",
    # Admin / sync
    "ClaimInvitationsResponse",
    "DirectorySyncResponse",
    "StatsResponse",
    "SyncJobRead",
    "SyncResult",
    "SyncStartResponse",
]
