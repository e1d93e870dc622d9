"""Authentication and profile-claim schemas."""

from typing import Literal
from uuid import UUID

from app.schemas.common import CamelModel
from app.schemas.events import NextEvent


class ClaimProfileRequest(CamelModel):
    """
    Claim-profile request.

    The email is validated by the claim service so malformed input gets
    the same {ok: false, error} shape as every other failure.
    """
    email: str
    person_id: UUID | None = None


class ClaimResponse(CamelModel):
    """
    Successful claim/invite outcome.

    `status` duplicates kind="invited" for older clients.
    """
    ok: Literal[True] = True
    kind: Literal["verification_sent", "invited"]
    message: str
    status: Literal["invited"] | None = None
    next_event: NextEvent | None = None
    deduplicated: bool = False


class VerifyRequest(CamelModel):
    token: str


class SignInLinkRequest(CamelModel):
    email: str


class MeResponse(CamelModel):
    """Response schema for GET /api/auth/me."""
    id: UUID
    email: str
    display_name: str
    bio: str | None
    avatar_url: str | None
    is_admin: bool
    is_verified: bool
    person_id: UUID | None


class VerifyResponse(CamelModel):
    ok: Literal[True] = True
    kind: Literal["claim", "sign_in"]
    user: MeResponse
