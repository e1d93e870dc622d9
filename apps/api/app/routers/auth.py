"""Authentication router - profile claims, emailed links, and sessions.

No passwords: members claim a profile (or sign in later) through a signed
link emailed to them; verifying the link sets the session cookie.
"""

import logging

from fastapi import APIRouter, Depends, Request, Response
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.deps import COOKIE_NAME, get_current_user, get_db, require_csrf_header
from app.core.rate_limit import CLAIM_LIMIT, limiter
from app.core.security import create_session_token
from app.db.enums import ClaimOutcome
from app.schemas.auth import (
    ClaimProfileRequest,
    ClaimResponse,
    MeResponse,
    SignInLinkRequest,
    VerifyRequest,
    VerifyResponse,
)
from app.schemas.common import MessageResponse
from app.schemas.events import NextEvent
from app.services import claim_service
from app.services.claim_service import ClaimError, ClaimResult, ProfileAlreadyClaimedError

router = APIRouter(prefix="/api/auth", tags=["auth"])
logger = logging.getLogger(__name__)


def claim_error_response(exc: ClaimError) -> JSONResponse:
    """Tagged failure body: {ok: false, error, kind?}."""
    content: dict = {"ok": False, "error": exc.message}
    if isinstance(exc, ProfileAlreadyClaimedError):
        content["kind"] = ClaimOutcome.ALREADY_CLAIMED.value
    return JSONResponse(status_code=exc.status_code, content=content)


def claim_response(result: ClaimResult) -> ClaimResponse:
    next_event = None
    if result.next_event:
        next_event = NextEvent(
            title=result.next_event["title"],
            start_time=result.next_event["start_time"],
            url=result.next_event.get("url"),
        )
    invited = result.outcome == ClaimOutcome.INVITED
    return ClaimResponse(
        kind=result.outcome.value,
        message=result.message,
        status="invited" if invited else None,
        next_event=next_event,
        deduplicated=result.deduplicated,
    )


def _set_session_cookie(response: Response, user) -> None:
    token = create_session_token(user.id, user.is_admin, user.token_version)
    response.set_cookie(
        key=COOKIE_NAME,
        value=token,
        max_age=settings.JWT_EXPIRES_HOURS * 3600,
        httponly=True,
        samesite="lax",
        secure=settings.cookie_secure,
        path="/",
    )


@router.post(
    "/claim-profile",
    response_model=ClaimResponse,
    response_model_exclude_none=True,
    dependencies=[Depends(require_csrf_header)],
)
@limiter.limit(CLAIM_LIMIT)
async def claim_profile(
    request: Request,
    body: ClaimProfileRequest,
    db: Session = Depends(get_db),
):
    """
    Resolve a claim request to exactly one outcome.

    - 200 {ok: true, kind: "verification_sent"} - claim link emailed
    - 200 {ok: true, kind: "invited", status: "invited", nextEvent?} - no profile, invite emailed
    - 409 {ok: false, kind: "already_claimed"} - nothing sent
    - 400/404/502 {ok: false, error}
    """
    try:
        result = await claim_service.claim_profile(db, body.email, body.person_id)
    except ClaimError as exc:
        return claim_error_response(exc)
    return claim_response(result)


@router.post(
    "/verify",
    response_model=VerifyResponse,
    dependencies=[Depends(require_csrf_header)],
)
@limiter.limit(CLAIM_LIMIT)
async def verify(
    request: Request,
    body: VerifyRequest,
    response: Response,
    db: Session = Depends(get_db),
):
    """Complete a claim or sign-in link and start a session."""
    try:
        user, purpose = claim_service.verify_token(db, body.token)
    except ClaimError as exc:
        return claim_error_response(exc)

    _set_session_cookie(response, user)
    return VerifyResponse(kind=purpose.value, user=MeResponse.model_validate(user))


@router.post(
    "/sign-in-link",
    response_model=MessageResponse,
    dependencies=[Depends(require_csrf_header)],
)
@limiter.limit(CLAIM_LIMIT)
async def sign_in_link(
    request: Request,
    body: SignInLinkRequest,
    db: Session = Depends(get_db),
):
    """Email a sign-in link. The answer is the same whether or not an account exists."""
    try:
        message = await claim_service.request_sign_in(db, body.email)
    except ClaimError as exc:
        return claim_error_response(exc)
    return MessageResponse(message=message)


@router.get("/me", response_model=MeResponse)
def get_me(user=Depends(get_current_user)):
    """Current signed-in member."""
    return user


@router.post("/logout", dependencies=[Depends(require_csrf_header)])
def logout(response: Response):
    """Clear the session cookie."""
    response.delete_cookie(COOKIE_NAME, path="/")
    return {"ok": True, "status": "logged_out"}
