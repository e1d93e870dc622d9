"""Claim service - resolves a claim-profile request to exactly one outcome.

Outcomes for an email (and optional person id):
- unclaimed directory record -> one verification email with a signed claim link
- no directory record -> one invite email (next event, or the community)
- record already claimed -> rejected, no email

Repeats inside CLAIM_EMAIL_COOLDOWN_SECONDS resolve to the same outcome
without sending another email.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from uuid import UUID

import jwt
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.security import (
    create_claim_token,
    create_sign_in_token,
    decode_link_token,
    mask_email,
)
from app.db.enums import ClaimOutcome, EmailKind, TokenPurpose
from app.db.models import EventInvite, Person, User
from app.services import (
    claim_invitation_service,
    email_templates,
    event_service,
    person_service,
    platform_email_service,
    user_service,
)
from app.utils.normalization import is_valid_email, normalize_email

logger = logging.getLogger(__name__)

ALREADY_CLAIMED_MESSAGE = (
    "This profile has already been claimed. "
    "Request a sign-in link with this email to access your account."
)
VERIFICATION_SENT_MESSAGE = "Verification email sent. Check your inbox to claim your profile."
SIGN_IN_REQUESTED_MESSAGE = "If an account exists for that email, a sign-in link is on its way."


# =============================================================================
# Errors
# =============================================================================

class ClaimError(Exception):
    """Claim/verify request failed; status_code is the HTTP status to report."""

    status_code = 400

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ClaimNotFoundError(ClaimError):
    status_code = 404


class ProfileAlreadyClaimedError(ClaimError):
    status_code = 409

    def __init__(self, message: str = ALREADY_CLAIMED_MESSAGE):
        super().__init__(message)


class EmailDeliveryError(ClaimError):
    status_code = 502


class InvalidLinkError(ClaimError):
    status_code = 400


# =============================================================================
# Results
# =============================================================================

@dataclass
class ClaimResult:
    """Successful outcome of a claim or invite request."""

    outcome: ClaimOutcome
    message: str
    next_event: dict | None = None
    deduplicated: bool = False


def _require_email(email: str | None) -> str:
    normalized = normalize_email(email)
    if not normalized or not is_valid_email(normalized):
        raise ClaimError("Invalid email address")
    return normalized


def _invited_message(event: dict | None) -> str:
    if event:
        return (
            "We couldn't find a profile for that email, so we've sent you an "
            f"invitation to {event['title']}."
        )
    return (
        "We couldn't find a profile for that email, so we've sent you an "
        f"invitation to join {settings.COMMUNITY_NAME}."
    )


# =============================================================================
# Claim profile
# =============================================================================

def _resolve_person(db: Session, email: str, person_id: UUID | None) -> Person | None:
    if person_id is None:
        return person_service.get_person_by_email(db, email)

    person = person_service.get_person(db, person_id)
    if not person:
        raise ClaimNotFoundError("Profile not found")
    if person.email.lower() != email:
        raise ClaimError("Email does not match this profile")
    return person


async def claim_profile(
    db: Session,
    email: str,
    person_id: UUID | None = None,
) -> ClaimResult:
    """
    Resolve and execute the outcome for a claim-profile request.

    Raises:
        ClaimError: invalid email or email/profile mismatch (400)
        ClaimNotFoundError: unknown person id (404)
        ProfileAlreadyClaimedError: profile or account already exists (409)
        EmailDeliveryError: the email could not be sent (502)
    """
    email = _require_email(email)
    person = _resolve_person(db, email, person_id)

    if person is not None:
        if person_service.is_claimed(db, person):
            logger.info("Claim rejected, already claimed: %s", mask_email(email))
            raise ProfileAlreadyClaimedError()
        return await _send_verification(db, email, person)

    existing_user = user_service.get_user_by_email(db, email)
    if existing_user and existing_user.is_verified:
        logger.info("Claim rejected, account exists without profile: %s", mask_email(email))
        raise ProfileAlreadyClaimedError()

    return await send_event_invite(db, email)


async def _send_verification(db: Session, email: str, person: Person) -> ClaimResult:
    featured = event_service.event_summary(event_service.get_featured_event(db))

    if platform_email_service.within_cooldown(db, email, [EmailKind.CLAIM_VERIFICATION]):
        logger.info("Claim verification deduplicated: %s", mask_email(email))
        return ClaimResult(
            outcome=ClaimOutcome.VERIFICATION_SENT,
            message=VERIFICATION_SENT_MESSAGE,
            next_event=featured,
            deduplicated=True,
        )

    token = create_claim_token(email, person.id)
    rendered = email_templates.claim_email(
        email_templates.build_verification_url(token),
        stage=0,
        event=featured,
    )
    result = await platform_email_service.send_email_logged(
        db=db,
        to_email=email,
        kind=EmailKind.CLAIM_VERIFICATION,
        subject=rendered.subject,
        html=rendered.html,
        text=rendered.text,
    )
    if not result.get("success"):
        logger.error("Claim verification email failed: %s", mask_email(email))
        raise EmailDeliveryError("Failed to send verification email")

    return ClaimResult(
        outcome=ClaimOutcome.VERIFICATION_SENT,
        message=VERIFICATION_SENT_MESSAGE,
        next_event=featured,
    )


# =============================================================================
# Invites
# =============================================================================

def _register_invite(
    db: Session, email: str, event_api_id: str | None
) -> tuple[EventInvite, bool]:
    invite = (
        db.query(EventInvite)
        .filter(EventInvite.email == email, EventInvite.event_api_id == event_api_id)
        .first()
    )
    if invite:
        return invite, False
    invite = EventInvite(email=email, event_api_id=event_api_id, send_count=0)
    db.add(invite)
    db.flush()
    return invite, True


async def send_event_invite(
    db: Session,
    email: str,
    event_api_id: str | None = None,
) -> ClaimResult:
    """
    Register a pending invite and send one invite email.

    Uses the given event, else the featured event, else a generic
    community invite.

    Raises:
        ClaimError: invalid email (400)
        ClaimNotFoundError: unknown event_api_id (404)
        EmailDeliveryError: the email could not be sent (502)
    """
    email = _require_email(email)

    if event_api_id:
        event = event_service.get_event_by_api_id(db, event_api_id)
        if not event:
            raise ClaimNotFoundError("Event not found")
    else:
        event = event_service.get_featured_event(db)
    summary = event_service.event_summary(event)

    invite, created = _register_invite(db, email, summary["api_id"] if summary else None)
    message = _invited_message(summary)

    kinds = [EmailKind.EVENT_INVITE, EmailKind.COMMUNITY_INVITE]
    if platform_email_service.within_cooldown(db, email, kinds):
        db.commit()
        logger.info("Invite deduplicated: %s", mask_email(email))
        return ClaimResult(
            outcome=ClaimOutcome.INVITED,
            message=message,
            next_event=summary,
            deduplicated=True,
        )

    if summary:
        rendered = email_templates.event_invite_email(summary)
        kind = EmailKind.EVENT_INVITE
    else:
        rendered = email_templates.community_invite_email()
        kind = EmailKind.COMMUNITY_INVITE

    result = await platform_email_service.send_email_logged(
        db=db,
        to_email=email,
        kind=kind,
        subject=rendered.subject,
        html=rendered.html,
        text=rendered.text,
        idempotency_key=f"invite:{invite.id}:v{invite.send_count + 1}",
    )
    if not result.get("success"):
        logger.error("Invite email failed: %s", mask_email(email))
        if created:
            # Only the failed EmailLog row outlives a failed send
            db.delete(invite)
            db.commit()
        raise EmailDeliveryError("Failed to send invitation email")

    invite.send_count += 1
    invite.last_sent_at = datetime.now(timezone.utc)
    db.commit()

    return ClaimResult(outcome=ClaimOutcome.INVITED, message=message, next_event=summary)


# =============================================================================
# Verification and sign-in links
# =============================================================================

def verify_token(db: Session, token: str) -> tuple[User, TokenPurpose]:
    """
    Complete a claim or sign-in from an emailed link.

    Returns:
        (user, purpose of the link)

    Raises:
        InvalidLinkError: expired, tampered, or unusable token (400)
        ClaimNotFoundError: the profile no longer exists (404)
        ProfileAlreadyClaimedError: the profile was claimed meanwhile (409)
    """
    try:
        payload = decode_link_token(token)
    except jwt.InvalidTokenError:
        raise InvalidLinkError("Invalid or expired link")

    email = normalize_email(payload.get("email"))
    if not email:
        raise InvalidLinkError("Invalid or expired link")

    if payload["purpose"] == TokenPurpose.SIGN_IN.value:
        user = user_service.get_user_by_email(db, email)
        if not user or not user.is_active or not user.is_verified:
            raise InvalidLinkError("Invalid or expired link")
        user_service.record_login(db, user)
        logger.info("Sign-in link used: %s", mask_email(email))
        return user, TokenPurpose.SIGN_IN

    return _complete_claim(db, email, payload.get("person_id")), TokenPurpose.CLAIM


def _complete_claim(db: Session, email: str, raw_person_id: str | None) -> User:
    person = None
    try:
        person_id = UUID(str(raw_person_id)) if raw_person_id else None
    except ValueError:
        person_id = None
    if person_id:
        person = person_service.get_person(db, person_id)
    if person is None:
        # Directory rows are re-created by a full sync; fall back to email.
        person = person_service.get_person_by_email(db, email)
    if person is None:
        raise ClaimNotFoundError("Profile not found")
    if person.email.lower() != email:
        raise InvalidLinkError("Invalid or expired link")
    if person.user is not None:
        raise ProfileAlreadyClaimedError()

    existing = user_service.get_user_by_email(db, email)
    if existing and existing.person_id and existing.person_id != person.id:
        raise ProfileAlreadyClaimedError()

    user = user_service.create_verified_user(db, email, person)
    claim_invitation_service.mark_completed(db, email)
    db.commit()
    db.refresh(user)
    logger.info("Profile claimed: %s", mask_email(email))
    return user


async def request_sign_in(db: Session, email: str) -> str:
    """
    Email a sign-in link when a verified account exists.

    Always returns the same generic message so the endpoint does not
    reveal which emails have accounts.
    """
    email = _require_email(email)
    user = user_service.get_user_by_email(db, email)
    if not user or not user.is_active or not user.is_verified:
        return SIGN_IN_REQUESTED_MESSAGE
    if platform_email_service.within_cooldown(db, email, [EmailKind.SIGN_IN]):
        return SIGN_IN_REQUESTED_MESSAGE

    token = create_sign_in_token(email)
    rendered = email_templates.sign_in_email(email_templates.build_verification_url(token))
    result = await platform_email_service.send_email_logged(
        db=db,
        to_email=email,
        kind=EmailKind.SIGN_IN,
        subject=rendered.subject,
        html=rendered.html,
        text=rendered.text,
    )
    if not result.get("success"):
        logger.warning("Sign-in email failed: %s", mask_email(email))
    return SIGN_IN_REQUESTED_MESSAGE
