"""Security utilities for JWT session tokens and emailed link tokens."""

import hashlib
from datetime import datetime, timedelta, timezone
from uuid import UUID

import jwt

from app.core.config import settings
from app.db.enums import TokenPurpose


# =============================================================================
# Session Token (JWT in cookie)
# =============================================================================

def create_session_token(
    user_id: UUID,
    is_admin: bool,
    token_version: int,
) -> str:
    """
    Create signed session JWT.

    Always signs with current secret (JWT_SECRET).
    Token contains user identity, admin flag, and revocation version.
    """
    payload = {
        "sub": str(user_id),
        "adm": is_admin,
        "token_version": token_version,
        "iat": datetime.now(timezone.utc),
        "exp": datetime.now(timezone.utc) + timedelta(hours=settings.JWT_EXPIRES_HOURS),
    }
    return jwt.encode(payload, settings.JWT_SECRET, algorithm="HS256")


def _decode_with_rotation(token: str) -> dict:
    last_error = None
    for secret in settings.jwt_secrets:
        try:
            return jwt.decode(token, secret, algorithms=["HS256"])
        except jwt.InvalidTokenError as e:
            last_error = e
            continue
    raise last_error  # type: ignore


def decode_session_token(token: str) -> dict:
    """
    Decode and verify session JWT.

    Tries current secret first, then previous (for rotation support).
    Link tokens are rejected here so an emailed token cannot be used
    as a session cookie.

    Raises:
        jwt.InvalidTokenError: If token invalid with all secrets
    """
    payload = _decode_with_rotation(token)
    if "purpose" in payload:
        raise jwt.InvalidTokenError("Not a session token")
    return payload


# =============================================================================
# Emailed link tokens (claim profile / sign in)
# =============================================================================

def create_link_token(
    purpose: TokenPurpose,
    email: str,
    expires_in: timedelta,
    person_id: UUID | None = None,
) -> str:
    """Create a signed, purpose-scoped token for an emailed link."""
    now = datetime.now(timezone.utc)
    payload = {
        "purpose": purpose.value,
        "email": email,
        "iat": now,
        "exp": now + expires_in,
    }
    if person_id:
        payload["person_id"] = str(person_id)
    return jwt.encode(payload, settings.JWT_SECRET, algorithm="HS256")


def create_claim_token(email: str, person_id: UUID) -> str:
    return create_link_token(
        TokenPurpose.CLAIM,
        email,
        timedelta(hours=settings.CLAIM_TOKEN_EXPIRES_HOURS),
        person_id=person_id,
    )


def create_sign_in_token(email: str) -> str:
    return create_link_token(
        TokenPurpose.SIGN_IN,
        email,
        timedelta(minutes=settings.SIGN_IN_TOKEN_EXPIRES_MINUTES),
    )


def decode_link_token(token: str) -> dict:
    """
    Decode an emailed link token.

    Raises:
        jwt.InvalidTokenError: Expired, tampered, or not a link token
    """
    payload = _decode_with_rotation(token)
    if payload.get("purpose") not in TokenPurpose._value2member_map_:
        raise jwt.InvalidTokenError("Not a link token")
    return payload


# =============================================================================
# Log helpers
# =============================================================================

def mask_email(email: str | None) -> str:
    """Stable, non-reversible email fingerprint for logs."""
    if not email:
        return ""
    digest = hashlib.sha256(email.strip().lower().encode()).hexdigest()[:12]
    return f"email:{digest}"
