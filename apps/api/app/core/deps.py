"""FastAPI dependencies for authentication, authorization, and database access."""

from typing import Callable, Generator

from fastapi import Depends, HTTPException, Request
from sqlalchemy.orm import Session

from app.core.security import decode_session_token
from app.db.session import SessionLocal


# Cookie and header names
COOKIE_NAME = "portal_session"
CSRF_HEADER = "X-Requested-With"
CSRF_HEADER_VALUE = "XMLHttpRequest"


def get_db() -> Generator[Session, None, None]:
    """
    Database session dependency.

    Yields a database session and ensures it's closed after the request.
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_session_factory() -> Callable[[], Session]:
    """
    Session factory for work that outlives the request (sync jobs, streams).

    Overridable in tests.
    """
    return SessionLocal


def get_optional_user(request: Request, db: Session = Depends(get_db)):
    """Return the signed-in user, or None for anonymous requests."""
    from app.db.models import User

    token = request.cookies.get(COOKIE_NAME)
    if not token:
        return None

    try:
        payload = decode_session_token(token)
    except Exception:
        return None

    user_id = _parse_uuid(payload.get("sub"))
    user = db.get(User, user_id) if user_id else None
    if not user or not user.is_active:
        return None
    if user.token_version != payload.get("token_version"):
        return None
    return user


def get_current_user(
    request: Request,
    db: Session = Depends(get_db)
):
    """
    Get authenticated user from session cookie.

    Validates:
    - Session cookie exists
    - JWT is valid and not expired
    - User exists and is active
    - Token version matches (for revocation support)

    Raises:
        HTTPException 401: Authentication failed
    """
    # Import here to avoid circular imports
    from app.db.models import User

    token = request.cookies.get(COOKIE_NAME)
    if not token:
        raise HTTPException(status_code=401, detail="Not authenticated")

    try:
        payload = decode_session_token(token)
    except Exception:
        raise HTTPException(status_code=401, detail="Invalid session")

    user_id = _parse_uuid(payload.get("sub"))
    user = db.get(User, user_id) if user_id else None
    if not user:
        raise HTTPException(status_code=401, detail="User not found")

    if not user.is_active:
        raise HTTPException(status_code=401, detail="Account disabled")

    # Token version check (revocation support)
    if user.token_version != payload.get("token_version"):
        raise HTTPException(status_code=401, detail="Session revoked")

    return user


def require_admin(user=Depends(get_current_user)):
    """
    Admin-only guard.

    Raises:
        HTTPException 403: Signed in but not an admin
    """
    if not user.is_admin:
        raise HTTPException(status_code=403, detail="Admin access required")
    return user


def require_csrf_header(request: Request) -> None:
    """
    Verify CSRF header on mutations.

    Apply to authenticated state-changing endpoints (POST, PATCH, DELETE).

    Raises:
        HTTPException 403: Missing or invalid CSRF header
    """
    if request.headers.get(CSRF_HEADER) != CSRF_HEADER_VALUE:
        raise HTTPException(
            status_code=403,
            detail=f"Missing CSRF header. Include '{CSRF_HEADER}: {CSRF_HEADER_VALUE}'"
        )


def _parse_uuid(value):
    from uuid import UUID

    try:
        return UUID(str(value))
    except (TypeError, ValueError):
        return None


def get_luma_client_factory():
    """Factory for Luma API clients used by sync jobs. Overridable in tests."""
    from app.services.luma_service import LumaClient

    return LumaClient
