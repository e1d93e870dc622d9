"""User service - member accounts and session management."""

from datetime import datetime, timezone
from uuid import UUID

from sqlalchemy.orm import Session

from app.db.models import Person, User


def get_user_by_id(db: Session, user_id: UUID) -> User | None:
    """Get user by ID."""
    return db.query(User).filter(User.id == user_id).first()


def get_user_by_email(db: Session, email: str) -> User | None:
    """Get user by email (case-insensitive)."""
    return db.query(User).filter(User.email == email.strip().lower()).first()


def revoke_all_sessions(db: Session, user_id: UUID) -> bool:
    """
    Revoke all sessions for a user by bumping token_version.

    Existing tokens with old version will fail validation.

    Returns:
        True if user found and sessions revoked, False if user not found
    """
    user = get_user_by_id(db, user_id)
    if not user:
        return False

    user.token_version += 1
    db.commit()
    return True


def set_admin(db: Session, email: str, is_admin: bool = True) -> User | None:
    """Grant or revoke the admin flag. Returns None when no account has this email."""
    user = get_user_by_email(db, email)
    if not user:
        return None
    user.is_admin = is_admin
    # Admin flag is embedded in the session token
    user.token_version += 1
    db.commit()
    return user


def create_verified_user(db: Session, email: str, person: Person | None = None) -> User:
    """
    Create (or complete) a verified account for an email.

    An existing unverified account with the same email is reused. Does not commit.
    """
    email = email.strip().lower()
    user = get_user_by_email(db, email)
    if not user:
        display_name = person.display_name if person else email.split("@", 1)[0]
        user = User(email=email, display_name=display_name)
        db.add(user)

    if person is not None:
        user.person = person
        if not user.avatar_url and person.avatar_url:
            user.avatar_url = person.avatar_url
        if not user.bio and person.bio:
            user.bio = person.bio

    user.is_verified = True
    user.last_login_at = datetime.now(timezone.utc)
    return user


def record_login(db: Session, user: User) -> None:
    user.last_login_at = datetime.now(timezone.utc)
    db.commit()


def relink_users_to_people(db: Session) -> int:
    """
    Re-attach accounts to directory records by email.

    Run after the people table is rebuilt. Does not commit.

    Returns:
        Number of accounts linked
    """
    people_by_email = {p.email: p for p in db.query(Person).all()}
    linked = 0
    for user in db.query(User).filter(User.person_id.is_(None)).all():
        person = people_by_email.get(user.email)
        if person is not None and person.user is None:
            user.person = person
            linked += 1
    db.flush()
    return linked
