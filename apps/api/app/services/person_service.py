"""Person service - directory lookups and email suggestions."""

from uuid import UUID

from sqlalchemy import case, func, or_
from sqlalchemy.orm import Session, joinedload

from app.db.models import Person, User
from app.utils.normalization import normalize_email, normalize_search_text
from app.utils.pagination import PaginationParams, paginate_query

MIN_SEARCH_LENGTH = 2
DEFAULT_SUGGESTION_LIMIT = 10
MAX_SUGGESTION_LIMIT = 25


def get_person(db: Session, person_id: UUID) -> Person | None:
    return (
        db.query(Person)
        .options(joinedload(Person.user))
        .filter(Person.id == person_id)
        .first()
    )


def get_person_by_email(db: Session, email: str) -> Person | None:
    """Get a directory record by email (case-insensitive)."""
    normalized = normalize_email(email)
    if not normalized:
        return None
    return (
        db.query(Person)
        .options(joinedload(Person.user))
        .filter(func.lower(Person.email) == normalized)
        .order_by(Person.created_at.asc())
        .first()
    )


def is_claimed(db: Session, person: Person) -> bool:
    """
    A person is claimed when an account links to it, or an account
    already exists for the same email.
    """
    if person.user is not None:
        return True
    return db.query(User.id).filter(User.email == person.email.lower()).first() is not None


def claimed_person_ids(db: Session, people: list[Person]) -> set[UUID]:
    """Batch form of is_claimed for a page of results (one account query)."""
    unlinked = {p.email.lower() for p in people if p.user is None}
    account_emails: set[str] = set()
    if unlinked:
        account_emails = {
            email for (email,) in db.query(User.email).filter(User.email.in_(unlinked))
        }
    return {p.id for p in people if p.user is not None or p.email.lower() in account_emails}


def check_email(db: Session, email: str) -> dict:
    """
    Existence check used to branch between claim and invite.

    Returns:
        {"exists": bool, "person_id": UUID | None, "is_claimed": bool | None}
    """
    person = get_person_by_email(db, email)
    if not person:
        return {"exists": False, "person_id": None, "is_claimed": None}
    return {"exists": True, "person_id": person.id, "is_claimed": is_claimed(db, person)}


def search_emails(db: Session, query: str, limit: int = DEFAULT_SUGGESTION_LIMIT) -> list[Person]:
    """
    Suggest directory records for a partially typed email or name.

    Queries shorter than two characters return nothing without a database
    round trip. Ranking: exact email, email prefix, name prefix, then any
    substring match; ties broken by email.
    """
    term = normalize_search_text(query)
    if not term or len(term) < MIN_SEARCH_LENGTH:
        return []
    limit = max(1, min(limit, MAX_SUGGESTION_LIMIT))

    email_col = func.lower(Person.email)
    user_name_col = func.lower(func.coalesce(Person.user_name, ""))
    full_name_col = func.lower(func.coalesce(Person.full_name, ""))

    rank = case(
        (email_col == term, 0),
        (email_col.startswith(term, autoescape=True), 1),
        (
            or_(
                user_name_col.startswith(term, autoescape=True),
                full_name_col.startswith(term, autoescape=True),
            ),
            2,
        ),
        else_=3,
    )

    return (
        db.query(Person)
        .options(joinedload(Person.user))
        .filter(
            or_(
                email_col.contains(term, autoescape=True),
                user_name_col.contains(term, autoescape=True),
                full_name_col.contains(term, autoescape=True),
            )
        )
        .order_by(rank, email_col)
        .limit(limit)
        .all()
    )


def list_people(
    db: Session,
    pagination: PaginationParams,
    search: str | None = None,
) -> tuple[list[Person], int]:
    query = db.query(Person).options(joinedload(Person.user))
    term = normalize_search_text(search)
    if term:
        query = query.filter(
            or_(
                func.lower(Person.email).contains(term, autoescape=True),
                func.lower(func.coalesce(Person.full_name, "")).contains(term, autoescape=True),
                func.lower(func.coalesce(Person.user_name, "")).contains(term, autoescape=True),
            )
        )
    query = query.order_by(func.lower(func.coalesce(Person.full_name, Person.email)), Person.id)
    return paginate_query(query, pagination)


def count_people(db: Session) -> int:
    return db.query(func.count(Person.id)).scalar() or 0


def count_claimed_people(db: Session) -> int:
    return db.query(func.count(User.id)).filter(User.person_id.isnot(None)).scalar() or 0


def list_unclaimed_emails(db: Session) -> list[str]:
    """Distinct emails of directory records with no account."""
    rows = (
        db.query(func.lower(Person.email))
        .outerjoin(User, User.email == func.lower(Person.email))
        .filter(User.id.is_(None))
        .distinct()
        .all()
    )
    return [row[0] for row in rows]
