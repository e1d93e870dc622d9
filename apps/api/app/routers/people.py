"""People router - directory listing, email suggestions, and existence checks."""

from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from app.core.deps import get_db
from app.schemas.people import (
    CheckEmailResponse,
    EmailSuggestion,
    PersonListResponse,
    PersonRead,
    SearchEmailsResponse,
)
from app.services import person_service
from app.utils.pagination import PaginationParams, get_pagination, page_count

router = APIRouter(prefix="/api/people", tags=["people"])


@router.get("/search-emails", response_model=SearchEmailsResponse)
def search_emails(
    query: str = Query("", max_length=255),
    seq: int | None = Query(None, ge=0, description="Client request sequence, echoed back"),
    limit: int = Query(person_service.DEFAULT_SUGGESTION_LIMIT, ge=1, le=person_service.MAX_SUGGESTION_LIMIT),
    db: Session = Depends(get_db),
):
    """
    Ranked suggestions for a partially typed email or name.

    Queries under two characters return an empty list.
    """
    people = person_service.search_emails(db, query, limit=limit)
    claimed = person_service.claimed_person_ids(db, people)
    results = [
        EmailSuggestion(
            id=p.id,
            api_id=p.api_id,
            email=p.email,
            user_name=p.user_name,
            full_name=p.full_name,
            avatar_url=p.avatar_url,
            is_claimed=p.id in claimed,
        )
        for p in people
    ]
    return SearchEmailsResponse(results=results, seq=seq)


@router.get("/check-email", response_model=CheckEmailResponse, response_model_exclude_none=True)
def check_email(
    email: str = Query(..., min_length=1, max_length=255),
    db: Session = Depends(get_db),
):
    """Whether a directory record exists for this email, and if it is claimed."""
    return CheckEmailResponse(**person_service.check_email(db, email))


@router.get("", response_model=PersonListResponse)
def list_people(
    search: str | None = Query(None, max_length=255),
    pagination: PaginationParams = Depends(get_pagination),
    db: Session = Depends(get_db),
):
    people, total = person_service.list_people(db, pagination, search=search)
    return PersonListResponse(
        people=[PersonRead.model_validate(p) for p in people],
        total=total,
        page=pagination.page,
        per_page=pagination.per_page,
        pages=page_count(total, pagination.per_page),
    )


@router.get("/{person_id}", response_model=PersonRead)
def get_person(person_id: UUID, db: Session = Depends(get_db)):
    person = person_service.get_person(db, person_id)
    if not person:
        raise HTTPException(status_code=404, detail="Person not found")
    return person
