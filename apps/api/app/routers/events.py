"""Events router - imported events, the featured event, and invites."""

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.orm import Session

from app.core.deps import get_db, require_csrf_header
from app.core.rate_limit import CLAIM_LIMIT, limiter
from app.routers.auth import claim_error_response, claim_response
from app.schemas.auth import ClaimResponse
from app.schemas.events import EventListResponse, EventRead, FeaturedEventResponse, SendInviteRequest
from app.services import claim_service, event_service
from app.services.claim_service import ClaimError
from app.utils.pagination import PaginationParams, get_pagination, page_count

router = APIRouter(prefix="/api/events", tags=["events"])


@router.get("", response_model=EventListResponse)
def list_events(
    upcoming: bool | None = Query(None, description="true = not ended yet, false = past"),
    pagination: PaginationParams = Depends(get_pagination),
    db: Session = Depends(get_db),
):
    events, total = event_service.list_events(db, pagination, upcoming=upcoming)
    return EventListResponse(
        events=[EventRead.model_validate(e) for e in events],
        total=total,
        page=pagination.page,
        per_page=pagination.per_page,
        pages=page_count(total, pagination.per_page),
    )


@router.get("/featured", response_model=FeaturedEventResponse)
def featured_event(db: Session = Depends(get_db)):
    """Next upcoming public event (null when none is scheduled)."""
    event = event_service.get_featured_event(db)
    return FeaturedEventResponse(event=EventRead.model_validate(event) if event else None)


@router.post(
    "/send-invite",
    response_model=ClaimResponse,
    response_model_exclude_none=True,
    dependencies=[Depends(require_csrf_header)],
)
@limiter.limit(CLAIM_LIMIT)
async def send_invite(
    request: Request,
    body: SendInviteRequest,
    db: Session = Depends(get_db),
):
    """
    Invite an email to an event (the featured event when none is given).

    Always answers with the invited outcome on success.
    """
    try:
        result = await claim_service.send_event_invite(db, body.email, body.event_api_id)
    except ClaimError as exc:
        return claim_error_response(exc)
    return claim_response(result)
