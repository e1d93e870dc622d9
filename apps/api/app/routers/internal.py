"""
Internal endpoints for scheduled/cron operations.

Protected by X-Internal-Secret header.
Call from external cron (hourly).
"""
import logging
from functools import partial

from fastapi import APIRouter, Depends, Header, HTTPException
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.deps import get_db, get_luma_client_factory, get_session_factory
from app.db.enums import SyncJobStatus
from app.schemas.sync import ClaimInvitationsResponse, DirectorySyncResponse
from app.services import claim_invitation_service, directory_sync_service
from app.services.luma_service import LumaAPIError
from app.services.sync_job_service import SyncJobRegistry, get_registry

router = APIRouter(prefix="/internal/scheduled", tags=["internal"])
logger = logging.getLogger(__name__)


def verify_internal_secret(x_internal_secret: str = Header(...)):
    """Verify the internal secret header."""
    expected = settings.INTERNAL_SECRET
    if not expected:
        raise HTTPException(status_code=501, detail="INTERNAL_SECRET not configured")
    if x_internal_secret != expected:
        raise HTTPException(status_code=403, detail="Invalid internal secret")


@router.post(
    "/directory-sync",
    response_model=DirectorySyncResponse,
    dependencies=[Depends(verify_internal_secret)],
)
async def directory_sync(
    full: bool = False,
    registry: SyncJobRegistry = Depends(get_registry),
    session_factory=Depends(get_session_factory),
    luma_client_factory=Depends(get_luma_client_factory),
):
    """
    Pull new events and people from Luma.

    Incremental (created since the last sync) unless `full=true`. A full
    reset runs as a registry job like the admin reset & sync; both modes
    are refused (409) while such a job is running.
    """
    running = registry.running()
    if running is not None:
        logger.info("Scheduled directory sync skipped, job %s is running", running.id)
        raise HTTPException(status_code=409, detail="A reset & sync is already running")

    if full:
        runner = partial(
            directory_sync_service.run_reset_and_sync,
            session_factory=session_factory,
            luma_client_factory=luma_client_factory,
        )
        job, _ = registry.start(runner)
        await job.task
        if job.status != SyncJobStatus.SUCCESS:
            logger.error("Scheduled full sync failed: %s", job.error)
            raise HTTPException(status_code=502, detail=job.error)
        return {"incremental": False, "since": None, "updated": 0, **job.result}

    try:
        return await directory_sync_service.sync_directory(
            session_factory=session_factory,
            luma_client_factory=luma_client_factory,
            incremental=True,
        )
    except LumaAPIError as exc:
        logger.error("Scheduled directory sync failed: %s", exc)
        raise HTTPException(status_code=502, detail=str(exc))


@router.post(
    "/claim-invitations",
    response_model=ClaimInvitationsResponse,
    dependencies=[Depends(verify_internal_secret)],
)
async def claim_invitations(
    dry_run: bool | None = None,
    db: Session = Depends(get_db),
):
    """
    Hourly drip: mark claimed profiles, invite new people, send due reminders.
    """
    report = await claim_invitation_service.process_invitations(db, dry_run=dry_run)
    return report.to_dict()
