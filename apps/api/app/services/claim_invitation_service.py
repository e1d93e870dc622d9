"""Claim invitation drip campaign.

Invites unclaimed directory members to claim their profile, following up
on a fixed schedule until they claim, opt out, or the final notice goes out.

Schedule (by emails already sent): 1 -> +1 day, 2 -> +2 days, 3 -> +7 days,
4 -> +14 days, then every 30 days. After MAX_REMINDERS sends the final
notice is recorded and no further email is sent.

Triggered hourly from /internal/scheduled/claim-invitations or the CLI.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import asdict, dataclass
from datetime import datetime, timedelta, timezone

from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.security import create_claim_token, mask_email
from app.db.enums import EmailKind
from app.db.models import ClaimInvitation, User
from app.services import email_templates, event_service, person_service, platform_email_service

logger = logging.getLogger(__name__)

MAX_REMINDERS = 6
FOLLOW_UP_DAYS = {1: 1, 2: 2, 3: 7, 4: 14}
MONTHLY_DAYS = 30

_processing_lock = asyncio.Lock()


@dataclass
class DripReport:
    completed: int = 0
    initial_sent: int = 0
    follow_ups_sent: int = 0
    final_notices: int = 0
    failed: int = 0
    dry_run: bool = False
    skipped: bool = False

    def to_dict(self) -> dict:
        return asdict(self)


def next_send_time(emails_sent: int, now: datetime | None = None) -> datetime | None:
    """When the next email is due after `emails_sent` sends; None once the drip is over."""
    now = now or datetime.now(timezone.utc)
    if emails_sent <= 0:
        return now
    if emails_sent >= MAX_REMINDERS:
        return None
    days = FOLLOW_UP_DAYS.get(emails_sent, MONTHLY_DAYS)
    return now + timedelta(days=days)


def _aware(value: datetime | None) -> datetime | None:
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _has_verified_account(db: Session, email: str) -> bool:
    return (
        db.query(User.id)
        .filter(User.email == email, User.is_verified.is_(True))
        .first()
        is not None
    )


def mark_completed(db: Session, email: str) -> bool:
    """Stop the drip for an email (profile claimed). Does not commit."""
    invitation = (
        db.query(ClaimInvitation)
        .filter(ClaimInvitation.email == email.lower(), ClaimInvitation.completed_at.is_(None))
        .first()
    )
    if not invitation:
        return False
    invitation.completed_at = datetime.now(timezone.utc)
    invitation.next_send_at = None
    return True


async def _send_stage(
    db: Session,
    email: str,
    stage: int,
    event: dict | None,
    dry_run: bool,
) -> bool:
    if dry_run:
        logger.info("DRY RUN: would send claim email stage=%s to=%s", stage, mask_email(email))
        return True

    person = person_service.get_person_by_email(db, email)
    if person is None:
        return False
    token = create_claim_token(email, person.id)
    rendered = email_templates.claim_email(
        email_templates.build_verification_url(token),
        stage=stage,
        event=event,
    )
    result = await platform_email_service.send_email_logged(
        db=db,
        to_email=email,
        kind=EmailKind.CLAIM_VERIFICATION if stage == 0 else EmailKind.CLAIM_REMINDER,
        subject=rendered.subject,
        html=rendered.html,
        text=rendered.text,
        idempotency_key=f"claim-drip:{email}:{stage}",
    )
    return bool(result.get("success"))


async def _send_final_notice(db: Session, email: str, dry_run: bool) -> bool:
    if dry_run:
        logger.info("DRY RUN: would send final notice to=%s", mask_email(email))
        return True
    rendered = email_templates.final_notice_email()
    result = await platform_email_service.send_email_logged(
        db=db,
        to_email=email,
        kind=EmailKind.CLAIM_REMINDER,
        subject=rendered.subject,
        html=rendered.html,
        text=rendered.text,
        idempotency_key=f"claim-drip:{email}:final",
    )
    return bool(result.get("success"))


def detect_claimed(db: Session, dry_run: bool = False) -> int:
    """Close out invitations whose email now has a verified account."""
    active = (
        db.query(ClaimInvitation)
        .filter(ClaimInvitation.completed_at.is_(None), ClaimInvitation.opted_out.is_(False))
        .all()
    )
    completed = 0
    now = datetime.now(timezone.utc)
    for invitation in active:
        if _has_verified_account(db, invitation.email):
            completed += 1
            if not dry_run:
                invitation.completed_at = now
                invitation.next_send_at = None
    if not dry_run:
        db.commit()
    return completed


async def invite_new_people(
    db: Session,
    report: DripReport,
    event: dict | None,
    dry_run: bool,
) -> None:
    known = {row[0] for row in db.query(ClaimInvitation.email).all()}
    for email in person_service.list_unclaimed_emails(db):
        if email in known:
            continue
        if dry_run:
            await _send_stage(db, email, 0, event, dry_run)
            report.initial_sent += 1
            continue
        if await _send_stage(db, email, 0, event, dry_run):
            now = datetime.now(timezone.utc)
            db.add(
                ClaimInvitation(
                    email=email,
                    emails_sent_count=1,
                    last_sent_at=now,
                    next_send_at=next_send_time(1, now),
                )
            )
            db.commit()
            report.initial_sent += 1
        else:
            logger.error("Failed to send initial claim email to %s", mask_email(email))
            report.failed += 1


async def send_follow_ups(
    db: Session,
    report: DripReport,
    dry_run: bool,
    now: datetime | None = None,
) -> None:
    now = now or datetime.now(timezone.utc)
    due = (
        db.query(ClaimInvitation)
        .filter(
            ClaimInvitation.completed_at.is_(None),
            ClaimInvitation.opted_out.is_(False),
            ClaimInvitation.final_message_sent.is_(False),
            ClaimInvitation.next_send_at.isnot(None),
            ClaimInvitation.next_send_at <= now,
        )
        .all()
    )
    for invitation in due:
        if _has_verified_account(db, invitation.email):
            # Dry runs already counted these in detect_claimed
            if not dry_run:
                invitation.completed_at = now
                invitation.next_send_at = None
                db.commit()
                report.completed += 1
            continue

        if dry_run:
            if invitation.emails_sent_count >= MAX_REMINDERS:
                await _send_final_notice(db, invitation.email, dry_run)
                report.final_notices += 1
            else:
                await _send_stage(db, invitation.email, invitation.emails_sent_count, None, dry_run)
                report.follow_ups_sent += 1
            continue

        if invitation.emails_sent_count >= MAX_REMINDERS:
            if await _send_final_notice(db, invitation.email, dry_run):
                invitation.final_message_sent = True
                invitation.last_sent_at = now
                invitation.next_send_at = None
                db.commit()
                report.final_notices += 1
            else:
                report.failed += 1
            continue

        if await _send_stage(db, invitation.email, invitation.emails_sent_count, None, dry_run):
            invitation.emails_sent_count += 1
            invitation.last_sent_at = now
            invitation.next_send_at = next_send_time(invitation.emails_sent_count, now)
            if invitation.next_send_at is None:
                # Last reminder sent; final notice is due on the next run
                invitation.next_send_at = now + timedelta(days=MONTHLY_DAYS)
            db.commit()
            report.follow_ups_sent += 1
        else:
            logger.error("Failed to send claim follow-up to %s", mask_email(invitation.email))
            report.failed += 1


async def process_invitations(db: Session, dry_run: bool | None = None) -> DripReport:
    """
    One pass of the drip: mark claimed, invite new people, send due follow-ups.

    Concurrent calls are skipped (report.skipped is True). Dry runs log
    and count what would be sent without writing invitation state.
    """
    dry_run = settings.CLAIM_INVITATIONS_DRY_RUN if dry_run is None else dry_run
    report = DripReport(dry_run=dry_run)
    if _processing_lock.locked():
        logger.info("Claim invitation processing already running, skipping")
        report.skipped = True
        return report

    async with _processing_lock:
        logger.info("Claim invitation processing started dry_run=%s", dry_run)
        report.completed += detect_claimed(db, dry_run)
        event = event_service.event_summary(event_service.get_featured_event(db))
        await invite_new_people(db, report, event, dry_run)
        await send_follow_ups(db, report, dry_run)
        logger.info("Claim invitation processing finished: %s", report.to_dict())
    return report
