"""Tests for the claim invitation drip."""
from datetime import datetime, timedelta, timezone

import pytest

from app.db.models import ClaimInvitation, EmailLog
from app.services import claim_invitation_service
from app.services.claim_invitation_service import MAX_REMINDERS, next_send_time, process_invitations
from tests.factories import make_event, make_person, make_user

NOW = datetime(2030, 5, 1, 9, 0, tzinfo=timezone.utc)


@pytest.mark.parametrize(
    ("sent", "days"),
    [(1, 1), (2, 2), (3, 7), (4, 14), (5, 30)],
)
def test_next_send_time_schedule(sent, days):
    assert next_send_time(sent, NOW) == NOW + timedelta(days=days)


def test_next_send_time_bounds():
    assert next_send_time(0, NOW) == NOW
    assert next_send_time(MAX_REMINDERS, NOW) is None


def _due(db, email: str, sent: int) -> ClaimInvitation:
    invitation = ClaimInvitation(
        email=email,
        emails_sent_count=sent,
        last_sent_at=NOW - timedelta(days=40),
        next_send_at=datetime.now(timezone.utc) - timedelta(hours=1),
    )
    db.add(invitation)
    db.commit()
    return invitation


async def test_initial_invites_go_to_unclaimed_people_only(db, sent_emails):
    make_event(db, title="Demo Night")
    make_person(db, "open@example.com")
    claimed = make_person(db, "claimed@example.com")
    make_user(db, "claimed@example.com", person=claimed)

    report = await process_invitations(db, dry_run=False)

    assert report.initial_sent == 1
    assert [m["to_email"] for m in sent_emails.messages] == ["open@example.com"]
    assert sent_emails.subjects[0].endswith("member profile is ready to claim")
    assert "Demo Night" in sent_emails.messages[0]["html"]
    invitation = db.query(ClaimInvitation).one()
    assert invitation.email == "open@example.com"
    assert invitation.emails_sent_count == 1
    assert invitation.next_send_at is not None


async def test_second_run_does_not_reinvite(db, sent_emails):
    make_person(db, "open@example.com")

    await process_invitations(db, dry_run=False)
    report = await process_invitations(db, dry_run=False)

    assert report.initial_sent == 0
    assert report.follow_ups_sent == 0
    assert len(sent_emails.messages) == 1


async def test_due_follow_up_advances_schedule(db, sent_emails):
    make_person(db, "slow@example.com")
    invitation = _due(db, "slow@example.com", sent=1)

    report = await process_invitations(db, dry_run=False)

    assert report.follow_ups_sent == 1
    assert sent_emails.subjects[0].startswith("Reminder:")
    db.refresh(invitation)
    assert invitation.emails_sent_count == 2
    assert invitation.last_sent_at is not None


async def test_final_notice_after_last_reminder(db, sent_emails):
    make_person(db, "quiet@example.com")
    invitation = _due(db, "quiet@example.com", sent=MAX_REMINDERS)

    first = await process_invitations(db, dry_run=False)
    second = await process_invitations(db, dry_run=False)

    assert first.final_notices == 1
    assert second.final_notices == 0
    assert sent_emails.subjects[0].startswith("Final notice")
    db.refresh(invitation)
    assert invitation.final_message_sent is True
    assert invitation.next_send_at is None


async def test_claimed_profiles_complete_the_drip(db, sent_emails):
    person = make_person(db, "joined@example.com")
    make_user(db, "joined@example.com", person=person)
    invitation = _due(db, "joined@example.com", sent=2)

    report = await process_invitations(db, dry_run=False)

    assert report.completed == 1
    assert sent_emails.messages == []
    db.refresh(invitation)
    assert invitation.completed_at is not None
    assert invitation.next_send_at is None


async def test_opted_out_invitations_are_not_sent(db, sent_emails):
    make_person(db, "nope@example.com")
    invitation = _due(db, "nope@example.com", sent=2)
    invitation.opted_out = True
    db.commit()

    report = await process_invitations(db, dry_run=False)

    assert report.follow_ups_sent == 0
    assert sent_emails.messages == []


async def test_failed_send_is_counted_and_retried_later(db, sent_emails):
    make_person(db, "retry@example.com")
    sent_emails.fail = True

    report = await process_invitations(db, dry_run=False)

    assert report.failed == 1
    assert db.query(ClaimInvitation).count() == 0

    sent_emails.fail = False
    retry = await process_invitations(db, dry_run=False)
    assert retry.initial_sent == 1


async def test_dry_run_writes_nothing(db, sent_emails):
    make_person(db, "open@example.com")
    make_person(db, "later@example.com")
    _due(db, "later@example.com", sent=3)
    claimed = make_person(db, "claimed@example.com")
    make_user(db, "claimed@example.com", person=claimed)
    _due(db, "claimed@example.com", sent=1)

    report = await process_invitations(db, dry_run=True)

    assert report.dry_run is True
    assert report.initial_sent == 1
    assert report.follow_ups_sent == 1
    assert report.completed == 1
    assert sent_emails.messages == []
    assert db.query(EmailLog).count() == 0
    assert db.query(ClaimInvitation).count() == 2
    assert all(i.completed_at is None for i in db.query(ClaimInvitation))


async def test_dry_run_defaults_to_setting(db, sent_emails, monkeypatch):
    from app.core.config import settings

    monkeypatch.setattr(settings, "CLAIM_INVITATIONS_DRY_RUN", True)
    make_person(db, "open@example.com")

    report = await process_invitations(db)

    assert report.dry_run is True
    assert sent_emails.messages == []


async def test_concurrent_run_is_skipped(db, sent_emails):
    make_person(db, "open@example.com")

    async with claim_invitation_service._processing_lock:
        report = await process_invitations(db, dry_run=False)

    assert report.skipped is True
    assert sent_emails.messages == []
