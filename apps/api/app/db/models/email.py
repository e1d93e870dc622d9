"""SQLAlchemy ORM models for outbound email, invites and claim reminders."""

import uuid
from datetime import datetime

from sqlalchemy import Boolean, Index, Integer, String, Text, UniqueConstraint, Uuid, false, func
from sqlalchemy.orm import Mapped, mapped_column

from app.db.base import Base
from app.db.enums import DEFAULT_EMAIL_STATUS


class EmailLog(Base):
    """
    Log of all outbound emails for audit, idempotency and resend cooldowns.
    """

    __tablename__ = "email_logs"
    __table_args__ = (
        Index("idx_email_logs_recipient", "recipient_email", "kind", "created_at"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    recipient_email: Mapped[str] = mapped_column(String(255), nullable=False)
    kind: Mapped[str] = mapped_column(String(40), nullable=False)
    subject: Mapped[str] = mapped_column(String(200), nullable=False)
    body: Mapped[str] = mapped_column(Text, nullable=False)
    external_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    idempotency_key: Mapped[str | None] = mapped_column(
        String(255), unique=True, nullable=True
    )
    status: Mapped[str] = mapped_column(
        String(20),
        default=DEFAULT_EMAIL_STATUS.value,
        server_default=DEFAULT_EMAIL_STATUS.value,
        nullable=False,
    )
    error: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(server_default=func.now(), nullable=False)
    sent_at: Mapped[datetime | None] = mapped_column(nullable=True)


class EventInvite(Base):
    """
    Pending invite for an address with no directory match.

    One row per (email, event); repeated sign-ups bump send_count.
    """

    __tablename__ = "event_invites"
    __table_args__ = (
        UniqueConstraint("email", "event_api_id", name="uq_event_invites_email_event"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    email: Mapped[str] = mapped_column(String(255), nullable=False)
    event_api_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    send_count: Mapped[int] = mapped_column(Integer, default=0, server_default="0", nullable=False)
    last_sent_at: Mapped[datetime | None] = mapped_column(nullable=True)
    created_at: Mapped[datetime] = mapped_column(server_default=func.now(), nullable=False)


class ClaimInvitation(Base):
    """
    Drip-campaign state for inviting an unclaimed person to claim their profile.

    Keyed by email rather than person id so the schedule survives a
    directory reset (people rows are re-created on every full sync).
    """

    __tablename__ = "claim_invitations"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    emails_sent_count: Mapped[int] = mapped_column(
        Integer, default=0, server_default="0", nullable=False
    )
    last_sent_at: Mapped[datetime | None] = mapped_column(nullable=True)
    next_send_at: Mapped[datetime | None] = mapped_column(nullable=True)
    opted_out: Mapped[bool] = mapped_column(
        Boolean, default=False, server_default=false(), nullable=False
    )
    final_message_sent: Mapped[bool] = mapped_column(
        Boolean, default=False, server_default=false(), nullable=False
    )
    completed_at: Mapped[datetime | None] = mapped_column(nullable=True)
    created_at: Mapped[datetime] = mapped_column(server_default=func.now(), nullable=False)
