"""SQLAlchemy ORM models for the imported member directory."""

from __future__ import annotations

from typing import TYPE_CHECKING

import uuid
from datetime import datetime

from sqlalchemy import JSON, Index, String, Text, Uuid, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.db.base import Base

if TYPE_CHECKING:
    from app.db.models import User


class Event(Base):
    """
    An event imported from the external events platform (Luma).

    Rows are owned by the directory sync; never edited by members.
    """

    __tablename__ = "events"
    __table_args__ = (Index("ix_events_start_time", "start_time"),)

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    api_id: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    title: Mapped[str] = mapped_column(Text, nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    start_time: Mapped[datetime] = mapped_column(nullable=False)
    end_time: Mapped[datetime] = mapped_column(nullable=False)
    cover_url: Mapped[str | None] = mapped_column(String(500), nullable=True)
    url: Mapped[str | None] = mapped_column(String(500), nullable=True)
    timezone: Mapped[str | None] = mapped_column(String(50), nullable=True)
    location: Mapped[dict | None] = mapped_column(
        JSON,
        nullable=True,
        comment="{city, region, country, latitude, longitude, full_address}",
    )
    visibility: Mapped[str | None] = mapped_column(String(50), nullable=True)
    meeting_url: Mapped[str | None] = mapped_column(String(500), nullable=True)
    calendar_api_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    created_at: Mapped[datetime | None] = mapped_column(nullable=True)
    synced_at: Mapped[datetime] = mapped_column(server_default=func.now(), nullable=False)


class Person(Base):
    """
    A directory record imported from the events platform.

    Not necessarily tied to a login-capable account: the person is
    "claimed" once a verified User links to it.
    """

    __tablename__ = "people"
    __table_args__ = (Index("ix_people_email", "email"),)

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    api_id: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    email: Mapped[str] = mapped_column(String(255), nullable=False)
    user_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    full_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    avatar_url: Mapped[str | None] = mapped_column(String(500), nullable=True)
    role: Mapped[str | None] = mapped_column(String(50), nullable=True)
    phone_number: Mapped[str | None] = mapped_column(String(50), nullable=True)
    bio: Mapped[str | None] = mapped_column(Text, nullable=True)
    organization_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    job_title: Mapped[str | None] = mapped_column(String(255), nullable=True)
    created_at: Mapped[datetime | None] = mapped_column(nullable=True)

    # Relationships
    user: Mapped["User | None"] = relationship(back_populates="person", uselist=False)

    @property
    def is_claimed(self) -> bool:
        return self.user is not None

    @property
    def display_name(self) -> str:
        return self.full_name or self.user_name or self.email.split("@", 1)[0]
