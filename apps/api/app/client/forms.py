"""
Claim-profile and join-community form state machines.

Both forms move idle -> submitting -> submitted | error, refuse a second
submit while one is in flight, and validate the email before any request.
"""

from __future__ import annotations

import enum
import logging
from typing import Callable
from uuid import UUID

from app.client.api import PortalAPIError
from app.client.notices import (
    ALREADY_CLAIMED,
    ALREADY_CLAIMED_DESCRIPTION,
    ERROR,
    INVITATION_SENT,
    VERIFICATION_SENT,
    Notice,
)
from app.utils.normalization import is_valid_email, normalize_email

logger = logging.getLogger(__name__)

INVALID_EMAIL_MESSAGE = "Please enter a valid email address."
JOIN_THANK_YOU = "Thanks for joining! Check your inbox for your invitation."


class FormState(str, enum.Enum):
    IDLE = "idle"
    SUBMITTING = "submitting"
    SUBMITTED = "submitted"
    ERROR = "error"


class _BaseForm:
    def __init__(self, api, *, on_notice: Callable[[Notice], None] | None = None) -> None:
        self.api = api
        self.on_notice = on_notice
        self.state = FormState.IDLE
        self.error: str | None = None
        self.notices: list[Notice] = []

    def _notify(self, title: str, description: str, destructive: bool = False) -> None:
        notice = Notice(title, description, destructive)
        self.notices.append(notice)
        if self.on_notice:
            self.on_notice(notice)

    def _fail(self, message: str, title: str = ERROR) -> FormState:
        self.error = message
        self.state = FormState.ERROR
        self._notify(title, message, destructive=True)
        return self.state

    def _validate(self, email: str) -> str | None:
        normalized = normalize_email(email)
        if not is_valid_email(normalized):
            self.error = INVALID_EMAIL_MESSAGE
            self.state = FormState.ERROR
            return None
        return normalized

    def reset(self) -> None:
        self.state = FormState.IDLE
        self.error = None


class ClaimProfileForm(_BaseForm):
    """Claim dialog: pick or type an email, then request the claim."""

    def __init__(self, api, *, on_notice: Callable[[Notice], None] | None = None) -> None:
        super().__init__(api, on_notice=on_notice)
        self.email = ""
        self.person_id: UUID | str | None = None
        self.result: dict | None = None

    def select_suggestion(self, suggestion: dict) -> bool:
        """Fill the form from a suggestion; claimed profiles are refused."""
        if suggestion.get("isClaimed"):
            self._notify(ALREADY_CLAIMED, ALREADY_CLAIMED_DESCRIPTION, destructive=True)
            return False
        self.email = suggestion["email"]
        self.person_id = suggestion.get("id")
        return True

    def set_email(self, email: str) -> None:
        """Typing clears any previously selected person."""
        self.email = email
        self.person_id = None

    async def submit(self) -> FormState:
        if self.state == FormState.SUBMITTING:
            return self.state
        self.error = None
        email = self._validate(self.email)
        if email is None:
            return self.state

        self.state = FormState.SUBMITTING
        try:
            result = await self.api.claim_profile(email, self.person_id)
        except PortalAPIError as exc:
            return self._fail(exc.message)

        self.result = result
        kind = result.get("kind")
        if kind == "already_claimed":
            return self._fail(result.get("error") or ALREADY_CLAIMED_DESCRIPTION, title=ALREADY_CLAIMED)
        if kind == "invited":
            self._notify(INVITATION_SENT, _invite_description(result))
        else:
            self._notify(VERIFICATION_SENT, result.get("message", ""))
        self.state = FormState.SUBMITTED
        return self.state


def _invite_description(result: dict) -> str:
    message = result.get("message", "")
    event = result.get("nextEvent")
    if event and event.get("title"):
        return f"{message} Next event: {event['title']}."
    return message


class JoinCommunityForm(_BaseForm):
    """
    Join card: one email field.

    Unclaimed directory matches also get a claim email; every submission
    then sends an invite to the featured event.
    """

    def __init__(self, api, *, on_notice: Callable[[Notice], None] | None = None) -> None:
        super().__init__(api, on_notice=on_notice)
        self.featured_event: dict | None = None
        self._featured_loaded = False
        self.message: str | None = None

    async def load(self) -> dict | None:
        try:
            self.featured_event = await self.api.featured_event()
        except PortalAPIError as exc:
            logger.warning("Featured event unavailable: %s", exc.message)
            self.featured_event = None
        self._featured_loaded = True
        return self.featured_event

    async def submit(self, email: str) -> FormState:
        if self.state == FormState.SUBMITTING:
            return self.state
        self.error = None
        normalized = self._validate(email)
        if normalized is None:
            return self.state

        self.state = FormState.SUBMITTING
        try:
            check = await self.api.check_email(normalized)
            if check.get("exists") and not check.get("isClaimed"):
                await self.api.claim_profile(normalized, check.get("personId"))
            if not self._featured_loaded:
                await self.load()
            event_api_id = self.featured_event.get("apiId") if self.featured_event else None
            await self.api.send_invite(normalized, event_api_id)
        except PortalAPIError as exc:
            return self._fail(exc.message)

        self.message = JOIN_THANK_YOU
        self.state = FormState.SUBMITTED
        return self.state
