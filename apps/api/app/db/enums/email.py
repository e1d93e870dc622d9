"""Email-related enums."""

from enum import Enum


class EmailStatus(str, Enum):
    """Status of outbound emails."""

    PENDING = "pending"
    SENT = "sent"
    FAILED = "failed"


class EmailKind(str, Enum):
    """Purpose of an outbound email (used for cooldowns and reporting)."""

    CLAIM_VERIFICATION = "claim_verification"
    EVENT_INVITE = "event_invite"
    COMMUNITY_INVITE = "community_invite"
    SIGN_IN = "sign_in"
    CLAIM_REMINDER = "claim_reminder"
