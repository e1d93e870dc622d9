"""Enum definitions for application constants."""

from app.db.enums.claims import ClaimOutcome, TokenPurpose
from app.db.enums.email import EmailKind, EmailStatus
from app.db.enums.sync import SyncJobStatus, SyncMessageType

DEFAULT_EMAIL_STATUS: EmailStatus = EmailStatus.PENDING

__all__ = [
    "ClaimOutcome",
    "DEFAULT_EMAIL_STATUS",
    "EmailKind",
    "EmailStatus",
    "SyncJobStatus",
    "SyncMessageType",
    "TokenPurpose",
]
