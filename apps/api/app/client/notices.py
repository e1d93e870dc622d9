"""User-facing notices raised by the client helpers."""

from dataclasses import dataclass

VERIFICATION_SENT = "Verification Email Sent"
INVITATION_SENT = "Invitation Sent"
ALREADY_CLAIMED = "Profile Already Claimed"
ERROR = "Error"

ALREADY_CLAIMED_DESCRIPTION = (
    "This profile has already been claimed. Request a sign-in link instead."
)


@dataclass(frozen=True)
class Notice:
    """A toast-style message: title plus description, destructive for failures."""

    title: str
    description: str
    destructive: bool = False
