"""Profile claim enums."""

from enum import Enum


class ClaimOutcome(str, Enum):
    """
    Resolved outcome of a claim-profile request.

    A given email resolves to exactly one outcome at request time.
    """

    VERIFICATION_SENT = "verification_sent"
    INVITED = "invited"
    ALREADY_CLAIMED = "already_claimed"


class TokenPurpose(str, Enum):
    """Purpose claim embedded in emailed link tokens."""

    CLAIM = "claim"
    SIGN_IN = "sign_in"
