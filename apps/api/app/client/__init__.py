"""Async client for the portal API and the stateful helpers built on it."""

from app.client.api import PortalAPIError, PortalClient
from app.client.forms import ClaimProfileForm, FormState, JoinCommunityForm
from app.client.notices import Notice
from app.client.suggestions import EmailSuggester
from app.client.sync_progress import SyncProgress, SyncProgressPoller, SyncProgressStream

__all__ = [
    "ClaimProfileForm",
    "EmailSuggester",
    "FormState",
    "JoinCommunityForm",
    "Notice",
    "PortalAPIError",
    "PortalClient",
    "SyncProgress",
    "SyncProgressPoller",
    "SyncProgressStream",
]
