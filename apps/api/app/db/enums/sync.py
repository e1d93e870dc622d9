"""Directory sync enums."""

from enum import Enum


class SyncJobStatus(str, Enum):
    """
    Lifecycle of a reset & sync job.

    running → success | error. Terminal states are final; a new run
    starts a new job from scratch.
    """

    RUNNING = "running"
    SUCCESS = "success"
    ERROR = "error"

    @property
    def is_terminal(self) -> bool:
        return self in (SyncJobStatus.SUCCESS, SyncJobStatus.ERROR)


class SyncMessageType(str, Enum):
    """Message types pushed on the sync progress stream."""

    STATUS = "status"
    ERROR = "error"
