from enum import StrEnum
from typing import Optional, Tuple


class EventType(StrEnum):
    INTERACTION_START = "interaction.start"
    STATUS_UPDATE = "interaction.status_update"
    CONTENT_START = "content.start"
    CONTENT_DELTA = "content.delta"
    CONTENT_STOP = "content.stop"
    INTERACTION_COMPLETE = "interaction.complete"
    ERROR = "error"


class InteractionStatus(StrEnum):
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    REQUIRES_ACTION = "requires_action"
    FAILED = "failed"
    CANCELLED = "cancelled"
    UNRECOGNIZED = "unrecognized"

    @property
    def is_success(self) -> bool:
        return self in (InteractionStatus.COMPLETED, InteractionStatus.REQUIRES_ACTION)

    @property
    def is_failure(self) -> bool:
        return self in (InteractionStatus.FAILED, InteractionStatus.CANCELLED)

    @property
    def is_terminal(self) -> bool:
        return self.is_success or self.is_failure


class AggregatorState(StrEnum):
    IDLE = "idle"
    STREAMING = "streaming"
    COMPLETED = "completed"
    FAILED = "failed"


def parse_status(raw: Optional[str]) -> Tuple[InteractionStatus, Optional[str]]:
    """Map a wire status string to (status, raw). Unknown strings never raise."""
    if raw is None:
        return InteractionStatus.IN_PROGRESS, None
    try:
        status = InteractionStatus(raw)
    except ValueError:
        return InteractionStatus.UNRECOGNIZED, raw
    if status is InteractionStatus.UNRECOGNIZED:
        # a literal "unrecognized" from the server is still an unknown state
        return InteractionStatus.UNRECOGNIZED, raw
    return status, raw
