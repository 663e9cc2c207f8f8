from enum import Enum

from pydantic import BaseModel, ConfigDict, NonNegativeInt


class FlagStatus(str, Enum):
    """
    Lifecycle status of a stored flag. The only allowed transitions are
    UNSENT -> SENT and UNSENT -> INVALID.
    """

    UNSENT = "unsent"
    SENT = "sent"
    INVALID = "invalid"


class SubmissionOutcome(str, Enum):
    """
    Classified result of a single submission attempt.

    Attributes:
        ACCEPTED:
            The endpoint confirmed the flag. It will be marked as sent.
        REJECTED:
            The endpoint explicitly declared the flag invalid. It will be marked as invalid.
        UNDETERMINED:
            Transport error, non-success status or an ambiguous response. The flag stays
            unsent and is retried in the next cycle.
    """

    ACCEPTED = "accepted"
    REJECTED = "rejected"
    UNDETERMINED = "undetermined"


class CycleState(str, Enum):
    IDLE = "idle"
    FETCHING = "fetching"
    DISPATCHING = "dispatching"
    BARRIER = "barrier"
    PERSISTING = "persisting"
    STOPPED = "stopped"


class FlagRecord(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: int
    value: str
    group: int = 0
    status: FlagStatus = FlagStatus.UNSENT


class CycleReport(BaseModel):
    fetched: NonNegativeInt = 0
    windows: NonNegativeInt = 0
    sent: NonNegativeInt = 0
    invalid: NonNegativeInt = 0
    undetermined: NonNegativeInt = 0
    persisted: bool = True
    aborted: bool = False
