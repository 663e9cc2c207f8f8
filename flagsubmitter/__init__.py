from .schemas import CycleReport, CycleState, FlagRecord, FlagStatus, SubmissionOutcome  # noqa

__version__ = "0.1.0"

__all__ = [
    "CycleReport",
    "CycleState",
    "FlagRecord",
    "FlagStatus",
    "SubmissionOutcome",
]
