from threading import Lock

from .schemas import SubmissionOutcome
from .shared.logs import logger


class OutcomeAggregator:
    """
    Collects the classified outcomes of one cycle into two disjoint sets of flag ids.
    Accepted flags go to `sent`, rejected flags to `invalid`, undetermined flags nowhere.
    """

    def __init__(self) -> None:
        self.sent: set[int] = set()
        self.invalid: set[int] = set()
        self._lock = Lock()

    def record(self, flag_id: int, outcome: SubmissionOutcome) -> bool:
        """
        Records the outcome of a flag. Safe to call from multiple threads. A flag that was
        already recorded keeps its first outcome.

        :return: True if the flag was added to one of the sets.
        :rtype: bool
        """
        if outcome == SubmissionOutcome.UNDETERMINED:
            return False

        target = self.sent if outcome == SubmissionOutcome.ACCEPTED else self.invalid
        with self._lock:
            if flag_id in self.sent or flag_id in self.invalid:
                conflict = flag_id not in target
            else:
                target.add(flag_id)
                return True

        if conflict:
            logger.error(
                "Flag <b>{flag_id}</> already recorded with a different outcome, ignoring <b>{outcome}</>.",
                flag_id=flag_id,
                outcome=outcome.value,
            )
        return False

    def clear(self) -> None:
        with self._lock:
            self.sent.clear()
            self.invalid.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self.sent) + len(self.invalid)
