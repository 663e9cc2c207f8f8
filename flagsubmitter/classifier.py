import os
import sys
from abc import ABC, abstractmethod
from importlib import import_module, reload
from typing import Callable

from .config import ClassifierConfig
from .schemas import SubmissionOutcome
from .shared.logs import logger


class Classifier(ABC):
    """
    Maps the raw result of a single submission to a `SubmissionOutcome`.

    The remote endpoint has no fixed response schema, so classification is kept behind this
    interface and can be swapped without touching the rest of the engine.
    """

    @abstractmethod
    def classify(self, status_code: int, body: str) -> SubmissionOutcome:
        """Classifies a response that was received from the endpoint."""

    def classify_failure(self, error: Exception) -> SubmissionOutcome:
        """Classifies a submission that failed before a response was received."""
        logger.warning("Submission failed: {error}", error=error)
        return SubmissionOutcome.UNDETERMINED


class MarkerClassifier(Classifier):
    def __init__(
        self,
        invalid_markers: list[str] | None = None,
        accepted_markers: list[str] | None = None,
    ) -> None:
        """
        Classifies successful responses by looking for marker substrings in the body.

        :param invalid_markers: Substrings that mark a flag as rejected. Defaults to ["invalid"].
        :type invalid_markers: list[str] | None, optional
        :param accepted_markers: If given, one of these substrings must be present for the flag
                                 to be accepted. Otherwise any successful response that is not
                                 rejected is accepted.
        :type accepted_markers: list[str] | None, optional
        """
        self.invalid_markers = (
            ["invalid"] if invalid_markers is None else list(invalid_markers)
        )
        self.accepted_markers = list(accepted_markers or [])

    def classify(self, status_code: int, body: str) -> SubmissionOutcome:
        if not 200 <= status_code < 300:
            logger.warning(
                "Response not successful, status code <b>{status_code}</>.",
                status_code=status_code,
            )
            return SubmissionOutcome.UNDETERMINED

        if any(marker in body for marker in self.invalid_markers):
            return SubmissionOutcome.REJECTED

        if self.accepted_markers and not any(
            marker in body for marker in self.accepted_markers
        ):
            logger.warning("Unrecognized response: {body}", body=body[:200])
            return SubmissionOutcome.UNDETERMINED

        return SubmissionOutcome.ACCEPTED


class FunctionClassifier(Classifier):
    """
    Wraps a user written `classify(status_code, body)` function. The function may return a
    `SubmissionOutcome` or one of "accepted", "rejected" and "undetermined". Anything else,
    including a raised exception, is treated as undetermined.
    """

    def __init__(self, func: Callable[[int, str], SubmissionOutcome | str]) -> None:
        self.func = func

    def classify(self, status_code: int, body: str) -> SubmissionOutcome:
        try:
            result = self.func(status_code, body)
        except Exception as e:
            logger.error(
                "Error in {function}: {error}", function=self.func.__name__, error=e
            )
            return SubmissionOutcome.UNDETERMINED

        try:
            return SubmissionOutcome(result)
        except ValueError:
            logger.error(
                "{function} returned <b>{result}</>, expected one of 'accepted', 'rejected' or 'undetermined'.",
                function=self.func.__name__,
                result=result,
            )
            return SubmissionOutcome.UNDETERMINED


def load_classifier(config: ClassifierConfig) -> Classifier:
    """
    Builds the classifier from the configuration. If a module is configured, its `classify`
    function is imported from the current working directory.

    :raises ImportError: If the module or its `classify` function cannot be found.
    """
    if not config.module:
        return MarkerClassifier(config.invalid_markers, config.accepted_markers)

    func = _import_user_function(config.module, "classify")
    if func is None:
        raise ImportError(
            "Required function not found within %s.py. Please make sure the module contains classify function."
            % config.module
        )

    logger.info("Using classify function from <b>{module}.py</>.", module=config.module)
    return FunctionClassifier(func)


def _import_user_function(module_name: str, function_name: str):
    """Imports and reloads a user written function from the current working directory."""
    cwd = os.getcwd()
    if cwd not in sys.path:
        sys.path.append(cwd)

    imported_module = reload(import_module(module_name))
    return getattr(imported_module, function_name, None)
