import concurrent.futures
from concurrent.futures import Future
from threading import BoundedSemaphore
from typing import Iterator

import requests
from requests.adapters import HTTPAdapter

from .classifier import Classifier
from .schemas import FlagRecord, SubmissionOutcome
from .shared.logs import logger


class Dispatcher:
    """
    Submits flags to the endpoint concurrently on a pool of at most `workers` threads.

    A dispatcher is scoped to a single cycle and used as a context manager. `dispatch`
    returns as soon as every flag of the window has a free worker, without waiting for the
    submissions to finish; `results` waits for all of them. Leaving the context waits for
    any unfinished submission, so no outcome is lost.
    """

    def __init__(
        self,
        server_url: str,
        team_token: str,
        classifier: Classifier,
        workers: int,
        timeout: float | None = None,
        session: requests.Session | None = None,
    ) -> None:
        self.server_url = server_url
        self.team_token = team_token
        self.classifier = classifier
        self.workers = workers
        self.timeout = timeout

        self._owns_session = session is None
        self._session = session
        self._executor: concurrent.futures.ThreadPoolExecutor | None = None
        self._futures: dict[Future, FlagRecord] = {}
        self._slots = BoundedSemaphore(workers)

    def __enter__(self) -> "Dispatcher":
        if self._session is None:
            self._session = requests.Session()
            adapter = HTTPAdapter(pool_connections=1, pool_maxsize=self.workers)
            self._session.mount("http://", adapter)
            self._session.mount("https://", adapter)

        self._executor = concurrent.futures.ThreadPoolExecutor(
            max_workers=self.workers, thread_name_prefix="submit"
        )
        self._futures = {}
        return self

    def __exit__(self, exc_type, exc_value, traceback) -> None:
        self._executor.shutdown(wait=True)
        self._executor = None
        self._futures = {}

        if self._owns_session:
            self._session.close()
            self._session = None

    def dispatch(self, window: list[FlagRecord]) -> None:
        """
        Schedules one submission per flag in the window. Blocks until a worker is free for
        each flag, so every submission of the window starts right away instead of queueing
        behind slower ones.
        """
        for flag in window:
            self._slots.acquire()
            try:
                future = self._executor.submit(self.submit, flag)
            except BaseException:
                self._slots.release()
                raise

            future.add_done_callback(lambda _: self._slots.release())
            self._futures[future] = flag

    def results(self) -> Iterator[tuple[FlagRecord, SubmissionOutcome]]:
        """
        Waits for every dispatched submission and yields flags with their outcomes in
        order of completion.
        """
        for future in concurrent.futures.as_completed(self._futures):
            flag = self._futures[future]
            try:
                outcome = future.result()
            except Exception as e:
                logger.error(
                    "An error has occured while submitting <b>{flag}</>: {error}",
                    flag=flag.value,
                    error=e,
                )
                outcome = SubmissionOutcome.UNDETERMINED

            yield flag, outcome

    def submit(self, flag: FlagRecord) -> SubmissionOutcome:
        """Submits a single flag and classifies the response. Transport errors are not raised."""
        logger.debug(
            "Sending flag <b>{flag}</> (group {group})",
            flag=flag.value,
            group=flag.group,
        )

        try:
            response = self._session.post(
                self.server_url,
                data={"team_token": self.team_token, "flag": flag.value},
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            outcome = self.classifier.classify_failure(e)
        else:
            outcome = self.classifier.classify(response.status_code, response.text)

        if outcome == SubmissionOutcome.ACCEPTED:
            logger.debug(
                "<green>Accepted</green> {flag} (group {group})",
                flag=flag.value,
                group=flag.group,
            )
        elif outcome == SubmissionOutcome.REJECTED:
            logger.debug(
                "<red>Rejected</red> {flag} (group {group})",
                flag=flag.value,
                group=flag.group,
            )
        else:
            logger.debug(
                "<blue>Undetermined</blue> {flag} (group {group})",
                flag=flag.value,
                group=flag.group,
            )

        return outcome
