import sys
import time
from datetime import datetime
from typing import Callable

import requests
from apscheduler.schedulers.blocking import BlockingScheduler

from ..aggregator import OutcomeAggregator
from ..batcher import RateLimitedBatcher
from ..classifier import Classifier, load_classifier
from ..config import Config
from ..dispatcher import Dispatcher
from ..schemas import CycleReport, CycleState, FlagRecord, SubmissionOutcome
from ..shared.logs import logger
from ..store import FlagStore, create_store


def main(config: Config):
    store = create_store(config.database)
    try:
        store.setup()
    except Exception as e:
        logger.error(
            "An error occurred when setting up the database:\n<red>{error}</red>",
            error=e,
        )
        sys.exit(1)

    try:
        classifier = load_classifier(config.classifier)
    except Exception as e:
        logger.error(
            "Unable to load module <b>{module}</>: {error}",
            module=config.classifier.module,
            error=e,
        )
        sys.exit(1)

    worker = Submitter(config, store, classifier)
    worker.start()


class Submitter:
    """
    Runs submission cycles over the unsent flags in the store, one at a time.

    Each cycle fetches a snapshot of unsent flags, submits them in rate limited windows,
    waits for every submission to finish and persists the accepted and rejected flags.

    Delivery is best effort, not exactly once. If persisting fails after the endpoint has
    already accepted or rejected a flag, the flag stays unsent in the store and is submitted
    again in the next cycle.
    """

    def __init__(
        self,
        config: Config,
        store: FlagStore,
        classifier: Classifier | None = None,
        session: requests.Session | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.config = config
        self.store = store
        self.classifier = classifier or load_classifier(config.classifier)
        self.session = session

        self.batcher = RateLimitedBatcher(
            quota=config.flags_quota,
            interval=config.window_interval,
            sleep=sleep,
        )
        self.aggregator = OutcomeAggregator()
        self.scheduler: BlockingScheduler | None = None
        self.state = CycleState.IDLE

    def start(self):
        """
        Runs a single cycle in single run mode. Otherwise runs a cycle every `check_interval`
        seconds, starting immediately, and blocks until stopped.
        """
        if self.config.single_run:
            try:
                self.run_cycle()
            except KeyboardInterrupt:
                print()  # Add a newline after the ^C
                logger.info("Submitter stopped.")
            self._set_state(CycleState.STOPPED)
            return

        self.scheduler = BlockingScheduler()
        self.scheduler.add_job(
            func=self.run_cycle,
            trigger="interval",
            seconds=self.config.check_interval,
            id="submitter",
            next_run_time=datetime.now(),
            max_instances=1,
            coalesce=True,
            misfire_grace_time=None,
        )

        logger.info(
            "Checking for unsent flags every <b>{interval}</> seconds.",
            interval=self.config.check_interval,
        )

        try:
            self.scheduler.start()
        except (KeyboardInterrupt, SystemExit):
            print()  # Add a newline after the ^C
            self.stop()
            logger.info("Submitter stopped.")

    def stop(self):
        """Stops scheduling new cycles and waits for the running cycle to finish."""
        if self.scheduler is not None and self.scheduler.running:
            self.scheduler.shutdown(wait=True)
        self._set_state(CycleState.STOPPED)

    def run_cycle(self) -> CycleReport:
        """
        Runs one full cycle: fetch, dispatch, barrier, persist. Errors are logged and never
        propagate past the cycle.
        """
        self._set_state(CycleState.FETCHING)
        try:
            flags = self.store.get_unsent_flags()
        except Exception as e:
            logger.error("Failed to fetch unsent flags: {error}", error=e)
            self._set_state(CycleState.IDLE)
            return CycleReport(aborted=True)

        if not flags:
            logger.info("No unsent flags. Submission skipped.")
            self._set_state(CycleState.IDLE)
            return CycleReport()

        report = CycleReport(fetched=len(flags))

        logger.info(
            "Submitting <b>{count}</> flags in <b>{windows}</> windows...",
            count=len(flags),
            windows=self.batcher.count(len(flags)),
        )

        stats = {outcome: 0 for outcome in SubmissionOutcome}
        try:
            self._dispatch(flags, report, stats)
        except Exception as e:
            logger.error("An error has occured while dispatching flags: {error}", error=e)

        self._set_state(CycleState.PERSISTING)
        report.sent = len(self.aggregator.sent)
        report.invalid = len(self.aggregator.invalid)
        report.undetermined = stats[SubmissionOutcome.UNDETERMINED]
        report.persisted = self._persist()

        logger.info(
            "<green>{accepted} accepted</green>, <red>{rejected} rejected</red>, <blue>{undetermined} undetermined</blue>",
            accepted=report.sent,
            rejected=report.invalid,
            undetermined=report.undetermined,
        )

        self._set_state(CycleState.IDLE)
        return report

    def _dispatch(
        self,
        flags: list[FlagRecord],
        report: CycleReport,
        stats: dict[SubmissionOutcome, int],
    ):
        with Dispatcher(
            self.config.server_url,
            self.config.team_token,
            self.classifier,
            workers=self.config.flags_quota,
            timeout=self.config.request_timeout,
            session=self.session,
        ) as dispatcher:
            self._set_state(CycleState.DISPATCHING)
            for window in self.batcher.windows(flags):
                report.windows += 1
                logger.debug(
                    "Releasing window {number} with {count} flags.",
                    number=report.windows,
                    count=len(window),
                )
                dispatcher.dispatch(window)

            self._set_state(CycleState.BARRIER)
            for flag, outcome in dispatcher.results():
                stats[outcome] += 1
                self.aggregator.record(flag.id, outcome)

    def _persist(self) -> bool:
        persisted = True

        if self.aggregator.sent:
            count = len(self.aggregator.sent)
            try:
                self.store.set_sent_flags(self.aggregator.sent)
            except Exception as e:
                persisted = False
                logger.error("Failed to mark flags as sent: {error}", error=e)
                logger.warning(
                    "{count} accepted flags remain unsent and will be submitted again.",
                    count=count,
                )

        if self.aggregator.invalid:
            count = len(self.aggregator.invalid)
            try:
                self.store.set_invalid_flags(self.aggregator.invalid)
            except Exception as e:
                persisted = False
                logger.error("Failed to mark flags as invalid: {error}", error=e)
                logger.warning(
                    "{count} rejected flags remain unsent and will be submitted again.",
                    count=count,
                )

        self.aggregator.clear()
        return persisted

    def _set_state(self, state: CycleState):
        logger.trace("Cycle state: {state}", state=state.value)
        self.state = state
