import threading
import time

import requests
from sqlalchemy.exc import OperationalError

from flagsubmitter.models import Flag
from flagsubmitter.schemas import CycleState
from flagsubmitter.store import SqliteFlagStore
from flagsubmitter.workers.submitter import Submitter

from .conftest import FakeResponse, FakeSession, most_starts_within


class SpyStore(SqliteFlagStore):
    def __init__(self, path) -> None:
        super().__init__(path)
        self.calls: list[str] = []

    def get_unsent_flags(self):
        self.calls.append("get_unsent_flags")
        return super().get_unsent_flags()

    def set_sent_flags(self, flag_ids):
        self.calls.append("set_sent_flags")
        return super().set_sent_flags(flag_ids)

    def set_invalid_flags(self, flag_ids):
        self.calls.append("set_invalid_flags")
        return super().set_invalid_flags(flag_ids)


class FlakyStore(SqliteFlagStore):
    """Fails the first `failures` attempts to mark flags as sent."""

    def __init__(self, path, failures=1) -> None:
        super().__init__(path)
        self.failures = failures

    def set_sent_flags(self, flag_ids):
        if self.failures:
            self.failures -= 1
            raise OperationalError("UPDATE flags", {}, Exception("database is locked"))
        return super().set_sent_flags(flag_ids)


class BrokenStore(SqliteFlagStore):
    def get_unsent_flags(self):
        raise OperationalError("SELECT", {}, Exception("unable to open database file"))


class InterruptedStore(SqliteFlagStore):
    def get_unsent_flags(self):
        raise KeyboardInterrupt


def statuses(store):
    with store.SessionLocal() as db:
        return {flag.value: flag.status for flag in db.query(Flag)}


def test_accepted_and_rejected_flags_are_persisted(make_config, store):
    store.add_flags(["A", "B", "C"])
    session = FakeSession(
        lambda flag: FakeResponse(text="flag is invalid" if flag == "B" else "OK")
    )
    submitter = Submitter(
        make_config(flags_quota=2, window_interval=0.2), store, session=session
    )

    started = time.monotonic()
    report = submitter.run_cycle()
    elapsed = time.monotonic() - started

    assert statuses(store) == {"A": "sent", "B": "invalid", "C": "sent"}
    assert report.fetched == 3
    assert report.windows == 2
    assert (report.sent, report.invalid, report.undetermined) == (2, 1, 0)
    assert report.persisted
    assert elapsed >= 0.4
    assert sorted(session.submitted()) == ["A", "B", "C"]
    assert submitter.state == CycleState.IDLE


def test_undetermined_flag_is_retried_next_cycle(make_config, store):
    store.add_flags(["C", "D"])
    timeouts = {"D"}

    def handler(flag):
        if flag in timeouts:
            raise requests.ReadTimeout("read timed out")
        return FakeResponse(text="OK")

    session = FakeSession(handler)
    submitter = Submitter(make_config(), store, session=session)

    report = submitter.run_cycle()

    assert report.undetermined == 1
    assert statuses(store) == {"C": "sent", "D": "unsent"}

    timeouts.clear()
    report = submitter.run_cycle()

    assert report.fetched == 1
    assert statuses(store) == {"C": "sent", "D": "sent"}
    assert session.submitted().count("D") == 2
    assert session.submitted().count("C") == 1


def test_non_success_status_leaves_flag_unsent(make_config, store):
    store.add_flags(["A"])
    session = FakeSession(lambda flag: FakeResponse(status_code=503, text="invalid"))
    submitter = Submitter(make_config(), store, session=session)

    report = submitter.run_cycle()

    assert report.undetermined == 1
    assert statuses(store) == {"A": "unsent"}


def test_empty_store_makes_no_submissions(make_config, db_path):
    store = SpyStore(db_path)
    store.setup()
    session = FakeSession()
    submitter = Submitter(make_config(), store, session=session)

    report = submitter.run_cycle()

    assert report.fetched == 0
    assert report.windows == 0
    assert session.calls == []
    assert store.calls == ["get_unsent_flags"]


def test_only_needed_sets_are_persisted(make_config, db_path):
    store = SpyStore(db_path)
    store.setup()
    store.add_flags(["A"])
    submitter = Submitter(make_config(), store, session=FakeSession())

    submitter.run_cycle()

    assert store.calls == ["get_unsent_flags", "set_sent_flags"]


def test_fetch_failure_aborts_cycle(make_config, db_path):
    store = BrokenStore(db_path)
    session = FakeSession()
    submitter = Submitter(make_config(), store, session=session)

    report = submitter.run_cycle()

    assert report.aborted
    assert session.calls == []
    assert submitter.state == CycleState.IDLE


def test_persistence_failure_resubmits_next_cycle(make_config, db_path):
    store = FlakyStore(db_path)
    store.setup()
    store.add_flags(["E"])
    session = FakeSession()
    submitter = Submitter(make_config(), store, session=session)

    report = submitter.run_cycle()

    assert not report.persisted
    assert report.sent == 1
    assert statuses(store) == {"E": "unsent"}
    assert submitter.aggregator.sent == set()

    report = submitter.run_cycle()

    assert report.persisted
    assert statuses(store) == {"E": "sent"}
    assert session.submitted() == ["E", "E"]


def test_invalid_flags_persist_when_sent_flags_fail(make_config, db_path):
    store = FlakyStore(db_path)
    store.setup()
    store.add_flags(["A", "B"])
    session = FakeSession(
        lambda flag: FakeResponse(text="invalid" if flag == "B" else "OK")
    )
    submitter = Submitter(make_config(), store, session=session)

    submitter.run_cycle()

    assert statuses(store) == {"A": "unsent", "B": "invalid"}


def test_terminal_flags_are_not_submitted_again(make_config, store):
    store.add_flags(["A", "B"])
    session = FakeSession(
        lambda flag: FakeResponse(text="invalid" if flag == "B" else "OK")
    )
    submitter = Submitter(make_config(), store, session=session)

    submitter.run_cycle()
    report = submitter.run_cycle()

    assert report.fetched == 0
    assert sorted(session.submitted()) == ["A", "B"]


def test_submissions_respect_quota(make_config, store):
    store.add_flags(["FLAG_%d" % i for i in range(9)])
    session = FakeSession(delay=0.02)
    submitter = Submitter(
        make_config(flags_quota=3, window_interval=0.05), store, session=session
    )

    report = submitter.run_cycle()

    assert report.windows == 3
    assert report.sent == 9
    assert session.max_in_flight <= 3


def test_slow_window_does_not_burst_later_windows(make_config, store):
    store.add_flags(["FLAG_%d" % i for i in range(6)])
    slow = {"FLAG_0", "FLAG_1"}

    def handler(flag):
        if flag in slow:
            time.sleep(0.5)
        return FakeResponse()

    session = FakeSession(handler)
    submitter = Submitter(
        make_config(flags_quota=2, window_interval=0.2), store, session=session
    )

    report = submitter.run_cycle()

    assert report.windows == 3
    assert report.sent == 6
    assert most_starts_within(session.starts, 0.15) <= 2


def test_windows_use_injected_sleep(make_config, store):
    store.add_flags(["A", "B", "C"])
    sleeps = []
    submitter = Submitter(
        make_config(flags_quota=1, window_interval=1.0),
        store,
        session=FakeSession(),
        sleep=sleeps.append,
    )

    report = submitter.run_cycle()

    assert report.windows == 3
    assert len(sleeps) == 3
    assert all(0 < seconds <= 1.0 for seconds in sleeps)


def test_single_run_stops_after_one_cycle(make_config, store):
    store.add_flags(["A"])
    submitter = Submitter(make_config(single_run=True), store, session=FakeSession())

    submitter.start()

    assert submitter.state == CycleState.STOPPED
    assert statuses(store) == {"A": "sent"}
    assert submitter.scheduler is None


def test_single_run_stops_on_interrupt(make_config, db_path):
    store = InterruptedStore(db_path)
    store.setup()
    submitter = Submitter(make_config(single_run=True), store, session=FakeSession())

    submitter.start()

    assert submitter.state == CycleState.STOPPED


def test_continuous_mode_runs_until_stopped(make_config, store):
    store.add_flags(["A"])
    session = FakeSession()
    submitter = Submitter(make_config(check_interval=1), store, session=session)

    thread = threading.Thread(target=submitter.start, daemon=True)
    thread.start()

    deadline = time.monotonic() + 10
    while statuses(store) != {"A": "sent"} and time.monotonic() < deadline:
        time.sleep(0.05)

    store.add_flags(["B"])
    while statuses(store) != {"A": "sent", "B": "sent"} and time.monotonic() < deadline:
        time.sleep(0.05)

    submitter.stop()
    thread.join(timeout=10)

    assert not thread.is_alive()
    assert submitter.state == CycleState.STOPPED
    assert statuses(store) == {"A": "sent", "B": "sent"}
    assert session.submitted() == ["A", "B"]
