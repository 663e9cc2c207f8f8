import os
import threading
import time

import pytest

from flagsubmitter.config import Config
from flagsubmitter.store import SqliteFlagStore


class FakeResponse:
    def __init__(self, status_code: int = 200, text: str = "OK") -> None:
        self.status_code = status_code
        self.text = text


class FakeSession:
    """
    Stands in for requests.Session. Every POST is answered by `handler(flag)`, which returns
    a FakeResponse or raises.
    """

    def __init__(self, handler=None, delay: float = 0) -> None:
        self.handler = handler or (lambda flag: FakeResponse())
        self.delay = delay
        self.calls: list[dict] = []
        self.starts: list[float] = []
        self.in_flight = 0
        self.max_in_flight = 0
        self._lock = threading.Lock()

    def post(self, url, data=None, timeout=None):
        with self._lock:
            self.calls.append({"url": url, "data": data, "timeout": timeout})
            self.starts.append(time.monotonic())
            self.in_flight += 1
            self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self.delay:
                time.sleep(self.delay)
            return self.handler(data["flag"])
        finally:
            with self._lock:
                self.in_flight -= 1

    def submitted(self) -> list[str]:
        with self._lock:
            return [call["data"]["flag"] for call in self.calls]

    def close(self):
        pass


class FakeClock:
    def __init__(self) -> None:
        self.now = 0.0
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


@pytest.fixture(autouse=True)
def clean_environment(monkeypatch, tmp_path):
    for key in list(os.environ):
        if key.startswith("FLAGSUB_"):
            monkeypatch.delenv(key)
    monkeypatch.chdir(tmp_path)


@pytest.fixture
def db_path(tmp_path):
    return tmp_path / "flags.db"


@pytest.fixture
def store(db_path):
    store = SqliteFlagStore(db_path)
    store.setup()
    yield store
    store.engine.dispose()


@pytest.fixture
def make_config(db_path):
    def factory(**overrides) -> Config:
        values = {
            "server_url": "http://flags.test/submit",
            "team_token": "TEAM_TOKEN",
            "check_interval": 1,
            "flags_quota": 2,
            "window_interval": 0.05,
            "request_timeout": 5,
            "database": {"sqlite": str(db_path)},
        }
        values.update(overrides)
        return Config(**values)

    return factory


@pytest.fixture
def clock():
    return FakeClock()


def most_starts_within(starts: list[float], span: float) -> int:
    """Largest number of request starts that fall into any `span` seconds long interval."""
    starts = sorted(starts)
    return max(
        (sum(1 for other in starts if start <= other < start + span) for start in starts),
        default=0,
    )
