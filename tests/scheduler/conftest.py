"""
Scheduler Test Fixtures.

Base fixtures:
  - Empty filesystem store in a temp directory
  - In-memory store
  - Mocked clock at fixed time (milliseconds)

Factory fixtures:
  - register_job: upsert a job through the registry
  - recording runner: controllable action runner for dispatcher tests
"""

import threading
import time
from pathlib import Path
from typing import Callable, Optional

import pytest

from sentinel.scheduler import (
    Dispatcher,
    FsKvStore,
    JobSpec,
    JobState,
    MemoryKvStore,
    NoopAction,
    open_default,
)
from sentinel.scheduler import registry
from sentinel.scheduler.persistence import state_key


# Fixed time for deterministic tests (ms since epoch)
FIXED_TIME_MS = 1_767_225_600_000  # 2026-01-01T00:00:00Z


class MockClock:
    """
    Mock clock for deterministic time control.

    - Starts at fixed epoch
    - Advances only when explicitly ticked
    """

    def __init__(self, start_ms: int = FIXED_TIME_MS):
        self._current = start_ms
        self._lock = threading.Lock()

    def __call__(self) -> int:
        with self._lock:
            return self._current

    def tick(self, ms: int = 1000) -> None:
        """Advance time by ms (negative values move the clock backward)."""
        with self._lock:
            self._current += ms

    def set(self, ms: int) -> None:
        with self._lock:
            self._current = ms


class RecordingRunner:
    """
    Action runner for dispatcher tests.

    Records every call, can fail on demand and can block until released
    to keep executions in flight.
    """

    def __init__(self):
        self.calls = []
        self.fail_with: Optional[Exception] = None
        self.release = threading.Event()
        self.release.set()
        self._lock = threading.Lock()
        self.active = 0
        self.max_active = 0

    def hold(self) -> None:
        """Block executions until release.set() is called."""
        self.release.clear()

    def __call__(self, action, store) -> None:
        with self._lock:
            self.calls.append(action)
            self.active += 1
            self.max_active = max(self.max_active, self.active)
        try:
            self.release.wait(timeout=10)
            if self.fail_with is not None:
                raise self.fail_with
        finally:
            with self._lock:
                self.active -= 1


# =============================================================================
# Store Fixtures
# =============================================================================


@pytest.fixture
def store_dir(tmp_path: Path) -> Path:
    return tmp_path / "kv"


@pytest.fixture
def fs_store(store_dir: Path) -> FsKvStore:
    """A fresh filesystem store."""
    return open_default(store_dir)


@pytest.fixture
def memory_store() -> MemoryKvStore:
    """A fresh in-memory store."""
    return MemoryKvStore()


# =============================================================================
# Component Fixtures
# =============================================================================


@pytest.fixture
def mock_clock() -> MockClock:
    return MockClock()


@pytest.fixture
def runner() -> RecordingRunner:
    return RecordingRunner()


@pytest.fixture
def dispatcher(fs_store: FsKvStore, mock_clock: MockClock) -> Dispatcher:
    """Dispatcher over the filesystem store with the real executor."""
    disp = Dispatcher(
        store=fs_store,
        tick_ms=10,
        max_concurrency=4,
        max_backoff_ms=60_000,
        clock=mock_clock,
    )
    yield disp
    disp.stop(wait=True, timeout=10)


@pytest.fixture
def register_job(fs_store: FsKvStore) -> Callable:
    """Factory fixture registering a job in the filesystem store."""

    def _register(
        job_id: str = "job",
        period_ms: int = 1000,
        action=None,
        state: Optional[JobState] = None,
    ) -> JobSpec:
        spec = JobSpec(period_ms=period_ms, action=action or NoopAction())
        registry.upsert_job(fs_store, job_id, spec)
        if state is not None:
            fs_store.put_t(state_key(job_id), state)
        return spec

    return _register


def _wait_for(predicate: Callable[[], bool], timeout: float = 5.0) -> bool:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.01)
    return predicate()


@pytest.fixture
def wait_for() -> Callable:
    """Poll a predicate until it holds or the timeout expires."""
    return _wait_for
