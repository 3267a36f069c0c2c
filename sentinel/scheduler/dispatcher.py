"""
Dispatcher (tick-driven scheduler) for the Job Scheduler.

Each tick:
1. Read the registry
2. Resolve each job's spec (skip if none)
3. Read state (default if absent) and evaluate due-ness
4. Try to take a permit from the concurrency semaphore; if none is free
   the job is skipped for this tick (not queued)
5. Run the action in its own worker thread and fold the outcome into
   JobState; the permit is released after the state update

What Dispatcher MUST NOT do:
- Block the tick loop on an execution
- Let an execution failure escape into the tick loop
- Remove jobs from the registry
"""

import logging
import os
import threading
import time
from contextlib import contextmanager
from enum import Enum
from typing import Callable, Iterator, Optional

from .entities import Action, JobSpec, JobState
from .errors import ExecutionError, StoreError
from .executor import execute
from .persistence import KvStore, state_key
from .registry import read_registry, read_state
from .resolver import resolve_spec
from .retry_controller import DEFAULT_MAX_BACKOFF_MS, RetryController


logger = logging.getLogger(__name__)


DEFAULT_TICK_MS = 1000

ActionRunner = Callable[[Action, KvStore], None]
Clock = Callable[[], int]


def now_ms() -> int:
    """Milliseconds since the Unix epoch."""
    return int(time.time() * 1000)


def default_concurrency() -> int:
    return os.cpu_count() or 1


class DispatcherState(str, Enum):
    """Dispatcher lifecycle states."""

    STOPPED = "STOPPED"
    RUNNING = "RUNNING"
    STOPPING = "STOPPING"


class Dispatcher:
    """
    Polls the job registry and dispatches due jobs.

    Concurrency model:
    - one tick thread
    - one worker thread per dispatched execution, bounded by a
      BoundedSemaphore of max_concurrency permits
    - state read-modify-write is serialised per job id; the same job may
      still run concurrently with itself (at-least-once)

    Shutdown is cooperative through a threading.Event that may be shared
    with other long-running components.
    """

    def __init__(
        self,
        store: KvStore,
        tick_ms: int = DEFAULT_TICK_MS,
        max_concurrency: Optional[int] = None,
        max_backoff_ms: int = DEFAULT_MAX_BACKOFF_MS,
        clock: Clock = now_ms,
        shutdown: Optional[threading.Event] = None,
    ):
        """
        Initialize Dispatcher.

        Args:
            store: Shared key-value store
            tick_ms: Milliseconds between ticks
            max_concurrency: Maximum simultaneous executions
                (default: number of CPUs)
            max_backoff_ms: Backoff ceiling
            clock: Returns the current time in ms
            shutdown: Shutdown signal; a private one is created if omitted
        """
        if max_concurrency is None:
            max_concurrency = default_concurrency()
        if max_concurrency < 1:
            raise ValueError("max_concurrency must be at least 1")

        self.store = store
        self.tick_ms = tick_ms
        self.max_concurrency = max_concurrency
        self.clock = clock
        self.retry_controller = RetryController(max_backoff_ms=max_backoff_ms)

        self._state = DispatcherState.STOPPED
        self._runner: ActionRunner = execute
        self._permits = threading.BoundedSemaphore(max_concurrency)
        self._owns_stop_event = shutdown is None
        self._stop_event = shutdown if shutdown is not None else threading.Event()
        self._thread: Optional[threading.Thread] = None

        self._in_flight: set[threading.Thread] = set()
        self._in_flight_cond = threading.Condition()

        # job id -> [lock, holders + waiters]; dropped when the count reaches 0
        self._job_locks: dict[str, list] = {}
        self._job_locks_guard = threading.Lock()

    @property
    def state(self) -> DispatcherState:
        """Get current dispatcher state."""
        return self._state

    @property
    def shutdown_event(self) -> threading.Event:
        return self._stop_event

    @property
    def in_flight(self) -> int:
        """Number of executions currently running."""
        with self._in_flight_cond:
            return len(self._in_flight)

    def set_executor(self, runner: ActionRunner) -> None:
        """
        Replace the action runner.

        Defaults to executor.execute; injectable for testing.
        """
        self._runner = runner

    # =========================================================================
    # Single Tick
    # =========================================================================

    def tick(self) -> list[str]:
        """
        Run one scheduling pass.

        Returns:
            Ids of the jobs dispatched during this tick
        """
        now = self.clock()

        try:
            ids = read_registry(self.store)
        except StoreError as e:
            logger.error(f"Cannot read job registry: {e}")
            return []

        dispatched = []
        for job_id in ids:
            spec = resolve_spec(self.store, job_id)
            if spec is None:
                continue

            try:
                state = read_state(self.store, job_id)
            except StoreError as e:
                logger.warning(f"Cannot read state for job {job_id}, skipping: {e}")
                continue

            if not self.retry_controller.is_due(spec, state, now):
                continue

            # Concurrency gate: skip, never queue
            if not self._permits.acquire(blocking=False):
                logger.debug(f"Concurrency saturated, job {job_id} skipped this tick")
                continue

            if self._spawn(job_id, spec):
                dispatched.append(job_id)

        return dispatched

    def _spawn(self, job_id: str, spec: JobSpec) -> bool:
        """Start a worker thread for one execution. Caller holds a permit."""
        worker = threading.Thread(
            target=self._run_job,
            args=(job_id, spec),
            name=f"sentinel-job-{job_id}",
            daemon=True,
        )
        with self._in_flight_cond:
            self._in_flight.add(worker)
        try:
            worker.start()
        except RuntimeError as e:
            logger.error(f"Cannot start worker for job {job_id}: {e}")
            self._finish(worker)
            return False

        logger.debug(f"Dispatched job {job_id} ({spec.action.type.value})")
        return True

    def _run_job(self, job_id: str, spec: JobSpec) -> None:
        """Worker body: execute, record the outcome, release the permit."""
        try:
            error: Optional[Exception] = None
            try:
                self._runner(spec.action, self.store)
            except (ExecutionError, StoreError) as e:
                error = e
            except Exception as e:
                logger.exception(f"Unexpected error executing job {job_id}")
                error = e

            self._record_outcome(job_id, spec, error)
        finally:
            self._finish(threading.current_thread())

    def _finish(self, worker: threading.Thread) -> None:
        self._permits.release()
        with self._in_flight_cond:
            self._in_flight.discard(worker)
            self._in_flight_cond.notify_all()

    @contextmanager
    def _job_lock(self, job_id: str) -> Iterator[None]:
        """Hold the state lock for job_id; the entry lives only while in use."""
        with self._job_locks_guard:
            entry = self._job_locks.get(job_id)
            if entry is None:
                entry = self._job_locks[job_id] = [threading.Lock(), 0]
            entry[1] += 1
        try:
            with entry[0]:
                yield
        finally:
            with self._job_locks_guard:
                entry[1] -= 1
                if entry[1] == 0:
                    del self._job_locks[job_id]

    def _is_registered(self, job_id: str) -> bool:
        try:
            return job_id in read_registry(self.store)
        except StoreError as e:
            logger.warning(f"Cannot read job registry, recording state for {job_id} anyway: {e}")
            return True

    def _record_outcome(
        self, job_id: str, spec: JobSpec, error: Optional[Exception]
    ) -> None:
        """Fold an execution outcome into the job's persisted state."""
        key = state_key(job_id)

        with self._job_lock(job_id):
            try:
                state = read_state(self.store, job_id)
            except StoreError as e:
                logger.warning(f"Cannot read state for job {job_id}, using default: {e}")
                state = JobState()

            now = self.clock()
            if error is None:
                new_state = self.retry_controller.on_success(state, now)
                logger.info(f"job ok id={job_id} runs={new_state.runs}")
            else:
                new_state = self.retry_controller.on_failure(state, spec, now)
                logger.warning(
                    f"job err id={job_id} err={error} "
                    f"failures={new_state.failures} backoff_ms={new_state.backoff_ms}"
                )

            if not self._is_registered(job_id):
                logger.info(f"Job {job_id} was deleted while running, state not recorded")
                return

            try:
                self.store.put_t(key, new_state)
            except StoreError as e:
                # Next tick re-derives from whatever was last written
                logger.error(f"Failed to persist state for job {job_id}: {e}")

    # =========================================================================
    # Tick Loop
    # =========================================================================

    def start(self, blocking: bool = False) -> None:
        """
        Start the tick loop.

        Args:
            blocking: If True, run in current thread. If False, run in background.
        """
        if self._state == DispatcherState.RUNNING:
            raise RuntimeError(f"Cannot start dispatcher in {self._state.value} state")

        if self._owns_stop_event:
            self._stop_event.clear()
        elif self._stop_event.is_set():
            # Shared signal stays set for the other components
            logger.info("Shutdown already requested, dispatcher not started")
            return
        self._state = DispatcherState.RUNNING

        if blocking:
            self._tick_loop()
        else:
            self._thread = threading.Thread(
                target=self._tick_loop, name="sentinel-dispatcher", daemon=True
            )
            self._thread.start()

    def stop(self, wait: bool = True, timeout: Optional[float] = 30.0) -> bool:
        """
        Stop the tick loop.

        In-flight executions are never interrupted.

        Args:
            wait: If True, also wait for every dispatched execution
            timeout: Maximum seconds to wait for each phase

        Returns:
            True if the loop (and, with wait, all executions) finished
        """
        logger.info("Stopping dispatcher...")
        self._state = DispatcherState.STOPPING
        self._stop_event.set()

        finished = True
        if self._thread is not None:
            self._thread.join(timeout=timeout)
            if self._thread.is_alive():
                logger.warning("Dispatcher thread did not stop within timeout")
                finished = False
            self._thread = None

        if wait and not self.wait_idle(timeout=timeout):
            logger.warning(f"{self.in_flight} execution(s) still in flight after stop")
            finished = False

        self._state = DispatcherState.STOPPED
        logger.info("Dispatcher stopped")
        return finished

    def wait_idle(self, timeout: Optional[float] = None) -> bool:
        """
        Wait until no execution is in flight.

        Returns:
            True if idle, False if timeout reached
        """
        with self._in_flight_cond:
            return self._in_flight_cond.wait_for(
                lambda: not self._in_flight, timeout=timeout
            )

    def _tick_loop(self) -> None:
        """Main tick loop."""
        logger.info(
            f"Dispatcher loop started (tick={self.tick_ms}ms, "
            f"max_concurrency={self.max_concurrency})"
        )

        while not self._stop_event.is_set():
            try:
                self.tick()
            except Exception as e:
                logger.error(f"Error in tick loop: {e}", exc_info=True)

            self._stop_event.wait(self.tick_ms / 1000.0)

        logger.info("scheduler stopping")

    def is_running(self) -> bool:
        """Check if the tick loop is active."""
        return self._state == DispatcherState.RUNNING and not self._stop_event.is_set()
