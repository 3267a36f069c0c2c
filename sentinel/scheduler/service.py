"""
Scheduler Service - Main entry point for the job runner.

Orchestrates:
- KvStore (persistence)
- Dispatcher (tick loop and execution)
- Heartbeat (liveness counter)

All long-running components observe one shared shutdown Event.

Usage:
    service = SchedulerService.create(config)
    service.start()
    # ... dispatcher and heartbeat run in background threads ...
    service.stop()
"""

import logging
import threading
import time
from datetime import datetime
from typing import Optional

from sentinel.infra.config import SentinelConfig

from .dispatcher import Dispatcher
from .heartbeat import Heartbeat
from .persistence import KvStore, open_default


logger = logging.getLogger(__name__)


class SchedulerService:
    """
    Coordinates the store, dispatcher and heartbeat.

    Provides:
    - Component initialization and wiring
    - Startup and graceful shutdown
    - Status for the HTTP front-end
    """

    def __init__(
        self,
        store: KvStore,
        dispatcher: Dispatcher,
        heartbeat: Optional[Heartbeat],
        shutdown: threading.Event,
    ):
        """
        Initialize SchedulerService with all components.

        Use SchedulerService.create() for convenient construction.
        """
        self.store = store
        self.dispatcher = dispatcher
        self.heartbeat = heartbeat
        self.shutdown = shutdown

        self._started = False
        self._started_monotonic = time.monotonic()
        self.started_at: Optional[datetime] = None

    @classmethod
    def create(
        cls,
        config: SentinelConfig,
        store: Optional[KvStore] = None,
        shutdown: Optional[threading.Event] = None,
    ) -> "SchedulerService":
        """
        Create a SchedulerService with all components wired together.

        Args:
            config: Process configuration
            store: Store to use; opened from config.data_dir when None
            shutdown: Shared shutdown signal; created when None

        Raises:
            StoreError: If the store cannot be opened (fatal at startup)
        """
        if store is None:
            store = open_default(config.data_dir)

        shutdown = shutdown if shutdown is not None else threading.Event()

        dispatcher = Dispatcher(
            store=store,
            tick_ms=config.tick_ms,
            max_concurrency=config.max_concurrency,
            max_backoff_ms=config.max_backoff_ms,
            shutdown=shutdown,
        )

        heartbeat = None
        if config.heartbeat_ms > 0:
            heartbeat = Heartbeat(store, period_ms=config.heartbeat_ms, shutdown=shutdown)

        return cls(
            store=store,
            dispatcher=dispatcher,
            heartbeat=heartbeat,
            shutdown=shutdown,
        )

    # =========================================================================
    # Lifecycle
    # =========================================================================

    def start(self) -> None:
        """
        Start the dispatcher and heartbeat in background threads.

        The shared shutdown signal is never cleared here: if it is already
        set (e.g. SIGINT during startup) nothing is started.

        Raises:
            StoreError: If the persisted heartbeat counter is unreadable;
                no thread is left running in that case
        """
        if self._started:
            raise RuntimeError("Scheduler already started")

        if self.shutdown.is_set():
            logger.info("Shutdown requested before start, not starting scheduler service")
            return

        logger.info("Starting scheduler service...")

        # Fail on a corrupt counter before any thread is running
        if self.heartbeat is not None:
            self.heartbeat.load()

        self._started_monotonic = time.monotonic()
        self.started_at = datetime.now()

        self.dispatcher.start(blocking=False)
        if self.heartbeat is not None:
            try:
                self.heartbeat.start()
            except Exception:
                self.dispatcher.stop(wait=True)
                raise

        self._started = True
        logger.info("Scheduler service started")

    def stop(self, wait: bool = True, timeout: Optional[float] = 30.0) -> bool:
        """
        Stop the service.

        Args:
            wait: Wait for in-flight executions before returning
            timeout: Maximum seconds to wait per component

        Returns:
            True if everything stopped within the timeout
        """
        if not self._started:
            return True

        logger.info("Stopping scheduler service...")
        self.shutdown.set()

        finished = self.dispatcher.stop(wait=wait, timeout=timeout)
        if self.heartbeat is not None:
            self.heartbeat.join(timeout=timeout)

        self._started = False
        logger.info("Scheduler service stopped")
        return finished

    def wait(self) -> None:
        """Block until the shutdown signal is observed."""
        self.shutdown.wait()

    @property
    def is_running(self) -> bool:
        return self._started and self.dispatcher.is_running()

    @property
    def uptime_ms(self) -> int:
        return int((time.monotonic() - self._started_monotonic) * 1000)

    def get_status(self) -> dict:
        """
        Get service status.

        Returns:
            Dict with heartbeat_count, uptime_ms, scheduler_running,
            in_flight and max_concurrency
        """
        return {
            "heartbeat_count": self.heartbeat.count if self.heartbeat is not None else 0,
            "uptime_ms": self.uptime_ms,
            "scheduler_running": self.is_running,
            "in_flight": self.dispatcher.in_flight,
            "max_concurrency": self.dispatcher.max_concurrency,
        }
