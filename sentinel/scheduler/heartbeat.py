"""
Heartbeat: a persisted liveness counter.

Every period the counter stored at heartbeat:count is incremented and
written back. The final value is persisted again on shutdown.
"""

import logging
import threading
from typing import Optional

from .errors import StoreError
from .persistence import HEARTBEAT_KEY, KvStore, U64
from .retry_controller import sat_add


logger = logging.getLogger(__name__)


DEFAULT_HEARTBEAT_MS = 5000


class Heartbeat:
    """Background thread incrementing the heartbeat counter."""

    def __init__(
        self,
        store: KvStore,
        period_ms: int = DEFAULT_HEARTBEAT_MS,
        shutdown: Optional[threading.Event] = None,
    ):
        self.store = store
        self.period_ms = period_ms
        self._stop_event = shutdown if shutdown is not None else threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._count = 0

    @property
    def count(self) -> int:
        return self._count

    def load(self) -> int:
        """Load the persisted counter (0 if absent)."""
        self._count = self.store.get_t(HEARTBEAT_KEY, U64) or 0
        return self._count

    def beat(self) -> int:
        """Increment and persist the counter once."""
        self._count = sat_add(self._count, 1)
        self.store.put_t(HEARTBEAT_KEY, self._count)
        logger.debug(f"heartbeat tick {self._count}")
        return self._count

    def start(self) -> None:
        if self._thread is not None and self._thread.is_alive():
            raise RuntimeError("Heartbeat already running")
        self.load()
        self._thread = threading.Thread(
            target=self._loop, name="sentinel-heartbeat", daemon=True
        )
        self._thread.start()

    def join(self, timeout: Optional[float] = None) -> None:
        if self._thread is not None:
            self._thread.join(timeout=timeout)
            self._thread = None

    def _loop(self) -> None:
        period = self.period_ms / 1000.0
        while not self._stop_event.wait(period):
            try:
                self.beat()
            except StoreError as e:
                logger.error(f"Heartbeat write failed: {e}")

        try:
            self.store.put_t(HEARTBEAT_KEY, self._count)
        except StoreError as e:
            logger.error(f"Heartbeat final write failed: {e}")
        logger.info(f"heartbeat stopping at {self._count}")
