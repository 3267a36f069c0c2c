"""
Shared state for API integration.

Holds the store handle (and, when running inside the daemon, the
SchedulerService) used by the routers.

Usage:
    from ._state import get_store, init_store

    # In lifespan or CLI startup:
    init_store(store, service)

    # In routers:
    store = get_store()
"""

import time
from typing import Optional

from sentinel.scheduler.persistence import KvStore
from sentinel.scheduler.service import SchedulerService


_store: Optional[KvStore] = None
_service: Optional[SchedulerService] = None
_started_monotonic: float = time.monotonic()


def init_store(
    store: KvStore,
    service: Optional[SchedulerService] = None,
) -> KvStore:
    """
    Register the store (and optional service) used by the API.

    Replaces any previous registration.
    """
    global _store, _service, _started_monotonic

    _store = store
    _service = service
    _started_monotonic = time.monotonic()
    return store


def is_initialized() -> bool:
    return _store is not None


def get_store() -> KvStore:
    """
    Get the registered store.

    Raises:
        RuntimeError: If no store was registered
    """
    if _store is None:
        raise RuntimeError(
            "Store not initialized. "
            "Ensure init_store() is called during startup."
        )

    return _store


def get_service() -> Optional[SchedulerService]:
    """Get the attached SchedulerService, if the API runs inside the daemon."""
    return _service


def uptime_ms() -> int:
    return int((time.monotonic() - _started_monotonic) * 1000)


def reset_state() -> None:
    """Forget the registered store and service."""
    global _store, _service

    _store = None
    _service = None
