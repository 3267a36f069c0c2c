"""
Key-Value Persistence for the Job Scheduler.

Provides:
- KvStore: byte-oriented get/put/delete contract
- Typed layer (get_t/put_t) encoding values as JSON
- FsKvStore: one file per key, hex-encoded file names, atomic replace
- MemoryKvStore: in-process store for tests and ephemeral runs
- Namespaced key helpers for the job registry, specs and states

Key layout:
    jobs:registry       -> list of job ids
    jobs:{id}:spec      -> JobSpec (or legacy / JSON-string fallback)
    jobs:{id}:state     -> JobState
    heartbeat:count     -> u64
"""

import json
import logging
import os
import tempfile
import threading
from abc import ABC, abstractmethod
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Iterator, Optional, TypeVar

from .entities import U32_MAX, U64_MAX
from .errors import DecodeError, EncodeError, StoreError


logger = logging.getLogger(__name__)

T = TypeVar("T")

TEMP_PREFIX = "."
TEMP_SUFFIX = ".tmp"


class U32(int):
    """Marker type for get_t(): unsigned 32-bit integer."""


class U64(int):
    """Marker type for get_t(): unsigned 64-bit integer."""


# =============================================================================
# Key Helpers
# =============================================================================


def ns(namespace: str, name: str) -> bytes:
    """Build a namespaced key as bytes: "{namespace}:{name}"."""
    return f"{namespace}:{name}".encode("utf-8")


def registry_key() -> bytes:
    return ns("jobs", "registry")


def spec_key(job_id: str) -> bytes:
    return ns("jobs", f"{job_id}:spec")


def state_key(job_id: str) -> bytes:
    return ns("jobs", f"{job_id}:state")


HEARTBEAT_KEY = ns("heartbeat", "count")


# =============================================================================
# Typed Encoding
# =============================================================================


def encode_value(value: Any) -> bytes:
    """
    Serialize a value for the typed layer.

    Entities are encoded through their to_dict().

    Raises:
        EncodeError: If the value is not JSON-serializable
    """
    if hasattr(value, "to_dict"):
        value = value.to_dict()
    try:
        return json.dumps(value, allow_nan=False, separators=(",", ":")).encode("utf-8")
    except (TypeError, ValueError) as e:
        raise EncodeError(f"cannot encode {type(value).__name__}: {e}") from e


def decode_value(raw: bytes, kind: type[T], key: Optional[bytes] = None) -> T:
    """
    Deserialize typed-layer bytes into `kind`.

    Supported kinds: str, int (u64), U32, U64, list (of strings) and any
    class exposing from_dict().

    Raises:
        DecodeError: If the payload is malformed or has the wrong shape
    """
    try:
        obj = json.loads(raw.decode("utf-8"))
    except (UnicodeDecodeError, ValueError) as e:
        raise DecodeError(f"malformed payload: {e}", key) from e

    if kind is str:
        if not isinstance(obj, str):
            raise DecodeError("expected string", key)
        return obj

    if kind in (int, U64, U32):
        limit = U32_MAX if kind is U32 else U64_MAX
        if isinstance(obj, bool) or not isinstance(obj, int) or not 0 <= obj <= limit:
            raise DecodeError(f"expected unsigned integer <= {limit}", key)
        return obj

    if kind is list:
        if not isinstance(obj, list) or not all(isinstance(i, str) for i in obj):
            raise DecodeError("expected list of strings", key)
        return obj

    from_dict = getattr(kind, "from_dict", None)
    if from_dict is None:
        raise TypeError(f"unsupported typed kind: {kind!r}")
    try:
        return from_dict(obj)
    except DecodeError as e:
        raise DecodeError(str(e), key) from e


# =============================================================================
# Store Contract
# =============================================================================


class KvStore(ABC):
    """
    Minimal key/value interface over byte keys and values.

    put() has overwrite semantics and either fully succeeds or raises;
    a partially written value is never observable.
    """

    @abstractmethod
    def get(self, key: bytes) -> Optional[bytes]:
        """Get value bytes for key, if present."""
        ...

    @abstractmethod
    def put(self, key: bytes, value: bytes) -> None:
        """Set value bytes for key, overwriting any existing value."""
        ...

    @abstractmethod
    def delete(self, key: bytes) -> bool:
        """Delete key; returns True if a value existed."""
        ...

    def get_t(self, key: bytes, kind: type[T]) -> Optional[T]:
        """
        Read and decode a typed value.

        Returns:
            The decoded value, or None if the key is absent

        Raises:
            DecodeError: If the stored payload is malformed
        """
        raw = self.get(key)
        if raw is None:
            return None
        return decode_value(raw, kind, key)

    def put_t(self, key: bytes, value: Any) -> None:
        """
        Encode and store a typed value.

        Raises:
            EncodeError: If the value is not serializable
        """
        self.put(key, encode_value(value))


# =============================================================================
# Filesystem Store
# =============================================================================


class FsKvStore(KvStore):
    """
    Filesystem-backed key/value store.

    Each key maps to one file under root named by the lowercase hex
    encoding of the key bytes, which is collision-free for arbitrary
    byte content. Writes go to a temp file in the same directory and are
    moved into place with os.replace().
    """

    def __init__(self, root: str | Path):
        self.root = Path(root)

    def path_for(self, key: bytes) -> Path:
        """Map a key to its file path."""
        return self.root / key.hex()

    def get(self, key: bytes) -> Optional[bytes]:
        path = self.path_for(key)
        try:
            return path.read_bytes()
        except FileNotFoundError:
            return None
        except OSError as e:
            raise StoreError(f"read {path}: {e}") from e

    def put(self, key: bytes, value: bytes) -> None:
        path = self.path_for(key)
        with self._atomic_write(path) as f:
            f.write(value)

    def delete(self, key: bytes) -> bool:
        path = self.path_for(key)
        try:
            path.unlink()
            return True
        except FileNotFoundError:
            return False
        except OSError as e:
            raise StoreError(f"delete {path}: {e}") from e

    @contextmanager
    def _atomic_write(self, path: Path) -> Iterator[Any]:
        """Write to a temp file, fsync, then replace path in one step."""
        try:
            fd, tmp_name = tempfile.mkstemp(
                prefix=TEMP_PREFIX, suffix=TEMP_SUFFIX, dir=self.root
            )
        except OSError as e:
            raise StoreError(f"create temp file in {self.root}: {e}") from e

        try:
            with os.fdopen(fd, "wb") as f:
                yield f
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_name, path)
        except OSError as e:
            self._discard(tmp_name)
            raise StoreError(f"write {path}: {e}") from e
        except BaseException:
            self._discard(tmp_name)
            raise

    @staticmethod
    def _discard(tmp_name: str) -> None:
        try:
            os.unlink(tmp_name)
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.warning(f"Could not remove temp file {tmp_name}: {e}")


# =============================================================================
# In-Memory Store
# =============================================================================


class MemoryKvStore(KvStore):
    """Thread-safe in-memory store. Contents are lost with the process."""

    def __init__(self):
        self._data: dict[bytes, bytes] = {}
        self._lock = threading.Lock()

    def get(self, key: bytes) -> Optional[bytes]:
        with self._lock:
            return self._data.get(bytes(key))

    def put(self, key: bytes, value: bytes) -> None:
        with self._lock:
            self._data[bytes(key)] = bytes(value)

    def delete(self, key: bytes) -> bool:
        with self._lock:
            return self._data.pop(bytes(key), None) is not None

    def __len__(self) -> int:
        with self._lock:
            return len(self._data)


def open_default(directory: str | Path) -> FsKvStore:
    """
    Open an FS-backed store rooted at directory, creating it if missing.

    Raises:
        StoreError: If the directory cannot be created or is not writable
    """
    root = Path(directory)
    try:
        root.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        raise StoreError(f"create kv dir {root}: {e}") from e

    if not root.is_dir() or not os.access(root, os.W_OK):
        raise StoreError(f"kv dir {root} is not a writable directory")

    logger.debug(f"Opened kv store at {root}")
    return FsKvStore(root)
