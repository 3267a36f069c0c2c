"""
Scheduler-specific exceptions.

Taxonomy:
- StoreError: I/O failure at the storage layer
  - EncodeError: value could not be serialized by the typed layer
  - DecodeError: stored payload does not match the requested shape
- ExecutionError: an action ran and failed
  - TypeMismatch, OutOfRange, UnknownDecode (kv_put validation)
  - Timeout, NonZeroExit, SpawnError (exec)
  - NotImplementedAction (http)
- InvalidJobError: bad input given to registry operations

Saturation of the concurrency gate is not an exception; the dispatcher
skips the job and logs it.
"""

from typing import Optional


class SentinelError(Exception):
    """Base exception for all sentinel errors."""
    pass


class StoreError(SentinelError):
    """Raised when the key-value store cannot complete an operation."""
    pass


class EncodeError(StoreError):
    """Raised when a value cannot be serialized for storage."""
    pass


class DecodeError(StoreError):
    """
    Raised when a stored payload cannot be decoded into the requested type.

    Also used when a spec blob matches none of the known formats.
    """

    def __init__(self, message: str, key: Optional[bytes] = None):
        self.key = key
        if key is not None:
            message = f"{message} (key={key!r})"
        super().__init__(message)


class ExecutionError(SentinelError):
    """Base class for action execution failures."""

    kind = "execution"


class TypeMismatch(ExecutionError):
    """Raised when a kv_put value has the wrong type for its decode mode."""

    kind = "type_mismatch"


class OutOfRange(ExecutionError):
    """Raised when an integral value does not fit the target width."""

    kind = "out_of_range"

    def __init__(self, value: int, limit: int):
        self.value = value
        self.limit = limit
        super().__init__(f"value {value} out of range (max {limit})")


class UnknownDecode(ExecutionError):
    """Raised for a decode mode outside raw/utf8/string/u32/u64."""

    kind = "unknown_decode"

    def __init__(self, decode: str):
        self.decode = decode
        super().__init__(f"unknown decode {decode!r}")


class Timeout(ExecutionError):
    """Raised when an exec action does not exit before its deadline."""

    kind = "timeout"

    def __init__(self, cmd: str, timeout_ms: int):
        self.cmd = cmd
        self.timeout_ms = timeout_ms
        super().__init__(f"exec {cmd!r} timed out after {timeout_ms}ms")


class NonZeroExit(ExecutionError):
    """Raised when an exec action exits with a non-zero status."""

    kind = "non_zero_exit"

    def __init__(self, cmd: str, code: int):
        self.cmd = cmd
        self.code = code
        super().__init__(f"exec {cmd!r} exit status {code}")


class SpawnError(ExecutionError):
    """Raised when an exec action's process cannot be started."""

    kind = "spawn"


class NotImplementedAction(ExecutionError):
    """Raised for actions that are reserved but never executed (http)."""

    kind = "not_implemented"

    def __init__(self, action_type: str):
        self.action_type = action_type
        super().__init__(f"{action_type} action not implemented in runner")


class InvalidJobError(SentinelError):
    """Raised when a job id or spec given to a registry operation is invalid."""
    pass
