"""
Scheduler Domain Entities.

Persisted shapes:
- JobSpec: what a job does (Action) and how often (period_ms)
- Action variants: noop | exec | http | kv_put | kv_del
- LegacySpec: older {cmd, period_ms} shape, kept for read-compatibility
- JobState: mutable run history of a job

Entities are encoded as JSON objects through to_dict()/from_dict().
Actions carry their variant name in the "type" field.
"""

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Optional, Union

from .errors import DecodeError


U32_MAX = 2**32 - 1
U64_MAX = 2**64 - 1


class ActionType(str, Enum):
    """Action variant tags as stored in the "type" field."""

    NOOP = "noop"
    EXEC = "exec"
    HTTP = "http"
    KV_PUT = "kv_put"
    KV_DEL = "kv_del"


class DecodeMode(str, Enum):
    """
    Decode vocabulary shared by kv_put actions and raw key operations.

    - RAW / UTF8: value bytes are the UTF-8 encoding of a string
    - STRING: value stored through the typed (JSON) encoder
    - U32 / U64: non-negative integer stored through the typed encoder
    """

    RAW = "raw"
    UTF8 = "utf8"
    STRING = "string"
    U32 = "u32"
    U64 = "u64"


# Closed set of scalar types a kv_put value may hold at rest
Scalar = Union[str, int, float, bool, None]


# =============================================================================
# Field validation helpers
# =============================================================================


def _require_dict(data: Any, what: str) -> dict:
    if not isinstance(data, dict):
        raise DecodeError(f"{what}: expected object, got {type(data).__name__}")
    return data


def _u64(data: dict, name: str, what: str, default: Optional[int] = None) -> int:
    value = data.get(name, default)
    if value is None:
        raise DecodeError(f"{what}: missing field '{name}'")
    if isinstance(value, bool) or not isinstance(value, int):
        raise DecodeError(f"{what}: '{name}' must be an unsigned integer")
    if value < 0 or value > U64_MAX:
        raise DecodeError(f"{what}: '{name}' out of u64 range")
    return value


def _opt_u64(data: dict, name: str, what: str) -> Optional[int]:
    if data.get(name) is None:
        return None
    return _u64(data, name, what)


def _str(data: dict, name: str, what: str) -> str:
    value = data.get(name)
    if not isinstance(value, str):
        raise DecodeError(f"{what}: '{name}' must be a string")
    return value


def _opt_str(data: dict, name: str, what: str) -> Optional[str]:
    if data.get(name) is None:
        return None
    return _str(data, name, what)


def _scalar(value: Any, what: str) -> Scalar:
    if value is None or isinstance(value, (str, bool, int, float)):
        return value
    raise DecodeError(f"{what}: value must be a scalar, got {type(value).__name__}")


# =============================================================================
# Actions
# =============================================================================


@dataclass(frozen=True)
class NoopAction:
    """Do nothing."""

    type = ActionType.NOOP

    def to_dict(self) -> dict:
        return {"type": self.type.value}


@dataclass(frozen=True)
class ExecAction:
    """Execute an OS command (no shell)."""

    cmd: str
    args: tuple[str, ...] = ()
    timeout_ms: Optional[int] = None

    type = ActionType.EXEC

    def to_dict(self) -> dict:
        return {
            "type": self.type.value,
            "cmd": self.cmd,
            "args": list(self.args),
            "timeout_ms": self.timeout_ms,
        }


@dataclass(frozen=True)
class HttpAction:
    """HTTP call. Reserved: accepted in specs, never executed."""

    url: str
    method: Optional[str] = None
    body: Optional[str] = None
    timeout_ms: Optional[int] = None

    type = ActionType.HTTP

    def to_dict(self) -> dict:
        return {
            "type": self.type.value,
            "url": self.url,
            "method": self.method,
            "body": self.body,
            "timeout_ms": self.timeout_ms,
        }


@dataclass(frozen=True)
class KvPutAction:
    """
    Write a value into the store.

    decode stays a plain string at rest; unknown modes are rejected when
    the action executes, not when it is decoded.
    """

    key: str
    decode: str
    value: Scalar = None

    type = ActionType.KV_PUT

    def to_dict(self) -> dict:
        return {
            "type": self.type.value,
            "key": self.key,
            "decode": self.decode,
            "value": self.value,
        }


@dataclass(frozen=True)
class KvDelAction:
    """Delete a key from the store."""

    key: str

    type = ActionType.KV_DEL

    def to_dict(self) -> dict:
        return {"type": self.type.value, "key": self.key}


Action = Union[NoopAction, ExecAction, HttpAction, KvPutAction, KvDelAction]


def action_from_dict(data: Any) -> Action:
    """
    Decode an Action from its tagged JSON object.

    Raises:
        DecodeError: If the tag is unknown or a field has the wrong type
    """
    data = _require_dict(data, "action")
    tag = data.get("type")

    if tag == ActionType.NOOP.value:
        return NoopAction()

    if tag == ActionType.EXEC.value:
        args = data.get("args") or []
        if not isinstance(args, list) or not all(isinstance(a, str) for a in args):
            raise DecodeError("exec: 'args' must be a list of strings")
        return ExecAction(
            cmd=_str(data, "cmd", "exec"),
            args=tuple(args),
            timeout_ms=_opt_u64(data, "timeout_ms", "exec"),
        )

    if tag == ActionType.HTTP.value:
        return HttpAction(
            url=_str(data, "url", "http"),
            method=_opt_str(data, "method", "http"),
            body=_opt_str(data, "body", "http"),
            timeout_ms=_opt_u64(data, "timeout_ms", "http"),
        )

    if tag == ActionType.KV_PUT.value:
        if "value" not in data:
            raise DecodeError("kv_put: missing field 'value'")
        return KvPutAction(
            key=_str(data, "key", "kv_put"),
            decode=_str(data, "decode", "kv_put"),
            value=_scalar(data["value"], "kv_put"),
        )

    if tag == ActionType.KV_DEL.value:
        return KvDelAction(key=_str(data, "key", "kv_del"))

    raise DecodeError(f"action: unknown type {tag!r}")


# =============================================================================
# Specs and state
# =============================================================================


@dataclass(frozen=True)
class JobSpec:
    """
    A scheduled job specification.

    Immutable once stored; replacing it through an upsert resets the
    job's state.
    """

    period_ms: int
    action: Action = field(default_factory=NoopAction)

    def to_dict(self) -> dict:
        return {"period_ms": self.period_ms, "action": self.action.to_dict()}

    @classmethod
    def from_dict(cls, data: Any) -> "JobSpec":
        data = _require_dict(data, "spec")
        if "action" not in data:
            raise DecodeError("spec: missing field 'action'")
        return cls(
            period_ms=_u64(data, "period_ms", "spec"),
            action=action_from_dict(data["action"]),
        )


@dataclass(frozen=True)
class LegacySpec:
    """Legacy job spec (cmd + period). Only read, never written by the scheduler."""

    cmd: str
    period_ms: int

    def to_dict(self) -> dict:
        return {"cmd": self.cmd, "period_ms": self.period_ms}

    @classmethod
    def from_dict(cls, data: Any) -> "LegacySpec":
        data = _require_dict(data, "legacy spec")
        return cls(
            cmd=_str(data, "cmd", "legacy spec"),
            period_ms=_u64(data, "period_ms", "legacy spec"),
        )


@dataclass(frozen=True)
class JobState:
    """
    Runtime state for a job.

    All counters are unsigned 64-bit and updated with saturating
    arithmetic. backoff_ms == 0 means no active backoff.
    """

    last_run_ms: int = 0
    runs: int = 0
    failures: int = 0
    backoff_ms: int = 0

    def to_dict(self) -> dict:
        return {
            "last_run_ms": self.last_run_ms,
            "runs": self.runs,
            "failures": self.failures,
            "backoff_ms": self.backoff_ms,
        }

    @classmethod
    def from_dict(cls, data: Any) -> "JobState":
        data = _require_dict(data, "state")
        return cls(
            last_run_ms=_u64(data, "last_run_ms", "state", default=0),
            runs=_u64(data, "runs", "state", default=0),
            failures=_u64(data, "failures", "state", default=0),
            backoff_ms=_u64(data, "backoff_ms", "state", default=0),
        )

    def evolve(self, **changes) -> "JobState":
        """Return a copy with the given fields replaced."""
        return replace(self, **changes)


@dataclass(frozen=True)
class JobView:
    """A registry entry joined with its resolved spec and current state."""

    id: str
    spec: JobSpec
    state: JobState

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "spec": self.spec.to_dict(),
            "state": self.state.to_dict(),
        }
