"""
Action Executor for the Job Scheduler.

Interprets one Action against the store or the operating environment
and reports success (returns None) or failure (raises ExecutionError).

What Executor MUST NOT do:
- Update JobState (the dispatcher folds outcomes into state)
- Decide backoff (RetryController's responsibility)
- Retry anything
"""

import logging
import subprocess
from typing import Any

from .entities import (
    Action,
    DecodeMode,
    ExecAction,
    HttpAction,
    KvDelAction,
    KvPutAction,
    NoopAction,
    U32_MAX,
    U64_MAX,
)
from .errors import (
    NonZeroExit,
    NotImplementedAction,
    OutOfRange,
    SpawnError,
    Timeout,
    TypeMismatch,
    UnknownDecode,
)
from .persistence import KvStore


logger = logging.getLogger(__name__)


def _as_unsigned(value: Any) -> int:
    """Coerce a scalar to a non-negative integer or raise TypeMismatch."""
    if isinstance(value, bool):
        raise TypeMismatch("value must be number")
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    if not isinstance(value, int) or value < 0:
        raise TypeMismatch("value must be a non-negative integer")
    return value


def _as_string(value: Any) -> str:
    if not isinstance(value, str):
        raise TypeMismatch("value must be string")
    return value


def put_decoded(store: KvStore, key: bytes, decode: str, value: Any) -> None:
    """
    Store value at key according to a decode mode.

    Shared by kv_put actions and raw key writes from the CLI / HTTP API.

    Raises:
        TypeMismatch: value has the wrong type for decode
        OutOfRange: integral value exceeds the u32/u64 width
        UnknownDecode: decode is not a known mode
    """
    if decode in (DecodeMode.RAW.value, DecodeMode.UTF8.value):
        store.put(key, _as_string(value).encode("utf-8"))
    elif decode == DecodeMode.STRING.value:
        store.put_t(key, _as_string(value))
    elif decode == DecodeMode.U32.value:
        n = _as_unsigned(value)
        if n > U32_MAX:
            raise OutOfRange(n, U32_MAX)
        store.put_t(key, n)
    elif decode == DecodeMode.U64.value:
        n = _as_unsigned(value)
        if n > U64_MAX:
            raise OutOfRange(n, U64_MAX)
        store.put_t(key, n)
    else:
        raise UnknownDecode(decode)


class Executor:
    """
    Executes actions against a store.

    Execution is synchronous; the dispatcher runs each call in its own
    worker thread.
    """

    def __init__(self, store: KvStore):
        self.store = store

    def execute(self, action: Action) -> None:
        """
        Execute one action.

        Raises:
            ExecutionError: If the action fails
            StoreError: If the store fails while the action runs
        """
        if isinstance(action, NoopAction):
            return
        if isinstance(action, KvPutAction):
            put_decoded(self.store, action.key.encode("utf-8"), action.decode, action.value)
            return
        if isinstance(action, KvDelAction):
            existed = self.store.delete(action.key.encode("utf-8"))
            if not existed:
                logger.debug(f"kv_del: key {action.key!r} was already absent")
            return
        if isinstance(action, ExecAction):
            self._run_exec(action)
            return
        if isinstance(action, HttpAction):
            raise NotImplementedAction("http")
        raise TypeError(f"Unknown action: {action!r}")

    def _run_exec(self, action: ExecAction) -> None:
        """Spawn the command and wait for it, honouring timeout_ms."""
        cmd = [action.cmd, *action.args]
        logger.debug(f"Executing: {' '.join(cmd)}")

        try:
            process = subprocess.Popen(
                cmd,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.DEVNULL,
                stderr=subprocess.DEVNULL,
            )
        except OSError as e:
            raise SpawnError(f"cannot spawn {action.cmd!r}: {e}") from e

        timeout = action.timeout_ms / 1000.0 if action.timeout_ms is not None else None
        try:
            exit_code = process.wait(timeout=timeout)
        except subprocess.TimeoutExpired:
            process.kill()
            process.wait()
            raise Timeout(action.cmd, action.timeout_ms)

        if exit_code != 0:
            raise NonZeroExit(action.cmd, exit_code)


def execute(action: Action, store: KvStore) -> None:
    """Execute one action against store. See Executor.execute()."""
    Executor(store).execute(action)
