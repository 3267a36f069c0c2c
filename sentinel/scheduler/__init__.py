"""
Job Scheduler Core Module.

- entities: JobSpec, Action variants, LegacySpec, JobState
- persistence: key-value store and typed layer
- resolver: versioned spec decoders
- executor: action execution
- retry_controller: due/backoff state machine
- dispatcher: tick loop and concurrency-gated dispatch
- registry: job and raw key operations shared by CLI and HTTP
- heartbeat: persisted liveness counter
- service: component wiring and lifecycle
"""

from .entities import (
    Action,
    ActionType,
    DecodeMode,
    NoopAction,
    ExecAction,
    HttpAction,
    KvPutAction,
    KvDelAction,
    JobSpec,
    LegacySpec,
    JobState,
    JobView,
    action_from_dict,
)
from .errors import (
    SentinelError,
    StoreError,
    EncodeError,
    DecodeError,
    ExecutionError,
    TypeMismatch,
    OutOfRange,
    UnknownDecode,
    Timeout,
    NonZeroExit,
    SpawnError,
    NotImplementedAction,
    InvalidJobError,
)
from .persistence import (
    KvStore,
    FsKvStore,
    MemoryKvStore,
    U32,
    U64,
    ns,
    open_default,
)
from .resolver import resolve_spec, resolve_blob
from .executor import Executor, execute
from .retry_controller import RetryController
from .dispatcher import Dispatcher, DispatcherState
from .heartbeat import Heartbeat
from .service import SchedulerService

__all__ = [
    # Entities
    "Action",
    "ActionType",
    "DecodeMode",
    "NoopAction",
    "ExecAction",
    "HttpAction",
    "KvPutAction",
    "KvDelAction",
    "JobSpec",
    "LegacySpec",
    "JobState",
    "JobView",
    "action_from_dict",
    # Errors
    "SentinelError",
    "StoreError",
    "EncodeError",
    "DecodeError",
    "ExecutionError",
    "TypeMismatch",
    "OutOfRange",
    "UnknownDecode",
    "Timeout",
    "NonZeroExit",
    "SpawnError",
    "NotImplementedAction",
    "InvalidJobError",
    # Persistence
    "KvStore",
    "FsKvStore",
    "MemoryKvStore",
    "U32",
    "U64",
    "ns",
    "open_default",
    # Resolution
    "resolve_spec",
    "resolve_blob",
    # Executor
    "Executor",
    "execute",
    # Retry
    "RetryController",
    # Dispatcher
    "Dispatcher",
    "DispatcherState",
    # Heartbeat
    "Heartbeat",
    # Service
    "SchedulerService",
]
