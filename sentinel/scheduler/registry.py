"""
Job registry operations.

Shared by the CLI and the HTTP front-end so that every surface follows
the same rules as the dispatcher:
- upsert appends the id if new, replaces the spec and resets state
- delete removes the id and its spec/state entries; unknown ids are a no-op
- list skips jobs whose spec does not resolve

Also hosts raw key get/put/delete with the raw|utf8|string|u32|u64
decode vocabulary.
"""

import logging
from typing import Any, Union

from .entities import DecodeMode, JobSpec, JobState, JobView, LegacySpec
from .errors import DecodeError, InvalidJobError, UnknownDecode
from .executor import put_decoded
from .persistence import (
    KvStore,
    U32,
    U64,
    registry_key,
    spec_key,
    state_key,
)
from .resolver import resolve_spec


logger = logging.getLogger(__name__)


# =============================================================================
# Registry
# =============================================================================


def read_registry(store: KvStore) -> list[str]:
    """
    Read the ordered list of job ids.

    Raises:
        DecodeError: If the registry payload is malformed
    """
    return store.get_t(registry_key(), list) or []


def write_registry(store: KvStore, ids: list[str]) -> None:
    """Persist the registry, dropping duplicate ids while keeping order."""
    seen = set()
    unique = []
    for job_id in ids:
        if job_id not in seen:
            seen.add(job_id)
            unique.append(job_id)
    store.put_t(registry_key(), unique)


def read_state(store: KvStore, job_id: str) -> JobState:
    """Read a job's state; missing or undecodable state is the default."""
    try:
        return store.get_t(state_key(job_id), JobState) or JobState()
    except DecodeError as e:
        logger.warning(f"State for job {job_id} is unreadable, using default: {e}")
        return JobState()


def _validate_id(job_id: str) -> None:
    if not isinstance(job_id, str) or not job_id:
        raise InvalidJobError("job id must be a non-empty string")


def list_jobs(store: KvStore) -> list[JobView]:
    """List registered jobs with their resolved spec and state."""
    views = []
    for job_id in read_registry(store):
        spec = resolve_spec(store, job_id)
        if spec is None:
            continue
        views.append(JobView(id=job_id, spec=spec, state=read_state(store, job_id)))
    return views


def get_job(store: KvStore, job_id: str) -> JobView | None:
    """Get one registered job, or None if unknown or unresolvable."""
    if job_id not in read_registry(store):
        return None
    spec = resolve_spec(store, job_id)
    if spec is None:
        return None
    return JobView(id=job_id, spec=spec, state=read_state(store, job_id))


def upsert_job(store: KvStore, job_id: str, spec: Union[JobSpec, LegacySpec]) -> None:
    """
    Create or replace a job.

    Appends the id to the registry if new, writes the spec and resets the
    state to its default.

    Raises:
        InvalidJobError: If the id is empty, spec has the wrong type or
            spec would not decode again (e.g. a uint64 field out of range)
    """
    _validate_id(job_id)
    if not isinstance(spec, (JobSpec, LegacySpec)):
        raise InvalidJobError(f"unsupported spec type: {type(spec).__name__}")

    # Only write what the resolver can read back
    try:
        spec = type(spec).from_dict(spec.to_dict())
    except DecodeError as e:
        raise InvalidJobError(f"invalid spec for job {job_id}: {e}") from e

    ids = read_registry(store)
    if job_id not in ids:
        ids.append(job_id)
        write_registry(store, ids)

    store.put_t(spec_key(job_id), spec)
    store.put_t(state_key(job_id), JobState())
    logger.info(f"Upserted job {job_id}")


def upsert_legacy_job(store: KvStore, job_id: str, cmd: str, period_ms: int) -> None:
    """Create or replace a job using the legacy {cmd, period_ms} shape."""
    upsert_job(store, job_id, LegacySpec(cmd=cmd, period_ms=period_ms))


def delete_job(store: KvStore, job_id: str) -> bool:
    """
    Delete a job and its spec/state entries.

    Returns:
        True if the id was registered, False otherwise (no-op)
    """
    ids = read_registry(store)
    if job_id not in ids:
        logger.debug(f"Delete of unknown job {job_id} ignored")
        return False

    write_registry(store, [i for i in ids if i != job_id])
    store.delete(spec_key(job_id))
    store.delete(state_key(job_id))
    logger.info(f"Deleted job {job_id}")
    return True


# =============================================================================
# Raw Key Operations
# =============================================================================


def kv_get(store: KvStore, key: str, decode: str = DecodeMode.RAW.value) -> Any:
    """
    Read a raw key with a decode mode.

    - raw: bytes decoded as UTF-8, invalid sequences replaced
    - utf8: strict UTF-8
    - string / u32 / u64: typed layer

    Returns:
        The decoded value, or None if the key is absent

    Raises:
        DecodeError: If the payload cannot be decoded as requested
        UnknownDecode: If decode is not a known mode
    """
    kb = key.encode("utf-8")

    if decode == DecodeMode.RAW.value:
        raw = store.get(kb)
        return None if raw is None else raw.decode("utf-8", errors="replace")
    if decode == DecodeMode.UTF8.value:
        raw = store.get(kb)
        if raw is None:
            return None
        try:
            return raw.decode("utf-8")
        except UnicodeDecodeError as e:
            raise DecodeError("non-utf8", kb) from e
    if decode == DecodeMode.STRING.value:
        return store.get_t(kb, str)
    if decode == DecodeMode.U32.value:
        return store.get_t(kb, U32)
    if decode == DecodeMode.U64.value:
        return store.get_t(kb, U64)
    raise UnknownDecode(decode)


def kv_put(store: KvStore, key: str, decode: str, value: Any) -> None:
    """Write a raw key with the same validation as kv_put actions."""
    put_decoded(store, key.encode("utf-8"), decode, value)


def kv_delete(store: KvStore, key: str) -> bool:
    """Delete a raw key; returns True if a value existed."""
    return store.delete(key.encode("utf-8"))
