"""
Spec resolution with compatibility fallbacks.

A stored spec blob is turned into a current-format JobSpec by trying an
ordered list of versioned decoders:

1. current      - native JobSpec encoding
2. legacy       - {cmd, period_ms}; cmd mapped to an Action
3. json_string  - a typed string whose content is a JSON JobSpec

If no decoder succeeds the job has no spec for this tick. Resolution
never raises and never touches the registry.
"""

import json
import logging
from typing import Callable, Optional

from .entities import JobSpec, LegacySpec, NoopAction, Action
from .errors import DecodeError, StoreError
from .persistence import KvStore, decode_value, spec_key


logger = logging.getLogger(__name__)


SpecDecoder = Callable[[bytes], JobSpec]


def decode_current(raw: bytes) -> JobSpec:
    """Decode the native JobSpec encoding."""
    return decode_value(raw, JobSpec)


def legacy_action(cmd: str) -> Action:
    """
    Map a legacy cmd to an Action.

    Only "noop" is known; every other command also degrades to Noop.
    """
    if cmd != "noop":
        logger.warning(f"legacy cmd {cmd!r} -> noop")
    return NoopAction()


def decode_legacy(raw: bytes) -> JobSpec:
    """Decode a LegacySpec and upgrade it to a JobSpec."""
    old = decode_value(raw, LegacySpec)
    return JobSpec(period_ms=old.period_ms, action=legacy_action(old.cmd))


def decode_json_string(raw: bytes) -> JobSpec:
    """Decode a typed string, then parse its content as a JSON JobSpec."""
    text = decode_value(raw, str)
    try:
        obj = json.loads(text)
    except ValueError as e:
        raise DecodeError(f"string spec is not JSON: {e}") from e
    return JobSpec.from_dict(obj)


# Tried in order; the first decoder that succeeds wins.
SPEC_DECODERS: list[tuple[str, SpecDecoder]] = [
    ("current", decode_current),
    ("legacy", decode_legacy),
    ("json_string", decode_json_string),
]


def resolve_blob(raw: bytes) -> Optional[JobSpec]:
    """
    Resolve a raw spec blob through the decoder chain.

    Returns:
        The JobSpec, or None if no decoder accepts the blob
    """
    for name, decoder in SPEC_DECODERS:
        try:
            spec = decoder(raw)
        except DecodeError:
            continue
        if name != "current":
            logger.debug(f"Spec resolved via {name} decoder")
        return spec
    return None


def resolve_spec(store: KvStore, job_id: str) -> Optional[JobSpec]:
    """
    Resolve the spec stored for job_id.

    Returns:
        The JobSpec, or None if the spec is missing, unreadable or matches
        no known format
    """
    try:
        raw = store.get(spec_key(job_id))
    except StoreError as e:
        logger.warning(f"Cannot read spec for job {job_id}: {e}")
        return None

    if raw is None:
        logger.debug(f"Job {job_id} has no spec, skipping")
        return None

    spec = resolve_blob(raw)
    if spec is None:
        logger.warning(f"Job {job_id} spec matches no known format, skipping")
    return spec
