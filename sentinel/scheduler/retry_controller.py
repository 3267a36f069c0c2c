"""
Retry Controller for the Job Scheduler.

Owns the due/backoff state machine:
- effective period: backoff_ms when a backoff is active, else period_ms
- due check with saturating subtraction (a clock moving backward never
  makes a job due forever)
- state transitions after success / failure

Backoff calculation on failure:
    backoff' = min(max(backoff, period) * 2, max_backoff)
Example with period=1s, max=60s: 2s -> 4s -> 8s -> ... -> 60s

What RetryController MUST NOT do:
- Execute actions
- Read or write the store
"""

import logging

from .entities import JobSpec, JobState, U64_MAX


logger = logging.getLogger(__name__)


DEFAULT_MAX_BACKOFF_MS = 60_000


# =============================================================================
# Saturating u64 arithmetic
# =============================================================================


def sat_add(a: int, b: int) -> int:
    return min(a + b, U64_MAX)


def sat_sub(a: int, b: int) -> int:
    return max(a - b, 0)


def sat_mul(a: int, b: int) -> int:
    return min(a * b, U64_MAX)


def clamp_u64(value: int) -> int:
    return min(max(value, 0), U64_MAX)


class RetryController:
    """
    Computes due-ness and post-execution state.

    All methods are pure: they take a JobState and return a new one.
    """

    def __init__(self, max_backoff_ms: int = DEFAULT_MAX_BACKOFF_MS):
        """
        Initialize RetryController.

        Args:
            max_backoff_ms: Hard ceiling for backoff_ms
        """
        self.max_backoff_ms = clamp_u64(max_backoff_ms)

    # =========================================================================
    # Due Evaluation
    # =========================================================================

    @staticmethod
    def effective_period(spec: JobSpec, state: JobState) -> int:
        """Period currently in force for a job."""
        return state.backoff_ms if state.backoff_ms > 0 else spec.period_ms

    def is_due(self, spec: JobSpec, state: JobState, now_ms: int) -> bool:
        """True iff now - last_run >= effective period (saturating)."""
        elapsed = sat_sub(clamp_u64(now_ms), state.last_run_ms)
        return elapsed >= self.effective_period(spec, state)

    # =========================================================================
    # State Transitions
    # =========================================================================

    def on_success(self, state: JobState, now_ms: int) -> JobState:
        """Success: count the run and clear failures and backoff."""
        return state.evolve(
            last_run_ms=clamp_u64(now_ms),
            runs=sat_add(state.runs, 1),
            failures=0,
            backoff_ms=0,
        )

    def on_failure(self, state: JobState, spec: JobSpec, now_ms: int) -> JobState:
        """Failure: count it and double the backoff up to the ceiling."""
        backoff = self.next_backoff(state, spec)
        return state.evolve(
            last_run_ms=clamp_u64(now_ms),
            failures=sat_add(state.failures, 1),
            backoff_ms=backoff,
        )

    def next_backoff(self, state: JobState, spec: JobSpec) -> int:
        """
        Calculate the next backoff.

        Formula: min(max(backoff, period) * 2, max_backoff)
        """
        base = max(state.backoff_ms, spec.period_ms)
        return min(sat_mul(base, 2), self.max_backoff_ms)
