"""
Retry Controller Tests.

- Due evaluation, including a clock that moves backward
- Success/failure transitions
- Backoff growth, cap and saturation
"""

import pytest

from sentinel.scheduler import JobSpec, JobState, NoopAction, RetryController
from sentinel.scheduler.entities import U64_MAX
from sentinel.scheduler.retry_controller import sat_add, sat_mul, sat_sub


NOW = 1_767_225_600_000  # 2026-01-01T00:00:00Z


@pytest.fixture
def controller():
    return RetryController(max_backoff_ms=60_000)


def spec(period_ms: int = 1000) -> JobSpec:
    return JobSpec(period_ms=period_ms, action=NoopAction())


class TestIsDue:

    def test_new_job_is_due_immediately(self, controller):
        assert controller.is_due(spec(), JobState(), NOW)

    def test_not_due_before_period(self, controller):
        state = JobState(last_run_ms=NOW - 999)

        assert not controller.is_due(spec(1000), state, NOW)

    def test_due_exactly_at_period(self, controller):
        state = JobState(last_run_ms=NOW - 1000)

        assert controller.is_due(spec(1000), state, NOW)

    def test_backoff_replaces_period(self, controller):
        state = JobState(last_run_ms=NOW - 1500, backoff_ms=2000)

        assert not controller.is_due(spec(1000), state, NOW)
        assert controller.is_due(spec(1000), state, NOW + 500)

    def test_zero_period_is_always_due(self, controller):
        state = JobState(last_run_ms=NOW)

        assert controller.is_due(spec(0), state, NOW)

    def test_clock_moving_backward_is_not_due(self, controller):
        state = JobState(last_run_ms=NOW)

        assert not controller.is_due(spec(1000), state, NOW - 10_000)

    def test_negative_clock_is_clamped(self, controller):
        assert controller.is_due(spec(0), JobState(), -5)


class TestTransitions:

    def test_success_counts_run_and_clears_backoff(self, controller):
        state = JobState(last_run_ms=1, runs=3, failures=4, backoff_ms=8000)

        new = controller.on_success(state, NOW)

        assert new == JobState(last_run_ms=NOW, runs=4, failures=0, backoff_ms=0)

    def test_failure_doubles_period_first(self, controller):
        new = controller.on_failure(JobState(), spec(100), NOW)

        assert new == JobState(last_run_ms=NOW, runs=0, failures=1, backoff_ms=200)

    def test_failure_does_not_count_as_run(self, controller):
        new = controller.on_failure(JobState(runs=7), spec(), NOW)

        assert new.runs == 7

    def test_backoff_sequence(self, controller):
        state = JobState()
        seen = []
        for _ in range(8):
            state = controller.on_failure(state, spec(1000), NOW)
            seen.append(state.backoff_ms)

        assert seen == [2000, 4000, 8000, 16000, 32000, 60000, 60000, 60000]

    def test_backoff_is_monotonic_while_failing(self, controller):
        state = JobState()
        previous = 0
        for _ in range(20):
            state = controller.on_failure(state, spec(3), NOW)
            assert previous <= state.backoff_ms <= 60_000
            previous = state.backoff_ms

    def test_period_above_cap_is_capped(self, controller):
        new = controller.on_failure(JobState(), spec(90_000), NOW)

        assert new.backoff_ms == 60_000

    def test_zero_period_failure_keeps_zero_backoff(self, controller):
        new = controller.on_failure(JobState(), spec(0), NOW)

        assert new.backoff_ms == 0
        assert new.failures == 1

    def test_counters_saturate(self):
        controller = RetryController(max_backoff_ms=U64_MAX)
        state = JobState(runs=U64_MAX, failures=U64_MAX, backoff_ms=U64_MAX)

        assert controller.on_success(state, NOW).runs == U64_MAX
        failed = controller.on_failure(state, spec(), NOW)
        assert failed.failures == U64_MAX
        assert failed.backoff_ms == U64_MAX


class TestSaturatingArithmetic:

    def test_add(self):
        assert sat_add(U64_MAX, 1) == U64_MAX
        assert sat_add(1, 2) == 3

    def test_sub(self):
        assert sat_sub(1, 2) == 0
        assert sat_sub(5, 2) == 3

    def test_mul(self):
        assert sat_mul(U64_MAX, 2) == U64_MAX
        assert sat_mul(3, 2) == 6
