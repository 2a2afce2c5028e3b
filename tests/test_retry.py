"""
Tests for deterministic retry and backoff.
"""

from unittest.mock import Mock

import pytest
from pydantic import ValidationError

from idle_engine.config import RetryPolicy
from idle_engine.engine.retry import backoff_delays, invoke_with_retry, retry_seed
from idle_engine.errors import StepError, TransientStepError


class FlakyError(Exception):
    transient = True


class TestRetrySeed:
    def test_seed_is_stable(self):
        assert retry_seed("corr", "CreateIdentity", "Create", 0) == retry_seed("corr", "CreateIdentity", "Create", 0)

    def test_seed_depends_on_every_component(self):
        base = retry_seed("corr", "CreateIdentity", "Create", 0)
        assert retry_seed("corr-2", "CreateIdentity", "Create", 0) != base
        assert retry_seed("corr", "DeleteIdentity", "Create", 0) != base
        assert retry_seed("corr", "CreateIdentity", "Other", 0) != base
        assert retry_seed("corr", "CreateIdentity", "Create", 1) != base


class TestBackoffDelays:
    """Exponential backoff with cap and bounded jitter."""

    def test_one_delay_per_retry(self):
        assert len(backoff_delays(RetryPolicy(max_attempts=5), seed=1)) == 4
        assert backoff_delays(RetryPolicy(max_attempts=1), seed=1) == []

    def test_without_jitter(self):
        policy = RetryPolicy(max_attempts=4, initial_delay_ms=100, backoff_factor=2.0, jitter_ratio=0.0)
        assert backoff_delays(policy, seed=7) == [100, 200, 400]

    def test_capped_at_max_delay(self):
        policy = RetryPolicy(max_attempts=4, initial_delay_ms=1000, backoff_factor=10.0,
                             max_delay_ms=2000, jitter_ratio=0.0)
        assert backoff_delays(policy, seed=7) == [1000, 2000, 2000]

    def test_jitter_bounds(self):
        policy = RetryPolicy(max_attempts=3, initial_delay_ms=250, backoff_factor=2.0, jitter_ratio=0.2)
        for seed in range(50):
            first, second = backoff_delays(policy, seed)
            assert 200 <= first <= 300
            assert 400 <= second <= 600

    def test_jitter_never_exceeds_cap(self):
        policy = RetryPolicy(max_attempts=3, initial_delay_ms=1000, backoff_factor=1.0,
                             max_delay_ms=1000, jitter_ratio=1.0)
        for seed in range(50):
            assert all(0 <= d <= 1000 for d in backoff_delays(policy, seed))

    def test_same_seed_same_delays(self):
        policy = RetryPolicy(max_attempts=6)
        seed = retry_seed("corr", "A", "A", 3)
        assert backoff_delays(policy, seed) == backoff_delays(policy, seed)


class TestInvokeWithRetry:
    """Only transient errors are retried."""

    @pytest.fixture
    def policy(self):
        return RetryPolicy(max_attempts=3, jitter_ratio=0.0)

    def test_success_first_attempt(self, policy):
        sleep = Mock()
        outcome = invoke_with_retry(lambda: "ok", policy, seed=1, sleep=sleep)

        assert outcome.success
        assert outcome.value == "ok"
        assert outcome.attempts == 1
        sleep.assert_not_called()

    def test_transient_then_success(self, policy):
        operation = Mock(side_effect=[TransientStepError("busy"), "ok"])
        on_retry = Mock()
        sleep = Mock()

        outcome = invoke_with_retry(operation, policy, seed=1, on_retry=on_retry, sleep=sleep)

        assert outcome.success
        assert outcome.attempts == 2
        assert outcome.delays == [250]
        sleep.assert_called_once_with(0.25)
        attempt, delay_ms, error = on_retry.call_args.args
        assert (attempt, delay_ms) == (1, 250)
        assert isinstance(error, TransientStepError)

    def test_permanent_error_returned_immediately(self, policy):
        error = StepError("denied")
        outcome = invoke_with_retry(Mock(side_effect=error), policy, seed=1, sleep=Mock())

        assert not outcome.success
        assert outcome.error is error
        assert outcome.attempts == 1

    def test_any_exception_tagged_transient_is_retried(self, policy):
        operation = Mock(side_effect=[FlakyError(), FlakyError(), FlakyError()])
        sleep = Mock()

        outcome = invoke_with_retry(operation, policy, seed=1, sleep=sleep)

        assert not outcome.success
        assert isinstance(outcome.error, FlakyError)
        assert outcome.attempts == 3
        assert [c.args[0] for c in sleep.call_args_list] == [0.25, 0.5]


class TestRetryPolicy:
    def test_defaults(self):
        policy = RetryPolicy()
        assert (policy.max_attempts, policy.initial_delay_ms, policy.backoff_factor,
                policy.max_delay_ms, policy.jitter_ratio) == (3, 250, 2.0, 5000, 0.2)

    @pytest.mark.parametrize("kwargs", [
        {"max_attempts": 0},
        {"max_attempts": 11},
        {"jitter_ratio": 1.5},
        {"backoff_factor": 0.5},
        {"initial_delay_ms": 6000, "max_delay_ms": 5000},
    ])
    def test_invalid_policies(self, kwargs):
        with pytest.raises(ValidationError):
            RetryPolicy(**kwargs)
