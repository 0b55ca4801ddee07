"""Tests for the retry decision engine."""

import random
from datetime import timedelta

import pytest

from recourse.application.decision_engine import RetryDecisionEngine, evaluate
from recourse.domain.config import RetryPolicyBuilder
from recourse.domain.models import AttemptOutcome, ExecutionAttemptHistory, VerdictKind


def _history(attempt_number: int, elapsed: float = 0.0) -> ExecutionAttemptHistory:
    return ExecutionAttemptHistory(attempt_number=attempt_number, elapsed=timedelta(seconds=elapsed))


def _fail(history: ExecutionAttemptHistory, engine: RetryDecisionEngine, policy, elapsed: float = 0.0):
    outcome = AttemptOutcome.failed(RuntimeError("boom"))
    history.record(outcome, timedelta(seconds=elapsed))
    return engine.evaluate(policy, history, outcome)


class TestVerdicts:
    """Tests for verdict selection"""

    def test_success(self):
        """Test a successful attempt yields SUCCEED"""
        policy = RetryPolicyBuilder().build()
        verdict = evaluate(policy, _history(1), AttemptOutcome.succeeded("ok"))
        assert verdict.kind is VerdictKind.SUCCEED
        assert verdict.is_complete

    def test_retries_then_exceeded(self):
        """Test max_retries=2 gives RETRY, RETRY, RETRIES_EXCEEDED"""
        policy = RetryPolicyBuilder().with_max_retries(2).build()
        engine = RetryDecisionEngine()
        history = ExecutionAttemptHistory()

        kinds = [_fail(history, engine, policy).kind for _ in range(3)]

        assert kinds == [VerdictKind.RETRY, VerdictKind.RETRY, VerdictKind.RETRIES_EXCEEDED]

    def test_zero_retries(self):
        policy = RetryPolicyBuilder().with_max_retries(0).build()
        verdict = RetryDecisionEngine().evaluate(policy, _history(1), AttemptOutcome.failed(RuntimeError()))
        assert verdict.kind is VerdictKind.RETRIES_EXCEEDED

    def test_unlimited_retries(self):
        policy = RetryPolicyBuilder().with_max_retries(-1).build()
        verdict = RetryDecisionEngine().evaluate(policy, _history(1000), AttemptOutcome.failed(RuntimeError()))
        assert verdict.kind is VerdictKind.RETRY

    def test_abort_on_failure_type(self):
        """Test an abort condition wins even when retries remain"""
        policy = RetryPolicyBuilder().with_max_retries(5).abort_on(PermissionError).build()
        engine = RetryDecisionEngine()
        history = ExecutionAttemptHistory()
        assert _fail(history, engine, policy).kind is VerdictKind.RETRY

        outcome = AttemptOutcome.failed(PermissionError("denied"))
        history.record(outcome, timedelta(0))
        assert engine.evaluate(policy, history, outcome).kind is VerdictKind.ABORT

    def test_abort_on_result(self):
        policy = RetryPolicyBuilder().abort_when("poison").build()
        verdict = evaluate(policy, _history(1), AttemptOutcome.succeeded("poison"))
        assert verdict.kind is VerdictKind.ABORT

    def test_result_classified_as_failure_is_retried(self):
        policy = RetryPolicyBuilder().build()
        outcome = AttemptOutcome(result=None, failure=None, is_failure=True)
        assert evaluate(policy, _history(1), outcome).kind is VerdictKind.RETRY

    def test_decide_with_preclassified_flags(self):
        policy = RetryPolicyBuilder().build()
        engine = RetryDecisionEngine()
        assert engine.decide(policy, _history(1), is_failure=False, is_abortable=True).kind is VerdictKind.ABORT
        assert engine.decide(policy, _history(1), is_failure=True, is_abortable=False).kind is VerdictKind.RETRY

    def test_max_duration_exceeded(self):
        """Test elapsed time reaching max_duration yields RETRIES_EXCEEDED"""
        policy = RetryPolicyBuilder().with_max_retries(-1).with_max_duration(10).build()
        engine = RetryDecisionEngine()
        outcome = AttemptOutcome.failed(RuntimeError())
        assert engine.evaluate(policy, _history(3, elapsed=9.5), outcome).kind is VerdictKind.RETRY
        assert engine.evaluate(policy, _history(4, elapsed=10), outcome).kind is VerdictKind.RETRIES_EXCEEDED
        assert engine.evaluate(policy, _history(5, elapsed=12), outcome).kind is VerdictKind.RETRIES_EXCEEDED


class TestDelays:
    """Tests for delay computation"""

    def test_no_delay(self):
        policy = RetryPolicyBuilder().build()
        verdict = evaluate(policy, _history(1), AttemptOutcome.failed(RuntimeError()))
        assert verdict.delay == timedelta(0)

    def test_fixed_delay(self):
        policy = RetryPolicyBuilder().with_delay(timedelta(milliseconds=250)).build()
        verdict = evaluate(policy, _history(1), AttemptOutcome.failed(RuntimeError()))
        assert verdict.delay == timedelta(milliseconds=250)

    def test_backoff_sequence(self):
        """Test backoff doubles from the base delay and stays clamped at max_delay"""
        policy = RetryPolicyBuilder().with_backoff(1, 10, 2).with_max_retries(-1).build()
        engine = RetryDecisionEngine()

        delays = [engine.compute_delay(policy, _history(n)).total_seconds() for n in range(1, 8)]

        assert delays == [1, 2, 4, 8, 10, 10, 10]

    def test_backoff_overflow_saturates(self):
        policy = RetryPolicyBuilder().with_backoff(1, 10).with_max_retries(-1).build()
        delay = RetryDecisionEngine().compute_delay(policy, _history(5000))
        assert delay == timedelta(seconds=10)

    def test_random_delay_within_bounds(self):
        policy = RetryPolicyBuilder().with_delay_range(timedelta(milliseconds=100), timedelta(milliseconds=300)).build()
        engine = RetryDecisionEngine()
        delays = {engine.compute_delay(policy, _history(1)) for _ in range(500)}
        assert all(timedelta(milliseconds=100) <= d <= timedelta(milliseconds=300) for d in delays)
        assert len(delays) > 1

    def test_jitter_factor_bounds(self):
        policy = RetryPolicyBuilder().with_delay(1).with_jitter_factor(0.25).build()
        engine = RetryDecisionEngine()
        for _ in range(500):
            seconds = engine.compute_delay(policy, _history(1)).total_seconds()
            assert 0.75 - 1e-6 <= seconds <= 1.25 + 1e-6

    def test_jitter_duration_bounds(self):
        policy = RetryPolicyBuilder().with_delay(1).with_jitter(timedelta(milliseconds=100)).build()
        engine = RetryDecisionEngine()
        for _ in range(500):
            seconds = engine.compute_delay(policy, _history(1)).total_seconds()
            assert 0.9 - 1e-6 <= seconds <= 1.1 + 1e-6

    def test_jitter_never_negative(self):
        """Test jitter as large as the delay never produces a negative delay"""
        policy = RetryPolicyBuilder().with_delay(1).with_jitter_factor(1.0).build()
        engine = RetryDecisionEngine()
        assert all(engine.compute_delay(policy, _history(1)) >= timedelta(0) for _ in range(500))

    def test_delay_clamped_to_remaining_duration(self):
        """Test the delay never pushes elapsed time past max_duration"""
        policy = RetryPolicyBuilder().with_delay(4).with_max_duration(10).with_max_retries(-1).build()
        verdict = RetryDecisionEngine().evaluate(
            policy, _history(3, elapsed=8), AttemptOutcome.failed(RuntimeError())
        )
        assert verdict.kind is VerdictKind.RETRY
        assert verdict.delay == timedelta(seconds=2)

    def test_elapsed_plus_delay_within_max_duration(self):
        policy = (
            RetryPolicyBuilder()
            .with_delay_range(1, 3)
            .with_jitter(0.5)
            .with_max_duration(10)
            .with_max_retries(-1)
            .build()
        )
        engine = RetryDecisionEngine()
        for elapsed in [0, 2.5, 7.9, 9.0, 9.99]:
            delay = engine.compute_delay(policy, _history(2, elapsed=elapsed))
            assert timedelta(seconds=elapsed) + delay <= timedelta(seconds=10)

    def test_seeded_random_factory(self):
        """Test a seeded factory makes random delays reproducible"""
        policy = RetryPolicyBuilder().with_delay_range(1, 2).build()
        first = RetryDecisionEngine(random_factory=lambda: random.Random(7))
        second = RetryDecisionEngine(random_factory=lambda: random.Random(7))
        assert first.compute_delay(policy, _history(1)) == second.compute_delay(policy, _history(1))

    @pytest.mark.parametrize("attempt_number", [1, 2, 3])
    def test_retry_verdict_carries_delay(self, attempt_number):
        policy = RetryPolicyBuilder().with_backoff(1, 100).with_max_retries(-1).build()
        verdict = evaluate(policy, _history(attempt_number), AttemptOutcome.failed(RuntimeError()))
        assert verdict.should_retry
        assert verdict.delay == timedelta(seconds=2 ** (attempt_number - 1))


class CountingRandomFactory:
    """random_factory that records every generator it creates"""

    def __init__(self):
        self.created: list[random.Random] = []

    def __call__(self) -> random.Random:
        rng = random.Random(len(self.created))
        self.created.append(rng)
        return rng


class TestRandomGenerators:
    """Tests for per-evaluation random generators"""

    def test_each_evaluation_creates_a_generator(self):
        factory = CountingRandomFactory()
        engine = RetryDecisionEngine(random_factory=factory)
        policy = RetryPolicyBuilder().with_delay_range(1, 2).with_max_retries(-1).build()

        for attempt_number in range(1, 6):
            verdict = engine.evaluate(policy, _history(attempt_number), AttemptOutcome.failed(RuntimeError()))
            assert verdict.kind is VerdictKind.RETRY

        assert len(factory.created) == 5
        assert len({id(rng) for rng in factory.created}) == 5

    def test_jitter_only_retry_uses_fresh_generator(self):
        factory = CountingRandomFactory()
        engine = RetryDecisionEngine(random_factory=factory)
        policy = RetryPolicyBuilder().with_delay(1).with_jitter(0.5).build()

        engine.evaluate(policy, _history(1), AttemptOutcome.failed(RuntimeError()))
        engine.evaluate(policy, _history(2), AttemptOutcome.failed(RuntimeError()))

        assert len(factory.created) == 2
        assert factory.created[0] is not factory.created[1]

    def test_non_retry_verdicts_draw_nothing(self):
        factory = CountingRandomFactory()
        engine = RetryDecisionEngine(random_factory=factory)
        policy = RetryPolicyBuilder().with_delay_range(1, 2).with_max_retries(0).build()

        engine.evaluate(policy, _history(1), AttemptOutcome.succeeded("ok"))
        engine.evaluate(policy, _history(1), AttemptOutcome.failed(RuntimeError()))

        assert factory.created == []
