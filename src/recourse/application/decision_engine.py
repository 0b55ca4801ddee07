"""Retry decision engine.

Given a policy, the attempt history of one execution and the outcome of the
latest attempt, the engine decides whether to retry and how long to wait
first. It never sleeps, blocks or performs I/O: waiting out the delay and
re-invoking the operation is the execution driver's job.
"""

import logging
import random
from datetime import timedelta
from typing import Any, Callable, Optional

from recourse.application.event_dispatch import EventDispatcher
from recourse.domain.config.policy import DelayMode, RetryPolicyConfig
from recourse.domain.models.events import (
    ExecutionAttemptedEvent,
    ExecutionCompletedEvent,
    ExecutionScheduledEvent,
)
from recourse.domain.models.outcome import AttemptOutcome, ExecutionAttemptHistory
from recourse.domain.models.verdict import Verdict

logger = logging.getLogger(__name__)


class RetryDecisionEngine:
    """Stateless retry decisions over caller-owned attempt history.

    A single engine may serve any number of concurrent executions. Every
    evaluation draws from its own generator created by ``random_factory``
    so executions never share random state.
    """

    def __init__(self, random_factory: Callable[[], random.Random] = random.Random):
        self.random_factory = random_factory

    def evaluate(
        self,
        config: RetryPolicyConfig,
        history: ExecutionAttemptHistory,
        outcome: AttemptOutcome,
    ) -> Verdict:
        """Decide what follows the attempt already recorded in ``history``

        Args:
            config: Retry policy
            history: Attempt history including the latest attempt
            outcome: Outcome of the latest attempt

        Returns:
            Verdict for the driver
        """
        is_abortable = config.is_abortable(outcome.result, outcome.failure)
        return self.decide(
            config,
            history,
            is_failure=outcome.is_failure,
            is_abortable=is_abortable,
            result=outcome.result,
            failure=outcome.failure,
        )

    def decide(
        self,
        config: RetryPolicyConfig,
        history: ExecutionAttemptHistory,
        is_failure: bool,
        is_abortable: bool,
        result: Any = None,
        failure: Optional[BaseException] = None,
    ) -> Verdict:
        """Produce a verdict from a pre-classified attempt

        Events fire in order: failed attempt (for failures), then one of
        abort, retries exceeded or retry scheduled.
        """
        dispatcher = EventDispatcher(config)
        if is_failure:
            dispatcher.failed_attempt(ExecutionAttemptedEvent.from_history(history, result, failure))

        if is_abortable:
            logger.debug(f"Attempt {history.attempt_number} matched an abort condition")
            dispatcher.abort(ExecutionCompletedEvent.from_history(history, result, failure))
            return Verdict.abort()

        if not is_failure:
            return Verdict.succeed()

        if self.retries_exceeded(config, history):
            logger.debug(
                f"Retries exceeded after attempt {history.attempt_number} "
                f"({history.elapsed.total_seconds():.3f}s elapsed)"
            )
            dispatcher.retries_exceeded(ExecutionCompletedEvent.from_history(history, result, failure))
            return Verdict.retries_exceeded()

        delay = self.compute_delay(config, history)
        logger.debug(f"Scheduling retry after attempt {history.attempt_number} in {delay.total_seconds():.3f}s")
        dispatcher.retry_scheduled(
            ExecutionScheduledEvent(result, failure, history.attempt_number, history.elapsed, delay)
        )
        return Verdict.retry(delay)

    def retries_exceeded(self, config: RetryPolicyConfig, history: ExecutionAttemptHistory) -> bool:
        """Check whether the attempt or duration budget is spent"""
        if config.max_retries != -1 and history.attempt_number >= config.max_retries + 1:
            return True
        if config.max_duration is not None and history.elapsed >= config.max_duration:
            return True
        return False

    def compute_delay(
        self,
        config: RetryPolicyConfig,
        history: ExecutionAttemptHistory,
        rng: Optional[random.Random] = None,
    ) -> timedelta:
        """Delay before the next attempt

        Base delay for the policy's delay mode, adjusted by jitter, never
        negative, and clamped to what is left of max_duration.
        """
        if rng is None:
            rng = self.random_factory()

        seconds = self._apply_jitter(config, self._base_delay(config, history, rng), rng)
        if config.max_duration is not None:
            remaining = config.max_duration.total_seconds() - history.elapsed.total_seconds()
            seconds = min(seconds, max(remaining, 0.0))
        return timedelta(seconds=seconds)

    @staticmethod
    def _base_delay(config: RetryPolicyConfig, history: ExecutionAttemptHistory, rng: random.Random) -> float:
        mode = config.delay_mode
        if mode is DelayMode.FIXED:
            return config.delay.total_seconds()
        if mode is DelayMode.RANDOM:
            low, high = config.delay_min.total_seconds(), config.delay_max.total_seconds()
            return min(max(rng.uniform(low, high), low), high)
        if mode is DelayMode.BACKOFF:
            cap = config.max_delay.total_seconds()
            # The first retry follows attempt 1 and uses the unscaled delay
            exponent = max(history.attempt_number - 1, 0)
            try:
                scaled = config.delay.total_seconds() * config.delay_factor**exponent
            except OverflowError:
                return cap
            return min(scaled, cap)
        return 0.0

    @staticmethod
    def _apply_jitter(config: RetryPolicyConfig, base: float, rng: random.Random) -> float:
        if config.jitter_factor is not None:
            spread = base * config.jitter_factor
        elif config.jitter is not None:
            spread = config.jitter.total_seconds()
        else:
            return base
        return max(base + rng.uniform(-spread, spread), 0.0)


_default_engine = RetryDecisionEngine()


def evaluate(
    config: RetryPolicyConfig,
    history: ExecutionAttemptHistory,
    outcome: AttemptOutcome,
) -> Verdict:
    """Evaluate an attempt with the shared default engine"""
    return _default_engine.evaluate(config, history, outcome)
