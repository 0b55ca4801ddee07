"""Execution driver running operations under a retry policy using tenacity.

The decision engine owns every retry decision. Tenacity supplies the attempt
loop and the sleeping: its ``retry`` hook asks the engine for a verdict, its
``wait`` hook returns the verdict's delay, and its ``before`` hook fires the
``on_retry`` event just before each retried attempt runs.
"""

from __future__ import annotations

import asyncio
import functools
import inspect
import logging
import time
from datetime import timedelta
from typing import Any, Awaitable, Callable, Optional, TypeVar

from tenacity import AsyncRetrying, RetryCallState, Retrying, stop_never

from recourse.application.decision_engine import RetryDecisionEngine
from recourse.application.event_dispatch import EventDispatcher
from recourse.domain.config.policy import RetryPolicyConfig
from recourse.domain.models.events import ExecutionAttemptedEvent
from recourse.domain.models.outcome import AttemptOutcome, ExecutionAttemptHistory
from recourse.domain.models.verdict import Verdict

logger = logging.getLogger(__name__)

T = TypeVar("T")

FailureClassifier = Callable[[Any, Optional[BaseException]], bool]


def default_is_failure(result: Any, failure: Optional[BaseException]) -> bool:
    """Treat any raised Exception as a failure and any returned value as success"""
    return isinstance(failure, Exception)


class PolicyRun:
    """State of one execution, wired into tenacity's hooks"""

    def __init__(
        self,
        config: RetryPolicyConfig,
        engine: Optional[RetryDecisionEngine] = None,
        is_failure: Optional[FailureClassifier] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.config = config
        self.engine = engine or RetryDecisionEngine()
        self.is_failure = is_failure or default_is_failure
        self.clock = clock
        self.history = ExecutionAttemptHistory()
        self.dispatcher = EventDispatcher(config)
        self.verdict: Optional[Verdict] = None
        self._started_at: Optional[float] = None

    def before(self, retry_state: RetryCallState) -> None:
        if self._started_at is None:
            self._started_at = self.clock()
        if retry_state.attempt_number > 1:
            logger.debug(f"Running attempt {retry_state.attempt_number}")
            self.dispatcher.retry(
                ExecutionAttemptedEvent.from_history(
                    self.history, self.history.last_result, self.history.last_failure
                )
            )

    def should_retry(self, retry_state: RetryCallState) -> bool:
        outcome = self._outcome(retry_state)
        started_at = self._started_at if self._started_at is not None else self.clock()
        self.history.record(outcome, timedelta(seconds=max(self.clock() - started_at, 0.0)))
        self.verdict = self.engine.evaluate(self.config, self.history, outcome)
        if self.verdict.is_complete:
            logger.debug(f"Execution finished after {self.history.attempt_number} attempts: {self.verdict.kind.value}")
        return self.verdict.should_retry

    def wait(self, retry_state: RetryCallState) -> float:
        delay = self.verdict.delay if self.verdict is not None else timedelta(0)
        self.history.record_delay(delay)
        return delay.total_seconds()

    def _outcome(self, retry_state: RetryCallState) -> AttemptOutcome:
        attempt = retry_state.outcome
        if attempt.failed:
            result, failure = None, attempt.exception()
        else:
            result, failure = attempt.result(), None
        return AttemptOutcome(result=result, failure=failure, is_failure=self.is_failure(result, failure))

    def retrying_kwargs(self) -> dict:
        return {
            "retry": self.should_retry,
            "wait": self.wait,
            "stop": stop_never,
            "before": self.before,
            "reraise": True,
        }


def execute(
    operation: Callable[..., T],
    config: RetryPolicyConfig,
    *args: Any,
    is_failure: Optional[FailureClassifier] = None,
    engine: Optional[RetryDecisionEngine] = None,
    sleep: Callable[[float], None] = time.sleep,
    clock: Callable[[], float] = time.monotonic,
    **kwargs: Any,
) -> T:
    """Run ``operation`` until the policy stops retrying

    Returns the last result, or re-raises the last failure when the execution
    ends on a raised exception (aborted, retries exceeded, or not a failure).

    Args:
        operation: Callable to run
        config: Retry policy
        is_failure: Classifies (result, failure); defaults to "raised an Exception"
        engine: Decision engine (a default engine when None)
        sleep: Called with the delay in seconds between attempts
        clock: Monotonic clock in seconds used to measure elapsed time
    """
    run = PolicyRun(config, engine=engine, is_failure=is_failure, clock=clock)
    retrying = Retrying(sleep=sleep, **run.retrying_kwargs())
    return retrying(operation, *args, **kwargs)


async def execute_async(
    operation: Callable[..., Awaitable[T]],
    config: RetryPolicyConfig,
    *args: Any,
    is_failure: Optional[FailureClassifier] = None,
    engine: Optional[RetryDecisionEngine] = None,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    clock: Callable[[], float] = time.monotonic,
    **kwargs: Any,
) -> T:
    """Async counterpart of :func:`execute` for coroutine functions"""
    run = PolicyRun(config, engine=engine, is_failure=is_failure, clock=clock)
    retrying = AsyncRetrying(sleep=sleep, **run.retrying_kwargs())
    return await retrying(operation, *args, **kwargs)


def retry_with_policy(
    config: RetryPolicyConfig,
    is_failure: Optional[FailureClassifier] = None,
) -> Callable[[Callable], Callable]:
    """Create a decorator running the wrapped function under ``config``

    Coroutine functions are driven with :func:`execute_async`.
    """

    def decorator(func: Callable) -> Callable:
        if inspect.iscoroutinefunction(func):

            @functools.wraps(func)
            async def async_wrapped(*args: Any, **kwargs: Any) -> Any:
                return await execute_async(func, config, *args, is_failure=is_failure, **kwargs)

            return async_wrapped

        @functools.wraps(func)
        def wrapped(*args: Any, **kwargs: Any) -> Any:
            return execute(func, config, *args, is_failure=is_failure, **kwargs)

        return wrapped

    return decorator
