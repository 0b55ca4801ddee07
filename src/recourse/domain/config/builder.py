"""Fluent builder for retry policies.

Each ``with_*`` and ``abort_*`` call validates its own arguments and checks them
against what was configured earlier, so a conflicting setting fails at the
offending call rather than at execution time. ``build()`` produces an
immutable :class:`RetryPolicyConfig`.
"""

from __future__ import annotations

import logging
from datetime import timedelta
from typing import Any, Callable, List, Optional, Type, Union

from pydantic import ConfigDict, TypeAdapter, ValidationError

from recourse.domain.config.conditions import (
    AbortCondition,
    failure_condition,
    failure_types_condition,
    result_condition,
    result_equals_condition,
)
from recourse.domain.config.errors import (
    ConfigurationError,
    InvalidArgumentError,
    InvalidStateError,
    format_validation_error,
)
from recourse.domain.config.policy import (
    DEFAULT_MAX_RETRIES,
    AttemptHandler,
    CompletedHandler,
    RetryPolicyConfig,
    ScheduledHandler,
)

logger = logging.getLogger(__name__)

DurationLike = Union[timedelta, int, float, str]

_DURATION = TypeAdapter(timedelta)
_INT = TypeAdapter(int, config=ConfigDict(strict=True))
_FLOAT = TypeAdapter(float, config=ConfigDict(strict=True))
_ZERO = timedelta(0)


def to_duration(value: DurationLike, name: str) -> timedelta:
    """Coerce ``value`` to a timedelta (numbers are seconds)"""
    if value is None or isinstance(value, bool):
        raise InvalidArgumentError(f"{name} must be a duration, got {value!r}")
    try:
        return _DURATION.validate_python(value)
    except ValidationError as e:
        raise InvalidArgumentError(f"{name} must be a duration, got {value!r}") from e


def to_int(value: int, name: str) -> int:
    """Accept whole ints only. Bools, floats and strings are rejected."""
    if isinstance(value, bool):
        raise InvalidArgumentError(f"{name} must be an integer, got {value!r}")
    try:
        return _INT.validate_python(value)
    except ValidationError as e:
        raise InvalidArgumentError(f"{name} must be an integer, got {value!r}") from e


def to_float(value: float, name: str) -> float:
    if isinstance(value, bool):
        raise InvalidArgumentError(f"{name} must be a number, got {value!r}")
    try:
        return _FLOAT.validate_python(value)
    except ValidationError as e:
        raise InvalidArgumentError(f"{name} must be a number, got {value!r}") from e


def _check_argument(condition: bool, message: str) -> None:
    if not condition:
        raise InvalidArgumentError(message)


def _check_state(condition: bool, message: str) -> None:
    if not condition:
        raise InvalidStateError(message)


def _check_callable(value: Any, name: str) -> None:
    _check_argument(callable(value), f"{name} must be callable")


class RetryPolicyBuilder:
    """Mutable builder producing :class:`RetryPolicyConfig` values.

    By default a policy allows 2 retries (3 attempts) with no delay and no
    abort conditions.
    """

    def __init__(self):
        self._delay: timedelta = _ZERO
        self._delay_min: Optional[timedelta] = None
        self._delay_max: Optional[timedelta] = None
        self._max_delay: Optional[timedelta] = None
        self._delay_factor: float = 2.0
        self._jitter: Optional[timedelta] = None
        self._jitter_factor: Optional[float] = None
        self._max_duration: Optional[timedelta] = None
        self._max_retries: int = DEFAULT_MAX_RETRIES
        self._abort_conditions: List[AbortCondition] = []
        self._on_failed_attempt: Optional[AttemptHandler] = None
        self._on_retry: Optional[AttemptHandler] = None
        self._on_retry_scheduled: Optional[ScheduledHandler] = None
        self._on_retries_exceeded: Optional[CompletedHandler] = None
        self._on_abort: Optional[CompletedHandler] = None

    @classmethod
    def from_config(cls, config: RetryPolicyConfig) -> "RetryPolicyBuilder":
        """Seed a builder from an existing policy"""
        builder = cls()
        builder._delay = config.delay
        builder._delay_min = config.delay_min
        builder._delay_max = config.delay_max
        builder._max_delay = config.max_delay
        builder._delay_factor = config.delay_factor
        builder._jitter = config.jitter
        builder._jitter_factor = config.jitter_factor
        builder._max_duration = config.max_duration
        builder._max_retries = config.max_retries
        builder._abort_conditions = list(config.abort_conditions)
        builder._on_failed_attempt = config.on_failed_attempt
        builder._on_retry = config.on_retry
        builder._on_retry_scheduled = config.on_retry_scheduled
        builder._on_retries_exceeded = config.on_retries_exceeded
        builder._on_abort = config.on_abort
        return builder

    def copy(self) -> "RetryPolicyBuilder":
        """Independent copy. Abort conditions are copied, handlers are shared."""
        clone = RetryPolicyBuilder()
        clone.__dict__.update(self.__dict__)
        clone._abort_conditions = list(self._abort_conditions)
        return clone

    # Delays

    def with_delay(self, delay: DurationLike) -> "RetryPolicyBuilder":
        """Set a fixed delay between retries

        Raises:
            InvalidArgumentError: If delay <= 0
            InvalidStateError: If delay >= max_duration, random or backoff
                delays are already set, or a jitter duration exceeds delay
        """
        delay = to_duration(delay, "delay")
        _check_argument(delay > _ZERO, "delay must be greater than 0")
        _check_state(
            self._max_duration is None or delay < self._max_duration,
            "delay must be less than the max_duration",
        )
        _check_state(self._delay_min is None, "Random delays have already been set")
        _check_state(self._max_delay is None, "Backoff delays have already been set")
        _check_state(
            self._jitter is None or self._jitter <= delay,
            "jitter must be less than the minimum configured delay",
        )
        self._delay = delay
        return self

    def with_delay_range(self, delay_min: DurationLike, delay_max: DurationLike) -> "RetryPolicyBuilder":
        """Set a random delay between delay_min and delay_max (inclusive)

        Raises:
            InvalidArgumentError: If either bound is <= 0 or delay_min >= delay_max
            InvalidStateError: If delay_max >= max_duration, fixed or backoff
                delays are already set, or a jitter duration exceeds delay_min
        """
        delay_min = to_duration(delay_min, "delay_min")
        delay_max = to_duration(delay_max, "delay_max")
        _check_argument(delay_min > _ZERO, "delay_min must be greater than 0")
        _check_argument(delay_max > _ZERO, "delay_max must be greater than 0")
        _check_argument(delay_min < delay_max, "delay_min must be less than delay_max")
        _check_state(
            self._max_duration is None or delay_max < self._max_duration,
            "delay_max must be less than the max_duration",
        )
        _check_state(self._delay == _ZERO, "Delays have already been set")
        _check_state(self._max_delay is None, "Backoff delays have already been set")
        _check_state(
            self._jitter is None or self._jitter <= delay_min,
            "jitter must be less than the minimum configured delay",
        )
        self._delay_min = delay_min
        self._delay_max = delay_max
        return self

    def with_backoff(
        self, delay: DurationLike, max_delay: DurationLike, delay_factor: float = 2.0
    ) -> "RetryPolicyBuilder":
        """Back off exponentially from delay up to max_delay

        Successive delays are multiplied by delay_factor.

        Raises:
            InvalidArgumentError: If delay <= 0, delay >= max_delay, or delay_factor
                is not a number greater than 1
            InvalidStateError: If delay >= max_duration, fixed or random
                delays are already set, or a jitter duration exceeds delay
        """
        delay = to_duration(delay, "delay")
        max_delay = to_duration(max_delay, "max_delay")
        delay_factor = float(to_float(delay_factor, "delay_factor"))
        _check_argument(delay > _ZERO, "The delay must be greater than 0")
        _check_state(
            self._max_duration is None or delay < self._max_duration,
            "delay must be less than the max_duration",
        )
        _check_argument(delay < max_delay, "delay must be less than the max_delay")
        _check_argument(delay_factor > 1, "delay_factor must be greater than 1")
        _check_state(self._delay == _ZERO, "Delays have already been set")
        _check_state(self._delay_min is None, "Random delays have already been set")
        _check_state(
            self._jitter is None or self._jitter <= delay,
            "jitter must be less than the minimum configured delay",
        )
        self._delay = delay
        self._max_delay = max_delay
        self._delay_factor = delay_factor
        return self

    def with_jitter(self, jitter: DurationLike) -> "RetryPolicyBuilder":
        """Randomly add or subtract up to ``jitter`` from each delay

        A jitter factor of 0 counts as unset and is replaced.

        Raises:
            InvalidArgumentError: If jitter <= 0
            InvalidStateError: If a non-zero jitter factor is already set, or
                jitter exceeds the minimum configured delay
        """
        jitter = to_duration(jitter, "jitter")
        _check_argument(jitter > _ZERO, "jitter must be > 0")
        _check_state(not self._jitter_factor, "with_jitter_factor() has already been called")
        smallest = self._delay_min if self._delay_min is not None else self._delay
        _check_state(jitter <= smallest, "jitter must be less than the minimum configured delay")
        self._jitter_factor = None
        self._jitter = jitter
        return self

    def with_jitter_factor(self, jitter_factor: float) -> "RetryPolicyBuilder":
        """Randomly vary each delay by up to ``delay * jitter_factor``

        A delay of 100ms with a factor of 0.25 yields a delay between 75ms and 125ms.

        Raises:
            InvalidArgumentError: If jitter_factor is not a number or is outside [0, 1]
            InvalidStateError: If a jitter duration is already set
        """
        jitter_factor = float(to_float(jitter_factor, "jitter_factor"))
        _check_argument(0.0 <= jitter_factor <= 1.0, "jitter_factor must be >= 0 and <= 1")
        _check_state(self._jitter is None, "with_jitter() has already been called")
        self._jitter_factor = jitter_factor
        return self

    # Limits

    def with_max_duration(self, max_duration: DurationLike) -> "RetryPolicyBuilder":
        """Stop retrying once max_duration has elapsed since the first attempt

        This does not disable max_retries, which is still 2 by default.

        Raises:
            InvalidArgumentError: If max_duration is negative
            InvalidStateError: If max_duration is <= the configured delay or delay_max
        """
        max_duration = to_duration(max_duration, "max_duration")
        _check_argument(max_duration >= _ZERO, "max_duration must not be negative")
        _check_state(
            self._delay == _ZERO or max_duration > self._delay,
            "max_duration must be greater than the delay",
        )
        _check_state(
            self._delay_max is None or max_duration > self._delay_max,
            "max_duration must be greater than the delay_max",
        )
        self._max_duration = max_duration
        return self

    def with_max_retries(self, max_retries: int) -> "RetryPolicyBuilder":
        """Set retries after the first attempt, -1 for no limit"""
        max_retries = to_int(max_retries, "max_retries")
        _check_argument(max_retries >= -1, "max_retries must be greater than or equal to -1")
        self._max_retries = max_retries
        return self

    def with_max_attempts(self, max_attempts: int) -> "RetryPolicyBuilder":
        """Set total attempts, -1 for no limit. 3 attempts equal 2 retries."""
        max_attempts = to_int(max_attempts, "max_attempts")
        _check_argument(max_attempts != 0, "max_attempts cannot be 0")
        _check_argument(max_attempts >= -1, "max_attempts cannot be less than -1")
        self._max_retries = -1 if max_attempts == -1 else max_attempts - 1
        return self

    # Abort conditions

    def abort_on(self, *failure_types: Type[BaseException]) -> "RetryPolicyBuilder":
        """Abort when the failure is an instance of any of ``failure_types``"""
        _check_argument(len(failure_types) > 0, "failure_types cannot be empty")
        for failure_type in failure_types:
            _check_argument(
                isinstance(failure_type, type) and issubclass(failure_type, BaseException),
                f"{failure_type!r} is not an exception type",
            )
        self._abort_conditions.append(failure_types_condition(failure_types))
        return self

    def abort_on_failure_if(self, predicate: Callable[[BaseException], bool]) -> "RetryPolicyBuilder":
        """Abort when ``predicate`` matches the failure"""
        _check_callable(predicate, "predicate")
        self._abort_conditions.append(failure_condition(predicate))
        return self

    def abort_if(self, predicate: AbortCondition) -> "RetryPolicyBuilder":
        """Abort when ``predicate(result, failure)`` is true"""
        _check_callable(predicate, "predicate")
        self._abort_conditions.append(predicate)
        return self

    def abort_if_result(self, predicate: Callable[[Any], bool]) -> "RetryPolicyBuilder":
        """Abort when ``predicate`` matches the result"""
        _check_callable(predicate, "predicate")
        self._abort_conditions.append(result_condition(predicate))
        return self

    def abort_when(self, result: Any) -> "RetryPolicyBuilder":
        """Abort when the result equals ``result``"""
        self._abort_conditions.append(result_equals_condition(result))
        return self

    # Event handlers, last registration wins

    def on_failed_attempt(self, handler: AttemptHandler) -> "RetryPolicyBuilder":
        """Call ``handler`` after every attempt classified as a failure, before any other event"""
        _check_callable(handler, "handler")
        self._on_failed_attempt = handler
        return self

    def on_retry(self, handler: AttemptHandler) -> "RetryPolicyBuilder":
        """Call ``handler`` just before each retried attempt starts (fired by the driver)"""
        _check_callable(handler, "handler")
        self._on_retry = handler
        return self

    def on_retry_scheduled(self, handler: ScheduledHandler) -> "RetryPolicyBuilder":
        """Call ``handler`` when a retry is decided, with the delay about to be waited"""
        _check_callable(handler, "handler")
        self._on_retry_scheduled = handler
        return self

    def on_retries_exceeded(self, handler: CompletedHandler) -> "RetryPolicyBuilder":
        """Call ``handler`` once when max_retries or max_duration is exhausted"""
        _check_callable(handler, "handler")
        self._on_retries_exceeded = handler
        return self

    def on_abort(self, handler: CompletedHandler) -> "RetryPolicyBuilder":
        """Call ``handler`` once when an abort condition matches"""
        _check_callable(handler, "handler")
        self._on_abort = handler
        return self

    def build(self) -> RetryPolicyConfig:
        """Freeze the current settings into a RetryPolicyConfig

        Raises:
            ConfigurationError: If the settings are inconsistent
        """
        try:
            config = RetryPolicyConfig(
                delay=self._delay,
                delay_min=self._delay_min,
                delay_max=self._delay_max,
                max_delay=self._max_delay,
                delay_factor=self._delay_factor,
                jitter=self._jitter,
                jitter_factor=self._jitter_factor,
                max_duration=self._max_duration,
                max_retries=self._max_retries,
                abort_conditions=tuple(self._abort_conditions),
                on_failed_attempt=self._on_failed_attempt,
                on_retry=self._on_retry,
                on_retry_scheduled=self._on_retry_scheduled,
                on_retries_exceeded=self._on_retries_exceeded,
                on_abort=self._on_abort,
            )
        except ValidationError as e:
            raise ConfigurationError(format_validation_error(e, "Retry policy validation failed")) from e
        logger.debug(
            f"Built retry policy: mode={config.delay_mode.value}, max_retries={config.max_retries}, "
            f"max_duration={config.max_duration}"
        )
        return config
