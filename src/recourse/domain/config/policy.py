"""Retry policy configuration model."""

from __future__ import annotations

import logging
from datetime import timedelta
from enum import Enum
from typing import TYPE_CHECKING, Any, Callable, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, model_validator

from recourse.domain.config.conditions import AbortCondition
from recourse.domain.models.events import (
    ExecutionAttemptedEvent,
    ExecutionCompletedEvent,
    ExecutionScheduledEvent,
)

if TYPE_CHECKING:
    from recourse.domain.config.builder import RetryPolicyBuilder

logger = logging.getLogger(__name__)

DEFAULT_MAX_RETRIES = 2

AttemptHandler = Callable[[ExecutionAttemptedEvent], Any]
ScheduledHandler = Callable[[ExecutionScheduledEvent], Any]
CompletedHandler = Callable[[ExecutionCompletedEvent], Any]


class DelayMode(str, Enum):
    """Which delay strategy a policy uses between attempts"""

    NONE = "none"
    FIXED = "fixed"
    RANDOM = "random"
    BACKOFF = "backoff"


class RetryPolicyConfig(BaseModel):
    """Validated, immutable retry policy.

    Instances are produced by :class:`RetryPolicyBuilder` (or loaded from a
    policy file) and may be shared by any number of concurrent executions.
    Constructing one directly runs the same consistency checks and raises
    ``pydantic.ValidationError`` on conflicting settings.

    Attributes:
        delay: Fixed delay, or the starting delay when ``max_delay`` is set
        delay_min: Lower bound of a random delay (inclusive)
        delay_max: Upper bound of a random delay (inclusive)
        max_delay: Cap for exponential backoff delays
        delay_factor: Backoff multiplier
        jitter: Absolute jitter added to or subtracted from each delay
        jitter_factor: Jitter as a fraction (0.0-1.0) of each delay
        max_duration: Wall-clock ceiling on retrying (None = no ceiling)
        max_retries: Retries after the first attempt (-1 = unlimited)
        abort_conditions: Predicates over (result, failure) that stop retrying
    """

    delay: timedelta = timedelta(0)
    delay_min: Optional[timedelta] = None
    delay_max: Optional[timedelta] = None
    max_delay: Optional[timedelta] = None
    delay_factor: float = Field(2.0, gt=1.0)
    jitter: Optional[timedelta] = None
    jitter_factor: Optional[float] = Field(None, ge=0.0, le=1.0)
    max_duration: Optional[timedelta] = None
    max_retries: int = Field(DEFAULT_MAX_RETRIES, ge=-1)
    abort_conditions: Tuple[AbortCondition, ...] = ()

    # Event handlers (observation only, errors are discarded)
    on_failed_attempt: Optional[AttemptHandler] = None
    on_retry: Optional[AttemptHandler] = None
    on_retry_scheduled: Optional[ScheduledHandler] = None
    on_retries_exceeded: Optional[CompletedHandler] = None
    on_abort: Optional[CompletedHandler] = None

    model_config = ConfigDict(frozen=True, extra="forbid")

    @model_validator(mode="after")
    def _check_consistency(self) -> "RetryPolicyConfig":
        zero = timedelta(0)
        if self.delay < zero:
            raise ValueError("delay must not be negative")

        if (self.delay_min is None) != (self.delay_max is None):
            raise ValueError("delay_min and delay_max must be set together")
        if self.delay_min is not None and self.delay_max is not None:
            if self.delay_min <= zero or self.delay_max <= zero:
                raise ValueError("delay_min and delay_max must be greater than 0")
            if self.delay_min >= self.delay_max:
                raise ValueError("delay_min must be less than delay_max")
            if self.delay > zero:
                raise ValueError("a fixed delay and a random delay cannot both be set")
            if self.max_delay is not None:
                raise ValueError("backoff and a random delay cannot both be set")

        if self.max_delay is not None:
            if self.delay <= zero:
                raise ValueError("backoff requires a delay greater than 0")
            if self.delay >= self.max_delay:
                raise ValueError("delay must be less than max_delay")

        if self.jitter is not None and self.jitter_factor is not None:
            raise ValueError("jitter and jitter_factor cannot both be set")
        if self.jitter is not None:
            if self.jitter <= zero:
                raise ValueError("jitter must be greater than 0")
            if self.jitter > self.smallest_delay:
                raise ValueError("jitter must not exceed the minimum configured delay")

        if self.max_duration is not None:
            if self.max_duration < zero:
                raise ValueError("max_duration must not be negative")
            if self.delay > zero and self.delay >= self.max_duration:
                raise ValueError("delay must be less than max_duration")
            if self.delay_max is not None and self.delay_max >= self.max_duration:
                raise ValueError("delay_max must be less than max_duration")
        return self

    @classmethod
    def builder(cls) -> "RetryPolicyBuilder":
        """Start a new policy from defaults"""
        from recourse.domain.config.builder import RetryPolicyBuilder

        return RetryPolicyBuilder()

    def to_builder(self) -> "RetryPolicyBuilder":
        """Builder seeded with this policy.

        The abort condition list is copied, handlers are shared.
        """
        from recourse.domain.config.builder import RetryPolicyBuilder

        return RetryPolicyBuilder.from_config(self)

    @property
    def delay_mode(self) -> DelayMode:
        if self.delay_min is not None:
            return DelayMode.RANDOM
        if self.max_delay is not None:
            return DelayMode.BACKOFF
        if self.delay > timedelta(0):
            return DelayMode.FIXED
        return DelayMode.NONE

    @property
    def smallest_delay(self) -> timedelta:
        """Smallest delay the policy can produce before jitter"""
        return self.delay_min if self.delay_min is not None else self.delay

    @property
    def max_attempts(self) -> int:
        """Total attempts allowed, -1 when unlimited"""
        return -1 if self.max_retries == -1 else self.max_retries + 1

    def allows_retries(self) -> bool:
        """Check whether max_retries and max_duration leave room for any retry"""
        retries_allowed = self.max_retries == -1 or self.max_retries > 0
        duration_allowed = self.max_duration is None or self.max_duration > timedelta(0)
        return retries_allowed and duration_allowed

    def is_abortable(self, result: Any, failure: Optional[BaseException]) -> bool:
        """Check whether any abort condition matches the attempt outcome.

        A condition that raises is treated as not matching.
        """
        for condition in self.abort_conditions:
            try:
                if condition(result, failure):
                    return True
            except Exception as e:
                logger.debug(f"Ignoring abort condition {condition!r} that raised: {e!r}")
        return False
