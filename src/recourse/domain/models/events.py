"""Event payloads passed to retry policy handlers"""

from dataclasses import dataclass
from datetime import timedelta
from typing import Any, Optional

from recourse.domain.models.outcome import ExecutionAttemptHistory


@dataclass(frozen=True)
class ExecutionAttemptedEvent:
    """Fired for a finished attempt (failed attempt, retry)"""

    result: Any
    failure: Optional[BaseException]
    attempt_number: int
    elapsed: timedelta

    @classmethod
    def from_history(
        cls, history: ExecutionAttemptHistory, result: Any, failure: Optional[BaseException]
    ) -> "ExecutionAttemptedEvent":
        return cls(result, failure, history.attempt_number, history.elapsed)


@dataclass(frozen=True)
class ExecutionScheduledEvent:
    """Fired when a retry is scheduled, before the delay elapses"""

    result: Any
    failure: Optional[BaseException]
    attempt_number: int
    elapsed: timedelta
    delay: timedelta


@dataclass(frozen=True)
class ExecutionCompletedEvent:
    """Fired when the execution is over (aborted or retries exceeded)"""

    result: Any
    failure: Optional[BaseException]
    attempt_number: int
    elapsed: timedelta

    @classmethod
    def from_history(
        cls, history: ExecutionAttemptHistory, result: Any, failure: Optional[BaseException]
    ) -> "ExecutionCompletedEvent":
        return cls(result, failure, history.attempt_number, history.elapsed)
