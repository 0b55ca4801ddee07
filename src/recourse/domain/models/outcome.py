"""Attempt outcome and per-execution attempt history"""

from dataclasses import dataclass
from datetime import timedelta
from typing import Any, Optional


@dataclass(frozen=True)
class AttemptOutcome:
    """Outcome of a single attempt as reported by the execution driver"""

    result: Any = None
    failure: Optional[BaseException] = None
    is_failure: bool = False  # Decided by the driver's failure classification

    @classmethod
    def succeeded(cls, result: Any = None) -> "AttemptOutcome":
        return cls(result=result, failure=None, is_failure=False)

    @classmethod
    def failed(cls, failure: Optional[BaseException] = None, result: Any = None) -> "AttemptOutcome":
        return cls(result=result, failure=failure, is_failure=True)


@dataclass
class ExecutionAttemptHistory:
    """Attempt state of one execution.

    Owned by the execution driver. The decision engine only reads it.
    """

    attempt_number: int = 0  # 1-based once the first attempt is recorded
    elapsed: timedelta = timedelta(0)  # Since the first attempt started
    last_result: Any = None
    last_failure: Optional[BaseException] = None
    total_delay: timedelta = timedelta(0)

    def record(self, outcome: AttemptOutcome, elapsed: timedelta) -> None:
        """Record a finished attempt"""
        self.attempt_number += 1
        self.elapsed = elapsed
        self.last_result = outcome.result
        self.last_failure = outcome.failure

    def record_delay(self, delay: timedelta) -> None:
        """Add a scheduled delay to the running total"""
        self.total_delay += delay
