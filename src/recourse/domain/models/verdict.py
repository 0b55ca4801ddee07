"""Verdict returned by the decision engine"""

from dataclasses import dataclass
from datetime import timedelta
from enum import Enum


class VerdictKind(str, Enum):
    """What the driver should do after an attempt"""

    SUCCEED = "succeed"
    RETRY = "retry"
    ABORT = "abort"
    RETRIES_EXCEEDED = "retries_exceeded"


@dataclass(frozen=True)
class Verdict:
    """Decision for one attempt. ``delay`` only matters for RETRY."""

    kind: VerdictKind
    delay: timedelta = timedelta(0)

    @classmethod
    def succeed(cls) -> "Verdict":
        return cls(VerdictKind.SUCCEED)

    @classmethod
    def retry(cls, delay: timedelta) -> "Verdict":
        return cls(VerdictKind.RETRY, delay)

    @classmethod
    def abort(cls) -> "Verdict":
        return cls(VerdictKind.ABORT)

    @classmethod
    def retries_exceeded(cls) -> "Verdict":
        return cls(VerdictKind.RETRIES_EXCEEDED)

    @property
    def should_retry(self) -> bool:
        return self.kind is VerdictKind.RETRY

    @property
    def is_complete(self) -> bool:
        """True when the execution is over and no further attempt follows"""
        return self.kind is not VerdictKind.RETRY
