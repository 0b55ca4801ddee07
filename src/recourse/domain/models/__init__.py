"""Execution models shared by the engine and the drivers."""

from recourse.domain.models.events import (
    ExecutionAttemptedEvent,
    ExecutionCompletedEvent,
    ExecutionScheduledEvent,
)
from recourse.domain.models.outcome import AttemptOutcome, ExecutionAttemptHistory
from recourse.domain.models.verdict import Verdict, VerdictKind

__all__ = [
    "AttemptOutcome",
    "ExecutionAttemptHistory",
    "ExecutionAttemptedEvent",
    "ExecutionCompletedEvent",
    "ExecutionScheduledEvent",
    "Verdict",
    "VerdictKind",
]
