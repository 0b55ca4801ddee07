"""Retry decisions and delay computation for fault-tolerant execution."""

from recourse.application.decision_engine import RetryDecisionEngine, evaluate
from recourse.application.event_dispatch import EventDispatcher
from recourse.domain.config import (
    ConfigurationError,
    DelayMode,
    InvalidArgumentError,
    InvalidStateError,
    RetryPolicyBuilder,
    RetryPolicyConfig,
)
from recourse.domain.models import (
    AttemptOutcome,
    ExecutionAttemptedEvent,
    ExecutionAttemptHistory,
    ExecutionCompletedEvent,
    ExecutionScheduledEvent,
    Verdict,
    VerdictKind,
)
from recourse.infrastructure.retry import execute, execute_async, retry_with_policy

__all__ = [
    "AttemptOutcome",
    "ConfigurationError",
    "DelayMode",
    "EventDispatcher",
    "ExecutionAttemptHistory",
    "ExecutionAttemptedEvent",
    "ExecutionCompletedEvent",
    "ExecutionScheduledEvent",
    "InvalidArgumentError",
    "InvalidStateError",
    "RetryDecisionEngine",
    "RetryPolicyBuilder",
    "RetryPolicyConfig",
    "Verdict",
    "VerdictKind",
    "evaluate",
    "execute",
    "execute_async",
    "retry_with_policy",
]
