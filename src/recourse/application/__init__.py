"""Retry decisions and event dispatch."""

from recourse.application.decision_engine import RetryDecisionEngine, evaluate
from recourse.application.event_dispatch import EventDispatcher

__all__ = ["EventDispatcher", "RetryDecisionEngine", "evaluate"]
