"""Dispatch of retry policy events to user handlers.

Handlers are observers. Any exception they raise is logged and discarded so a
faulty handler can never change or halt a retry decision.
"""

import logging
from typing import Any, Callable, Optional

from recourse.domain.config.policy import RetryPolicyConfig
from recourse.domain.models.events import (
    ExecutionAttemptedEvent,
    ExecutionCompletedEvent,
    ExecutionScheduledEvent,
)

logger = logging.getLogger(__name__)


class EventDispatcher:
    """Fires the handler slots configured on a policy"""

    def __init__(self, config: RetryPolicyConfig):
        self.config = config

    def failed_attempt(self, event: ExecutionAttemptedEvent) -> None:
        self._fire("failed_attempt", self.config.on_failed_attempt, event)

    def retry(self, event: ExecutionAttemptedEvent) -> None:
        self._fire("retry", self.config.on_retry, event)

    def retry_scheduled(self, event: ExecutionScheduledEvent) -> None:
        self._fire("retry_scheduled", self.config.on_retry_scheduled, event)

    def retries_exceeded(self, event: ExecutionCompletedEvent) -> None:
        self._fire("retries_exceeded", self.config.on_retries_exceeded, event)

    def abort(self, event: ExecutionCompletedEvent) -> None:
        self._fire("abort", self.config.on_abort, event)

    @staticmethod
    def _fire(name: str, handler: Optional[Callable[[Any], Any]], event: Any) -> None:
        if handler is None:
            return
        try:
            handler(event)
        except Exception as e:
            logger.debug(f"Ignoring error from {name} handler: {e!r}")
