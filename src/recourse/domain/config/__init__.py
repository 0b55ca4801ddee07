"""Retry policy configuration: immutable policy values and their builder."""

from recourse.domain.config.builder import RetryPolicyBuilder, to_duration
from recourse.domain.config.conditions import AbortCondition
from recourse.domain.config.errors import (
    ConfigurationError,
    InvalidArgumentError,
    InvalidStateError,
)
from recourse.domain.config.policy import DelayMode, RetryPolicyConfig

__all__ = [
    "AbortCondition",
    "ConfigurationError",
    "DelayMode",
    "InvalidArgumentError",
    "InvalidStateError",
    "RetryPolicyBuilder",
    "RetryPolicyConfig",
    "to_duration",
]
