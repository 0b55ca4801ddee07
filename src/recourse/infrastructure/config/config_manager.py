"""Configuration manager for loading and validating .retry-policy.yml"""

import builtins
import copy
import importlib
import logging
import os
import re
from datetime import timedelta
from pathlib import Path
from typing import Annotated, Any, Dict, List, Optional, Type

import yaml
from pydantic import BaseModel, BeforeValidator, ConfigDict, Field, ValidationError, model_validator

from recourse.domain.config import ConfigurationError, RetryPolicyBuilder, RetryPolicyConfig
from recourse.domain.config.errors import format_validation_error

logger = logging.getLogger(__name__)

CONFIG_FILE_NAME = ".retry-policy.yml"

_DURATION_PATTERN = re.compile(r"^\s*(\d+(?:\.\d+)?)\s*(ms|s|m|h)?\s*$")
_UNIT_SECONDS = {"ms": 0.001, "s": 1.0, "m": 60.0, "h": 3600.0}


def parse_duration(value: Any) -> Any:
    """Parse "250ms", "2s", "1.5m", "1h" or a bare "5" (seconds) into a timedelta.

    Anything else is left to pydantic (numbers are seconds, ISO 8601 works too).
    """
    if isinstance(value, str):
        match = _DURATION_PATTERN.match(value)
        if match:
            amount, unit = match.groups()
            return timedelta(seconds=float(amount) * _UNIT_SECONDS[unit or "s"])
    return value


Duration = Annotated[timedelta, BeforeValidator(parse_duration)]


class DelayRangeSettings(BaseModel):
    """Random delay bounds"""

    min: Duration
    max: Duration

    model_config = ConfigDict(extra="forbid")


class BackoffSettings(BaseModel):
    """Exponential backoff settings"""

    delay: Duration
    max_delay: Duration
    factor: float = Field(2.0, gt=1.0)

    model_config = ConfigDict(extra="forbid")


class PolicyFileConfig(BaseModel):
    """Retry section of a policy file.

    Attributes:
        max_retries: Retries after the first attempt (-1 = unlimited)
        max_attempts: Total attempts, alternative to max_retries
        max_duration: Wall-clock ceiling on retrying
        delay: Fixed delay between attempts
        delay_range: Random delay bounds
        backoff: Exponential backoff settings
        jitter: Absolute jitter
        jitter_factor: Jitter as a fraction of the delay (0.0-1.0)
        abort_on: Dotted names of exception classes that abort retrying
    """

    max_retries: Optional[int] = Field(None, ge=-1)
    max_attempts: Optional[int] = Field(None, ge=-1)
    max_duration: Optional[Duration] = None
    delay: Optional[Duration] = None
    delay_range: Optional[DelayRangeSettings] = None
    backoff: Optional[BackoffSettings] = None
    jitter: Optional[Duration] = None
    jitter_factor: Optional[float] = Field(None, ge=0.0, le=1.0)
    abort_on: List[str] = Field(default_factory=list)

    model_config = ConfigDict(extra="forbid")

    @model_validator(mode="after")
    def _check_exclusive(self) -> "PolicyFileConfig":
        if self.max_retries is not None and self.max_attempts is not None:
            raise ValueError("max_retries and max_attempts cannot both be set")
        delay_modes = [self.delay is not None, self.delay_range is not None, self.backoff is not None]
        if sum(delay_modes) > 1:
            raise ValueError("only one of delay, delay_range and backoff can be set")
        return self


class PolicyFile(BaseModel):
    """Root of a policy file"""

    retry: PolicyFileConfig = Field(default_factory=PolicyFileConfig)

    model_config = ConfigDict(extra="forbid")


def resolve_exception_type(name: str) -> Type[BaseException]:
    """Resolve "TimeoutError" or "package.module.Error" to an exception class

    Raises:
        ConfigurationError: If the name does not resolve to an exception class
    """
    module_name, _, attr = name.rpartition(".")
    try:
        if module_name:
            candidate = getattr(importlib.import_module(module_name), attr)
        else:
            candidate = getattr(builtins, attr)
    except (ImportError, AttributeError) as e:
        raise ConfigurationError(f"Unknown exception type in abort_on: {name}") from e
    if not (isinstance(candidate, type) and issubclass(candidate, BaseException)):
        raise ConfigurationError(f"abort_on entry is not an exception type: {name}")
    return candidate


class ConfigManager:
    """Manages retry policy configuration from .retry-policy.yml and environment variables

    Configuration priority:
    1. Default values (a policy with 2 retries and no delay)
    2. .retry-policy.yml file (searched from current directory)
    3. Environment variables (RECOURSE_MAX_RETRIES, RECOURSE_MAX_DURATION)
    """

    DEFAULT_CONFIG: Dict[str, Any] = {"retry": {}}

    def __init__(self, config_path: Optional[Path] = None):
        """Initialize config manager

        Args:
            config_path: Path to .retry-policy.yml (searches from current dir if None)

        Raises:
            ConfigurationError: If the file is unreadable or the policy is invalid
        """
        if isinstance(config_path, str):
            config_path = Path(config_path)
        self.config_path = config_path or self._find_config_file()
        try:
            self.config: PolicyFile = self._load_config()
        except ValidationError as e:
            raise ConfigurationError(format_validation_error(e, "Configuration validation failed")) from e

    def _find_config_file(self) -> Optional[Path]:
        """Find .retry-policy.yml starting from current directory"""
        current = Path.cwd()
        for parent in [current] + list(current.parents):
            config_file = parent / CONFIG_FILE_NAME
            if config_file.exists():
                logger.info(f"Found config file: {config_file}")
                return config_file
        logger.debug(f"No {CONFIG_FILE_NAME} found, using defaults")
        return None

    def _load_config(self) -> PolicyFile:
        """Load configuration from file and validate with Pydantic

        Raises:
            ValidationError: If configuration is invalid
            ConfigurationError: If the file cannot be read or parsed
        """
        config_dict = copy.deepcopy(self.DEFAULT_CONFIG)

        if self.config_path and self.config_path.exists():
            try:
                with open(self.config_path, "r", encoding="utf-8") as f:
                    file_config = yaml.safe_load(f) or {}
            except (OSError, yaml.YAMLError) as e:
                raise ConfigurationError(f"Failed to load config from {self.config_path}: {e}") from e
            if not isinstance(file_config, dict):
                raise ConfigurationError(f"Config file {self.config_path} must contain a mapping")
            config_dict = self._merge_config(config_dict, file_config)
            logger.info(f"Loaded configuration from {self.config_path}")

        config_dict = self._apply_env_overrides(config_dict)
        return PolicyFile(**config_dict)

    def _merge_config(self, base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
        """Recursively merge configuration dictionaries"""
        result = base.copy()
        for key, value in override.items():
            if key in result and isinstance(result[key], dict) and isinstance(value, dict):
                result[key] = self._merge_config(result[key], value)
            else:
                result[key] = value
        return result

    def _apply_env_overrides(self, config: Dict[str, Any]) -> Dict[str, Any]:
        """Apply environment variable overrides"""
        retry = config.get("retry")
        if not isinstance(retry, dict):
            return config

        if os.getenv("RECOURSE_MAX_RETRIES"):
            retry["max_retries"] = os.getenv("RECOURSE_MAX_RETRIES")
            retry.pop("max_attempts", None)

        if os.getenv("RECOURSE_MAX_DURATION"):
            retry["max_duration"] = os.getenv("RECOURSE_MAX_DURATION")

        return config

    def get_file_config(self) -> PolicyFileConfig:
        """Get the validated retry section"""
        return self.config.retry

    def builder(self) -> RetryPolicyBuilder:
        """Builder populated from the loaded configuration

        Handlers and further abort conditions can be added before building.

        Raises:
            ConfigurationError: If the settings conflict
        """
        settings = self.config.retry
        builder = RetryPolicyBuilder()

        if settings.delay is not None:
            builder.with_delay(settings.delay)
        elif settings.delay_range is not None:
            builder.with_delay_range(settings.delay_range.min, settings.delay_range.max)
        elif settings.backoff is not None:
            builder.with_backoff(
                settings.backoff.delay, settings.backoff.max_delay, settings.backoff.factor
            )

        if settings.jitter is not None:
            builder.with_jitter(settings.jitter)
        if settings.jitter_factor is not None:
            builder.with_jitter_factor(settings.jitter_factor)

        if settings.max_duration is not None:
            builder.with_max_duration(settings.max_duration)
        if settings.max_retries is not None:
            builder.with_max_retries(settings.max_retries)
        if settings.max_attempts is not None:
            builder.with_max_attempts(settings.max_attempts)

        if settings.abort_on:
            builder.abort_on(*(resolve_exception_type(name) for name in settings.abort_on))
        return builder

    def get_policy(self) -> RetryPolicyConfig:
        """Build the retry policy described by the configuration

        Raises:
            ConfigurationError: If the settings conflict
        """
        return self.builder().build()

    def get(self, key: str, default: Any = None) -> Any:
        """Get configuration value by key (supports dot notation)

        Args:
            key: Configuration key (e.g., "retry.max_retries")
            default: Default value if key not found
        """
        keys = key.split(".")
        value = self.config.model_dump()
        for k in keys:
            if isinstance(value, dict) and k in value:
                value = value[k]
            else:
                return default
        return value
