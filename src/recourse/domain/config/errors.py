"""Configuration errors raised while building a retry policy."""

from pydantic import ValidationError


class ConfigurationError(Exception):
    """Retry policy configuration error."""

    pass


class InvalidArgumentError(ConfigurationError, ValueError):
    """An argument passed to a configuration method is out of range."""

    pass


class InvalidStateError(ConfigurationError):
    """A configuration call conflicts with settings made earlier."""

    pass


def format_validation_error(error: ValidationError, header: str) -> str:
    """Render a pydantic ValidationError as one line per failing field"""
    lines = []
    for item in error.errors():
        field = ".".join(str(x) for x in item["loc"]) or "policy"
        lines.append(f"  - {field}: {item['msg']}")
    return f"{header}:\n" + "\n".join(lines)
