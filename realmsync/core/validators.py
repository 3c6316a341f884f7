"""Input validation helpers for realm, alias and mapper names."""
from __future__ import annotations

from .exceptions import ConfigurationError, InvalidAliasError

# Characters that would break admin URLs or storage keys
RESERVED_CHARS = ("<", ">", "\\", "/", "%", "&", "?", "#", "\"", "'", "$")


def validate_reserved_chars(value: str, field: str = "value") -> str:
    """Reject names that contain reserved characters.

    Args:
        value: Name to validate
        field: Field name for error messages (e.g., "Realm name")

    Returns:
        The stripped value

    Raises:
        InvalidAliasError: If value is empty or contains a reserved character
    """
    if value is None or not str(value).strip():
        raise InvalidAliasError(f"{field} must not be empty")
    value = str(value).strip()
    for char in RESERVED_CHARS:
        if char in value:
            raise InvalidAliasError(f"{field} contains reserved character '{char}'")
    return value


def validate_provider_alias(alias: str) -> str:
    """Validate an identity provider alias.

    Federated providers use their entity id (often a URL) as alias, so only
    control characters and whitespace-only values are rejected here.
    """
    if alias is None or not str(alias).strip():
        raise InvalidAliasError("Identity provider alias must not be empty")
    alias = str(alias).strip()
    if any(ord(char) < 32 for char in alias):
        raise InvalidAliasError("Identity provider alias contains control characters")
    return alias


def validate_refresh_interval(minutes) -> int:
    """Validate a federation refresh interval in minutes.

    Raises:
        ConfigurationError: If the interval is not a positive integer
    """
    try:
        value = int(minutes)
    except (TypeError, ValueError) as exc:
        raise ConfigurationError(f"Refresh interval must be an integer, got {minutes!r}") from exc
    if value < 1:
        raise ConfigurationError("Refresh interval must be at least 1 minute")
    return value
