"""Utility functions for the tunnel gateway."""

from typing import Any

# Port range constants
MIN_PORT = 1
MAX_PORT = 65535

LOOPBACK_HOST = "127.0.0.1"
_LOOPBACK_ALIASES = {"", "localhost", "::1"}


def validate_port(port: int, port_name: str = "Port") -> None:
    """Validate port number range.

    Args:
        port: Port number to validate
        port_name: Name of the port for error messages

    Raises:
        ValueError: If port is not in valid range (1-65535)
    """
    if isinstance(port, bool) or not isinstance(port, int):
        raise ValueError(f"{port_name} must be between {MIN_PORT} and {MAX_PORT}")
    if not (MIN_PORT <= port <= MAX_PORT):
        raise ValueError(f"{port_name} must be between {MIN_PORT} and {MAX_PORT}")


def normalize_db_host(host: Any) -> str:
    """Map blank, ``localhost`` and ``::1`` to the IPv4 loopback literal.

    The tunnel listens on IPv4 only, so resolving ``localhost`` to ``::1``
    would miss it.
    """
    text = "" if host is None else str(host).strip()
    if text.lower() in _LOOPBACK_ALIASES:
        return LOOPBACK_HOST
    return text


def mask_sensitive_data(
    value: str | None, mask_char: str = "*", show_chars: int = 4
) -> str:
    """Mask sensitive data for logging while preserving some characters for debugging.

    Args:
        value: Sensitive string to mask (e.g., password)
        mask_char: Character to use for masking
        show_chars: Number of characters to show at the end

    Returns:
        Masked string safe for logging
    """
    if not value:
        return "<None>"

    if len(value) <= show_chars:
        return mask_char * len(value)

    masked_length = len(value) - show_chars
    return mask_char * masked_length + value[-show_chars:]


def sanitize_log_data(data: dict[str, Any]) -> dict[str, Any]:
    """Sanitize dictionary data for safe logging by masking sensitive fields.

    Args:
        data: Dictionary potentially containing sensitive data

    Returns:
        Sanitized dictionary safe for logging
    """
    sensitive_fields = {
        "password",
        "passwd",
        "secret",
        "token",
        "api_key",
    }

    sanitized = {}
    for key, value in data.items():
        if any(sensitive_field in key.lower() for sensitive_field in sensitive_fields):
            sanitized[key] = mask_sensitive_data(str(value) if value else None)
        else:
            sanitized[key] = value

    return sanitized
