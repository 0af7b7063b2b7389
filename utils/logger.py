"""
Logging helpers shared by services and routers.
"""

import logging
from typing import Any, Dict


SENSITIVE_FIELDS = {
    'password', 'token', 'secret', 'api_key', 'access_token',
    'refresh_token', 'refreshtoken', 'authorization'
}


def get_logger(name: str) -> logging.Logger:
    """
    Get a logger instance for a module.

    Usage:
        from utils.logger import get_logger
        logger = get_logger(__name__)
    """
    return logging.getLogger(name)


def mask_token(token: str) -> str:
    """Keep the first 8 characters of a token, enough to correlate log lines."""
    if len(token) > 8:
        return f"{token[:8]}..."
    return "***REDACTED***"


def sanitize_log_data(data: Dict[str, Any]) -> Dict[str, Any]:
    """
    Remove sensitive information from log data.

    Passwords and secrets are fully redacted, tokens are truncated to their
    first 8 characters. Nested dictionaries are sanitized recursively.

    Args:
        data: Dictionary that may contain sensitive fields

    Returns:
        Sanitized copy, safe for logging
    """
    sanitized = data.copy()

    for key, value in sanitized.items():
        lowered = key.lower()
        if any(sensitive in lowered for sensitive in SENSITIVE_FIELDS):
            if isinstance(value, str):
                if 'token' in lowered or 'authorization' in lowered:
                    sanitized[key] = mask_token(value)
                else:
                    sanitized[key] = "***REDACTED***"

        elif isinstance(value, dict):
            sanitized[key] = sanitize_log_data(value)

    return sanitized
