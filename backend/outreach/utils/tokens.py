"""Helpers for handling device tokens and timestamps."""
from datetime import datetime, timezone

TOKEN_PREFIX_LENGTH = 8


def token_prefix(token: str) -> str:
    """Redacted form of a device token, safe for logs and API responses.

    At most 8 characters and never more than half the token.
    """
    return f"{token[:min(TOKEN_PREFIX_LENGTH, len(token) // 2)]}..."


def utcnow() -> datetime:
    """Naive UTC timestamp, matching how DateTime columns are stored."""
    return datetime.now(timezone.utc).replace(tzinfo=None)
