"""Retry delay policy for reconnect attempts."""

from __future__ import annotations

INITIAL_RETRY_DELAY_MS = 1000  # 1 second
MAX_RETRY_DELAY_MS = 30000  # 30 seconds
BACKOFF_MULTIPLIER = 2.0  # Double each time


def retry_delay(attempt: int) -> int:
    """Return the delay in milliseconds to wait after a failed attempt.

    The delay doubles with every attempt and is capped at MAX_RETRY_DELAY_MS.
    It depends only on the attempt number.

    Args:
        attempt: The 1-based number of the attempt that just failed

    Returns:
        Delay in milliseconds before the next attempt
    """
    if attempt <= 1:
        return INITIAL_RETRY_DELAY_MS

    delay = INITIAL_RETRY_DELAY_MS * BACKOFF_MULTIPLIER ** (attempt - 1)
    return int(min(delay, MAX_RETRY_DELAY_MS))
