"""
checker/retry.py — Retry policy evaluation.

Pure functions over (attempt, policy). ``attempt`` is the 1-indexed count of
attempts already made, so after the first failure ``attempt == 1``.
"""

from __future__ import annotations

from checker.definitions import RetryPolicy


def exhausted(attempt: int, policy: RetryPolicy) -> bool:
    """True once no retry remains after ``attempt`` attempts."""
    return attempt > policy.max_retries


def backoff(attempt: int, policy: RetryPolicy) -> float:
    """Seconds to wait after failed attempt number ``attempt``."""
    if attempt < 1:
        raise ValueError(f"attempt must be >= 1, got {attempt}")
    return policy.initial * policy.multiplier ** (attempt - 1)
