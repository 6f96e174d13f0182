"""
Lazy expiration of abandoned revision sessions.

Nothing deletes sessions on a schedule: the read path evaluates is_expired
and treats an expired session as absent after removing it.
"""

from __future__ import annotations

from datetime import datetime, timedelta

DEFAULT_EXPIRY_SECONDS = 900  # 15 minutes of inactivity


def is_expired(
    last_activity_at: datetime | None,
    now: datetime,
    expiry_seconds: int = DEFAULT_EXPIRY_SECONDS,
) -> bool:
    """True once strictly more than expiry_seconds have passed since the last activity."""
    if last_activity_at is None:
        return True
    return now - last_activity_at > timedelta(seconds=expiry_seconds)


def expiry_cutoff(now: datetime, expiry_seconds: int = DEFAULT_EXPIRY_SECONDS) -> datetime:
    """Sessions whose last activity is strictly before this instant are expired."""
    return now - timedelta(seconds=expiry_seconds)
