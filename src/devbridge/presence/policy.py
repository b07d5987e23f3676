"""Liveness policy.

Liveness is derived purely from the gap since the last heartbeat; this
module holds that rule so the store and the sweeper agree on it.
"""

from __future__ import annotations

from datetime import datetime, timedelta


def as_timedelta(threshold: float | timedelta) -> timedelta:
    if isinstance(threshold, timedelta):
        return threshold
    return timedelta(seconds=threshold)


def is_stale(now: datetime, last_seen: datetime, threshold: float | timedelta) -> bool:
    """``True`` when strictly more than *threshold* has passed since *last_seen*."""
    return (now - last_seen) > as_timedelta(threshold)
