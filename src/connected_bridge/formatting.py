"""Human-readable timestamps and durations."""

from __future__ import annotations

from datetime import datetime, timezone

from dateutil import tz

MINUTE_MS = 60_000
HOUR_MS = 60 * MINUTE_MS
DAY_MS = 24 * HOUR_MS


def format_relative_time(timestamp_ms: int, now: datetime | None = None) -> str:
    """"Just now", "5m ago", "3h ago", "Yesterday", "4d ago", then a local date."""
    now = now or datetime.now(timezone.utc)
    if now.tzinfo is None:
        now = now.replace(tzinfo=tz.tzlocal())
    now_ms = int(now.timestamp() * 1000)
    diff = now_ms - timestamp_ms

    if diff < MINUTE_MS:
        return "Just now"
    if diff < HOUR_MS:
        return f"{diff // MINUTE_MS}m ago"
    if diff < DAY_MS:
        return f"{diff // HOUR_MS}h ago"
    if diff < 2 * DAY_MS:
        return "Yesterday"
    if diff < 7 * DAY_MS:
        return f"{diff // DAY_MS}d ago"

    local = datetime.fromtimestamp(timestamp_ms / 1000, tz=tz.tzlocal())
    return f"{local.month}/{local.day}/{local.year}"


def format_duration(ms: int) -> str:
    """Milliseconds as ``m:ss``."""
    if ms <= 0:
        return "0:00"
    total_seconds = ms // 1000
    return f"{total_seconds // 60}:{total_seconds % 60:02d}"
