from __future__ import annotations

import math
import re
from datetime import datetime, timezone
from typing import Any

_INT_PREFIX = re.compile(r"^\s*([+-]?\d+)")


def safe_num(value: Any) -> float:
    """Coerce an upstream value to a finite float; anything else becomes 0."""
    if value is None:
        return 0.0
    if isinstance(value, str):
        value = value.strip()
        if not value:
            return 0.0
    try:
        num = float(value)
    except (TypeError, ValueError, OverflowError):
        return 0.0
    return num if math.isfinite(num) else 0.0


def safe_div(a: float, b: float) -> float:
    return 0.0 if b == 0 else a / b


def half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def _int_prefix(text: str) -> int:
    match = _INT_PREFIX.match(text)
    return int(match.group(1)) if match else 0


def parse_waiting_minutes(value: Any) -> int:
    """Minutes of a "HH:MM[:SS]" duration. Seconds are ignored."""
    if not value:
        return 0
    parts = str(value).split(":")
    if len(parts) < 2:
        return 0
    return _int_prefix(parts[0]) * 60 + _int_prefix(parts[1])


def parse_timestamp(value: str | None) -> datetime | None:
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(str(value).strip().replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo:
        return parsed
    # naive upstream timestamps are local time; DateTime.MinValue cannot be shifted
    try:
        return parsed.astimezone()
    except (ValueError, OverflowError):
        return None


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def hours_since(value: str | None, now: datetime | None = None) -> float | None:
    ts = parse_timestamp(value)
    if ts is None:
        return None
    now = now or utcnow()
    if now.tzinfo is None:
        now = now.astimezone()
    return (now - ts).total_seconds() / 3600.0


def format_time_since(value: str | None, now: datetime | None = None) -> str:
    hours = hours_since(value, now)
    if hours is None:
        return "unknown"
    mins = math.floor(hours * 60)
    if mins < 60:
        return f"{mins}m ago"
    whole_hours = mins // 60
    if whole_hours < 24:
        return f"{whole_hours}h ago"
    return f"{whole_hours // 24}d ago"
