"""Formatting and small value helpers shared by routes and services."""

import re
from datetime import datetime, timezone
from typing import Any

OBJECT_ID_PATTERN = re.compile(r"^[0-9a-fA-F]{24}$")

BYTE_UNITS = ["Bytes", "KB", "MB", "GB", "TB", "PB", "EB", "ZB", "YB"]


def format_bytes(num_bytes: float, decimals: int = 2) -> str:
    """
    Format a byte count for humans.

    Example:
        >>> format_bytes(1536)
        '1.5 KB'
    """
    if num_bytes <= 0:
        return "0 Bytes"

    k = 1024
    precision = max(decimals, 0)
    index = 0
    scaled = float(num_bytes)
    while scaled >= k and index < len(BYTE_UNITS) - 1:
        scaled /= k
        index += 1
    value = round(scaled, precision)
    # Drop trailing zeros the way a float repr would ("1.50" -> "1.5")
    text = f"{value:.{precision}f}".rstrip("0").rstrip(".") if precision else f"{value:.0f}"
    return f"{text} {BYTE_UNITS[index]}"


def format_uptime(seconds: float) -> str:
    """
    Format an uptime in seconds as `"1d 2h 3m 4s"`, omitting zero parts.

    A zero uptime renders as `"0s"`.
    """
    total = int(seconds)
    days, remainder = divmod(total, 86400)
    hours, remainder = divmod(remainder, 3600)
    minutes, secs = divmod(remainder, 60)

    parts = []
    if days > 0:
        parts.append(f"{days}d")
    if hours > 0:
        parts.append(f"{hours}h")
    if minutes > 0:
        parts.append(f"{minutes}m")
    if secs > 0 or not parts:
        parts.append(f"{secs}s")
    return " ".join(parts)


def utc_now() -> datetime:
    """Current UTC time truncated to milliseconds, the precision MongoDB stores."""
    return to_utc_millis(datetime.now(timezone.utc))


def is_valid_object_id(value: Any) -> bool:
    """True when `value` is a 24-character hexadecimal string."""
    return isinstance(value, str) and bool(OBJECT_ID_PATTERN.match(value))


def to_utc_millis(value: datetime) -> datetime:
    """Normalize a timestamp to aware UTC with millisecond precision; naive values are taken as UTC."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    else:
        value = value.astimezone(timezone.utc)
    return value.replace(microsecond=(value.microsecond // 1000) * 1000)
