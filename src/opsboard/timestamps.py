"""
Timestamp parsing and formatting for telemetry records.

Log collectors and status pollers send ISO-8601 strings in a few shapes:

- With offset: "2025-03-01T10:15:30+09:00"
- UTC designator: "2025-03-01T10:15:30.123Z"
- No offset: "2025-03-01 10:15:30" (treated as UTC)

Every helper here is total: malformed input yields None (or the lowest
sort key) instead of raising, so callers can simply omit the dependent
field.
"""

import logging
import math
from datetime import datetime, timezone
from typing import Any, Optional
from zoneinfo import ZoneInfo

logger = logging.getLogger(__name__)

# Sort key for missing or unparseable timestamps.
LOWEST_SORT_KEY = -math.inf


def parse_timestamp(value: Any) -> Optional[datetime]:
    """
    Parse an ISO-8601 timestamp into a timezone-aware datetime.

    Args:
        value: Raw timestamp (normally a string)

    Returns:
        Aware datetime, or None when the value is missing or malformed
    """
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        # fromisoformat() only accepts the "Z" designator on Python 3.11+
        if text.endswith(("Z", "z")):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            logger.debug("Unparseable timestamp: %r", value)
            return None
    else:
        return None

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def timestamp_sort_key(value: Any) -> float:
    """Return epoch seconds for ordering, or -inf when the value is unusable."""
    parsed = parse_timestamp(value)
    if parsed is None:
        return LOWEST_SORT_KEY
    try:
        return parsed.timestamp()
    except (OverflowError, OSError, ValueError):
        return LOWEST_SORT_KEY


def format_timestamp(
    value: Any,
    fmt: str,
    display_timezone: Optional[str] = None,
) -> Optional[str]:
    """
    Format a timestamp for display.

    Args:
        value: Raw timestamp string or datetime
        fmt: strftime format
        display_timezone: IANA zone to convert into (keeps the original offset if None)

    Returns:
        Formatted string, or None when the value cannot be parsed
    """
    parsed = parse_timestamp(value)
    if parsed is None:
        return None
    try:
        if display_timezone:
            parsed = parsed.astimezone(ZoneInfo(display_timezone))
        return parsed.strftime(fmt)
    except (OverflowError, OSError, ValueError) as exc:
        logger.debug("Could not format timestamp %r: %s", value, exc)
        return None
