"""
Date parsing for store payloads.

Every parser is total: it returns ``None`` for anything it cannot read
instead of raising or silently coercing to the epoch.
"""

import re
from datetime import UTC, datetime

EPOCH = datetime(1970, 1, 1, tzinfo=UTC)

# RFC 3339 timestamps from Google can carry nanosecond precision
_FRACTION = re.compile(r"\.(\d+)")
_INTEGER = re.compile(r"-?\d+", re.ASCII)


def utc_now() -> datetime:
    """Get current UTC timestamp."""
    return datetime.now(UTC)


def parse_epoch_ms(value: object) -> datetime | None:
    """
    Parse a millisecond epoch timestamp.

    Apple legacy receipts encode these as strings, StoreKit v2 and Google
    as numbers. Absent, non-numeric and non-positive values are all "absent".
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, str):
        value = value.strip()
        if _INTEGER.fullmatch(value) is None:
            return None
        ms = int(value)
    elif isinstance(value, int):
        ms = value
    elif isinstance(value, float) and value.is_integer():
        ms = int(value)
    else:
        return None

    if ms <= 0:
        return None

    try:
        return datetime.fromtimestamp(ms / 1000, tz=UTC)
    except (OverflowError, OSError, ValueError):
        return None


def parse_purchase_date_ms(value: object) -> datetime:
    """Purchase dates are always present upstream; unreadable ones fall back to the epoch."""
    return parse_epoch_ms(value) or EPOCH


def parse_rfc3339(value: object) -> datetime | None:
    """Parse an RFC 3339 timestamp such as ``2024-05-01T10:00:00.123456789Z``."""
    if not isinstance(value, str) or not value:
        return None

    text = value.strip()
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    text = _FRACTION.sub(lambda m: "." + m.group(1)[:6].ljust(6, "0"), text, count=1)

    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed.astimezone(UTC)
