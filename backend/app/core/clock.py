"""
Time helpers.

Every timestamp persisted by the service is a naive UTC datetime. External
payloads (Enode, API clients) carry ISO-8601 strings which are normalised here.
"""
from datetime import datetime, timezone
from typing import Any, Optional


def utcnow() -> datetime:
    """Current time as a naive UTC datetime."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_naive_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def parse_timestamp(value: Any) -> Optional[datetime]:
    """
    Parse an ISO-8601 timestamp into a naive UTC datetime.

    Returns None for anything that is not a parseable timestamp.
    """
    if isinstance(value, datetime):
        return to_naive_utc(value)
    if not isinstance(value, str) or not value.strip():
        return None
    try:
        parsed = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
    except ValueError:
        return None
    return to_naive_utc(parsed)


def isoformat(value: Optional[datetime]) -> Optional[str]:
    """Serialize a stored timestamp as an explicit UTC ISO string."""
    if value is None:
        return None
    return value.replace(tzinfo=timezone.utc).isoformat().replace("+00:00", "Z")
