"""Time utilities for consistent timestamp handling.

The resolver works in property-local time: "today" and the check-in/out
cut-offs are wall-clock values at the hotel, not in UTC.
"""

import os
from datetime import datetime, timezone
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from staydesk.observability.logging import get_logger

logger = get_logger(__name__)


def default_timezone_name() -> str:
    return os.environ.get("DEFAULT_PROPERTY_TIMEZONE", "UTC")


def utc_now() -> datetime:
    """Return current UTC timestamp (timezone-aware)."""
    return datetime.now(timezone.utc)


def resolve_timezone(tz_name: str | None) -> ZoneInfo:
    """Return the ZoneInfo for ``tz_name``, falling back to the default timezone."""
    fallback = default_timezone_name()
    if tz_name:
        try:
            return ZoneInfo(tz_name)
        except (ZoneInfoNotFoundError, ValueError):
            logger.warning(
                "invalid property timezone, using default",
                extra={"extra_fields": {"timezone": tz_name, "fallback": fallback}},
            )
    return ZoneInfo(fallback)


def property_now(tz_name: str | None, *, now: datetime | None = None) -> datetime:
    """Current time as a timezone-aware datetime in the property's timezone."""
    current = now or utc_now()
    return current.astimezone(resolve_timezone(tz_name))
