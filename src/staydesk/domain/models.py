"""Front-desk domain types shared by the room status resolver.

Everything here is an immutable value object. Callers build them from
whatever storage they use (see infra/repositories) and hand them to the
pure functions in selection, lifecycle, actions and room_status.

All money is Integer (cents).
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime, time
from enum import Enum

logger = logging.getLogger(__name__)


# ── Enums ─────────────────────────────────────────────────


class ReservationStatus(str, Enum):
    RESERVED = "reserved"
    CHECKED_IN = "checked_in"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


# Reservations in these statuses never govern a room.
TERMINAL_STATUSES = frozenset({ReservationStatus.COMPLETED, ReservationStatus.CANCELLED})


class ManualStatus(str, Enum):
    """Housekeeping / engineering status set by staff on the room itself."""

    NONE = "none"
    CLEANING = "cleaning"
    MAINTENANCE = "maintenance"
    OUT_OF_ORDER = "out_of_order"


# ── Entities ──────────────────────────────────────────────


@dataclass(frozen=True)
class Room:
    id: str
    number: str
    category_id: str | None = None
    floor: int | None = None
    manual_status: ManualStatus = ManualStatus.NONE
    manual_status_reason: str | None = None
    do_not_disturb: bool = False


@dataclass(frozen=True)
class Reservation:
    """A booking of one physical room.

    Attributes:
        check_in: Booked arrival date.
        check_out: Booked departure date (the guest leaves on this day).
        checked_in_at: Actual check-in timestamp, once recorded.
        checked_out_at: Actual check-out timestamp, once recorded.
        created_at: Booking creation time; the reservation query orders
            candidates by it so that input order means "booked first".
    """

    id: str
    room_id: str
    guest_id: str
    check_in: date
    check_out: date
    status: ReservationStatus
    organization_id: str | None = None
    checked_in_at: datetime | None = None
    checked_out_at: datetime | None = None
    created_at: datetime | None = None

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES


# ── Configuration ─────────────────────────────────────────

DEFAULT_CHECK_IN_TIME = time(14, 0)
DEFAULT_CHECK_OUT_TIME = time(12, 0)

# 50,000.00 in the property currency.
DEFAULT_MANAGER_APPROVAL_THRESHOLD_CENTS = 5_000_000


def parse_time_of_day(value: str | time | None, default: time) -> time:
    """Parse an ``HH:MM`` (or ``HH:MM:SS``) string, falling back to ``default``.

    Never raises: a missing or malformed value yields the default and logs a
    warning for the malformed case.
    """
    if value is None or value == "":
        return default
    if isinstance(value, time):
        return value
    try:
        return time.fromisoformat(str(value).strip())
    except ValueError:
        logger.warning(
            "invalid time of day, using default",
            extra={"extra_fields": {"value": str(value), "default": default.isoformat()}},
        )
        return default


@dataclass(frozen=True)
class OperationsHours:
    """Hotel-wide standard check-in / check-out times of day."""

    check_in_time: time = DEFAULT_CHECK_IN_TIME
    check_out_time: time = DEFAULT_CHECK_OUT_TIME

    @classmethod
    def from_settings(cls, settings: dict | None) -> "OperationsHours":
        """Build from a settings mapping like ``{"check_in_time": "15:00"}``.

        Missing keys and unparsable values degrade to the defaults.
        """
        settings = settings or {}
        return cls(
            check_in_time=parse_time_of_day(settings.get("check_in_time"), DEFAULT_CHECK_IN_TIME),
            check_out_time=parse_time_of_day(settings.get("check_out_time"), DEFAULT_CHECK_OUT_TIME),
        )


@dataclass(frozen=True)
class CheckoutPolicy:
    """Per-tenant checkout rules for guests with an outstanding balance."""

    allow_checkout_with_debt: bool = False
    manager_approval_threshold_cents: int = DEFAULT_MANAGER_APPROVAL_THRESHOLD_CENTS

    @classmethod
    def from_settings(cls, settings: dict | None) -> "CheckoutPolicy":
        settings = settings or {}
        threshold = settings.get("manager_approval_threshold_cents")
        try:
            threshold_cents = (
                int(threshold) if threshold is not None else DEFAULT_MANAGER_APPROVAL_THRESHOLD_CENTS
            )
        except (TypeError, ValueError):
            logger.warning(
                "invalid manager approval threshold, using default",
                extra={"extra_fields": {"value": str(threshold)}},
            )
            threshold_cents = DEFAULT_MANAGER_APPROVAL_THRESHOLD_CENTS
        return cls(
            allow_checkout_with_debt=bool(settings.get("allow_checkout_with_debt", False)),
            manager_approval_threshold_cents=threshold_cents,
        )
