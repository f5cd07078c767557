"""Lifecycle classifier - one discrete state per room at a moment in time.

Precedence (highest first):
    1. manual room status (maintenance / out_of_order / cleaning)
    2. no active reservation -> vacant
    3. reserved    -> arriving-early | arriving-today | no-show | reserved-future
    4. checked_in  -> in-house | departing-today | overstay

Day boundaries compare calendar dates first; time of day is only consulted
on the arrival / departure day itself. ``now`` must already be in the
property's local time.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, time
from enum import Enum
from typing import Union

from staydesk.domain.models import (
    ManualStatus,
    OperationsHours,
    Reservation,
    ReservationStatus,
    Room,
)


class LifecycleState(str, Enum):
    VACANT = "vacant"
    ARRIVING_EARLY = "arriving-early"
    ARRIVING_TODAY = "arriving-today"
    RESERVED_FUTURE = "reserved-future"
    NO_SHOW = "no-show"
    IN_HOUSE = "in-house"
    DEPARTING_TODAY = "departing-today"
    OVERSTAY = "overstay"
    CLEANING = "cleaning"
    MAINTENANCE = "maintenance"
    OUT_OF_ORDER = "out-of-order"


class DisplayStatus(str, Enum):
    AVAILABLE = "available"
    OCCUPIED = "occupied"
    RESERVED = "reserved"
    CLEANING = "cleaning"
    MAINTENANCE = "maintenance"
    OVERSTAY = "overstay"


DISPLAY_STATUS_BY_STATE: dict[LifecycleState, DisplayStatus] = {
    LifecycleState.VACANT: DisplayStatus.AVAILABLE,
    LifecycleState.ARRIVING_EARLY: DisplayStatus.RESERVED,
    LifecycleState.ARRIVING_TODAY: DisplayStatus.RESERVED,
    LifecycleState.RESERVED_FUTURE: DisplayStatus.RESERVED,
    LifecycleState.NO_SHOW: DisplayStatus.RESERVED,
    LifecycleState.IN_HOUSE: DisplayStatus.OCCUPIED,
    LifecycleState.DEPARTING_TODAY: DisplayStatus.OCCUPIED,
    LifecycleState.OVERSTAY: DisplayStatus.OVERSTAY,
    LifecycleState.CLEANING: DisplayStatus.CLEANING,
    LifecycleState.MAINTENANCE: DisplayStatus.MAINTENANCE,
    LifecycleState.OUT_OF_ORDER: DisplayStatus.MAINTENANCE,
}

CHECKED_IN_STATES = frozenset(
    {LifecycleState.IN_HOUSE, LifecycleState.DEPARTING_TODAY, LifecycleState.OVERSTAY}
)
MANUAL_OVERRIDE_STATES = frozenset(
    {LifecycleState.CLEANING, LifecycleState.MAINTENANCE, LifecycleState.OUT_OF_ORDER}
)

_MANUAL_STATES: dict[ManualStatus, tuple[LifecycleState, str]] = {
    ManualStatus.MAINTENANCE: (LifecycleState.MAINTENANCE, "Under maintenance"),
    ManualStatus.OUT_OF_ORDER: (LifecycleState.OUT_OF_ORDER, "Out of order"),
    ManualStatus.CLEANING: (LifecycleState.CLEANING, "Being cleaned"),
}


def display_status_for(state: LifecycleState) -> DisplayStatus:
    """Map a lifecycle state to its coarse presentation label."""
    return DISPLAY_STATUS_BY_STATE[state]


# ── Room status variants ─────────────────────────────────


@dataclass(frozen=True)
class Vacant:
    kind: str = "vacant"


@dataclass(frozen=True)
class Reserved:
    reservation_id: str
    kind: str = "reserved"


@dataclass(frozen=True)
class Occupied:
    reservation_id: str
    kind: str = "occupied"


@dataclass(frozen=True)
class Overstaying:
    reservation_id: str
    days_overdue: int
    kind: str = "overstaying"


@dataclass(frozen=True)
class ManualOverride:
    status: ManualStatus
    reason: str | None = None
    kind: str = "manual_override"


RoomStatus = Union[Vacant, Reserved, Occupied, Overstaying, ManualOverride]


@dataclass(frozen=True)
class Classification:
    state: LifecycleState
    display_status: DisplayStatus
    status_message: str | None
    room_status: RoomStatus


def _hhmm(value: time) -> str:
    return value.strftime("%H:%M")


def _plural(count: int, unit: str) -> str:
    return f"{count} {unit}" if count == 1 else f"{count} {unit}s"


def _classification(
    state: LifecycleState,
    message: str | None,
    room_status: RoomStatus,
) -> Classification:
    return Classification(
        state=state,
        display_status=display_status_for(state),
        status_message=message,
        room_status=room_status,
    )


def _classify_reserved(
    reservation: Reservation,
    today: date,
    current_time: time,
    hours: OperationsHours,
) -> Classification:
    variant = Reserved(reservation_id=reservation.id)

    if reservation.check_in == today:
        if current_time < hours.check_in_time:
            return _classification(
                LifecycleState.ARRIVING_EARLY,
                f"Check-in from {_hhmm(hours.check_in_time)}",
                variant,
            )
        return _classification(LifecycleState.ARRIVING_TODAY, "Ready to check in", variant)

    if reservation.check_in < today:
        expected = reservation.check_in.isoformat()
        if reservation.check_out <= today:
            message = f"No-show - expected arrival {expected}"
        else:
            message = f"Late arrival - expected {expected}"
        return _classification(LifecycleState.NO_SHOW, message, variant)

    return _classification(
        LifecycleState.RESERVED_FUTURE,
        f"Arriving {reservation.check_in.isoformat()}",
        variant,
    )


def _classify_checked_in(
    reservation: Reservation,
    now: datetime,
    hours: OperationsHours,
) -> Classification:
    today = now.date()
    check_out = reservation.check_out

    if check_out > today:
        return _classification(
            LifecycleState.IN_HOUSE,
            f"Departing {check_out.isoformat()}",
            Occupied(reservation_id=reservation.id),
        )

    if check_out == today and now.time() < hours.check_out_time:
        return _classification(
            LifecycleState.DEPARTING_TODAY,
            f"Due out at {_hhmm(hours.check_out_time)}",
            Occupied(reservation_id=reservation.id),
        )

    days_overdue = (today - check_out).days
    if days_overdue > 0:
        message = f"{_plural(days_overdue, 'day')} overdue"
    else:
        deadline = datetime.combine(today, hours.check_out_time, tzinfo=now.tzinfo)
        hours_overdue = int((now - deadline).total_seconds() // 3600)
        if hours_overdue >= 1:
            message = f"{_plural(hours_overdue, 'hour')} overdue"
        else:
            message = f"Due out at {_hhmm(hours.check_out_time)}"

    return _classification(
        LifecycleState.OVERSTAY,
        message,
        Overstaying(reservation_id=reservation.id, days_overdue=days_overdue),
    )


def classify_lifecycle(
    now: datetime,
    operations_hours: OperationsHours | None,
    active_reservation: Reservation | None,
    room: Room,
) -> Classification:
    """Classify a room into exactly one lifecycle state.

    Args:
        now: Current property-local timestamp.
        operations_hours: Check-in/out times; None means defaults.
        active_reservation: Output of select_active_reservation.
        room: The room (manual status and reason are read).

    Returns:
        Classification with state, display status, message and RoomStatus variant.
    """
    hours = operations_hours or OperationsHours()

    manual = _MANUAL_STATES.get(room.manual_status)
    if manual is not None:
        state, message = manual
        return _classification(
            state,
            room.manual_status_reason or message,
            ManualOverride(status=room.manual_status, reason=room.manual_status_reason),
        )

    if active_reservation is None:
        return _classification(LifecycleState.VACANT, None, Vacant())

    if active_reservation.status == ReservationStatus.RESERVED:
        return _classify_reserved(active_reservation, now.date(), now.time(), hours)

    if active_reservation.status == ReservationStatus.CHECKED_IN:
        return _classify_checked_in(active_reservation, now, hours)

    # Terminal statuses are filtered upstream; treat a stray one as no booking.
    return _classification(LifecycleState.VACANT, None, Vacant())
