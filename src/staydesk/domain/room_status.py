"""Room status resolver - the single entry point for "what is this room doing now".

Every consumer (grid, drawer, KPI summary, reports) calls these functions and
nothing else; none of them filters, prioritises or classifies reservations on
its own.

    filter_candidate_reservations -> select_active_reservation
        -> classify_lifecycle -> evaluate_allowed_actions

Pure and synchronous: no I/O, no clock reads, no caching. Callers pass ``now``
in property-local time and recompute on every read.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from typing import Iterable

from staydesk.domain.actions import ActionGrant, CallerContext, evaluate_allowed_actions
from staydesk.domain.lifecycle import (
    DisplayStatus,
    LifecycleState,
    RoomStatus,
    classify_lifecycle,
)
from staydesk.domain.models import OperationsHours, Reservation, Room
from staydesk.domain.selection import (
    filter_candidate_reservations,
    find_incoming_reservation,
    select_active_reservation,
)


@dataclass(frozen=True)
class LifecycleResult:
    state: LifecycleState
    display_status: DisplayStatus
    status_message: str | None
    allowed_actions: tuple[ActionGrant, ...]
    room_status: RoomStatus
    active_reservation_id: str | None = None
    do_not_disturb: bool = False

    @property
    def action_names(self) -> list[str]:
        return [grant.action.value for grant in self.allowed_actions]


@dataclass(frozen=True)
class RoomResolution:
    """Lifecycle result plus the reservations behind it, for detail views."""

    result: LifecycleResult
    active_reservation: Reservation | None
    incoming_reservation: Reservation | None


def _select(
    room: Room,
    reservations: list[Reservation],
    reference_date: date,
) -> Reservation | None:
    candidates = filter_candidate_reservations(room.id, reference_date, reservations)
    return select_active_reservation(candidates, reference_date)


def _result_for(
    room: Room,
    active: Reservation | None,
    reference_date: date,
    now: datetime,
    operations_hours: OperationsHours | None,
    context: CallerContext | None,
) -> LifecycleResult:
    classification = classify_lifecycle(now, operations_hours, active, room)
    grants = evaluate_allowed_actions(
        classification.state,
        has_active_reservation=active is not None,
        reference_date=reference_date,
        today=now.date(),
        context=(context or CallerContext()).for_reservation(active),
    )
    return LifecycleResult(
        state=classification.state,
        display_status=classification.display_status,
        status_message=classification.status_message,
        allowed_actions=grants,
        room_status=classification.room_status,
        active_reservation_id=active.id if active is not None else None,
        do_not_disturb=room.do_not_disturb,
    )


def resolve_room_status(
    room: Room,
    candidate_reservations: Iterable[Reservation],
    reference_date: date,
    now: datetime,
    operations_hours: OperationsHours | None = None,
    context: CallerContext | None = None,
) -> LifecycleResult:
    """Resolve a room's lifecycle state and permitted actions.

    Args:
        room: The room.
        candidate_reservations: Reservations fetched for the room; terminal and
            non-overlapping ones are discarded here.
        reference_date: Date being evaluated (usually today).
        now: Current property-local timestamp.
        operations_hours: Hotel check-in/out times; None degrades to 14:00/12:00.
        context: Caller capabilities, checkout policy and per-reservation
            balances for the action gate; None means no capabilities, zero
            balance, default policy.

    Returns:
        LifecycleResult. Never raises for overlapping or ambiguous bookings.
    """
    active = _select(room, list(candidate_reservations), reference_date)
    return _result_for(room, active, reference_date, now, operations_hours, context)


def resolve_incoming_reservation(
    room: Room,
    reservations: Iterable[Reservation],
    reference_date: date,
    now: datetime,
) -> Reservation | None:
    """Return the reservation arriving today while the active guest departs."""
    reservations = list(reservations)
    active = _select(room, reservations, reference_date)
    return find_incoming_reservation(active, reservations, now.date())


def resolve_room(
    room: Room,
    reservations: Iterable[Reservation],
    reference_date: date,
    now: datetime,
    operations_hours: OperationsHours | None = None,
    context: CallerContext | None = None,
) -> RoomResolution:
    """Resolve status and incoming reservation in one pass over the same data."""
    reservations = list(reservations)
    active = _select(room, reservations, reference_date)
    return RoomResolution(
        result=_result_for(room, active, reference_date, now, operations_hours, context),
        active_reservation=active,
        incoming_reservation=find_incoming_reservation(active, reservations, now.date()),
    )
