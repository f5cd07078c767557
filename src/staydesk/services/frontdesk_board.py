"""Front desk board - grid tiles, room drawer and KPI summary.

All three views are projections of resolve_room_status / resolve_room over
the same inputs, so a room shows the same state, message and actions in
every view. Nothing here inspects reservation dates or statuses directly.

Rules:
- Inputs are already fetched (rooms, open reservations, balances).
- Recompute on every read; nothing is cached between calls.
- RoomInvalidationListener coalesces change events per room before
  triggering a recompute.
"""

from __future__ import annotations

from collections import Counter, defaultdict
from datetime import date, datetime
from typing import Any, Callable, Iterable

from pydantic import BaseModel

from staydesk.domain.actions import ActionGrant, CallerContext
from staydesk.domain.lifecycle import (
    LifecycleState,
    ManualOverride,
    Overstaying,
    RoomStatus,
)
from staydesk.domain.models import OperationsHours, Reservation, Room
from staydesk.domain.room_status import LifecycleResult, resolve_room, resolve_room_status
from staydesk.observability.logging import get_logger
from staydesk.tasks.debounce import DEFAULT_WINDOW_SECONDS, Debouncer, TimerFactory

logger = get_logger(__name__)


# ── Read schemas ─────────────────────────────────────────


class ActionGrantRead(BaseModel):
    action: str
    requires_approval: bool
    variant: str | None = None


class RoomStatusRead(BaseModel):
    kind: str
    reservation_id: str | None = None
    days_overdue: int | None = None
    manual_status: str | None = None
    reason: str | None = None


class ReservationRead(BaseModel):
    id: str
    guest_id: str
    organization_id: str | None
    check_in: str
    check_out: str
    status: str


class RoomTileRead(BaseModel):
    room_id: str
    number: str
    floor: int | None
    category_id: str | None
    state: str
    display_status: str
    status_message: str | None
    do_not_disturb: bool
    active_reservation_id: str | None
    room_status: RoomStatusRead
    allowed_actions: list[ActionGrantRead]


class RoomDetailRead(RoomTileRead):
    active_reservation: ReservationRead | None
    incoming_reservation: ReservationRead | None
    balance_cents: int


class FrontdeskSummary(BaseModel):
    reference_date: str
    total_rooms: int
    vacant: int
    arrivals: int
    departures: int
    in_house: int
    overstays: int
    no_shows: int
    cleaning: int
    out_of_service: int
    do_not_disturb: int


# ── Serialisation ────────────────────────────────────────


def _grant_read(grant: ActionGrant) -> ActionGrantRead:
    return ActionGrantRead(
        action=grant.action.value,
        requires_approval=grant.requires_approval,
        variant=grant.variant,
    )


def _room_status_read(status: RoomStatus) -> RoomStatusRead:
    if isinstance(status, ManualOverride):
        return RoomStatusRead(kind=status.kind, manual_status=status.status.value, reason=status.reason)
    if isinstance(status, Overstaying):
        return RoomStatusRead(
            kind=status.kind,
            reservation_id=status.reservation_id,
            days_overdue=status.days_overdue,
        )
    return RoomStatusRead(kind=status.kind, reservation_id=getattr(status, "reservation_id", None))


def reservation_read(reservation: Reservation | None) -> ReservationRead | None:
    if reservation is None:
        return None
    return ReservationRead(
        id=reservation.id,
        guest_id=reservation.guest_id,
        organization_id=reservation.organization_id,
        check_in=reservation.check_in.isoformat(),
        check_out=reservation.check_out.isoformat(),
        status=reservation.status.value,
    )


def _tile_fields(room: Room, result: LifecycleResult) -> dict[str, Any]:
    return {
        "room_id": room.id,
        "number": room.number,
        "floor": room.floor,
        "category_id": room.category_id,
        "state": result.state.value,
        "display_status": result.display_status.value,
        "status_message": result.status_message,
        "do_not_disturb": result.do_not_disturb,
        "active_reservation_id": result.active_reservation_id,
        "room_status": _room_status_read(result.room_status),
        "allowed_actions": [_grant_read(g) for g in result.allowed_actions],
    }


# ── Views ────────────────────────────────────────────────


def group_reservations_by_room(reservations: Iterable[Reservation]) -> dict[str, list[Reservation]]:
    """Bucket reservations per room, preserving their relative order."""
    by_room: dict[str, list[Reservation]] = defaultdict(list)
    for reservation in reservations:
        by_room[reservation.room_id].append(reservation)
    return dict(by_room)


def _resolve_all(
    rooms: Iterable[Room],
    reservations: Iterable[Reservation],
    reference_date: date,
    now: datetime,
    operations_hours: OperationsHours | None,
    context: CallerContext | None,
) -> list[tuple[Room, LifecycleResult]]:
    by_room = group_reservations_by_room(reservations)
    return [
        (
            room,
            resolve_room_status(
                room,
                by_room.get(room.id, []),
                reference_date,
                now,
                operations_hours,
                context,
            ),
        )
        for room in rooms
    ]


def build_room_grid(
    rooms: Iterable[Room],
    reservations: Iterable[Reservation],
    *,
    reference_date: date,
    now: datetime,
    operations_hours: OperationsHours | None = None,
    context: CallerContext | None = None,
) -> list[RoomTileRead]:
    """Resolve every room into a grid tile."""
    resolved = _resolve_all(rooms, reservations, reference_date, now, operations_hours, context)
    return [RoomTileRead(**_tile_fields(room, result)) for room, result in resolved]


def build_room_detail(
    room: Room,
    reservations: Iterable[Reservation],
    *,
    reference_date: date,
    now: datetime,
    operations_hours: OperationsHours | None = None,
    context: CallerContext | None = None,
) -> RoomDetailRead:
    """Resolve a single room for the detail drawer, including same-day turnover."""
    resolution = resolve_room(room, reservations, reference_date, now, operations_hours, context)
    active = resolution.active_reservation
    balances = context.balances_cents if context is not None else {}
    return RoomDetailRead(
        **_tile_fields(room, resolution.result),
        active_reservation=reservation_read(active),
        incoming_reservation=reservation_read(resolution.incoming_reservation),
        balance_cents=int(balances.get(active.id, 0)) if active is not None else 0,
    )


def summarize_board(
    rooms: Iterable[Room],
    reservations: Iterable[Reservation],
    *,
    reference_date: date,
    now: datetime,
    operations_hours: OperationsHours | None = None,
) -> FrontdeskSummary:
    """Count rooms per lifecycle state (no PII)."""
    resolved = _resolve_all(rooms, reservations, reference_date, now, operations_hours, None)
    states = Counter(result.state for _, result in resolved)
    return FrontdeskSummary(
        reference_date=reference_date.isoformat(),
        total_rooms=len(resolved),
        vacant=states[LifecycleState.VACANT],
        arrivals=states[LifecycleState.ARRIVING_EARLY] + states[LifecycleState.ARRIVING_TODAY],
        departures=states[LifecycleState.DEPARTING_TODAY],
        in_house=(
            states[LifecycleState.IN_HOUSE]
            + states[LifecycleState.DEPARTING_TODAY]
            + states[LifecycleState.OVERSTAY]
        ),
        overstays=states[LifecycleState.OVERSTAY],
        no_shows=states[LifecycleState.NO_SHOW],
        cleaning=states[LifecycleState.CLEANING],
        out_of_service=states[LifecycleState.MAINTENANCE] + states[LifecycleState.OUT_OF_ORDER],
        do_not_disturb=sum(1 for _, result in resolved if result.do_not_disturb),
    )


# ── Invalidation ─────────────────────────────────────────


class RoomInvalidationListener:
    """Turn room / booking change events into debounced per-room recomputes.

    Events look like ``{"table": "rooms" | "reservations", "new": {...}, "old": {...}}``.
    Events for another property are ignored.
    """

    def __init__(
        self,
        property_id: str,
        recompute: Callable[[str], None],
        window_seconds: float = DEFAULT_WINDOW_SECONDS,
        timer_factory: TimerFactory | None = None,
    ) -> None:
        self.property_id = property_id
        self._recompute = recompute
        self._debouncer = Debouncer(
            lambda room_id, _payload: self._recompute(room_id),
            window_seconds=window_seconds,
            timer_factory=timer_factory,
        )

    @property
    def debouncer(self) -> Debouncer:
        return self._debouncer

    def handle_change(self, event: dict[str, Any]) -> bool:
        """Schedule a recompute for every room an event touches.

        An update that moves a reservation to another room touches both the
        old and the new room.

        Returns:
            True if a recompute was scheduled, False if the event was ignored.
        """
        table = event.get("table")
        if table == "rooms":
            room_key = "id"
        elif table == "reservations":
            room_key = "room_id"
        else:
            return False

        records = [record for record in (event.get("new"), event.get("old")) if record]

        event_property = next(
            (record["property_id"] for record in records if record.get("property_id")), None
        )
        if event_property is not None and event_property != self.property_id:
            logger.info(
                "ignored change event from another property",
                extra={
                    "extra_fields": {
                        "property_id": self.property_id,
                        "event_property_id": event_property,
                        "table": table,
                    }
                },
            )
            return False

        room_ids: list[str] = []
        for record in records:
            room_id = record.get(room_key)
            if room_id and str(room_id) not in room_ids:
                room_ids.append(str(room_id))

        for room_id in room_ids:
            self._debouncer.trigger(room_id, table)
        return bool(room_ids)

    def close(self) -> None:
        self._debouncer.cancel()
