"""Front desk endpoints: room grid, room drawer, KPI summary and stay actions.

Reads resolve every room through the room status resolver; mutations
re-resolve the room inside the transaction and only proceed when the action
is still in the room's grant set.
"""

from __future__ import annotations

from dataclasses import replace
from datetime import date, datetime

from fastapi import APIRouter, Depends, Header, HTTPException, Path, Query
from pydantic import BaseModel, Field

from staydesk.api.rbac import PropertyRoleContext, has_permission, require_property_role
from staydesk.domain.actions import (
    FINANCE_MANAGE,
    Action,
    ActionNotAllowedError,
    ApprovalRequiredError,
    CallerContext,
    authorize_action,
)
from staydesk.domain.models import ManualStatus, Reservation, ReservationStatus, Room
from staydesk.domain.room_status import RoomResolution, resolve_room
from staydesk.infra.db import txn
from staydesk.infra.property_settings import PropertySettings, get_property_settings
from staydesk.infra.repositories import (
    folio_repository,
    reservations_repository,
    rooms_repository,
)
from staydesk.infra.time import property_now
from staydesk.observability.correlation import get_correlation_id
from staydesk.observability.logging import get_logger
from staydesk.services.frontdesk_board import (
    FrontdeskSummary,
    RoomDetailRead,
    RoomTileRead,
    build_room_detail,
    build_room_grid,
    summarize_board,
)

router = APIRouter(prefix="/frontdesk", tags=["frontdesk"])

logger = get_logger(__name__)

APPROVAL_TOKEN_HEADER = "X-Approval-Token"

# (expected status, new status) per mutating action
_TRANSITIONS: dict[Action, tuple[ReservationStatus, ReservationStatus]] = {
    Action.CHECK_IN: (ReservationStatus.RESERVED, ReservationStatus.CHECKED_IN),
    Action.EARLY_CHECK_IN: (ReservationStatus.RESERVED, ReservationStatus.CHECKED_IN),
    Action.CHECKOUT: (ReservationStatus.CHECKED_IN, ReservationStatus.COMPLETED),
    Action.FORCE_CHECKOUT: (ReservationStatus.CHECKED_IN, ReservationStatus.COMPLETED),
    Action.CANCEL_BOOKING: (ReservationStatus.RESERVED, ReservationStatus.CANCELLED),
}


class ForceCheckoutRequest(BaseModel):
    reason: str = Field(..., min_length=1, max_length=500)


class ActionResult(BaseModel):
    reservation_id: str
    room_id: str
    action: str
    status: str


class ManualStatusUpdate(BaseModel):
    manual_status: ManualStatus
    reason: str | None = Field(None, max_length=500)


# ── Loaders ──────────────────────────────────────────────


def _load_settings(property_id: str) -> tuple[PropertySettings, datetime]:
    """Property settings plus the current property-local time."""
    settings = get_property_settings(property_id)
    return settings, property_now(settings.timezone)


def _load_candidates(
    cur, property_id: str, rooms: list[Room], as_of: date
) -> tuple[list[Reservation], dict[str, int]]:
    reservations = reservations_repository.list_open_reservations(
        cur,
        property_id=property_id,
        room_ids=[room.id for room in rooms],
        as_of=as_of,
    )
    balances = folio_repository.get_outstanding_balances_cents(
        cur,
        property_id=property_id,
        reservation_ids=[r.id for r in reservations],
    )
    return reservations, balances


def _caller_context(
    ctx: PropertyRoleContext, settings: PropertySettings, balances: dict[str, int]
) -> CallerContext:
    return CallerContext(
        capabilities=ctx.capabilities,
        policy=settings.checkout_policy,
        balances_cents=balances,
    )


# ── Reads ────────────────────────────────────────────────


@router.get("/rooms", response_model=list[RoomTileRead])
def list_room_tiles(
    ctx: PropertyRoleContext = Depends(require_property_role("viewer")),
    reference_date: date | None = Query(None, description="Date (YYYY-MM-DD), defaults to today"),
) -> list[RoomTileRead]:
    """Room grid: one resolved tile per active room.

    Requires viewer role or higher.
    """
    settings, now = _load_settings(ctx.property_id)
    effective_date = reference_date or now.date()

    with txn() as cur:
        rooms = rooms_repository.list_rooms(cur, property_id=ctx.property_id)
        reservations, balances = _load_candidates(cur, ctx.property_id, rooms, effective_date)

    return build_room_grid(
        rooms,
        reservations,
        reference_date=effective_date,
        now=now,
        operations_hours=settings.operations_hours,
        context=_caller_context(ctx, settings, balances),
    )


@router.get("/rooms/{room_id}", response_model=RoomDetailRead)
def get_room_detail(
    room_id: str = Path(..., description="Room UUID"),
    ctx: PropertyRoleContext = Depends(require_property_role("viewer")),
    reference_date: date | None = Query(None, description="Date (YYYY-MM-DD), defaults to today"),
) -> RoomDetailRead:
    """Room drawer: resolved state, active and incoming reservation, balance.

    Requires viewer role or higher.
    """
    settings, now = _load_settings(ctx.property_id)
    effective_date = reference_date or now.date()

    with txn() as cur:
        room = rooms_repository.get_room(cur, property_id=ctx.property_id, room_id=room_id)
        if room is None:
            raise HTTPException(status_code=404, detail="Room not found")
        reservations, balances = _load_candidates(cur, ctx.property_id, [room], effective_date)

    return build_room_detail(
        room,
        reservations,
        reference_date=effective_date,
        now=now,
        operations_hours=settings.operations_hours,
        context=_caller_context(ctx, settings, balances),
    )


@router.get("/summary", response_model=FrontdeskSummary)
def get_summary(
    ctx: PropertyRoleContext = Depends(require_property_role("viewer")),
    reference_date: date | None = Query(None, description="Date (YYYY-MM-DD), defaults to today"),
) -> FrontdeskSummary:
    """KPI counts per lifecycle state (no PII).

    Requires viewer role or higher.
    """
    settings, now = _load_settings(ctx.property_id)
    effective_date = reference_date or now.date()

    with txn() as cur:
        rooms = rooms_repository.list_rooms(cur, property_id=ctx.property_id)
        reservations = reservations_repository.list_open_reservations(
            cur,
            property_id=ctx.property_id,
            room_ids=[room.id for room in rooms],
            as_of=effective_date,
        )

    return summarize_board(
        rooms,
        reservations,
        reference_date=effective_date,
        now=now,
        operations_hours=settings.operations_hours,
    )


# ── Housekeeping ─────────────────────────────────────────


@router.patch("/rooms/{room_id}/manual-status")
def update_room_manual_status(
    body: ManualStatusUpdate,
    room_id: str = Path(..., description="Room UUID"),
    ctx: PropertyRoleContext = Depends(require_property_role("staff")),
) -> dict:
    """Set or clear the room's manual status.

    ``none`` hands the room back to the reservation lifecycle, e.g. once
    cleaning after a checkout is done. Requires staff role or higher.
    """
    correlation_id = get_correlation_id()

    with txn() as cur:
        updated = rooms_repository.set_manual_status(
            cur,
            property_id=ctx.property_id,
            room_id=room_id,
            manual_status=body.manual_status,
            reason=body.reason,
        )
    if not updated:
        raise HTTPException(status_code=404, detail="Room not found")

    logger.info(
        "room manual status updated",
        extra={
            "extra_fields": {
                "correlationId": correlation_id,
                "property_id": ctx.property_id,
                "room_id": room_id,
                "manual_status": body.manual_status.value,
                "user_id": ctx.user.id,
            }
        },
    )

    return {
        "id": room_id,
        "manual_status": body.manual_status.value,
        "manual_status_reason": body.reason,
    }


# ── Actions ──────────────────────────────────────────────


def _resolve_booking(
    room: Room,
    reservation: Reservation,
    today: date,
    now: datetime,
    settings: PropertySettings,
    ctx: PropertyRoleContext,
) -> RoomResolution:
    """Resolve a single booking on its own arrival date.

    Cancellation concerns the booking, not the room's current occupant or
    housekeeping status: a future booking on an occupied room or a room being
    cleaned is still cancellable.
    """
    booking_room = replace(room, manual_status=ManualStatus.NONE, manual_status_reason=None)
    return resolve_room(
        booking_room,
        [reservation],
        max(today, reservation.check_in),
        now,
        settings.operations_hours,
        _caller_context(ctx, settings, {}),
    )


def _perform_action(
    ctx: PropertyRoleContext,
    reservation_id: str,
    action: Action,
    approval_token: str | None,
    reason: str | None = None,
) -> ActionResult:
    """Re-resolve the reservation's room, authorize ``action`` and apply it.

    Raises:
        HTTPException: 404 if reservation or room is missing, 409 if the action
            is not allowed or the reservation changed concurrently, 403 if
            manager approval is missing.
    """
    expected, new_status = _TRANSITIONS[action]
    settings, now = _load_settings(ctx.property_id)
    today = now.date()
    correlation_id = get_correlation_id()

    try:
        with txn() as cur:
            reservation = reservations_repository.get_reservation(
                cur, property_id=ctx.property_id, reservation_id=reservation_id
            )
            if reservation is None:
                raise HTTPException(status_code=404, detail="Reservation not found")

            room = rooms_repository.get_room(
                cur, property_id=ctx.property_id, room_id=reservation.room_id
            )
            if room is None:
                raise HTTPException(status_code=404, detail="Room not found")

            if action == Action.CANCEL_BOOKING:
                resolution = _resolve_booking(room, reservation, today, now, settings, ctx)
            else:
                candidates, balances = _load_candidates(cur, ctx.property_id, [room], today)
                resolution = resolve_room(
                    room,
                    candidates,
                    today,
                    now,
                    settings.operations_hours,
                    _caller_context(ctx, settings, balances),
                )

            active = resolution.active_reservation
            if active is None or active.id != reservation.id:
                raise ActionNotAllowedError(action)

            grant = authorize_action(action, resolution.result.allowed_actions, approval_token)

            changed = reservations_repository.transition_status(
                cur,
                property_id=ctx.property_id,
                reservation_id=reservation.id,
                expected=expected,
                new=new_status,
            )
            if not changed:
                raise HTTPException(status_code=409, detail="reservation_state_changed")

            if new_status == ReservationStatus.COMPLETED:
                rooms_repository.set_manual_status(
                    cur,
                    property_id=ctx.property_id,
                    room_id=room.id,
                    manual_status=ManualStatus.CLEANING,
                )
    except ApprovalRequiredError:
        raise HTTPException(status_code=403, detail="approval_required")
    except ActionNotAllowedError:
        raise HTTPException(status_code=409, detail="action_not_allowed")

    logger.info(
        "frontdesk action applied",
        extra={
            "extra_fields": {
                "correlationId": correlation_id,
                "property_id": ctx.property_id,
                "reservation_id": reservation.id,
                "room_id": room.id,
                "action": action.value,
                "state": resolution.result.state.value,
                "approved": grant.requires_approval,
                "user_id": ctx.user.id,
                "reason": reason,
            }
        },
    )

    return ActionResult(
        reservation_id=reservation.id,
        room_id=room.id,
        action=action.value,
        status=new_status.value,
    )


@router.post("/reservations/{reservation_id}/actions/check-in", response_model=ActionResult)
def check_in(
    reservation_id: str = Path(..., description="Reservation UUID"),
    ctx: PropertyRoleContext = Depends(require_property_role("staff")),
) -> ActionResult:
    """Check in a reservation arriving today. Requires staff role or higher."""
    return _perform_action(ctx, reservation_id, Action.CHECK_IN, None)


@router.post("/reservations/{reservation_id}/actions/early-check-in", response_model=ActionResult)
def early_check_in(
    reservation_id: str = Path(..., description="Reservation UUID"),
    ctx: PropertyRoleContext = Depends(require_property_role("staff")),
    approval_token: str | None = Header(None, alias=APPROVAL_TOKEN_HEADER),
) -> ActionResult:
    """Check in before the property's check-in time (manager approval)."""
    return _perform_action(ctx, reservation_id, Action.EARLY_CHECK_IN, approval_token)


@router.post("/reservations/{reservation_id}/actions/checkout", response_model=ActionResult)
def checkout(
    reservation_id: str = Path(..., description="Reservation UUID"),
    ctx: PropertyRoleContext = Depends(require_property_role("staff")),
    approval_token: str | None = Header(None, alias=APPROVAL_TOKEN_HEADER),
) -> ActionResult:
    """Check out an in-house guest; the room goes to cleaning.

    Balances at or above the manager-approval threshold need an approval token.
    """
    return _perform_action(ctx, reservation_id, Action.CHECKOUT, approval_token)


@router.post("/reservations/{reservation_id}/actions/force-checkout", response_model=ActionResult)
def force_checkout(
    body: ForceCheckoutRequest,
    reservation_id: str = Path(..., description="Reservation UUID"),
    ctx: PropertyRoleContext = Depends(require_property_role("staff")),
    approval_token: str | None = Header(None, alias=APPROVAL_TOKEN_HEADER),
) -> ActionResult:
    """Check out a guest with an open balance.

    Requires the finance.manage capability and a manager approval token.
    """
    if not has_permission(ctx.role, FINANCE_MANAGE):
        raise HTTPException(status_code=403, detail="Insufficient capability")
    return _perform_action(
        ctx, reservation_id, Action.FORCE_CHECKOUT, approval_token, reason=body.reason
    )


@router.post("/reservations/{reservation_id}/actions/cancel", response_model=ActionResult)
def cancel(
    reservation_id: str = Path(..., description="Reservation UUID"),
    ctx: PropertyRoleContext = Depends(require_property_role("staff")),
) -> ActionResult:
    """Cancel a reservation that has not checked in, including future bookings.

    Requires staff role or higher.
    """
    return _perform_action(ctx, reservation_id, Action.CANCEL_BOOKING, None)
