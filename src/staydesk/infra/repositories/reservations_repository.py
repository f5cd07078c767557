"""Reservations repository - reservation query and status transitions.

Uses raw SQL with psycopg2 (no ORM).

Candidates are returned ordered by (created_at, id): the resolver breaks
ties by input order, so the earliest booking wins a double-booking.
"""

from __future__ import annotations

from datetime import date

from psycopg2.extensions import cursor as PgCursor

from staydesk.domain.models import Reservation, ReservationStatus
from staydesk.infra.db import fetchall, fetchone

_RESERVATION_COLUMNS = """
    id, room_id, guest_id, organization_id, checkin, checkout, status,
    checked_in_at, checked_out_at, created_at
"""

_OPEN_STATUSES = [ReservationStatus.RESERVED.value, ReservationStatus.CHECKED_IN.value]

# Timestamp column stamped when a reservation enters the status.
_STATUS_TIMESTAMPS = {
    ReservationStatus.CHECKED_IN: "checked_in_at",
    ReservationStatus.COMPLETED: "checked_out_at",
    ReservationStatus.CANCELLED: "cancelled_at",
}


def _row_to_reservation(row: tuple) -> Reservation:
    return Reservation(
        id=str(row[0]),
        room_id=str(row[1]),
        guest_id=str(row[2]),
        organization_id=str(row[3]) if row[3] is not None else None,
        check_in=row[4],
        check_out=row[5],
        status=ReservationStatus(row[6]),
        checked_in_at=row[7],
        checked_out_at=row[8],
        created_at=row[9],
    )


def list_open_reservations(
    cur: PgCursor,
    *,
    property_id: str,
    room_ids: list[str],
    as_of: date,
) -> list[Reservation]:
    """Fetch non-terminal reservations of the given rooms relevant on ``as_of``.

    Mirrors the resolver's overlap rule (including checked-in overstays) so
    the candidate set stays small; the resolver re-applies the rule anyway.
    """
    if not room_ids:
        return []

    rows = fetchall(
        cur,
        f"""
        SELECT {_RESERVATION_COLUMNS}
        FROM reservations
        WHERE property_id = %s
          AND room_id = ANY(%s::uuid[])
          AND status = ANY(%s::reservation_status[])
          AND checkin <= %s
          AND (checkout >= %s OR status = 'checked_in')
        ORDER BY created_at, id
        """,
        (property_id, list(room_ids), _OPEN_STATUSES, as_of, as_of),
    )
    return [_row_to_reservation(row) for row in rows]


def get_reservation(
    cur: PgCursor,
    *,
    property_id: str,
    reservation_id: str,
) -> Reservation | None:
    row = fetchone(
        cur,
        f"""
        SELECT {_RESERVATION_COLUMNS}
        FROM reservations
        WHERE property_id = %s AND id = %s
        """,
        (property_id, reservation_id),
    )
    return _row_to_reservation(row) if row is not None else None


def transition_status(
    cur: PgCursor,
    *,
    property_id: str,
    reservation_id: str,
    expected: ReservationStatus,
    new: ReservationStatus,
) -> bool:
    """Move a reservation from ``expected`` to ``new`` status.

    Optimistic precondition: the UPDATE only matches while the row still has
    the expected status, so of two concurrent mutations at most one wins.

    Returns:
        True if this call performed the transition, False if the reservation
        was missing or its status had already changed.
    """
    stamp = _STATUS_TIMESTAMPS.get(new)
    stamp_sql = f", {stamp} = now()" if stamp else ""

    cur.execute(
        f"""
        UPDATE reservations
        SET status = %s, updated_at = now(){stamp_sql}
        WHERE id = %s AND property_id = %s AND status = %s
        """,
        (new.value, reservation_id, property_id, expected.value),
    )
    return cur.rowcount > 0
