"""Rooms repository - room query for the front desk.

Uses raw SQL with psycopg2 (no ORM).
"""

from __future__ import annotations

from psycopg2.extensions import cursor as PgCursor

from staydesk.domain.models import ManualStatus, Room
from staydesk.infra.db import fetchall, fetchone

_ROOM_COLUMNS = """
    id, number, category_id, floor, manual_status,
    manual_status_reason, do_not_disturb
"""


def _row_to_room(row: tuple) -> Room:
    return Room(
        id=str(row[0]),
        number=row[1],
        category_id=str(row[2]) if row[2] is not None else None,
        floor=row[3],
        manual_status=ManualStatus(row[4] or ManualStatus.NONE.value),
        manual_status_reason=row[5],
        do_not_disturb=bool(row[6]),
    )


def list_rooms(cur: PgCursor, *, property_id: str) -> list[Room]:
    """List active rooms of a property, ordered by floor and number."""
    rows = fetchall(
        cur,
        f"""
        SELECT {_ROOM_COLUMNS}
        FROM rooms
        WHERE property_id = %s AND is_active = true
        ORDER BY floor NULLS LAST, number
        """,
        (property_id,),
    )
    return [_row_to_room(row) for row in rows]


def get_room(cur: PgCursor, *, property_id: str, room_id: str) -> Room | None:
    row = fetchone(
        cur,
        f"""
        SELECT {_ROOM_COLUMNS}
        FROM rooms
        WHERE property_id = %s AND id = %s
        """,
        (property_id, room_id),
    )
    return _row_to_room(row) if row is not None else None


def set_manual_status(
    cur: PgCursor,
    *,
    property_id: str,
    room_id: str,
    manual_status: ManualStatus,
    reason: str | None = None,
) -> bool:
    """Set the room's manual status (e.g. cleaning after checkout).

    Returns:
        True if the room was updated, False if not found.
    """
    cur.execute(
        """
        UPDATE rooms
        SET manual_status = %s, manual_status_reason = %s, updated_at = now()
        WHERE property_id = %s AND id = %s
        """,
        (manual_status.value, reason, property_id, room_id),
    )
    return cur.rowcount > 0
