"""Folio repository - outstanding balance reads for the action gate.

Uses raw SQL with psycopg2 (no ORM). Read-only: charges and payments are
recorded elsewhere.

Balance = reservation total + posted charges - captured payments (cents).
"""

from __future__ import annotations

from psycopg2.extensions import cursor as PgCursor

from staydesk.infra.db import fetchall

_BALANCE_SQL = """
    SELECT r.id,
           r.total_cents
           + COALESCE((SELECT SUM(c.amount_cents) FROM folio_charges c
                       WHERE c.reservation_id = r.id), 0)
           - COALESCE((SELECT SUM(p.amount_cents) FROM folio_payments p
                       WHERE p.reservation_id = r.id AND p.status = 'captured'), 0)
    FROM reservations r
    WHERE r.property_id = %s AND r.id = ANY(%s::uuid[])
"""


def get_outstanding_balances_cents(
    cur: PgCursor,
    *,
    property_id: str,
    reservation_ids: list[str],
) -> dict[str, int]:
    """Outstanding balance per reservation (missing reservations are omitted)."""
    if not reservation_ids:
        return {}
    rows = fetchall(cur, _BALANCE_SQL, (property_id, list(reservation_ids)))
    return {str(row[0]): int(row[1]) for row in rows}
