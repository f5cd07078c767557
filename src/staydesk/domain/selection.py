"""Which reservation governs a room on a given date.

Overlap rule (dates inclusive on both ends):
    check_in <= reference_date <= check_out

Overstay inclusion: a checked-in guest stays visible after the booked
check-out date has passed, until the checkout is actually recorded:
    status == checked_in AND check_in <= reference_date

Priority for the active reservation (first match wins):
    1. checked_in
    2. reserved, arriving on the reference date
    3. first remaining candidate, in input order

Input order is significant: the reservation query returns candidates
ordered by creation time, so ties resolve to the earliest booking.
"""

from __future__ import annotations

import logging
from datetime import date
from typing import Iterable, Sequence

from staydesk.domain.models import Reservation, ReservationStatus

logger = logging.getLogger(__name__)


def _overlaps(reservation: Reservation, reference_date: date) -> bool:
    if reservation.check_in <= reference_date <= reservation.check_out:
        return True
    return (
        reservation.status == ReservationStatus.CHECKED_IN
        and reservation.check_in <= reference_date
    )


def filter_candidate_reservations(
    room_id: str,
    reference_date: date,
    reservations: Iterable[Reservation],
) -> list[Reservation]:
    """Keep the non-terminal reservations of ``room_id`` relevant to ``reference_date``.

    Args:
        room_id: Physical room identifier.
        reference_date: Calendar date being evaluated.
        reservations: Reservations fetched for the room (other rooms are ignored).

    Returns:
        Matching reservations, in input order.
    """
    return [
        r
        for r in reservations
        if r.room_id == room_id and not r.is_terminal and _overlaps(r, reference_date)
    ]


def _warn_if_ambiguous(tier: str, matches: Sequence[Reservation]) -> None:
    if len(matches) > 1:
        # ids only, no guest data
        logger.warning(
            "ambiguous active reservation selection",
            extra={
                "extra_fields": {
                    "tier": tier,
                    "room_id": matches[0].room_id,
                    "selected_reservation_id": matches[0].id,
                    "candidate_reservation_ids": [r.id for r in matches],
                },
            },
        )


def select_active_reservation(
    candidates: Sequence[Reservation],
    reference_date: date,
) -> Reservation | None:
    """Pick at most one active reservation from already-filtered candidates.

    Never raises: several candidates in the same priority tier (a
    double-booking) resolve to the first in input order and log a warning.
    """
    checked_in = [r for r in candidates if r.status == ReservationStatus.CHECKED_IN]
    if checked_in:
        _warn_if_ambiguous("checked_in", checked_in)
        return checked_in[0]

    arriving = [
        r
        for r in candidates
        if r.status == ReservationStatus.RESERVED and r.check_in == reference_date
    ]
    if arriving:
        _warn_if_ambiguous("arriving", arriving)
        return arriving[0]

    for r in candidates:
        if not r.is_terminal:
            return r
    return None


def find_incoming_reservation(
    active: Reservation | None,
    reservations: Iterable[Reservation],
    today: date,
) -> Reservation | None:
    """Detect the next guest arriving today while the current one is leaving.

    Only evaluated when ``active`` is checked in and due out today or already
    overstaying. ``reservations`` must be the original, unfiltered set for the
    room.
    """
    if active is None or active.status != ReservationStatus.CHECKED_IN:
        return None
    if active.check_out > today:
        return None

    for r in reservations:
        if (
            r.id != active.id
            and r.room_id == active.room_id
            and r.status == ReservationStatus.RESERVED
            and r.check_in == today
        ):
            return r
    return None
