"""Shared test helper functions.

Regular functions (not fixtures) importable by conftest.py and test modules:
domain object factories and JWT signing helpers.
"""

from __future__ import annotations

import base64
import time
from datetime import date, datetime
from uuid import uuid4

import jwt
from cryptography.hazmat.primitives.asymmetric import rsa

from staydesk.domain.models import ManualStatus, Reservation, ReservationStatus, Room

ROOM_ID = "room-101"


def make_room(
    room_id: str = ROOM_ID,
    number: str = "101",
    manual_status: ManualStatus = ManualStatus.NONE,
    reason: str | None = None,
    do_not_disturb: bool = False,
    floor: int | None = 1,
) -> Room:
    return Room(
        id=room_id,
        number=number,
        floor=floor,
        manual_status=manual_status,
        manual_status_reason=reason,
        do_not_disturb=do_not_disturb,
    )


def make_reservation(
    check_in: date,
    check_out: date,
    status: ReservationStatus = ReservationStatus.RESERVED,
    room_id: str = ROOM_ID,
    reservation_id: str | None = None,
    organization_id: str | None = None,
) -> Reservation:
    return Reservation(
        id=reservation_id or str(uuid4()),
        room_id=room_id,
        guest_id=str(uuid4()),
        check_in=check_in,
        check_out=check_out,
        status=status,
        organization_id=organization_id,
    )


def at(day: date, hour: int, minute: int = 0) -> datetime:
    """Property-local wall-clock timestamp."""
    return datetime(day.year, day.month, day.day, hour, minute)


# ── JWT ──────────────────────────────────────────────────


def _generate_rsa_keypair():
    """Generate RSA key pair for test JWT signing."""
    private_key = rsa.generate_private_key(
        public_exponent=65537,
        key_size=2048,
    )
    return private_key, private_key.public_key()


def _create_jwks(public_key, kid: str = "test-key-1") -> dict:
    """Create JWKS from public key."""
    public_numbers = public_key.public_numbers()

    def int_to_base64(n: int) -> str:
        byte_length = (n.bit_length() + 7) // 8
        return (
            base64.urlsafe_b64encode(n.to_bytes(byte_length, "big"))
            .rstrip(b"=")
            .decode()
        )

    return {
        "keys": [
            {
                "kty": "RSA",
                "use": "sig",
                "alg": "RS256",
                "kid": kid,
                "n": int_to_base64(public_numbers.n),
                "e": int_to_base64(public_numbers.e),
            }
        ]
    }


def _create_token(
    private_key,
    kid: str = "test-key-1",
    sub: str = "user-123",
    iss: str = "https://auth.example.com",
    aud: str = "staydesk-api",
    exp: int | None = None,
) -> str:
    """Create signed JWT for testing."""
    now = int(time.time())
    payload = {
        "sub": sub,
        "iss": iss,
        "aud": aud,
        "exp": exp if exp is not None else now + 3600,
        "iat": now,
    }
    return jwt.encode(payload, private_key, algorithm="RS256", headers={"kid": kid})
