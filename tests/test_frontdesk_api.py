"""Tests for the /frontdesk endpoints.

Covers:
- RBAC (viewer reads, staff acts, finance.manage for force-checkout)
- Grid / drawer / summary responses come from the resolver
- Action gate mapping: 409 not allowed, 403 approval_required
- Optimistic transition lost race (409 reservation_state_changed)
- Checkout puts the room into cleaning; staff clear it via manual-status
- Cancel works for bookings that have not reached their arrival date
"""

from __future__ import annotations

from datetime import date, datetime, timedelta, timezone
from unittest.mock import MagicMock, patch
from uuid import uuid4

import pytest
from fastapi.testclient import TestClient
from helpers import make_reservation, make_room

from staydesk.api.auth import CurrentUser, get_current_user
from staydesk.api.factory import create_app
from staydesk.domain.models import CheckoutPolicy, ManualStatus, ReservationStatus
from staydesk.infra.property_settings import PropertySettings

TODAY = date(2024, 1, 10)
ROOM_ID = "room-101"
CHECKED_IN = ReservationStatus.CHECKED_IN

ROUTES = "staydesk.api.routes.frontdesk"
ROOMS = "staydesk.infra.repositories.rooms_repository"
RESERVATIONS = "staydesk.infra.repositories.reservations_repository"
FOLIO = "staydesk.infra.repositories.folio_repository"


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def fake_user():
    return CurrentUser(
        id=str(uuid4()),
        external_subject="user-123",
        email="test@example.com",
        name="Test User",
    )


class FrontdeskEnv:
    """Patched data sources behind the frontdesk routes."""

    def __init__(self, role: str, hour: int):
        self.role = role
        self.now = datetime(TODAY.year, TODAY.month, TODAY.day, hour, 0, tzinfo=timezone.utc)
        self.settings = PropertySettings(timezone="UTC")
        self.rooms = [make_room()]
        self.reservations: list = []
        self.balances: dict[str, int] = {}
        self.transition_result = True
        self.cursor = MagicMock()

        self.transition = MagicMock(side_effect=lambda *a, **kw: self.transition_result)
        self.set_manual_status = MagicMock(return_value=True)

    def _get_reservation(self, cur, *, property_id, reservation_id):
        return next((r for r in self.reservations if r.id == reservation_id), None)

    def _get_room(self, cur, *, property_id, room_id):
        return next((r for r in self.rooms if r.id == room_id), None)

    def patches(self):
        txn = MagicMock()
        txn.return_value.__enter__.return_value = self.cursor
        txn.return_value.__exit__.return_value = False
        return [
            patch("staydesk.api.rbac._get_user_role_for_property", return_value=self.role),
            patch(f"{ROUTES}.txn", txn),
            patch(f"{ROUTES}.get_property_settings", side_effect=lambda _: self.settings),
            patch(f"{ROUTES}.property_now", side_effect=lambda _tz: self.now),
            patch(f"{ROOMS}.list_rooms", side_effect=lambda cur, property_id: self.rooms),
            patch(f"{ROOMS}.get_room", side_effect=self._get_room),
            patch(f"{ROOMS}.set_manual_status", self.set_manual_status),
            patch(
                f"{RESERVATIONS}.list_open_reservations",
                side_effect=lambda cur, **kw: list(self.reservations),
            ),
            patch(f"{RESERVATIONS}.get_reservation", side_effect=self._get_reservation),
            patch(f"{RESERVATIONS}.transition_status", self.transition),
            patch(
                f"{FOLIO}.get_outstanding_balances_cents",
                side_effect=lambda cur, **kw: dict(self.balances),
            ),
        ]


@pytest.fixture
def make_client(fake_user):
    started = []

    def factory(role="staff", hour=15):
        env = FrontdeskEnv(role, hour)
        for p in env.patches():
            p.start()
            started.append(p)
        app = create_app()
        app.dependency_overrides[get_current_user] = lambda: fake_user
        return TestClient(app, raise_server_exceptions=False), env

    yield factory

    for p in reversed(started):
        p.stop()


def _action_url(reservation_id: str, action: str) -> str:
    return f"/frontdesk/reservations/{reservation_id}/actions/{action}?property_id=prop-1"


# ---------------------------------------------------------------------------
# 1. Health
# ---------------------------------------------------------------------------


class TestHealth:
    def test_health_echoes_correlation_id(self):
        client = TestClient(create_app())

        resp = client.get("/health", headers={"X-Correlation-ID": "cid-123"})

        assert resp.status_code == 200
        assert resp.json() == {"status": "ok"}
        assert resp.headers["X-Correlation-ID"] == "cid-123"

    def test_generates_correlation_id(self):
        resp = TestClient(create_app()).get("/health")

        assert resp.headers["X-Correlation-ID"]


# ---------------------------------------------------------------------------
# 2. Reads
# ---------------------------------------------------------------------------


class TestReads:
    def test_property_id_required(self, make_client):
        client, _ = make_client(role="viewer")

        assert client.get("/frontdesk/rooms").status_code == 422

    def test_no_access_to_property(self, make_client):
        client, _ = make_client(role=None)

        resp = client.get("/frontdesk/rooms?property_id=prop-1")

        assert resp.status_code == 403

    def test_grid(self, make_client):
        client, env = make_client(role="viewer")
        env.reservations = [make_reservation(TODAY, TODAY + timedelta(days=2), reservation_id="res-1")]

        resp = client.get("/frontdesk/rooms?property_id=prop-1")

        assert resp.status_code == 200
        tiles = resp.json()
        assert len(tiles) == 1
        assert tiles[0]["state"] == "arriving-today"
        assert tiles[0]["active_reservation_id"] == "res-1"
        assert [a["action"] for a in tiles[0]["allowed_actions"]][0] == "check-in"

    def test_grid_reference_date_in_past_has_no_actions(self, make_client):
        client, env = make_client(role="viewer")
        env.reservations = [
            make_reservation(TODAY - timedelta(days=2), TODAY + timedelta(days=1), status=CHECKED_IN)
        ]

        resp = client.get("/frontdesk/rooms?property_id=prop-1&reference_date=2024-01-09")

        assert resp.status_code == 200
        assert resp.json()[0]["state"] == "in-house"
        assert resp.json()[0]["allowed_actions"] == []

    def test_drawer_matches_grid(self, make_client):
        client, env = make_client(role="manager", hour=13)
        departing = make_reservation(TODAY - timedelta(days=2), TODAY, status=CHECKED_IN, reservation_id="res-out")
        arriving = make_reservation(TODAY, TODAY + timedelta(days=2), reservation_id="res-in")
        env.reservations = [arriving, departing]
        env.balances = {"res-out": 2500}

        tile = client.get("/frontdesk/rooms?property_id=prop-1").json()[0]
        detail = client.get(f"/frontdesk/rooms/{ROOM_ID}?property_id=prop-1").json()

        assert detail["state"] == tile["state"] == "overstay"
        assert detail["allowed_actions"] == tile["allowed_actions"]
        assert detail["incoming_reservation"]["id"] == "res-in"
        assert detail["balance_cents"] == 2500
        assert "force-checkout" in [a["action"] for a in detail["allowed_actions"]]

    def test_drawer_room_not_found(self, make_client):
        client, _ = make_client(role="viewer")

        resp = client.get("/frontdesk/rooms/unknown?property_id=prop-1")

        assert resp.status_code == 404

    def test_summary(self, make_client):
        client, env = make_client(role="viewer")
        env.rooms = [make_room("r-1", "101"), make_room("r-2", "102", manual_status=ManualStatus.OUT_OF_ORDER)]
        env.reservations = [make_reservation(TODAY, TODAY + timedelta(days=1), room_id="r-1")]

        resp = client.get("/frontdesk/summary?property_id=prop-1")

        assert resp.status_code == 200
        body = resp.json()
        assert body["reference_date"] == "2024-01-10"
        assert body["arrivals"] == 1
        assert body["out_of_service"] == 1
        assert body["total_rooms"] == 2


# ---------------------------------------------------------------------------
# 3. Check-in
# ---------------------------------------------------------------------------


class TestCheckIn:
    def test_viewer_gets_403(self, make_client):
        client, _ = make_client(role="viewer")

        assert client.post(_action_url("res-1", "check-in")).status_code == 403

    def test_reservation_not_found(self, make_client):
        client, _ = make_client()

        resp = client.post(_action_url("missing", "check-in"))

        assert resp.status_code == 404

    def test_happy_path(self, make_client):
        client, env = make_client(hour=15)
        env.reservations = [make_reservation(TODAY, TODAY + timedelta(days=2), reservation_id="res-1")]

        resp = client.post(_action_url("res-1", "check-in"))

        assert resp.status_code == 200
        assert resp.json() == {
            "reservation_id": "res-1",
            "room_id": ROOM_ID,
            "action": "check-in",
            "status": "checked_in",
        }
        kwargs = env.transition.call_args.kwargs
        assert kwargs["expected"] == ReservationStatus.RESERVED
        assert kwargs["new"] == ReservationStatus.CHECKED_IN
        env.set_manual_status.assert_not_called()

    def test_before_check_in_time_is_409(self, make_client):
        client, env = make_client(hour=10)
        env.reservations = [make_reservation(TODAY, TODAY + timedelta(days=2), reservation_id="res-1")]

        resp = client.post(_action_url("res-1", "check-in"))

        assert resp.status_code == 409
        assert resp.json()["detail"] == "action_not_allowed"
        env.transition.assert_not_called()

    def test_early_check_in_needs_approval(self, make_client):
        client, env = make_client(hour=10)
        env.reservations = [make_reservation(TODAY, TODAY + timedelta(days=2), reservation_id="res-1")]

        resp = client.post(_action_url("res-1", "early-check-in"))

        assert resp.status_code == 403
        assert resp.json()["detail"] == "approval_required"

    def test_early_check_in_with_token(self, make_client):
        client, env = make_client(hour=10)
        env.reservations = [make_reservation(TODAY, TODAY + timedelta(days=2), reservation_id="res-1")]

        resp = client.post(
            _action_url("res-1", "early-check-in"),
            headers={"X-Approval-Token": "mgr-ok"},
        )

        assert resp.status_code == 200
        assert resp.json()["status"] == "checked_in"

    def test_lost_race_is_409(self, make_client):
        client, env = make_client(hour=15)
        env.reservations = [make_reservation(TODAY, TODAY + timedelta(days=2), reservation_id="res-1")]
        env.transition_result = False

        resp = client.post(_action_url("res-1", "check-in"))

        assert resp.status_code == 409
        assert resp.json()["detail"] == "reservation_state_changed"

    def test_not_the_active_reservation(self, make_client):
        client, env = make_client(hour=15)
        stay = make_reservation(TODAY - timedelta(days=1), TODAY + timedelta(days=1), status=CHECKED_IN)
        arriving = make_reservation(TODAY, TODAY + timedelta(days=2), reservation_id="res-next")
        env.reservations = [stay, arriving]

        resp = client.post(_action_url("res-next", "check-in"))

        assert resp.status_code == 409


# ---------------------------------------------------------------------------
# 4. Checkout / force-checkout
# ---------------------------------------------------------------------------


class TestCheckout:
    def _stay(self, env, balance=0):
        stay = make_reservation(TODAY - timedelta(days=2), TODAY, status=CHECKED_IN, reservation_id="res-1")
        env.reservations = [stay]
        env.balances = {"res-1": balance}
        return stay

    def test_settled_checkout_sets_room_cleaning(self, make_client):
        client, env = make_client(hour=10)
        self._stay(env)

        resp = client.post(_action_url("res-1", "checkout"))

        assert resp.status_code == 200
        assert resp.json()["status"] == "completed"
        kwargs = env.set_manual_status.call_args.kwargs
        assert kwargs["room_id"] == ROOM_ID
        assert kwargs["manual_status"] == ManualStatus.CLEANING

    def test_debt_blocks_checkout(self, make_client):
        client, env = make_client(hour=10)
        self._stay(env, balance=100)

        resp = client.post(_action_url("res-1", "checkout"))

        assert resp.status_code == 409

    def test_threshold_requires_approval(self, make_client):
        client, env = make_client(hour=10)
        env.settings = PropertySettings(
            timezone="UTC",
            checkout_policy=CheckoutPolicy(allow_checkout_with_debt=True, manager_approval_threshold_cents=5000),
        )
        self._stay(env, balance=20000)

        assert client.post(_action_url("res-1", "checkout")).status_code == 403
        resp = client.post(_action_url("res-1", "checkout"), headers={"X-Approval-Token": "ok"})
        assert resp.status_code == 200

    def test_force_checkout_needs_finance_capability(self, make_client):
        client, env = make_client(role="staff", hour=10)
        self._stay(env, balance=100)

        resp = client.post(_action_url("res-1", "force-checkout"), json={"reason": "guest left"})

        assert resp.status_code == 403
        assert resp.json()["detail"] == "Insufficient capability"

    def test_force_checkout_requires_reason(self, make_client):
        client, env = make_client(role="manager", hour=10)
        self._stay(env, balance=100)

        resp = client.post(_action_url("res-1", "force-checkout"), json={"reason": ""})

        assert resp.status_code == 422

    def test_force_checkout_requires_approval(self, make_client):
        client, env = make_client(role="manager", hour=10)
        self._stay(env, balance=100)

        resp = client.post(_action_url("res-1", "force-checkout"), json={"reason": "guest left"})

        assert resp.status_code == 403
        assert resp.json()["detail"] == "approval_required"

    def test_force_checkout_with_approval(self, make_client):
        client, env = make_client(role="owner", hour=10)
        self._stay(env, balance=100)

        resp = client.post(
            _action_url("res-1", "force-checkout"),
            json={"reason": "guest left"},
            headers={"X-Approval-Token": "mgr-ok"},
        )

        assert resp.status_code == 200
        assert resp.json()["action"] == "force-checkout"
        env.set_manual_status.assert_called_once()

    def test_force_checkout_without_debt_is_409(self, make_client):
        client, env = make_client(role="manager", hour=10)
        self._stay(env, balance=0)

        resp = client.post(
            _action_url("res-1", "force-checkout"),
            json={"reason": "guest left"},
            headers={"X-Approval-Token": "mgr-ok"},
        )

        assert resp.status_code == 409


# ---------------------------------------------------------------------------
# 5. Cancel
# ---------------------------------------------------------------------------


class TestCancel:
    def test_cancel_arrival_today(self, make_client):
        client, env = make_client()
        env.reservations = [make_reservation(TODAY, TODAY + timedelta(days=3), reservation_id="res-1")]

        resp = client.post(_action_url("res-1", "cancel"))

        assert resp.status_code == 200
        assert resp.json()["status"] == "cancelled"
        assert env.transition.call_args.kwargs["new"] == ReservationStatus.CANCELLED

    def test_cannot_cancel_checked_in(self, make_client):
        client, env = make_client()
        env.reservations = [
            make_reservation(TODAY - timedelta(days=1), TODAY + timedelta(days=1), status=CHECKED_IN, reservation_id="res-1")
        ]

        resp = client.post(_action_url("res-1", "cancel"))

        assert resp.status_code == 409

    def test_cancel_booking_before_arrival_date(self, make_client):
        client, env = make_client()
        env.reservations = [
            make_reservation(TODAY + timedelta(days=2), TODAY + timedelta(days=4), reservation_id="res-1")
        ]

        resp = client.post(_action_url("res-1", "cancel"))

        assert resp.status_code == 200
        assert resp.json()["status"] == "cancelled"
        kwargs = env.transition.call_args.kwargs
        assert kwargs["expected"] == ReservationStatus.RESERVED
        assert kwargs["new"] == ReservationStatus.CANCELLED

    def test_cancel_later_booking_on_occupied_room(self, make_client):
        client, env = make_client()
        stay = make_reservation(TODAY - timedelta(days=1), TODAY + timedelta(days=3), status=CHECKED_IN)
        later = make_reservation(TODAY + timedelta(days=3), TODAY + timedelta(days=5), reservation_id="res-later")
        env.reservations = [stay, later]

        resp = client.post(_action_url("res-later", "cancel"))

        assert resp.status_code == 200
        assert resp.json()["reservation_id"] == "res-later"

    def test_cancel_booking_while_room_is_cleaning(self, make_client):
        client, env = make_client()
        env.rooms = [make_room(manual_status=ManualStatus.CLEANING)]
        env.reservations = [
            make_reservation(TODAY + timedelta(days=2), TODAY + timedelta(days=4), reservation_id="res-1")
        ]

        resp = client.post(_action_url("res-1", "cancel"))

        assert resp.status_code == 200
        env.set_manual_status.assert_not_called()

    def test_cannot_cancel_cancelled_booking(self, make_client):
        client, env = make_client()
        env.reservations = [
            make_reservation(
                TODAY + timedelta(days=2),
                TODAY + timedelta(days=4),
                status=ReservationStatus.CANCELLED,
                reservation_id="res-1",
            )
        ]

        resp = client.post(_action_url("res-1", "cancel"))

        assert resp.status_code == 409
        env.transition.assert_not_called()


# ---------------------------------------------------------------------------
# 6. Housekeeping
# ---------------------------------------------------------------------------


def _manual_status_url(room_id: str = ROOM_ID) -> str:
    return f"/frontdesk/rooms/{room_id}/manual-status?property_id=prop-1"


class TestManualStatus:
    def test_viewer_gets_403(self, make_client):
        client, env = make_client(role="viewer")

        resp = client.patch(_manual_status_url(), json={"manual_status": "none"})

        assert resp.status_code == 403
        env.set_manual_status.assert_not_called()

    def test_invalid_status_is_422(self, make_client):
        client, _ = make_client()

        resp = client.patch(_manual_status_url(), json={"manual_status": "dirty"})

        assert resp.status_code == 422

    def test_set_maintenance_with_reason(self, make_client):
        client, env = make_client()

        resp = client.patch(
            _manual_status_url(),
            json={"manual_status": "maintenance", "reason": "AC broken"},
        )

        assert resp.status_code == 200
        assert resp.json() == {
            "id": ROOM_ID,
            "manual_status": "maintenance",
            "manual_status_reason": "AC broken",
        }
        kwargs = env.set_manual_status.call_args.kwargs
        assert kwargs["manual_status"] == ManualStatus.MAINTENANCE
        assert kwargs["reason"] == "AC broken"

    def test_room_not_found(self, make_client):
        client, env = make_client()
        env.set_manual_status.return_value = False

        resp = client.patch(_manual_status_url("unknown"), json={"manual_status": "none"})

        assert resp.status_code == 404

    def test_clearing_cleaning_unblocks_turnover_check_in(self, make_client):
        client, env = make_client(hour=15)
        env.rooms = [make_room(manual_status=ManualStatus.CLEANING)]
        env.reservations = [make_reservation(TODAY, TODAY + timedelta(days=2), reservation_id="res-next")]

        assert client.post(_action_url("res-next", "check-in")).status_code == 409

        def clear(cur, *, property_id, room_id, manual_status, reason=None):
            env.rooms = [make_room(manual_status=manual_status)]
            return True

        env.set_manual_status.side_effect = clear

        resp = client.patch(_manual_status_url(), json={"manual_status": "none"})

        assert resp.status_code == 200
        assert env.set_manual_status.call_args.kwargs["manual_status"] == ManualStatus.NONE
        assert client.post(_action_url("res-next", "check-in")).status_code == 200
