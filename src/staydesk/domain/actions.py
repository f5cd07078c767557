"""Action eligibility gate - which front-desk actions a room allows right now.

The gate is a pure mapping from lifecycle state plus caller context
(capabilities, outstanding balance, checkout policy) to an ordered tuple of
ActionGrant. It never checks tokens for validity, only presence, and never
performs the action.

Balance rules:
- Normal checkout is withheld while balance > 0 unless the tenant allows
  checkout with debt (in overstay it requires a settled folio).
- balance >= manager approval threshold puts every checkout grant behind
  a manager approval token, whatever the policy says.
- Force checkout needs the finance.manage capability and always needs
  approval.
- Early check-in always needs approval.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from enum import Enum
from typing import Iterable, Mapping

from staydesk.domain.lifecycle import CHECKED_IN_STATES, LifecycleState
from staydesk.domain.models import CheckoutPolicy, Reservation

FINANCE_MANAGE = "finance.manage"


class Action(str, Enum):
    CHECK_IN = "check-in"
    EARLY_CHECK_IN = "early-check-in"
    CHECKOUT = "checkout"
    FORCE_CHECKOUT = "force-checkout"
    EXTEND_STAY = "extend-stay"
    TRANSFER_ROOM = "transfer-room"
    ADD_CHARGE = "add-charge"
    COLLECT_PAYMENT = "collect-payment"
    CHARGE_TO_ORGANIZATION = "charge-to-organization"
    AMEND_BOOKING = "amend-booking"
    CANCEL_BOOKING = "cancel-booking"
    VIEW_RESERVATION = "view-reservation"
    VIEW_FOLIO = "view-folio"


@dataclass(frozen=True)
class ActionGrant:
    """One permitted action.

    Attributes:
        action: The action.
        requires_approval: A manager approval token must accompany it.
        variant: Presentation hint, e.g. "overstay-fee" for add-charge.
    """

    action: Action
    requires_approval: bool = False
    variant: str | None = None


@dataclass(frozen=True)
class ActionContext:
    """Caller-supplied inputs the gate cannot derive itself."""

    capabilities: frozenset[str] = field(default_factory=frozenset)
    balance_cents: int = 0
    policy: CheckoutPolicy = field(default_factory=CheckoutPolicy)
    has_organization: bool = False


@dataclass(frozen=True)
class CallerContext:
    """Per-request inputs shared by every room a consumer resolves.

    Balances are keyed by reservation id; the resolver picks the one of the
    active reservation. Missing balances count as zero.
    """

    capabilities: frozenset[str] = field(default_factory=frozenset)
    policy: CheckoutPolicy = field(default_factory=CheckoutPolicy)
    balances_cents: Mapping[str, int] = field(default_factory=dict)

    def for_reservation(self, reservation: Reservation | None) -> ActionContext:
        if reservation is None:
            return ActionContext(capabilities=self.capabilities, policy=self.policy)
        return ActionContext(
            capabilities=self.capabilities,
            balance_cents=int(self.balances_cents.get(reservation.id, 0)),
            policy=self.policy,
            has_organization=reservation.organization_id is not None,
        )


# ── Errors ───────────────────────────────────────────────


class ActionNotAllowedError(Exception):
    """Raised when an action is not in the room's current grant set."""

    def __init__(self, action: Action | str) -> None:
        self.action = Action(action)
        super().__init__(f"Action '{self.action.value}' is not allowed in the current room state")


class ApprovalRequiredError(Exception):
    """Raised when a grant needs a manager approval token and none was given."""

    def __init__(self, action: Action | str) -> None:
        self.action = Action(action)
        super().__init__(f"Action '{self.action.value}' requires manager approval")


# ── Gate ─────────────────────────────────────────────────


def _reservation_actions(state: LifecycleState) -> list[ActionGrant]:
    if state == LifecycleState.ARRIVING_EARLY:
        return [
            ActionGrant(Action.EARLY_CHECK_IN, requires_approval=True),
            ActionGrant(Action.AMEND_BOOKING),
            ActionGrant(Action.CANCEL_BOOKING),
        ]
    if state in (LifecycleState.ARRIVING_TODAY, LifecycleState.NO_SHOW):
        return [
            ActionGrant(Action.CHECK_IN),
            ActionGrant(Action.AMEND_BOOKING),
            ActionGrant(Action.CANCEL_BOOKING),
        ]
    if state == LifecycleState.RESERVED_FUTURE:
        return [ActionGrant(Action.AMEND_BOOKING), ActionGrant(Action.CANCEL_BOOKING)]
    return []


def _stay_actions(state: LifecycleState, context: ActionContext) -> list[ActionGrant]:
    balance = context.balance_cents
    policy = context.policy
    has_debt = balance > 0
    over_threshold = has_debt and balance >= policy.manager_approval_threshold_cents

    grants: list[ActionGrant] = []

    if state == LifecycleState.OVERSTAY:
        checkout_open = not has_debt
    else:
        checkout_open = not has_debt or policy.allow_checkout_with_debt
    if checkout_open:
        grants.append(ActionGrant(Action.CHECKOUT, requires_approval=over_threshold))

    if has_debt and FINANCE_MANAGE in context.capabilities:
        grants.append(ActionGrant(Action.FORCE_CHECKOUT, requires_approval=True))

    grants.append(ActionGrant(Action.EXTEND_STAY))
    grants.append(ActionGrant(Action.TRANSFER_ROOM))
    grants.append(
        ActionGrant(
            Action.ADD_CHARGE,
            variant="overstay-fee" if state == LifecycleState.OVERSTAY else None,
        )
    )

    if has_debt:
        grants.append(ActionGrant(Action.COLLECT_PAYMENT))
        if context.has_organization:
            grants.append(ActionGrant(Action.CHARGE_TO_ORGANIZATION))

    return grants


def evaluate_allowed_actions(
    state: LifecycleState,
    *,
    has_active_reservation: bool,
    reference_date: date,
    today: date,
    context: ActionContext | None = None,
) -> tuple[ActionGrant, ...]:
    """Compute the permitted actions for a classified room.

    Args:
        state: Lifecycle state from classify_lifecycle.
        has_active_reservation: Whether a reservation governs the room.
        reference_date: Date the room was evaluated for.
        today: Property-local current date.
        context: Capabilities, balance and policy; None means none / zero / default.

    Returns:
        Ordered, immutable tuple of grants. Empty for historical reference dates.
    """
    if reference_date < today:
        return ()

    context = context or ActionContext()

    if state in CHECKED_IN_STATES:
        grants = _stay_actions(state, context)
    else:
        grants = _reservation_actions(state)

    if has_active_reservation:
        grants.append(ActionGrant(Action.VIEW_RESERVATION))
        grants.append(ActionGrant(Action.VIEW_FOLIO))

    return tuple(grants)


def find_grant(grants: Iterable[ActionGrant], action: Action | str) -> ActionGrant | None:
    action = Action(action)
    for grant in grants:
        if grant.action == action:
            return grant
    return None


def authorize_action(
    action: Action | str,
    grants: Iterable[ActionGrant],
    approval_token: str | None = None,
) -> ActionGrant:
    """Check that ``action`` may proceed now.

    Raises:
        ActionNotAllowedError: The action is not granted.
        ApprovalRequiredError: The grant needs approval and no token was supplied.
    """
    grant = find_grant(grants, action)
    if grant is None:
        raise ActionNotAllowedError(action)
    if grant.requires_approval and not (approval_token and approval_token.strip()):
        raise ApprovalRequiredError(action)
    return grant
