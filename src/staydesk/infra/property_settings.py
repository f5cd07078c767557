"""Per-property front-desk settings.

Loads the inputs the room status resolver needs from the ``properties`` row:
timezone, operations hours (check-in / check-out time of day) and checkout
policy (debt allowance and manager approval threshold).

Priority for operations hours:
1. Database config (properties.operations_hours JSONB)
2. Environment fallbacks (DEFAULT_CHECK_IN_TIME, DEFAULT_CHECK_OUT_TIME)
3. Built-in defaults, 14:00 / 12:00

Missing configuration never fails a request; it degrades to defaults.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import Any

from staydesk.domain.models import CheckoutPolicy, OperationsHours
from staydesk.observability.logging import get_logger

from .db import fetchone, txn
from .time import default_timezone_name

logger = get_logger(__name__)


@dataclass(frozen=True)
class PropertySettings:
    """Front-desk configuration for one property."""

    timezone: str
    operations_hours: OperationsHours = field(default_factory=OperationsHours)
    checkout_policy: CheckoutPolicy = field(default_factory=CheckoutPolicy)


def get_property_settings(property_id: str) -> PropertySettings:
    """Load front-desk settings for a property.

    Args:
        property_id: The property ID.

    Returns:
        PropertySettings merged from DB, environment and defaults.
    """
    row = _load_from_db(property_id)
    if row is None:
        logger.info(
            "property settings not found, using defaults",
            extra={"extra_fields": {"property_id": property_id}},
        )
        row = {}
    return _merge_with_env(row)


def get_operations_hours(property_id: str) -> OperationsHours:
    return get_property_settings(property_id).operations_hours


def get_checkout_policy(property_id: str) -> CheckoutPolicy:
    return get_property_settings(property_id).checkout_policy


def _load_from_db(property_id: str) -> dict[str, Any] | None:
    """Load timezone and JSONB settings columns for a property."""
    with txn() as cur:
        row = fetchone(
            cur,
            """
            SELECT timezone, operations_hours, checkout_policy
            FROM properties
            WHERE id = %s
            """,
            (property_id,),
        )
    if row is None:
        return None
    return {
        "timezone": row[0],
        "operations_hours": row[1] if isinstance(row[1], dict) else {},
        "checkout_policy": row[2] if isinstance(row[2], dict) else {},
    }


def _merge_with_env(db_config: dict[str, Any]) -> PropertySettings:
    """Merge database config with environment fallbacks."""
    hours_db = db_config.get("operations_hours") or {}
    hours = OperationsHours.from_settings(
        {
            "check_in_time": hours_db.get("check_in_time") or os.environ.get("DEFAULT_CHECK_IN_TIME"),
            "check_out_time": hours_db.get("check_out_time") or os.environ.get("DEFAULT_CHECK_OUT_TIME"),
        }
    )

    return PropertySettings(
        timezone=db_config.get("timezone") or default_timezone_name(),
        operations_hours=hours,
        checkout_policy=CheckoutPolicy.from_settings(db_config.get("checkout_policy")),
    )
