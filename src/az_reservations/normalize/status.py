from __future__ import annotations

import math
from datetime import datetime, timezone
from typing import Optional

from .schema import Reservation, StatusInfo

EXPIRING_SOON_DAYS = 30
EXPIRING_DAYS = 90

STATUS_ACTIVE = "Active"
STATUS_EXPIRED = "Expired"
STATUS_EXPIRES_TODAY = "Expires Today"
STATUS_EXPIRING_SOON = "Expiring Soon"
STATUS_EXPIRING = "Expiring"
STATUS_PENDING = "Pending"
STATUS_FUTURE = "Future"
STATUS_FAILED = "Failed"
STATUS_CANCELLED = "Cancelled"
STATUS_UNKNOWN = "Unknown"

# Display order for breakdowns; anything else (raw provisioning states) sorts after.
STATUS_ORDER = (
    STATUS_ACTIVE,
    STATUS_EXPIRING,
    STATUS_EXPIRING_SOON,
    STATUS_EXPIRES_TODAY,
    STATUS_EXPIRED,
    STATUS_FUTURE,
    STATUS_PENDING,
    STATUS_FAILED,
    STATUS_CANCELLED,
    STATUS_UNKNOWN,
)

_TERMINAL_STATES = {"failed": STATUS_FAILED, "cancelled": STATUS_CANCELLED}
_PENDING_STATES = {"pending", "pendingresourcehold"}


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def days_until(expiry: datetime, now: datetime) -> int:
    """Whole days from now to expiry, floored (so 23h left is 0, 1h past is -1)."""
    delta = _as_utc(expiry) - _as_utc(now)
    return math.floor(delta.total_seconds() / 86400)


def classify_status(reservation: Reservation, now: datetime) -> StatusInfo:
    return classify(
        reservation.provisioningState,
        reservation.effectiveDateTime,
        reservation.expiryDateTime,
        now,
        dates_unparsable=reservation.datesUnparsable,
    )


def classify(
    provisioning_state: Optional[str],
    effective: Optional[datetime],
    expiry: Optional[datetime],
    now: datetime,
    *,
    dates_unparsable: bool = False,
) -> StatusInfo:
    """
    Derive the display status of a reservation. First match wins:

    1. Failed/Cancelled provisioning state
    2. Pending/PendingResourceHold provisioning state
    3. expiry date present: Expired / Expires Today / Expiring Soon (<=30d) /
       Expiring (<=90d) / Active
    4. no usable expiry and a date failed to parse: Unknown
    5. no expiry, starts in the future: Future
    6. no expiry, Succeeded: Active
    7. raw provisioning state, or Unknown
    """
    state = (provisioning_state or "").strip()
    low = state.lower()

    if low in _TERMINAL_STATES:
        status = _TERMINAL_STATES[low]
        return StatusInfo(status=status, explanation=f"Provisioning state is {state}")

    if low in _PENDING_STATES:
        return StatusInfo(status=STATUS_PENDING, explanation=f"Provisioning state is {state}")

    if expiry is not None:
        days = days_until(expiry, now)
        if days < 0:
            return StatusInfo(STATUS_EXPIRED, f"Expired {-days} day(s) ago", days)
        if days == 0:
            return StatusInfo(STATUS_EXPIRES_TODAY, "Expires today", days)
        if days <= EXPIRING_SOON_DAYS:
            return StatusInfo(STATUS_EXPIRING_SOON, f"Expires in {days} day(s)", days)
        if days <= EXPIRING_DAYS:
            return StatusInfo(STATUS_EXPIRING, f"Expires in {days} day(s)", days)
        return StatusInfo(STATUS_ACTIVE, f"Expires in {days} day(s)", days)

    if dates_unparsable:
        return StatusInfo(status=STATUS_UNKNOWN, explanation="Reservation dates could not be parsed")

    if effective is not None and _as_utc(effective) > _as_utc(now):
        return StatusInfo(STATUS_FUTURE, f"Becomes effective in {days_until(effective, now)} day(s)")

    if low == "succeeded":
        return StatusInfo(STATUS_ACTIVE, "Succeeded (no expiry data)")

    if state:
        return StatusInfo(status=state, explanation=f"Provisioning state is {state}")
    return StatusInfo(status=STATUS_UNKNOWN, explanation="No provisioning state or dates available")


def status_sort_key(status: str) -> tuple[int, str]:
    try:
        return (STATUS_ORDER.index(status), status)
    except ValueError:
        return (len(STATUS_ORDER), status)
