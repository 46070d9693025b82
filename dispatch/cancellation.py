"""
Purpose: Cancellation & penalty engine.
What it does:
Applies everything that follows a driver cancelling a booking they had
accepted, as one all-or-nothing outcome:
    1. cancellation counted on the driver
    2. 48h rate lock to the legal minimum
    3. booking back to SEARCHING, driver excluded, attempt counter bumped
    4. immutable CancellationLog entry
    5. next candidate pool + capped broadcast ids (nobody is assigned)
    6. customer notice worded by attempt number

Customer cancellations never come through here; they carry no penalty.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Iterable, Optional, Tuple

from bookings.models import Booking, BookingKind
from common.clock import ensure_aware
from common.results import Result
from drivers.models import Driver, VehicleClass
from drivers.policy import DriverPolicy, default_driver_policy
from drivers.pricing import is_under_penalty, penalty_hours_remaining

from .scoring import broadcast_set
from .selector import candidates_for_booking
from .state_machines.driver_state import apply_cancellation_penalty
from .state_machines.order_state import release_to_search

logger = logging.getLogger(__name__)


class CancellationError(str, Enum):
    NO_OP_CONFLICT = "no_op_conflict"


@dataclass(frozen=True)
class CancellationLog:
    """Append-only audit record of one driver-initiated cancellation."""
    id: str
    driver_id: str
    booking_id: str
    booking_kind: BookingKind
    vehicle_class: VehicleClass
    cancelled_at: datetime
    reason: Optional[str]
    penalty_hours: int
    rebooking_attempt: int


@dataclass(frozen=True)
class CancellationOutcome:
    driver: Driver
    booking: Booking
    log: CancellationLog
    candidates: Tuple[Driver, ...]
    notify_driver_ids: Tuple[str, ...]
    customer_message: str


@dataclass(frozen=True)
class PenaltyDetails:
    has_penalty: bool
    hours_remaining: int
    reason: Optional[str] = None
    ends_at: Optional[datetime] = None


def customer_notice(rebooking_attempt: int) -> str:
    """
    What the customer sees after their driver cancelled. Depends only on the
    attempt number.
    """
    if rebooking_attempt <= 1:
        return (
            "Driver Unavailable\n\n"
            "For reasons unknown, the assigned driver has cancelled your booking. "
            "We are immediately locating a replacement driver for you.\n\n"
            "Please wait while we find the best available driver. Thank you for your patience."
        )
    return (
        f"Finding New Driver (Attempt {rebooking_attempt})\n\n"
        "We are locating another driver for your booking. This may take a moment.\n\n"
        "You will be notified as soon as a driver accepts."
    )


def handle_driver_cancellation(
    driver: Driver,
    booking: Booking,
    candidate_pool: Iterable[Driver],
    now: datetime,
    reason: Optional[str] = None,
    policy: Optional[DriverPolicy] = None,
) -> Result[CancellationOutcome]:
    """
    Compute the full consequence of `driver` cancelling `booking`.
    Nothing is written here; the caller commits driver, booking and log in
    one transaction.

    A booking that is no longer assigned to this driver (already reassigned,
    already cancelled by them, finished) is a stale action and fails as
    NO_OP_CONFLICT without penalising or logging anything.
    """
    policy = policy or default_driver_policy()
    ensure_aware(now, "now")

    if booking.assigned_driver_id != driver.id or booking.is_terminal:
        logger.info(
            "Ignoring stale cancellation of booking %s by driver %s (assigned=%s, status=%s)",
            booking.id, driver.id, booking.assigned_driver_id, booking.status.value,
        )
        return Result.fail(
            CancellationError.NO_OP_CONFLICT,
            "This booking is no longer assigned to you. Please refresh.",
        )

    updated_driver = apply_cancellation_penalty(driver, now, reason, policy)
    updated_booking = release_to_search(booking, driver.id, now)

    log = CancellationLog(
        id=f"cancel_{booking.id}_{updated_booking.rebooking_attempts}",
        driver_id=driver.id,
        booking_id=booking.id,
        booking_kind=booking.kind,
        vehicle_class=booking.vehicle_class,
        cancelled_at=now,
        reason=updated_driver.penalty_reason,
        penalty_hours=policy.cancellation_penalty_hours,
        rebooking_attempt=updated_booking.rebooking_attempts,
    )

    candidates = candidates_for_booking(candidate_pool, updated_booking)
    notify_ids = broadcast_set(candidates, cap=policy.broadcast_cap)

    logger.info(
        "Driver %s cancelled booking %s (attempt %s); penalty until %s; notifying %s of %s candidates",
        driver.id, booking.id, updated_booking.rebooking_attempts,
        updated_driver.penalty_until.isoformat(), len(notify_ids), len(candidates),
    )

    return Result.ok(CancellationOutcome(
        driver=updated_driver,
        booking=updated_booking,
        log=log,
        candidates=tuple(candidates),
        notify_driver_ids=tuple(notify_ids),
        customer_message=customer_notice(updated_booking.rebooking_attempts),
    ))


def penalty_details(driver: Driver, now: datetime) -> PenaltyDetails:
    if not is_under_penalty(driver, now):
        return PenaltyDetails(has_penalty=False, hours_remaining=0)
    return PenaltyDetails(
        has_penalty=True,
        hours_remaining=penalty_hours_remaining(driver, now),
        reason=driver.penalty_reason,
        ends_at=driver.penalty_until,
    )


def reliability_score(driver: Driver, now: datetime) -> float:
    """
    Completion rate over all accepted trips (0-100), minus 10 while the
    driver is serving a cancellation penalty.
    """
    total = driver.trips_completed + driver.cancellation_count
    if total == 0:
        return 100.0

    completion_rate = driver.trips_completed / total * 100
    deduction = 10 if is_under_penalty(driver, now) else 0
    return max(0.0, min(100.0, completion_rate - deduction))
