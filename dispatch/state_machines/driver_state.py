from dataclasses import replace
from datetime import datetime, timedelta
from typing import Optional

from billing.membership import can_go_online
from common.clock import ensure_aware
from common.exceptions import InvariantViolation
from common.results import Result
from drivers.models import Driver
from drivers.policy import DriverPolicy, default_driver_policy
from drivers.pricing import legal_minimum, resumed_rate

class DriverStateException(InvariantViolation):
    """Raised when an invalid driver transition is attempted."""
    pass

def apply_cancellation_penalty(
    driver: Driver,
    now: datetime,
    reason: Optional[str] = None,
    policy: Optional[DriverPolicy] = None,
) -> Driver:
    """
    Called when a driver cancels a booking they had accepted.
    Counts the cancellation and locks their rate to the legal minimum for the
    penalty window. custom_rate is overwritten for display only; the rate
    governor enforces the lock through penalty_until regardless, and the
    driver's own rate is kept aside to resume afterwards.
    """
    policy = policy or default_driver_policy()
    ensure_aware(now, "now")

    return replace(
        driver,
        cancellation_count=driver.cancellation_count + 1,
        penalty_until=now + timedelta(hours=policy.cancellation_penalty_hours),
        penalty_reason=reason or policy.default_penalty_reason,
        custom_rate=legal_minimum(driver.vehicle_class, policy),
        rate_before_penalty=resumed_rate(driver),
    )

def go_online(driver: Driver, now: datetime) -> Result[Driver]:
    """
    Membership decides whether a driver may take bookings; an unverified
    driver is a caller bug.
    """
    if not driver.is_verified:
        raise DriverStateException(f"Driver {driver.id} is not verified and cannot go online")

    allowed = can_go_online(driver, now)
    if not allowed.success:
        return Result.fail(allowed.error, allowed.message)

    if driver.is_online:
        return Result.ok(driver)
    return Result.ok(replace(driver, is_online=True))

def go_offline(driver: Driver) -> Driver:
    if not driver.is_online:
        return driver
    return replace(driver, is_online=False)

def record_completed_trip(driver: Driver) -> Driver:
    return replace(driver, trips_completed=driver.trips_completed + 1)
