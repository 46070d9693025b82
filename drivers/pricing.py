"""
Purpose: Rate governor.
What it does:
Computes and validates what a driver may charge per km (and per hour for
hourly rentals) against the legal bounds, the self-service cooldown and the
cancellation penalty lock.

Rule: pure functions, `now` is always passed in.
"""

from __future__ import annotations

import math
from dataclasses import replace
from datetime import datetime, timedelta
from decimal import ROUND_FLOOR, Decimal
from enum import Enum
from typing import Optional

from common.clock import ensure_aware
from common.results import Result

from .models import Driver, VehicleClass
from .policy import DriverPolicy, default_driver_policy

class RateError(str, Enum):
    BELOW_LEGAL_MINIMUM = "below_legal_minimum"
    ABOVE_MAXIMUM = "above_maximum"
    COOLDOWN_ACTIVE = "cooldown_active"
    PENALTY_ACTIVE = "penalty_active"
    HOURLY_RENTAL_UNSUPPORTED = "hourly_rental_unsupported"

def _apply_markup(minimum: int, markup: float) -> int:
    # Decimal so that 2500 * 1.2 is exactly 3000, not 2999.999...
    ceiling = Decimal(minimum) * (Decimal(1) + Decimal(str(markup)))
    return int(ceiling.to_integral_value(rounding=ROUND_FLOOR))

# ---------------------------------------------------------------------------
# Per-km rates
# ---------------------------------------------------------------------------

def legal_minimum(vehicle_class: VehicleClass, policy: Optional[DriverPolicy] = None) -> int:
    policy = policy or default_driver_policy()
    return policy.legal_minimum_rates[VehicleClass(vehicle_class)]

def max_allowed(vehicle_class: VehicleClass, policy: Optional[DriverPolicy] = None) -> int:
    policy = policy or default_driver_policy()
    return _apply_markup(legal_minimum(vehicle_class, policy), policy.max_markup)

def is_under_penalty(driver: Driver, now: datetime) -> bool:
    """
    Lazy expiry: a stale penalty_until in the past simply stops counting.
    """
    ensure_aware(now, "now")
    return driver.penalty_until is not None and now < driver.penalty_until

def effective_rate(driver: Driver, now: datetime, policy: Optional[DriverPolicy] = None) -> int:
    """
    The per-km rate a driver actually charges right now.
    Always inside [legal_minimum, max_allowed]; the legal minimum while penalised.
    """
    policy = policy or default_driver_policy()
    minimum = legal_minimum(driver.vehicle_class, policy)

    if is_under_penalty(driver, now):
        return minimum

    chosen = resumed_rate(driver)
    if chosen is not None:
        return max(minimum, min(chosen, max_allowed(driver.vehicle_class, policy)))

    return minimum

def resumed_rate(driver: Driver) -> Optional[int]:
    """The custom rate that applies whenever no penalty is running."""
    if driver.penalty_until is not None and driver.rate_before_penalty is not None:
        return driver.rate_before_penalty
    return driver.custom_rate

def can_update_rate(driver: Driver, now: datetime) -> bool:
    ensure_aware(now, "now")
    if driver.next_rate_update_allowed_at is None:
        return True
    return driver.next_rate_update_allowed_at <= now

def validate_new_rate(
    driver: Driver,
    proposed_rate: int,
    now: datetime,
    policy: Optional[DriverPolicy] = None,
) -> Result[Driver]:
    """
    Validate a self-service rate change and, if accepted, return the updated
    driver. A rejected rate is never clamped; the driver must pick again.
    """
    policy = policy or default_driver_policy()
    minimum = legal_minimum(driver.vehicle_class, policy)
    maximum = max_allowed(driver.vehicle_class, policy)

    if proposed_rate < minimum:
        return Result.fail(
            RateError.BELOW_LEGAL_MINIMUM,
            f"Rate cannot be below the legal minimum of Rp {minimum:,}/km",
        )

    if proposed_rate > maximum:
        return Result.fail(
            RateError.ABOVE_MAXIMUM,
            f"Rate cannot exceed Rp {maximum:,}/km ({int(policy.max_markup * 100)}% above minimum)",
        )

    if not can_update_rate(driver, now):
        return Result.fail(
            RateError.COOLDOWN_ACTIVE,
            f"Please wait {rate_cooldown_minutes(driver, now)} minutes before updating again",
        )

    if is_under_penalty(driver, now):
        return Result.fail(
            RateError.PENALTY_ACTIVE,
            f"Rate locked to legal minimum for {penalty_hours_remaining(driver, now)} more hours",
        )

    updated = replace(
        driver,
        custom_rate=proposed_rate,
        rate_before_penalty=None,
        last_rate_update_at=now,
        next_rate_update_allowed_at=now + timedelta(minutes=policy.rate_update_cooldown_minutes),
    )
    return Result.ok(updated, f"Rate updated to Rp {proposed_rate:,}/km")

def rate_cooldown_minutes(driver: Driver, now: datetime) -> int:
    """Minutes until the next rate change is allowed (rounded up, never negative)."""
    ensure_aware(now, "now")
    if driver.next_rate_update_allowed_at is None:
        return 0
    seconds = (driver.next_rate_update_allowed_at - now).total_seconds()
    return max(0, math.ceil(seconds / 60))

def penalty_hours_remaining(driver: Driver, now: datetime) -> int:
    """Hours left on the cancellation penalty (rounded up, never negative)."""
    ensure_aware(now, "now")
    if driver.penalty_until is None:
        return 0
    seconds = (driver.penalty_until - now).total_seconds()
    return max(0, math.ceil(seconds / 3600))

def clear_expired_penalty(driver: Driver, now: datetime) -> Driver:
    """
    Optional reconciliation: drop a penalty that already ran out.
    Readers never depend on this having run.
    """
    if driver.penalty_until is None or is_under_penalty(driver, now):
        return driver
    return replace(
        driver,
        custom_rate=resumed_rate(driver),
        rate_before_penalty=None,
        penalty_until=None,
        penalty_reason=None,
    )

# ---------------------------------------------------------------------------
# Hourly rental rates
# ---------------------------------------------------------------------------

def supports_hourly_rental(vehicle_class: VehicleClass, policy: Optional[DriverPolicy] = None) -> bool:
    policy = policy or default_driver_policy()
    return VehicleClass(vehicle_class) in policy.minimum_hourly_rates

def minimum_hourly_rate(vehicle_class: VehicleClass, policy: Optional[DriverPolicy] = None) -> Optional[int]:
    policy = policy or default_driver_policy()
    return policy.minimum_hourly_rates.get(VehicleClass(vehicle_class))

def maximum_hourly_rate(vehicle_class: VehicleClass, policy: Optional[DriverPolicy] = None) -> Optional[int]:
    policy = policy or default_driver_policy()
    minimum = minimum_hourly_rate(vehicle_class, policy)
    if minimum is None:
        return None
    return _apply_markup(minimum, policy.hourly_max_markup)

def effective_hourly_rate(driver: Driver, policy: Optional[DriverPolicy] = None) -> Optional[int]:
    """
    Same clamp pattern as the per-km rate. None for classes that do not rent
    by the hour.
    """
    policy = policy or default_driver_policy()
    minimum = minimum_hourly_rate(driver.vehicle_class, policy)
    if minimum is None:
        return None
    if driver.hourly_rate is None:
        return minimum
    return max(minimum, min(driver.hourly_rate, maximum_hourly_rate(driver.vehicle_class, policy)))

def validate_hourly_rate(
    driver: Driver,
    proposed_rate: int,
    offers_hourly_rental: bool = True,
    policy: Optional[DriverPolicy] = None,
) -> Result[Driver]:
    policy = policy or default_driver_policy()

    if not supports_hourly_rental(driver.vehicle_class, policy):
        return Result.fail(
            RateError.HOURLY_RENTAL_UNSUPPORTED,
            f"{driver.vehicle_class.value} does not support hourly rental",
        )

    minimum = minimum_hourly_rate(driver.vehicle_class, policy)
    maximum = maximum_hourly_rate(driver.vehicle_class, policy)

    if proposed_rate < minimum:
        return Result.fail(RateError.BELOW_LEGAL_MINIMUM, f"Minimum hourly rate is Rp {minimum:,}")

    if proposed_rate > maximum:
        return Result.fail(RateError.ABOVE_MAXIMUM, f"Maximum hourly rate is Rp {maximum:,}")

    return Result.ok(replace(driver, hourly_rate=proposed_rate, offers_hourly_rental=offers_hourly_rental))
