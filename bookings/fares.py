"""
Purpose: Fare calculator.
What it does:
Computes trip cost from distance, the driver's per-km rate and pit stop
surcharges, and quotes hourly rentals.

Rule: pure functions. Same inputs -> same FareBreakdown, so a quote can be
reconciled against the actual fare later.
"""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal
from enum import Enum
from typing import Iterable, Optional

from common.results import Result
from drivers.models import VehicleClass
from drivers.policy import DriverPolicy, default_driver_policy
from drivers.pricing import maximum_hourly_rate, minimum_hourly_rate, supports_hourly_rental

from .models import FareBreakdown, PitStop, PitStopCharge, to_distance


class FareError(str, Enum):
    HOURLY_RENTAL_UNSUPPORTED = "hourly_rental_unsupported"
    INVALID_RENTAL_HOURS = "invalid_rental_hours"
    RATE_OUT_OF_BOUNDS = "rate_out_of_bounds"


def _money(amount: Decimal) -> int:
    return int(amount.to_integral_value(rounding=ROUND_HALF_UP))


def pit_stop_fee(
    pit_stop: PitStop,
    vehicle_class: VehicleClass,
    rate_per_km: int,
    policy: Optional[DriverPolicy] = None,
) -> int:
    """Flat fee for every stop, plus the detour charge when off-route."""
    policy = policy or default_driver_policy()
    flat_fee = policy.pit_stop_fees[VehicleClass(vehicle_class)]

    if pit_stop.is_on_route:
        return flat_fee
    return flat_fee + _money(pit_stop.effective_detour * rate_per_km)


def total_distance(base_distance, pit_stops: Iterable[PitStop] = ()) -> Decimal:
    return to_distance(base_distance) + sum((ps.effective_detour for ps in pit_stops), Decimal(0))


def compute_fare(
    base_distance,
    pit_stops: Iterable[PitStop],
    vehicle_class: VehicleClass,
    rate_per_km: int,
    policy: Optional[DriverPolicy] = None,
) -> FareBreakdown:
    """
    base_fare covers the whole driven distance (detours included) and each
    off-route stop additionally bills its detour at the same rate.

    e.g. Bike, 5 km, one off-route stop with a 2 km detour, 2500/km:
        total_distance = 7, base_fare = 17500,
        waypoint_fees = 5000 + 2 * 2500 = 10000, total_fare = 27500
    """
    policy = policy or default_driver_policy()
    stops = tuple(pit_stops or ())

    distance = total_distance(base_distance, stops)
    base_fare = _money(distance * rate_per_km)

    breakdown = tuple(
        PitStopCharge(
            address=ps.location.address,
            is_on_route=ps.is_on_route,
            fee=pit_stop_fee(ps, vehicle_class, rate_per_km, policy),
        )
        for ps in stops
    )
    waypoint_fees = sum(charge.fee for charge in breakdown)

    return FareBreakdown(
        base_fare=base_fare,
        waypoint_fees=waypoint_fees,
        total_distance=distance,
        total_fare=base_fare + waypoint_fees,
        breakdown=breakdown,
    )


def quote_hourly_rental(
    vehicle_class: VehicleClass,
    hours: int,
    hourly_rate: int,
    policy: Optional[DriverPolicy] = None,
) -> Result[int]:
    """Hourly rental fare = hourly rate x booked hours (1-5 by default)."""
    policy = policy or default_driver_policy()

    if not supports_hourly_rental(vehicle_class, policy):
        return Result.fail(FareError.HOURLY_RENTAL_UNSUPPORTED, f"{VehicleClass(vehicle_class).value} cannot be rented by the hour")

    if not policy.min_rental_hours <= hours <= policy.max_rental_hours:
        return Result.fail(
            FareError.INVALID_RENTAL_HOURS,
            f"Rental must be between {policy.min_rental_hours} and {policy.max_rental_hours} hours",
        )

    minimum = minimum_hourly_rate(vehicle_class, policy)
    maximum = maximum_hourly_rate(vehicle_class, policy)
    if not minimum <= hourly_rate <= maximum:
        return Result.fail(FareError.RATE_OUT_OF_BOUNDS, f"Hourly rate must be between Rp {minimum:,} and Rp {maximum:,}")

    return Result.ok(hourly_rate * hours)
