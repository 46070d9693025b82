"""
Purpose: Central configuration for driver pricing, penalties and dispatch fan-out.
What it does:

Stores all tunable thresholds/caps for what a driver may charge and how far
a booking is broadcast:

MAX_MARKUP = 0.20
RATE_UPDATE_COOLDOWN_MINUTES = 30
CANCELLATION_PENALTY_HOURS = 48
HOURLY_RENTAL_MAX_MARKUP = 0.30
BROADCAST_CAP = 10

Rule: No logic here, just parameters so you can tune without rewriting code.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field, replace
from typing import Dict

from dotenv import load_dotenv

from .models import VehicleClass

# Legal minimum rates per km (IDR). Mandated by regulation; never bypassable.
LEGAL_MINIMUM_RATES: Dict[VehicleClass, int] = {
    VehicleClass.BIKE: 2500,
    VehicleClass.TUKTUK: 3000,
    VehicleClass.CAR: 4000,
    VehicleClass.BOX_LORRY: 8000,
    VehicleClass.FLATBED_LORRY: 10000,
}

# Minimum hourly rental rates (IDR per hour). Only these classes rent by the hour.
MINIMUM_HOURLY_RATES: Dict[VehicleClass, int] = {
    VehicleClass.BIKE: 15000,
    VehicleClass.TUKTUK: 25000,
    VehicleClass.CAR: 40000,
}

# Flat fee charged for every pit stop, on-route or not (IDR).
PIT_STOP_FEES: Dict[VehicleClass, int] = {
    VehicleClass.BIKE: 5000,
    VehicleClass.TUKTUK: 6000,
    VehicleClass.CAR: 8000,
    VehicleClass.BOX_LORRY: 10000,
    VehicleClass.FLATBED_LORRY: 10000,
}


@dataclass(frozen=True)
class DriverPolicy:
    """
    Central configuration for driver pricing and dispatch thresholds.
    """

    # --- Per-km rate bounds ---
    # Max allowed rate = floor(legal minimum * (1 + max_markup)).
    max_markup: float = 0.20
    legal_minimum_rates: Dict[VehicleClass, int] = field(default_factory=lambda: dict(LEGAL_MINIMUM_RATES))

    # Minimum time between two self-service rate changes (stops rate "flicker").
    rate_update_cooldown_minutes: int = 30

    # --- Cancellation penalty ---
    # How long the effective rate is locked to the legal minimum after a
    # driver cancels an accepted booking.
    cancellation_penalty_hours: int = 48
    default_penalty_reason: str = "cancelled accepted booking"

    # --- Hourly rental ---
    hourly_max_markup: float = 0.30
    minimum_hourly_rates: Dict[VehicleClass, int] = field(default_factory=lambda: dict(MINIMUM_HOURLY_RATES))
    min_rental_hours: int = 1
    max_rental_hours: int = 5

    # --- Fares ---
    pit_stop_fees: Dict[VehicleClass, int] = field(default_factory=lambda: dict(PIT_STOP_FEES))

    # --- Dispatch fan-out ---
    # Never notify more than this many drivers per booking event.
    broadcast_cap: int = 10

    def validate(self) -> None:
        """
        Basic sanity checks.
        """
        if self.max_markup < 0 or self.hourly_max_markup < 0:
            raise ValueError("markups must be >= 0")

        if self.rate_update_cooldown_minutes < 0:
            raise ValueError("rate_update_cooldown_minutes must be >= 0")

        if self.cancellation_penalty_hours <= 0:
            raise ValueError("cancellation_penalty_hours must be > 0")

        if self.broadcast_cap <= 0:
            raise ValueError("broadcast_cap must be > 0")

        if not 1 <= self.min_rental_hours <= self.max_rental_hours:
            raise ValueError("rental hours must satisfy 1 <= min <= max")

        missing = [vc for vc in VehicleClass if vc not in self.legal_minimum_rates or vc not in self.pit_stop_fees]
        if missing:
            raise ValueError(f"Missing rate tables for vehicle classes: {missing}")


def default_driver_policy() -> DriverPolicy:
    """
    Convenience factory for the default policy.
    """
    p = DriverPolicy()
    p.validate()
    return p


def driver_policy_from_env() -> DriverPolicy:
    """
    Default policy with overrides read from the environment / .env file.

    Example in .env:
    RATE_COOLDOWN_MINUTES=30
    PENALTY_HOURS=48
    DISPATCH_BROADCAST_CAP=10
    """
    load_dotenv()
    p = DriverPolicy()

    overrides = {}
    if os.getenv("RATE_COOLDOWN_MINUTES"):
        overrides["rate_update_cooldown_minutes"] = int(os.getenv("RATE_COOLDOWN_MINUTES"))
    if os.getenv("PENALTY_HOURS"):
        overrides["cancellation_penalty_hours"] = int(os.getenv("PENALTY_HOURS"))
    if os.getenv("DISPATCH_BROADCAST_CAP"):
        overrides["broadcast_cap"] = int(os.getenv("DISPATCH_BROADCAST_CAP"))

    p = replace(p, **overrides)
    p.validate()
    return p
