"""
Purpose: Domain models for the Bookings capability.
What it does:
- Defines core data structures:
- Booking (shared core: locations, pit stops, status, driver assignment,
  cancellation history, fare) with a kind-specific payload
- RideDetails / ParcelDetails / HourlyRentalDetails (the payloads)
- PitStop (waypoint with on-route flag and detour distance)
- FareBreakdown / PitStopCharge (output of the fare calculator)

Defines enums/constants:
- BookingStatus = SEARCHING | DRIVER_ASSIGNED | ... | COMPLETED | CANCELLED
- BookingKind = RIDE | PARCEL | HOURLY_RENTAL

Rule: No pricing or dispatch logic. Models only.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import ClassVar, Optional, Tuple, Union

from common.clock import ensure_aware
from drivers.models import Language, VehicleClass


def to_distance(value) -> Decimal:
    """Normalise a km distance (int, float, str or Decimal) to Decimal."""
    if isinstance(value, Decimal):
        distance = value
    else:
        distance = Decimal(str(value))
    if distance < 0:
        raise ValueError(f"distance must be >= 0, got {value!r}")
    return distance


class BookingStatus(Enum):
    SEARCHING = "searching"
    DRIVER_ASSIGNED = "driver_assigned"
    DRIVER_ARRIVING = "driver_arriving"
    ARRIVED = "arrived"
    PICKED_UP = "picked_up"
    IN_TRANSIT = "in_transit"
    DELIVERED = "delivered"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class BookingKind(Enum):
    RIDE = "Ride"
    PARCEL = "Parcel"
    HOURLY_RENTAL = "Hourly Rental"


@dataclass(frozen=True)
class Location:
    lat: float
    lng: float
    address: str = ""


@dataclass(frozen=True)
class PitStop:
    """
    A stop between pickup and dropoff. detour_distance only matters when the
    stop is off the direct route.
    """
    location: Location
    is_on_route: bool
    detour_distance: Decimal = Decimal(0)
    estimated_stop_minutes: Optional[int] = None

    def __post_init__(self):
        object.__setattr__(self, "detour_distance", to_distance(self.detour_distance))

    @property
    def effective_detour(self) -> Decimal:
        return Decimal(0) if self.is_on_route else self.detour_distance


@dataclass(frozen=True)
class PitStopCharge:
    address: str
    is_on_route: bool
    fee: int


@dataclass(frozen=True)
class FareBreakdown:
    base_fare: int
    waypoint_fees: int
    total_distance: Decimal
    total_fare: int
    breakdown: Tuple[PitStopCharge, ...] = ()


# --- Kind-specific payloads ---

@dataclass(frozen=True)
class RideDetails:
    kind: ClassVar[BookingKind] = BookingKind.RIDE

    customer_name: str
    customer_phone: str
    preferred_language: Optional[Language] = None
    special_instructions: Optional[str] = None


@dataclass(frozen=True)
class ParcelDetails:
    kind: ClassVar[BookingKind] = BookingKind.PARCEL

    sender_name: str
    sender_phone: str
    receiver_name: str
    receiver_phone: str
    description: str
    weight: Optional[str] = None
    size: Optional[str] = None


@dataclass(frozen=True)
class HourlyRentalDetails:
    kind: ClassVar[BookingKind] = BookingKind.HOURLY_RENTAL

    customer_name: str
    customer_phone: str
    rental_hours: int
    pickup_time: datetime
    purpose: Optional[str] = None
    preferred_language: Optional[Language] = None

    def __post_init__(self):
        ensure_aware(self.pickup_time, "pickup_time")


BookingDetails = Union[RideDetails, ParcelDetails, HourlyRentalDetails]


@dataclass(frozen=True)
class Booking:
    """
    A ride, parcel or hourly rental. The shared core is what governance and
    dispatch work on; `details` carries the kind-specific payload.
    """
    id: str
    vehicle_class: VehicleClass
    pickup: Location
    details: BookingDetails
    created_at: datetime
    dropoff: Optional[Location] = None
    pit_stops: Tuple[PitStop, ...] = ()

    status: BookingStatus = BookingStatus.SEARCHING
    assigned_driver_id: Optional[str] = None

    # Drivers who cancelled this booking; they must never be offered it again.
    previous_driver_ids: Tuple[str, ...] = ()
    rebooking_attempts: int = 0

    fare: Optional[FareBreakdown] = None
    cancelled_at: Optional[datetime] = None
    cancelled_by: Optional[str] = None
    completed_at: Optional[datetime] = None

    def __post_init__(self):
        ensure_aware(self.created_at, "created_at")
        ensure_aware(self.cancelled_at, "cancelled_at")
        ensure_aware(self.completed_at, "completed_at")
        if not isinstance(self.details, (RideDetails, ParcelDetails, HourlyRentalDetails)):
            raise TypeError(f"Unknown booking details type: {type(self.details).__name__}")
        if isinstance(self.details, HourlyRentalDetails):
            if self.dropoff is not None or self.pit_stops:
                raise ValueError("Hourly rentals have no dropoff or pit stops")
        elif self.dropoff is None:
            raise ValueError(f"{self.details.kind.value} booking needs a dropoff location")

    @property
    def kind(self) -> BookingKind:
        return self.details.kind

    @property
    def preferred_language(self) -> Optional[Language]:
        return getattr(self.details, "preferred_language", None)

    @property
    def is_terminal(self) -> bool:
        return self.status in (BookingStatus.COMPLETED, BookingStatus.CANCELLED)

    def was_cancelled_by(self, driver_id: str) -> bool:
        return driver_id in self.previous_driver_ids
