"""
Bookings domain package.

Public API:
- Domain models: Booking, BookingStatus, BookingKind, Location, PitStop,
  RideDetails, ParcelDetails, HourlyRentalDetails, FareBreakdown
- Fare calculator: compute_fare, quote_hourly_rental
"""
from .models import (
    Booking,
    BookingStatus,
    BookingKind,
    Location,
    PitStop,
    PitStopCharge,
    FareBreakdown,
    RideDetails,
    ParcelDetails,
    HourlyRentalDetails,
)
from .fares import FareError, compute_fare, quote_hourly_rental

__all__ = ["Booking",
           "BookingStatus",
           "BookingKind",
           "Location",
           "PitStop",
           "PitStopCharge",
           "FareBreakdown",
           "RideDetails",
           "ParcelDetails",
           "HourlyRentalDetails",
           "FareError",
           "compute_fare",
           "quote_hourly_rental",
           ]
