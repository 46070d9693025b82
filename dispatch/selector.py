"""
Purpose: Dispatch / rebooking selector.
What it does:
Given a new or driver-cancelled booking and a snapshot of the driver pool,
filters and ranks who should be (re)notified. Read-only: it never assigns a
driver and never mutates a Driver or Booking.
"""

from typing import Iterable, List, Optional

from bookings.models import Booking, BookingKind
from drivers.models import Driver, Language, VehicleClass
from drivers.policy import DriverPolicy, default_driver_policy

from .candidate_filter import build_base_candidates
from .scoring import broadcast_set, rank_candidates


def select_candidates(
    all_drivers: Iterable[Driver],
    vehicle_class: VehicleClass,
    excluded_ids: Iterable[str] = (),
    booking_kind: Optional[BookingKind] = None,
    preferred_language: Optional[Language] = None,
) -> List[Driver]:
    eligible = build_base_candidates(all_drivers, vehicle_class, excluded_ids, booking_kind)
    return rank_candidates(eligible, preferred_language)


def candidates_for_booking(all_drivers: Iterable[Driver], booking: Booking) -> List[Driver]:
    """Candidates for a booking, excluding every driver who cancelled it."""
    return select_candidates(
        all_drivers,
        booking.vehicle_class,
        excluded_ids=booking.previous_driver_ids,
        booking_kind=booking.kind,
        preferred_language=booking.preferred_language,
    )


def broadcast_ids_for_booking(
    all_drivers: Iterable[Driver],
    booking: Booking,
    policy: Optional[DriverPolicy] = None,
) -> List[str]:
    policy = policy or default_driver_policy()
    return broadcast_set(candidates_for_booking(all_drivers, booking), cap=policy.broadcast_cap)
