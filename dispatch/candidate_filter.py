#Purpose: Hard eligibility filtering (rule gates).
#Builds the base candidate set before ranking.
#Gates:
#online
#verified
#vehicle class match
#not a driver who already cancelled this booking
#membership not deactivated (the billing -> dispatch interlock)
#hourly rentals: driver offers hourly rental

#Output: "rule-qualified drivers" (still not ranked).

from typing import Iterable, List, Optional

from bookings.models import BookingKind
from drivers.models import Driver, MembershipStatus, VehicleClass


def is_eligible(
    driver: Driver,
    vehicle_class: VehicleClass,
    excluded_ids: frozenset,
    booking_kind: Optional[BookingKind] = None,
) -> bool:
    if not driver.is_online or not driver.is_verified:
        return False

    if driver.vehicle_class != vehicle_class:
        return False

    if driver.id in excluded_ids:
        return False

    if driver.membership_status == MembershipStatus.DEACTIVATED:
        return False

    if booking_kind == BookingKind.HOURLY_RENTAL and not driver.offers_hourly_rental:
        return False

    return True


def build_base_candidates(
    drivers: Iterable[Driver],
    vehicle_class: VehicleClass,
    excluded_ids: Iterable[str] = (),
    booking_kind: Optional[BookingKind] = None,
) -> List[Driver]:
    """
    Returns only the drivers allowed to hear about this booking.
    The input pool is a read-only snapshot; it is never modified.
    """
    vehicle_class = VehicleClass(vehicle_class)
    excluded = frozenset(excluded_ids)
    return [d for d in drivers if is_eligible(d, vehicle_class, excluded, booking_kind)]
