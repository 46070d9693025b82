from dataclasses import replace
from datetime import datetime

from bookings.models import Booking, BookingKind, BookingStatus
from common.clock import ensure_aware
from common.exceptions import InvariantViolation


class BookingStateException(InvariantViolation):
    """Raised when an invalid booking transition is attempted."""
    pass


# Transit progression once a driver is assigned. Parcels add a DELIVERED step.
_RIDE_FLOW = [
    BookingStatus.DRIVER_ASSIGNED,
    BookingStatus.DRIVER_ARRIVING,
    BookingStatus.ARRIVED,
    BookingStatus.PICKED_UP,
    BookingStatus.IN_TRANSIT,
    BookingStatus.COMPLETED,
]
_PARCEL_FLOW = _RIDE_FLOW[:-1] + [BookingStatus.DELIVERED, BookingStatus.COMPLETED]


def _flow_for(booking: Booking):
    return _PARCEL_FLOW if booking.kind == BookingKind.PARCEL else _RIDE_FLOW


def assign_driver(booking: Booking, driver_id: str) -> Booking:
    """
    Called when a driver's acceptance wins the race for a SEARCHING booking.
    """
    if booking.status != BookingStatus.SEARCHING:
        raise BookingStateException(f"Cannot assign booking {booking.id} from {booking.status}")

    if booking.was_cancelled_by(driver_id):
        raise BookingStateException(
            f"Driver {driver_id} already cancelled booking {booking.id} and must not be reassigned"
        )

    return replace(booking, status=BookingStatus.DRIVER_ASSIGNED, assigned_driver_id=driver_id)


def advance_booking(booking: Booking, now: datetime) -> Booking:
    """
    Move an assigned booking one step along its transit flow.
    """
    ensure_aware(now, "now")
    flow = _flow_for(booking)

    if booking.status not in flow or booking.status == BookingStatus.COMPLETED:
        raise BookingStateException(f"Booking {booking.id} cannot advance from {booking.status}")

    next_status = flow[flow.index(booking.status) + 1]
    if next_status == BookingStatus.COMPLETED:
        return replace(booking, status=next_status, completed_at=now)
    return replace(booking, status=next_status)


def release_to_search(booking: Booking, driver_id: str, now: datetime) -> Booking:
    """
    Driver cancelled: unassign, remember them, and go back to SEARCHING.
    """
    ensure_aware(now, "now")

    if booking.assigned_driver_id != driver_id:
        raise BookingStateException(f"Booking {booking.id} is not assigned to driver {driver_id}")

    if booking.was_cancelled_by(driver_id):
        raise BookingStateException(f"Driver {driver_id} already cancelled booking {booking.id}")

    return replace(
        booking,
        status=BookingStatus.SEARCHING,
        assigned_driver_id=None,
        previous_driver_ids=booking.previous_driver_ids + (driver_id,),
        rebooking_attempts=booking.rebooking_attempts + 1,
        cancelled_by=driver_id,
        cancelled_at=now,
    )


def cancel_by_customer(booking: Booking, now: datetime, cancelled_by: str = "customer") -> Booking:
    """
    Terminal cancellation by the customer (cancelled_by="timeout" for a
    search that never found a driver). No penalty is involved.
    """
    ensure_aware(now, "now")

    if booking.is_terminal:
        raise BookingStateException(f"Booking {booking.id} is already {booking.status.value}")

    return replace(
        booking,
        status=BookingStatus.CANCELLED,
        assigned_driver_id=None,
        cancelled_at=now,
        cancelled_by=cancelled_by,
    )
