from .driver_state import DriverStateException
from .order_state import BookingStateException

__all__ = ["DriverStateException", "BookingStateException"]
