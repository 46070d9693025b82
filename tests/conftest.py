from dataclasses import replace
from datetime import datetime, timezone

import pytest

from bookings.models import Booking, Location, RideDetails
from drivers.models import Driver, VehicleClass


@pytest.fixture
def t0():
    # All tests run against a fixed UTC instant, never the wall clock.
    return datetime(2025, 3, 3, 9, 0, tzinfo=timezone.utc)


@pytest.fixture
def make_driver(t0):
    def _make(driver_id="driver_1", vehicle_class=VehicleClass.BIKE, approved_at=None, **overrides):
        driver = Driver.new(
            driver_id=driver_id,
            name=driver_id.replace("_", " ").title(),
            vehicle_class=vehicle_class,
            approved_at=approved_at or t0,
        )
        return replace(driver, **overrides) if overrides else driver
    return _make


@pytest.fixture
def make_booking(t0):
    def _make(booking_id="booking_1", vehicle_class=VehicleClass.BIKE, details=None, **overrides):
        return Booking(
            id=booking_id,
            vehicle_class=vehicle_class,
            pickup=Location(-6.2000, 106.8166, "Pickup"),
            dropoff=Location(-6.2300, 106.8400, "Dropoff"),
            details=details or RideDetails(customer_name="Customer", customer_phone="+62 813 0000 0000"),
            created_at=t0,
            **overrides,
        )
    return _make
