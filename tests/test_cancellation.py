import pytest
from dataclasses import replace
from datetime import timedelta

from bookings.models import BookingKind, BookingStatus
from dispatch.cancellation import (
    CancellationError,
    customer_notice,
    handle_driver_cancellation,
    penalty_details,
    reliability_score,
)
from dispatch.state_machines.order_state import BookingStateException, assign_driver
from drivers.models import VehicleClass
from drivers.policy import DriverPolicy
from drivers.pricing import effective_rate


@pytest.fixture
def pool(make_driver):
    return [
        make_driver(f"driver_{i}", is_online=True, rating=5.0 - i * 0.1, custom_rate=2900)
        for i in range(1, 6)
    ]


def _cancel(pool, booking, driver_id, now, **kwargs):
    driver = next(d for d in pool if d.id == driver_id)
    outcome = handle_driver_cancellation(driver, booking, pool, now, **kwargs).unwrap()
    pool[:] = [outcome.driver if d.id == driver_id else d for d in pool]
    return outcome


def test_cancellation_applies_every_effect(pool, make_booking, t0):
    booking = assign_driver(make_booking(), "driver_1")

    outcome = _cancel(pool, booking, "driver_1", t0, reason="Flat tyre")

    # 1. Driver penalised
    assert outcome.driver.cancellation_count == 1
    assert outcome.driver.penalty_until == t0 + timedelta(hours=48)
    assert outcome.driver.penalty_reason == "Flat tyre"
    assert outcome.driver.custom_rate == 2500
    assert effective_rate(outcome.driver, t0 + timedelta(hours=1)) == 2500

    # 2. Booking back to search, driver excluded
    assert outcome.booking.status == BookingStatus.SEARCHING
    assert outcome.booking.assigned_driver_id is None
    assert outcome.booking.previous_driver_ids == ("driver_1",)
    assert outcome.booking.rebooking_attempts == 1
    assert outcome.booking.cancelled_by == "driver_1"
    assert outcome.booking.cancelled_at == t0

    # 3. Audit log
    log = outcome.log
    assert log.id == "cancel_booking_1_1"
    assert (log.driver_id, log.booking_id) == ("driver_1", "booking_1")
    assert log.booking_kind == BookingKind.RIDE
    assert log.vehicle_class == VehicleClass.BIKE
    assert log.penalty_hours == 48
    assert log.rebooking_attempt == 1

    # 4. Next candidates exclude the canceller, nobody is assigned
    assert [d.id for d in outcome.candidates] == ["driver_2", "driver_3", "driver_4", "driver_5"]
    assert outcome.notify_driver_ids == ("driver_2", "driver_3", "driver_4", "driver_5")
    assert outcome.customer_message.startswith("Driver Unavailable")


def test_default_penalty_reason(pool, make_booking, t0):
    booking = assign_driver(make_booking(), "driver_1")

    outcome = _cancel(pool, booking, "driver_1", t0)

    assert outcome.driver.penalty_reason == "cancelled accepted booking"
    assert outcome.log.reason == "cancelled accepted booking"


def test_three_cancellations_in_a_row(pool, make_booking, t0):
    """
    Three different drivers cancel the same booking. The exclusion list
    grows, attempts reach 3 and the customer wording changes after the first.
    """
    booking = make_booking()
    messages = []

    for attempt, driver_id in enumerate(["driver_1", "driver_2", "driver_3"], start=1):
        booking = assign_driver(booking, driver_id)
        outcome = _cancel(pool, booking, driver_id, t0 + timedelta(minutes=attempt))
        booking = outcome.booking
        messages.append(outcome.customer_message)

        assert booking.rebooking_attempts == attempt
        assert driver_id not in outcome.notify_driver_ids

    assert booking.previous_driver_ids == ("driver_1", "driver_2", "driver_3")
    assert [d.id for d in outcome.candidates] == ["driver_4", "driver_5"]
    assert messages[0].startswith("Driver Unavailable")
    assert messages[1].startswith("Finding New Driver (Attempt 2)")
    assert messages[2].startswith("Finding New Driver (Attempt 3)")

    # A canceller can never take the booking back.
    with pytest.raises(BookingStateException):
        assign_driver(booking, "driver_2")


def test_stale_cancellation_is_a_no_op(pool, make_booking, t0):
    booking = assign_driver(make_booking(), "driver_2")
    stale_driver = pool[0]

    result = handle_driver_cancellation(stale_driver, booking, pool, t0)

    assert not result.success
    assert result.error == CancellationError.NO_OP_CONFLICT
    assert result.value is None


def test_cancelling_a_finished_booking_is_a_no_op(pool, make_booking, t0):
    booking = replace(assign_driver(make_booking(), "driver_1"), status=BookingStatus.COMPLETED)

    result = handle_driver_cancellation(pool[0], booking, pool, t0)

    assert result.error == CancellationError.NO_OP_CONFLICT


def test_cancellation_respects_policy(pool, make_booking, t0):
    policy = DriverPolicy(cancellation_penalty_hours=24, broadcast_cap=2)
    booking = assign_driver(make_booking(), "driver_1")

    outcome = handle_driver_cancellation(pool[0], booking, pool, t0, policy=policy).unwrap()

    assert outcome.driver.penalty_until == t0 + timedelta(hours=24)
    assert outcome.log.penalty_hours == 24
    assert outcome.notify_driver_ids == ("driver_2", "driver_3")
    assert len(outcome.candidates) == 4


def test_inputs_are_not_mutated(pool, make_booking, t0):
    booking = assign_driver(make_booking(), "driver_1")
    driver = pool[0]

    handle_driver_cancellation(driver, booking, pool, t0)

    assert driver.cancellation_count == 0
    assert booking.status == BookingStatus.DRIVER_ASSIGNED


def test_customer_notice_depends_only_on_attempt():
    assert customer_notice(1) == customer_notice(1)
    assert "replacement driver" in customer_notice(1)
    assert customer_notice(4).startswith("Finding New Driver (Attempt 4)")


def test_penalty_details(pool, make_booking, t0):
    booking = assign_driver(make_booking(), "driver_1")
    driver = _cancel(pool, booking, "driver_1", t0, reason="No fuel").driver

    details = penalty_details(driver, t0 + timedelta(hours=10))
    assert details.has_penalty
    assert details.hours_remaining == 38
    assert details.reason == "No fuel"
    assert details.ends_at == t0 + timedelta(hours=48)

    assert not penalty_details(driver, t0 + timedelta(hours=48)).has_penalty


def test_reliability_score(make_driver, t0):
    assert reliability_score(make_driver(), t0) == 100.0
    assert reliability_score(make_driver(trips_completed=9, cancellation_count=1), t0) == pytest.approx(90.0)

    penalised = make_driver(trips_completed=9, cancellation_count=1, penalty_until=t0 + timedelta(hours=1))
    assert reliability_score(penalised, t0) == pytest.approx(80.0)

    never_completed = make_driver(cancellation_count=3, penalty_until=t0 + timedelta(hours=1))
    assert reliability_score(never_completed, t0) == 0.0
