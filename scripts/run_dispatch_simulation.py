import os
import random
from dataclasses import replace
from datetime import datetime, timezone
from decimal import Decimal
from typing import List

import pandas as pd

from billing.membership import MembershipSignal
from billing.service import MembershipService
from bookings.fares import compute_fare
from bookings.models import Booking, BookingStatus, Location, ParcelDetails, PitStop, RideDetails
from common.clock import FixedClock
from dispatch.audit import cancellation_summary
from dispatch.dispatcher import Dispatcher
from drivers.models import Driver, Language
from drivers.pricing import effective_rate
from storage.memory import BOOKINGS, DRIVERS, InMemoryStore

SIMULATION_START = datetime(2025, 1, 6, 7, 0, tzinfo=timezone.utc)

# Jakarta-ish centre for generated pickup / dropoff points.
CENTER_LAT = -6.200000
CENTER_LNG = 106.816666


class MockPushService:
    def __init__(self):
        self.offers_sent = 0
        self.revocations_sent = 0

    def broadcast_offer(self, driver_ids, booking):
        self.offers_sent += len(driver_ids)

    def revoke_offer(self, driver_ids, booking_id):
        self.revocations_sent += len(driver_ids)


def load_drivers(filepath="mock_drivers.csv") -> List[dict]:
    # Resolve the correct path depending on where the user runs the script from.
    base_dir = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
    absolute_path = filepath if os.path.isabs(filepath) else os.path.join(base_dir, filepath)

    df = pd.read_csv(absolute_path)
    return df.to_dict(orient="records")


def _random_location(label: str) -> Location:
    return Location(
        lat=round(CENTER_LAT + (random.random() - 0.5) * 0.15, 6),
        lng=round(CENTER_LNG + (random.random() - 0.5) * 0.15, 6),
        address=label,
    )


def _random_booking(booking_index: int, vehicle_class, created_at: datetime) -> Booking:
    pit_stops = ()
    if random.random() < 0.3:
        on_route = random.random() < 0.5
        pit_stops = (
            PitStop(
                location=_random_location(f"Stop {booking_index}"),
                is_on_route=on_route,
                detour_distance=Decimal("0") if on_route else Decimal(str(round(random.uniform(0.5, 3.0), 1))),
            ),
        )

    if random.random() < 0.25:
        details = ParcelDetails(
            sender_name=f"Sender {booking_index}",
            sender_phone="+62 811 0000 0000",
            receiver_name=f"Receiver {booking_index}",
            receiver_phone="+62 812 0000 0000",
            description="Documents",
        )
    else:
        details = RideDetails(
            customer_name=f"Customer {booking_index}",
            customer_phone="+62 813 0000 0000",
            preferred_language=Language.ENGLISH if random.random() < 0.2 else None,
        )

    return Booking(
        id=f"BK-{str(booking_index).zfill(4)}",
        vehicle_class=vehicle_class,
        pickup=_random_location(f"Pickup {booking_index}"),
        dropoff=_random_location(f"Dropoff {booking_index}"),
        pit_stops=pit_stops,
        details=details,
        created_at=created_at,
    )


def run_simulation(num_bookings=40, cancel_probability=0.15, seed=7):
    print("=== STARTING DISPATCH GOVERNANCE SIMULATION ===")
    random.seed(seed)

    clock = FixedClock(SIMULATION_START)
    store = InMemoryStore()
    push_service = MockPushService()
    dispatcher = Dispatcher(store, clock=clock, push_service=push_service)
    membership = MembershipService(store, clock=clock)

    # 1. Load the roster. Everyone starts offline and signs in through the dispatcher.
    rows = load_drivers()
    for row in rows:
        driver = Driver.new(
            row["driver_id"],
            row["name"],
            row["vehicle_class"],
            approved_at=SIMULATION_START,
            rating=float(row["rating"]),
            languages=row["languages"].split(";"),
        )
        store.insert(DRIVERS, replace(driver, offers_hourly_rental=bool(row["offers_hourly_rental"])))
        dispatcher.update_rate(driver.id, int(row["custom_rate"]))
        if row["is_online"]:
            dispatcher.go_online(driver.id)

    online = [d for d in store.records(DRIVERS) if d.is_online]
    fleet_classes = sorted({d.vehicle_class for d in online}, key=lambda c: c.value)
    print(f"Loaded {len(rows)} drivers ({len(online)} online).\n")

    # 2. Bookings: the first notified driver accepts; some cancel and the
    #    booking goes back out to the remaining candidates.
    completed, unserved, revenue = 0, 0, 0
    for booking_index in range(1, num_bookings + 1):
        clock.advance(minutes=10)
        booking = _random_booking(booking_index, random.choice(fleet_classes), clock.now())
        offer = dispatcher.create_booking(booking)

        notify_ids = list(offer.notify_driver_ids)
        accepted_by = None
        while notify_ids:
            driver_id = notify_ids[0]
            accepted = dispatcher.resolve_driver_acceptance(booking.id, driver_id)
            if not accepted.success:
                notify_ids.pop(0)
                continue

            if random.random() < cancel_probability:
                cancelled = dispatcher.cancel_by_driver(booking.id, driver_id, reason="Vehicle problem")
                outcome = cancelled.value
                print(f"[CANCELLED] {booking.id} by {driver_id} -> {outcome.customer_message.splitlines()[0]}")
                notify_ids = list(outcome.notify_driver_ids)
                continue

            accepted_by = driver_id
            break

        if accepted_by is None:
            dispatcher.cancel_by_customer(booking.id, cancelled_by="timeout")
            unserved += 1
            print(f"[FAILED] {booking.id} ({booking.vehicle_class.value}) -> no driver accepted")
            continue

        driver = store.get(DRIVERS, accepted_by).record
        fare = compute_fare(
            Decimal(str(round(random.uniform(2.0, 15.0), 1))),
            booking.pit_stops,
            booking.vehicle_class,
            effective_rate(driver, clock.now(), dispatcher.policy),
            dispatcher.policy,
        )
        while store.get(BOOKINGS, booking.id).record.status != BookingStatus.COMPLETED:
            dispatcher.advance_booking(booking.id)

        completed += 1
        revenue += fare.total_fare
        print(f"[SUCCESS] {booking.id} -> {accepted_by}, fare Rp {fare.total_fare:,} ({fare.total_distance} km)")

    # 3. Month end: a few drivers pay, the sweep handles everyone else.
    clock.advance(days=25)
    reminders = membership.run_sweep()
    payers = [d.id for d in store.records(DRIVERS)][: len(rows) // 2]
    for driver_id in payers:
        membership.submit_proof(driver_id, f"proof_{driver_id}_2", f"uploads/{driver_id}/transfer.jpg")
    membership.run_sweep()

    clock.advance(days=6)
    for driver_id in payers[: len(payers) // 2]:
        membership.review_proof(f"proof_{driver_id}_2", approved=True, admin_id="admin_1")
    final = membership.run_sweep()

    statuses = pd.Series([d.membership_status.value for d in store.records(DRIVERS)]).value_counts()

    print("\n=== SIMULATION COMPLETE ===")
    print(f"Bookings completed: {completed} / {num_bookings} ({unserved} unserved)")
    print(f"Gross fares: Rp {revenue:,}")
    print(f"Offers pushed: {push_service.offers_sent}, revoked: {push_service.revocations_sent}")
    print(f"Payment reminders: {sum(1 for n in reminders.notices if n.signal == MembershipSignal.PAYMENT_REMINDER)}")
    print(f"Final sweep notices: {len(final.notices)}")
    print("\nMembership status:")
    for status, count in statuses.items():
        print(f"  {status}: {count}")

    print("\nCancellation summary:")
    summary = cancellation_summary(store.cancellation_logs())
    print(summary.to_string(index=False) if not summary.empty else "  (no cancellations)")


if __name__ == "__main__":
    run_simulation()
