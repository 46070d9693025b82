"""
Purpose: Orchestrator / transaction layer (the "glue").
What it does:
Loads driver and booking records from the store, runs the pure governance
functions against them and commits the results atomically with a version
check. Anything that changed underneath us is reported as a conflict for the
caller to refresh and retry; nothing is retried here.

Follow-up side effects (push offers, revoke offers) go through an optional
push_service and are only fired after a successful commit.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Optional, Tuple

from bookings.models import Booking, BookingStatus
from common.clock import Clock, SystemClock
from common.results import Result
from drivers.models import Driver
from drivers.policy import DriverPolicy, default_driver_policy
from drivers.pricing import validate_new_rate
from storage.memory import BOOKINGS, DRIVERS, InMemoryStore, VersionConflict, Write

from .cancellation import CancellationError, CancellationOutcome, handle_driver_cancellation
from .candidate_filter import is_eligible
from .selector import candidates_for_booking
from .scoring import broadcast_set
from .state_machines.driver_state import go_offline, go_online, record_completed_trip
from .state_machines.order_state import advance_booking, assign_driver, cancel_by_customer

logger = logging.getLogger(__name__)


class DispatchError(str, Enum):
    NO_OP_CONFLICT = "no_op_conflict"
    BOOKING_NOT_AVAILABLE = "booking_not_available"
    DRIVER_NOT_ELIGIBLE = "driver_not_eligible"


@dataclass(frozen=True)
class DispatchResult:
    booking: Booking
    candidates: Tuple[Driver, ...]
    notify_driver_ids: Tuple[str, ...]


def _booking_lock(booking_id: str) -> str:
    return f"booking_{booking_id}"


def _driver_lock(driver_id: str) -> str:
    return f"driver_{driver_id}"


class Dispatcher:
    """
    Coordinates bookings and drivers against a versioned store.
    """
    def __init__(
        self,
        store: InMemoryStore,
        policy: Optional[DriverPolicy] = None,
        clock: Optional[Clock] = None,
        push_service=None,
    ):
        self.store = store
        self.policy = policy or default_driver_policy()
        self.clock = clock or SystemClock()
        self.push_service = push_service
        # booking id -> driver ids currently holding an offer card
        self._active_offers: Dict[str, List[str]] = {}

    # --- Offers ---

    def create_booking(self, booking: Booking) -> DispatchResult:
        """
        Store a new SEARCHING booking and broadcast it to the first candidates.
        """
        if booking.status != BookingStatus.SEARCHING:
            raise ValueError(f"New booking {booking.id} must be SEARCHING, got {booking.status}")

        self.store.insert(BOOKINGS, booking)
        logger.info("Booking %s created (%s, %s)", booking.id, booking.kind.value, booking.vehicle_class.value)
        return self.offer_booking(booking.id)

    def offer_booking(self, booking_id: str) -> DispatchResult:
        """(Re)broadcast a SEARCHING booking to the current best candidates."""
        with self.store.lock(_booking_lock(booking_id)):
            booking = self.store.get(BOOKINGS, booking_id).record
            if booking.status != BookingStatus.SEARCHING:
                return DispatchResult(booking, (), ())

            candidates = candidates_for_booking(self.store.records(DRIVERS), booking)
            notify_ids = broadcast_set(candidates, cap=self.policy.broadcast_cap)
            self._publish_offer(booking, notify_ids)

        return DispatchResult(booking, tuple(candidates), tuple(notify_ids))

    def resolve_driver_acceptance(self, booking_id: str, driver_id: str) -> Result[Booking]:
        """
        Race condition resolver: called when a driver hits "Accept".
        Guarantees that two drivers cannot accept the same booking.
        """
        with self.store.lock(_booking_lock(booking_id), _driver_lock(driver_id)):
            booking_entry = self.store.get(BOOKINGS, booking_id)
            driver_entry = self.store.get(DRIVERS, driver_id)
            booking, driver = booking_entry.record, driver_entry.record

            if booking.status != BookingStatus.SEARCHING:
                return Result.fail(DispatchError.BOOKING_NOT_AVAILABLE, "Too late, this booking was already taken")

            # Raises for a driver who already cancelled this booking.
            assigned = assign_driver(booking, driver_id)

            if not is_eligible(driver, booking.vehicle_class, frozenset(), booking.kind):
                return Result.fail(DispatchError.DRIVER_NOT_ELIGIBLE, "You are not eligible for this booking")

            try:
                self.store.commit([Write(BOOKINGS, assigned, booking_entry.version)])
            except VersionConflict:
                return Result.fail(DispatchError.NO_OP_CONFLICT, "Booking changed, please refresh")

            others = [d for d in self._active_offers.pop(booking_id, []) if d != driver_id]

        logger.info("Booking %s accepted by driver %s", booking_id, driver_id)
        if self.push_service and others:
            self.push_service.revoke_offer(others, booking_id)
        return Result.ok(assigned)

    # --- Cancellations ---

    def cancel_by_driver(self, booking_id: str, driver_id: str, reason: Optional[str] = None) -> Result[CancellationOutcome]:
        """
        Driver cancels an accepted booking. Penalty, booking release and the
        audit log are committed together or not at all.
        """
        now = self.clock.now()

        with self.store.lock(_booking_lock(booking_id), _driver_lock(driver_id)):
            booking_entry = self.store.get(BOOKINGS, booking_id)
            driver_entry = self.store.get(DRIVERS, driver_id)

            result = handle_driver_cancellation(
                driver_entry.record,
                booking_entry.record,
                self.store.records(DRIVERS),
                now,
                reason=reason,
                policy=self.policy,
            )
            if not result.success:
                return result

            outcome = result.value
            try:
                self.store.commit(
                    [
                        Write(DRIVERS, outcome.driver, driver_entry.version),
                        Write(BOOKINGS, outcome.booking, booking_entry.version),
                    ],
                    logs=[outcome.log],
                )
            except VersionConflict:
                return Result.fail(CancellationError.NO_OP_CONFLICT, "Booking changed, please refresh")

            self._publish_offer(outcome.booking, list(outcome.notify_driver_ids))

        return result

    def cancel_by_customer(self, booking_id: str, cancelled_by: str = "customer") -> Result[Booking]:
        now = self.clock.now()
        with self.store.lock(_booking_lock(booking_id)):
            entry = self.store.get(BOOKINGS, booking_id)
            if entry.record.is_terminal:
                return Result.fail(DispatchError.BOOKING_NOT_AVAILABLE, f"Booking is already {entry.record.status.value}")

            cancelled = cancel_by_customer(entry.record, now, cancelled_by)
            try:
                self.store.commit([Write(BOOKINGS, cancelled, entry.version)])
            except VersionConflict:
                return Result.fail(DispatchError.NO_OP_CONFLICT, "Booking changed, please refresh")

            revoked = self._active_offers.pop(booking_id, [])

        if self.push_service and revoked:
            self.push_service.revoke_offer(revoked, booking_id)
        return Result.ok(cancelled)

    # --- Trip progress ---

    def advance_booking(self, booking_id: str) -> Result[Booking]:
        """Next transit step; completing the trip credits the driver."""
        now = self.clock.now()
        with self.store.lock(_booking_lock(booking_id)):
            booking_entry = self.store.get(BOOKINGS, booking_id)
            advanced = advance_booking(booking_entry.record, now)
            writes = [Write(BOOKINGS, advanced, booking_entry.version)]

            if advanced.status != BookingStatus.COMPLETED:
                return self._commit_booking(writes, advanced)

            with self.store.lock(_driver_lock(advanced.assigned_driver_id)):
                driver_entry = self.store.get(DRIVERS, advanced.assigned_driver_id)
                writes.append(Write(DRIVERS, record_completed_trip(driver_entry.record), driver_entry.version))
                return self._commit_booking(writes, advanced)

    # --- Driver self-service ---

    def update_rate(self, driver_id: str, proposed_rate: int) -> Result[Driver]:
        now = self.clock.now()
        with self.store.lock(_driver_lock(driver_id)):
            entry = self.store.get(DRIVERS, driver_id)
            result = validate_new_rate(entry.record, proposed_rate, now, self.policy)
            if not result.success:
                return result
            return self._commit_driver(entry.version, result)

    def go_online(self, driver_id: str) -> Result[Driver]:
        now = self.clock.now()
        with self.store.lock(_driver_lock(driver_id)):
            entry = self.store.get(DRIVERS, driver_id)
            if not entry.record.is_verified:
                return Result.fail(DispatchError.DRIVER_NOT_ELIGIBLE, "Your account is awaiting verification")
            result = go_online(entry.record, now)
            if not result.success or result.value == entry.record:
                return result
            return self._commit_driver(entry.version, result)

    def go_offline(self, driver_id: str) -> Result[Driver]:
        with self.store.lock(_driver_lock(driver_id)):
            entry = self.store.get(DRIVERS, driver_id)
            offline = go_offline(entry.record)
            if offline == entry.record:
                return Result.ok(offline)
            return self._commit_driver(entry.version, Result.ok(offline))

    # --- Internal ---

    def _commit_driver(self, expected_version: int, result: Result[Driver]) -> Result[Driver]:
        try:
            self.store.commit([Write(DRIVERS, result.value, expected_version)])
        except VersionConflict:
            return Result.fail(DispatchError.NO_OP_CONFLICT, "Driver changed, please refresh")
        return result

    def _commit_booking(self, writes: List[Write], booking: Booking) -> Result[Booking]:
        try:
            self.store.commit(writes)
        except VersionConflict:
            return Result.fail(DispatchError.NO_OP_CONFLICT, "Booking changed, please refresh")
        return Result.ok(booking)

    def _publish_offer(self, booking: Booking, driver_ids: List[str]) -> None:
        self._active_offers[booking.id] = list(driver_ids)
        if not driver_ids:
            logger.warning("No eligible drivers for booking %s", booking.id)
            return

        logger.debug("Broadcasting booking %s to %s drivers", booking.id, len(driver_ids))
        if self.push_service:
            self.push_service.broadcast_offer(driver_ids, booking)
