import pytest
import threading
from dataclasses import replace

from bookings.models import BookingStatus
from storage.memory import (
    BOOKINGS,
    DRIVERS,
    DuplicateRecord,
    InMemoryStore,
    RecordNotFound,
    VersionConflict,
    Write,
)


@pytest.fixture
def store(make_driver, make_booking):
    store = InMemoryStore()
    store.insert(DRIVERS, make_driver())
    store.insert(BOOKINGS, make_booking())
    return store


def test_insert_and_get(store):
    entry = store.get(DRIVERS, "driver_1")

    assert entry.version == 1
    assert entry.record.id == "driver_1"
    assert store.find(DRIVERS, "missing") is None

    with pytest.raises(RecordNotFound):
        store.get(BOOKINGS, "missing")


def test_duplicate_insert(store, make_driver):
    with pytest.raises(DuplicateRecord):
        store.insert(DRIVERS, make_driver())


def test_commit_bumps_versions(store):
    driver = store.get(DRIVERS, "driver_1")

    versions = store.commit([Write(DRIVERS, replace(driver.record, is_online=True), driver.version)])

    assert versions == {"drivers/driver_1": 2}
    assert store.get(DRIVERS, "driver_1").record.is_online is True


def test_conflicting_commit_changes_nothing(store):
    """
    If any write in a batch is stale, none of the writes or log entries
    are applied.
    """
    driver = store.get(DRIVERS, "driver_1")
    booking = store.get(BOOKINGS, "booking_1")

    # Someone else updates the booking first.
    store.commit([Write(BOOKINGS, replace(booking.record, status=BookingStatus.CANCELLED), booking.version)])

    with pytest.raises(VersionConflict) as excinfo:
        store.commit(
            [
                Write(DRIVERS, replace(driver.record, cancellation_count=1), driver.version),
                Write(BOOKINGS, replace(booking.record, rebooking_attempts=1), booking.version),
            ],
            logs=["log entry"],
        )

    assert excinfo.value.record_id == "booking_1"
    assert (excinfo.value.expected, excinfo.value.actual) == (1, 2)
    assert store.get(DRIVERS, "driver_1").record.cancellation_count == 0
    assert store.get(DRIVERS, "driver_1").version == 1
    assert store.cancellation_logs() == []


def test_snapshot_is_not_affected_by_later_commits(store):
    snapshot = store.records(DRIVERS)
    driver = store.get(DRIVERS, "driver_1")

    store.commit([Write(DRIVERS, replace(driver.record, is_online=True), driver.version)])

    assert snapshot[0].is_online is False


def test_lock_accepts_overlapping_names(store):
    with store.lock("booking_1", "driver_1", "booking_1"):
        pass
    with store.lock("driver_1", "booking_1"):
        pass


def test_named_locks_are_released_after_use(store):
    with store.lock("booking_1", "driver_1"):
        assert store.held_lock_names() == ["booking_1", "driver_1"]
        with store.lock("proof_1"):
            assert store.held_lock_names() == ["booking_1", "driver_1", "proof_1"]

    assert store.held_lock_names() == []


def test_lock_still_excludes_while_another_caller_waits(store):
    """A waiter keeps the lock alive, so it is not swapped out from under the holder."""
    pause = threading.Event()
    order = []

    def contender():
        with store.lock("booking_1"):
            order.append("contender")

    with store.lock("booking_1"):
        worker = threading.Thread(target=contender)
        worker.start()
        pause.wait(0.05)
        order.append("holder")

    worker.join()
    assert order == ["holder", "contender"]
    assert store.held_lock_names() == []


def test_unknown_table(store):
    with pytest.raises(KeyError):
        store.all("vehicles")
