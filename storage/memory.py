"""
Purpose: In-memory record store with optimistic concurrency.
What it does:
- Owns the tables the core works against:
   - drivers
   - bookings
   - proofs
   - cancellation_logs (append-only)

Provides operations:
   - insert(table, record)
   - get(table, record_id) -> Versioned(record, version)
   - all(table) (snapshot)
   - commit(writes, logs): all-or-nothing batch guarded by expected versions
   - lock(name): named mutex for per-booking / per-driver serialisation

Any durable store can replace this as long as records stay addressable by
id and support conditional (version-checked) updates.
"""

from __future__ import annotations

import logging
import threading
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, List, Optional, Sequence

logger = logging.getLogger(__name__)

DRIVERS = "drivers"
BOOKINGS = "bookings"
PROOFS = "proofs"
TABLES = (DRIVERS, BOOKINGS, PROOFS)


class StoreError(Exception):
    """Base class for store errors."""
    pass


class RecordNotFound(StoreError):
    pass


class DuplicateRecord(StoreError):
    pass


class VersionConflict(StoreError):
    """A record changed between read and commit."""

    def __init__(self, table: str, record_id: str, expected: int, actual: int):
        super().__init__(f"{table}/{record_id}: expected version {expected}, found {actual}")
        self.table = table
        self.record_id = record_id
        self.expected = expected
        self.actual = actual


@dataclass(frozen=True)
class Versioned:
    record: Any
    version: int


@dataclass(frozen=True)
class Write:
    """One conditional update inside a commit."""
    table: str
    record: Any
    expected_version: int


@dataclass
class InMemoryStore:
    _tables: Dict[str, Dict[str, Versioned]] = field(default_factory=lambda: {name: {} for name in TABLES})
    _cancellation_logs: List[Any] = field(default_factory=list)

    _mutex: threading.RLock = field(default_factory=threading.RLock, repr=False)
    # a named lock exists only while someone holds or waits on it
    _named_locks: Dict[str, threading.Lock] = field(default_factory=dict, repr=False)
    _lock_users: Dict[str, int] = field(default_factory=dict, repr=False)

    # --- Reads ---

    def get(self, table: str, record_id: str) -> Versioned:
        with self._mutex:
            try:
                return self._table(table)[record_id]
            except KeyError:
                raise RecordNotFound(f"{table}/{record_id}") from None

    def find(self, table: str, record_id: str) -> Optional[Versioned]:
        with self._mutex:
            return self._table(table).get(record_id)

    def all(self, table: str) -> List[Versioned]:
        """Snapshot of a table; later commits do not affect the returned list."""
        with self._mutex:
            return list(self._table(table).values())

    def records(self, table: str) -> List[Any]:
        return [entry.record for entry in self.all(table)]

    def proofs_for_driver(self, driver_id: str) -> List[Any]:
        return [proof for proof in self.records(PROOFS) if proof.driver_id == driver_id]

    def cancellation_logs(self, booking_id: Optional[str] = None) -> List[Any]:
        with self._mutex:
            if booking_id is None:
                return list(self._cancellation_logs)
            return [log for log in self._cancellation_logs if log.booking_id == booking_id]

    # --- Writes ---

    def insert(self, table: str, record: Any) -> Versioned:
        with self._mutex:
            rows = self._table(table)
            if record.id in rows:
                raise DuplicateRecord(f"{table}/{record.id}")
            rows[record.id] = Versioned(record, 1)
            return rows[record.id]

    def commit(self, writes: Sequence[Write], logs: Sequence[Any] = ()) -> Dict[str, int]:
        """
        Apply every write and log append, or none of them.
        Returns the new version of each written record keyed by "table/id".
        """
        with self._mutex:
            # 1. Check every precondition before touching anything.
            for write in writes:
                current = self.get(write.table, write.record.id)
                if current.version != write.expected_version:
                    logger.warning(
                        "Version conflict on %s/%s (expected %s, found %s)",
                        write.table, write.record.id, write.expected_version, current.version,
                    )
                    raise VersionConflict(write.table, write.record.id, write.expected_version, current.version)

            # 2. Apply.
            new_versions = {}
            for write in writes:
                rows = self._table(write.table)
                version = rows[write.record.id].version + 1
                rows[write.record.id] = Versioned(write.record, version)
                new_versions[f"{write.table}/{write.record.id}"] = version

            self._cancellation_logs.extend(logs)
            return new_versions

    @contextmanager
    def lock(self, *names: str) -> Iterator[None]:
        """
        Hold several named locks at once. Acquired in sorted order so two
        callers locking the same pair cannot deadlock.
        """
        ordered = sorted(set(names))
        with self._mutex:
            for name in ordered:
                self._named_locks.setdefault(name, threading.Lock())
                self._lock_users[name] = self._lock_users.get(name, 0) + 1
            locks = [self._named_locks[name] for name in ordered]
        try:
            for acquired in locks:
                acquired.acquire()
            try:
                yield
            finally:
                for acquired in reversed(locks):
                    acquired.release()
        finally:
            with self._mutex:
                for name in ordered:
                    self._lock_users[name] -= 1
                    if not self._lock_users[name]:
                        del self._lock_users[name]
                        del self._named_locks[name]

    def held_lock_names(self) -> List[str]:
        with self._mutex:
            return sorted(self._named_locks)

    # --- Internal ---

    def _table(self, table: str) -> Dict[str, Versioned]:
        if table not in self._tables:
            raise KeyError(f"Unknown table: {table}")
        return self._tables[table]
