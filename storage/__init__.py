"""
Storage package.

Public API:
- InMemoryStore and its table names
- Versioned / Write
- StoreError, RecordNotFound, DuplicateRecord, VersionConflict
"""
from .memory import (
    DRIVERS,
    BOOKINGS,
    PROOFS,
    InMemoryStore,
    Versioned,
    Write,
    StoreError,
    RecordNotFound,
    DuplicateRecord,
    VersionConflict,
)

__all__ = [
    "DRIVERS",
    "BOOKINGS",
    "PROOFS",
    "InMemoryStore",
    "Versioned",
    "Write",
    "StoreError",
    "RecordNotFound",
    "DuplicateRecord",
    "VersionConflict",
]
