"""
Core audit log primitives.

This module provides the foundational abstractions:
- AuditLogEntry: Immutable hash-chained record
- AuditEventType: Fixed event enumeration
- Canonical: Deterministic serialization (hashing input)
- Clock: Injectable time source
- IDs: Entry identifier generation
"""

from .entry import (
    Actor,
    AuditLogEntry,
    Provenance,
    Resource,
    canonical_entry_bytes,
    format_timestamp,
    load_entry,
    parse_timestamp,
)
from .events import AuditEventType, EventCategory
from .canonical import canonicalize, canonical_json_bytes, canonical_json_str
from .clock import ManualClock, SystemClock, ensure_utc
from .ids import new_entry_id
from .errors import (
    AuditError,
    ChainConflictError,
    EncodingError,
    IntegrityError,
    InvalidEventType,
    InvalidRange,
    StorageError,
)

__all__ = [
    "Actor",
    "AuditLogEntry",
    "Provenance",
    "Resource",
    "canonical_entry_bytes",
    "format_timestamp",
    "load_entry",
    "parse_timestamp",
    "AuditEventType",
    "EventCategory",
    "canonicalize",
    "canonical_json_bytes",
    "canonical_json_str",
    "ManualClock",
    "SystemClock",
    "ensure_utc",
    "new_entry_id",
    "AuditError",
    "ChainConflictError",
    "EncodingError",
    "IntegrityError",
    "InvalidEventType",
    "InvalidRange",
    "StorageError",
]
