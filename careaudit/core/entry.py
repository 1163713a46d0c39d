"""
Audit log entry model.

An AuditLogEntry is immutable once persisted. Its hash covers every field
returned by hashable_fields(); hash and previous_entry_hash are excluded
from the canonical encoding because they are the chain link itself.
"""

import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Union

from .canonical import canonical_json_bytes
from .clock import ensure_utc
from .errors import EncodingError, InvalidEventType
from .events import AuditEventType

TIMESTAMP_FORMAT = "%Y-%m-%dT%H:%M:%S.%fZ"

# Stands in for a stored timestamp that no longer parses
UNKNOWN_TIMESTAMP = datetime.min.replace(tzinfo=timezone.utc)


def format_timestamp(ts: datetime) -> str:
    """Fixed-width UTC timestamp with microseconds, e.g. 2024-01-01T00:00:00.000000Z."""
    return ensure_utc(ts).strftime(TIMESTAMP_FORMAT)


def parse_timestamp(value: str) -> datetime:
    return datetime.strptime(value, TIMESTAMP_FORMAT).replace(tzinfo=timezone.utc)


@dataclass(frozen=True)
class Actor:
    """Authenticated principal at event time (both fields optional)."""
    user_id: Optional[int] = None
    username: Optional[str] = None


@dataclass(frozen=True)
class Provenance:
    """Where the request came from."""
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None


@dataclass(frozen=True)
class Resource:
    """Entity acted upon."""
    type: Optional[str] = None
    id: Optional[str] = None


@dataclass(frozen=True)
class AuditLogEntry:
    """
    Immutable audit record.

    Fields:
        id: UUID assigned at creation (independent of chain position)
        timestamp: Creation time (aware UTC datetime)
        event_type: One of AuditEventType
        actor_user_id / actor_username: Principal snapshot (optional)
        source_ip / user_agent: Request provenance (optional)
        resource_type / resource_id: Entity acted upon (optional)
        action: Short description (defaults to the event type value)
        details: Event-specific context (JSON-representable)
        unreadable: Decode error for a stored record that no longer parses
            (None for every well-formed entry)
        hash: Hex digest over canonical fields + previous_entry_hash
        previous_entry_hash: Hash of preceding entry, "" for genesis
    """
    id: str
    timestamp: datetime
    event_type: Union[AuditEventType, str]
    action: str
    hash: str
    previous_entry_hash: str
    actor_user_id: Optional[int] = None
    actor_username: Optional[str] = None
    source_ip: Optional[str] = None
    user_agent: Optional[str] = None
    resource_type: Optional[str] = None
    resource_id: Optional[str] = None
    details: Dict[str, Any] = field(default_factory=dict)
    unreadable: Optional[str] = field(default=None, compare=False)

    def hashable_fields(self) -> Dict[str, Any]:
        """
        Every non-hash field, absent optionals as None.

        The key set is fixed: an omitted optional and an explicit None
        encode identically, and both differ from the string "null".
        """
        return {
            "id": self.id,
            "timestamp": format_timestamp(self.timestamp),
            "event_type": _event_type_value(self.event_type),
            "actor_user_id": self.actor_user_id,
            "actor_username": self.actor_username,
            "source_ip": self.source_ip,
            "user_agent": self.user_agent,
            "resource_type": self.resource_type,
            "resource_id": self.resource_id,
            "action": self.action,
            "details": self.details,
        }

    def to_record(self) -> Dict[str, Any]:
        """Serialize for storage (hashable fields plus the chain link)."""
        rec = self.hashable_fields()
        rec["hash"] = self.hash
        rec["previous_entry_hash"] = self.previous_entry_hash
        if self.unreadable is not None:
            rec["unreadable"] = self.unreadable
        return rec

    @classmethod
    def from_record(cls, rec: Dict[str, Any]) -> "AuditLogEntry":
        """
        Deserialize a storage record.

        Raises:
            KeyError: If a required field is missing
            ValueError: If the timestamp is malformed
        """
        return cls(
            id=rec["id"],
            timestamp=parse_timestamp(rec["timestamp"]),
            event_type=_load_event_type(rec["event_type"]),
            actor_user_id=rec.get("actor_user_id"),
            actor_username=rec.get("actor_username"),
            source_ip=rec.get("source_ip"),
            user_agent=rec.get("user_agent"),
            resource_type=rec.get("resource_type"),
            resource_id=rec.get("resource_id"),
            action=rec["action"],
            details=rec.get("details", {}),
            hash=rec["hash"],
            previous_entry_hash=rec.get("previous_entry_hash", ""),
        )

    @classmethod
    def from_unreadable(cls, rec: Any, error: str) -> "AuditLogEntry":
        """
        Placeholder for a stored record that cannot be decoded.

        Keeps whatever id and chain link survive so the verifier can report
        the record by id and keep following the chain past it.
        """
        if not isinstance(rec, dict):
            rec = {}

        def text(key: str) -> str:
            value = rec.get(key)
            return value if isinstance(value, str) else ""

        try:
            timestamp = parse_timestamp(rec["timestamp"])
        except (KeyError, TypeError, ValueError):
            timestamp = UNKNOWN_TIMESTAMP

        return cls(
            id=text("id"),
            timestamp=timestamp,
            event_type=text("event_type"),
            action=text("action"),
            hash=text("hash"),
            previous_entry_hash=text("previous_entry_hash"),
            unreadable=error,
        )


def load_entry(raw: Union[bytes, str]) -> AuditLogEntry:
    """
    Decode one stored record.

    Never raises for bad content: a record that is not JSON, lacks a
    required key or holds a malformed value comes back as an unreadable
    entry for the verifier to report.
    """
    rec = None
    try:
        rec = json.loads(raw)
        return AuditLogEntry.from_record(rec)
    except (ValueError, KeyError, TypeError) as e:
        return AuditLogEntry.from_unreadable(rec, f"{type(e).__name__}: {e}")


def canonical_entry_bytes(entry: AuditLogEntry) -> bytes:
    """
    Canonical encoding of an entry's non-hash fields (hashing input).

    Raises:
        EncodingError: If details (or any field) is not representable
    """
    return canonical_json_bytes(entry.hashable_fields())


def check_user_id(value: Any) -> Optional[int]:
    """Actor user ids are integers; bools are rejected even though they are ints."""
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, int):
        raise EncodingError(f"actor user id must be an integer, got {type(value).__name__}")
    return value


def _event_type_value(event_type: Union[AuditEventType, str]) -> str:
    if isinstance(event_type, AuditEventType):
        return event_type.value
    return event_type


def _load_event_type(value: str) -> Union[AuditEventType, str]:
    # A stored value outside the enumeration is kept verbatim so the
    # verifier reports the entry as tampered instead of failing the read.
    try:
        return AuditEventType.parse(value)
    except InvalidEventType:
        return value
