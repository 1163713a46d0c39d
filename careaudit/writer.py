"""
Audit log writer: the append-only ingestion path.

One writer per process. Appends are serialized by an asyncio.Lock held
from the tip read to the insert; across processes the store's
compare-and-append rejects stale tips and the writer retries against the
fresh tip.
"""

import asyncio
import logging
from dataclasses import replace
from datetime import datetime
from typing import Any, Callable, Dict, Optional, Union

from .core.canonical import canonicalize
from .core.clock import SystemClock
from .core.entry import (
    Actor,
    AuditLogEntry,
    Provenance,
    Resource,
    canonical_entry_bytes,
    check_user_id,
)
from .core.errors import ChainConflictError, EncodingError, InvalidEventType, StorageError
from .core.events import AuditEventType
from .core.ids import new_entry_id
from .log.integrity import GENESIS_HASH, ChainHasher
from .log.store import AuditStore
from .metrics import track_append, track_append_duration, track_append_failure

logger = logging.getLogger(__name__)

Redactor = Callable[[Dict[str, Any]], Dict[str, Any]]


class AuditLogWriter:
    """
    Appends hash-chained entries to an AuditStore.

    Args:
        store: Append-only storage collaborator
        hasher: Shared ChainHasher (default: sha256 over the same store)
        clock: Object with now() -> aware datetime (default: SystemClock)
        id_factory: Callable returning a new entry id (default: UUID4)
        redactor: Optional hook applied to details before canonicalization
        max_retries: Attempts before giving up on tip conflicts
    """

    def __init__(
        self,
        store: AuditStore,
        hasher: Optional[ChainHasher] = None,
        clock=None,
        id_factory: Callable[[], str] = new_entry_id,
        redactor: Optional[Redactor] = None,
        max_retries: int = 3,
    ) -> None:
        if max_retries < 1:
            raise ValueError("max_retries must be >= 1")
        self.store = store
        self.hasher = hasher or ChainHasher(store)
        self.clock = clock or SystemClock()
        self.id_factory = id_factory
        self.redactor = redactor
        self.max_retries = max_retries
        self._lock = asyncio.Lock()
        self._last_timestamp: Optional[datetime] = None

    async def initialize(self) -> str:
        """
        Re-derive the chain tip from storage at startup.

        The tip is only logged, never cached: every append reads it again.
        """
        tip = await self.hasher.current_tip()
        if tip == GENESIS_HASH:
            logger.info("Audit writer initialized on an empty chain")
        else:
            logger.info("Audit writer initialized", extra={"chain_tip": tip})
        return tip

    def _next_timestamp(self) -> datetime:
        # Non-decreasing within this writer even if the wall clock steps back
        ts = self.clock.now()
        if self._last_timestamp is not None and ts < self._last_timestamp:
            ts = self._last_timestamp
        return ts

    def _prepare_details(self, details: Optional[Dict[str, Any]]) -> Dict[str, Any]:
        if details is None:
            return {}
        if not isinstance(details, dict):
            raise EncodingError(f"details must be a dict, got {type(details).__name__}")
        if self.redactor is not None:
            details = self.redactor(details)
        return canonicalize(details)

    def _build_entry(
        self,
        event_type: AuditEventType,
        actor: Actor,
        provenance: Provenance,
        resource: Resource,
        action: Optional[str],
        details: Dict[str, Any],
        previous_hash: str,
    ) -> AuditLogEntry:
        draft = AuditLogEntry(
            id=self.id_factory(),
            timestamp=self._next_timestamp(),
            event_type=event_type,
            actor_user_id=actor.user_id,
            actor_username=actor.username,
            source_ip=provenance.ip_address,
            user_agent=provenance.user_agent,
            resource_type=resource.type,
            resource_id=None if resource.id is None else str(resource.id),
            action=action or event_type.value,
            details=details,
            hash="",
            previous_entry_hash=previous_hash,
        )
        digest = self.hasher.compute_hash(canonical_entry_bytes(draft), previous_hash)
        return replace(draft, hash=digest)

    async def append(
        self,
        event_type: Union[AuditEventType, str],
        actor: Optional[Actor] = None,
        provenance: Optional[Provenance] = None,
        resource: Optional[Resource] = None,
        action: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> AuditLogEntry:
        """
        Record one audit event.

        Returns:
            The persisted entry

        Raises:
            InvalidEventType: Unknown event type (nothing written)
            EncodingError: Details or actor id not representable (nothing written)
            StorageError: Persist failed; the event is NOT recorded
            ChainConflictError: Lost the tip race max_retries times
        """
        try:
            etype = AuditEventType.parse(event_type)
            actor = actor or Actor()
            check_user_id(actor.user_id)
            clean_details = self._prepare_details(details)
        except (InvalidEventType, EncodingError) as e:
            track_append_failure("invalid")
            logger.error(f"Rejected audit event {event_type!r}: {e}")
            raise

        provenance = provenance or Provenance()
        resource = resource or Resource()

        with track_append_duration():
            async with self._lock:
                try:
                    return await self._append_locked(
                        etype, actor, provenance, resource, action, clean_details
                    )
                except ChainConflictError:
                    track_append_failure("conflict")
                    raise
                except StorageError as e:
                    track_append_failure("storage")
                    logger.error(f"Audit event {etype.value} NOT recorded: {e}")
                    raise

    async def _append_locked(
        self,
        etype: AuditEventType,
        actor: Actor,
        provenance: Provenance,
        resource: Resource,
        action: Optional[str],
        details: Dict[str, Any],
    ) -> AuditLogEntry:
        for attempt in range(1, self.max_retries + 1):
            tip = await self.hasher.current_tip()
            entry = self._build_entry(etype, actor, provenance, resource, action, details, tip)
            result = await self.store.insert(entry, expected_prev_hash=tip)
            if result.committed:
                self._last_timestamp = entry.timestamp
                track_append(etype.value)
                logger.debug(
                    f"Appended audit entry {entry.id} ({etype.value})",
                    extra={"entry_id": entry.id, "seq": result.seq},
                )
                return entry
            logger.warning(
                f"Chain tip moved during append (attempt {attempt}/{self.max_retries}): "
                f"expected {tip[:16] or '<genesis>'}, "
                f"observed {(result.observed_prev_hash or '')[:16] or '<genesis>'}"
            )
        message = f"Audit event {etype.value} NOT recorded: chain tip kept moving after {self.max_retries} attempts"
        logger.error(message)
        raise ChainConflictError(message)
