"""
AuditStore abstract interface.

Defines the contract for audit storage implementations.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import List, Optional, Tuple

from ..core.clock import ensure_utc
from ..core.entry import AuditLogEntry

_MIN_TS = datetime.min.replace(tzinfo=timezone.utc)
_MAX_TS = datetime.max.replace(tzinfo=timezone.utc)


@dataclass(frozen=True)
class InsertResult:
    """
    Result of an insert attempt.

    When committed is False and conflict is True, the entry was not written
    because the chain tip moved away from expected_prev_hash.
    """

    entry: AuditLogEntry
    seq: Optional[int]
    committed: bool
    conflict: bool
    observed_prev_hash: Optional[str] = None


class AuditStore(ABC):
    """
    Abstract audit storage interface.

    All implementations must guarantee:
    - Append-only (no updates, no deletes; the interface has neither)
    - Append order is preserved on read
    - Atomic inserts (an entry is fully visible or not at all)
    - Conditional append: insert with expected_prev_hash commits only if
      the current tip still equals it, across every writer of the store
    """

    @abstractmethod
    async def insert(
        self, entry: AuditLogEntry, expected_prev_hash: Optional[str] = None
    ) -> InsertResult:
        """
        Append entry to the log.

        Args:
            entry: Fully hashed entry
            expected_prev_hash: Commit only if the current tip hash equals
                this value (None = unconditional)

        Returns:
            InsertResult with commit/conflict info

        Raises:
            StorageError: If the write fails
        """
        ...

    @abstractmethod
    async def select_last(self) -> Optional[AuditLogEntry]:
        """Last entry in append order, or None if the log is empty."""
        ...

    @abstractmethod
    async def select_all(self) -> List[AuditLogEntry]:
        """Every entry in append order."""
        ...

    async def select_range(self, start: datetime, end: datetime) -> List[AuditLogEntry]:
        """
        Entries with start <= timestamp <= end, in append order.

        Implementations may override with an indexed lookup.
        """
        start, end = ensure_utc(start), ensure_utc(end)
        return [e for e in await self.select_all() if start <= e.timestamp <= end]

    async def select_span(self, start: datetime, end: datetime) -> List[AuditLogEntry]:
        """
        Contiguous append-order slice from the first to the last entry
        whose timestamp falls in [start, end].

        Entries in between are included even if their own timestamp lies
        outside the range (clock adjustments), so the slice is a gapless
        piece of the chain.
        """
        start, end = ensure_utc(start), ensure_utc(end)
        entries = await self.select_all()
        hits = [i for i, e in enumerate(entries) if start <= e.timestamp <= end]
        if not hits:
            return []
        return entries[hits[0] : hits[-1] + 1]

    async def count(self) -> int:
        return len(await self.select_all())


def full_range() -> Tuple[datetime, datetime]:
    """(start, end) covering every representable timestamp."""
    return _MIN_TS, _MAX_TS
