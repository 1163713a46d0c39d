"""
In-memory audit store.

Used by tests and by deployments that only need a process-local chain.
"""

from typing import List, Optional

from ..core.entry import AuditLogEntry
from .integrity import GENESIS_HASH
from .store import AuditStore, InsertResult


class MemoryAuditStore(AuditStore):
    """
    List-backed append-only store.

    Every method completes without awaiting, so each call is atomic with
    respect to other tasks on the event loop.
    """

    def __init__(self) -> None:
        self._entries: List[AuditLogEntry] = []

    def _last_hash(self) -> str:
        return self._entries[-1].hash if self._entries else GENESIS_HASH

    async def insert(
        self, entry: AuditLogEntry, expected_prev_hash: Optional[str] = None
    ) -> InsertResult:
        last_hash = self._last_hash()
        if expected_prev_hash is not None and expected_prev_hash != last_hash:
            return InsertResult(
                entry=entry,
                seq=None,
                committed=False,
                conflict=True,
                observed_prev_hash=last_hash,
            )
        self._entries.append(entry)
        return InsertResult(
            entry=entry,
            seq=len(self._entries) - 1,
            committed=True,
            conflict=False,
            observed_prev_hash=last_hash,
        )

    async def select_last(self) -> Optional[AuditLogEntry]:
        return self._entries[-1] if self._entries else None

    async def select_all(self) -> List[AuditLogEntry]:
        return list(self._entries)

    async def count(self) -> int:
        return len(self._entries)
