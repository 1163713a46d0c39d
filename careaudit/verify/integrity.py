"""
Audit chain integrity verification.

Replays a slice of the chain in append order and checks every entry twice:

- content: the stored hash must equal the hash recomputed from the
  entry's own fields and its own previous_entry_hash
- link: previous_entry_hash must equal the stored hash of the entry
  before it in append order

The checks are independent. A row whose fields were edited and whose
hash was recomputed by the attacker passes the content check but breaks
the link from its successor; a deleted or reordered row breaks links
only. A stored record that no longer decodes fails the content check,
and the replay continues from whatever hash it still carries.
Verification never stops at the first break.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Tuple, Union

from ..core.errors import EncodingError
from ..core.entry import AuditLogEntry
from ..log.integrity import GENESIS_HASH, ChainHasher
from ..log.store import AuditStore
from ..metrics import track_verification
from ..query import TimeRange

logger = logging.getLogger(__name__)

REASON_CONTENT = "content"
REASON_LINK = "link"

# Recomputed hash reported for records that cannot be re-encoded or decoded
UNENCODABLE = "<unencodable>"
UNREADABLE = "<unreadable>"


@dataclass(frozen=True)
class ChainBreak:
    """
    One failed check.

    Fields:
        entry_id: Entry that failed
        position: Index within the verified slice (append order)
        reason: "content" or "link"
        expected: Hash the check expected
        actual: Hash found in storage
    """
    entry_id: str
    position: int
    reason: str
    expected: str
    actual: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "entry_id": self.entry_id,
            "position": self.position,
            "reason": self.reason,
            "expected": self.expected,
            "actual": self.actual,
        }


@dataclass
class VerificationResult:
    """
    Outcome of a verification run. An invalid chain is a normal result.

    Fields:
        valid: No break found
        broken_entry_ids: Ids of entries with at least one break, in append order
        checked: Number of entries replayed
        breaks: Every individual failed check
    """
    valid: bool
    broken_entry_ids: List[str] = field(default_factory=list)
    checked: int = 0
    breaks: List[ChainBreak] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "valid": self.valid,
            "broken_entry_ids": list(self.broken_entry_ids),
            "checked": self.checked,
            "breaks": [b.to_dict() for b in self.breaks],
        }


def verify_entries(
    entries: List[AuditLogEntry], hasher: ChainHasher, expected_previous: str
) -> VerificationResult:
    """
    Replay entries (append order) starting from expected_previous.

    Args:
        entries: Contiguous chain slice
        hasher: Shared hasher (same algorithm as the writer)
        expected_previous: Hash the first entry should link to

    Returns:
        VerificationResult listing every break
    """
    breaks: List[ChainBreak] = []
    broken: List[str] = []

    for position, entry in enumerate(entries):
        entry_broken = False

        if entry.unreadable is not None:
            recomputed = UNREADABLE
        else:
            try:
                recomputed = hasher.hash_entry(entry)
            except EncodingError:
                recomputed = UNENCODABLE
        if recomputed != entry.hash:
            breaks.append(
                ChainBreak(entry.id, position, REASON_CONTENT, expected=recomputed, actual=entry.hash)
            )
            entry_broken = True

        if entry.previous_entry_hash != expected_previous:
            breaks.append(
                ChainBreak(
                    entry.id,
                    position,
                    REASON_LINK,
                    expected=expected_previous,
                    actual=entry.previous_entry_hash,
                )
            )
            entry_broken = True

        if entry_broken and entry.id not in broken:
            broken.append(entry.id)

        # Continue from the stored hash so later breaks are still reported
        expected_previous = entry.hash

    return VerificationResult(
        valid=not broken,
        broken_entry_ids=broken,
        checked=len(entries),
        breaks=breaks,
    )


class IntegrityVerifier:
    """Checks stored chain slices against the hash chain invariants."""

    def __init__(self, store: AuditStore, hasher: ChainHasher) -> None:
        self.store = store
        self.hasher = hasher

    def _report(self, scope: str, result: VerificationResult) -> VerificationResult:
        track_verification(len(result.broken_entry_ids))
        if result.valid:
            logger.info(f"Audit chain intact ({scope}, {result.checked} entries)")
        else:
            logger.warning(
                f"Audit chain BROKEN ({scope}): {len(result.broken_entry_ids)} of "
                f"{result.checked} entries fail verification",
                extra={"broken_entry_ids": result.broken_entry_ids},
            )
        return result

    async def verify(self, time_range: Union[TimeRange, Tuple[datetime, datetime]]) -> VerificationResult:
        """
        Verify the chain slice overlapping time_range.

        The first entry's own previous_entry_hash seeds the link check;
        widen the range (or use verify_chain) to check back to genesis.

        Raises:
            InvalidRange: If start > end
            StorageError: If the store read fails
        """
        tr = TimeRange.coerce(time_range)
        entries = await self.store.select_span(tr.start, tr.end)
        if not entries:
            return self._report("range", VerificationResult(valid=True))
        result = verify_entries(entries, self.hasher, entries[0].previous_entry_hash)
        return self._report("range", result)

    async def verify_chain(self) -> VerificationResult:
        """
        Verify the whole chain from genesis.

        Unlike verify(), the first entry must link to GENESIS_HASH, so a
        deleted first entry is detected.
        """
        entries = await self.store.select_all()
        return self._report("full chain", verify_entries(entries, self.hasher, GENESIS_HASH))
