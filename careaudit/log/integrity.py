"""
Hash chain linking.

Implements tamper-evident logging using cryptographic hash chains.
Each entry's hash covers its canonical fields plus the previous entry's
hash, forming an immutable chain. Writer and verifier both hash through
this module so the two can never drift apart.
"""

import hashlib
from typing import TYPE_CHECKING

from ..core.entry import AuditLogEntry, canonical_entry_bytes

if TYPE_CHECKING:
    from .store import AuditStore

# previous_entry_hash of the first entry in a chain
GENESIS_HASH = ""

DEFAULT_HASH_ALGORITHM = "sha256"

# 256-bit class or stronger; mixing algorithms within one chain breaks it
SUPPORTED_ALGORITHMS = frozenset(
    [
        "sha256",
        "sha384",
        "sha512",
        "sha3_256",
        "sha3_384",
        "sha3_512",
        "blake2b",
        "blake2s",
    ]
)


def check_algorithm(algorithm: str) -> str:
    """
    Raises:
        ValueError: If algorithm is not an accepted digest
    """
    name = algorithm.strip().lower().replace("-", "_")
    if name not in SUPPORTED_ALGORITHMS:
        raise ValueError(
            f"unsupported hash algorithm: {algorithm} "
            f"(expected one of {', '.join(sorted(SUPPORTED_ALGORITHMS))})"
        )
    return name


def compute_hash(canonical: bytes, previous_hash: str, algorithm: str = DEFAULT_HASH_ALGORITHM) -> str:
    """
    Compute chain-link hash.

    Hash input: canonical_bytes || previous_hash (UTF-8)

    Args:
        canonical: Canonical encoding of the entry's non-hash fields
        previous_hash: Hash of previous entry (or GENESIS_HASH)
        algorithm: hashlib algorithm name

    Returns:
        Hex digest
    """
    h = hashlib.new(algorithm)
    h.update(canonical)
    h.update(previous_hash.encode("utf-8"))
    return h.hexdigest()


class ChainHasher:
    """
    Hashes entries and locates the chain tip.

    The tip is always read from storage; nothing here caches it.
    """

    def __init__(self, store: "AuditStore", algorithm: str = DEFAULT_HASH_ALGORITHM) -> None:
        self.store = store
        self.algorithm = check_algorithm(algorithm)

    def compute_hash(self, canonical: bytes, previous_hash: str) -> str:
        return compute_hash(canonical, previous_hash, self.algorithm)

    def hash_entry(self, entry: AuditLogEntry) -> str:
        """
        Recompute an entry's hash from its own fields and its own
        previous_entry_hash (as stored).

        Raises:
            EncodingError: If the entry's fields are not representable
        """
        return self.compute_hash(canonical_entry_bytes(entry), entry.previous_entry_hash)

    async def current_tip(self) -> str:
        """
        Hash of the last entry in append order, or GENESIS_HASH if empty.

        Raises:
            StorageError: If the store read fails
        """
        last = await self.store.select_last()
        if last is None:
            return GENESIS_HASH
        return last.hash
