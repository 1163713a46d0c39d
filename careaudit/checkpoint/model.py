"""
Checkpoint model for signed chain-tip attestations.

A checkpoint captures:
- How many entries the chain held
- The hash and id of the entry at the tip
- The digest algorithm of the chain
- An Ed25519 signature over all of the above

Hash chains alone cannot detect a truncated tail; a checkpoint signed
earlier can.
"""

from dataclasses import dataclass, field
from typing import Any, Dict
import json


CHECKPOINT_VERSION = 1


@dataclass
class ChainCheckpoint:
    """
    Signed chain-tip record.

    Fields:
        version: Format version (currently 1)
        entry_count: Number of entries in the chain when signed
        tip_hash: Hash of the last entry (GENESIS_HASH if empty)
        tip_entry_id: Id of the last entry ("" if empty)
        hash_algorithm: Digest algorithm of the chain
        created_at: UTC timestamp string of checkpoint creation
        pubkey_id: SHA-256 hash of public key (first 16 chars)
        signature: Ed25519 signature (base64)
        meta: Optional metadata (not signed)
    """
    version: int
    entry_count: int
    tip_hash: str
    tip_entry_id: str
    hash_algorithm: str
    created_at: str
    pubkey_id: str
    signature: str
    meta: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "version": self.version,
            "entry_count": self.entry_count,
            "tip_hash": self.tip_hash,
            "tip_entry_id": self.tip_entry_id,
            "hash_algorithm": self.hash_algorithm,
            "created_at": self.created_at,
            "pubkey_id": self.pubkey_id,
            "signature": self.signature,
            "meta": self.meta,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ChainCheckpoint":
        return cls(
            version=data["version"],
            entry_count=data["entry_count"],
            tip_hash=data["tip_hash"],
            tip_entry_id=data["tip_entry_id"],
            hash_algorithm=data["hash_algorithm"],
            created_at=data["created_at"],
            pubkey_id=data["pubkey_id"],
            signature=data["signature"],
            meta=data.get("meta", {}),
        )

    def to_json(self) -> str:
        """Serialize to JSON string (for file storage)."""
        return json.dumps(self.to_dict(), indent=2)

    @classmethod
    def from_json(cls, json_str: str) -> "ChainCheckpoint":
        return cls.from_dict(json.loads(json_str))

    def signing_payload(self) -> Dict[str, Any]:
        """
        Get payload for signing (excludes signature and meta).

        This is the canonical representation that gets signed.
        """
        return {
            "version": self.version,
            "entry_count": self.entry_count,
            "tip_hash": self.tip_hash,
            "tip_entry_id": self.tip_entry_id,
            "hash_algorithm": self.hash_algorithm,
            "created_at": self.created_at,
            "pubkey_id": self.pubkey_id,
        }
