"""
Audit storage and hash chain linking.

This module provides:
- AuditStore: Abstract interface for entry persistence
- MemoryAuditStore: Process-local list storage
- FileAuditStore: File-based append-only storage (JSONL)
- S3AuditStore: S3-based append-only storage (careaudit.log.s3_store)
- ChainHasher: Hash computation and chain tip lookup
"""

from .store import AuditStore, InsertResult, full_range
from .memory_store import MemoryAuditStore
from .file_store import FileAuditStore
from .integrity import (
    DEFAULT_HASH_ALGORITHM,
    GENESIS_HASH,
    SUPPORTED_ALGORITHMS,
    ChainHasher,
    compute_hash,
)

__all__ = [
    "AuditStore",
    "InsertResult",
    "full_range",
    "MemoryAuditStore",
    "FileAuditStore",
    "DEFAULT_HASH_ALGORITHM",
    "GENESIS_HASH",
    "SUPPORTED_ALGORITHMS",
    "ChainHasher",
    "compute_hash",
]
