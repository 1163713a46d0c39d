"""
Checkpoint system for signed chain-tip attestations.

Provides:
- Checkpoint model with canonical signing payload
- Ed25519 signing and verification
- Checkpoint storage management
- Truncation and rewrite detection against a live store
"""

from .model import CHECKPOINT_VERSION, ChainCheckpoint
from .signer import SigningKey, VerifyingKey, ensure_keypair, get_default_key_path
from .store import CheckpointStore
from .verify import (
    VerificationResult,
    create_checkpoint,
    verify_checkpoint,
    verify_full,
    verify_signature,
)

__all__ = [
    "CHECKPOINT_VERSION",
    "ChainCheckpoint",
    "SigningKey",
    "VerifyingKey",
    "ensure_keypair",
    "get_default_key_path",
    "CheckpointStore",
    "VerificationResult",
    "create_checkpoint",
    "verify_checkpoint",
    "verify_full",
    "verify_signature",
]
