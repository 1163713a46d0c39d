"""
Checkpoint creation and verification.

Verification levels:
- signature: Fast signature-only verification
- full: Signature + attested tip still present + prefix re-verified from genesis
"""

import logging
from dataclasses import dataclass
from typing import Optional

from ..core.clock import SystemClock
from ..core.entry import format_timestamp
from ..core.errors import IntegrityError
from ..log.integrity import GENESIS_HASH, ChainHasher
from ..log.store import AuditStore
from ..metrics import track_checkpoint_failure
from ..verify.integrity import verify_entries
from .model import CHECKPOINT_VERSION, ChainCheckpoint
from .signer import SigningKey, VerifyingKey

logger = logging.getLogger(__name__)


@dataclass
class VerificationResult:
    """
    Result of checkpoint verification.

    Fields:
        valid: Overall validity (all checks passed)
        signature_valid: Signature verification passed
        tip_valid: Entry at the attested position matches the checkpoint
        chain_valid: Chain prefix up to the tip verifies from genesis
        error: Error message if verification failed
    """
    valid: bool
    signature_valid: bool = False
    tip_valid: bool = False
    chain_valid: bool = False
    error: Optional[str] = None


async def create_checkpoint(
    store: AuditStore,
    hasher: ChainHasher,
    signing_key: SigningKey,
    clock=None,
) -> ChainCheckpoint:
    """
    Sign the current chain tip.

    The whole chain is verified first; a broken chain is never attested.

    Raises:
        IntegrityError: If the chain does not verify
        StorageError: If the store read fails
    """
    clock = clock or SystemClock()
    entries = await store.select_all()
    result = verify_entries(entries, hasher, GENESIS_HASH)
    if not result.valid:
        logger.error(
            f"Refusing to checkpoint broken chain: {len(result.broken_entry_ids)} broken entries",
            extra={"broken_entry_ids": result.broken_entry_ids},
        )
        raise IntegrityError(
            f"Chain does not verify ({len(result.broken_entry_ids)} broken entries); "
            "refusing to sign"
        )

    tip = entries[-1] if entries else None
    checkpoint = ChainCheckpoint(
        version=CHECKPOINT_VERSION,
        entry_count=len(entries),
        tip_hash=tip.hash if tip else GENESIS_HASH,
        tip_entry_id=tip.id if tip else "",
        hash_algorithm=hasher.algorithm,
        created_at=format_timestamp(clock.now()),
        pubkey_id=signing_key.get_pubkey_id(),
        signature="",
    )
    checkpoint.signature = signing_key.sign_base64(checkpoint.signing_payload())

    logger.info(f"Checkpoint created at entry_count={checkpoint.entry_count}")
    return checkpoint


def verify_signature(checkpoint: ChainCheckpoint, verifying_key: VerifyingKey) -> VerificationResult:
    """
    Verify checkpoint signature only (fast mode).

    Returns:
        VerificationResult with signature_valid set
    """
    expected_pubkey_id = verifying_key.get_pubkey_id()
    if checkpoint.pubkey_id != expected_pubkey_id:
        return VerificationResult(
            valid=False,
            error=f"Public key ID mismatch: expected {expected_pubkey_id}, got {checkpoint.pubkey_id}",
        )

    if not verifying_key.verify_base64(checkpoint.signing_payload(), checkpoint.signature):
        return VerificationResult(valid=False, error="Invalid signature")

    return VerificationResult(valid=True, signature_valid=True)


async def verify_full(
    checkpoint: ChainCheckpoint,
    verifying_key: VerifyingKey,
    store: AuditStore,
    hasher: ChainHasher,
) -> VerificationResult:
    """
    Full checkpoint verification.

    Verifies:
    1. Signature is valid
    2. Checkpoint algorithm matches the hasher
    3. The chain still holds entry_count entries and the entry at that
       position carries the attested id and hash (detects truncation)
    4. The prefix up to the tip verifies from genesis (detects rewrites)
    """
    sig_result = verify_signature(checkpoint, verifying_key)
    if not sig_result.signature_valid:
        return sig_result

    if checkpoint.hash_algorithm != hasher.algorithm:
        return VerificationResult(
            valid=False,
            signature_valid=True,
            error=(
                f"Hash algorithm mismatch: checkpoint uses {checkpoint.hash_algorithm}, "
                f"verifier uses {hasher.algorithm}"
            ),
        )

    entries = await store.select_all()
    count = checkpoint.entry_count

    if len(entries) < count:
        return VerificationResult(
            valid=False,
            signature_valid=True,
            error=f"Chain truncated: checkpoint attests {count} entries, store holds {len(entries)}",
        )

    if count == 0:
        tip_hash, tip_id = GENESIS_HASH, ""
    else:
        tip_hash, tip_id = entries[count - 1].hash, entries[count - 1].id

    if tip_hash != checkpoint.tip_hash or tip_id != checkpoint.tip_entry_id:
        return VerificationResult(
            valid=False,
            signature_valid=True,
            error=(
                f"Tip mismatch at entry {count}: expected {checkpoint.tip_entry_id}/"
                f"{checkpoint.tip_hash}, found {tip_id}/{tip_hash}"
            ),
        )

    prefix = verify_entries(entries[:count], hasher, GENESIS_HASH)
    if not prefix.valid:
        return VerificationResult(
            valid=False,
            signature_valid=True,
            tip_valid=True,
            error=f"Chain prefix broken at entries {prefix.broken_entry_ids}",
        )

    return VerificationResult(valid=True, signature_valid=True, tip_valid=True, chain_valid=True)


async def verify_checkpoint(
    checkpoint: ChainCheckpoint,
    verifying_key: VerifyingKey,
    store: Optional[AuditStore] = None,
    hasher: Optional[ChainHasher] = None,
    mode: str = "signature",
) -> VerificationResult:
    """
    Verify checkpoint with configurable verification level.

    Args:
        checkpoint: Checkpoint to verify
        verifying_key: Public key for verification
        store: Audit store (required for full mode)
        hasher: Chain hasher (required for full mode)
        mode: Verification mode ("signature" or "full")

    Raises:
        ValueError: If mode is invalid or full mode lacks store/hasher
    """
    if mode == "signature":
        result = verify_signature(checkpoint, verifying_key)
    elif mode == "full":
        if store is None or hasher is None:
            raise ValueError("Full verification requires store and hasher")
        result = await verify_full(checkpoint, verifying_key, store, hasher)
    else:
        raise ValueError(f"Invalid verification mode: {mode}")

    if not result.valid:
        track_checkpoint_failure()
        logger.warning(f"Checkpoint verification failed ({mode}): {result.error}")
    return result
