"""
Integrity verification for the audit chain.
"""

from .integrity import (
    REASON_CONTENT,
    REASON_LINK,
    ChainBreak,
    IntegrityVerifier,
    VerificationResult,
    verify_entries,
)

__all__ = [
    "REASON_CONTENT",
    "REASON_LINK",
    "ChainBreak",
    "IntegrityVerifier",
    "VerificationResult",
    "verify_entries",
]
