"""
Ed25519 signing for checkpoints.

Key management:
- Dev mode: ~/.careaudit/keys/
- Prod mode: mounted secret (CAREAUDIT_KEY_PATH)
"""

import base64
import binascii
import hashlib
import os
from pathlib import Path
from typing import Optional, Tuple

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric.ed25519 import (
    Ed25519PrivateKey,
    Ed25519PublicKey,
)

from ..core.canonical import canonical_json_bytes


def _pubkey_id(public_key: Ed25519PublicKey) -> str:
    public_pem = public_key.public_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PublicFormat.SubjectPublicKeyInfo,
    )
    return hashlib.sha256(public_pem).hexdigest()[:16]


class SigningKey:
    """
    Ed25519 signing key wrapper.

    Provides:
    - Key generation
    - Key loading from file
    - Signing with canonical payload
    - Public key derivation
    """

    def __init__(self, private_key: Ed25519PrivateKey):
        self.private_key = private_key
        self.public_key = private_key.public_key()

    @classmethod
    def generate(cls) -> "SigningKey":
        """Generate new Ed25519 keypair."""
        return cls(Ed25519PrivateKey.generate())

    @classmethod
    def load_from_file(cls, path: str) -> "SigningKey":
        """
        Load private key from PEM file.

        Raises:
            FileNotFoundError: If key file doesn't exist
            ValueError: If key format is invalid
        """
        with open(path, "rb") as f:
            private_key = serialization.load_pem_private_key(f.read(), password=None)

        if not isinstance(private_key, Ed25519PrivateKey):
            raise ValueError("Key file is not Ed25519 private key")

        return cls(private_key)

    def save_to_file(self, path: str, public_path: Optional[str] = None) -> None:
        """
        Save private key to PEM file (mode 0600).

        Args:
            path: Path to save private key
            public_path: Optional path to save public key
        """
        os.makedirs(os.path.dirname(path) or ".", exist_ok=True)

        private_pem = self.private_key.private_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PrivateFormat.PKCS8,
            encryption_algorithm=serialization.NoEncryption(),
        )
        fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
        with os.fdopen(fd, "wb") as f:
            f.write(private_pem)

        if public_path:
            with open(public_path, "wb") as f:
                f.write(self.get_public_key_pem())

    def sign_base64(self, payload: dict) -> str:
        """
        Sign payload (canonicalized) and return base64-encoded signature.
        """
        signature_bytes = self.private_key.sign(canonical_json_bytes(payload))
        return base64.b64encode(signature_bytes).decode("ascii")

    def get_pubkey_id(self) -> str:
        """Public key identifier (SHA-256 of PEM, first 16 hex chars)."""
        return _pubkey_id(self.public_key)

    def get_public_key_pem(self) -> bytes:
        return self.public_key.public_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PublicFormat.SubjectPublicKeyInfo,
        )


class VerifyingKey:
    """
    Ed25519 verifying key (public key only).

    Used for signature verification without private key access.
    """

    def __init__(self, public_key: Ed25519PublicKey):
        self.public_key = public_key

    @classmethod
    def load_from_file(cls, path: str) -> "VerifyingKey":
        with open(path, "rb") as f:
            public_key = serialization.load_pem_public_key(f.read())

        if not isinstance(public_key, Ed25519PublicKey):
            raise ValueError("Key file is not Ed25519 public key")

        return cls(public_key)

    @classmethod
    def from_signing_key(cls, signing_key: SigningKey) -> "VerifyingKey":
        return cls(signing_key.public_key)

    def verify_base64(self, payload: dict, signature_b64: str) -> bool:
        """
        Verify base64-encoded signature on payload.

        Returns:
            True if signature is valid, False otherwise
        """
        try:
            signature_bytes = base64.b64decode(signature_b64, validate=True)
            self.public_key.verify(signature_bytes, canonical_json_bytes(payload))
            return True
        except (InvalidSignature, binascii.Error, ValueError):
            return False

    def get_pubkey_id(self) -> str:
        return _pubkey_id(self.public_key)


def get_default_key_path() -> Path:
    """Default key path (~/.careaudit/keys/checkpoint_ed25519)."""
    return Path.home() / ".careaudit" / "keys" / "checkpoint_ed25519"


def ensure_keypair(key_path: Optional[str] = None) -> Tuple[str, str]:
    """
    Ensure keypair exists (generate if missing).

    Returns:
        (private_key_path, public_key_path) tuple
    """
    if key_path is None:
        key_path = str(get_default_key_path())

    public_key_path = key_path + ".pub"

    if not os.path.exists(key_path):
        SigningKey.generate().save_to_file(key_path, public_key_path)

    return key_path, public_key_path
