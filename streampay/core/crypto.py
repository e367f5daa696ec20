"""
streampay/core/crypto.py

Ed25519 signing for event log entries.

The ledger operator holds the private key. Auditors only need the public key
embedded in every envelope to check that the log was not altered.

Wire forms:
    public key : 64-char lowercase hex of the raw 32-byte key
    signature  : base64url of the raw 64-byte signature, '=' padding stripped
"""

import base64
import binascii
from pathlib import Path
from typing import Optional

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric.ed25519 import (
    Ed25519PrivateKey,
    Ed25519PublicKey,
)

_RAW_KEY_BYTES = 32
_RAW_SIG_BYTES = 64


def _b64url(raw: bytes) -> str:
    return base64.urlsafe_b64encode(raw).decode("ascii").rstrip("=")


def _unb64url(text: str) -> bytes:
    return base64.urlsafe_b64decode(text + "=" * (-len(text) % 4))


def _public_key_from_hex(public_key_hex: str) -> Optional[Ed25519PublicKey]:
    if not isinstance(public_key_hex, str) or len(public_key_hex) != 2 * _RAW_KEY_BYTES:
        return None
    try:
        return Ed25519PublicKey.from_public_bytes(bytes.fromhex(public_key_hex))
    except ValueError:
        return None


class Ed25519KeyManager:
    """
    Holds the signer key of one event log.

        key = Ed25519KeyManager.load_or_generate(".streampay/keys/ledger.pem")
        sig = key.sign(envelope.canonical_bytes_for_signing())
        Ed25519KeyManager.verify_detached(data, sig, key.public_key_hex)
    """

    def __init__(self, private_key: Ed25519PrivateKey) -> None:
        self._private_key = private_key
        raw_public = private_key.public_key().public_bytes(
            serialization.Encoding.Raw,
            serialization.PublicFormat.Raw,
        )
        self._public_key_hex = raw_public.hex()

    @classmethod
    def generate(cls) -> "Ed25519KeyManager":
        return cls(Ed25519PrivateKey.generate())

    @classmethod
    def from_file(cls, path: Path) -> "Ed25519KeyManager":
        """
        Read an unencrypted PEM private key.

        Raises:
            FileNotFoundError: nothing at path
            ValueError: the file is not an Ed25519 PEM private key
        """
        path = Path(path)
        if not path.is_file():
            raise FileNotFoundError(f"Signing key not found: {path}")
        try:
            loaded = serialization.load_pem_private_key(path.read_bytes(), password=None)
        except (ValueError, TypeError) as exc:
            raise ValueError(f"Unreadable signing key {path}: {exc}") from exc
        if not isinstance(loaded, Ed25519PrivateKey):
            raise ValueError(f"Signing key {path} is not an Ed25519 key")
        return cls(loaded)

    @classmethod
    def load_or_generate(cls, path: Path) -> "Ed25519KeyManager":
        """Load the key at path, or generate one and save it there."""
        path = Path(path)
        if path.exists():
            return cls.from_file(path)
        key = cls.generate()
        key.save(path)
        return key

    @property
    def public_key_hex(self) -> str:
        return self._public_key_hex

    def sign(self, data: bytes) -> str:
        """Sign already-canonicalized bytes."""
        return _b64url(self._private_key.sign(data))

    @staticmethod
    def verify_detached(data: bytes, signature_b64: str, public_key_hex: str) -> bool:
        """
        Check signature_b64 over data against a hex public key.

        Any malformed key or signature counts as invalid; this never raises.
        """
        public_key = _public_key_from_hex(public_key_hex)
        if public_key is None or not isinstance(signature_b64, str):
            return False
        try:
            raw_sig = _unb64url(signature_b64)
        except (binascii.Error, ValueError):
            return False
        if len(raw_sig) != _RAW_SIG_BYTES:
            return False
        try:
            public_key.verify(raw_sig, data)
        except InvalidSignature:
            return False
        return True

    def save(self, path: Path) -> None:
        """Write the private key as unencrypted PKCS#8 PEM, creating parent dirs."""
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(self._private_key.private_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PrivateFormat.PKCS8,
            encryption_algorithm=serialization.NoEncryption(),
        ))

    def __repr__(self) -> str:
        return f"Ed25519KeyManager(public_key={self._public_key_hex[:16]}...)"
