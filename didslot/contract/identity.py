"""Uploader identity: Ed25519 signing via PyNaCl.

An identity is an Ed25519 key pair.  Its 32-byte public key is the
identity key used to index the contract's metadata record; its address
is the unpadded base32 of ``public_key + checksum`` where the checksum is
the last four bytes of ``sha512(public_key)``.
"""

from __future__ import annotations

import base64
import hashlib
import logging
from pathlib import Path

import nacl.signing
from nacl.exceptions import BadSignatureError

logger = logging.getLogger(__name__)

PUBLIC_KEY_LENGTH = 32
_CHECKSUM_LENGTH = 4


def _checksum(public_key: bytes) -> bytes:
    return hashlib.sha512(public_key).digest()[-_CHECKSUM_LENGTH:]


def encode_address(public_key: bytes) -> str:
    """Encode a 32-byte public key as a checksummed address."""
    if len(public_key) != PUBLIC_KEY_LENGTH:
        raise ValueError(
            f"Public key must be {PUBLIC_KEY_LENGTH} bytes, got {len(public_key)}"
        )
    raw = public_key + _checksum(public_key)
    return base64.b32encode(raw).decode("ascii").rstrip("=")


def decode_address(address: str) -> bytes:
    """Return the public key behind ``address``, validating its checksum."""
    padded = address + "=" * (-len(address) % 8)
    try:
        raw = base64.b32decode(padded)
    except ValueError as exc:
        raise ValueError(f"Malformed address {address!r}") from exc
    public_key, checksum = raw[:-_CHECKSUM_LENGTH], raw[-_CHECKSUM_LENGTH:]
    if len(public_key) != PUBLIC_KEY_LENGTH or _checksum(public_key) != checksum:
        raise ValueError(f"Address checksum mismatch for {address!r}")
    return public_key


def verify_signature(public_key: bytes, data: bytes, signature: bytes) -> bool:
    """Return ``True`` if ``signature`` is valid for ``data`` under ``public_key``."""
    try:
        nacl.signing.VerifyKey(public_key).verify(data, signature)
    except (BadSignatureError, ValueError):
        return False
    return True


class Identity:
    """An address plus a signer capable of authorizing transactions.

    Parameters
    ----------
    signing_key:
        The PyNaCl Ed25519 signing key.
    """

    def __init__(self, signing_key: nacl.signing.SigningKey) -> None:
        self._signing_key = signing_key
        self._public_key = signing_key.verify_key.encode()
        self._address = encode_address(self._public_key)

    @classmethod
    def generate(cls) -> Identity:
        return cls(nacl.signing.SigningKey.generate())

    @classmethod
    def from_seed_hex(cls, seed_hex: str) -> Identity:
        """Rebuild an identity from its hex-encoded 32-byte seed."""
        return cls(nacl.signing.SigningKey(bytes.fromhex(seed_hex.strip())))

    @classmethod
    def load(cls, path: Path) -> Identity:
        return cls.from_seed_hex(Path(path).read_text(encoding="utf-8"))

    def save(self, path: Path) -> None:
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(self.seed_hex + "\n", encoding="utf-8")
        path.chmod(0o600)
        logger.info("Saved signing key for %s to %s", self._address, path)

    @property
    def address(self) -> str:
        return self._address

    @property
    def public_key(self) -> bytes:
        return self._public_key

    @property
    def seed_hex(self) -> str:
        return self._signing_key.encode().hex()

    def sign(self, data: bytes) -> bytes:
        """Return the 64-byte Ed25519 signature of ``data``."""
        return self._signing_key.sign(data).signature

    def __repr__(self) -> str:
        return f"Identity(address={self._address!r})"
