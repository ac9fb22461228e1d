"""Canonical hashing helpers for signing, transaction ids and the journal.

Everything that gets signed or chained is serialized through
``canonical_json_bytes`` so signatures and hashes are reproducible.
"""

from __future__ import annotations

import base64
import hashlib
import json
from typing import Any


def canonical_json_bytes(obj: Any) -> bytes:
    """Produce canonical JSON bytes: deterministic, sorted, compact.

    - sorted keys
    - no whitespace separators (",", ":")
    - ensure_ascii=True
    - UTF-8 encoding
    """
    return json.dumps(
        obj, sort_keys=True, separators=(",", ":"), ensure_ascii=True
    ).encode("utf-8")


def sha256_hex(data: bytes) -> str:
    """Return the SHA-256 hex digest of raw bytes."""
    return hashlib.sha256(data).hexdigest()


def document_digest(document: bytes) -> str:
    """Content address of a raw document, ``sha256:<hex>``."""
    return f"sha256:{sha256_hex(document)}"


def transaction_id(signed_payload: dict[str, Any]) -> str:
    """Unpadded base32 of SHA-256 over a signed transaction's canonical bytes."""
    digest = hashlib.sha256(b"TX" + canonical_json_bytes(signed_payload)).digest()
    return base64.b32encode(digest).decode("ascii").rstrip("=")


def compute_entry_hash(entry_dict: dict[str, Any]) -> str:
    """SHA-256 of a journal entry, excluding the entry_hash field itself."""
    d = {k: v for k, v in entry_dict.items() if k != "entry_hash"}
    return sha256_hex(canonical_json_bytes(d))
