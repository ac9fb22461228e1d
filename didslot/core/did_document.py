"""Build the initial DID document for an identity anchored in an application.

The identifier is ``did:algo:<network>:app:<app_id>:<public key hex>``.
"""

from __future__ import annotations

from typing import Any

from didslot.core.hasher import canonical_json_bytes
from didslot.models.did import DidDocument, ServiceEntry, VerificationMethod


def did_identifier(network: str, app_id: int, public_key: bytes) -> str:
    return f"did:algo:{network}:app:{app_id}:{public_key.hex()}"


def build_did_document(
    network: str,
    app_id: int,
    public_key: bytes,
    services: dict[str, dict[str, Any]] | None = None,
) -> DidDocument:
    """Create a DID document with a master Ed25519 key.

    ``services`` maps a fragment name to ``(type, endpoint)`` data, e.g.
    ``{"email": {"type": "UserEmail", "endpoint": {"email": "a@b.org"}}}``.
    """
    did = did_identifier(network, app_id, public_key)
    master = f"{did}#master"
    service_entries = [
        ServiceEntry(
            id=f"{did}#{fragment}",
            type=entry["type"],
            service_endpoint=dict(entry.get("endpoint", {})),
        )
        for fragment, entry in (services or {}).items()
    ]
    return DidDocument(
        id=did,
        verification_method=[VerificationMethod(id=master, controller=did)],
        authentication=[master],
        service=service_entries,
    )


def encode_document(document: DidDocument) -> bytes:
    """Serialize a DID document to the compact JSON bytes that get uploaded."""
    return canonical_json_bytes(document.model_dump(mode="json", by_alias=True))
