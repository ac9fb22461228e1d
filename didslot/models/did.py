"""W3C DID document model for identities anchored in a slot contract.

The uploader treats the serialized document as opaque bytes; this model
only exists so a first document can be produced for a fresh identity.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field

DID_CONTEXTS: list[str] = [
    "https://www.w3.org/ns/did/v1",
    "https://w3id.org/security/suites/ed25519-2020/v1",
    "https://w3id.org/security/suites/x25519-2020/v1",
]


class VerificationMethod(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    type: str = "Ed25519VerificationKey2020"
    controller: str


class ServiceEntry(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    id: str
    type: str
    service_endpoint: dict[str, Any] = Field(alias="serviceEndpoint")


class DidDocument(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    context: list[str] = Field(
        default_factory=lambda: list(DID_CONTEXTS), alias="@context"
    )
    id: str
    verification_method: list[VerificationMethod] = Field(alias="verificationMethod")
    authentication: list[str]
    service: list[ServiceEntry] = []
