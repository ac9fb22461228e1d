"""Tests for DID document construction and encoding."""

from __future__ import annotations

import json

from didslot.core.did_document import build_did_document, did_identifier, encode_document
from didslot.models.did import DID_CONTEXTS

PUBLIC_KEY = bytes(range(32))


class TestDidDocument:
    def test_identifier_format(self):
        did = did_identifier("testnet", 1001, PUBLIC_KEY)
        assert did == f"did:algo:testnet:app:1001:{PUBLIC_KEY.hex()}"

    def test_master_key(self):
        doc = build_did_document("localnet", 1001, PUBLIC_KEY)
        master = f"{doc.id}#master"
        assert doc.authentication == [master]
        assert doc.verification_method[0].id == master
        assert doc.verification_method[0].controller == doc.id
        assert doc.verification_method[0].type == "Ed25519VerificationKey2020"
        assert doc.service == []

    def test_services(self):
        doc = build_did_document(
            "localnet",
            1001,
            PUBLIC_KEY,
            {"email": {"type": "UserEmail", "endpoint": {"email": "a@b.org"}}},
        )
        (service,) = doc.service
        assert service.id == f"{doc.id}#email"
        assert service.service_endpoint == {"email": "a@b.org"}

    def test_encoding_uses_wire_names(self):
        doc = build_did_document(
            "localnet", 1001, PUBLIC_KEY, {"username": {"type": "UserProfile", "endpoint": {"username": "ada"}}}
        )
        payload = json.loads(encode_document(doc))
        assert payload["@context"] == DID_CONTEXTS
        assert "verificationMethod" in payload
        assert payload["service"][0]["serviceEndpoint"] == {"username": "ada"}

    def test_encoding_is_deterministic(self):
        doc = build_did_document("localnet", 1001, PUBLIC_KEY)
        assert encode_document(doc) == encode_document(doc)
        assert b" " not in encode_document(doc)
