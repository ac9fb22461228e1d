"""Tests for Ed25519 identities, addresses and transaction signing."""

from __future__ import annotations

import stat
from pathlib import Path

import pytest

from didslot.contract.identity import (
    Identity,
    decode_address,
    encode_address,
    verify_signature,
)
from didslot.contract.transactions import Payment, sign_transaction


class TestAddress:
    def test_round_trip(self, identity: Identity):
        assert decode_address(identity.address) == identity.public_key

    def test_address_is_unpadded_base32(self, identity: Identity):
        assert len(identity.address) == 58
        assert "=" not in identity.address

    def test_checksum_mismatch_rejected(self, identity: Identity):
        other = Identity.generate()
        forged = identity.address[:-6] + other.address[-6:]
        with pytest.raises(ValueError):
            decode_address(forged)

    def test_malformed_rejected(self):
        with pytest.raises(ValueError):
            decode_address("not an address!")

    def test_wrong_key_length_rejected(self):
        with pytest.raises(ValueError, match="32 bytes"):
            encode_address(b"short")


class TestIdentity:
    def test_sign_and_verify(self, identity: Identity):
        signature = identity.sign(b"payload")
        assert verify_signature(identity.public_key, b"payload", signature)
        assert not verify_signature(identity.public_key, b"tampered", signature)

    def test_seed_round_trip(self, identity: Identity):
        rebuilt = Identity.from_seed_hex(identity.seed_hex)
        assert rebuilt.address == identity.address

    def test_save_and_load(self, identity: Identity, tmp_path: Path):
        path = tmp_path / "keys" / "uploader.key"
        identity.save(path)
        assert Identity.load(path).address == identity.address
        assert stat.S_IMODE(path.stat().st_mode) == 0o600

    def test_repr_hides_seed(self, identity: Identity):
        assert identity.seed_hex not in repr(identity)


class TestSigning:
    def _payment(self, sender: str) -> Payment:
        return Payment(
            sender=sender,
            receiver=sender,
            amount=1,
            fee=1000,
            first_valid=1,
            last_valid=10,
            genesis_id="localnet-v1",
        )

    def test_signature_covers_payload(self, identity: Identity):
        stxn = sign_transaction(self._payment(identity.address), identity)
        assert verify_signature(identity.public_key, stxn.txn.signing_bytes(), stxn.signature)

    def test_cannot_sign_for_other_sender(self, identity: Identity):
        other = Identity.generate()
        with pytest.raises(ValueError, match="cannot sign"):
            sign_transaction(self._payment(other.address), identity)

    def test_tx_id_is_deterministic(self, identity: Identity):
        a = sign_transaction(self._payment(identity.address), identity)
        b = sign_transaction(self._payment(identity.address), identity)
        assert a.tx_id == b.tx_id
        assert len(a.tx_id) == 52
