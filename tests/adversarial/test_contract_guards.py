"""Adversarial tests: the hosted contract rejects malformed or hostile groups.

Groups are built by hand here, bypassing ``SlotContractClient``, to
simulate a client that does not play by the rules.  Every rejection must
leave balances, metadata and slot contents untouched.
"""

from __future__ import annotations

import pytest

from didslot.contract.client import SlotContractClient
from didslot.contract.identity import Identity
from didslot.contract.local_network import LocalNetwork, check_status_transition
from didslot.contract.network import ContractRejection
from didslot.contract.transactions import (
    MAX_GROUP_SIZE,
    AppCall,
    Payment,
    SignedTransaction,
    _TxnBase,
    sign_transaction,
)
from didslot.core.batching import encode_slot_key, slot_references
from didslot.core.cost import estimate_upload_cost
from didslot.models.upload import SlotRef, UploadStatus


def _call(network: LocalNetwork, signer: Identity, app_id: int, method: str, **fields) -> AppCall:
    params = network.suggested_params()
    fields.setdefault("identity", signer.public_key)
    return AppCall(
        sender=signer.address,
        fee=params.fee,
        first_valid=params.first_valid,
        last_valid=params.last_valid,
        genesis_id=params.genesis_id,
        app_id=app_id,
        method=method,
        **fields,
    )


def _payment(network: LocalNetwork, identity: Identity, receiver: str, amount: int, **overrides) -> Payment:
    params = network.suggested_params()
    values = dict(
        sender=identity.address,
        receiver=receiver,
        amount=amount,
        fee=params.fee,
        first_valid=params.first_valid,
        last_valid=params.last_valid,
        genesis_id=params.genesis_id,
    )
    values.update(overrides)
    return Payment(**values)


def _start_group(network, identity, app_id, *, amount, slot_count, last_slot_size, receiver=None):
    receiver = receiver or network.application_address(app_id)
    payment = _payment(network, identity, receiver, amount)
    call = _call(
        network, identity, app_id, "start_upload",
        slot_count=slot_count,
        last_slot_size=last_slot_size,
        slot_refs=(SlotRef(app_id=app_id, name=identity.public_key),),
    )
    return [sign_transaction(payment, identity), sign_transaction(call, identity)]


def _reason(network: LocalNetwork, group: list[SignedTransaction]) -> str:
    with pytest.raises(ContractRejection) as exc_info:
        network.submit_group(group)
    return exc_info.value.reason


@pytest.fixture
def started(network: LocalNetwork, app_id: int, funded_identity: Identity, small_limits):
    """Identity holding a started 5000-byte reservation (slots [0, 2))."""
    SlotContractClient(network, app_id, funded_identity).start_upload(
        estimate_upload_cost(5000, small_limits)
    )
    return funded_identity


class TestRentPayment:
    def test_underpayment_by_one_rejected(self, network, app_id, funded_identity, small_limits):
        estimate = estimate_upload_cost(5000, small_limits)
        group = _start_group(
            network, funded_identity, app_id,
            amount=estimate.total_cost - 1, slot_count=2, last_slot_size=904,
        )
        assert _reason(network, group) == "insufficient_payment"
        assert network.read_metadata(app_id, funded_identity.public_key) is None

    def test_exact_estimate_accepted(self, network, app_id, funded_identity, small_limits):
        estimate = estimate_upload_cost(5000, small_limits)
        network.submit_group(_start_group(
            network, funded_identity, app_id,
            amount=estimate.total_cost, slot_count=2, last_slot_size=904,
        ))
        meta = network.read_metadata(app_id, funded_identity.public_key)
        assert meta is not None and meta.status is UploadStatus.STARTED

    def test_cheap_layout_for_large_claim_rejected(self, network, app_id, funded_identity, small_limits):
        # paying for one small slot while claiming three full ones
        cheap = estimate_upload_cost(10, small_limits)
        group = _start_group(
            network, funded_identity, app_id,
            amount=cheap.total_cost, slot_count=3, last_slot_size=4096,
        )
        assert _reason(network, group) == "insufficient_payment"

    def test_payment_to_wrong_receiver(self, network, app_id, funded_identity, small_limits):
        estimate = estimate_upload_cost(5000, small_limits)
        group = _start_group(
            network, funded_identity, app_id,
            amount=estimate.total_cost, slot_count=2, last_slot_size=904,
            receiver=funded_identity.address,
        )
        assert _reason(network, group) == "missing_payment"

    def test_start_without_payment(self, network, app_id, funded_identity):
        call = _call(
            network, funded_identity, app_id, "start_upload",
            slot_count=1, last_slot_size=10,
            slot_refs=(SlotRef(app_id=app_id, name=funded_identity.public_key),),
        )
        assert _reason(network, [sign_transaction(call, funded_identity)]) == "missing_payment"

    @pytest.mark.parametrize("slot_count,last_slot_size", [(0, 10), (1, 0), (1, 4097)])
    def test_bad_layout(self, network, app_id, funded_identity, slot_count, last_slot_size):
        group = _start_group(
            network, funded_identity, app_id,
            amount=10**7, slot_count=slot_count, last_slot_size=last_slot_size,
        )
        assert _reason(network, group) == "bad_layout"


class TestProtocolChecks:
    def test_forged_signature(self, network, app_id, funded_identity):
        attacker = Identity.generate()
        call = _call(network, funded_identity, app_id, "finish_upload")
        forged = SignedTransaction(txn=call, signature=attacker.sign(call.signing_bytes()))
        assert _reason(network, [forged]) == "bad_signature"

    def test_tampered_after_signing(self, network, app_id, funded_identity):
        payment = _payment(network, funded_identity, network.application_address(app_id), 10)
        signed = sign_transaction(payment, funded_identity)
        tampered = SignedTransaction(
            txn=payment.model_copy(update={"amount": 10_000}), signature=signed.signature
        )
        assert _reason(network, [tampered]) == "bad_signature"

    def test_replay_rejected(self, network, app_id, funded_identity):
        payment = _payment(network, funded_identity, network.application_address(app_id), 10)
        group = [sign_transaction(payment, funded_identity)]
        network.submit_group(group)
        balance = network.account_balance(funded_identity.address)
        assert _reason(network, group) == "duplicate_txn"
        assert network.account_balance(funded_identity.address) == balance

    def test_wrong_network(self, network, app_id, funded_identity):
        payment = _payment(
            network, funded_identity, funded_identity.address, 1, genesis_id="mainnet-v1"
        )
        assert _reason(network, [sign_transaction(payment, funded_identity)]) == "wrong_network"

    def test_expired(self, network, app_id, funded_identity):
        payment = _payment(network, funded_identity, funded_identity.address, 1, first_valid=0, last_valid=0)
        assert _reason(network, [sign_transaction(payment, funded_identity)]) == "expired"

    def test_fee_too_low(self, network, app_id, funded_identity):
        payment = _payment(network, funded_identity, funded_identity.address, 1, fee=1)
        assert _reason(network, [sign_transaction(payment, funded_identity)]) == "fee_too_low"

    def test_oversized_group(self, network, app_id, funded_identity):
        group = [
            sign_transaction(_payment(network, funded_identity, funded_identity.address, i), funded_identity)
            for i in range(MAX_GROUP_SIZE + 1)
        ]
        assert _reason(network, group) == "bad_group"

    def test_empty_group(self, network):
        assert _reason(network, []) == "bad_group"

    def test_unsupported_transaction_type(self, network, app_id, funded_identity):
        class KeyRegistration(_TxnBase):
            type: str = "keyreg"

        params = network.suggested_params()
        txn = KeyRegistration(
            sender=funded_identity.address,
            fee=params.fee,
            first_valid=params.first_valid,
            last_valid=params.last_valid,
            genesis_id=params.genesis_id,
        )
        balance = network.account_balance(funded_identity.address)
        signed = SignedTransaction.model_construct(
            txn=txn, signature=funded_identity.sign(txn.signing_bytes())
        )
        assert _reason(network, [signed]) == "bad_txn_type"
        assert network.account_balance(funded_identity.address) == balance


class TestWriteGuards:
    def _write(self, network, signer, app_id, slot_index, offset, data, refs=None, **fields):
        if refs is None:
            refs = slot_references(app_id, slot_index, signer.public_key, network.limits)
        call = _call(
            network, signer, app_id, "upload",
            slot_index=slot_index, offset=offset, data=data, slot_refs=refs, **fields,
        )
        return [sign_transaction(call, signer)]

    def test_write_before_start(self, network, app_id, funded_identity):
        group = self._write(network, funded_identity, app_id, 0, 0, b"x")
        assert _reason(network, group) == "not_started"

    def test_write_outside_range(self, network, app_id, started):
        group = self._write(network, started, app_id, 2, 0, b"x")
        assert _reason(network, group) == "out_of_range"

    def test_write_into_other_identity_range(self, network, app_id, started, small_limits):
        attacker = Identity.generate()
        network.fund(attacker.address, 10**9)
        SlotContractClient(network, app_id, attacker).start_upload(
            estimate_upload_cost(100, small_limits)
        )
        # victim owns [0, 2); attacker owns [2, 3)
        group = self._write(network, attacker, app_id, 0, 0, b"evil")
        assert _reason(network, group) == "out_of_range"
        assert network.read_slot(app_id, 0) == bytes(4096)

    def test_acting_as_another_identity(self, network, app_id, started):
        attacker = Identity.generate()
        network.fund(attacker.address, 10**9)
        group = self._write(
            network, attacker, app_id, 0, 0, b"evil", identity=started.public_key,
            refs=slot_references(app_id, 0, started.public_key, network.limits),
        )
        assert _reason(network, group) == "unauthorized"

    def test_overflowing_last_slot(self, network, app_id, started):
        group = self._write(network, started, app_id, 1, 900, b"12345")
        assert _reason(network, group) == "overflow"

    def test_oversized_call(self, network, app_id, started, small_limits):
        group = self._write(network, started, app_id, 0, 0, b"x" * (small_limits.bytes_per_call + 1))
        assert _reason(network, group) == "oversized_call"

    def test_missing_data_slot_reference(self, network, app_id, started):
        refs = (SlotRef(app_id=app_id, name=started.public_key),)
        group = self._write(network, started, app_id, 0, 0, b"x", refs=refs)
        assert _reason(network, group) == "missing_reference"

    def test_too_many_references(self, network, app_id, started):
        refs = slot_references(app_id, 0, started.public_key, network.limits) + (
            SlotRef(app_id=app_id, name=encode_slot_key(0)),
        )
        group = self._write(network, started, app_id, 0, 0, b"x", refs=refs)
        assert _reason(network, group) == "too_many_references"

    def test_partial_group_is_not_applied(self, network, app_id, started):
        good = self._write(network, started, app_id, 0, 0, b"good")
        bad = self._write(network, started, app_id, 0, 4094, b"overflow")
        assert _reason(network, good + bad) == "overflow"

        meta = network.read_metadata(app_id, started.public_key)
        assert meta is not None and meta.uploaded_bytes == 0
        assert network.read_slot(app_id, 0) == bytes(4096)

    def test_rewrite_does_not_inflate_progress(self, network, app_id, started):
        network.submit_group(self._write(network, started, app_id, 0, 0, b"abcd"))
        network.submit_group(self._write(network, started, app_id, 0, 2, b"cdef"))
        meta = network.read_metadata(app_id, started.public_key)
        assert meta is not None and meta.uploaded_bytes == 6
        assert network.read_slot(app_id, 0)[:6] == b"abcdef"

    def test_inflated_progress_cannot_finish(self, network, app_id, started):
        for _ in range(3):
            network.submit_group(self._write(network, started, app_id, 0, 0, b"x" * 512))
        with pytest.raises(ContractRejection) as exc_info:
            SlotContractClient(network, app_id, started).finish_upload()
        assert exc_info.value.reason == "incomplete"


class TestStatusTransitions:
    def test_forward_moves_allowed(self):
        assert check_status_transition(UploadStatus.NOT_STARTED, UploadStatus.STARTED) == 1
        assert check_status_transition(UploadStatus.STARTED, UploadStatus.FINISHED) == 2

    @pytest.mark.parametrize(
        "current,target",
        [
            (UploadStatus.NOT_STARTED, UploadStatus.FINISHED),
            (UploadStatus.STARTED, UploadStatus.NOT_STARTED),
            (UploadStatus.FINISHED, UploadStatus.STARTED),
            (UploadStatus.FINISHED, UploadStatus.NOT_STARTED),
            (UploadStatus.FINISHED, UploadStatus.FINISHED),
        ],
    )
    def test_backward_or_skipping_moves_rejected(self, current, target):
        with pytest.raises(ContractRejection) as exc_info:
            check_status_transition(current, target)
        assert exc_info.value.reason == "bad_transition"

    def test_finished_record_cannot_be_finished_again(self, network, app_id, started, small_limits):
        client = SlotContractClient(network, app_id, started)
        for offset in range(0, 4096, 512):
            network.submit_group(self._write_slot(network, started, app_id, 0, offset, 512))
        network.submit_group(self._write_slot(network, started, app_id, 1, 0, 512))
        network.submit_group(self._write_slot(network, started, app_id, 1, 512, 392))
        client.finish_upload()
        assert client.read_metadata().status is UploadStatus.FINISHED

        with pytest.raises(ContractRejection) as exc_info:
            client.finish_upload()
        assert exc_info.value.reason == "finished"
        assert client.read_metadata().status is UploadStatus.FINISHED

    @staticmethod
    def _write_slot(network, signer, app_id, slot_index, offset, size):
        call = _call(
            network, signer, app_id, "upload",
            slot_index=slot_index, offset=offset, data=b"d" * size,
            slot_refs=slot_references(app_id, slot_index, signer.public_key, network.limits),
        )
        return [sign_transaction(call, signer)]
