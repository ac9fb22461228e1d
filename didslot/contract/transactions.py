"""Transaction models and signing.

Transactions are signed over their canonical JSON bytes (bytes fields
rendered as base64).  A signed transaction's id is derived from the same
payload, so it is known before submission.
"""

from __future__ import annotations

from typing import Literal, Union

from pydantic import BaseModel, ConfigDict, Field

from didslot.contract.identity import Identity
from didslot.core.hasher import canonical_json_bytes, transaction_id
from didslot.models.upload import SlotRef

# Atomic group size cap of the network.
MAX_GROUP_SIZE = 16


class SuggestedParams(BaseModel):
    """Current network fee and validity window."""

    model_config = ConfigDict(frozen=True)

    fee: int = 1000
    first_valid: int
    last_valid: int
    genesis_id: str


class _TxnBase(BaseModel):
    model_config = ConfigDict(frozen=True, ser_json_bytes="base64")

    sender: str
    fee: int
    first_valid: int
    last_valid: int
    genesis_id: str
    note: str = ""

    def signing_payload(self) -> dict:
        return self.model_dump(mode="json")

    def signing_bytes(self) -> bytes:
        return canonical_json_bytes(self.signing_payload())


class Payment(_TxnBase):
    type: Literal["pay"] = "pay"
    receiver: str
    amount: int = Field(ge=0)


class AppCall(_TxnBase):
    type: Literal["appl"] = "appl"
    app_id: int  # 0 creates a new application
    method: str
    identity: bytes = b""
    slot_index: int | None = None
    offset: int | None = None
    data: bytes | None = None
    slot_count: int | None = None
    last_slot_size: int | None = None
    slot_refs: tuple[SlotRef, ...] = ()


Transaction = Union[Payment, AppCall]


class SignedTransaction(BaseModel):
    """A transaction plus the sender's signature over its signing bytes."""

    model_config = ConfigDict(frozen=True)

    txn: Transaction = Field(discriminator="type")
    signature: bytes

    @property
    def tx_id(self) -> str:
        return transaction_id(self.txn.signing_payload())


def sign_transaction(txn: Transaction, identity: Identity) -> SignedTransaction:
    """Sign ``txn`` with ``identity``; the identity must be the sender."""
    if txn.sender != identity.address:
        raise ValueError(
            f"Identity {identity.address} cannot sign for sender {txn.sender}"
        )
    return SignedTransaction(txn=txn, signature=identity.sign(txn.signing_bytes()))


class GroupConfirmation(BaseModel):
    """Confirmed atomic group: tx ids in group order."""

    model_config = ConfigDict(frozen=True)

    tx_ids: list[str]
    confirmed_round: int
    created_app_id: int | None = None
