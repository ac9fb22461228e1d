"""Typed client for the slot storage contract.

Binds a ``NetworkClient``, an application id and an ``Identity`` and
builds, signs and submits the contract's calls.  It holds no upload
state of its own; every read goes to the network.
"""

from __future__ import annotations

import logging

from didslot.contract.identity import Identity
from didslot.contract.network import NetworkClient, NetworkError
from didslot.contract.transactions import (
    AppCall,
    GroupConfirmation,
    Payment,
    sign_transaction,
)
from didslot.models.upload import Batch, CostEstimate, SlotRef, UploadMetadata

logger = logging.getLogger(__name__)


class SlotContractClient:
    """Builds and submits calls against one deployed application.

    Parameters
    ----------
    network:
        Backend satisfying the ``NetworkClient`` protocol.
    app_id:
        The deployed application id (``0`` only for ``create_application``).
    identity:
        Signer and address used as sender for every call.
    wait_rounds:
        Rounds to wait for confirmation of each group.
    """

    def __init__(
        self,
        network: NetworkClient,
        app_id: int,
        identity: Identity,
        *,
        wait_rounds: int = 3,
    ) -> None:
        self.network = network
        self.app_id = app_id
        self.identity = identity
        self.wait_rounds = wait_rounds

    @property
    def identity_ref(self) -> SlotRef:
        return SlotRef(app_id=self.app_id, name=self.identity.public_key)

    def _call(self, method: str, **fields) -> AppCall:
        params = self.network.suggested_params()
        return AppCall(
            sender=self.identity.address,
            fee=params.fee,
            first_valid=params.first_valid,
            last_valid=params.last_valid,
            genesis_id=params.genesis_id,
            app_id=self.app_id,
            method=method,
            identity=self.identity.public_key,
            **fields,
        )

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def read_metadata(self) -> UploadMetadata:
        """Authoritative metadata read; absent records read as ``NotStarted``."""
        metadata = self.network.read_metadata(self.app_id, self.identity.public_key)
        return metadata if metadata is not None else UploadMetadata.not_started()

    def read_slot(self, slot_index: int) -> bytes:
        return self.network.read_slot(self.app_id, slot_index)

    # ------------------------------------------------------------------
    # Calls
    # ------------------------------------------------------------------

    def create_application(self) -> int:
        """Deploy a new application and return its id."""
        call = self._call("create_application").model_copy(update={"app_id": 0, "identity": b""})
        confirmation = self.network.submit_group(
            [sign_transaction(call, self.identity)], wait_rounds=self.wait_rounds
        )
        if confirmation.created_app_id is None:
            raise NetworkError("Application creation confirmed without an application id")
        logger.info("Deployed application %d", confirmation.created_app_id)
        return confirmation.created_app_id

    def start_upload(self, estimate: CostEstimate) -> GroupConfirmation:
        """Pay the estimated rent and reserve the identity's slot range."""
        params = self.network.suggested_params()
        payment = Payment(
            sender=self.identity.address,
            receiver=self.network.application_address(self.app_id),
            amount=estimate.total_cost,
            fee=params.fee,
            first_valid=params.first_valid,
            last_valid=params.last_valid,
            genesis_id=params.genesis_id,
        )
        call = self._call(
            "start_upload",
            slot_count=estimate.slot_count,
            last_slot_size=estimate.last_slot_size,
            slot_refs=(self.identity_ref,),
        )
        return self.network.submit_group(
            [sign_transaction(payment, self.identity), sign_transaction(call, self.identity)],
            wait_rounds=self.wait_rounds,
        )

    def upload_batch(self, batch: Batch) -> GroupConfirmation:
        """Submit one batch as a single atomic group, one write per chunk."""
        group = []
        for chunk in batch.chunks:
            call = self._call(
                "upload",
                slot_index=batch.slot_index,
                offset=chunk.offset,
                data=chunk.data,
                slot_refs=batch.slot_refs,
            )
            group.append(sign_transaction(call, self.identity))
        return self.network.submit_group(group, wait_rounds=self.wait_rounds)

    def finish_upload(self) -> GroupConfirmation:
        call = self._call("finish_upload", slot_refs=(self.identity_ref,))
        return self.network.submit_group(
            [sign_transaction(call, self.identity)], wait_rounds=self.wait_rounds
        )
