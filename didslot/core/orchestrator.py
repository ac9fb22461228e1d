"""Upload orchestrator: drives estimate, start, upload and finish.

The orchestrator owns no upload state.  Every operation re-reads the
identity's metadata record from the contract, rehydrates an
``UploadSession`` from it, checks the session guard for the operation,
and only then submits.  Local planning (cost, partition, batches) is
recomputed per call and validated before any network traffic.

Batches are submitted strictly in order, one atomic group at a time, so
the contract's written-byte count always describes a prefix of the
document.  ``upload`` uses that prefix to skip confirmed batches when
resuming.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable, Iterator
from contextlib import contextmanager

from didslot.contract.client import SlotContractClient
from didslot.contract.identity import Identity
from didslot.contract.network import ContractRejection, NetworkClient, NetworkError
from didslot.core.batching import plan_slot_batches
from didslot.core.cost import estimate_upload_cost, slot_layout
from didslot.core.errors import (
    AlreadyStartedError,
    IdentityUnavailableError,
    IncompleteUploadError,
    InsufficientFundsError,
    InvalidStateTransitionError,
    PreconditionFailure,
    SessionBusyError,
    TransmissionFailure,
    UploadError,
)
from didslot.core.hasher import document_digest
from didslot.core.partition import partition_document, verify_partition
from didslot.core.session_machine import UploadSession
from didslot.core.upload_journal import UploadJournal
from didslot.models.limits import DEFAULT_LIMITS, ContractLimits
from didslot.models.session import SessionState
from didslot.models.upload import (
    Batch,
    BatchReceipt,
    CallReceipt,
    CostEstimate,
    PublishReceipt,
    UploadMetadata,
    UploadReceipt,
    UploadStatus,
)

logger = logging.getLogger(__name__)

# A start group carries the rent payment plus the start call.
_START_GROUP_SIZE = 2


class UploadContext:
    """Explicit per-call session context.

    Parameters
    ----------
    network:
        Backend satisfying ``NetworkClient``.
    app_id:
        Deployed application id.
    identity:
        Signer and address.  ``None`` means no wallet is available; every
        operation that needs one raises ``IdentityUnavailableError``.
    """

    def __init__(
        self, network: NetworkClient, app_id: int, identity: Identity | None
    ) -> None:
        self.network = network
        self.app_id = app_id
        self.identity = identity

    def require_identity(self) -> Identity:
        if self.identity is None:
            raise IdentityUnavailableError("No signer or address available for this session")
        return self.identity


class UploadOrchestrator:
    """Coordinates slot uploads against the storage contract.

    Parameters
    ----------
    limits:
        Contract constants.  Must match the deployed contract.
    journal:
        Optional audit journal receiving every session transition.
    wait_rounds:
        Confirmation rounds passed to the network for each group.
    """

    def __init__(
        self,
        limits: ContractLimits = DEFAULT_LIMITS,
        *,
        journal: UploadJournal | None = None,
        wait_rounds: int = 3,
    ) -> None:
        self.limits = limits
        self.journal = journal
        self.wait_rounds = wait_rounds
        self._in_flight: set[tuple[int, str]] = set()
        self._in_flight_guard = threading.Lock()

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _client(self, ctx: UploadContext, identity: Identity) -> SlotContractClient:
        return SlotContractClient(
            ctx.network, ctx.app_id, identity, wait_rounds=self.wait_rounds
        )

    @contextmanager
    def _exclusive(self, ctx: UploadContext, identity: Identity) -> Iterator[None]:
        """Reject reentrant mutating calls for the same identity."""
        key = (ctx.app_id, identity.address)
        with self._in_flight_guard:
            if key in self._in_flight:
                raise SessionBusyError(
                    f"Another upload call is in flight for {identity.address} on app {ctx.app_id}"
                )
            self._in_flight.add(key)
        try:
            yield
        finally:
            with self._in_flight_guard:
                self._in_flight.discard(key)

    def _session(self, ctx: UploadContext, identity: Identity, metadata: UploadMetadata) -> UploadSession:
        return UploadSession.rehydrate(
            ctx.app_id, identity.address, metadata, journal=self.journal
        )

    @staticmethod
    def _require_document(document: bytes) -> bytes:
        document = bytes(document)
        if not document:
            raise PreconditionFailure("Cannot upload an empty document")
        return document

    def _check_confirmed_prefix(
        self, client: SlotContractClient, plan: list[tuple[int, Batch]], confirmed_prefix: int
    ) -> None:
        """Raise unless the bytes already written match the batches about to be skipped."""
        slots: dict[int, bytes] = {}
        for document_end, batch in plan:
            if document_end > confirmed_prefix:
                break
            if batch.slot_index not in slots:
                slots[batch.slot_index] = client.read_slot(batch.slot_index)
            written = slots[batch.slot_index][batch.offset:batch.end]
            if written != b"".join(chunk.data for chunk in batch.chunks):
                raise PreconditionFailure(
                    f"Slot {batch.slot_index} batch {batch.batch_index} already holds different "
                    f"bytes than this document; upload with resume disabled to overwrite them"
                )

    def _translate_rejection(
        self, exc: ContractRejection, ctx: UploadContext, identity: Identity, *, required: int = 0
    ) -> UploadError:
        metadata = self._client(ctx, identity).read_metadata()
        if exc.reason == "already_started":
            return AlreadyStartedError(str(exc), current=metadata.status)
        if exc.reason in ("not_started", "finished"):
            return InvalidStateTransitionError(str(exc), current=metadata.status)
        if exc.reason == "incomplete":
            return IncompleteUploadError(
                str(exc),
                uploaded=metadata.uploaded_bytes,
                expected=metadata.expected_bytes(self.limits.max_slot_size),
            )
        if exc.reason == "insufficient_payment":
            return PreconditionFailure(
                f"Estimated rent does not cover the contract's slot rent; the configured "
                f"limits do not match the deployed contract ({exc})"
            )
        if exc.reason == "overspend":
            return InsufficientFundsError(
                required, ctx.network.account_balance(identity.address)
            )
        return TransmissionFailure(str(exc))

    # ------------------------------------------------------------------
    # Read-only operations
    # ------------------------------------------------------------------

    def estimate(self, document: bytes) -> CostEstimate:
        """Rent needed to store ``document``.  No network access."""
        return estimate_upload_cost(len(document), self.limits)

    def get_status(self, ctx: UploadContext) -> UploadMetadata:
        """Authoritative, side-effect free metadata read."""
        identity = ctx.require_identity()
        return self._client(ctx, identity).read_metadata()

    def plan_batches(
        self, document: bytes, ctx: UploadContext, metadata: UploadMetadata
    ) -> list[tuple[int, Batch]]:
        """Partition, validate and batch ``document`` against a reservation.

        Returns ``(document_offset_of_batch_end, batch)`` pairs in
        submission order.
        """
        identity = ctx.require_identity()
        document = self._require_document(document)

        segments = partition_document(document, self.limits)
        verify_partition(document, segments, self.limits)

        slot_count, last_slot_size = slot_layout(len(document), self.limits)
        if metadata.slot_count != slot_count or metadata.last_slot_size != last_slot_size:
            raise PreconditionFailure(
                f"Document layout ({slot_count} slots, last {last_slot_size} bytes) does not "
                f"match the reservation ({metadata.slot_count} slots, last "
                f"{metadata.last_slot_size} bytes)"
            )

        plan: list[tuple[int, Batch]] = []
        for segment in segments:
            for batch in plan_slot_batches(
                segment,
                app_id=ctx.app_id,
                slot_index=metadata.start_slot + segment.position,
                identity_key=identity.public_key,
                limits=self.limits,
            ):
                plan.append((segment.start + batch.end, batch))
        return plan

    def fetch_document(self, ctx: UploadContext) -> bytes:
        """Read a finished upload back from its slots."""
        identity = ctx.require_identity()
        client = self._client(ctx, identity)
        metadata = client.read_metadata()
        if metadata.status is not UploadStatus.FINISHED:
            raise InvalidStateTransitionError(
                f"Document is not finished (status {metadata.status.value})",
                current=metadata.status,
            )
        slots = [
            client.read_slot(index)
            for index in range(metadata.start_slot, metadata.end_slot)
        ]
        return b"".join(slots)

    # ------------------------------------------------------------------
    # Mutating operations
    # ------------------------------------------------------------------

    def deploy_contract(self, ctx: UploadContext) -> int:
        """Create a new storage application and return its id."""
        identity = ctx.require_identity()
        try:
            return SlotContractClient(
                ctx.network, 0, identity, wait_rounds=self.wait_rounds
            ).create_application()
        except NetworkError as exc:
            raise TransmissionFailure(f"Application creation failed: {exc}") from exc

    def begin(self, document: bytes, ctx: UploadContext) -> CallReceipt:
        """Pay for and reserve the slots ``document`` needs.

        Raises
        ------
        AlreadyStartedError
            If the identity's record is not ``NotStarted``.
        InsufficientFundsError
            If the balance cannot cover rent plus fees.
        """
        identity = ctx.require_identity()
        document = self._require_document(document)
        digest = document_digest(document)

        with self._exclusive(ctx, identity):
            client = self._client(ctx, identity)
            metadata = client.read_metadata()
            if metadata.status is not UploadStatus.NOT_STARTED:
                raise AlreadyStartedError(
                    f"Upload for {identity.address} is already {metadata.status.value}; "
                    f"resume instead of restarting",
                    current=metadata.status,
                )
            session = self._session(ctx, identity, metadata)

            estimate = self.estimate(document)
            session.transition(
                SessionState.COST_COMPUTED,
                operation="begin",
                reason=f"{estimate.slot_count} slots, cost {estimate.total_cost}",
                document_digest=digest,
            )

            fee = ctx.network.suggested_params().fee
            required = estimate.total_cost + _START_GROUP_SIZE * fee
            available = ctx.network.account_balance(identity.address)
            if available < required:
                session.fail(operation="begin", reason="insufficient funds")
                raise InsufficientFundsError(required, available)

            try:
                confirmation = client.start_upload(estimate)
            except ContractRejection as exc:
                session.fail(operation="begin", reason=str(exc))
                raise self._translate_rejection(exc, ctx, identity, required=required) from exc
            except NetworkError as exc:
                session.fail(operation="begin", reason=str(exc))
                raise TransmissionFailure(f"Start submission failed: {exc}") from exc

            metadata = client.read_metadata()
            session.transition(
                SessionState.STARTED,
                operation="begin",
                tx_ids=confirmation.tx_ids,
                document_digest=digest,
            )

        logger.info(
            "Reserved slots [%d, %d) for %s on app %d (cost %d)",
            metadata.start_slot,
            metadata.end_slot,
            identity.address,
            ctx.app_id,
            estimate.total_cost,
        )
        return CallReceipt(tx_ids=confirmation.tx_ids, metadata=metadata, estimate=estimate)

    def upload(
        self,
        document: bytes,
        ctx: UploadContext,
        *,
        resume: bool = True,
        cancel_event: threading.Event | None = None,
        on_batch: Callable[[BatchReceipt], None] | None = None,
    ) -> UploadReceipt:
        """Stream every batch of ``document`` into the reserved slots.

        Parameters
        ----------
        resume:
            Skip batches already covered by the contract's written-byte
            prefix.  The skipped bytes are compared with what the slots
            already hold first.  With ``False`` every batch is rewritten.
        cancel_event:
            Checked between batches; when set the pass stops and the
            receipt is marked ``cancelled``.
        on_batch:
            Called with each confirmed batch's receipt.

        Raises
        ------
        InvalidStateTransitionError
            If the upload was never started or is already finished.
        PreconditionFailure
            If resuming over a prefix written from a different document.
        TransmissionFailure
            If a batch fails; carries the slot and batch index.
        """
        identity = ctx.require_identity()
        document = self._require_document(document)
        digest = document_digest(document)

        with self._exclusive(ctx, identity):
            client = self._client(ctx, identity)
            metadata = client.read_metadata()
            if metadata.status is not UploadStatus.STARTED:
                raise InvalidStateTransitionError(
                    f"Cannot upload while status is {metadata.status.value}",
                    current=metadata.status,
                )
            session = self._session(ctx, identity, metadata)
            session.require(SessionState.STARTED, SessionState.UPLOADING, operation="upload")

            plan = self.plan_batches(document, ctx, metadata)
            confirmed_prefix = metadata.uploaded_bytes if resume else 0
            if confirmed_prefix:
                self._check_confirmed_prefix(client, plan, confirmed_prefix)

            receipts: list[BatchReceipt] = []
            skipped = 0
            for document_end, batch in plan:
                if document_end <= confirmed_prefix:
                    skipped += 1
                    continue

                if cancel_event is not None and cancel_event.is_set():
                    logger.info(
                        "Upload for %s cancelled before slot %d batch %d",
                        identity.address,
                        batch.slot_index,
                        batch.batch_index,
                    )
                    return UploadReceipt(
                        app_id=ctx.app_id,
                        address=identity.address,
                        batches=receipts,
                        skipped_batches=skipped,
                        cancelled=True,
                    )

                try:
                    confirmation = client.upload_batch(batch)
                except NetworkError as exc:
                    reason = f"slot {batch.slot_index} batch {batch.batch_index}: {exc}"
                    session.fail(operation="upload", reason=reason)
                    logger.error("Batch submission failed, %s", reason)
                    raise TransmissionFailure(
                        f"Batch submission failed at {reason}",
                        slot_index=batch.slot_index,
                        batch_index=batch.batch_index,
                        tx_ids_confirmed=[t for r in receipts for t in r.tx_ids],
                    ) from exc

                receipt = BatchReceipt(
                    slot_index=batch.slot_index,
                    batch_index=batch.batch_index,
                    offset=batch.offset,
                    op_count=batch.op_count,
                    byte_count=batch.size,
                    tx_ids=confirmation.tx_ids,
                )
                receipts.append(receipt)
                session.transition(
                    SessionState.UPLOADING,
                    operation="upload",
                    reason=f"slot {batch.slot_index} batch {batch.batch_index}",
                    tx_ids=confirmation.tx_ids,
                    document_digest=digest,
                )
                if on_batch is not None:
                    on_batch(receipt)

        logger.info(
            "Uploaded %d batches (%d skipped) for %s on app %d",
            len(receipts),
            skipped,
            identity.address,
            ctx.app_id,
        )
        return UploadReceipt(
            app_id=ctx.app_id,
            address=identity.address,
            batches=receipts,
            skipped_batches=skipped,
        )

    def finish(self, ctx: UploadContext) -> CallReceipt:
        """Ask the contract to validate completeness and finalize.

        Raises
        ------
        IncompleteUploadError
            If the contract reports missing bytes; status stays ``Started``.
        """
        identity = ctx.require_identity()

        with self._exclusive(ctx, identity):
            client = self._client(ctx, identity)
            metadata = client.read_metadata()
            if metadata.status is not UploadStatus.STARTED:
                raise InvalidStateTransitionError(
                    f"Cannot finish while status is {metadata.status.value}",
                    current=metadata.status,
                )
            session = self._session(ctx, identity, metadata)

            try:
                confirmation = client.finish_upload()
            except ContractRejection as exc:
                session.fail(operation="finish", reason=str(exc))
                raise self._translate_rejection(exc, ctx, identity) from exc
            except NetworkError as exc:
                session.fail(operation="finish", reason=str(exc))
                raise TransmissionFailure(f"Finish submission failed: {exc}") from exc

            metadata = client.read_metadata()
            session.transition(
                SessionState.FINISHED, operation="finish", tx_ids=confirmation.tx_ids
            )

        logger.info("Finished upload for %s on app %d", identity.address, ctx.app_id)
        return CallReceipt(tx_ids=confirmation.tx_ids, metadata=metadata)

    def publish(
        self,
        document: bytes,
        ctx: UploadContext,
        *,
        cancel_event: threading.Event | None = None,
        on_batch: Callable[[BatchReceipt], None] | None = None,
    ) -> PublishReceipt:
        """Run whatever remains of begin, upload, finish for ``document``."""
        document = self._require_document(document)
        metadata = self.get_status(ctx)
        begin_receipt = upload_receipt = finish_receipt = None

        if metadata.status is UploadStatus.FINISHED:
            logger.info("Upload already finished; nothing to publish")
            return PublishReceipt(metadata=metadata)

        if metadata.status is UploadStatus.NOT_STARTED:
            begin_receipt = self.begin(document, ctx)

        upload_receipt = self.upload(
            document, ctx, cancel_event=cancel_event, on_batch=on_batch
        )
        if upload_receipt.cancelled:
            return PublishReceipt(
                metadata=self.get_status(ctx), begin=begin_receipt, upload=upload_receipt
            )

        finish_receipt = self.finish(ctx)
        return PublishReceipt(
            metadata=finish_receipt.metadata,
            begin=begin_receipt,
            upload=upload_receipt,
            finish=finish_receipt,
        )
