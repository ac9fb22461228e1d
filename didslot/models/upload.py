"""Upload planning and on-chain metadata models.

Planning models (``CostEstimate``, ``SlotSegment``, ``Chunk``, ``Batch``)
are derived fresh for every upload call and never persisted.
``UploadMetadata`` mirrors the contract-owned per-identity record; the
client only reads it.
"""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class UploadStatus(str, Enum):
    """Contract-side upload status.  Advances forward only."""

    NOT_STARTED = "not_started"
    STARTED = "started"
    FINISHED = "finished"


# Contract-side transitions.  No transition leads back to NOT_STARTED.
VALID_STATUS_TRANSITIONS: dict[UploadStatus, set[UploadStatus]] = {
    UploadStatus.NOT_STARTED: {UploadStatus.STARTED},
    UploadStatus.STARTED: {UploadStatus.FINISHED},
    UploadStatus.FINISHED: set(),  # terminal
}

# Wire encoding of the status byte in the metadata record.
STATUS_CODES: dict[UploadStatus, int] = {
    UploadStatus.NOT_STARTED: 0,
    UploadStatus.STARTED: 1,
    UploadStatus.FINISHED: 2,
}


class CostEstimate(BaseModel):
    """Exact rent required to store a document of a given length."""

    model_config = ConfigDict(frozen=True)

    total_cost: int
    slot_count: int
    last_slot_size: int
    document_length: int


class SlotSegment(BaseModel):
    """A contiguous, slot-sized range of the document."""

    model_config = ConfigDict(frozen=True)

    position: int  # 0-based slot position within the document
    start: int  # byte offset of the segment within the document
    data: bytes

    @property
    def size(self) -> int:
        return len(self.data)


class Chunk(BaseModel):
    """Payload of a single write operation."""

    model_config = ConfigDict(frozen=True)

    index: int  # position within the slot
    offset: int  # byte offset within the slot
    data: bytes


class SlotRef(BaseModel):
    """A storage region an operation is allowed to touch."""

    model_config = ConfigDict(frozen=True, ser_json_bytes="base64")

    app_id: int
    name: bytes


class Batch(BaseModel):
    """Write operations committed atomically against one slot."""

    model_config = ConfigDict(frozen=True)

    slot_index: int  # absolute slot index on the contract
    batch_index: int  # position among this slot's batches
    offset: int  # byte offset of the first chunk within the slot
    chunks: tuple[Chunk, ...]
    slot_refs: tuple[SlotRef, ...]

    @property
    def op_count(self) -> int:
        return len(self.chunks)

    @property
    def size(self) -> int:
        return sum(len(c.data) for c in self.chunks)

    @property
    def end(self) -> int:
        """Byte offset just past the last chunk within the slot."""
        return self.offset + self.size


class UploadMetadata(BaseModel):
    """Per-identity record kept by the contract.

    ``end_slot`` is exclusive: the identity owns ``[start_slot, end_slot)``.
    ``uploaded_bytes`` counts distinct bytes confirmed by write batches.
    """

    model_config = ConfigDict(frozen=True)

    start_slot: int = 0
    end_slot: int = 0
    status: UploadStatus = UploadStatus.NOT_STARTED
    last_slot_size: int = 0
    uploaded_bytes: int = 0

    @classmethod
    def not_started(cls) -> UploadMetadata:
        return cls()

    @property
    def slot_count(self) -> int:
        return self.end_slot - self.start_slot

    def expected_bytes(self, max_slot_size: int) -> int:
        """Total bytes the allocated range must receive before finish."""
        if self.slot_count <= 0:
            return 0
        return (self.slot_count - 1) * max_slot_size + self.last_slot_size


class BatchReceipt(BaseModel):
    """A confirmed write batch."""

    model_config = ConfigDict(frozen=True)

    slot_index: int
    batch_index: int
    offset: int
    op_count: int
    byte_count: int
    tx_ids: list[str]


class CallReceipt(BaseModel):
    """Result of a start or finish call."""

    model_config = ConfigDict(frozen=True)

    tx_ids: list[str]
    metadata: UploadMetadata
    estimate: CostEstimate | None = None


class UploadReceipt(BaseModel):
    """Result of an upload pass, tx ids in submission order."""

    model_config = ConfigDict(frozen=True)

    app_id: int
    address: str
    batches: list[BatchReceipt] = Field(default_factory=list)
    skipped_batches: int = 0
    cancelled: bool = False

    @property
    def tx_ids(self) -> list[str]:
        return [tx_id for batch in self.batches for tx_id in batch.tx_ids]


class PublishReceipt(BaseModel):
    """Result of a full begin, upload, finish pass.

    Steps the contract state made unnecessary are left as ``None``.
    """

    model_config = ConfigDict(frozen=True)

    metadata: UploadMetadata
    begin: CallReceipt | None = None
    upload: UploadReceipt | None = None
    finish: CallReceipt | None = None

    @property
    def completed(self) -> bool:
        return self.metadata.status is UploadStatus.FINISHED
