"""didslot data models: all Pydantic v2, all frozen (immutable)."""

from didslot.models.did import DID_CONTEXTS, DidDocument, ServiceEntry, VerificationMethod
from didslot.models.journal import JournalEntry
from didslot.models.limits import DEFAULT_LIMITS, ContractLimits
from didslot.models.session import (
    TERMINAL_SESSION_STATES,
    VALID_SESSION_TRANSITIONS,
    SessionState,
    SessionTransition,
)
from didslot.models.upload import (
    STATUS_CODES,
    VALID_STATUS_TRANSITIONS,
    Batch,
    BatchReceipt,
    CallReceipt,
    Chunk,
    CostEstimate,
    PublishReceipt,
    SlotRef,
    SlotSegment,
    UploadMetadata,
    UploadReceipt,
    UploadStatus,
)

__all__ = [
    # limits
    "ContractLimits",
    "DEFAULT_LIMITS",
    # upload
    "UploadStatus",
    "VALID_STATUS_TRANSITIONS",
    "STATUS_CODES",
    "CostEstimate",
    "SlotSegment",
    "Chunk",
    "SlotRef",
    "Batch",
    "UploadMetadata",
    "BatchReceipt",
    "CallReceipt",
    "UploadReceipt",
    "PublishReceipt",
    # session
    "SessionState",
    "SessionTransition",
    "VALID_SESSION_TRANSITIONS",
    "TERMINAL_SESSION_STATES",
    # journal
    "JournalEntry",
    # did
    "DID_CONTEXTS",
    "DidDocument",
    "ServiceEntry",
    "VerificationMethod",
]
