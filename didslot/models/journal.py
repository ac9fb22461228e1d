"""Upload journal entry model (append-only, hash-chained).

The journal is an audit trail of what this client did:
- Append-only (no UPDATE, no DELETE)
- Hash-chained per ``(app_id, address)`` stream
- One entry per session transition

It is never read to decide upload state; the contract record is the
source of truth.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone

from pydantic import BaseModel, ConfigDict, Field


class JournalEntry(BaseModel):
    """A single entry in the upload journal."""

    model_config = ConfigDict(frozen=True)

    entry_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    app_id: int
    address: str
    operation: str  # "begin", "upload", "finish"
    state_transition: str  # "from_state->to_state", e.g. "started->uploading"
    timestamp_utc: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc)
    )
    tx_ids: list[str] = []
    detail: str = ""
    document_digest: str = ""  # sha256 of the document, when one is involved
    previous_entry_hash: str = ""
    entry_hash: str = ""  # computed on append, seals this entry
