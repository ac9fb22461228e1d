"""Deterministic upload session state machine.

Enforces:
- Valid transitions only (VALID_SESSION_TRANSITIONS table)
- Initial state derived from an authoritative metadata read, never cached
- Every transition recorded in the upload journal when one is attached
"""

from __future__ import annotations

from didslot.core.errors import InvalidStateTransitionError
from didslot.core.upload_journal import UploadJournal
from didslot.models.journal import JournalEntry
from didslot.models.session import (
    TERMINAL_SESSION_STATES,
    VALID_SESSION_TRANSITIONS,
    SessionState,
    SessionTransition,
)
from didslot.models.upload import UploadMetadata, UploadStatus


def state_for_metadata(metadata: UploadMetadata) -> SessionState:
    """Map an authoritative metadata read onto a session state."""
    if metadata.status is UploadStatus.FINISHED:
        return SessionState.FINISHED
    if metadata.status is UploadStatus.STARTED:
        return SessionState.UPLOADING if metadata.uploaded_bytes else SessionState.STARTED
    return SessionState.IDLE


class UploadSession:
    """One upload session for one ``(app_id, address)``.

    Parameters
    ----------
    app_id:
        Application the session writes to.
    address:
        Uploader address.
    state:
        Initial state.  Use ``rehydrate`` to derive it from the contract.
    journal:
        Optional journal that receives one entry per transition.
    """

    def __init__(
        self,
        app_id: int,
        address: str,
        state: SessionState = SessionState.IDLE,
        *,
        journal: UploadJournal | None = None,
    ) -> None:
        self.app_id = app_id
        self.address = address
        self._state = state
        self._journal = journal
        self.history: list[SessionTransition] = []

    @classmethod
    def rehydrate(
        cls,
        app_id: int,
        address: str,
        metadata: UploadMetadata,
        *,
        journal: UploadJournal | None = None,
    ) -> UploadSession:
        """Build a session whose state reflects ``metadata``."""
        return cls(app_id, address, state_for_metadata(metadata), journal=journal)

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def is_terminal(self) -> bool:
        return self._state in TERMINAL_SESSION_STATES

    def can_transition(self, target: SessionState) -> bool:
        return target in VALID_SESSION_TRANSITIONS.get(self._state, set())

    def require(self, *allowed: SessionState, operation: str) -> None:
        """Guard: raise unless the session is in one of ``allowed``."""
        if self._state not in allowed:
            raise InvalidStateTransitionError(
                f"Cannot {operation} while session is {self._state.value}. "
                f"Allowed from: {[s.value for s in allowed]}",
                current=self._state,
            )

    def transition(
        self,
        target: SessionState,
        *,
        operation: str,
        reason: str | None = None,
        tx_ids: list[str] | None = None,
        document_digest: str = "",
    ) -> SessionTransition:
        """Move to ``target``, recording the transition."""
        if not self.can_transition(target):
            allowed = VALID_SESSION_TRANSITIONS.get(self._state, set())
            raise InvalidStateTransitionError(
                f"Cannot transition session from {self._state.value} to {target.value}. "
                f"Allowed: {sorted(s.value for s in allowed)}",
                current=self._state,
            )

        record = SessionTransition(
            from_state=self._state,
            to_state=target,
            reason=reason,
            tx_ids=tuple(tx_ids or ()),
        )
        if self._journal is not None:
            self._journal.append(
                JournalEntry(
                    app_id=self.app_id,
                    address=self.address,
                    operation=operation,
                    state_transition=f"{self._state.value}->{target.value}",
                    tx_ids=list(record.tx_ids),
                    detail=reason or "",
                    document_digest=document_digest,
                )
            )
        self._state = target
        self.history.append(record)
        return record

    def fail(self, *, operation: str, reason: str) -> None:
        """Move to FAILED unless already terminal."""
        if not self.is_terminal:
            self.transition(SessionState.FAILED, operation=operation, reason=reason)
