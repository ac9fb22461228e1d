"""Client-side upload session states and deterministic transitions."""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, ConfigDict


class SessionState(str, Enum):
    """Strict state model for one upload session."""

    IDLE = "idle"
    COST_COMPUTED = "cost_computed"
    STARTED = "started"
    UPLOADING = "uploading"
    FINISHED = "finished"
    FAILED = "failed"


# Valid session transitions, enforced structurally by UploadSession.
# FINISHED and FAILED have no outgoing transitions; a failed session is
# abandoned and a fresh one is rehydrated from the contract.
VALID_SESSION_TRANSITIONS: dict[SessionState, set[SessionState]] = {
    SessionState.IDLE: {SessionState.COST_COMPUTED, SessionState.FAILED},
    SessionState.COST_COMPUTED: {SessionState.STARTED, SessionState.FAILED},
    SessionState.STARTED: {
        SessionState.UPLOADING,
        SessionState.FINISHED,
        SessionState.FAILED,
    },
    SessionState.UPLOADING: {
        SessionState.UPLOADING,
        SessionState.FINISHED,
        SessionState.FAILED,
    },
    SessionState.FINISHED: set(),  # terminal
    SessionState.FAILED: set(),  # terminal
}

TERMINAL_SESSION_STATES: frozenset[SessionState] = frozenset(
    {SessionState.FINISHED, SessionState.FAILED}
)


class SessionTransition(BaseModel):
    """Records a single session state transition."""

    model_config = ConfigDict(frozen=True)

    from_state: SessionState
    to_state: SessionState
    reason: str | None = None
    tx_ids: tuple[str, ...] = ()
