"""Tests for the upload session state machine."""

from __future__ import annotations

import pytest

from didslot.core.errors import InvalidStateTransitionError
from didslot.core.session_machine import UploadSession, state_for_metadata
from didslot.core.upload_journal import UploadJournal
from didslot.models.session import VALID_SESSION_TRANSITIONS, SessionState
from didslot.models.upload import UploadMetadata, UploadStatus

ADDRESS = "TESTADDRESS"


class TestRehydration:
    def test_not_started_is_idle(self):
        assert state_for_metadata(UploadMetadata.not_started()) is SessionState.IDLE

    def test_started_without_bytes(self):
        meta = UploadMetadata(start_slot=0, end_slot=2, status=UploadStatus.STARTED, last_slot_size=10)
        assert state_for_metadata(meta) is SessionState.STARTED

    def test_started_with_bytes_is_uploading(self):
        meta = UploadMetadata(
            start_slot=0, end_slot=2, status=UploadStatus.STARTED,
            last_slot_size=10, uploaded_bytes=5,
        )
        assert state_for_metadata(meta) is SessionState.UPLOADING

    def test_finished(self):
        meta = UploadMetadata(start_slot=0, end_slot=1, status=UploadStatus.FINISHED, last_slot_size=1)
        session = UploadSession.rehydrate(1001, ADDRESS, meta)
        assert session.state is SessionState.FINISHED
        assert session.is_terminal


class TestTransitions:
    def test_happy_path(self):
        session = UploadSession(1001, ADDRESS)
        for target in (
            SessionState.COST_COMPUTED,
            SessionState.STARTED,
            SessionState.UPLOADING,
            SessionState.UPLOADING,
            SessionState.FINISHED,
        ):
            session.transition(target, operation="test")
        assert session.state is SessionState.FINISHED
        assert len(session.history) == 5

    def test_idle_cannot_upload(self):
        session = UploadSession(1001, ADDRESS)
        with pytest.raises(InvalidStateTransitionError, match="idle") as exc_info:
            session.transition(SessionState.UPLOADING, operation="upload")
        assert exc_info.value.current is SessionState.IDLE

    def test_terminal_states_have_no_exits(self):
        for terminal in (SessionState.FINISHED, SessionState.FAILED):
            assert VALID_SESSION_TRANSITIONS[terminal] == set()

    def test_fail_is_noop_when_terminal(self):
        session = UploadSession(1001, ADDRESS, SessionState.FINISHED)
        session.fail(operation="finish", reason="late")
        assert session.state is SessionState.FINISHED

    def test_require_guard(self):
        session = UploadSession(1001, ADDRESS, SessionState.FINISHED)
        with pytest.raises(InvalidStateTransitionError, match="Cannot upload"):
            session.require(SessionState.STARTED, SessionState.UPLOADING, operation="upload")

    def test_transitions_are_journaled(self, journal: UploadJournal):
        session = UploadSession(1001, ADDRESS, journal=journal)
        session.transition(SessionState.COST_COMPUTED, operation="begin", reason="2 slots")
        session.transition(SessionState.STARTED, operation="begin", tx_ids=["TX1", "TX2"])

        entries = journal.get_entries(1001, ADDRESS)
        assert [e.state_transition for e in entries] == [
            "idle->cost_computed",
            "cost_computed->started",
        ]
        assert entries[1].tx_ids == ["TX1", "TX2"]
        assert entries[0].detail == "2 slots"
