"""Upload error taxonomy.

All errors are raised synchronously by the operation that triggered them.
None of them is retried by the core; the caller resumes from
``UploadOrchestrator.get_status`` instead.
"""

from __future__ import annotations

from didslot.models.upload import UploadStatus


class UploadError(RuntimeError):
    """Base class for every error raised by the upload core."""


class PreconditionFailure(UploadError):
    """Local planning invariant violated.  Raised before any network call."""


class IdentityUnavailableError(UploadError):
    """No signer or address is available for the session."""


class InsufficientFundsError(UploadError):
    """The uploader cannot cover the rent payment plus fees."""

    def __init__(self, required: int, available: int) -> None:
        self.required = required
        self.available = available
        super().__init__(
            f"Insufficient funds: {required} required, {available} available "
            f"(short by {required - available})"
        )


class InvalidStateTransitionError(UploadError):
    """Operation not allowed in the current state.

    ``current`` carries the state observed so the caller can resume
    instead of restarting.
    """

    def __init__(self, message: str, current: UploadStatus | str | None = None) -> None:
        self.current = current
        super().__init__(message)


class AlreadyStartedError(InvalidStateTransitionError):
    """``begin`` called for an identity whose upload is not ``NotStarted``."""


class TransmissionFailure(UploadError):
    """A batch submission failed.

    Everything before ``(slot_index, batch_index)`` is confirmed on-chain.
    """

    def __init__(
        self,
        message: str,
        *,
        slot_index: int | None = None,
        batch_index: int | None = None,
        tx_ids_confirmed: list[str] | None = None,
    ) -> None:
        self.slot_index = slot_index
        self.batch_index = batch_index
        self.tx_ids_confirmed = list(tx_ids_confirmed or [])
        super().__init__(message)


class IncompleteUploadError(UploadError):
    """``finish`` rejected because not every allocated byte was written."""

    def __init__(self, message: str, *, uploaded: int = 0, expected: int = 0) -> None:
        self.uploaded = uploaded
        self.expected = expected
        super().__init__(message)


class SessionBusyError(UploadError):
    """Another mutating call is in flight for the same identity."""
