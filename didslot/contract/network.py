"""Network client boundary.

Defines the ``NetworkClient`` Protocol the orchestrator talks to and the
errors a network backend raises.  Any object with these methods
satisfies the protocol; ``LocalNetwork`` is the bundled backend.
"""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from didslot.contract.transactions import (
    GroupConfirmation,
    SignedTransaction,
    SuggestedParams,
)
from didslot.models.upload import UploadMetadata


class NetworkError(RuntimeError):
    """Raised when a submission or read fails at the network level."""


class ContractRejection(NetworkError):
    """Raised when the contract program rejects a group.

    ``reason`` is a stable code (e.g. ``"incomplete"``,
    ``"insufficient_payment"``, ``"already_started"``) so callers can map
    rejections without parsing messages.
    """

    def __init__(self, reason: str, message: str) -> None:
        self.reason = reason
        super().__init__(f"[{reason}] {message}")


@runtime_checkable
class NetworkClient(Protocol):
    """Protocol for network backends hosting the slot storage contract."""

    def suggested_params(self) -> SuggestedParams:
        """Return the current fee and validity window."""
        ...

    def account_balance(self, address: str) -> int:
        """Return the spendable balance of ``address``."""
        ...

    def application_address(self, app_id: int) -> str:
        """Return the escrow address of an application."""
        ...

    def read_metadata(self, app_id: int, identity_key: bytes) -> UploadMetadata | None:
        """Return the identity's metadata record, or ``None`` if absent."""
        ...

    def read_slot(self, app_id: int, slot_index: int) -> bytes:
        """Return the raw contents of a data slot."""
        ...

    def submit_group(
        self, group: list[SignedTransaction], *, wait_rounds: int = 3
    ) -> GroupConfirmation:
        """Submit an atomic group and block until it is confirmed.

        Raises
        ------
        ContractRejection
            If the contract program or the protocol rejects the group.
        NetworkError
            If the group could not be delivered or confirmed.
        """
        ...
