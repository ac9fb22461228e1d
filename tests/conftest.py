"""Shared test fixtures for didslot."""

from __future__ import annotations

from collections.abc import Callable
from pathlib import Path

import pytest

from didslot.contract.client import SlotContractClient
from didslot.contract.identity import Identity
from didslot.contract.local_network import LocalNetwork
from didslot.core.orchestrator import UploadContext, UploadOrchestrator
from didslot.core.upload_journal import UploadJournal
from didslot.models.limits import ContractLimits

# Plenty for any document the tests upload under ``small_limits``.
FUNDING = 10**9


@pytest.fixture
def small_limits() -> ContractLimits:
    """Limits small enough to exercise multi-slot, multi-batch uploads cheaply."""
    return ContractLimits(max_slot_size=4096, bytes_per_call=512, max_ops_per_batch=4)


@pytest.fixture
def network(tmp_path: Path, small_limits: ContractLimits) -> LocalNetwork:
    """Provide a fresh LocalNetwork backed by a temp SQLite database."""
    return LocalNetwork(tmp_path / "localnet.db", limits=small_limits)


@pytest.fixture
def identity() -> Identity:
    return Identity.generate()


@pytest.fixture
def funded_identity(network: LocalNetwork, identity: Identity) -> Identity:
    network.fund(identity.address, FUNDING)
    return identity


@pytest.fixture
def app_id(network: LocalNetwork, funded_identity: Identity) -> int:
    """Deploy a storage application and return its id."""
    return SlotContractClient(network, 0, funded_identity).create_application()


@pytest.fixture
def journal(tmp_path: Path) -> UploadJournal:
    """Provide a fresh UploadJournal backed by a temp SQLite database."""
    return UploadJournal(tmp_path / "journal.db")


@pytest.fixture
def orchestrator(small_limits: ContractLimits, journal: UploadJournal) -> UploadOrchestrator:
    return UploadOrchestrator(small_limits, journal=journal)


@pytest.fixture
def ctx(network: LocalNetwork, app_id: int, funded_identity: Identity) -> UploadContext:
    return UploadContext(network, app_id, funded_identity)


@pytest.fixture
def make_document() -> Callable[[int], bytes]:
    """Factory fixture: deterministic, non-repeating-per-chunk document bytes."""

    def _factory(length: int) -> bytes:
        return bytes((i * 7 + i // 251) % 256 for i in range(length))

    return _factory
