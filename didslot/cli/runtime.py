"""Wiring shared by the CLI commands: config, network, identity, orchestrator."""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager

import typer
from rich.console import Console
from rich.markup import escape

from didslot.config import DidSlotConfig
from didslot.contract.identity import Identity
from didslot.contract.local_network import LocalNetwork
from didslot.contract.network import NetworkError
from didslot.core.errors import IdentityUnavailableError, UploadError
from didslot.core.orchestrator import UploadContext, UploadOrchestrator
from didslot.core.upload_journal import UploadJournal

console = Console()


def load_config() -> DidSlotConfig:
    return DidSlotConfig()


def open_network(config: DidSlotConfig) -> LocalNetwork:
    return LocalNetwork(config.network_db_path, genesis_id=f"{config.network_name}-v1")


def load_identity(config: DidSlotConfig) -> Identity | None:
    """Load the configured signing key, or ``None`` when there is none."""
    if not config.key_path.exists():
        return None
    try:
        return Identity.load(config.key_path)
    except ValueError as exc:
        raise IdentityUnavailableError(
            f"Cannot read signing key {config.key_path}: {exc}"
        ) from exc


def make_orchestrator(config: DidSlotConfig) -> UploadOrchestrator:
    return UploadOrchestrator(
        journal=UploadJournal(config.journal_path), wait_rounds=config.wait_rounds
    )


def make_context(config: DidSlotConfig, app_id: int | None) -> UploadContext:
    resolved = app_id if app_id is not None else config.app_id
    if resolved <= 0:
        console.print(
            "[red]No application id.[/red] Pass --app-id or set DIDSLOT_APP_ID."
        )
        raise typer.Exit(code=1)
    return UploadContext(open_network(config), resolved, load_identity(config))


@contextmanager
def reporting_errors() -> Iterator[None]:
    """Print upload and network errors and exit with status 1."""
    try:
        yield
    except (UploadError, NetworkError) as exc:
        console.print(f"[bold red]{type(exc).__name__}:[/bold red] {escape(str(exc))}")
        raise typer.Exit(code=1) from exc
