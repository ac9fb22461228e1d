"""``didslot deploy`` and ``didslot did-document``.

``deploy`` creates a new storage application and prints its id.
``did-document`` writes the initial DID document for the configured
identity, ready to be uploaded.
"""

from __future__ import annotations

from pathlib import Path

import typer

from didslot.cli.runtime import (
    console,
    load_config,
    load_identity,
    make_orchestrator,
    open_network,
    reporting_errors,
)
from didslot.core.did_document import build_did_document, encode_document
from didslot.core.orchestrator import UploadContext


def deploy_cmd() -> None:
    """Deploy a new slot storage application."""
    config = load_config()
    with reporting_errors():
        ctx = UploadContext(open_network(config), 0, load_identity(config))
        app_id = make_orchestrator(config).deploy_contract(ctx)

    console.print(f"[green]Deployed application[/green] [bold]{app_id}[/bold]")
    console.print(f"[dim]export DIDSLOT_APP_ID={app_id}[/dim]")


def did_document_cmd(
    app_id: int = typer.Option(None, "--app-id", help="Application id. Defaults to DIDSLOT_APP_ID."),
    username: str = typer.Option(None, "--username", help="Add a UserProfile service."),
    email: str = typer.Option(None, "--email", help="Add a UserEmail service."),
    output: Path = typer.Option(None, "--output", "-o", help="Write to a file instead of stdout."),
) -> None:
    """Create the initial DID document for the configured identity."""
    config = load_config()
    with reporting_errors():
        identity = load_identity(config)
    if identity is None:
        console.print("[red]No identity configured.[/red] Run `didslot keygen` first.")
        raise typer.Exit(code=1)

    services: dict[str, dict] = {}
    if username:
        services["username"] = {"type": "UserProfile", "endpoint": {"username": username}}
    if email:
        services["email"] = {"type": "UserEmail", "endpoint": {"email": email}}

    document = build_did_document(
        config.network_name,
        app_id if app_id is not None else config.app_id,
        identity.public_key,
        services,
    )
    payload = encode_document(document)

    if output is None:
        typer.echo(payload.decode("utf-8"))
        return
    output.write_bytes(payload)
    console.print(f"[green]Wrote[/green] {document.id} to {output} ({len(payload):,} bytes)")
