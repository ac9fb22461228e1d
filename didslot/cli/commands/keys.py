"""``didslot keygen`` and ``didslot fund``: local identity management.

``keygen`` writes a fresh Ed25519 seed to the configured key path.
``fund`` credits an address on the local network so it can pay rent.
"""

from __future__ import annotations

from pathlib import Path

import typer
from rich.markup import escape
from rich.panel import Panel

from didslot.cli.runtime import (
    console,
    load_config,
    load_identity,
    open_network,
    reporting_errors,
)
from didslot.contract.identity import Identity


def keygen_cmd(
    key_path: Path = typer.Option(
        None, "--key-path", "-k", help="Where to write the signing key seed."
    ),
    force: bool = typer.Option(
        False, "--force", "-f", help="Overwrite an existing key file."
    ),
) -> None:
    """Generate a new uploader identity."""
    config = load_config()
    path = key_path or config.key_path
    if path.exists() and not force:
        console.print(f"[yellow]Key file {path} already exists.[/yellow] Use --force to replace it.")
        raise typer.Exit(code=1)

    identity = Identity.generate()
    identity.save(path)

    console.print()
    console.print(
        Panel(
            "\n".join([
                "[bold green]New identity created![/bold green]",
                "",
                f"[bold]Address:[/bold]    {identity.address}",
                f"[bold]Public key:[/bold] {identity.public_key.hex()}",
                f"[bold]Key file:[/bold]   {path}",
            ]),
            title="[bold]didslot[/bold]",
            border_style="green",
            padding=(1, 2),
        )
    )
    console.print()

    # Print the address plainly for scripting
    console.print(f"[bold]{identity.address}[/bold]")


def fund_cmd(
    amount: int = typer.Argument(..., help="Amount to credit."),
    address: str = typer.Option(
        None, "--address", "-a", help="Address to fund. Defaults to the configured identity."
    ),
) -> None:
    """Credit an address on the local network."""
    config = load_config()
    if address is None:
        with reporting_errors():
            identity = load_identity(config)
        if identity is None:
            console.print("[red]No identity configured.[/red] Run `didslot keygen` or pass --address.")
            raise typer.Exit(code=1)
        address = identity.address

    try:
        balance = open_network(config).fund(address, amount)
    except ValueError as exc:
        console.print(f"[red]Cannot fund:[/red] {escape(str(exc))}")
        raise typer.Exit(code=1) from exc
    console.print(f"[green]Funded[/green] {address}: balance {balance:,}")
