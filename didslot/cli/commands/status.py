"""``didslot status`` and ``didslot fetch``.

``status`` shows the contract's metadata record for the configured
identity and, optionally, the local journal for it.  ``fetch`` reads a
finished document back out of its slots.
"""

from __future__ import annotations

from pathlib import Path

import typer

from didslot.cli.render import render_journal, render_metadata
from didslot.cli.runtime import (
    console,
    load_config,
    make_context,
    make_orchestrator,
    reporting_errors,
)

_APP_ID_HELP = "Application id. Defaults to DIDSLOT_APP_ID."


def status_cmd(
    app_id: int = typer.Option(None, "--app-id", help=_APP_ID_HELP),
    journal: bool = typer.Option(False, "--journal", "-j", help="Also show the local journal."),
) -> None:
    """Show upload progress for the configured identity."""
    config = load_config()
    orchestrator = make_orchestrator(config)
    with reporting_errors():
        ctx = make_context(config, app_id)
        metadata = orchestrator.get_status(ctx)

    address = ctx.identity.address
    console.print(render_metadata(metadata, orchestrator.limits, app_id=ctx.app_id, address=address))
    if journal and orchestrator.journal is not None:
        console.print(render_journal(orchestrator.journal.get_entries(ctx.app_id, address)))


def fetch_cmd(
    app_id: int = typer.Option(None, "--app-id", help=_APP_ID_HELP),
    output: Path = typer.Option(None, "--output", "-o", help="Write to a file instead of stdout."),
) -> None:
    """Read a finished document back from the contract."""
    config = load_config()
    with reporting_errors():
        ctx = make_context(config, app_id)
        document = make_orchestrator(config).fetch_document(ctx)

    if output is None:
        typer.echo(document.decode("utf-8", errors="replace"))
        return
    output.write_bytes(document)
    console.print(f"[green]Wrote[/green] {len(document):,} bytes to {output}")
