"""Upload commands: ``estimate``, ``begin``, ``upload``, ``finish``, ``publish``.

Each command re-reads the contract record before acting, so any of them
can be re-run after an interruption.
"""

from __future__ import annotations

from pathlib import Path

import typer

from didslot.cli.render import render_batch_line, render_estimate, render_metadata, render_upload
from didslot.cli.runtime import (
    console,
    load_config,
    make_context,
    make_orchestrator,
    reporting_errors,
)
from didslot.core.orchestrator import UploadOrchestrator

_APP_ID_HELP = "Application id. Defaults to DIDSLOT_APP_ID."


def _read_document(path: Path) -> bytes:
    if not path.is_file():
        console.print(f"[red]No such file:[/red] {path}")
        raise typer.Exit(code=1)
    return path.read_bytes()


def estimate_cmd(
    document: Path = typer.Argument(..., help="Document to upload."),
) -> None:
    """Show the rent needed to store a document."""
    orchestrator = UploadOrchestrator()
    estimate = orchestrator.estimate(_read_document(document))
    console.print(render_estimate(estimate, orchestrator.limits))


def begin_cmd(
    document: Path = typer.Argument(..., help="Document to upload."),
    app_id: int = typer.Option(None, "--app-id", help=_APP_ID_HELP),
) -> None:
    """Pay rent and reserve slots for a document."""
    config = load_config()
    orchestrator = make_orchestrator(config)
    with reporting_errors():
        ctx = make_context(config, app_id)
        receipt = orchestrator.begin(_read_document(document), ctx)

    if receipt.estimate is not None:
        console.print(render_estimate(receipt.estimate, orchestrator.limits))
    console.print(
        render_metadata(
            receipt.metadata, orchestrator.limits, app_id=ctx.app_id, address=ctx.identity.address
        )
    )


def upload_cmd(
    document: Path = typer.Argument(..., help="Document to upload."),
    app_id: int = typer.Option(None, "--app-id", help=_APP_ID_HELP),
    resume: bool = typer.Option(
        True, "--resume/--no-resume", help="Skip batches the contract already confirmed."
    ),
) -> None:
    """Write a document's batches into its reserved slots."""
    config = load_config()
    orchestrator = make_orchestrator(config)
    with reporting_errors():
        ctx = make_context(config, app_id)
        receipt = orchestrator.upload(
            _read_document(document),
            ctx,
            resume=resume,
            on_batch=lambda batch: console.print(render_batch_line(batch)),
        )
    console.print(render_upload(receipt))


def finish_cmd(
    app_id: int = typer.Option(None, "--app-id", help=_APP_ID_HELP),
) -> None:
    """Finalize an upload once every byte is written."""
    config = load_config()
    orchestrator = make_orchestrator(config)
    with reporting_errors():
        ctx = make_context(config, app_id)
        receipt = orchestrator.finish(ctx)
    console.print(
        render_metadata(
            receipt.metadata, orchestrator.limits, app_id=ctx.app_id, address=ctx.identity.address
        )
    )


def publish_cmd(
    document: Path = typer.Argument(..., help="Document to upload."),
    app_id: int = typer.Option(None, "--app-id", help=_APP_ID_HELP),
) -> None:
    """Run whatever remains of begin, upload and finish."""
    config = load_config()
    orchestrator = make_orchestrator(config)
    with reporting_errors():
        ctx = make_context(config, app_id)
        receipt = orchestrator.publish(
            _read_document(document),
            ctx,
            on_batch=lambda batch: console.print(render_batch_line(batch)),
        )

    if receipt.upload is not None:
        console.print(render_upload(receipt.upload))
    console.print(
        render_metadata(
            receipt.metadata, orchestrator.limits, app_id=ctx.app_id, address=ctx.identity.address
        )
    )
