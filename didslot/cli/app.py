"""Main Typer application: imports and registers all CLI commands.

Entry point: ``didslot`` (configured via pyproject.toml project.scripts).
"""

from __future__ import annotations

import logging

import typer

from didslot.cli.commands.deploy import deploy_cmd, did_document_cmd
from didslot.cli.commands.keys import fund_cmd, keygen_cmd
from didslot.cli.commands.status import fetch_cmd, status_cmd
from didslot.cli.commands.upload import (
    begin_cmd,
    estimate_cmd,
    finish_cmd,
    publish_cmd,
    upload_cmd,
)
from didslot.cli.runtime import load_config

app = typer.Typer(
    name="didslot",
    help="didslot: store DID documents in contract slot storage.",
    no_args_is_help=True,
    rich_markup_mode="rich",
    add_completion=False,
)


@app.callback()
def _configure(
    log_level: str = typer.Option(
        None, "--log-level", help="Override DIDSLOT_LOG_LEVEL for this invocation."
    ),
) -> None:
    level = (log_level or load_config().log_level).upper()
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


# Register subcommands
app.command(name="keygen", help="Generate a new uploader identity.")(keygen_cmd)
app.command(name="fund", help="Credit an address on the local network.")(fund_cmd)
app.command(name="deploy", help="Deploy a new slot storage application.")(deploy_cmd)
app.command(name="did-document", help="Create the initial DID document.")(did_document_cmd)
app.command(name="estimate", help="Show the rent needed to store a document.")(estimate_cmd)
app.command(name="begin", help="Pay rent and reserve slots.")(begin_cmd)
app.command(name="upload", help="Write a document into its reserved slots.")(upload_cmd)
app.command(name="finish", help="Finalize a completed upload.")(finish_cmd)
app.command(name="publish", help="Begin, upload and finish in one go.")(publish_cmd)
app.command(name="status", help="Show upload progress.")(status_cmd)
app.command(name="fetch", help="Read a finished document back.")(fetch_cmd)


def main() -> None:
    app()


if __name__ == "__main__":
    main()
