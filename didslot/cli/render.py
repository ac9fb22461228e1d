"""Rich renderables for estimates, metadata records and receipts.

Color scheme
------------
- green   : FINISHED
- yellow  : STARTED
- dim     : NOT_STARTED
"""

from __future__ import annotations

from rich.console import Group
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from didslot.models.journal import JournalEntry
from didslot.models.limits import ContractLimits
from didslot.models.upload import (
    BatchReceipt,
    CostEstimate,
    UploadMetadata,
    UploadReceipt,
    UploadStatus,
)

_STATUS_ICONS: dict[UploadStatus, str] = {
    UploadStatus.FINISHED: "[green]FINISHED[/green]",
    UploadStatus.STARTED: "[yellow]STARTED[/yellow]",
    UploadStatus.NOT_STARTED: "[dim]NOT STARTED[/dim]",
}

_STATUS_BORDERS: dict[UploadStatus, str] = {
    UploadStatus.FINISHED: "green",
    UploadStatus.STARTED: "yellow",
    UploadStatus.NOT_STARTED: "dim",
}


def render_estimate(estimate: CostEstimate, limits: ContractLimits) -> Table:
    table = Table(title="Upload Cost Estimate", show_header=False)
    table.add_column("Field", style="bold")
    table.add_column("Value", justify="right")
    table.add_row("Document bytes", f"{estimate.document_length:,}")
    table.add_row("Slots", str(estimate.slot_count))
    table.add_row("Last slot bytes", f"{estimate.last_slot_size:,}")
    table.add_row("Slot capacity", f"{limits.max_slot_size:,}")
    table.add_row("Total cost", f"[cyan]{estimate.total_cost:,}[/cyan]")
    return table


def render_metadata(
    metadata: UploadMetadata, limits: ContractLimits, *, app_id: int, address: str
) -> Panel:
    expected = metadata.expected_bytes(limits.max_slot_size)
    progress = f"{metadata.uploaded_bytes:,}/{expected:,}" if expected else "-"
    lines = [
        f"[bold]App:[/bold]       {app_id}",
        f"[bold]Address:[/bold]   {address}",
        f"[bold]Status:[/bold]    {_STATUS_ICONS[metadata.status]}",
    ]
    if metadata.status is not UploadStatus.NOT_STARTED:
        lines += [
            f"[bold]Slots:[/bold]     [{metadata.start_slot}, {metadata.end_slot})",
            f"[bold]Last slot:[/bold] {metadata.last_slot_size:,} bytes",
            f"[bold]Uploaded:[/bold]  {progress}",
        ]
    return Panel(
        "\n".join(lines),
        title="[bold]Upload Metadata[/bold]",
        border_style=_STATUS_BORDERS[metadata.status],
        padding=(1, 2),
    )


def render_batch_line(receipt: BatchReceipt) -> str:
    return (
        f"[green]OK[/green] slot {receipt.slot_index} batch {receipt.batch_index} "
        f"({receipt.op_count} ops, {receipt.byte_count:,} bytes) "
        f"[dim]{receipt.tx_ids[0][:12]}...[/dim]"
    )


def render_upload(receipt: UploadReceipt) -> Panel:
    table = Table(show_header=True, header_style="bold cyan", expand=True)
    table.add_column("Slot", justify="right")
    table.add_column("Batch", justify="right")
    table.add_column("Offset", justify="right")
    table.add_column("Ops", justify="right")
    table.add_column("Bytes", justify="right")
    table.add_column("First tx")
    for batch in receipt.batches:
        table.add_row(
            str(batch.slot_index),
            str(batch.batch_index),
            f"{batch.offset:,}",
            str(batch.op_count),
            f"{batch.byte_count:,}",
            batch.tx_ids[0],
        )

    summary = (
        f"[bold]Sent:[/bold] {len(receipt.batches)}  |  "
        f"[bold]Skipped:[/bold] {receipt.skipped_batches}  |  "
        f"[bold]Transactions:[/bold] {len(receipt.tx_ids)}"
    )
    if receipt.cancelled:
        summary += "  |  [bold yellow]CANCELLED[/bold yellow]"

    return Panel(
        Group(table, Text(""), Text.from_markup(summary)),
        title="[bold]Upload[/bold]",
        border_style="yellow" if receipt.cancelled else "green",
    )


def render_journal(entries: list[JournalEntry]) -> Table:
    table = Table(title="Upload Journal", show_header=True, header_style="bold cyan")
    table.add_column("Time (UTC)")
    table.add_column("Operation")
    table.add_column("Transition")
    table.add_column("Txns", justify="right")
    table.add_column("Detail", overflow="fold")
    for entry in entries:
        table.add_row(
            entry.timestamp_utc.strftime("%Y-%m-%d %H:%M:%S"),
            entry.operation,
            entry.state_transition,
            str(len(entry.tx_ids)),
            entry.detail,
        )
    return table
