"""``bottleforge snapshots`` — list, prune and restore safety snapshots."""

from __future__ import annotations

import typer
from rich.console import Console

from bottleforge.config import ProvisionSettings
from bottleforge.core.snapshot_store import SnapshotError, SnapshotStore
from bottleforge.monitor.renderer import RunRenderer

console = Console()

snapshots_app = typer.Typer(
    name="snapshots",
    help="Manage safety snapshots taken before configuration edits.",
    no_args_is_help=True,
)


def _store() -> SnapshotStore:
    return SnapshotStore(ProvisionSettings().build_config().snapshot_dir)


@snapshots_app.command(name="list")
def list_cmd() -> None:
    """List snapshots, oldest first."""
    RunRenderer(console=console).print_snapshots(_store().list_snapshots())


@snapshots_app.command(name="prune")
def prune_cmd(
    keep: int = typer.Option(..., "--keep", "-k", min=0, help="Number of newest snapshots to keep."),
) -> None:
    """Delete all but the newest KEEP snapshots."""
    removed = _store().prune(keep)
    console.print(f"Pruned {len(removed)} snapshot(s).")


@snapshots_app.command(name="restore")
def restore_cmd() -> None:
    """Restore the files captured by the newest snapshot."""
    try:
        restored, pre_restore = _store().restore_latest()
    except SnapshotError as exc:
        console.print(f"[bold red]{exc}[/bold red]")
        raise typer.Exit(code=1) from exc
    console.print(f"[green]Restored snapshot[/green] {restored.snapshot_id}")
    if pre_restore is not None:
        console.print(f"[dim]Previous state saved as {pre_restore.snapshot_id}[/dim]")
