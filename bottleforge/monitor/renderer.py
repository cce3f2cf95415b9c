"""Rich terminal renderer for provisioning runs.

Turns a ``RunReport`` into Rich renderables: a stage table and a summary
panel.  Also renders the last-run status record and snapshot listings.

Color scheme
------------
- green     : PASSED
- cyan      : SKIPPED
- red       : FAILED
- yellow    : RUNNING
- dim       : NOT_STARTED
- bold red  : BLOCKED
"""

from __future__ import annotations

from rich.console import Console, Group
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from bottleforge.models.reports import UninstallReport
from bottleforge.models.snapshots import SafetySnapshot
from bottleforge.models.stages import RunReport, RunStatus, StageState
from bottleforge.stages.s6_summary import format_elapsed


# ---------------------------------------------------------------------------
# State -> Rich style mapping
# ---------------------------------------------------------------------------

_STATE_STYLES: dict[StageState, str] = {
    StageState.PASSED: "bold green",
    StageState.SKIPPED: "cyan",
    StageState.FAILED: "bold red",
    StageState.RUNNING: "bold yellow",
    StageState.NOT_STARTED: "dim",
    StageState.BLOCKED: "bold red",
}

_STATE_ICONS: dict[StageState, str] = {
    StageState.PASSED: "[green]PASSED[/green]",
    StageState.SKIPPED: "[cyan]SKIPPED[/cyan]",
    StageState.FAILED: "[bold red]FAILED[/bold red]",
    StageState.RUNNING: "[yellow]RUNNING[/yellow]",
    StageState.NOT_STARTED: "[dim]NOT STARTED[/dim]",
    StageState.BLOCKED: "[bold red]BLOCKED[/bold red]",
}


class RunRenderer:
    """Renders run reports as Rich terminal output.

    Parameters
    ----------
    console:
        Rich Console instance.  A new one is created if not provided.
    """

    def __init__(self, console: Console | None = None) -> None:
        self.console = console or Console()

    # ------------------------------------------------------------------
    # Run report
    # ------------------------------------------------------------------

    def render_report(self, report: RunReport, *, title: str = "bottleforge") -> Panel:
        """Render a RunReport as a Panel holding the stage table and summary."""
        table = self._build_stage_table(report)

        if report.status == RunStatus.COMPLETED:
            headline = "[bold green]Setup complete[/bold green]"
            border = "green"
        else:
            headline = (
                f"[bold red]Setup failed at {report.failed_stage}[/bold red]: "
                f"{escape(report.error or 'unknown error')}"
            )
            border = "red"

        lines = [headline]
        for key, value in report.summary.items():
            lines.append(f"[bold]{key + ':':<15}[/bold]{escape(value)}")
        if report.log_path is not None and "Log" not in report.summary:
            lines.append(f"[bold]{'Log:':<15}[/bold]{escape(str(report.log_path))}")

        content = Group(table, Text(""), Text.from_markup("\n".join(lines)))
        return Panel(
            content,
            title=f"[bold]{title}[/bold]",
            subtitle=(
                f"Run {report.run_id} | {format_elapsed(report.elapsed_seconds)}"
            ),
            border_style=border,
            padding=(1, 2),
        )

    def _build_stage_table(self, report: RunReport) -> Table:
        table = Table(show_header=True, header_style="bold cyan", expand=True)
        table.add_column("#", style="dim", width=3, justify="right")
        table.add_column("Stage", min_width=28)
        table.add_column("State", min_width=12, justify="center")
        table.add_column("Details", min_width=20)
        table.add_column("Time", justify="right", width=8)

        for i, outcome in enumerate(report.outcomes):
            style = _STATE_STYLES.get(outcome.state, "")
            duration = (
                f"{outcome.duration_seconds:.1f}s"
                if outcome.state in (StageState.PASSED, StageState.FAILED)
                else "[dim]-[/dim]"
            )
            name = f"[{style}]{outcome.display_name}[/{style}]"
            if outcome.gate:
                name += " [dim](gate, always runs)[/dim]"
            table.add_row(
                str(i),
                name,
                _STATE_ICONS.get(outcome.state, outcome.state.value),
                Text(outcome.detail or "-"),
                duration,
            )
        return table

    def print_report(self, report: RunReport) -> None:
        self.console.print(self.render_report(report))

    def print_status(self, report: RunReport | None) -> None:
        """Print the last-run status record, or a hint when there is none."""
        if report is None:
            self.console.print("[dim]No provisioning run recorded yet.[/dim]")
            return
        self.console.print(
            self.render_report(report, title=f"Last run ({report.finished_at:%Y-%m-%d %H:%M} UTC)")
        )

    # ------------------------------------------------------------------
    # Snapshots / uninstall
    # ------------------------------------------------------------------

    def print_snapshots(self, snapshots: list[SafetySnapshot]) -> None:
        if not snapshots:
            self.console.print("[dim]No safety snapshots.[/dim]")
            return
        table = Table(title="Safety snapshots", header_style="bold cyan")
        table.add_column("Snapshot", style="cyan")
        table.add_column("Label")
        table.add_column("Created (UTC)")
        table.add_column("Files", justify="right")
        for snap in snapshots:
            table.add_row(
                snap.snapshot_id,
                snap.label,
                snap.created_at.strftime("%Y-%m-%d %H:%M:%S"),
                str(len(snap.entries)),
            )
        self.console.print(table)

    def print_uninstall(self, report: UninstallReport) -> None:
        if not report.confirmed:
            self.console.print("[yellow]Cancelled.[/yellow]")
            return
        for path in report.removed_paths:
            self.console.print(f"[green]Removed[/green] {path}")
        for package in report.removed_packages:
            self.console.print(f"[green]Uninstalled[/green] {package}")
        for item in report.absent:
            self.console.print(f"[dim]Not present: {item}[/dim]")
        done = "Purge complete." if report.purge else "Uninstall complete."
        self.console.print(f"[bold green]{done}[/bold green]")
