"""``bottleforge uninstall`` / ``bottleforge purge``.

Both ask for confirmation; anything but ``y``/``Y`` cancels with exit 0.
"""

from __future__ import annotations

import typer
from rich.console import Console

from bottleforge.cli.commands.install import build_host
from bottleforge.config import ProvisionSettings
from bottleforge.core.errors import ProvisionError
from bottleforge.core.lifecycle import LifecycleManager
from bottleforge.monitor.renderer import RunRenderer

console = Console()


def _remove(purge: bool, yes: bool) -> None:
    config = ProvisionSettings().build_config()
    manager = LifecycleManager(
        config,
        build_host(),
        confirm=(lambda _prompt: "y") if yes else None,
    )
    try:
        report = manager.uninstall(purge=purge)
    except ProvisionError as exc:
        console.print(f"[bold red]Removal failed:[/bold red] {exc}")
        raise typer.Exit(code=1) from exc
    RunRenderer(console=console).print_uninstall(report)


def uninstall_cmd(
    yes: bool = typer.Option(False, "--yes", "-y", help="Do not ask for confirmation."),
) -> None:
    """Remove the wrapper, its prefix and the audio LaunchAgent."""
    _remove(purge=False, yes=yes)


def purge_cmd(
    yes: bool = typer.Option(False, "--yes", "-y", help="Do not ask for confirmation."),
) -> None:
    """Uninstall, then also remove the base runtime casks."""
    _remove(purge=True, yes=yes)
