"""``bottleforge status`` — show the last run's status record."""

from __future__ import annotations

from rich.console import Console

from bottleforge.config import ProvisionSettings
from bottleforge.core.stage_machine import read_status
from bottleforge.monitor.renderer import RunRenderer

console = Console()


def status_cmd() -> None:
    """Show the outcome of the most recent provisioning run."""
    config = ProvisionSettings().build_config()
    RunRenderer(console=console).print_status(read_status(config.status_path))
