"""``bottleforge install`` — run the forward provisioning path.

Every stage whose completion predicate already holds is skipped, so the
command is safe to re-run after a failure or on a finished machine.
"""

from __future__ import annotations

import requests
import typer
from rich.console import Console

from bottleforge.config import ProvisionSettings
from bottleforge.core.host import Host, SystemHost
from bottleforge.core.orchestrator import StageOrchestrator
from bottleforge.core.run_log import configure_run_logging
from bottleforge.models.stages import RunStatus
from bottleforge.monitor.renderer import RunRenderer

console = Console()


def build_host() -> Host:
    return SystemHost()


def build_session() -> requests.Session:
    session = requests.Session()
    session.headers["User-Agent"] = "bottleforge"
    return session


def install_cmd(
    log_level: str = typer.Option(
        None,
        "--log-level",
        "-L",
        help="Console log level (default from BOTTLEFORGE_LOG_LEVEL or INFO).",
    ),
) -> None:
    """Provision the wrapper, its dependencies and the guest."""
    settings = ProvisionSettings()
    config = settings.build_config()
    log_path = configure_run_logging(config.log_dir, log_level or settings.log_level, console)

    orchestrator = StageOrchestrator(config, build_host(), build_session())
    report = orchestrator.run(log_path=log_path)

    console.print()
    RunRenderer(console=console).print_report(report)
    if report.status == RunStatus.FAILED:
        console.print(f"[dim]Check log: {log_path}[/dim]")
        raise typer.Exit(code=1)
