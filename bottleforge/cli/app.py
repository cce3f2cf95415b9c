"""Main Typer application — imports and registers all CLI commands.

Entry point: ``bottleforge`` (configured via pyproject.toml scripts).
Running it without a subcommand provisions, like ``bottleforge install``.
"""

from __future__ import annotations

import typer

from bottleforge.cli.commands.install import install_cmd
from bottleforge.cli.commands.snapshots import snapshots_app
from bottleforge.cli.commands.status import status_cmd
from bottleforge.cli.commands.uninstall import purge_cmd, uninstall_cmd

app = typer.Typer(
    name="bottleforge",
    help="bottleforge: idempotent Wine wrapper provisioning for Apple Silicon.",
    rich_markup_mode="rich",
    add_completion=False,
)

# Register subcommands
app.command(name="install", help="Provision everything (default).")(install_cmd)
app.command(name="uninstall", help="Remove the wrapper and prefix.")(uninstall_cmd)
app.command(name="purge", help="Uninstall and remove the base runtime casks.")(purge_cmd)
app.command(name="status", help="Show the last run's outcome.")(status_cmd)
app.add_typer(snapshots_app, name="snapshots")


@app.callback(invoke_without_command=True)
def default(ctx: typer.Context) -> None:
    """Provision when no subcommand is given."""
    if ctx.invoked_subcommand is None:
        install_cmd(log_level=None)


def main() -> None:
    """CLI entry point."""
    app()


if __name__ == "__main__":
    main()
