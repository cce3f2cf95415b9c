"""bottleforge CLI — Typer-based command-line interface.

Provides the ``bottleforge`` command: forward provisioning (the default),
uninstall, purge, last-run status and safety snapshot management.

All output uses Rich for formatted terminal display.
"""
