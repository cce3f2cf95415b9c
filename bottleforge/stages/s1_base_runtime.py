"""Stage 1 — Base runtime present.

Rosetta 2, Homebrew, and the Wine and Sikarugir casks.  Homebrew itself
is never installed automatically: its absence is reported and the run
stops before anything else changes.
"""

from __future__ import annotations

import logging

from bottleforge.core.context import ProvisionContext
from bottleforge.core.errors import CommandError, DependencyInstallError, PreflightError
from bottleforge.stages.base import BaseStage

logger = logging.getLogger(__name__)


class BaseRuntimeStage(BaseStage):
    """Stage 1: Rosetta 2 + Homebrew casks."""

    @property
    def stage_id(self) -> str:
        return "base_runtime"

    @property
    def display_name(self) -> str:
        return "Base runtime present"

    def is_complete(self, ctx: ProvisionContext) -> bool:
        spec = ctx.config.base_runtime
        return (
            ctx.host.process_running(spec.rosetta_process)
            and ctx.brew.available()
            and all(ctx.brew.is_installed(cask) for cask, _ in spec.casks)
        )

    def verify(self, ctx: ProvisionContext) -> bool:
        # oahd may take a moment to appear after a fresh Rosetta install
        return all(
            ctx.brew.is_installed(cask) for cask, _ in ctx.config.base_runtime.casks
        )

    def execute(self, ctx: ProvisionContext) -> str:
        spec = ctx.config.base_runtime
        done: list[str] = []

        if ctx.host.process_running(spec.rosetta_process):
            logger.info("Rosetta 2 already installed")
        else:
            logger.info("Installing Rosetta 2...")
            try:
                ctx.host.run(
                    ["/usr/sbin/softwareupdate", "--install-rosetta", "--agree-to-license"],
                    capture=False,
                ).check()
            except CommandError as exc:
                raise DependencyInstallError(f"Rosetta 2 installation failed: {exc}") from exc
            logger.info("Rosetta 2 installed")
            done.append("rosetta")

        if not ctx.brew.available():
            raise PreflightError(
                "Homebrew is required to install Wine and Sikarugir. "
                "Install it from https://brew.sh and re-run."
            )

        for cask, reference in spec.casks:
            if ctx.brew.is_installed(cask):
                logger.info("%s already installed", cask)
                continue
            ctx.brew.install(reference)
            logger.info("%s installed", cask)
            done.append(cask)

        return f"installed: {', '.join(done)}" if done else "nothing to install"
