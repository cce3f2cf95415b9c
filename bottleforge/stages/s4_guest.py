"""Stage 4 — Guest installed.

The guest launcher patches itself on first run, so installing it is a
single download straight into the prefix.
"""

from __future__ import annotations

import logging

from bottleforge.core.context import ProvisionContext
from bottleforge.stages.base import BaseStage

logger = logging.getLogger(__name__)


class GuestStage(BaseStage):
    """Stage 4: place the guest launcher in drive_c."""

    @property
    def stage_id(self) -> str:
        return "guest"

    @property
    def display_name(self) -> str:
        return "Guest installed"

    def is_complete(self, ctx: ProvisionContext) -> bool:
        exe = ctx.config.guest_exe
        return exe.is_file() and exe.stat().st_size > 0

    def execute(self, ctx: ProvisionContext) -> str:
        cfg = ctx.config
        archive = ctx.artifact_store.fetch(
            cfg.guest.installer_url,
            cfg.guest_exe,
            description=f"{cfg.guest.executable} launcher",
        )
        logger.info("%s placed at: %s", cfg.guest.executable, cfg.guest.install_path)
        return f"{cfg.guest.executable} ({archive.size_bytes} bytes)"
