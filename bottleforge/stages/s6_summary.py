"""Stage 6 — Summary.

Collects what the run established into ``ctx.summary`` for the final
report.  Reads only; always runs.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import ClassVar

from bottleforge.core.context import ProvisionContext
from bottleforge.core.wrapper_assembler import ENGINE_DIR
from bottleforge.stages.base import BaseStage

logger = logging.getLogger(__name__)


class SummaryStage(BaseStage):
    """Stage 6: final summary gate."""

    is_gate: ClassVar[bool] = True

    @property
    def stage_id(self) -> str:
        return "summary"

    @property
    def display_name(self) -> str:
        return "Summary"

    def execute(self, ctx: ProvisionContext) -> str:
        cfg = ctx.config
        summary = ctx.summary
        summary["Wrapper"] = str(cfg.wrapper_app)

        if "Engine" not in summary:
            version_file = cfg.wrapper_app / ENGINE_DIR / "version"
            if version_file.is_file():
                summary["Engine"] = version_file.read_text(encoding="utf-8").strip()
        summary.setdefault("Launch target", cfg.guest.windows_exe_path)
        summary.setdefault(".NET", " ".join(cfg.dependency_packages))
        if ctx.log_path is not None:
            summary["Log"] = str(ctx.log_path)

        elapsed = (datetime.now(timezone.utc) - ctx.started_at).total_seconds()
        summary["Elapsed"] = format_elapsed(elapsed)

        for key, value in summary.items():
            logger.info("%-14s %s", f"{key}:", value)
        return f"completed in {summary['Elapsed']}"


def format_elapsed(seconds: float) -> str:
    """Format a duration as ``Xm Ys`` (or ``Ys`` under a minute)."""
    total = int(seconds)
    minutes, secs = divmod(total, 60)
    return f"{minutes}m {secs}s" if minutes else f"{secs}s"
