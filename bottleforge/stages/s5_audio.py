"""Stage 5 — Audio environment configured.

Wine's WASAPI path crackles on CoreAudio; forcing SDL onto DirectSound
avoids it.  The wrapper does not forward arbitrary plist keys as
environment variables, so a login LaunchAgent sets them with
``launchctl setenv`` and the current session gets them directly.  Session
variables vanish at logout, so the stage only counts as done while launchd
still exports them; a later run puts them back without touching the agent.
"""

from __future__ import annotations

import logging
import os
import plistlib
from typing import Any
from xml.parsers.expat import ExpatError

from bottleforge.core.context import ProvisionContext
from bottleforge.stages.base import BaseStage

logger = logging.getLogger(__name__)


def launch_agent_document(ctx: ProvisionContext) -> dict[str, Any]:
    """The LaunchAgent property list that exports the SDL settings."""
    args: list[str] = ["/bin/launchctl", "setenv"]
    for name, value in ctx.config.audio.agent_env.items():
        args.extend([name, value])
    return {
        "Label": ctx.config.launch_agent_label,
        "ProgramArguments": args,
        "RunAtLoad": True,
    }


class AudioStage(BaseStage):
    """Stage 5: SDL DirectSound LaunchAgent."""

    @property
    def stage_id(self) -> str:
        return "audio"

    @property
    def display_name(self) -> str:
        return "Audio environment configured"

    def is_complete(self, ctx: ProvisionContext) -> bool:
        return _agent_current(ctx) and _session_env_live(ctx)

    def verify(self, ctx: ProvisionContext) -> bool:
        # the session export is best effort; the agent covers later logins
        return _agent_current(ctx)

    def execute(self, ctx: ProvisionContext) -> str:
        path = ctx.config.launch_agent_plist
        if _agent_current(ctx):
            logger.info("LaunchAgent already current: %s", path)
        else:
            path.parent.mkdir(parents=True, exist_ok=True)
            if path.exists():
                ctx.snapshots.take("launch-agent", [path])

            tmp = path.with_name(path.name + ".tmp")
            ctx.registry.register(tmp)
            with tmp.open("wb") as fh:
                plistlib.dump(launch_agent_document(ctx), fh)
            os.replace(tmp, path)
            ctx.registry.discard(tmp)
            logger.info("LaunchAgent created: %s", path)

        for name, value in ctx.config.audio.session_env.items():
            result = ctx.host.run(["launchctl", "setenv", name, value])
            if result.ok:
                logger.info("%s=%s set for current session", name, value)
            else:
                logger.warning("Could not set %s for current session", name)

        ctx.summary["Audio"] = ", ".join(
            f"{k}={v}" for k, v in ctx.config.audio.agent_env.items()
        )
        return f"LaunchAgent {ctx.config.launch_agent_label}"


def _agent_current(ctx: ProvisionContext) -> bool:
    path = ctx.config.launch_agent_plist
    if not path.is_file():
        return False
    try:
        with path.open("rb") as fh:
            current = plistlib.load(fh)
    except (OSError, plistlib.InvalidFileException, ValueError, ExpatError):
        return False
    return current == launch_agent_document(ctx)


def _session_env_live(ctx: ProvisionContext) -> bool:
    """Whether launchd currently exports every session variable."""
    for name, value in ctx.config.audio.session_env.items():
        result = ctx.host.run(["launchctl", "getenv", name])
        if not result.ok or result.stdout.strip() != value:
            return False
    return True
