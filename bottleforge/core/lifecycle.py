"""Uninstall and purge.

Runs instead of the forward path.  Nothing is touched until the operator
confirms with ``y``/``Y``; the artifact cache and safety snapshots are
never removed.
"""

from __future__ import annotations

import logging
import shutil
from collections.abc import Callable
from pathlib import Path

from bottleforge.core.host import Host
from bottleforge.core.package_manager import Homebrew
from bottleforge.models.config import ProvisionConfig
from bottleforge.models.reports import UninstallReport

logger = logging.getLogger(__name__)

ConfirmFn = Callable[[str], str]


def _stdin_confirm(prompt: str) -> str:
    return input(prompt)


class LifecycleManager:
    """Removes what the forward path installed.

    Parameters
    ----------
    config:
        Provisioning configuration naming the installed paths.
    host:
        Host used for launchctl, and for Homebrew on purge.
    confirm:
        Reads the operator's answer to a prompt.  ``EOFError`` counts as
        a decline.
    """

    def __init__(
        self,
        config: ProvisionConfig,
        host: Host,
        confirm: ConfirmFn | None = None,
    ) -> None:
        self.config = config
        self.host = host
        self.brew = Homebrew(host)
        self._confirm = confirm or _stdin_confirm

    def targets(self) -> list[Path]:
        """Paths removed by uninstall, in removal order."""
        return [
            self.config.wrapper_app,
            self.config.support_dir,
            self.config.launch_agent_plist,
        ]

    def confirmed(self, purge: bool) -> bool:
        what = "EVERYTHING (wrapper, prefix, base runtime casks)" if purge else "the wrapper and prefix"
        try:
            answer = self._confirm(f"This will remove {what}. Continue? (y/N) ")
        except EOFError:
            return False
        return answer.strip() in ("y", "Y")

    def clear_session_env(self) -> None:
        """Drop the audio variables the LaunchAgent and audio stage exported."""
        audio = self.config.audio
        for name in dict.fromkeys([*audio.agent_env, *audio.session_env]):
            if self.host.run(["launchctl", "unsetenv", name]).ok:
                logger.info("Unset %s for current session", name)
            else:
                logger.warning("Could not unset %s for current session", name)

    def uninstall(self, purge: bool = False) -> UninstallReport:
        if not self.confirmed(purge):
            logger.info("Cancelled")
            return UninstallReport(confirmed=False, purge=purge)

        removed: list[Path] = []
        absent: list[str] = []
        for path in self.targets():
            if path.is_dir() and not path.is_symlink():
                shutil.rmtree(path)
            elif path.exists() or path.is_symlink():
                path.unlink()
            else:
                absent.append(str(path))
                continue
            removed.append(path)
            logger.info("Removed %s", path)

        self.clear_session_env()

        packages: list[str] = []
        if purge:
            for cask, _ref in reversed(self.config.base_runtime.casks):
                if self.brew.uninstall(cask):
                    packages.append(cask)
                else:
                    absent.append(cask)

        logger.info("Uninstall complete" if not purge else "Purge complete")
        return UninstallReport(
            confirmed=True,
            purge=purge,
            removed_paths=removed,
            removed_packages=packages,
            absent=absent,
        )
