"""Homebrew cask operations for the base runtime and wrapper manager."""

from __future__ import annotations

import logging

from bottleforge.core.errors import CommandError, DependencyInstallError
from bottleforge.core.host import Host

logger = logging.getLogger(__name__)


class Homebrew:
    """Thin wrapper over the ``brew`` CLI.

    Parameters
    ----------
    host:
        Host used to run ``brew``.
    """

    def __init__(self, host: Host, executable: str = "brew") -> None:
        self._host = host
        self._brew = executable

    def available(self) -> bool:
        return self._host.which(self._brew) is not None

    def is_installed(self, cask: str) -> bool:
        return self._host.run([self._brew, "list", "--cask", cask]).ok

    def install(self, reference: str) -> None:
        """Install a cask without the quarantine attribute."""
        logger.info("Installing %s...", reference)
        try:
            self._host.run(
                [self._brew, "install", "--cask", "--no-quarantine", reference],
                capture=False,
            ).check()
        except CommandError as exc:
            raise DependencyInstallError(f"brew could not install {reference}: {exc}") from exc

    def uninstall(self, cask: str) -> bool:
        """Uninstall *cask* if present.  Returns True when something was removed."""
        if not self.is_installed(cask):
            logger.info("%s not installed", cask)
            return False
        self._host.run([self._brew, "uninstall", "--cask", cask], capture=False).check()
        logger.info("Uninstalled %s", cask)
        return True
