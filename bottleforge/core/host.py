"""Host boundary — the only place that inspects or drives the real machine.

Stages and components never call ``platform``/``subprocess`` directly; they
go through a ``Host``.  ``SystemHost`` talks to macOS, tests substitute a
fake that records commands and reports canned facts.
"""

from __future__ import annotations

import logging
import platform
import shutil
import subprocess
from collections.abc import Sequence
from pathlib import Path
from typing import Protocol, runtime_checkable

from pydantic import BaseModel, ConfigDict

from bottleforge.core.errors import CommandError

logger = logging.getLogger(__name__)


class CommandResult(BaseModel):
    """Outcome of an external command."""

    model_config = ConfigDict(frozen=True)

    argv: list[str]
    returncode: int
    stdout: str = ""
    stderr: str = ""

    @property
    def ok(self) -> bool:
        return self.returncode == 0

    def check(self) -> CommandResult:
        """Raise ``CommandError`` unless the command succeeded."""
        if not self.ok:
            raise CommandError(self.argv, self.returncode, self.stderr)
        return self


@runtime_checkable
class Host(Protocol):
    """Facts about, and commands on, the machine being provisioned."""

    def machine(self) -> str: ...

    def os_version(self) -> str: ...

    def free_disk_gb(self, path: Path) -> int: ...

    def which(self, name: str) -> str | None: ...

    def process_running(self, name: str) -> bool: ...

    def run(
        self,
        argv: Sequence[str | Path],
        *,
        timeout: float | None = None,
        capture: bool = True,
    ) -> CommandResult: ...


class SystemHost:
    """The real macOS host."""

    def machine(self) -> str:
        return platform.machine()

    def os_version(self) -> str:
        release = platform.mac_ver()[0]
        if release:
            return release
        result = self.run(["sw_vers", "-productVersion"])
        return result.stdout.strip() if result.ok else "0.0.0"

    def free_disk_gb(self, path: Path) -> int:
        probe = Path(path)
        while not probe.exists() and probe != probe.parent:
            probe = probe.parent
        return shutil.disk_usage(probe).free // (1024**3)

    def which(self, name: str) -> str | None:
        return shutil.which(name)

    def process_running(self, name: str) -> bool:
        return self.run(["/usr/bin/pgrep", "-x", name]).ok

    def run(
        self,
        argv: Sequence[str | Path],
        *,
        timeout: float | None = None,
        capture: bool = True,
    ) -> CommandResult:
        """Run *argv* and return its result; never raises on non-zero exit.

        With ``capture=False`` the command's output streams straight to the
        terminal, which is what long-running installers want.
        """
        args = [str(a) for a in argv]
        logger.debug("exec: %s", " ".join(args))
        try:
            proc = subprocess.run(
                args,
                capture_output=capture,
                text=True,
                timeout=timeout,
                check=False,
            )
        except FileNotFoundError:
            return CommandResult(argv=args, returncode=127, stderr=f"{args[0]}: not found")
        except subprocess.TimeoutExpired:
            return CommandResult(argv=args, returncode=124, stderr="timed out")
        return CommandResult(
            argv=args,
            returncode=proc.returncode,
            stdout=proc.stdout or "",
            stderr=proc.stderr or "",
        )
