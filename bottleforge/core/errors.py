"""Error kinds raised by the provisioning engine.

Fatal errors unwind to the orchestrator, which fails the current stage,
releases temporary files and reports a non-zero outcome.  Non-fatal errors
(``ResolutionError``, ``ConfigError``) are logged where they occur and the
run continues.
"""

from __future__ import annotations

from typing import ClassVar


class ProvisionError(RuntimeError):
    """Base class for every provisioning failure."""

    fatal: ClassVar[bool] = True


class PreflightError(ProvisionError):
    """Host is unsupported or lacks resources; raised before any mutation."""


class ResolutionError(ProvisionError):
    """A remote release index could not be used; triggers the fallback."""

    fatal: ClassVar[bool] = False


class DownloadError(ProvisionError):
    """A transfer did not complete or produced an empty/mismatched file."""


class ExtractError(ProvisionError):
    """An archive was corrupt or its expected marker is absent afterwards."""


class AssemblyError(ProvisionError):
    """The wrapper could not be composed from template and engine."""


class DependencyInstallError(ProvisionError):
    """An external package or prefix dependency failed to install."""


class ConfigError(ProvisionError):
    """A configuration key could not be converged."""

    fatal: ClassVar[bool] = False

    def __init__(self, message: str, key: str = "") -> None:
        super().__init__(message)
        self.key = key


class CommandError(ProvisionError):
    """An external command exited non-zero."""

    def __init__(self, argv: list[str], returncode: int, stderr: str = "") -> None:
        detail = f": {stderr.strip()}" if stderr and stderr.strip() else ""
        super().__init__(
            f"Command failed (exit {returncode}): {' '.join(argv)}{detail}"
        )
        self.argv = list(argv)
        self.returncode = returncode
        self.stderr = stderr


class StageInconsistencyError(ProvisionError):
    """A stage body ran but did not establish its own postcondition."""
