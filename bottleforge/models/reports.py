"""Component reports: configuration convergence, assembly, uninstall."""

from __future__ import annotations

from pathlib import Path

from pydantic import BaseModel, ConfigDict


class KeyFailure(BaseModel):
    """A configuration key that could not be converged."""

    model_config = ConfigDict(frozen=True)

    key: str
    reason: str


class ConvergeReport(BaseModel):
    """Per-key result of applying a settings sequence to a store."""

    model_config = ConfigDict(frozen=True)

    store: Path
    created: list[str] = []
    updated: list[str] = []
    unchanged: list[str] = []
    failed: list[KeyFailure] = []
    snapshot_id: str | None = None

    @property
    def changed(self) -> bool:
        return bool(self.created or self.updated)

    @property
    def ok(self) -> bool:
        return not self.failed


class AssemblyReport(BaseModel):
    """What the wrapper assembler did."""

    model_config = ConfigDict(frozen=True)

    wrapper: Path
    already_complete: bool = False
    rebuilt_partial: bool = False
    engine_version: str = ""
    links_created: list[str] = []
    warnings: list[str] = []


class UninstallReport(BaseModel):
    """Result of an uninstall or purge request."""

    model_config = ConfigDict(frozen=True)

    confirmed: bool
    purge: bool = False
    removed_paths: list[Path] = []
    removed_packages: list[str] = []
    absent: list[str] = []
