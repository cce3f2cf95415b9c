"""Scoped temporary-file registry.

Replaces an exit trap: enter the registry before creating any temporary
file, register each one as it is created, and every registered path that
still exists is removed when the scope exits, whether it exits normally,
by early return, or by exception.  Paths promoted to their final location
are discarded from the registry so they survive.
"""

from __future__ import annotations

import logging
import shutil
from pathlib import Path
from types import TracebackType

logger = logging.getLogger(__name__)


class TempRegistry:
    """Ordered set of temporary paths released together."""

    def __init__(self) -> None:
        self._paths: list[Path] = []
        self._active = False

    def __enter__(self) -> TempRegistry:
        self._active = True
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        removed = self.release()
        if exc_type is not None and removed:
            logger.info("Removed %d temporary file(s) after failure", len(removed))
        self._active = False

    @property
    def active(self) -> bool:
        return self._active

    @property
    def paths(self) -> list[Path]:
        return list(self._paths)

    def register(self, path: Path) -> Path:
        """Track *path* for removal; returns it for convenience."""
        path = Path(path)
        if path not in self._paths:
            self._paths.append(path)
        return path

    def discard(self, path: Path) -> None:
        """Stop tracking *path* (it became a permanent file)."""
        path = Path(path)
        if path in self._paths:
            self._paths.remove(path)

    def release(self) -> list[Path]:
        """Remove every tracked path that still exists, newest first."""
        removed: list[Path] = []
        for path in reversed(self._paths):
            try:
                if path.is_symlink() or path.is_file():
                    path.unlink()
                    removed.append(path)
                elif path.is_dir():
                    shutil.rmtree(path)
                    removed.append(path)
            except OSError as exc:
                logger.warning("Could not remove temporary %s: %s", path, exc)
        self._paths.clear()
        return removed
