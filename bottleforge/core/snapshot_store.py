"""Safety snapshots taken before destructive or overwriting operations.

Layout: ``{snapshot_dir}/snapshot_{label}_{YYYYmmdd_HHMMSS_ffffff}/`` holding
copies of the captured paths plus a ``snapshot.json`` manifest.  Snapshots
are retained until explicitly pruned; only the most recent one can be
restored.
"""

from __future__ import annotations

import logging
import re
import shutil
from datetime import datetime, timezone
from pathlib import Path

from bottleforge.models.snapshots import SafetySnapshot, SnapshotEntry

logger = logging.getLogger(__name__)

MANIFEST_NAME = "snapshot.json"
_LABEL_UNSAFE = re.compile(r"[^A-Za-z0-9_.-]+")


class SnapshotError(RuntimeError):
    """Raised when a snapshot cannot be found or restored."""


class SnapshotStore:
    """Creates, lists, prunes and restores safety snapshots.

    Parameters
    ----------
    base_path:
        Root directory for snapshots.  Created lazily on first snapshot.
    """

    def __init__(self, base_path: Path) -> None:
        self._base = Path(base_path)

    @property
    def base_path(self) -> Path:
        return self._base

    # ------------------------------------------------------------------
    # Take
    # ------------------------------------------------------------------

    def take(self, label: str, sources: list[Path]) -> SafetySnapshot | None:
        """Copy every existing path in *sources* into a new snapshot.

        Returns None (and creates nothing) when none of the sources exist.
        """
        existing = [Path(p) for p in sources if Path(p).exists() or Path(p).is_symlink()]
        if not existing:
            return None

        now = datetime.now(timezone.utc)
        safe_label = _LABEL_UNSAFE.sub("-", label).strip("-") or "snapshot"
        snapshot_id = f"snapshot_{safe_label}_{now.strftime('%Y%m%d_%H%M%S_%f')}"
        root = self._base / snapshot_id
        root.mkdir(parents=True, exist_ok=False)

        entries: list[SnapshotEntry] = []
        for index, src in enumerate(existing):
            stored_as = f"{index:03d}_{src.name}"
            dest = root / stored_as
            if src.is_dir() and not src.is_symlink():
                shutil.copytree(src, dest, symlinks=True)
            else:
                shutil.copy2(src, dest, follow_symlinks=False)
            entries.append(SnapshotEntry(original_path=src, stored_as=stored_as))

        snapshot = SafetySnapshot(
            snapshot_id=snapshot_id,
            label=label,
            path=root,
            entries=entries,
            created_at=now,
        )
        (root / MANIFEST_NAME).write_text(snapshot.model_dump_json(indent=2), encoding="utf-8")
        logger.info("Safety snapshot: %s", root)
        return snapshot

    # ------------------------------------------------------------------
    # Query
    # ------------------------------------------------------------------

    def list_snapshots(self) -> list[SafetySnapshot]:
        """All readable snapshots, oldest first."""
        if not self._base.is_dir():
            return []
        snapshots: list[SafetySnapshot] = []
        for manifest in self._base.glob(f"snapshot_*/{MANIFEST_NAME}"):
            try:
                snapshots.append(
                    SafetySnapshot.model_validate_json(manifest.read_text(encoding="utf-8"))
                )
            except ValueError as exc:
                logger.warning("Ignoring unreadable snapshot manifest %s: %s", manifest, exc)
        snapshots.sort(key=lambda s: (s.created_at, s.snapshot_id))
        return snapshots

    def latest(self) -> SafetySnapshot | None:
        snapshots = self.list_snapshots()
        return snapshots[-1] if snapshots else None

    # ------------------------------------------------------------------
    # Prune / restore
    # ------------------------------------------------------------------

    def prune(self, keep: int) -> list[SafetySnapshot]:
        """Delete all but the newest *keep* snapshots; returns the deleted ones."""
        if keep < 0:
            raise ValueError("keep must be >= 0")
        snapshots = self.list_snapshots()
        doomed = snapshots[: max(len(snapshots) - keep, 0)]
        for snapshot in doomed:
            shutil.rmtree(snapshot.path, ignore_errors=False)
            logger.info("Pruned snapshot %s", snapshot.snapshot_id)
        return doomed

    def restore_latest(self) -> tuple[SafetySnapshot, SafetySnapshot | None]:
        """Put the newest snapshot's files back where they came from.

        The current state of those paths is snapshotted first, so a restore
        can itself be undone.  Returns ``(restored, pre_restore)``.
        """
        snapshot = self.latest()
        if snapshot is None:
            raise SnapshotError(f"No snapshots found in {self._base}")

        pre_restore = self.take(
            f"pre-restore-{snapshot.label}",
            [entry.original_path for entry in snapshot.entries],
        )
        for entry in snapshot.entries:
            src = snapshot.path / entry.stored_as
            dest = entry.original_path
            if not src.exists() and not src.is_symlink():
                logger.warning("Skipping (not in snapshot): %s", dest)
                continue
            dest.parent.mkdir(parents=True, exist_ok=True)
            if dest.is_dir() and not dest.is_symlink():
                shutil.rmtree(dest)
            elif dest.exists() or dest.is_symlink():
                dest.unlink()
            if src.is_dir() and not src.is_symlink():
                shutil.copytree(src, dest, symlinks=True)
            else:
                shutil.copy2(src, dest, follow_symlinks=False)
            logger.info("Restored: %s", dest)
        return snapshot, pre_restore
