"""Safety snapshot models."""

from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field


class SnapshotEntry(BaseModel):
    """One file or directory captured in a snapshot."""

    model_config = ConfigDict(frozen=True)

    original_path: Path
    stored_as: str  # relative to the snapshot directory


class SafetySnapshot(BaseModel):
    """A backup taken immediately before a mutating operation."""

    model_config = ConfigDict(frozen=True)

    snapshot_id: str
    label: str
    path: Path
    entries: list[SnapshotEntry] = []
    created_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc)
    )
