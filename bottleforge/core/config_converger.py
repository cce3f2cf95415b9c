"""Declarative convergence of the wrapper's property-list store.

Each ``ConfigSetting`` is upserted: an existing key is updated in place, a
missing key is created with its declared type.  Applying the same sequence
any number of times leaves the store in the same terminal state, and a store
that is already converged is not rewritten at all.

A key that cannot be set (for example because a container value sits under
that name) is reported and skipped; the remaining keys still converge.
"""

from __future__ import annotations

import logging
import os
import plistlib
import uuid
from collections.abc import Sequence
from pathlib import Path
from typing import Any
from xml.parsers.expat import ExpatError

from bottleforge.core.errors import ConfigError
from bottleforge.core.snapshot_store import SnapshotStore
from bottleforge.models.config import ConfigSetting, SettingType
from bottleforge.models.reports import ConvergeReport, KeyFailure

logger = logging.getLogger(__name__)

BUNDLE_ID_KEY = "CFBundleIdentifier"


class ConfigConverger:
    """Applies typed settings to a plist with set-or-create semantics.

    Parameters
    ----------
    snapshots:
        When given, the store is snapshotted before it is rewritten.
    """

    def __init__(self, snapshots: SnapshotStore | None = None) -> None:
        self._snapshots = snapshots

    # ------------------------------------------------------------------
    # Read-only queries
    # ------------------------------------------------------------------

    def pending(self, store: Path, settings: Sequence[ConfigSetting]) -> list[str]:
        """Keys whose stored value differs from the desired one."""
        try:
            data, _ = _load(store)
        except ConfigError:
            return [s.key for s in settings]
        return [s.key for s in settings if not _matches(data.get(s.key), s)]

    def is_converged(self, store: Path, settings: Sequence[ConfigSetting]) -> bool:
        return not self.pending(store, settings)

    # ------------------------------------------------------------------
    # Apply
    # ------------------------------------------------------------------

    def apply(self, store: Path, settings: Sequence[ConfigSetting]) -> ConvergeReport:
        """Upsert every setting in order and write the store once.

        Raises ``ConfigError`` only when the store itself cannot be read or
        written; per-key problems are collected in the report.
        """
        store = Path(store)
        data, fmt = _load(store)

        created: list[str] = []
        updated: list[str] = []
        unchanged: list[str] = []
        failed: list[KeyFailure] = []

        for setting in settings:
            try:
                outcome = _upsert(data, setting)
            except ConfigError as exc:
                logger.warning("Config key %r not applied: %s", setting.key, exc)
                failed.append(KeyFailure(key=setting.key, reason=str(exc)))
                continue
            {"created": created, "updated": updated, "unchanged": unchanged}[outcome].append(
                setting.key
            )

        snapshot_id: str | None = None
        if created or updated:
            if self._snapshots is not None:
                snapshot = self._snapshots.take("config", [store])
                snapshot_id = snapshot.snapshot_id if snapshot else None
            _write(store, data, fmt)
            logger.info(
                "Converged %s: %d created, %d updated, %d unchanged",
                store.name,
                len(created),
                len(updated),
                len(unchanged),
            )
        else:
            logger.info("%s already converged (%d keys)", store.name, len(unchanged))

        return ConvergeReport(
            store=store,
            created=created,
            updated=updated,
            unchanged=unchanged,
            failed=failed,
            snapshot_id=snapshot_id,
        )

    # ------------------------------------------------------------------
    # Bundle identifier
    # ------------------------------------------------------------------

    def bundle_identifier_setting(self, store: Path, stem: str) -> ConfigSetting:
        """Setting that keeps an existing ``<stem>.*`` identifier or mints one."""
        try:
            data, _ = _load(store)
        except ConfigError:
            data = {}
        existing = data.get(BUNDLE_ID_KEY)
        if isinstance(existing, str) and existing.startswith(f"{stem}."):
            return ConfigSetting.string(BUNDLE_ID_KEY, existing)
        return ConfigSetting.string(BUNDLE_ID_KEY, f"{stem}.{uuid.uuid4().hex[:8]}")

    def read(self, store: Path) -> dict[str, Any]:
        """Return the store's current contents."""
        data, _ = _load(Path(store))
        return data


# ---------------------------------------------------------------------------
# Store I/O
# ---------------------------------------------------------------------------


def _load(store: Path) -> tuple[dict[str, Any], plistlib.PlistFormat]:
    if not store.is_file():
        raise ConfigError(f"Configuration store not found: {store}")
    raw = store.read_bytes()
    fmt = plistlib.FMT_BINARY if raw.startswith(b"bplist00") else plistlib.FMT_XML
    if not raw.strip():
        return {}, fmt
    try:
        data = plistlib.loads(raw)
    except (plistlib.InvalidFileException, ValueError, ExpatError) as exc:
        raise ConfigError(f"Configuration store {store} is unreadable: {exc}") from exc
    if not isinstance(data, dict):
        raise ConfigError(f"Configuration store {store} is not a dictionary")
    return data, fmt


def _write(store: Path, data: dict[str, Any], fmt: plistlib.PlistFormat) -> None:
    tmp = store.with_name(store.name + ".tmp")
    try:
        with tmp.open("wb") as fh:
            plistlib.dump(data, fh, fmt=fmt, sort_keys=False)
        os.replace(tmp, store)
    except OSError as exc:
        tmp.unlink(missing_ok=True)
        raise ConfigError(f"Could not write configuration store {store}: {exc}") from exc


# ---------------------------------------------------------------------------
# Upsert
# ---------------------------------------------------------------------------


def _matches(current: Any, setting: ConfigSetting) -> bool:
    desired = setting.stored_value
    if setting.value_type == SettingType.STRING:
        return isinstance(current, str) and current == desired
    # integer and boolean-as-integer: a real bool is not the stored form
    return (
        isinstance(current, int)
        and not isinstance(current, bool)
        and current == desired
    )


def _upsert(data: dict[str, Any], setting: ConfigSetting) -> str:
    """Set or create one key.  Returns created/updated/unchanged."""
    if setting.key not in data:
        data[setting.key] = setting.stored_value
        return "created"
    current = data[setting.key]
    if _matches(current, setting):
        return "unchanged"
    if isinstance(current, (dict, list)):
        raise ConfigError(
            f"existing value is a {type(current).__name__}, cannot set "
            f"{setting.value_type.value}",
            key=setting.key,
        )
    data[setting.key] = setting.stored_value
    return "updated"
