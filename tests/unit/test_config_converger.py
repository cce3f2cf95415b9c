"""Tests for ConfigConverger — set-or-create upserts on property lists."""

from __future__ import annotations

import plistlib
from pathlib import Path

import pytest

from bottleforge.core.config_converger import BUNDLE_ID_KEY, ConfigConverger
from bottleforge.core.errors import ConfigError
from bottleforge.core.snapshot_store import SnapshotStore
from bottleforge.models.config import DEFAULT_WRAPPER_SETTINGS, ConfigSetting


def _write_plist(path: Path, data: dict, fmt=plistlib.FMT_XML) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(plistlib.dumps(data, fmt=fmt))
    return path


@pytest.fixture
def store(tmp_path: Path) -> Path:
    return _write_plist(
        tmp_path / "Info.plist",
        {"CFBundleName": "Template", "D3DMETAL": 0, "WINEDEBUG": "-all"},
    )


SETTINGS = [
    ConfigSetting.boolean("D3DMETAL", True),
    ConfigSetting.string("WINEDEBUG", "-plugplay,+loaddll"),
    ConfigSetting.integer("Disable CPUs", 0),
    ConfigSetting.string("Symlink Desktop", "$HOME/Desktop"),
]


class TestApply:
    def test_creates_and_updates(self, store: Path):
        report = ConfigConverger().apply(store, SETTINGS)

        data = plistlib.loads(store.read_bytes())
        assert data["D3DMETAL"] == 1
        assert data["WINEDEBUG"] == "-plugplay,+loaddll"
        assert data["Disable CPUs"] == 0
        assert data["CFBundleName"] == "Template"
        assert report.updated == ["D3DMETAL", "WINEDEBUG"]
        assert report.created == ["Disable CPUs", "Symlink Desktop"]
        assert report.changed and report.ok

    def test_placeholder_stored_literally(self, store: Path):
        ConfigConverger().apply(store, SETTINGS)
        assert plistlib.loads(store.read_bytes())["Symlink Desktop"] == "$HOME/Desktop"

    def test_repeated_apply_is_stable(self, store: Path):
        converger = ConfigConverger()
        converger.apply(store, DEFAULT_WRAPPER_SETTINGS)
        once = store.read_bytes()
        for _ in range(3):
            report = converger.apply(store, DEFAULT_WRAPPER_SETTINGS)
            assert not report.changed
        assert store.read_bytes() == once

    def test_converged_store_not_rewritten(self, store: Path):
        converger = ConfigConverger()
        converger.apply(store, SETTINGS)
        mtime = store.stat().st_mtime_ns
        converger.apply(store, SETTINGS)
        assert store.stat().st_mtime_ns == mtime

    def test_bool_value_is_replaced_by_integer(self, tmp_path: Path):
        store = _write_plist(tmp_path / "Info.plist", {"D3DMETAL": True})
        report = ConfigConverger().apply(store, [ConfigSetting.boolean("D3DMETAL", True)])
        assert report.updated == ["D3DMETAL"]
        value = plistlib.loads(store.read_bytes())["D3DMETAL"]
        assert value == 1 and not isinstance(value, bool)

    def test_failing_key_does_not_abort_others(self, tmp_path: Path):
        store = _write_plist(tmp_path / "Info.plist", {"WINEDEBUG": {"nested": 1}})
        report = ConfigConverger().apply(store, SETTINGS)

        assert [f.key for f in report.failed] == ["WINEDEBUG"]
        assert not report.ok
        data = plistlib.loads(store.read_bytes())
        assert data["D3DMETAL"] == 1
        assert data["WINEDEBUG"] == {"nested": 1}

    def test_binary_format_preserved(self, tmp_path: Path):
        store = _write_plist(tmp_path / "Info.plist", {"A": 1}, fmt=plistlib.FMT_BINARY)
        ConfigConverger().apply(store, SETTINGS)
        assert store.read_bytes().startswith(b"bplist00")

    def test_missing_store_raises(self, tmp_path: Path):
        with pytest.raises(ConfigError, match="not found"):
            ConfigConverger().apply(tmp_path / "nope.plist", SETTINGS)

    def test_unreadable_store_raises(self, tmp_path: Path):
        store = tmp_path / "Info.plist"
        store.write_bytes(b"<plist><dict><key>oops")
        with pytest.raises(ConfigError):
            ConfigConverger().apply(store, SETTINGS)

    def test_snapshot_taken_before_write(self, store: Path, tmp_path: Path):
        snapshots = SnapshotStore(tmp_path / "snaps")
        original = store.read_bytes()
        report = ConfigConverger(snapshots).apply(store, SETTINGS)

        snap = snapshots.latest()
        assert snap is not None and report.snapshot_id == snap.snapshot_id
        assert (snap.path / snap.entries[0].stored_as).read_bytes() == original

    def test_no_snapshot_when_unchanged(self, store: Path, tmp_path: Path):
        snapshots = SnapshotStore(tmp_path / "snaps")
        converger = ConfigConverger(snapshots)
        converger.apply(store, SETTINGS)
        report = converger.apply(store, SETTINGS)
        assert report.snapshot_id is None
        assert len(snapshots.list_snapshots()) == 1


class TestQueries:
    def test_pending_and_converged(self, store: Path):
        converger = ConfigConverger()
        assert converger.pending(store, SETTINGS) == [
            "D3DMETAL",
            "WINEDEBUG",
            "Disable CPUs",
            "Symlink Desktop",
        ]
        converger.apply(store, SETTINGS)
        assert converger.is_converged(store, SETTINGS)

    def test_missing_store_is_not_converged(self, tmp_path: Path):
        assert not ConfigConverger().is_converged(tmp_path / "nope.plist", SETTINGS)


class TestBundleIdentifier:
    def test_existing_identifier_preserved(self, tmp_path: Path):
        store = _write_plist(tmp_path / "Info.plist", {BUNDLE_ID_KEY: "com.sikarugir.outlands.1a2b3c4d"})
        setting = ConfigConverger().bundle_identifier_setting(store, "com.sikarugir.outlands")
        assert setting.value == "com.sikarugir.outlands.1a2b3c4d"

    def test_foreign_identifier_replaced(self, tmp_path: Path):
        store = _write_plist(tmp_path / "Info.plist", {BUNDLE_ID_KEY: "com.sikarugir.Template"})
        setting = ConfigConverger().bundle_identifier_setting(store, "com.sikarugir.outlands")
        assert setting.value.startswith("com.sikarugir.outlands.")
        assert len(setting.value.rsplit(".", 1)[1]) == 8
