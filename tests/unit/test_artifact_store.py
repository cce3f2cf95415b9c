"""Tests for ArtifactStore — cached fetch, empty-file handling, extraction."""

from __future__ import annotations

import hashlib
import io
import tarfile
import tomllib
from pathlib import Path

import pytest

from bottleforge.core.artifact_store import ArtifactStore
from bottleforge.core.cleanup import TempRegistry
from bottleforge.core.errors import DownloadError, ExtractError
from bottleforge.models.artifacts import ResolutionSource
from bottleforge.models.config import ProvisionConfig
from conftest import FakeSession, engine_archive, make_tar_xz, template_archive


@pytest.fixture
def store(config: ProvisionConfig, session: FakeSession, registry: TempRegistry) -> ArtifactStore:
    return ArtifactStore(config, session, registry)


@pytest.fixture
def engine_id(config: ProvisionConfig):
    return config.engine_source.identifier("10.0_10", ResolutionSource.INDEX)


@pytest.fixture
def template_id(config: ProvisionConfig):
    return config.template_source.identifier("1.0.10", ResolutionSource.INDEX)


class TestFetch:
    def test_fetch_writes_destination(self, store: ArtifactStore, session: FakeSession, tmp_path: Path):
        session.add("https://example.test/a.bin", content=b"payload")
        result = store.fetch("https://example.test/a.bin", tmp_path / "out" / "a.bin")

        assert result.path.read_bytes() == b"payload"
        assert result.size_bytes == 7
        assert result.sha256 == hashlib.sha256(b"payload").hexdigest()
        assert not (tmp_path / "out" / "a.bin.part").exists()

    def test_empty_download_fails_and_leaves_nothing(
        self, store: ArtifactStore, session: FakeSession, tmp_path: Path
    ):
        session.add("https://example.test/empty", content=b"")
        dest = tmp_path / "empty.bin"
        with pytest.raises(DownloadError, match="empty"):
            store.fetch("https://example.test/empty", dest)
        assert not dest.exists()
        assert not dest.with_name("empty.bin.part").exists()

    def test_http_error_is_download_error(self, store: ArtifactStore, tmp_path: Path):
        # unknown route -> 404
        with pytest.raises(DownloadError):
            store.fetch("https://example.test/missing", tmp_path / "x.bin")
        assert not (tmp_path / "x.bin").exists()

    def test_connection_error_is_download_error(
        self, store: ArtifactStore, session: FakeSession, tmp_path: Path
    ):
        session.offline = True
        with pytest.raises(DownloadError):
            store.fetch("https://example.test/a.bin", tmp_path / "a.bin")

    def test_checksum_mismatch(self, store: ArtifactStore, session: FakeSession, tmp_path: Path):
        session.add("https://example.test/a.bin", content=b"payload")
        with pytest.raises(DownloadError, match="verification"):
            store.fetch(
                "https://example.test/a.bin",
                tmp_path / "a.bin",
                expected_sha256="sha256:" + "0" * 64,
            )
        assert not (tmp_path / "a.bin").exists()

    def test_checksum_match(self, store: ArtifactStore, session: FakeSession, tmp_path: Path):
        session.add("https://example.test/a.bin", content=b"payload")
        digest = hashlib.sha256(b"payload").hexdigest()
        result = store.fetch("https://example.test/a.bin", tmp_path / "a.bin", expected_sha256=digest)
        assert result.sha256 == digest

    def test_part_file_registered_until_promoted(
        self, config: ProvisionConfig, session: FakeSession, tmp_path: Path
    ):
        registry = TempRegistry()
        store = ArtifactStore(config, session, registry)
        session.add("https://example.test/a.bin", content=b"payload")
        store.fetch("https://example.test/a.bin", tmp_path / "a.bin")
        assert registry.paths == []


class TestAcquire:
    def test_cache_hit_skips_network(self, store: ArtifactStore, session: FakeSession, engine_id):
        first = store.acquire(engine_id)
        second = store.acquire(engine_id)
        assert first.path == second.path == store.archive_path(engine_id)
        assert session.calls_to(engine_id.url) == 1

    def test_zero_byte_cache_entry_is_not_a_hit(
        self, store: ArtifactStore, session: FakeSession, engine_id
    ):
        path = store.archive_path(engine_id)
        path.parent.mkdir(parents=True)
        path.write_bytes(b"")
        assert store.cached(path) is None
        assert not path.exists()

        store.acquire(engine_id)
        assert session.calls_to(engine_id.url) == 1
        assert path.stat().st_size > 0

    def test_failed_empty_fetch_leaves_no_phantom_hit(
        self, store: ArtifactStore, session: FakeSession, engine_id
    ):
        session.add(engine_id.url, content=b"")
        with pytest.raises(DownloadError):
            store.acquire(engine_id)

        session.add(engine_id.url, content=engine_archive())
        result = store.acquire(engine_id)
        assert session.calls_to(engine_id.url) == 2
        assert result.size_bytes > 0


class TestExtract:
    def test_strip_components(self, store: ArtifactStore, tmp_path: Path):
        archive = tmp_path / "engine.tar.xz"
        archive.write_bytes(engine_archive())
        dest = tmp_path / "wine"
        store.extract(archive, dest, strip_levels=1, marker=dest / "bin")

        assert (dest / "bin" / "wine").is_file()
        assert (dest / "version").is_file()
        assert not (dest / "wswine.bundle").exists()

    def test_missing_marker_is_extract_error(self, store: ArtifactStore, tmp_path: Path):
        archive = tmp_path / "a.tar.xz"
        archive.write_bytes(make_tar_xz({"top/file.txt": b"x"}))
        with pytest.raises(ExtractError, match="not found"):
            store.extract(archive, tmp_path / "out", marker=tmp_path / "out" / "bin")

    def test_corrupt_archive_is_extract_error(self, store: ArtifactStore, tmp_path: Path):
        archive = tmp_path / "bad.tar.xz"
        archive.write_bytes(b"definitely not a tarball")
        with pytest.raises(ExtractError):
            store.extract(archive, tmp_path / "out")

    def test_declared_python_floor_has_extraction_filters(self):
        # tarfile's ``filter=`` argument arrived in 3.11.4
        assert hasattr(tarfile, "data_filter")
        pyproject = Path(__file__).resolve().parents[2] / "pyproject.toml"
        floor = tomllib.loads(pyproject.read_text())["project"]["requires-python"]
        assert floor == ">=3.11.4"

    def test_unsafe_member_rejected(self, store: ArtifactStore, tmp_path: Path):
        buf = io.BytesIO()
        with tarfile.open(fileobj=buf, mode="w:xz") as tar:
            info = tarfile.TarInfo("../escape.txt")
            info.size = 1
            tar.addfile(info, io.BytesIO(b"x"))
        archive = tmp_path / "evil.tar.xz"
        archive.write_bytes(buf.getvalue())
        with pytest.raises(ExtractError):
            store.extract(archive, tmp_path / "out")
        assert not (tmp_path / "escape.txt").exists()


class TestEnsureExtracted:
    def test_second_call_needs_no_network(
        self, store: ArtifactStore, session: FakeSession, config: ProvisionConfig, template_id
    ):
        marker = config.template_app(template_id.name)
        assert store.ensure_extracted(template_id, config.template_dir, marker) is True
        assert marker.is_dir()
        calls = len(session.calls)

        assert store.ensure_extracted(template_id, config.template_dir, marker) is False
        assert len(session.calls) == calls

    def test_extracts_from_cache_without_network(
        self, store: ArtifactStore, session: FakeSession, config: ProvisionConfig, template_id
    ):
        path = store.archive_path(template_id)
        path.parent.mkdir(parents=True)
        path.write_bytes(template_archive(template_id.name))
        session.offline = True

        marker = config.template_app(template_id.name)
        assert store.ensure_extracted(template_id, config.template_dir, marker) is True
        assert session.calls == []

    def test_corrupt_cached_archive_is_downloaded_again(
        self, store: ArtifactStore, session: FakeSession, config: ProvisionConfig, template_id
    ):
        path = store.archive_path(template_id)
        path.parent.mkdir(parents=True)
        path.write_bytes(b"<html>rate limited</html>")

        marker = config.template_app(template_id.name)
        assert store.ensure_extracted(template_id, config.template_dir, marker) is True
        assert marker.is_dir()
        assert session.calls_to(template_id.url) == 1
        with tarfile.open(path) as tar:
            assert tar.getnames()

    def test_corrupt_download_is_discarded(
        self, store: ArtifactStore, session: FakeSession, config: ProvisionConfig, template_id
    ):
        session.add(template_id.url, content=b"<html>rate limited</html>")
        marker = config.template_app(template_id.name)

        with pytest.raises(ExtractError):
            store.ensure_extracted(template_id, config.template_dir, marker)
        assert not store.archive_path(template_id).exists()
        assert not marker.exists()

        session.add(template_id.url, content=template_archive(template_id.name))
        assert store.ensure_extracted(template_id, config.template_dir, marker) is True
        assert session.calls_to(template_id.url) == 2


def _truncated_template(name: str) -> bytes:
    """A template whose bundle entries precede a member the data filter rejects."""
    buf = io.BytesIO()
    with tarfile.open(fileobj=buf, mode="w:xz") as tar:
        info = tarfile.TarInfo(f"{name}.app/Contents/Info.plist")
        info.size = 2
        tar.addfile(info, io.BytesIO(b"{}"))
        link = tarfile.TarInfo(f"{name}.app/Contents/escape")
        link.type = tarfile.SYMTYPE
        link.linkname = "/etc/passwd"
        tar.addfile(link)
    return buf.getvalue()


class TestAtomicExtract:
    def test_failed_extraction_leaves_no_marker(
        self, store: ArtifactStore, config: ProvisionConfig, tmp_path: Path
    ):
        archive = tmp_path / "template.tar.xz"
        archive.write_bytes(_truncated_template("Template-1.0.10"))
        marker = config.template_app("Template-1.0.10")

        with pytest.raises(ExtractError):
            store.extract(archive, config.template_dir, marker=marker)
        assert not marker.exists()
        assert not list(config.template_dir.parent.glob(".*.extracting"))

    def test_existing_entries_survive_failed_extraction(self, store: ArtifactStore, tmp_path: Path):
        dest = tmp_path / "out"
        (dest / "keep").mkdir(parents=True)
        archive = tmp_path / "bad.tar.xz"
        archive.write_bytes(b"not a tarball")

        with pytest.raises(ExtractError):
            store.extract(archive, dest)
        assert (dest / "keep").is_dir()

    def test_extract_replaces_previous_contents(self, store: ArtifactStore, tmp_path: Path):
        dest = tmp_path / "wine"
        (dest / "bin").mkdir(parents=True)
        (dest / "bin" / "stale").write_text("old")
        archive = tmp_path / "engine.tar.xz"
        archive.write_bytes(engine_archive())

        store.extract(archive, dest, strip_levels=1, marker=dest / "bin")
        assert (dest / "bin" / "wine").is_file()
        assert not (dest / "bin" / "stale").exists()

    def test_staging_released_from_registry(
        self, store: ArtifactStore, registry: TempRegistry, tmp_path: Path
    ):
        archive = tmp_path / "engine.tar.xz"
        archive.write_bytes(engine_archive())
        store.extract(archive, tmp_path / "wine", strip_levels=1)
        assert registry.paths == []
