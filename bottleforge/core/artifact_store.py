"""Versioned archive cache: download, verify, extract.

Cache layout: ``{cache_dir}/{archive_name}``.  The cache is long-lived and
shared across runs; uninstall never touches it.

A file is a cache hit only when it is a non-empty regular file.  Downloads
stream into ``<name>.part`` (tracked by the run's ``TempRegistry``) and are
renamed into place only after they complete and verify, so an interrupted
transfer can never masquerade as a cached archive.
"""

from __future__ import annotations

import logging
import os
import shutil
import tarfile
from collections.abc import Iterator
from pathlib import Path, PurePosixPath

import requests

from bottleforge.core.cleanup import TempRegistry
from bottleforge.core.errors import DownloadError, ExtractError
from bottleforge.core.hasher import sha256_file
from bottleforge.models.artifacts import ArtifactIdentifier, CachedArchive
from bottleforge.models.config import ProvisionConfig

logger = logging.getLogger(__name__)

_CHUNK = 1024 * 256


class ArtifactStore:
    """Downloads and caches versioned archives.

    Parameters
    ----------
    config:
        Supplies the cache directory and download timeouts.
    session:
        ``requests.Session`` (or compatible) used for transfers.
    registry:
        Temporary-file registry for in-flight ``.part`` files.  A private
        one is used when omitted.
    """

    def __init__(
        self,
        config: ProvisionConfig,
        session: requests.Session,
        registry: TempRegistry | None = None,
    ) -> None:
        self._cache_dir = Path(config.cache_dir)
        self._session = session
        self._registry = registry or TempRegistry()
        self._timeout = (config.download_connect_timeout, config.download_read_timeout)

    @property
    def cache_dir(self) -> Path:
        return self._cache_dir

    def archive_path(self, identifier: ArtifactIdentifier) -> Path:
        return self._cache_dir / identifier.archive_name

    # ------------------------------------------------------------------
    # Cache lookups
    # ------------------------------------------------------------------

    def cached(self, path: Path) -> CachedArchive | None:
        """Return the archive at *path* if it is a valid cache hit.

        Zero-byte leftovers are deleted so that the next fetch behaves
        exactly like a first attempt.
        """
        path = Path(path)
        if not path.is_file():
            return None
        size = path.stat().st_size
        if size == 0:
            logger.warning("Discarding empty cached file %s", path)
            path.unlink()
            return None
        return CachedArchive(path=path, size_bytes=size, sha256=sha256_file(path))

    def acquire(self, identifier: ArtifactIdentifier) -> CachedArchive:
        """Return the cached archive for *identifier*, downloading on a miss."""
        path = self.archive_path(identifier)
        hit = self.cached(path)
        if hit is not None:
            logger.info("Archive already cached: %s", identifier.archive_name)
            return hit
        return self.fetch(identifier.url, path, description=identifier.name)

    # ------------------------------------------------------------------
    # Fetch
    # ------------------------------------------------------------------

    def fetch(
        self,
        url: str,
        destination: Path,
        *,
        description: str = "file",
        expected_sha256: str | None = None,
    ) -> CachedArchive:
        """Download *url* to *destination*.

        Raises ``DownloadError`` if the transfer fails, the response is not
        2xx, the result is empty, or it does not match *expected_sha256*.
        Nothing is left at *destination* on failure.
        """
        destination = Path(destination)
        destination.parent.mkdir(parents=True, exist_ok=True)
        partial = self._registry.register(destination.with_name(destination.name + ".part"))
        logger.info("Downloading %s...", description)

        try:
            self._stream_to(url, partial)
        except requests.RequestException as exc:
            _unlink_quietly(partial)
            raise DownloadError(f"Failed to download {description} from {url}: {exc}") from exc
        except OSError as exc:
            _unlink_quietly(partial)
            raise DownloadError(f"Failed to write {description} to {partial}: {exc}") from exc

        size = partial.stat().st_size if partial.exists() else 0
        if size == 0:
            _unlink_quietly(partial)
            raise DownloadError(f"Downloaded {description} is empty (0 bytes)")

        digest = sha256_file(partial)
        if expected_sha256 and digest != expected_sha256.removeprefix("sha256:"):
            _unlink_quietly(partial)
            raise DownloadError(
                f"Downloaded {description} failed verification: sha256 {digest}"
            )

        os.replace(partial, destination)
        self._registry.discard(partial)
        logger.info("Downloaded %s (%s)", description, _human_size(size))
        return CachedArchive(path=destination, size_bytes=size, sha256=digest)

    def _stream_to(self, url: str, target: Path) -> None:
        response = self._session.get(url, stream=True, timeout=self._timeout)
        try:
            response.raise_for_status()
            with target.open("wb") as fh:
                for chunk in response.iter_content(chunk_size=_CHUNK):
                    if chunk:
                        fh.write(chunk)
        finally:
            response.close()

    # ------------------------------------------------------------------
    # Extract
    # ------------------------------------------------------------------

    def extract(
        self,
        archive: Path,
        destination: Path,
        *,
        strip_levels: int = 0,
        marker: Path | None = None,
    ) -> None:
        """Unpack *archive* into *destination*.

        ``strip_levels`` drops that many leading path components from every
        member (like ``tar --strip-components``).  Raises ``ExtractError`` on
        a corrupt archive or when *marker* is missing afterwards.

        Members are unpacked into a sibling staging directory and only moved
        into *destination* once the whole archive has been read, with the
        top-level entry holding *marker* moved last.  A failed or interrupted
        extraction therefore never leaves *marker* behind.
        """
        archive = Path(archive)
        destination = Path(destination)
        relative_marker = Path(marker).relative_to(destination) if marker is not None else None

        staging = self._registry.register(
            destination.with_name(f".{destination.name}.extracting")
        )
        _remove_path(staging)
        staging.mkdir(parents=True)
        logger.info("Extracting %s...", archive.name)
        try:
            try:
                with tarfile.open(archive) as tar:
                    members = list(_strip_members(tar, strip_levels))
                    tar.extractall(staging, members=members, filter="data")
            except (tarfile.TarError, OSError, EOFError) as exc:
                raise ExtractError(f"Failed to extract {archive}: {exc}") from exc

            if relative_marker is not None and not (staging / relative_marker).exists():
                raise ExtractError(
                    f"Extraction of {archive.name} succeeded but {marker} not found"
                )
            try:
                _promote(staging, destination, relative_marker)
            except OSError as exc:
                raise ExtractError(f"Could not move {archive.name} into {destination}: {exc}") from exc
        finally:
            _remove_path(staging)
            self._registry.discard(staging)

    def discard(self, path: Path) -> None:
        """Drop a cached archive that turned out to be unusable."""
        path = Path(path)
        if path.exists():
            logger.warning("Discarding unusable cached archive %s", path.name)
            _unlink_quietly(path)

    def ensure_extracted(
        self,
        identifier: ArtifactIdentifier,
        destination: Path,
        marker: Path,
        *,
        strip_levels: int = 0,
    ) -> bool:
        """Fetch and extract *identifier* unless *marker* already exists.

        Returns True when work was done, False when it was skipped entirely
        (no cache lookup, no network access).

        A cached archive that fails to extract is discarded and downloaded
        once more.  A freshly downloaded archive that fails is discarded
        before the error propagates, so the next run starts clean.
        """
        if Path(marker).exists():
            logger.info("%s already present: %s", identifier.name, marker)
            return False

        path = self.archive_path(identifier)
        hit = self.cached(path)
        if hit is not None:
            logger.info("Archive already cached: %s", identifier.archive_name)
            try:
                self.extract(hit.path, destination, strip_levels=strip_levels, marker=marker)
                return True
            except ExtractError as exc:
                logger.warning(
                    "Cached %s is unusable (%s), downloading again",
                    identifier.archive_name,
                    exc,
                )
                self.discard(hit.path)

        archive = self.fetch(identifier.url, path, description=identifier.name)
        try:
            self.extract(archive.path, destination, strip_levels=strip_levels, marker=marker)
        except ExtractError:
            self.discard(archive.path)
            raise
        return True


def _strip_members(tar: tarfile.TarFile, levels: int) -> Iterator[tarfile.TarInfo]:
    """Yield members with *levels* leading components removed."""
    for member in tar.getmembers():
        if levels <= 0:
            yield member
            continue
        parts = PurePosixPath(member.name).parts
        if len(parts) <= levels:
            continue
        member.name = str(PurePosixPath(*parts[levels:]))
        if member.islnk():
            link_parts = PurePosixPath(member.linkname).parts
            if len(link_parts) <= levels:
                continue
            member.linkname = str(PurePosixPath(*link_parts[levels:]))
        yield member


def _promote(staging: Path, destination: Path, relative_marker: Path | None) -> None:
    """Move every top-level entry of *staging* into *destination*."""
    destination.mkdir(parents=True, exist_ok=True)
    marker_root = relative_marker.parts[0] if relative_marker and relative_marker.parts else None
    entries = sorted(staging.iterdir(), key=lambda p: (p.name == marker_root, p.name))
    for entry in entries:
        target = destination / entry.name
        _remove_path(target)
        os.replace(entry, target)


def _remove_path(path: Path) -> None:
    if path.is_symlink() or path.is_file():
        path.unlink()
    elif path.is_dir():
        shutil.rmtree(path)


def _unlink_quietly(path: Path) -> None:
    try:
        path.unlink()
    except FileNotFoundError:
        pass


def _human_size(size: int) -> str:
    value = float(size)
    for unit in ("B", "KB", "MB", "GB"):
        if value < 1024 or unit == "GB":
            return f"{value:.0f}{unit}" if unit == "B" else f"{value:.1f}{unit}"
        value /= 1024
    return f"{size}B"
