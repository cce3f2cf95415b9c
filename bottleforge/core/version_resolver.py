"""Remote version resolution with a static fallback.

Queries a GitHub-style release index, keeps asset names matching the
artifact's ``{prefix}<version>{suffix}`` pattern and returns the greatest
version under natural ordering.  Any failure degrades to the configured
fallback with a warning; the run never aborts here.
"""

from __future__ import annotations

import logging
from typing import Any

import requests

from bottleforge.core.errors import ResolutionError
from bottleforge.core.hasher import version_sort_key
from bottleforge.models.artifacts import (
    ArtifactIdentifier,
    ArtifactKind,
    ArtifactSource,
    ResolutionSource,
)
from bottleforge.models.config import ProvisionConfig

logger = logging.getLogger(__name__)


class VersionResolver:
    """Resolves the latest published engine and template versions.

    Parameters
    ----------
    config:
        Supplies the artifact sources and the index timeout.
    session:
        ``requests.Session`` (or compatible) used for the index query.
    """

    def __init__(self, config: ProvisionConfig, session: requests.Session) -> None:
        self._sources: dict[ArtifactKind, ArtifactSource] = {
            ArtifactKind.ENGINE: config.engine_source,
            ArtifactKind.TEMPLATE: config.template_source,
        }
        self._session = session
        self._timeout = config.index_timeout

    def source(self, kind: ArtifactKind) -> ArtifactSource:
        return self._sources[kind]

    def resolve(self, kind: ArtifactKind) -> ArtifactIdentifier:
        """Return the newest identifier for *kind*, or the fallback."""
        source = self._sources[kind]
        try:
            version = self._latest_version(source)
        except ResolutionError as exc:
            logger.warning(
                "%s; using fallback %s: %s%s",
                exc,
                kind.value,
                source.asset_prefix,
                source.fallback_version,
            )
            return source.identifier(source.fallback_version, ResolutionSource.FALLBACK)
        return source.identifier(version, ResolutionSource.INDEX)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _latest_version(self, source: ArtifactSource) -> str:
        try:
            response = self._session.get(
                source.index_url,
                headers={"Accept": "application/vnd.github+json"},
                timeout=self._timeout,
            )
            response.raise_for_status()
            releases = response.json()
        except requests.RequestException as exc:
            raise ResolutionError(f"Release index unavailable ({exc})") from exc
        except ValueError as exc:
            raise ResolutionError("Release index returned invalid JSON") from exc

        versions = matching_versions(_asset_names(releases), source)
        if not versions:
            raise ResolutionError(
                f"No {source.asset_prefix}*{source.asset_suffix} assets in release index"
            )
        return max(versions, key=version_sort_key)


def matching_versions(names: list[str], source: ArtifactSource) -> list[str]:
    """Versions embedded in asset *names* that match *source*'s pattern."""
    versions: list[str] = []
    for name in names:
        if not (name.startswith(source.asset_prefix) and name.endswith(source.asset_suffix)):
            continue
        version = name[len(source.asset_prefix) : len(name) - len(source.asset_suffix)]
        if version:
            versions.append(version)
    return versions


def _asset_names(releases: Any) -> list[str]:
    """Collect ``releases[*].assets[*].name`` from an index payload."""
    if isinstance(releases, dict):
        releases = [releases]
    if not isinstance(releases, list):
        return []
    names: list[str] = []
    for release in releases:
        if not isinstance(release, dict):
            continue
        for asset in release.get("assets") or []:
            if isinstance(asset, dict) and isinstance(asset.get("name"), str):
                names.append(asset["name"])
    return names
