"""Artifact models: resolved identifiers and cached archives."""

from __future__ import annotations

from enum import Enum
from pathlib import Path

from pydantic import BaseModel, ConfigDict


class ArtifactKind(str, Enum):
    """Kinds of versioned payloads the wrapper is composed from."""

    ENGINE = "engine"
    TEMPLATE = "template"


class ResolutionSource(str, Enum):
    """Where an identifier came from."""

    INDEX = "index"
    FALLBACK = "fallback"


class ArtifactSource(BaseModel):
    """Static description of where a kind of artifact is published.

    Asset names look like ``{asset_prefix}{version}{asset_suffix}``, e.g.
    ``WS12WineSikarugir10.0_4.tar.xz`` or ``Template-1.0.10.tar.xz``.
    """

    model_config = ConfigDict(frozen=True)

    kind: ArtifactKind
    index_url: str
    download_url_prefix: str
    asset_prefix: str
    asset_suffix: str = ".tar.xz"
    fallback_version: str

    def identifier(
        self, version: str, source: ResolutionSource
    ) -> ArtifactIdentifier:
        """Build the identifier for *version* published by this source."""
        name = f"{self.asset_prefix}{version}"
        archive_name = f"{name}{self.asset_suffix}"
        return ArtifactIdentifier(
            kind=self.kind,
            version=version,
            name=name,
            archive_name=archive_name,
            url=f"{self.download_url_prefix.rstrip('/')}/{archive_name}",
            source=source,
        )


class ArtifactIdentifier(BaseModel):
    """A resolved, immutable artifact version for one run."""

    model_config = ConfigDict(frozen=True)

    kind: ArtifactKind
    version: str
    name: str  # e.g. "Template-1.0.10"
    archive_name: str  # e.g. "Template-1.0.10.tar.xz"
    url: str
    source: ResolutionSource = ResolutionSource.INDEX

    @property
    def is_fallback(self) -> bool:
        return self.source == ResolutionSource.FALLBACK


class CachedArchive(BaseModel):
    """A completed, non-empty download sitting in the cache."""

    model_config = ConfigDict(frozen=True)

    path: Path
    size_bytes: int
    sha256: str
