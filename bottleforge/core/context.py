"""Run-wide context handed to every stage."""

from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path

import requests

from bottleforge.core.artifact_store import ArtifactStore
from bottleforge.core.cleanup import TempRegistry
from bottleforge.core.config_converger import ConfigConverger
from bottleforge.core.host import Host
from bottleforge.core.package_manager import Homebrew
from bottleforge.core.snapshot_store import SnapshotStore
from bottleforge.core.version_resolver import VersionResolver
from bottleforge.core.wrapper_assembler import WrapperAssembler
from bottleforge.models.artifacts import ArtifactIdentifier, ArtifactKind
from bottleforge.models.config import ProvisionConfig


class ProvisionContext:
    """Components and per-run state shared by the stages.

    Identifiers are resolved at most once per run and never replaced;
    ``summary`` collects the facts the final stage reports.
    """

    def __init__(
        self,
        *,
        run_id: str,
        config: ProvisionConfig,
        host: Host,
        session: requests.Session,
        registry: TempRegistry,
        log_path: Path | None = None,
    ) -> None:
        self.run_id = run_id
        self.config = config
        self.host = host
        self.session = session
        self.registry = registry
        self.log_path = log_path
        self.started_at = datetime.now(timezone.utc)

        self.snapshots = SnapshotStore(config.snapshot_dir)
        self.artifact_store = ArtifactStore(config, session, registry)
        self.resolver = VersionResolver(config, session)
        self.assembler = WrapperAssembler(self.artifact_store, host)
        self.converger = ConfigConverger(self.snapshots)
        self.brew = Homebrew(host)

        self.identifiers: dict[ArtifactKind, ArtifactIdentifier] = {}
        self.summary: dict[str, str] = {}

    def identifier(self, kind: ArtifactKind) -> ArtifactIdentifier:
        """Resolve *kind* on first use; later calls return the same value."""
        if kind not in self.identifiers:
            self.identifiers[kind] = self.resolver.resolve(kind)
        return self.identifiers[kind]
