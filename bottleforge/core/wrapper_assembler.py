"""Wrapper composition: template skeleton + injected engine.

Steps (each independently skippable):

1. Wrapper already holds ``SharedSupport/wine/bin``: nothing to do.
2. Wrapper exists without it: a partial earlier attempt, deleted and rebuilt.
   Partial wrappers are never repaired in place.
3. Copy the template ``.app`` wholesale.
4. Extract the engine into ``SharedSupport/wine`` stripping its container
   directory; fatal if ``bin`` is still missing.
5. Create the ``Logs`` and ``drive_c`` links the wrapper tooling expects.
6. Clear the quarantine attribute so first launch is not blocked.

Steps 3-4 raise ``AssemblyError``; steps 5-6 only log.
"""

from __future__ import annotations

import logging
import os
import shutil
from pathlib import Path

from bottleforge.core.artifact_store import ArtifactStore
from bottleforge.core.errors import AssemblyError, ExtractError
from bottleforge.core.host import Host
from bottleforge.models.reports import AssemblyReport

logger = logging.getLogger(__name__)

ENGINE_MARKER = Path("Contents/SharedSupport/wine/bin")
ENGINE_DIR = Path("Contents/SharedSupport/wine")

# link name (relative to Contents) -> relative target
WRAPPER_LINKS: dict[str, str] = {
    "Logs": "SharedSupport/Logs",
    "drive_c": "SharedSupport/prefix/drive_c",
}

QUARANTINE_ATTRIBUTE = "com.apple.quarantine"


class WrapperAssembler:
    """Builds a wrapper ``.app`` from a template and an engine archive.

    Parameters
    ----------
    store:
        Used to extract the engine archive.
    host:
        Used to clear the quarantine attribute.
    """

    def __init__(self, store: ArtifactStore, host: Host) -> None:
        self._store = store
        self._host = host

    @staticmethod
    def is_assembled(target: Path) -> bool:
        """Whether *target* already contains the injected engine."""
        return (Path(target) / ENGINE_MARKER).is_dir()

    def assemble(self, template: Path, engine_archive: Path, target: Path) -> AssemblyReport:
        template, engine_archive, target = Path(template), Path(engine_archive), Path(target)

        # 1. Complete wrapper: no-op
        if self.is_assembled(target):
            logger.info("Wrapper already complete with engine, skipping creation")
            return AssemblyReport(
                wrapper=target,
                already_complete=True,
                engine_version=_engine_version(target),
            )

        # 2. Partial wrapper: rebuild from scratch
        rebuilt = False
        if target.exists() or target.is_symlink():
            logger.warning("Wrapper exists but incomplete, rebuilding...")
            _remove_tree(target)
            rebuilt = True

        # 3. Copy template
        if not template.is_dir():
            raise AssemblyError(f"Wrapper template not found: {template}")
        try:
            self._populate(template, engine_archive, target)
        except BaseException:
            # a half-built wrapper must not survive to look complete
            if target.exists() or target.is_symlink():
                _remove_tree(target)
            raise
        version = _engine_version(target) or engine_archive.name
        logger.info("Engine injected: %s", version)

        warnings: list[str] = []

        # 5. Internal links
        links = self.ensure_links(target, warnings)

        # 6. Quarantine
        self.clear_quarantine(target, warnings)

        return AssemblyReport(
            wrapper=target,
            rebuilt_partial=rebuilt,
            engine_version=version,
            links_created=links,
            warnings=warnings,
        )

    def _populate(self, template: Path, engine_archive: Path, target: Path) -> None:
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            shutil.copytree(template, target, symlinks=True)
        except OSError as exc:
            raise AssemblyError(f"Could not copy template into {target}: {exc}") from exc
        logger.info("Wrapper created from template %s", template.name)

        # 4. Inject engine
        wine_dir = target / ENGINE_DIR
        try:
            self._store.extract(engine_archive, wine_dir, strip_levels=1, marker=wine_dir / "bin")
        except ExtractError as exc:
            self._store.discard(engine_archive)
            raise AssemblyError(f"Engine injection failed: {exc}") from exc
        if not self.is_assembled(target):
            raise AssemblyError(f"Engine injection failed: {target / ENGINE_MARKER} not found")

    def ensure_links(self, target: Path, warnings: list[str] | None = None) -> list[str]:
        """Create or correct the wrapper's internal links.  Never raises."""
        contents = Path(target) / "Contents"
        created: list[str] = []
        for name, link_target in WRAPPER_LINKS.items():
            link = contents / name
            try:
                if link.is_symlink() and os.readlink(link) == link_target:
                    continue
                if link.is_symlink() or link.is_file():
                    link.unlink()
                elif link.is_dir():
                    shutil.rmtree(link)
                link.symlink_to(link_target)
                created.append(name)
            except OSError as exc:
                message = f"Could not create wrapper link {name}: {exc}"
                logger.warning(message)
                if warnings is not None:
                    warnings.append(message)
        if created:
            logger.info("Wrapper links created: %s", ", ".join(created))
        return created

    def clear_quarantine(self, target: Path, warnings: list[str] | None = None) -> bool:
        """Recursively drop the quarantine attribute.  Never raises."""
        result = self._host.run(["xattr", "-drs", QUARANTINE_ATTRIBUTE, str(target)])
        if result.ok:
            logger.info("Quarantine attribute removed from wrapper")
            return True
        message = f"Could not clear quarantine attribute on {target}: {result.stderr.strip() or result.returncode}"
        logger.warning(message)
        if warnings is not None:
            warnings.append(message)
        return False


def _engine_version(target: Path) -> str:
    version_file = Path(target) / ENGINE_DIR / "version"
    try:
        return version_file.read_text(encoding="utf-8").strip()
    except OSError:
        return ""


def _remove_tree(path: Path) -> None:
    if path.is_symlink() or path.is_file():
        path.unlink()
    else:
        shutil.rmtree(path)
