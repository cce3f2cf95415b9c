"""Stage 3 — Dependencies installed.

Initializes the Wine prefix through the wrapper's own CLI and installs the
.NET runtimes with winetricks, then switches the prefix to Windows XP mode.

Installed state is detected from real files: wineboot creates empty
Framework directories, so .NET counts as present only when both
``mscorlib.dll`` files exist.  Each package install is retried exactly once
before the stage fails.

Also performs two best-effort prefix fixes: dropping ``.ttc`` font entries
from the registry (TrueType collections crash the client's font loader) and
copying core fonts from the host.
"""

from __future__ import annotations

import logging
import shutil
from pathlib import Path

from bottleforge.core.context import ProvisionContext
from bottleforge.core.errors import DependencyInstallError
from bottleforge.core.host import CommandResult
from bottleforge.stages.base import BaseStage

logger = logging.getLogger(__name__)

DOTNET_MARKERS: tuple[str, ...] = (
    "windows/Microsoft.NET/Framework/v2.0.50727/mscorlib.dll",
    "windows/Microsoft.NET/Framework/v4.0.30319/mscorlib.dll",
)
REGISTRY_FILES: tuple[str, ...] = ("system.reg", "user.reg")


class DependenciesStage(BaseStage):
    """Stage 3: prefix, .NET runtimes, Windows version."""

    @property
    def stage_id(self) -> str:
        return "dependencies"

    @property
    def display_name(self) -> str:
        return "Dependencies installed"

    # ------------------------------------------------------------------
    # Predicates
    # ------------------------------------------------------------------

    @staticmethod
    def prefix_ready(ctx: ProvisionContext) -> bool:
        return (ctx.config.drive_c / "windows").is_dir()

    @staticmethod
    def dotnet_installed(ctx: ProvisionContext) -> bool:
        drive_c = ctx.config.drive_c
        return all((drive_c / marker).is_file() for marker in DOTNET_MARKERS)

    @staticmethod
    def windows_version_set(ctx: ProvisionContext) -> bool:
        system_reg = ctx.config.prefix_dir / "system.reg"
        if not system_reg.is_file():
            return False
        needle = f'"ProductName"="{ctx.config.windows_product_name}"'
        return needle in system_reg.read_text(encoding="utf-8", errors="replace")

    def is_complete(self, ctx: ProvisionContext) -> bool:
        return (
            self.prefix_ready(ctx)
            and self.dotnet_installed(ctx)
            and self.windows_version_set(ctx)
        )

    # ------------------------------------------------------------------
    # Body
    # ------------------------------------------------------------------

    def execute(self, ctx: ProvisionContext) -> str:
        cfg = ctx.config
        installed: list[str] = []

        if self.prefix_ready(ctx):
            logger.info("Wine prefix already exists")
        else:
            logger.info("Running wineboot to create prefix (this may take a minute)...")
            self._wrapper_cli(ctx, "WSS-wineprefixcreate")
            if not self.prefix_ready(ctx):
                raise DependencyInstallError(
                    f"Wine prefix creation failed: {cfg.drive_c / 'windows'} not found"
                )
            logger.info("Wine prefix created")

        self.clean_font_registry(ctx)
        self.install_core_fonts(ctx)

        if self.dotnet_installed(ctx):
            logger.info(".NET already installed (v2.0 + v4.0 mscorlib.dll found)")
        else:
            for package in cfg.dependency_packages:
                self.install_package(ctx, package)
                installed.append(package)

        if self.windows_version_set(ctx):
            logger.info("Windows XP mode already set")
        else:
            logger.info("Setting Windows version to XP...")
            self.install_package(ctx, cfg.windows_version_verb)
            installed.append(cfg.windows_version_verb)

        ctx.summary[".NET"] = " ".join(cfg.dependency_packages)
        return f"installed: {', '.join(installed)}" if installed else "prefix fixes only"

    def install_package(self, ctx: ProvisionContext, package: str) -> None:
        """Install one winetricks verb, retrying per ``dependency_retries``."""
        attempts = 1 + max(ctx.config.dependency_retries, 0)
        logger.info("Installing %s (this may take several minutes)...", package)
        result: CommandResult | None = None
        for attempt in range(1, attempts + 1):
            result = self._wrapper_cli(ctx, "WSS-winetricks", package, check=False)
            if result.ok:
                logger.info("%s installed", package)
                return
            if attempt < attempts:
                logger.warning("Retrying %s...", package)
        raise DependencyInstallError(
            f"Failed to install {package} via winetricks after retry "
            f"(exit {result.returncode if result else '?'})"
        )

    # ------------------------------------------------------------------
    # Best-effort prefix fixes
    # ------------------------------------------------------------------

    @staticmethod
    def clean_font_registry(ctx: ProvisionContext) -> list[Path]:
        """Remove ``.ttc`` font value lines from the prefix registry."""
        cleaned: list[Path] = []
        for name in REGISTRY_FILES:
            reg = ctx.config.prefix_dir / name
            if not reg.is_file():
                continue
            text = reg.read_text(encoding="utf-8", errors="surrogateescape")
            lines = text.splitlines(keepends=True)
            kept = [line for line in lines if not line.rstrip("\r\n").endswith('.ttc"')]
            if len(kept) == len(lines):
                continue
            ctx.snapshots.take(f"registry-{reg.stem}", [reg])
            reg.write_text("".join(kept), encoding="utf-8", errors="surrogateescape")
            cleaned.append(reg)
        if cleaned:
            logger.info("Wine registry cleaned (removed .ttc font entries)")
        return cleaned

    @staticmethod
    def install_core_fonts(ctx: ProvisionContext) -> int:
        """Copy core TrueType fonts from the host when the prefix lacks them."""
        cfg = ctx.config
        fonts_dir = cfg.drive_c / "windows" / "Fonts"
        fonts_dir.mkdir(parents=True, exist_ok=True)
        present = len(list(fonts_dir.glob("*.ttf")))
        if present >= cfg.min_core_fonts:
            logger.info("Core fonts already installed (%d .ttf files)", present)
            return 0

        copied = 0
        if cfg.host_fonts_dir.is_dir():
            for pattern in cfg.font_patterns:
                for font in sorted(cfg.host_fonts_dir.glob(f"{pattern}*.ttf")):
                    try:
                        shutil.copy2(font, fonts_dir / font.name)
                        copied += 1
                    except OSError as exc:
                        logger.warning("Could not copy font %s: %s", font.name, exc)
        if copied:
            logger.info("Copied %d core fonts from host", copied)
        else:
            logger.warning("No host system fonts found, guest may have font issues")
        return copied

    @staticmethod
    def _wrapper_cli(
        ctx: ProvisionContext, command: str, *args: str, check: bool = True
    ) -> CommandResult:
        result = ctx.host.run([ctx.config.wrapper_cli, command, *args], capture=False)
        if check and not result.ok:
            raise DependencyInstallError(
                f"Wrapper command failed: {command} {' '.join(args)}".rstrip()
                + f" (exit {result.returncode})"
            )
        return result
