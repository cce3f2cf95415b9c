"""Environment-driven settings.

Reads ``BOTTLEFORGE_*`` environment variables and an optional ``.env`` file,
then builds the immutable ``ProvisionConfig`` handed to every component.
"""

from __future__ import annotations

from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from bottleforge.models.config import ProvisionConfig


class ProvisionSettings(BaseSettings):
    """User-tunable knobs with environment variable overrides.

    Examples
    --------
    Override via environment::

        export BOTTLEFORGE_WRAPPER_NAME=outlands-test
        export BOTTLEFORGE_LOG_LEVEL=DEBUG
        export BOTTLEFORGE_MIN_DISK_GB=5
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="BOTTLEFORGE_",
        env_file_encoding="utf-8",
    )

    home: Path = Field(default_factory=Path.home)
    wrapper_name: str = "outlands"
    log_level: str = "INFO"

    min_disk_gb: int = 10
    network_timeout: float = 10.0
    index_timeout: float = 15.0

    # Optional relocations; derived from ``home`` when unset
    cache_dir: Path | None = None
    snapshot_dir: Path | None = None
    log_dir: Path | None = None
    host_fonts_dir: Path | None = None

    def build_config(self) -> ProvisionConfig:
        """Produce the frozen run configuration."""
        overrides: dict[str, object] = {
            "wrapper_name": self.wrapper_name,
            "min_disk_gb": self.min_disk_gb,
            "network_timeout": self.network_timeout,
            "index_timeout": self.index_timeout,
        }
        if self.cache_dir is not None:
            overrides["cache_dir"] = self.cache_dir
        if self.snapshot_dir is not None:
            overrides["snapshot_dir"] = self.snapshot_dir
        if self.log_dir is not None:
            overrides["log_dir"] = self.log_dir
        if self.host_fonts_dir is not None:
            overrides["host_fonts_dir"] = self.host_fonts_dir
        return ProvisionConfig.for_home(self.home, **overrides)
