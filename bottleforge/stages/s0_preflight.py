"""Stage 0 — Pre-flight checks.

Validates the host before anything is mutated:
    - Apple Silicon architecture.
    - Minimum macOS major version.
    - Free disk space (only a warning when the wrapper already exists).
    - Network connectivity.

Any failure raises ``PreflightError``.
"""

from __future__ import annotations

import logging
from typing import ClassVar

import requests

from bottleforge.core.context import ProvisionContext
from bottleforge.core.errors import PreflightError
from bottleforge.stages.base import BaseStage

logger = logging.getLogger(__name__)


class PreflightStage(BaseStage):
    """Stage 0: host validation gate."""

    is_gate: ClassVar[bool] = True

    @property
    def stage_id(self) -> str:
        return "preflight"

    @property
    def display_name(self) -> str:
        return "Pre-flight checks"

    def execute(self, ctx: ProvisionContext) -> str:
        cfg = ctx.config
        host = ctx.host

        arch = host.machine()
        if arch != cfg.required_machine:
            raise PreflightError(
                f"This installer is designed for Apple Silicon ({cfg.required_machine}). "
                f"Detected: {arch}"
            )
        logger.info("Apple Silicon (%s) detected", arch)

        os_version = host.os_version()
        major = _major_version(os_version)
        if major is None:
            raise PreflightError(f"Could not determine macOS version (got: {os_version})")
        if major < cfg.min_os_major:
            raise PreflightError(
                f"macOS {cfg.min_os_major} or later required. Detected: {os_version}"
            )
        logger.info("macOS %s", os_version)

        wrapper_exists = cfg.wrapper_app.exists()
        if wrapper_exists:
            logger.info("Wrapper already exists at: %s", cfg.wrapper_app)

        free_gb = host.free_disk_gb(cfg.home)
        if free_gb < cfg.min_disk_gb:
            if not wrapper_exists:
                raise PreflightError(
                    f"Need at least {cfg.min_disk_gb}GB free. Available: {free_gb}GB"
                )
            logger.warning(
                "Low disk space (%dGB free) but wrapper already exists, continuing...",
                free_gb,
            )
        else:
            logger.info("%dGB disk space available", free_gb)

        self._check_network(ctx)
        logger.info("Network connectivity OK")
        return f"{arch}, macOS {os_version}, {free_gb}GB free"

    @staticmethod
    def _check_network(ctx: ProvisionContext) -> None:
        url = ctx.config.network_probe_url
        try:
            response = ctx.session.get(url, timeout=ctx.config.network_timeout)
        except requests.RequestException as exc:
            raise PreflightError(
                "No network connectivity. Please check your internet connection."
            ) from exc
        try:
            response.raise_for_status()
        except requests.RequestException as exc:
            raise PreflightError(f"Network probe {url} failed: {exc}") from exc
        finally:
            response.close()


def _major_version(version: str) -> int | None:
    head = version.strip().split(".", 1)[0]
    return int(head) if head.isdigit() else None
