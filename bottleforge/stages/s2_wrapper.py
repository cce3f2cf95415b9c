"""Stage 2 — Wrapper assembled.

Resolves engine and template versions, acquires both archives through the
cache, composes the wrapper, then converges its ``Info.plist``.

Skipped when the engine is already injected and the plist already holds
every desired setting, in which case no version lookup or network access
happens at all.  The postcondition is only that the engine is injected:
configuration keys that cannot be converged are logged, not fatal.
"""

from __future__ import annotations

import logging

from bottleforge.core.config_converger import BUNDLE_ID_KEY
from bottleforge.core.context import ProvisionContext
from bottleforge.core.errors import ConfigError
from bottleforge.models.artifacts import ArtifactKind
from bottleforge.models.config import ConfigSetting
from bottleforge.stages.base import BaseStage

logger = logging.getLogger(__name__)


class WrapperStage(BaseStage):
    """Stage 2: template + engine -> configured wrapper."""

    @property
    def stage_id(self) -> str:
        return "wrapper"

    @property
    def display_name(self) -> str:
        return "Wrapper assembled"

    def desired_settings(self, ctx: ProvisionContext) -> list[ConfigSetting]:
        cfg = ctx.config
        bundle_id = ctx.converger.bundle_identifier_setting(cfg.plist_path, cfg.bundle_id_stem)
        return [bundle_id, *cfg.desired_settings()]

    def is_complete(self, ctx: ProvisionContext) -> bool:
        cfg = ctx.config
        if not ctx.assembler.is_assembled(cfg.wrapper_app):
            return False
        return ctx.converger.is_converged(cfg.plist_path, self.desired_settings(ctx))

    def verify(self, ctx: ProvisionContext) -> bool:
        return ctx.assembler.is_assembled(ctx.config.wrapper_app)

    def execute(self, ctx: ProvisionContext) -> str:
        cfg = ctx.config
        details: list[str] = []

        if ctx.assembler.is_assembled(cfg.wrapper_app):
            logger.info("Wrapper already complete with engine, skipping creation")
        else:
            details.append(self._assemble(ctx))

        try:
            report = ctx.converger.apply(cfg.plist_path, self.desired_settings(ctx))
        except ConfigError as exc:
            logger.warning("Wrapper configuration not applied: %s", exc)
            details.append("config not applied")
        else:
            bundle_id = ctx.converger.read(cfg.plist_path).get(BUNDLE_ID_KEY, "")
            ctx.summary["Bundle ID"] = str(bundle_id)
            details.append(
                f"config: {len(report.created)} created, {len(report.updated)} updated"
                + (f", {len(report.failed)} failed" if report.failed else "")
            )

        ctx.summary["Launch target"] = cfg.guest.windows_exe_path
        return "; ".join(details)

    @staticmethod
    def _assemble(ctx: ProvisionContext) -> str:
        cfg = ctx.config
        engine = ctx.identifier(ArtifactKind.ENGINE)
        template = ctx.identifier(ArtifactKind.TEMPLATE)
        logger.info("Engine: %s%s", engine.name, " (fallback)" if engine.is_fallback else "")
        logger.info("Template: %s%s", template.name, " (fallback)" if template.is_fallback else "")
        ctx.summary["Engine"] = engine.name
        ctx.summary["Template"] = template.name

        template_app = cfg.template_app(template.name)
        ctx.artifact_store.ensure_extracted(template, cfg.template_dir, template_app)
        engine_archive = ctx.artifact_store.acquire(engine)

        report = ctx.assembler.assemble(template_app, engine_archive.path, cfg.wrapper_app)
        if report.rebuilt_partial:
            return f"rebuilt partial wrapper with {engine.name}"
        return f"assembled with {engine.name} + {template.name}"
