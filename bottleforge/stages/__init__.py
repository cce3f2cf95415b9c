"""Provisioning stages — registry mapping stage_id to stage class.

Usage::

    from bottleforge.stages import STAGE_REGISTRY, get_stage

    stage = get_stage("wrapper")
    state, detail = stage.run_stage(ctx)
"""

from __future__ import annotations

from bottleforge.stages.base import BaseStage
from bottleforge.stages.s0_preflight import PreflightStage
from bottleforge.stages.s1_base_runtime import BaseRuntimeStage
from bottleforge.stages.s2_wrapper import WrapperStage
from bottleforge.stages.s3_dependencies import DependenciesStage
from bottleforge.stages.s4_guest import GuestStage
from bottleforge.stages.s5_audio import AudioStage
from bottleforge.stages.s6_summary import SummaryStage

STAGE_REGISTRY: dict[str, type[BaseStage]] = {
    "preflight": PreflightStage,
    "base_runtime": BaseRuntimeStage,
    "wrapper": WrapperStage,
    "dependencies": DependenciesStage,
    "guest": GuestStage,
    "audio": AudioStage,
    "summary": SummaryStage,
}


def get_stage(stage_id: str) -> BaseStage:
    """Instantiate the stage registered under *stage_id*."""
    try:
        return STAGE_REGISTRY[stage_id]()
    except KeyError:
        raise KeyError(
            f"Unknown stage_id {stage_id!r}. Valid: {sorted(STAGE_REGISTRY)}"
        ) from None


__all__ = [
    "STAGE_REGISTRY",
    "AudioStage",
    "BaseRuntimeStage",
    "BaseStage",
    "DependenciesStage",
    "GuestStage",
    "PreflightStage",
    "SummaryStage",
    "WrapperStage",
    "get_stage",
]
