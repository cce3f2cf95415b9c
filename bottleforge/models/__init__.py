"""Bottleforge data models — all Pydantic v2, frozen where immutable."""

from bottleforge.models.artifacts import (
    ArtifactIdentifier,
    ArtifactKind,
    ArtifactSource,
    CachedArchive,
    ResolutionSource,
)
from bottleforge.models.config import (
    DEFAULT_WRAPPER_SETTINGS,
    AudioSpec,
    BaseRuntimeSpec,
    ConfigSetting,
    GuestSpec,
    ProvisionConfig,
    SettingType,
)
from bottleforge.models.reports import (
    AssemblyReport,
    ConvergeReport,
    KeyFailure,
    UninstallReport,
)
from bottleforge.models.snapshots import SafetySnapshot, SnapshotEntry
from bottleforge.models.stages import (
    DEFAULT_STAGE_DEFINITIONS,
    SATISFIED_STATES,
    VALID_TRANSITIONS,
    RunReport,
    RunStatus,
    StageDefinition,
    StageOutcome,
    StageState,
    StageTransition,
)

__all__ = [
    # Artifacts
    "ArtifactIdentifier",
    "ArtifactKind",
    "ArtifactSource",
    "CachedArchive",
    "ResolutionSource",
    # Config
    "DEFAULT_WRAPPER_SETTINGS",
    "AudioSpec",
    "BaseRuntimeSpec",
    "ConfigSetting",
    "GuestSpec",
    "ProvisionConfig",
    "SettingType",
    # Reports
    "AssemblyReport",
    "ConvergeReport",
    "KeyFailure",
    "UninstallReport",
    # Snapshots
    "SafetySnapshot",
    "SnapshotEntry",
    # Stages
    "DEFAULT_STAGE_DEFINITIONS",
    "SATISFIED_STATES",
    "VALID_TRANSITIONS",
    "RunReport",
    "RunStatus",
    "StageDefinition",
    "StageOutcome",
    "StageState",
    "StageTransition",
]
