"""Stage state machine models and the default provisioning stage graph."""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field


class StageState(str, Enum):
    """Strict state model for each provisioning stage."""

    NOT_STARTED = "not_started"
    RUNNING = "running"
    PASSED = "passed"
    SKIPPED = "skipped"  # completion predicate already held
    FAILED = "failed"
    BLOCKED = "blocked"  # an upstream stage failed


# Valid state transitions, enforced by StageMachine.  There is no automatic
# retry across stages, so FAILED is terminal within a run.
VALID_TRANSITIONS: dict[StageState, set[StageState]] = {
    StageState.NOT_STARTED: {StageState.RUNNING, StageState.BLOCKED},
    StageState.RUNNING: {StageState.PASSED, StageState.SKIPPED, StageState.FAILED},
    StageState.PASSED: set(),
    StageState.SKIPPED: set(),
    StageState.FAILED: set(),
    StageState.BLOCKED: set(),
}

# States that satisfy a dependent stage's prerequisites.
SATISFIED_STATES: frozenset[StageState] = frozenset(
    {StageState.PASSED, StageState.SKIPPED}
)


class RunStatus(str, Enum):
    """Terminal status of a whole provisioning run."""

    COMPLETED = "completed"
    FAILED = "failed"


class StageDefinition(BaseModel):
    """Defines a provisioning stage and its predecessors.

    The prerequisite list encodes the DAG.  Today it is a linear chain, but
    the orchestrator only relies on the declared edges.
    """

    model_config = ConfigDict(frozen=True)

    stage_id: str
    display_name: str
    ordinal: int
    prerequisites: list[str] = []
    is_gate: bool = False  # non-mutating, always runs


class StageTransition(BaseModel):
    """Records a single state transition for the run status record."""

    model_config = ConfigDict(frozen=True)

    stage_id: str
    from_state: StageState
    to_state: StageState
    reason: str = ""
    at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class StageOutcome(BaseModel):
    """What happened to one stage in one run."""

    model_config = ConfigDict(frozen=True)

    stage_id: str
    display_name: str
    state: StageState
    detail: str = ""
    gate: bool = False  # gates always run, so they report PASSED, never SKIPPED
    duration_seconds: float = 0.0


class RunReport(BaseModel):
    """Result of a forward provisioning run."""

    model_config = ConfigDict(frozen=True)

    run_id: str
    status: RunStatus
    outcomes: list[StageOutcome] = []
    failed_stage: str | None = None
    error: str | None = None
    log_path: Path | None = None
    summary: dict[str, str] = {}
    started_at: datetime
    finished_at: datetime

    @property
    def elapsed_seconds(self) -> float:
        return (self.finished_at - self.started_at).total_seconds()

    def outcome(self, stage_id: str) -> StageOutcome:
        for outcome in self.outcomes:
            if outcome.stage_id == stage_id:
                return outcome
        raise KeyError(stage_id)


# The standard provisioning stages, leaf-first.
DEFAULT_STAGE_DEFINITIONS: list[StageDefinition] = [
    StageDefinition(
        stage_id="preflight",
        display_name="Pre-flight checks",
        ordinal=0,
        is_gate=True,
    ),
    StageDefinition(
        stage_id="base_runtime",
        display_name="Base runtime present",
        ordinal=1,
        prerequisites=["preflight"],
    ),
    StageDefinition(
        stage_id="wrapper",
        display_name="Wrapper assembled",
        ordinal=2,
        prerequisites=["base_runtime"],
    ),
    StageDefinition(
        stage_id="dependencies",
        display_name="Dependencies installed",
        ordinal=3,
        prerequisites=["wrapper"],
    ),
    StageDefinition(
        stage_id="guest",
        display_name="Guest installed",
        ordinal=4,
        prerequisites=["dependencies"],
    ),
    StageDefinition(
        stage_id="audio",
        display_name="Audio environment configured",
        ordinal=5,
        prerequisites=["guest"],
    ),
    StageDefinition(
        stage_id="summary",
        display_name="Summary",
        ordinal=6,
        prerequisites=["audio"],
        is_gate=True,
    ),
]
