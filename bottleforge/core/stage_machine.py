"""Stage state machine for one provisioning run.

Enforces:
- Valid state transitions only (VALID_TRANSITIONS table)
- Predecessors checked before RUNNING
- Cascade blocking on failure
- Every transition recorded, and optionally persisted as a status record

The status record is informational (``bottleforge status``).  Completion
predicates never read it: whether work is done is always decided by
inspecting the host.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from pathlib import Path

from bottleforge.core.prerequisite_graph import PrerequisiteGraph, PrerequisiteNotMetError
from bottleforge.models.stages import (
    VALID_TRANSITIONS,
    RunReport,
    StageState,
    StageTransition,
)

logger = logging.getLogger(__name__)


class InvalidTransitionError(RuntimeError):
    """Raised when a requested state transition is not valid."""


class StageMachine:
    """Tracks stage states for a single run.

    Parameters
    ----------
    graph:
        The stage DAG for predecessor checking.
    """

    def __init__(self, graph: PrerequisiteGraph) -> None:
        self._graph = graph
        self._states: dict[str, StageState] = {
            sid: StageState.NOT_STARTED for sid in graph.stage_ids
        }
        self._transitions: list[StageTransition] = []

    # ------------------------------------------------------------------
    # State queries
    # ------------------------------------------------------------------

    def get_current_state(self, stage_id: str) -> StageState:
        return self._states.get(stage_id, StageState.NOT_STARTED)

    def get_all_states(self) -> dict[str, StageState]:
        return dict(self._states)

    @property
    def transitions(self) -> list[StageTransition]:
        return list(self._transitions)

    # ------------------------------------------------------------------
    # Transition logic
    # ------------------------------------------------------------------

    def transition(
        self, stage_id: str, target_state: StageState, *, reason: str = ""
    ) -> StageTransition:
        """Move *stage_id* to *target_state*.

        Validates the transition, checks predecessors before RUNNING and
        cascade-blocks dependents on FAILED.
        """
        current = self._states.get(stage_id, StageState.NOT_STARTED)

        allowed = VALID_TRANSITIONS.get(current, set())
        if target_state not in allowed:
            raise InvalidTransitionError(
                f"Cannot transition {stage_id} from {current.value} to {target_state.value}. "
                f"Allowed: {[s.value for s in allowed]}"
            )

        if target_state == StageState.RUNNING:
            if not self._graph.are_prerequisites_met(stage_id, self._states):
                reasons = self._graph.get_blocking_reasons(stage_id, self._states)
                raise PrerequisiteNotMetError(
                    f"Cannot start {stage_id}: prerequisites not met. "
                    f"Blocked by: {'; '.join(reasons)}"
                )

        record = StageTransition(
            stage_id=stage_id,
            from_state=current,
            to_state=target_state,
            reason=reason,
        )
        self._transitions.append(record)
        self._states[stage_id] = target_state

        if target_state == StageState.FAILED:
            for blocked_id in self._graph.cascade_block(stage_id, self._states):
                self._transitions.append(
                    StageTransition(
                        stage_id=blocked_id,
                        from_state=StageState.NOT_STARTED,
                        to_state=StageState.BLOCKED,
                        reason=f"upstream {stage_id} failed",
                    )
                )

        return record

    def can_start(self, stage_id: str) -> tuple[bool, list[str]]:
        """Check if a stage can transition to RUNNING.

        Returns (can_start, blocking_reasons).
        """
        current = self._states.get(stage_id, StageState.NOT_STARTED)
        if current != StageState.NOT_STARTED:
            return False, [f"Stage is currently {current.value}, not not_started"]
        if not self._graph.are_prerequisites_met(stage_id, self._states):
            return False, self._graph.get_blocking_reasons(stage_id, self._states)
        return True, []

    # ------------------------------------------------------------------
    # Status record
    # ------------------------------------------------------------------

    def write_status(self, path: Path, report: RunReport) -> None:
        """Persist the run report and transition log as JSON.  Never raises."""
        payload = {
            "written_at": datetime.now(timezone.utc).isoformat(),
            "report": report.model_dump(mode="json"),
            "transitions": [t.model_dump(mode="json") for t in self._transitions],
        }
        try:
            path = Path(path)
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(json.dumps(payload, indent=2), encoding="utf-8")
        except OSError as exc:
            logger.warning("Could not write status record %s: %s", path, exc)


def read_status(path: Path) -> RunReport | None:
    """Load the last run report written by ``StageMachine.write_status``."""
    path = Path(path)
    if not path.is_file():
        return None
    try:
        payload = json.loads(path.read_text(encoding="utf-8"))
        return RunReport.model_validate(payload["report"])
    except (OSError, ValueError, KeyError) as exc:
        logger.warning("Ignoring unreadable status record %s: %s", path, exc)
        return None
