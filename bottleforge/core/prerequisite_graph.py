"""Stage DAG with declared predecessors and cascade blocking.

The graph enforces:
- No stage runs unless all predecessors are PASSED or SKIPPED.
- When a stage fails, all transitive dependents are BLOCKED.
- Execution order is a topological sort; among ready stages the lowest
  ordinal goes first.
"""

from __future__ import annotations

import heapq

from bottleforge.models.stages import SATISFIED_STATES, StageDefinition, StageState


class PrerequisiteNotMetError(RuntimeError):
    """Raised when a stage cannot run because predecessors are not satisfied."""


class CyclicDependencyError(ValueError):
    """Raised when the stage graph contains a cycle."""


class PrerequisiteGraph:
    """Directed acyclic graph of stage predecessors.

    Parameters
    ----------
    stage_definitions:
        Every stage in the run.  A predecessor that is not itself defined
        is rejected with ``ValueError``.
    """

    def __init__(self, stage_definitions: list[StageDefinition]) -> None:
        self._defs: dict[str, StageDefinition] = {d.stage_id: d for d in stage_definitions}
        self._successors: dict[str, set[str]] = {sid: set() for sid in self._defs}
        for definition in stage_definitions:
            for pred in definition.prerequisites:
                if pred not in self._defs:
                    raise ValueError(
                        f"Stage {definition.stage_id} depends on unknown stage {pred}"
                    )
                self._successors[pred].add(definition.stage_id)

        self._order = self._execution_order()
        self._position = {sid: i for i, sid in enumerate(self._order)}

    def _execution_order(self) -> list[str]:
        pending = {sid: len(set(d.prerequisites)) for sid, d in self._defs.items()}
        ready = [(d.ordinal, sid) for sid, d in self._defs.items() if pending[sid] == 0]
        heapq.heapify(ready)

        order: list[str] = []
        while ready:
            _, sid = heapq.heappop(ready)
            order.append(sid)
            for succ in self._successors[sid]:
                pending[succ] -= 1
                if pending[succ] == 0:
                    heapq.heappush(ready, (self._defs[succ].ordinal, succ))

        if len(order) != len(self._defs):
            stuck = sorted(set(self._defs) - set(order))
            raise CyclicDependencyError(f"Stage graph has a cycle through: {', '.join(stuck)}")
        return order

    @property
    def stage_ids(self) -> list[str]:
        """All stage_ids in execution order."""
        return list(self._order)

    def get_stage_definition(self, stage_id: str) -> StageDefinition:
        return self._defs[stage_id]

    def get_dependents(self, stage_id: str) -> list[str]:
        """Transitive dependents of *stage_id*, in execution order."""
        seen: set[str] = set()
        frontier = list(self._successors.get(stage_id, ()))
        while frontier:
            sid = frontier.pop()
            if sid not in seen:
                seen.add(sid)
                frontier.extend(self._successors[sid])
        return sorted(seen, key=self._position.__getitem__)

    def are_prerequisites_met(self, stage_id: str, states: dict[str, StageState]) -> bool:
        return not self._unsatisfied(stage_id, states)

    def get_blocking_reasons(self, stage_id: str, states: dict[str, StageState]) -> list[str]:
        """Human-readable reasons why a stage cannot start."""
        return [
            f"{self._defs[pred].display_name} ({pred}) is {state.value}"
            for pred, state in self._unsatisfied(stage_id, states)
        ]

    def _unsatisfied(
        self, stage_id: str, states: dict[str, StageState]
    ) -> list[tuple[str, StageState]]:
        result = []
        for pred in self._defs[stage_id].prerequisites:
            state = states.get(pred, StageState.NOT_STARTED)
            if state not in SATISFIED_STATES:
                result.append((pred, state))
        return result

    def cascade_block(self, failed_stage_id: str, states: dict[str, StageState]) -> list[str]:
        """Mark every not-yet-started dependent of a failed stage BLOCKED.

        Mutates *states* and returns the stage_ids newly blocked.
        """
        blocked = [
            sid
            for sid in self.get_dependents(failed_stage_id)
            if states.get(sid, StageState.NOT_STARTED) == StageState.NOT_STARTED
        ]
        for sid in blocked:
            states[sid] = StageState.BLOCKED
        return blocked
