"""Provisioning orchestrator — the central coordinator for bottleforge runs.

The orchestrator wires together the PrerequisiteGraph, StageMachine and the
registered stages, and drives them in topological order over one
``ProvisionContext``.  Every temporary file created during the run lives in
a ``TempRegistry`` scoped to ``run()``, so nothing leaks on any exit path.

A failing stage ends the run: it is marked FAILED, its dependents are
cascade-blocked and no further stage executes.  There is no retry across
stages; the only retry lives inside the dependencies stage.
"""

from __future__ import annotations

import logging
import time
import uuid
from datetime import datetime, timezone
from pathlib import Path

import requests

from bottleforge.core.cleanup import TempRegistry
from bottleforge.core.context import ProvisionContext
from bottleforge.core.errors import ProvisionError
from bottleforge.core.host import Host
from bottleforge.core.prerequisite_graph import PrerequisiteGraph
from bottleforge.core.stage_machine import StageMachine
from bottleforge.models.config import ProvisionConfig
from bottleforge.models.stages import (
    DEFAULT_STAGE_DEFINITIONS,
    RunReport,
    RunStatus,
    StageDefinition,
    StageOutcome,
    StageState,
)
from bottleforge.stages import STAGE_REGISTRY
from bottleforge.stages.base import BaseStage

logger = logging.getLogger(__name__)


class StageOrchestrator:
    """Runs the provisioning stages for one host.

    Parameters
    ----------
    config:
        Immutable provisioning configuration.
    host:
        Inspection/command boundary for the machine being provisioned.
    session:
        HTTP session used for release indexes and downloads.
    definitions:
        Stage DAG.  Defaults to ``DEFAULT_STAGE_DEFINITIONS``.
    stages:
        Stage implementations by id.  Defaults to ``STAGE_REGISTRY``.
    """

    def __init__(
        self,
        config: ProvisionConfig,
        host: Host,
        session: requests.Session | None = None,
        *,
        definitions: list[StageDefinition] | None = None,
        stages: dict[str, BaseStage] | None = None,
    ) -> None:
        self.config = config
        self.host = host
        self.session = session or requests.Session()
        self.graph = PrerequisiteGraph(definitions or DEFAULT_STAGE_DEFINITIONS)
        self.stages: dict[str, BaseStage] = stages or {
            sid: STAGE_REGISTRY[sid]() for sid in self.graph.stage_ids
        }
        missing = [sid for sid in self.graph.stage_ids if sid not in self.stages]
        if missing:
            raise ValueError(f"No stage implementation for: {missing}")

        ts = datetime.now(timezone.utc).strftime("%Y%m%d-%H%M%S")
        self.run_id = f"bf-{ts}-{uuid.uuid4().hex[:4]}"
        self.stage_machine: StageMachine | None = None

    def run(self, log_path: Path | None = None) -> RunReport:
        """Execute every stage in order and return the run report.

        Never raises for stage failures; they are reflected in the report.
        The status record is written before returning.
        """
        machine = StageMachine(self.graph)
        self.stage_machine = machine
        outcomes: list[StageOutcome] = []
        failed_stage: str | None = None
        error: str | None = None

        with TempRegistry() as registry:
            ctx = ProvisionContext(
                run_id=self.run_id,
                config=self.config,
                host=self.host,
                session=self.session,
                registry=registry,
                log_path=log_path,
            )
            logger.info("Run %s started", self.run_id)

            for stage_id in self.graph.stage_ids:
                definition = self.graph.get_stage_definition(stage_id)
                if failed_stage is not None:
                    outcomes.append(
                        StageOutcome(
                            stage_id=stage_id,
                            display_name=definition.display_name,
                            gate=definition.is_gate,
                            state=machine.get_current_state(stage_id),
                            detail=f"upstream {failed_stage} failed",
                        )
                    )
                    continue

                stage = self.stages[stage_id]
                logger.info("==> %s", definition.display_name)
                machine.transition(stage_id, StageState.RUNNING)
                started = time.monotonic()
                try:
                    state, detail = stage.run_stage(ctx)
                except ProvisionError as exc:
                    state, detail = StageState.FAILED, str(exc)
                except Exception as exc:  # noqa: BLE001
                    logger.exception("Unexpected error in %s", stage_id)
                    state, detail = StageState.FAILED, f"{type(exc).__name__}: {exc}"

                machine.transition(stage_id, state, reason=detail)
                outcomes.append(
                    StageOutcome(
                        stage_id=stage_id,
                        display_name=definition.display_name,
                        gate=definition.is_gate,
                        state=state,
                        detail=detail,
                        duration_seconds=round(time.monotonic() - started, 3),
                    )
                )
                if state == StageState.FAILED:
                    failed_stage, error = stage_id, detail
                    logger.error(
                        "Stage %s failed: %s. Check log: %s",
                        definition.display_name,
                        detail,
                        log_path if log_path is not None else "(console only)",
                    )

        report = RunReport(
            run_id=self.run_id,
            status=RunStatus.FAILED if failed_stage else RunStatus.COMPLETED,
            outcomes=outcomes,
            failed_stage=failed_stage,
            error=error,
            log_path=log_path,
            summary=dict(ctx.summary),
            started_at=ctx.started_at,
            finished_at=datetime.now(timezone.utc),
        )
        machine.write_status(self.config.status_path, report)
        logger.info("Run %s %s", self.run_id, report.status.value)
        return report

    # ------------------------------------------------------------------
    # Query methods
    # ------------------------------------------------------------------

    def get_states(self) -> dict[str, StageState]:
        """Return the current state of every stage in the latest run."""
        if self.stage_machine is None:
            return {sid: StageState.NOT_STARTED for sid in self.graph.stage_ids}
        return self.stage_machine.get_all_states()
