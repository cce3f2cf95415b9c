"""Abstract base stage with an enforced idempotent lifecycle.

Every concrete stage implements ``is_complete()`` and ``execute()``.  The
``run_stage()`` wrapper is **not overridable**:

    is_complete -> (skip) | execute -> verify

A body that runs but does not establish its own postcondition raises
``StageInconsistencyError`` instead of being silently accepted.  Gate
stages (``is_gate = True``) do not mutate the host, carry no predicate and
always run.
"""

from __future__ import annotations

import abc
import logging
from typing import ClassVar, final

from bottleforge.core.context import ProvisionContext
from bottleforge.core.errors import StageInconsistencyError
from bottleforge.models.stages import StageState

logger = logging.getLogger(__name__)


class BaseStage(abc.ABC):
    """Abstract base for all provisioning stages.

    Subclasses **must** implement:
        * ``stage_id`` and ``display_name``.
        * ``execute(ctx)`` returning a one-line detail for the report.
        * ``is_complete(ctx)`` unless the stage is a gate.

    Subclasses **may** override ``verify(ctx)`` when the postcondition the
    body guarantees is narrower than the skip predicate.
    """

    is_gate: ClassVar[bool] = False
    skip_note: ClassVar[str] = "already done"

    @property
    @abc.abstractmethod
    def stage_id(self) -> str: ...

    @property
    @abc.abstractmethod
    def display_name(self) -> str: ...

    def is_complete(self, ctx: ProvisionContext) -> bool:
        """Completion predicate, derived from host inspection only."""
        return False

    def verify(self, ctx: ProvisionContext) -> bool:
        """Postcondition checked after ``execute``."""
        return self.is_complete(ctx)

    @abc.abstractmethod
    def execute(self, ctx: ProvisionContext) -> str: ...

    @final
    def run_stage(self, ctx: ProvisionContext) -> tuple[StageState, str]:
        """Run the stage lifecycle.  **Do not override.**

        Returns the terminal state (PASSED or SKIPPED) and a detail line.
        Errors from ``execute`` propagate unchanged.
        """
        if not self.is_gate and self.is_complete(ctx):
            logger.info("%s: %s, skipping", self.display_name, self.skip_note)
            return StageState.SKIPPED, self.skip_note

        detail = self.execute(ctx)

        if not self.is_gate and not self.verify(ctx):
            raise StageInconsistencyError(
                f"{self.display_name} ran but its completion check still fails"
            )
        return StageState.PASSED, detail

    def __repr__(self) -> str:
        gate = " [GATE]" if self.is_gate else ""
        return f"<{type(self).__name__} stage_id={self.stage_id!r}{gate}>"
