from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import List, Optional, Protocol, Sequence

from .config import ProvisionConfig
from .models import RunState

logger = logging.getLogger(__name__)


class Step(Protocol):
    """A single idempotent provisioning step.

    A step raises ProvisionError to abort the run; anything it can live with
    goes to ``run.warn``.
    """

    step_id: str

    def run(self, run: RunState, cfg: ProvisionConfig) -> RunState:
        ...


@dataclass(frozen=True)
class PipelineResult:
    run: RunState
    ran_steps: List[str]


@dataclass
class PipelineProgress:
    """Where the pipeline is; still readable after a step raised."""

    current_step: Optional[str] = None
    completed: List[str] = field(default_factory=list)


def run_pipeline(
    *,
    run: RunState,
    cfg: ProvisionConfig,
    steps: Sequence[Step],
    progress: Optional[PipelineProgress] = None,
) -> PipelineResult:
    """Run steps strictly in order. The first fatal error stops the run; there is no rollback."""

    progress = progress or PipelineProgress()

    for step in steps:
        progress.current_step = step.step_id
        logger.info("Running step %s", step.step_id)
        run = step.run(run, cfg)
        progress.completed.append(step.step_id)

    progress.current_step = None
    return PipelineResult(run=run, ran_steps=list(progress.completed))
