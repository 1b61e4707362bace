from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, List, Optional

logger = logging.getLogger("hero.runtime")


@dataclass
class AdkStep:
    """Step descriptor for the draft pipeline runner."""
    name: str
    fn: Callable[[object], None]
    skip_if: Optional[Callable[[object], bool]] = None
    always_run: bool = False


class AdkAgent:
    """Deterministic, single-pass step runner.

    Steps run in declaration order. A step is skipped when its skip_if guard
    returns True, unless it is marked always_run (used for the sanitizer, which
    must see every reply).
    """

    def __init__(self, steps: List[AdkStep]) -> None:
        self._steps = list(steps)

    @property
    def step_names(self) -> List[str]:
        return [step.name for step in self._steps]

    def run(self, context: object) -> List[str]:
        """Purpose: Execute steps in order and report which of them ran.
        Inputs/Outputs: Input is a mutable context object; output is the list of
            executed step names.
        Side Effects / State: Step functions mutate the context.
        Dependencies: Depends on AdkStep.fn and AdkStep.skip_if semantics.
        Failure Modes: Exceptions in step functions propagate to the caller.
        If Removed: The draft pipeline cannot run.
        Testing Notes: Verify skip_if and always_run with recording steps.
        """
        executed: List[str] = []
        for step in self._steps:
            if not step.always_run and step.skip_if and step.skip_if(context):
                logger.debug("step=%s skipped", step.name)
                continue
            step.fn(context)
            executed.append(step.name)
        return executed
