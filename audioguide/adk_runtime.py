from __future__ import annotations

from dataclasses import dataclass
from typing import Awaitable, Callable, Generic, List, Optional, TypeVar

ContextT = TypeVar("ContextT")


@dataclass
class AdkStep(Generic[ContextT]):
    """Step descriptor for the ADK-style pipeline runner."""
    name: str
    fn: Callable[[ContextT], Awaitable[None]]
    skip_if: Optional[Callable[[ContextT], bool]] = None
    always_run: bool = False


class AdkAgent(Generic[ContextT]):
    """Lightweight ADK-style runner that awaits async steps strictly in order."""

    def __init__(self, steps: List[AdkStep[ContextT]]) -> None:
        """Purpose: Initialize the agent with an ordered list of steps.
        Inputs/Outputs: Input is a list of AdkStep; no return value.
        Side Effects / State: Stores the step list for later execution.
        Dependencies: None beyond AdkStep definitions.
        Failure Modes: None; assumes valid coroutine functions in steps.
        If Removed: Initialization stages are never executed.
        Testing Notes: Provide a minimal step list and ensure order is preserved.
        """
        # Store the pipeline steps for deterministic execution.
        self._steps = steps

    @property
    def step_names(self) -> List[str]:
        return [step.name for step in self._steps]

    async def run(self, context: ContextT) -> None:
        """Purpose: Await steps in order with optional skip/always-run rules.
        Inputs/Outputs: Input is a mutable context object; no return value.
        Side Effects / State: Invokes step functions that may mutate context.
        Dependencies: Depends on AdkStep.fn and AdkStep.skip_if semantics.
        Failure Modes: Exceptions in step functions propagate to the caller.
        If Removed: The initialization pipeline cannot run.
        Testing Notes: Verify skip_if and always_run logic with simple steps.
        """
        # Each step completes before the next one starts.
        for step in self._steps:
            if step.always_run:
                await step.fn(context)
                continue
            if step.skip_if and step.skip_if(context):
                continue
            await step.fn(context)
