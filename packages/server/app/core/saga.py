"""
Ordered multi-step operations with an explicit failure policy.

Used where one logical operation touches several documents (join approval,
master-task propagation, cascade deletes). Steps run in order. When a step
fails after earlier steps succeeded:

1. the failure is logged with the completed and failed step names,
2. compensations registered on completed steps run in reverse order,
3. PartialCompletion is raised naming the failed step.

A failure in the very first step re-raises the original error unchanged,
since nothing has happened yet. Steps without a compensation are left as
they are.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Optional

import structlog

from app.core.errors import PartialCompletion

log = structlog.get_logger()

StepAction = Callable[[], Awaitable[Any]]


@dataclass
class SagaStep:
    name: str
    action: StepAction
    compensate: Optional[StepAction] = None


@dataclass
class Saga:
    name: str
    context: dict[str, Any] = field(default_factory=dict)
    steps: list[SagaStep] = field(default_factory=list)
    completed: list[str] = field(default_factory=list)

    def step(
        self, name: str, action: StepAction, compensate: Optional[StepAction] = None
    ) -> "Saga":
        self.steps.append(SagaStep(name=name, action=action, compensate=compensate))
        return self

    async def run(self) -> list[Any]:
        """Run every step; returns the step results in order."""
        results: list[Any] = []
        done: list[SagaStep] = []
        for step in self.steps:
            try:
                results.append(await step.action())
            except Exception as exc:
                if not done:
                    raise
                log.error(
                    "saga.step_failed",
                    saga=self.name,
                    step=step.name,
                    completed=self.completed,
                    error=str(exc),
                    **self.context,
                )
                await self._compensate(done)
                raise PartialCompletion(
                    f"{self.name} failed at step '{step.name}'",
                    failedStep=step.name,
                    completedSteps=list(self.completed),
                ) from exc
            done.append(step)
            self.completed.append(step.name)

        log.info("saga.completed", saga=self.name, steps=self.completed, **self.context)
        return results

    async def _compensate(self, done: list[SagaStep]) -> None:
        for step in reversed(done):
            if step.compensate is None:
                continue
            try:
                await step.compensate()
                log.info("saga.compensated", saga=self.name, step=step.name, **self.context)
            except Exception as exc:
                # Keep unwinding the remaining steps; the original failure is raised by run().
                log.error(
                    "saga.compensation_failed",
                    saga=self.name,
                    step=step.name,
                    error=str(exc),
                    **self.context,
                )
