# orderflow/services/saga.py
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, List, Optional

logger = logging.getLogger(__name__)

Action = Callable[[], Awaitable[Any]]


@dataclass
class SagaStep:
    name: str
    action: Action
    compensate: Optional[Action] = None
    retries: int = 0


@dataclass
class Saga:
    """
    Runs steps in order. If a step still fails after its retries, the
    steps that already committed are compensated newest-first and the
    step's error is re-raised.
    """

    name: str
    steps: List[SagaStep] = field(default_factory=list)
    completed: List[str] = field(default_factory=list)
    compensated: List[str] = field(default_factory=list)

    def step(self, name: str, action: Action, compensate: Optional[Action] = None,
             retries: int = 0) -> "Saga":
        self.steps.append(SagaStep(name, action, compensate, retries))
        return self

    async def run(self) -> dict:
        results = {}
        done: List[SagaStep] = []
        for step in self.steps:
            try:
                results[step.name] = await self._attempt(step)
            except Exception:
                await self._rollback(done)
                raise
            done.append(step)
            self.completed.append(step.name)
        return results

    async def _attempt(self, step: SagaStep) -> Any:
        attempt = 0
        while True:
            try:
                return await step.action()
            except Exception as exc:
                if attempt >= step.retries:
                    logger.warning("%s: step %s failed: %s", self.name, step.name, exc)
                    raise
                attempt += 1
                logger.info("%s: retrying %s (%d/%d) after %s",
                            self.name, step.name, attempt, step.retries, exc)

    async def _rollback(self, done: List[SagaStep]) -> None:
        for step in reversed(done):
            if step.compensate is None:
                continue
            try:
                await step.compensate()
                self.compensated.append(step.name)
                logger.warning("%s: compensated %s", self.name, step.name)
            except Exception:
                logger.exception("%s: compensation for %s failed", self.name, step.name)
