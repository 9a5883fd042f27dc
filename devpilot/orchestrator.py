"""Sequential orchestration of the four analysis agents."""

from __future__ import annotations

import inspect
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Iterable, List, Optional, Sequence

from .agents import Agent
from .errors import PhaseExecutionError, PipelineAbortedError
from .logging import get_logger
from .models import PipelineState, ProgressUpdate

ProgressListener = Callable[[ProgressUpdate], Any]

DONE_STEP = "Complete"
DONE_PROGRESS = 100


class FailurePolicy(str, Enum):
    """What the orchestrator does after a phase raises."""

    CONTINUE = "continue"
    ABORT = "abort"

    @classmethod
    def parse(cls, value: "str | FailurePolicy") -> "FailurePolicy":
        if isinstance(value, cls):
            return value
        return cls(str(value).strip().lower())


class Orchestrator:
    """Runs Planner, Analyzer, Generator and Verifier over an immutable state.

    Each agent receives the current snapshot and returns a contribution that is
    merged into the next snapshot. Progress listeners receive a
    ``ProgressUpdate`` after every phase and once more at completion.
    """

    def __init__(
        self,
        agents: Sequence[Agent],
        *,
        policy: FailurePolicy | str = FailurePolicy.CONTINUE,
        listeners: Iterable[ProgressListener] = (),
    ) -> None:
        self.agents = list(agents)
        self.policy = FailurePolicy.parse(policy)
        self.listeners: List[ProgressListener] = list(listeners)
        self.logger = get_logger("orchestrator")

    def add_listener(self, listener: ProgressListener) -> None:
        self.listeners.append(listener)

    async def run(
        self,
        repo_url: str,
        repo_path: str | Path,
        listener: Optional[ProgressListener] = None,
    ) -> PipelineState:
        """Execute every phase in order and return the terminal state.

        Under ``FailurePolicy.ABORT`` the first failing phase raises
        ``PipelineAbortedError`` carrying the partial state.
        """
        listeners = [*self.listeners, listener] if listener is not None else list(self.listeners)
        state = PipelineState(repo_url=repo_url, repo_path=Path(repo_path))
        self.logger.info("Starting analysis of %s", repo_url)

        for agent in self.agents:
            self.logger.info("%s phase: %s", agent.name, agent.step)
            try:
                contribution = await agent.run(state)
                state = state.merge(contribution)
            except Exception as exc:
                error = PhaseExecutionError(agent.name, exc)
                self.logger.warning("%s", error)
                state = state.with_error(str(error)).advance(agent.step, agent.checkpoint)
                if self.policy is FailurePolicy.ABORT:
                    await self._emit(state, listeners)
                    raise PipelineAbortedError(str(error), state) from exc
                await self._emit(state, listeners)
                continue
            state = state.advance(agent.step, agent.checkpoint)
            await self._emit(state, listeners)

        state = state.advance(DONE_STEP, DONE_PROGRESS)
        await self._emit(state, listeners)
        self.logger.info(
            "Finished analysis of %s with %d error(s)", repo_url, len(state.errors)
        )
        return state

    async def _emit(self, state: PipelineState, listeners: Sequence[ProgressListener]) -> None:
        """Deliver one update to every listener in order; listener errors are logged."""
        update = ProgressUpdate.from_state(state)
        for listener in listeners:
            try:
                result = listener(update)
                if inspect.isawaitable(result):
                    await result
            except Exception:
                self.logger.exception("Progress listener failed at %s", update.step)
