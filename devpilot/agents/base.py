"""Base class for pipeline agents."""

from abc import ABC, abstractmethod

from ..models import AgentMessage, PhaseContribution, PipelineState


class Agent(ABC):
    """Contract for one phase of the analysis pipeline.

    Agents read the immutable state snapshot and return a contribution; they
    never mutate the state they receive.
    """

    name: str = ""
    step: str = ""
    checkpoint: int = 0

    @abstractmethod
    async def run(self, state: PipelineState) -> PhaseContribution:
        """Produce this phase's additions to the pipeline state."""

    def message(self, text: str) -> AgentMessage:
        return AgentMessage(agent=self.name, message=text)
