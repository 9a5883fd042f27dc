"""Generator agent: renders deployment artifacts for the detected stack."""

from __future__ import annotations

from ..artifacts import ArtifactGenerator
from ..models import PhaseContribution, PipelineState
from .base import Agent


class GeneratorAgent(Agent):
    name = "Generator"
    step = "Generating CI/CD configurations"
    checkpoint = 80

    def __init__(self, generator: ArtifactGenerator | None = None) -> None:
        self.generator = generator or ArtifactGenerator()

    async def run(self, state: PipelineState) -> PhaseContribution:
        artifacts = self.generator.generate(
            state.tech_stack,
            state.project_structure,
            state.codebase_analysis,
        )
        return PhaseContribution(
            generated_files=artifacts,
            messages=(self.message("Generated all CI/CD configuration files"),),
        )
