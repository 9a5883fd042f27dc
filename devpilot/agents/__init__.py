"""The four pipeline agents."""

from typing import List

from ..artifacts import ArtifactGenerator
from ..config import DevPilotConfig
from ..llm import LLMRunner
from .analyzer import AnalyzerAgent
from .base import Agent
from .generator import GeneratorAgent
from .planner import PlannerAgent
from .verifier import VerifierAgent


def default_agents(config: DevPilotConfig, llm: LLMRunner | None = None) -> List[Agent]:
    """Planner, Analyzer, Generator and Verifier wired from configuration."""
    return [
        PlannerAgent(llm),
        AnalyzerAgent(scanner_config=config.scanner),
        GeneratorAgent(ArtifactGenerator(min_confidence=config.generation.min_confidence)),
        VerifierAgent(llm),
    ]


__all__ = [
    "Agent",
    "AnalyzerAgent",
    "GeneratorAgent",
    "PlannerAgent",
    "VerifierAgent",
    "default_agents",
]
