"""Planner agent: decides what the analysis should look at."""

from __future__ import annotations

import asyncio
import json

from ..errors import ExternalServiceDegradedError
from ..llm import LLMRunner
from ..logging import get_logger
from ..models import PhaseContribution, PipelineState
from .base import Agent

logger = get_logger("agents.planner")

PLANNER_SYSTEM = "You are a DevOps Planning Agent."

DEFAULT_PLAN = {
    "fileTypes": ["package.json", "requirements.txt", "pyproject.toml", "go.mod", "Cargo.toml", "pom.xml"],
    "configFiles": ["Dockerfile", "docker-compose.yml", ".github/workflows", ".env.example", "tsconfig.json"],
    "dependencies": ["runtime frameworks", "databases", "caches", "build tooling"],
    "deploymentStrategy": ["containerise with Docker", "test and publish images from GitHub Actions"],
}


def build_planner_prompt(state: PipelineState) -> str:
    return (
        "Analyze the repository structure and create a comprehensive plan.\n\n"
        f"Repository URL: {state.repo_url}\n"
        f"Repository structure has been cloned to: {state.repo_path}\n\n"
        "Based on typical project patterns, create a plan that includes:\n"
        "1. File types to analyze for tech stack detection\n"
        "2. Key configuration files to examine\n"
        "3. Dependencies to check\n"
        "4. Deployment strategy recommendations\n\n"
        "Return a JSON plan with these categories."
    )


class PlannerAgent(Agent):
    name = "Planner"
    step = "Planning project analysis"
    checkpoint = 20

    def __init__(self, llm: LLMRunner | None = None) -> None:
        self.llm = llm

    async def run(self, state: PipelineState) -> PhaseContribution:
        plan = await self._plan(state)
        return PhaseContribution(
            plan=plan,
            messages=(self.message("Created comprehensive analysis plan"),),
        )

    async def _plan(self, state: PipelineState) -> str:
        if self.llm is None:
            return json.dumps(DEFAULT_PLAN, indent=2)
        loop = asyncio.get_running_loop()
        prompt = build_planner_prompt(state)
        try:
            return await loop.run_in_executor(None, lambda: self.llm.run(prompt, system=PLANNER_SYSTEM))
        except ExternalServiceDegradedError as exc:
            logger.warning("Planner model unavailable, using the default plan: %s", exc)
            return json.dumps(DEFAULT_PLAN, indent=2)
