"""Verifier agent: rule checks over the generated artifacts plus an optional model review."""

from __future__ import annotations

import asyncio
import re
from typing import List, Optional

import yaml

from ..errors import ExternalServiceDegradedError
from ..llm import LLMRunner
from ..logging import get_logger
from ..models import (
    GeneratedArtifactSet,
    PhaseContribution,
    PipelineState,
    TechStackProfile,
    VerificationCheck,
    VerificationReport,
)
from .base import Agent

logger = get_logger("agents.verifier")

VERIFIER_SYSTEM = "You are a DevOps Verification Agent."
LOW_CONFIDENCE_THRESHOLD = 50

_ENV_LINE = re.compile(r"^[A-Z][A-Z0-9_]*=.*$")
_INSTRUCTION = re.compile(r"^([A-Za-z]+)\b")


def check_dockerfile(content: str) -> List[VerificationCheck]:
    instructions: List[str] = []
    for raw in content.splitlines():
        line = raw.strip()
        if not line or line.startswith("#"):
            continue
        match = _INSTRUCTION.match(line)
        if match:
            instructions.append(match.group(1).upper())

    meaningful = [item for item in instructions if item != "ARG"]
    checks = [
        VerificationCheck(
            "dockerfile",
            "starts_with_from",
            bool(meaningful) and meaningful[0] == "FROM",
            detail="the first instruction must be FROM",
        ),
        VerificationCheck(
            "dockerfile",
            "has_start_command",
            "CMD" in instructions or "ENTRYPOINT" in instructions,
            detail="a CMD or ENTRYPOINT is required",
        ),
        VerificationCheck(
            "dockerfile",
            "runs_as_non_root",
            "USER" in instructions,
            severity="warning",
            detail="containers should drop root with USER",
        ),
    ]
    return checks


def check_workflow(content: str) -> List[VerificationCheck]:
    try:
        data = yaml.safe_load(content)
    except yaml.YAMLError as exc:
        return [VerificationCheck("githubActions", "valid_yaml", False, detail=str(exc))]
    if not isinstance(data, dict):
        return [VerificationCheck("githubActions", "valid_yaml", False, detail="root is not a mapping")]

    # YAML 1.1 reads the bare `on` key as boolean True
    trigger = data.get("on", data.get(True))
    jobs = data.get("jobs")
    checks = [
        VerificationCheck("githubActions", "valid_yaml", True),
        VerificationCheck("githubActions", "has_trigger", bool(trigger), detail="an `on` trigger is required"),
        VerificationCheck(
            "githubActions",
            "has_jobs",
            isinstance(jobs, dict) and bool(jobs),
            detail="at least one job is required",
        ),
    ]
    if isinstance(jobs, dict):
        incomplete = [
            name
            for name, job in jobs.items()
            if not isinstance(job, dict) or "runs-on" not in job or not job.get("steps")
        ]
        checks.append(
            VerificationCheck(
                "githubActions",
                "jobs_complete",
                not incomplete,
                detail=f"jobs missing runs-on or steps: {', '.join(map(str, incomplete))}" if incomplete else "",
            )
        )
    return checks


def check_env_example(content: str) -> List[VerificationCheck]:
    invalid: List[str] = []
    seen: set[str] = set()
    duplicates: List[str] = []
    for raw in content.splitlines():
        line = raw.strip()
        if not line or line.startswith("#"):
            continue
        if not _ENV_LINE.match(line):
            invalid.append(line)
            continue
        key = line.split("=", 1)[0]
        if key in seen:
            duplicates.append(key)
        seen.add(key)
    return [
        VerificationCheck(
            "envExample",
            "key_value_lines",
            not invalid and bool(seen),
            detail=f"malformed lines: {invalid[:3]}" if invalid else ("no variables defined" if not seen else ""),
        ),
        VerificationCheck(
            "envExample",
            "unique_keys",
            not duplicates,
            severity="warning",
            detail=f"duplicated keys: {duplicates}" if duplicates else "",
        ),
    ]


def check_confidence(tech_stack: Optional[TechStackProfile]) -> VerificationCheck:
    confidence = tech_stack.confidence if tech_stack else 0
    return VerificationCheck(
        "techStack",
        "detection_confidence",
        confidence >= LOW_CONFIDENCE_THRESHOLD,
        severity="warning",
        detail=f"confidence {confidence}: review the generated artifacts before use",
    )


def verify_artifacts(
    artifacts: Optional[GeneratedArtifactSet],
    tech_stack: Optional[TechStackProfile] = None,
) -> List[VerificationCheck]:
    if artifacts is None:
        return [
            VerificationCheck("all", "artifacts_present", False, detail="no artifacts were generated"),
            check_confidence(tech_stack),
        ]
    checks: List[VerificationCheck] = []
    checks.extend(check_dockerfile(artifacts.dockerfile))
    checks.extend(check_workflow(artifacts.github_actions))
    checks.extend(check_env_example(artifacts.env_example))
    checks.append(check_confidence(tech_stack))
    return checks


def build_verifier_prompt(artifacts: GeneratedArtifactSet) -> str:
    return (
        "Review the generated files for:\n"
        "1. Syntax correctness\n"
        "2. Security best practices\n"
        "3. Performance optimizations\n"
        "4. Compliance with standards\n\n"
        "Generated Files:\n"
        f"- Dockerfile: {artifacts.dockerfile[:500]}...\n"
        f"- GitHub Actions: {artifacts.github_actions[:500]}...\n"
        f"- .env.example: {artifacts.env_example[:500]}...\n\n"
        "Provide verification results and any recommendations for improvements."
    )


class VerifierAgent(Agent):
    name = "Verifier"
    step = "Validating generated configurations"
    checkpoint = 95

    def __init__(self, llm: LLMRunner | None = None) -> None:
        self.llm = llm

    async def run(self, state: PipelineState) -> PhaseContribution:
        checks = verify_artifacts(state.generated_files, state.tech_stack)
        review = await self._review(state.generated_files)
        report = VerificationReport(checks=tuple(checks), review=review)
        for failure in report.failures():
            logger.info("Check %s/%s did not pass: %s", failure.artifact, failure.name, failure.detail)
        return PhaseContribution(
            verification=report,
            messages=(self.message("Validation complete"),),
        )

    async def _review(self, artifacts: Optional[GeneratedArtifactSet]) -> Optional[str]:
        if self.llm is None or artifacts is None:
            return None
        loop = asyncio.get_running_loop()
        prompt = build_verifier_prompt(artifacts)
        try:
            return await loop.run_in_executor(None, lambda: self.llm.run(prompt, system=VERIFIER_SYSTEM))
        except ExternalServiceDegradedError as exc:
            logger.warning("Verifier model unavailable, keeping rule checks only: %s", exc)
            return None
