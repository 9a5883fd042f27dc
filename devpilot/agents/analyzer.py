"""Analyzer agent: scanner, classifier and profiler in one phase."""

from __future__ import annotations

import asyncio
from dataclasses import replace
from pathlib import Path
from typing import List, Tuple

from ..analyzers import CodebaseProfiler, TechStackClassifier, collect_manifest_details
from ..config import ScannerConfig
from ..models import CodebaseAnalysis, PhaseContribution, PipelineState, ProjectStructure, TechStackProfile
from ..repo_scanner import RepoScanner
from .base import Agent


class AnalyzerAgent(Agent):
    name = "Analyzer"
    step = "Analyzing codebase structure"
    checkpoint = 50

    def __init__(
        self,
        scanner: RepoScanner | None = None,
        classifier: TechStackClassifier | None = None,
        profiler: CodebaseProfiler | None = None,
        *,
        scanner_config: ScannerConfig | None = None,
    ) -> None:
        self.scanner = scanner or RepoScanner(scanner_config)
        self.classifier = classifier or TechStackClassifier()
        self.profiler = profiler or CodebaseProfiler()

    async def run(self, state: PipelineState) -> PhaseContribution:
        loop = asyncio.get_running_loop()
        structure, tech_stack, analysis, warnings = await loop.run_in_executor(
            None, self.analyze, Path(state.repo_path)
        )
        return PhaseContribution(
            project_structure=structure,
            tech_stack=tech_stack,
            codebase_analysis=analysis,
            messages=(self.message(f"Detected tech stack: {tech_stack.primary}"),),
            errors=tuple(warnings),
        )

    def analyze(self, root: Path) -> Tuple[ProjectStructure, TechStackProfile, CodebaseAnalysis, List[str]]:
        """Blocking analysis of a checked-out repository."""
        structure = self.scanner.scan(root)
        tech_stack = self.classifier.classify(root, structure)
        analysis = self.profiler.profile(structure)

        files = {path for path, entry in structure.items() if entry.is_file}
        details = collect_manifest_details(root, files)
        analysis = replace(
            analysis,
            entry_points=tuple(details.entry_points),
            build_commands=tuple(details.build_commands),
            test_commands=tuple(details.test_commands),
        )

        warnings: List[str] = []
        for warning in (*tech_stack.warnings, *details.warnings):
            if warning not in warnings:
                warnings.append(warning)
        return structure, tech_stack, analysis, warnings
