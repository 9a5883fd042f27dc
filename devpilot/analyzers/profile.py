"""Codebase profiling driven by an explicit tag rule table."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, List, Mapping, Sequence, Set, Tuple

from ..models import CodebaseAnalysis, InventoryEntry


@dataclass(frozen=True)
class TagRule:
    """Tags a path when any needle occurs in it."""

    tag: str
    needles: Tuple[str, ...]
    case_sensitive: bool = True

    def matches(self, path: str) -> bool:
        haystack = path if self.case_sensitive else path.lower()
        for needle in self.needles:
            target = needle if self.case_sensitive else needle.lower()
            if target in haystack:
                return True
        return False


# Substring matching is coarse: "contest.py" is tagged as tests.
DEFAULT_TAG_RULES: Tuple[TagRule, ...] = (
    TagRule("tests", ("test", "spec", "__tests__")),
    TagRule("documentation", ("readme", "docs"), case_sensitive=False),
    TagRule("cicd", (".github/workflows", ".gitlab-ci", "Jenkinsfile")),
)

KEY_FILE_NAMES = frozenset(
    {
        "package.json",
        "requirements.txt",
        "pyproject.toml",
        "go.mod",
        "Cargo.toml",
        "pom.xml",
        "build.gradle",
        "Dockerfile",
        "docker-compose.yml",
        "docker-compose.yaml",
        ".github/workflows",
        "README.md",
        "LICENSE",
        ".gitignore",
    }
)

CONFIG_FILE_NAMES = frozenset(
    {
        "tsconfig.json",
        "webpack.config.js",
        "vite.config.js",
        "vite.config.ts",
        "next.config.js",
        ".env.example",
        "docker-compose.yml",
        "setup.cfg",
        "tox.ini",
    }
)


class CodebaseProfiler:
    """Derives counts, flags and key files from a scanner inventory."""

    def __init__(self, rules: Sequence[TagRule] = DEFAULT_TAG_RULES) -> None:
        self.rules = tuple(rules)

    def tag(self, inventory: Mapping[str, InventoryEntry]) -> Dict[str, List[str]]:
        """Return ``tag -> matching paths`` for every rule."""
        tagged: Dict[str, List[str]] = {rule.tag: [] for rule in self.rules}
        for path in inventory:
            for rule in self.rules:
                if rule.matches(path):
                    tagged[rule.tag].append(path)
        return tagged

    def profile(self, inventory: Mapping[str, InventoryEntry]) -> CodebaseAnalysis:
        file_count = 0
        directories = 0
        total_size = 0
        for entry in inventory.values():
            if entry.is_file:
                file_count += 1
                total_size += entry.size or 0
            else:
                directories += 1

        tagged = self.tag(inventory)
        key_files = sorted(path for path in inventory if path in KEY_FILE_NAMES)
        config_files = sorted(path for path in inventory if path in CONFIG_FILE_NAMES)

        return CodebaseAnalysis(
            file_count=file_count,
            directories=directories,
            total_size=total_size,
            has_tests=bool(tagged.get("tests")),
            has_documentation=bool(tagged.get("documentation")),
            has_cicd=bool(tagged.get("cicd")),
            key_files=tuple(key_files),
            config_files=tuple(config_files),
            recommendations=tuple(_recommendations(set(inventory), bool(tagged.get("cicd")))),
        )


def _recommendations(paths: Set[str], has_cicd: bool) -> List[str]:
    recommendations: List[str] = []
    if "Dockerfile" not in paths:
        recommendations.append("Add Dockerfile for containerization")
    if not has_cicd:
        recommendations.append("Add GitHub Actions for CI/CD")
    if ".env.example" not in paths:
        recommendations.append("Add .env.example for environment configuration")
    return recommendations
