"""Tech-stack classification from signal files and manifest contents."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, List, Mapping, Optional, Sequence, Set, Tuple

from ..logging import get_logger
from ..models import InventoryEntry, TechStackProfile
from .utils import ManifestError, load_package_json, load_python_dependencies, node_dependencies

logger = get_logger("classifier")

CONFIDENCE_PER_SIGNAL = 25

_NODE_FRONTENDS = (("react", "React"), ("vue", "Vue"), ("@angular/core", "Angular"))
_NODE_BACKENDS = (("express", "Express.js"), ("fastify", "Fastify"))
_NODE_FRAMEWORKS = (("next", "Next.js"),)
_NODE_DATABASES = (
    ("mongoose", "MongoDB"),
    ("mongodb", "MongoDB"),
    ("pg", "PostgreSQL"),
    ("mysql", "MySQL"),
    ("mysql2", "MySQL"),
    ("redis", "Redis"),
    ("ioredis", "Redis"),
)
_PYTHON_DATABASES = (
    ("psycopg2", "PostgreSQL"),
    ("psycopg2-binary", "PostgreSQL"),
    ("psycopg", "PostgreSQL"),
    ("asyncpg", "PostgreSQL"),
    ("pymongo", "MongoDB"),
    ("motor", "MongoDB"),
    ("redis", "Redis"),
    ("pymysql", "MySQL"),
    ("mysqlclient", "MySQL"),
    ("sqlalchemy", "SQLAlchemy"),
)
_LOCKFILES = {
    "package-lock.json",
    "yarn.lock",
    "pnpm-lock.yaml",
    "poetry.lock",
    "Pipfile.lock",
    "go.sum",
    "Cargo.lock",
}


@dataclass
class _Findings:
    frontend: List[str] = field(default_factory=list)
    backend: List[str] = field(default_factory=list)
    database: List[str] = field(default_factory=list)
    framework: List[str] = field(default_factory=list)
    language: List[str] = field(default_factory=list)
    deployment: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)

    def add(self, category: str, label: str) -> None:
        bucket: List[str] = getattr(self, category)
        if label not in bucket:
            bucket.append(label)

    def detected_labels(self) -> Set[str]:
        return {*self.frontend, *self.backend, *self.database, *self.framework}


Detector = Callable[[Path, Set[str], _Findings], None]


@dataclass(frozen=True)
class StackRule:
    """One row of the classification table."""

    platform: str
    signal_files: Tuple[str, ...]
    languages: Tuple[str, ...]
    detect: Optional[Detector] = None

    def matches(self, root_files: Set[str]) -> bool:
        return any(name in root_files for name in self.signal_files)


def _detect_node(root: Path, root_files: Set[str], findings: _Findings) -> None:
    if "tsconfig.json" in root_files:
        findings.add("language", "TypeScript")
    try:
        package = load_package_json(root)
    except ManifestError as exc:
        logger.warning("%s; falling back to file-presence detection", exc)
        findings.warnings.append(str(exc))
        return

    deps = node_dependencies(package)
    declared = set(deps["dependencies"]) | set(deps["devDependencies"])
    if "typescript" in deps["devDependencies"]:
        findings.add("language", "TypeScript")
    for category, table in (
        ("frontend", _NODE_FRONTENDS),
        ("backend", _NODE_BACKENDS),
        ("framework", _NODE_FRAMEWORKS),
        ("database", _NODE_DATABASES),
    ):
        for dependency, label in table:
            if dependency in declared:
                findings.add(category, label)


def _detect_python(root: Path, root_files: Set[str], findings: _Findings) -> None:
    if "manage.py" in root_files:
        findings.add("backend", "Django")
        findings.add("framework", "Django")
    try:
        declared = set(load_python_dependencies(root))
    except ManifestError as exc:
        logger.warning("%s; falling back to file-presence detection", exc)
        findings.warnings.append(str(exc))
        return

    if {"app.py", "main.py"} & root_files:
        for dependency, label in (("flask", "Flask"), ("fastapi", "FastAPI")):
            if dependency in declared:
                findings.add("backend", label)
                findings.add("framework", label)
    for dependency, label in _PYTHON_DATABASES:
        if dependency in declared:
            findings.add("database", label)


def _detect_java(root: Path, root_files: Set[str], findings: _Findings) -> None:
    if "pom.xml" in root_files:
        findings.add("framework", "Maven")
    if {"build.gradle", "build.gradle.kts"} & root_files:
        findings.add("framework", "Gradle")


DEFAULT_RULES: Tuple[StackRule, ...] = (
    StackRule("Node.js", ("package.json",), ("JavaScript",), _detect_node),
    StackRule("Python", ("requirements.txt", "pyproject.toml"), ("Python",), _detect_python),
    StackRule("Go", ("go.mod",), ("Go",)),
    StackRule("Rust", ("Cargo.toml",), ("Rust",)),
    StackRule("Java", ("pom.xml", "build.gradle", "build.gradle.kts"), ("Java",), _detect_java),
)


class TechStackClassifier:
    """Infers the primary platform, frameworks and languages of a snapshot.

    The primary platform comes from the first matching rule; languages and
    frameworks are collected from every matching rule. The confidence score
    grows by a fixed step per independent signal and is capped at 100.
    """

    def __init__(self, rules: Sequence[StackRule] = DEFAULT_RULES) -> None:
        self.rules = tuple(rules)

    def classify(self, root: str | Path, inventory: Mapping[str, InventoryEntry]) -> TechStackProfile:
        root_path = Path(root)
        files = [path for path, entry in inventory.items() if entry.is_file]
        root_files = {path for path in files if "/" not in path}
        basenames = {path.rsplit("/", 1)[-1] for path in files}

        findings = _Findings()
        primary = "unknown"
        matched_rules = 0
        for rule in self.rules:
            if not rule.matches(root_files):
                continue
            matched_rules += 1
            if primary == "unknown":
                primary = rule.platform
            for language in rule.languages:
                findings.add("language", language)
            if rule.detect is not None:
                rule.detect(root_path, root_files, findings)

        if any(name.startswith("docker-compose") or name in {"compose.yml", "compose.yaml"} for name in basenames):
            findings.add("deployment", "Docker Compose")
        if "Dockerfile" in basenames:
            findings.add("deployment", "Docker")

        signal_count = (
            matched_rules
            + len(findings.detected_labels())
            + len(findings.deployment)
            + (1 if _LOCKFILES & root_files else 0)
        )
        confidence = min(100, CONFIDENCE_PER_SIGNAL * signal_count)

        profile = TechStackProfile(
            primary=primary,
            frontend=tuple(findings.frontend),
            backend=tuple(findings.backend),
            database=tuple(findings.database),
            deployment=tuple(findings.deployment),
            language=tuple(findings.language),
            framework=tuple(findings.framework),
            confidence=confidence,
            warnings=tuple(findings.warnings),
        )
        logger.info("Classified %s as %s (confidence %d)", root_path.name or root_path, primary, confidence)
        return profile
