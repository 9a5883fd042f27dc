"""Shared helper utilities for manifest parsing."""

from __future__ import annotations

import json
import re
import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Set

from ..logging import get_logger

logger = get_logger("analyzers")


class ManifestError(ValueError):
    """Raised when a manifest file exists but cannot be parsed."""

    def __init__(self, filename: str, detail: str) -> None:
        super().__init__(f"Malformed {filename}: {detail}")
        self.filename = filename


# Node.js helpers


def load_package_json(root: Path) -> Dict[str, object]:
    """Return the parsed package.json, ``{}`` when absent.

    Raises ManifestError when the file exists but is not a JSON object.
    """
    package_json = root / "package.json"
    if not package_json.is_file():
        return {}
    try:
        data = json.loads(package_json.read_text(encoding="utf-8"))
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        raise ManifestError("package.json", str(exc)) from exc
    if not isinstance(data, dict):
        raise ManifestError("package.json", "top-level value is not an object")
    return data


def node_dependencies(package: Dict[str, object]) -> Dict[str, List[str]]:
    """Return Node.js dependencies separated into runtime/dev lists."""

    def _extract(key: str) -> List[str]:
        deps = package.get(key, {})
        if isinstance(deps, dict):
            return sorted(str(name) for name in deps)
        return []

    return {
        "dependencies": _extract("dependencies"),
        "devDependencies": _extract("devDependencies"),
    }


def detect_node_package_manager(paths: Set[str]) -> str:
    """Infer the preferred Node package manager based on lockfiles."""
    if "pnpm-lock.yaml" in paths:
        return "pnpm"
    if "yarn.lock" in paths:
        return "yarn"
    return "npm"


def build_node_script_command(script: str, manager: str) -> str:
    manager = manager.lower()
    if manager == "pnpm":
        return f"pnpm {script}"
    if manager == "yarn":
        return f"yarn {script}"
    # npm run <script>, except start and test which have shorthands
    if script in {"start", "test"}:
        return f"npm {script}"
    return f"npm run {script}"


# Python helpers


def load_python_dependencies(root: Path) -> List[str]:
    """Collect lower-cased Python dependency names from requirements.txt and pyproject.toml."""
    deps: Set[str] = set()

    requirements = root / "requirements.txt"
    if requirements.is_file():
        deps.update(_parse_requirements(requirements))

    pyproject = root / "pyproject.toml"
    if pyproject.is_file():
        deps.update(_parse_pyproject(pyproject))

    return sorted(deps)


def _parse_requirements(path: Path) -> List[str]:
    packages: List[str] = []
    try:
        lines = path.read_text(encoding="utf-8").splitlines()
    except UnicodeDecodeError as exc:
        raise ManifestError(path.name, str(exc)) from exc
    for line in lines:
        stripped = line.strip()
        if not stripped or stripped.startswith(("#", "-")):
            continue
        name = re.split(r"[<>=!~;\[ ]", stripped, maxsplit=1)[0].strip()
        if name:
            packages.append(name.lower())
    return packages


def _parse_pyproject(path: Path) -> List[str]:
    try:
        data = tomllib.loads(path.read_text(encoding="utf-8"))
    except (tomllib.TOMLDecodeError, UnicodeDecodeError) as exc:
        raise ManifestError(path.name, str(exc)) from exc

    dependencies: List[object] = []
    project = data.get("project")
    if isinstance(project, dict):
        dependencies.extend(project.get("dependencies", []) or [])
        optional = project.get("optional-dependencies", {}) or {}
        for values in optional.values():
            dependencies.extend(values or [])

    tool = data.get("tool")
    poetry = tool.get("poetry", {}) if isinstance(tool, dict) else {}
    if isinstance(poetry, dict):
        poetry_deps = poetry.get("dependencies", {}) or {}
        dependencies.extend(poetry_deps.keys())

    packages: Set[str] = set()
    for dep in dependencies:
        if isinstance(dep, str):
            name = re.split(r"[<>=!~;\[ ]", dep, maxsplit=1)[0].strip()
            if name and name.lower() != "python":
                packages.add(name.lower())
    return sorted(packages)


# Commands and entry points


@dataclass
class ManifestDetails:
    """Entry points and developer commands read from manifest files."""

    entry_points: List[str] = field(default_factory=list)
    build_commands: List[str] = field(default_factory=list)
    test_commands: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)


_ENTRY_POINT_FILES = (
    "manage.py",
    "app.py",
    "main.py",
    "wsgi.py",
    "main.go",
    "src/main.rs",
    "server.js",
    "index.js",
)


def collect_manifest_details(root: Path, paths: Set[str]) -> ManifestDetails:
    """Derive entry points plus build/test commands for every detected ecosystem."""
    details = ManifestDetails()

    if "package.json" in paths:
        try:
            package = load_package_json(root)
        except ManifestError as exc:
            logger.warning("%s; skipping npm scripts", exc)
            details.warnings.append(str(exc))
            package = {}
        main = package.get("main")
        if isinstance(main, str) and main:
            details.entry_points.append(main)
        scripts = package.get("scripts")
        manager = detect_node_package_manager(paths)
        if isinstance(scripts, dict):
            for script in ("build", "start"):
                if script in scripts:
                    details.build_commands.append(build_node_script_command(script, manager))
            if "test" in scripts:
                details.test_commands.append(build_node_script_command("test", manager))

    if {"requirements.txt", "pyproject.toml"} & paths:
        if "requirements.txt" in paths:
            details.build_commands.append("pip install -r requirements.txt")
        else:
            details.build_commands.append("pip install .")
        details.test_commands.append("python -m pytest")

    if "go.mod" in paths:
        details.build_commands.append("go build ./...")
        details.test_commands.append("go test ./...")

    if "Cargo.toml" in paths:
        details.build_commands.append("cargo build --release")
        details.test_commands.append("cargo test")

    if "pom.xml" in paths:
        mvn = "./mvnw" if "mvnw" in paths else "mvn"
        details.build_commands.append(f"{mvn} -B package -DskipTests")
        details.test_commands.append(f"{mvn} -B test")
    elif {"build.gradle", "build.gradle.kts"} & paths:
        gradle = "./gradlew" if "gradlew" in paths else "gradle"
        details.build_commands.append(f"{gradle} build -x test")
        details.test_commands.append(f"{gradle} test")

    for candidate in _ENTRY_POINT_FILES:
        if candidate in paths and candidate not in details.entry_points:
            details.entry_points.append(candidate)

    return details
