"""Deployment artifact generation from jinja2 templates."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Tuple

from jinja2 import Environment, FileSystemLoader, StrictUndefined

from ..analyzers.utils import detect_node_package_manager
from ..logging import get_logger
from ..models import CodebaseAnalysis, GeneratedArtifactSet, InventoryEntry, TechStackProfile
from .env_template import build_env_example

logger = get_logger("generator")

_TEMPLATES_DIR = Path(__file__).with_name("templates")

_PLATFORM_TEMPLATES = {
    "Python": "python",
    "Go": "go",
    "Rust": "rust",
    "Java": "java",
}

_NODE_INSTALL = {
    "npm": ("npm ci", "npm ci --omit=dev && npm cache clean --force"),
    "yarn": ("yarn install --frozen-lockfile", "yarn install --frozen-lockfile --production && yarn cache clean"),
    "pnpm": (
        "corepack enable && pnpm install --frozen-lockfile",
        "corepack enable && pnpm install --frozen-lockfile --prod",
    ),
}
_NODE_LOCKFILES = {"npm": "package-lock.json", "yarn": "yarn.lock", "pnpm": "pnpm-lock.yaml"}
_TEST_RUNNERS = {
    "node": ("npm", "yarn", "pnpm"),
    "node_fullstack": ("npm", "yarn", "pnpm"),
    "python": ("python", "pytest"),
    "go": ("go",),
    "rust": ("cargo",),
    "java": ("mvn", "./mvnw", "gradle", "./gradlew"),
}


def gh(expression: str) -> str:
    """Render a GitHub Actions expression without clashing with jinja syntax."""
    return "${{ " + expression + " }}"


@dataclass(frozen=True)
class TemplateSelection:
    key: str
    reason: str


class ArtifactGenerator:
    """Produces the Dockerfile, CI workflow and environment template for a stack."""

    def __init__(self, templates_dir: Path | None = None, *, min_confidence: int = 20) -> None:
        self.min_confidence = min_confidence
        directories = [str(templates_dir)] if templates_dir else []
        directories.append(str(_TEMPLATES_DIR))
        self._env = Environment(
            loader=FileSystemLoader(directories),
            autoescape=False,
            trim_blocks=True,
            lstrip_blocks=True,
            keep_trailing_newline=True,
            undefined=StrictUndefined,
        )
        self._env.globals["gh"] = gh

    def select_template(self, tech_stack: TechStackProfile) -> TemplateSelection:
        if not tech_stack.is_known:
            return TemplateSelection("generic", "no recognised signal files")
        if tech_stack.confidence < self.min_confidence:
            return TemplateSelection(
                "generic", f"confidence {tech_stack.confidence} below {self.min_confidence}"
            )
        if tech_stack.primary == "Node.js":
            if tech_stack.frontend:
                return TemplateSelection("node_fullstack", "Node.js with a frontend framework")
            return TemplateSelection("node", "Node.js service")
        key = _PLATFORM_TEMPLATES.get(tech_stack.primary)
        if key is None:
            return TemplateSelection("generic", f"no template for {tech_stack.primary}")
        return TemplateSelection(key, f"{tech_stack.primary} project")

    def generate(
        self,
        tech_stack: Optional[TechStackProfile],
        project_structure: Optional[Mapping[str, InventoryEntry]],
        codebase_analysis: Optional[CodebaseAnalysis],
    ) -> GeneratedArtifactSet:
        """Render all three artifacts; missing inputs fall back to generic defaults."""
        stack = tech_stack or TechStackProfile()
        structure = project_structure or {}
        analysis = codebase_analysis or CodebaseAnalysis()

        selection = self.select_template(stack)
        logger.info("Rendering %s templates (%s)", selection.key, selection.reason)
        context = self._build_context(stack, structure, analysis, selection)

        dockerfile = self._render(f"dockerfile/{selection.key}.j2", context)
        workflow = self._render(f"workflow/{selection.key}.j2", context)
        env_example = build_env_example(stack)
        return GeneratedArtifactSet(
            dockerfile=dockerfile,
            github_actions=workflow,
            env_example=env_example,
        )

    def _render(self, template_name: str, context: Dict[str, Any]) -> str:
        template = self._env.get_template(template_name)
        return template.render(**context).strip() + "\n"

    def _build_context(
        self,
        stack: TechStackProfile,
        structure: Mapping[str, InventoryEntry],
        analysis: CodebaseAnalysis,
        selection: TemplateSelection,
    ) -> Dict[str, Any]:
        root_files = {path for path, entry in structure.items() if entry.is_file and "/" not in path}
        manager = detect_node_package_manager(root_files)
        lockfile = _NODE_LOCKFILES[manager] if _NODE_LOCKFILES[manager] in root_files else None
        install_all, install_prod = _NODE_INSTALL[manager]
        if manager == "npm" and lockfile is None:
            install_all, install_prod = "npm install", "npm install --omit=dev && npm cache clean --force"
        has_build = any(cmd.endswith("build") for cmd in analysis.build_commands)
        return {
            "stack": stack,
            "analysis": analysis,
            "template": selection.key,
            "root_files": sorted(root_files),
            "summary": _summary(stack),
            "node_manager": manager,
            "node_lockfile": lockfile,
            "node_install": install_all,
            "node_install_prod": install_prod,
            "node_build": f"{manager} run build" if has_build else None,
            "has_requirements": "requirements.txt" in root_files,
            "python_command": _python_command(stack, structure, root_files),
            "java_tool": "gradle" if {"build.gradle", "build.gradle.kts"} & root_files and "pom.xml" not in root_files else "maven",
            "port": _port(stack),
            "test_commands": [
                command
                for command in analysis.test_commands
                if command.split()[0] in _TEST_RUNNERS.get(selection.key, ())
            ],
        }


def _summary(stack: TechStackProfile) -> str:
    labels: List[str] = [stack.primary]
    labels.extend(label for label in (*stack.frontend, *stack.backend) if label not in labels)
    return " + ".join(labels) + f" (detection confidence {stack.confidence}%)"


def _port(stack: TechStackProfile) -> int:
    if stack.primary == "Node.js":
        return 3000
    if stack.primary == "Python":
        return 8000
    return 8080


def _python_command(
    stack: TechStackProfile,
    structure: Mapping[str, InventoryEntry],
    root_files: set[str],
) -> List[str]:
    backends = set(stack.backend)
    if "Django" in backends:
        wsgi = _django_wsgi_module(structure)
        if wsgi:
            return ["gunicorn", "--bind", "0.0.0.0:8000", f"{wsgi}:application"]
        return ["python", "manage.py", "runserver", "0.0.0.0:8000"]
    module = "main" if "main.py" in root_files else "app"
    if "FastAPI" in backends:
        return ["uvicorn", f"{module}:app", "--host", "0.0.0.0", "--port", "8000"]
    if "Flask" in backends:
        return ["gunicorn", "--bind", "0.0.0.0:8000", f"{module}:app"]
    return ["python", f"{module}.py"]


def _django_wsgi_module(structure: Mapping[str, InventoryEntry]) -> Optional[str]:
    candidates: List[Tuple[int, str]] = []
    for path in structure:
        parts = path.split("/")
        if parts[-1] == "wsgi.py" and len(parts) == 2:
            candidates.append((len(path), f"{parts[0]}.wsgi"))
    if not candidates:
        return None
    return sorted(candidates)[0][1]
