"""Core data models shared across devpilot components."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import UTC, datetime
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

from .errors import ArtifactNotFoundError, StateConflictError


def utcnow() -> datetime:
    return datetime.now(UTC)


def isoformat(value: Optional[datetime]) -> Optional[str]:
    if value is None:
        return None
    return value.isoformat().replace("+00:00", "Z")


@dataclass(frozen=True)
class InventoryEntry:
    """A single file or directory discovered by the scanner."""

    type: str
    size: Optional[int] = None
    extension: Optional[str] = None

    @property
    def is_file(self) -> bool:
        return self.type == "file"

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"type": self.type}
        if self.is_file:
            payload["size"] = self.size or 0
            payload["extension"] = self.extension or ""
        return payload


ProjectStructure = Dict[str, InventoryEntry]


@dataclass(frozen=True)
class TechStackProfile:
    """Classifier output; immutable once produced."""

    primary: str = "unknown"
    frontend: Tuple[str, ...] = ()
    backend: Tuple[str, ...] = ()
    database: Tuple[str, ...] = ()
    deployment: Tuple[str, ...] = ()
    language: Tuple[str, ...] = ()
    framework: Tuple[str, ...] = ()
    confidence: int = 0
    warnings: Tuple[str, ...] = ()

    @property
    def is_known(self) -> bool:
        return self.primary != "unknown"

    def signal_text(self) -> str:
        """Lower-cased blob of every detected label, used for keyword checks."""
        parts = [self.primary, *self.frontend, *self.backend, *self.database]
        parts.extend([*self.deployment, *self.language, *self.framework])
        return " ".join(parts).lower()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "primary": self.primary,
            "frontend": list(self.frontend),
            "backend": list(self.backend),
            "database": list(self.database),
            "deployment": list(self.deployment),
            "language": list(self.language),
            "framework": list(self.framework),
            "confidence": self.confidence,
            "warnings": list(self.warnings),
        }


@dataclass(frozen=True)
class CodebaseAnalysis:
    """Summary statistics and flags derived from the inventory."""

    file_count: int = 0
    directories: int = 0
    total_size: int = 0
    has_tests: bool = False
    has_documentation: bool = False
    has_cicd: bool = False
    key_files: Tuple[str, ...] = ()
    config_files: Tuple[str, ...] = ()
    entry_points: Tuple[str, ...] = ()
    build_commands: Tuple[str, ...] = ()
    test_commands: Tuple[str, ...] = ()
    recommendations: Tuple[str, ...] = ()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "fileCount": self.file_count,
            "directories": self.directories,
            "totalSize": self.total_size,
            "hasTests": self.has_tests,
            "hasDocumentation": self.has_documentation,
            "hasCICD": self.has_cicd,
            "keyFiles": list(self.key_files),
            "configFiles": list(self.config_files),
            "entryPoints": list(self.entry_points),
            "buildCommands": list(self.build_commands),
            "testCommands": list(self.test_commands),
            "recommendations": list(self.recommendations),
        }


ARTIFACT_FILENAMES: Dict[str, str] = {
    "dockerfile": "Dockerfile",
    "githubActions": "ci.yml",
    "envExample": ".env.example",
}


@dataclass(frozen=True)
class GeneratedArtifactSet:
    """The three deployment artifacts produced by the generator."""

    dockerfile: str
    github_actions: str
    env_example: str

    def to_dict(self) -> Dict[str, str]:
        return {
            "dockerfile": self.dockerfile,
            "githubActions": self.github_actions,
            "envExample": self.env_example,
        }

    def names(self) -> list[str]:
        return list(self.to_dict())

    def get(self, name: str) -> Tuple[str, str]:
        """Return ``(filename, content)`` for an artifact key or filename."""
        contents = self.to_dict()
        for key, filename in ARTIFACT_FILENAMES.items():
            if name in (key, filename):
                return filename, contents[key]
        raise ArtifactNotFoundError(f"Unknown artifact: {name}")


@dataclass(frozen=True)
class VerificationCheck:
    artifact: str
    name: str
    passed: bool
    severity: str = "error"
    detail: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "artifact": self.artifact,
            "name": self.name,
            "passed": self.passed,
            "severity": self.severity,
            "detail": self.detail,
        }


@dataclass(frozen=True)
class VerificationReport:
    """Verifier output: rule checks plus an optional model review."""

    checks: Tuple[VerificationCheck, ...] = ()
    review: Optional[str] = None

    @property
    def passed(self) -> bool:
        return all(check.passed for check in self.checks if check.severity == "error")

    def failures(self) -> list[VerificationCheck]:
        return [check for check in self.checks if not check.passed]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "passed": self.passed,
            "checks": [check.to_dict() for check in self.checks],
            "review": self.review,
        }


@dataclass(frozen=True)
class AgentMessage:
    agent: str
    message: str
    timestamp: datetime = field(default_factory=utcnow)

    def to_dict(self) -> Dict[str, str]:
        return {
            "agent": self.agent,
            "message": self.message,
            "timestamp": isoformat(self.timestamp) or "",
        }


@dataclass(frozen=True)
class PhaseContribution:
    """What a single agent adds to the pipeline state.

    Fields left as ``None`` are untouched by the merge; messages and errors
    are appended in order.
    """

    plan: Optional[str] = None
    project_structure: Optional[ProjectStructure] = None
    tech_stack: Optional[TechStackProfile] = None
    codebase_analysis: Optional[CodebaseAnalysis] = None
    generated_files: Optional[GeneratedArtifactSet] = None
    verification: Optional[VerificationReport] = None
    messages: Tuple[AgentMessage, ...] = ()
    errors: Tuple[str, ...] = ()


_WRITE_ONCE_FIELDS = (
    "plan",
    "project_structure",
    "tech_stack",
    "codebase_analysis",
    "generated_files",
    "verification",
)


@dataclass(frozen=True)
class PipelineState:
    """Immutable snapshot threaded through the four agents."""

    repo_url: str
    repo_path: Path
    plan: Optional[str] = None
    project_structure: Optional[ProjectStructure] = None
    tech_stack: Optional[TechStackProfile] = None
    codebase_analysis: Optional[CodebaseAnalysis] = None
    generated_files: Optional[GeneratedArtifactSet] = None
    verification: Optional[VerificationReport] = None
    current_step: str = ""
    progress: int = 0
    messages: Tuple[AgentMessage, ...] = ()
    errors: Tuple[str, ...] = ()

    def advance(self, step: str, progress: int) -> "PipelineState":
        """Move to a new phase label; progress never goes backwards."""
        return replace(self, current_step=step, progress=max(self.progress, min(progress, 100)))

    def with_error(self, message: str) -> "PipelineState":
        return replace(self, errors=self.errors + (message,))

    def merge(self, contribution: PhaseContribution) -> "PipelineState":
        changes: Dict[str, Any] = {}
        for name in _WRITE_ONCE_FIELDS:
            value = getattr(contribution, name)
            if value is None:
                continue
            if getattr(self, name) is not None:
                raise StateConflictError(f"'{name}' was already set by an earlier phase")
            changes[name] = value
        changes["messages"] = self.messages + tuple(contribution.messages)
        changes["errors"] = self.errors + tuple(contribution.errors)
        return replace(self, **changes)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "repoUrl": self.repo_url,
            "repoPath": str(self.repo_path),
            "plan": self.plan,
            "projectStructure": {
                path: entry.to_dict() for path, entry in (self.project_structure or {}).items()
            },
            "techStack": self.tech_stack.to_dict() if self.tech_stack else None,
            "codebaseAnalysis": self.codebase_analysis.to_dict() if self.codebase_analysis else None,
            "generatedFiles": self.generated_files.to_dict() if self.generated_files else {},
            "verificationResults": self.verification.to_dict() if self.verification else None,
            "currentStep": self.current_step,
            "progress": self.progress,
            "messages": [message.to_dict() for message in self.messages],
            "errors": list(self.errors),
        }


@dataclass(frozen=True)
class ProgressUpdate:
    """Event emitted by the orchestrator after each phase boundary."""

    step: str
    progress: int
    messages: Tuple[AgentMessage, ...]
    errors: Tuple[str, ...]
    tech_stack: Optional[TechStackProfile] = None
    generated_files: Optional[GeneratedArtifactSet] = None

    @classmethod
    def from_state(cls, state: PipelineState) -> "ProgressUpdate":
        return cls(
            step=state.current_step,
            progress=state.progress,
            messages=state.messages,
            errors=state.errors,
            tech_stack=state.tech_stack,
            generated_files=state.generated_files,
        )


class SessionStatus(str, Enum):
    CLONING = "cloning"
    CLONED = "cloned"
    ANALYZING = "analyzing"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def terminal(self) -> bool:
        return self in (SessionStatus.COMPLETED, SessionStatus.FAILED)


@dataclass
class Session:
    """One analysis run, owned by the session registry."""

    session_id: str
    repo_url: str
    repo_name: str
    workspace: Path
    local_path: Path
    status: SessionStatus = SessionStatus.CLONING
    created_at: datetime = field(default_factory=utcnow)
    cloned_at: Optional[datetime] = None
    analysis_started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    error: Optional[str] = None
    analysis_result: Optional[PipelineState] = None

    def status_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "sessionId": self.session_id,
            "status": self.status.value,
            "repoUrl": self.repo_url,
            "repoName": self.repo_name,
            "createdAt": isoformat(self.created_at),
            "clonedAt": isoformat(self.cloned_at),
            "analysisStartedAt": isoformat(self.analysis_started_at),
            "completedAt": isoformat(self.completed_at),
            "error": self.error,
        }
        return payload

    def summary_dict(self) -> Dict[str, Any]:
        return {
            "sessionId": self.session_id,
            "status": self.status.value,
            "repoUrl": self.repo_url,
            "repoName": self.repo_name,
            "createdAt": isoformat(self.created_at),
            "completedAt": isoformat(self.completed_at),
        }


def result_summary(state: PipelineState) -> Dict[str, Any]:
    """Condensed analysis result returned by the analyze trigger and status polls."""
    return {
        "techStack": state.tech_stack.to_dict() if state.tech_stack else None,
        "codebaseAnalysis": state.codebase_analysis.to_dict() if state.codebase_analysis else None,
        "generatedFiles": state.generated_files.names() if state.generated_files else [],
        "messages": [message.to_dict() for message in state.messages],
        "errors": list(state.errors),
    }
