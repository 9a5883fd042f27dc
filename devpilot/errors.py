"""Error taxonomy shared by the pipeline, the session workflow and the service."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:  # pragma: no cover - typing aid
    from .models import PipelineState


class DevPilotError(RuntimeError):
    """Base class for every error raised by devpilot."""

    kind = "DevPilotError"


class InputValidationError(DevPilotError):
    """Raised when a request is missing a field or carries a malformed value."""

    kind = "InputValidation"


class InvalidUrlError(InputValidationError):
    """Raised when a repository URL does not match the expected host pattern."""

    kind = "InvalidUrl"


class CloneFailedError(DevPilotError):
    """Raised when git cannot clone the requested repository."""

    kind = "CloneFailed"


class InfrastructureError(DevPilotError):
    """Raised when scratch directory operations fail on disk."""

    kind = "Infrastructure"


class NotFoundError(DevPilotError):
    """Raised when a lookup targets an unknown identifier."""

    kind = "NotFound"


class SessionNotFoundError(NotFoundError):
    kind = "InvalidSession"

    def __init__(self, session_id: str) -> None:
        super().__init__(f"Session not found: {session_id}")
        self.session_id = session_id


class ArtifactNotFoundError(NotFoundError):
    kind = "ArtifactNotFound"


class SessionNotReadyError(DevPilotError):
    """Raised when a session is not in the status an operation requires."""

    kind = "NotReady"


class InvalidTransitionError(DevPilotError):
    """Raised when a session patch would break the lifecycle ordering."""

    kind = "InvalidTransition"


class StateConflictError(DevPilotError):
    """Raised when a phase tries to overwrite a field another phase already set."""

    kind = "StateConflict"


class PhaseExecutionError(DevPilotError):
    """Wraps an exception raised inside one of the agents."""

    kind = "PhaseExecution"

    def __init__(self, agent: str, cause: BaseException) -> None:
        super().__init__(f"{agent} Agent Error: {cause}")
        self.agent = agent
        self.cause = cause


class PipelineAbortedError(DevPilotError):
    """Raised under the abort policy once a phase has failed."""

    kind = "AnalysisFailed"

    def __init__(self, message: str, state: "PipelineState") -> None:
        super().__init__(message)
        self.state = state


class AnalysisFailedError(DevPilotError):
    """Raised when an analysis run ends without a result."""

    kind = "AnalysisFailed"


class ExternalServiceDegradedError(DevPilotError):
    """Raised by integration clients; callers substitute a fallback."""

    kind = "ExternalServiceDegraded"


__all__ = [
    "AnalysisFailedError",
    "ArtifactNotFoundError",
    "CloneFailedError",
    "DevPilotError",
    "ExternalServiceDegradedError",
    "InfrastructureError",
    "InputValidationError",
    "InvalidTransitionError",
    "InvalidUrlError",
    "NotFoundError",
    "PhaseExecutionError",
    "PipelineAbortedError",
    "SessionNotFoundError",
    "SessionNotReadyError",
    "StateConflictError",
]
