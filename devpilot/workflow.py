"""Session workflow: clone, analyze and retrieve bookkeeping around the pipeline."""

from __future__ import annotations

import asyncio
import inspect
from datetime import timedelta
from pathlib import PurePosixPath
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple

from .acquirer import RepoAcquirer
from .agents import default_agents
from .config import DevPilotConfig
from .errors import (
    AnalysisFailedError,
    CloneFailedError,
    InfrastructureError,
    InvalidTransitionError,
    PipelineAbortedError,
    SessionNotFoundError,
    SessionNotReadyError,
)
from .integrations import DocSearchClient, MemoryStore, search_deployment_docs
from .llm import LLMRunner
from .logging import get_logger
from .models import (
    PipelineState,
    ProgressUpdate,
    Session,
    SessionStatus,
    isoformat,
    result_summary,
    utcnow,
)
from .orchestrator import Orchestrator
from .sessions import SessionRegistry, new_session_id

logger = get_logger("workflow")

EventSink = Callable[[Dict[str, Any]], Optional[Awaitable[None]]]

# Session checkpoints sit below the first phase checkpoint (20).
CLONE_STARTED = 5
CLONE_FINISHED = 10
ANALYSIS_STARTED = 15
COMPLETED = 100

_MEDIA_TYPES = {
    ".yml": "text/yaml",
    ".yaml": "text/yaml",
    ".json": "application/json",
    ".md": "text/markdown",
}


def media_type_for(filename: str) -> str:
    """Content type for an artifact, inferred from its filename extension."""
    return _MEDIA_TYPES.get(PurePosixPath(filename).suffix.lower(), "text/plain")


def progress_event(
    session_id: str,
    update: ProgressUpdate,
    status: SessionStatus = SessionStatus.ANALYZING,
) -> Dict[str, Any]:
    """Wire form of an orchestrator progress update for one session."""
    event: Dict[str, Any] = {
        "sessionId": session_id,
        "step": update.step,
        "progress": update.progress,
        "status": status.value,
        "messages": [message.to_dict() for message in update.messages],
        "errors": list(update.errors),
    }
    if update.tech_stack is not None:
        event["techStack"] = update.tech_stack.to_dict()
    if update.generated_files is not None:
        event["generatedFiles"] = update.generated_files.names()
    return event


class AnalysisService:
    """Coordinates the registry, the acquirer and the orchestrator for each session."""

    def __init__(
        self,
        registry: SessionRegistry,
        acquirer: RepoAcquirer,
        orchestrator: Orchestrator,
        *,
        search: DocSearchClient | None = None,
        memory: MemoryStore | None = None,
        events: EventSink | None = None,
    ) -> None:
        self.registry = registry
        self.acquirer = acquirer
        self.orchestrator = orchestrator
        self.search = search
        self.memory = memory
        self.events = events

    @classmethod
    def from_config(
        cls,
        config: DevPilotConfig,
        *,
        registry: SessionRegistry | None = None,
        events: EventSink | None = None,
    ) -> "AnalysisService":
        llm = LLMRunner.from_config(config.llm)
        orchestrator = Orchestrator(default_agents(config, llm), policy=config.failure_policy)
        return cls(
            registry or SessionRegistry(timedelta(hours=config.retention_hours)),
            RepoAcquirer(config.scratch_root, host=config.allowed_host),
            orchestrator,
            search=DocSearchClient.from_config(config.search),
            memory=MemoryStore.from_config(config.memory),
            events=events,
        )

    # Clone

    async def clone(self, repo_url: str, auth_token: str | None = None) -> Session:
        """Validate, register and clone a repository; returns the cloned session."""
        repo_name = self.acquirer.validate(repo_url)
        session_id = new_session_id()
        session = self.registry.create(
            session_id=session_id,
            repo_url=repo_url,
            repo_name=repo_name,
            workspace=self.acquirer.workspace_for(session_id),
        )
        await self._publish(self._event(session, "Cloning repository", CLONE_STARTED))

        try:
            acquired = await self.acquirer.acquire(repo_url, auth_token, session_id=session_id)
        except (CloneFailedError, InfrastructureError) as exc:
            failed = self.registry.update(
                session_id, status=SessionStatus.FAILED, error=str(exc), completed_at=utcnow()
            )
            await self._publish(self._event(failed, "Clone failed", 0, errors=[str(exc)]))
            raise

        session = self.registry.update(
            session_id,
            status=SessionStatus.CLONED,
            local_path=acquired.local_path,
            cloned_at=utcnow(),
        )
        await self._publish(self._event(session, "Repository cloned", CLONE_FINISHED))
        return session

    # Analyze

    def start_analysis(self, session_id: str) -> Session:
        """Move a cloned session to ``analyzing``; only one caller can win."""
        session = self.registry.get(session_id)
        if session.status is not SessionStatus.CLONED:
            raise SessionNotReadyError(
                f"Session {session_id} is {session.status.value}; analysis needs a cloned repository"
            )
        try:
            return self.registry.update(
                session_id, status=SessionStatus.ANALYZING, analysis_started_at=utcnow()
            )
        except InvalidTransitionError as exc:
            raise SessionNotReadyError(f"Session {session_id} is already being analyzed") from exc

    async def run_analysis(self, session_id: str) -> PipelineState:
        """Run the pipeline for a session already marked ``analyzing``."""
        session = self.registry.get(session_id)
        if session.status is not SessionStatus.ANALYZING:
            raise SessionNotReadyError(f"Session {session_id} is {session.status.value}")
        await self._publish(self._event(session, "Starting analysis", ANALYSIS_STARTED))

        try:
            state = await self.orchestrator.run(
                session.repo_url, session.local_path, self._phase_listener(session_id)
            )
        except PipelineAbortedError as exc:
            failed = self.registry.update(
                session_id, status=SessionStatus.FAILED, error=str(exc), completed_at=utcnow()
            )
            await self._publish(
                self._event(failed, "Analysis failed", exc.state.progress, errors=list(exc.state.errors))
            )
            raise AnalysisFailedError(str(exc)) from exc

        session = self.registry.update(
            session_id,
            status=SessionStatus.COMPLETED,
            completed_at=utcnow(),
            analysis_result=state,
        )
        await self._publish(
            self._event(
                session,
                "Analysis completed",
                COMPLETED,
                messages=[message.to_dict() for message in state.messages],
                errors=list(state.errors),
                tech_stack=state.tech_stack.to_dict() if state.tech_stack else None,
                generated_files=state.generated_files.names() if state.generated_files else None,
            )
        )
        return state

    async def analyze(self, session_id: str) -> PipelineState:
        self.start_analysis(session_id)
        return await self.run_analysis(session_id)

    # Retrieval

    def _completed(self, session_id: str) -> Tuple[Session, PipelineState]:
        session = self.registry.get(session_id)
        if session.status is not SessionStatus.COMPLETED or session.analysis_result is None:
            raise SessionNotReadyError(f"Analysis not completed for session {session_id}")
        return session, session.analysis_result

    def files(self, session_id: str) -> Dict[str, Any]:
        session, state = self._completed(session_id)
        return {
            "files": state.generated_files.to_dict() if state.generated_files else {},
            "techStack": state.tech_stack.to_dict() if state.tech_stack else None,
            "codebaseAnalysis": state.codebase_analysis.to_dict() if state.codebase_analysis else None,
            "verificationResults": state.verification.to_dict() if state.verification else None,
            "errors": list(state.errors),
            "metadata": {
                "repoUrl": session.repo_url,
                "repoName": session.repo_name,
                "completedAt": isoformat(session.completed_at),
            },
        }

    def artifact(self, session_id: str, name: str) -> Tuple[str, str, str]:
        """Return ``(filename, content, media_type)`` for one generated artifact."""
        _, state = self._completed(session_id)
        if state.generated_files is None:
            raise SessionNotReadyError(f"No artifacts were generated for session {session_id}")
        filename, content = state.generated_files.get(name)
        return filename, content, media_type_for(filename)

    def status(self, session_id: str) -> Dict[str, Any]:
        session = self.registry.get(session_id)
        payload = session.status_dict()
        if session.status is SessionStatus.COMPLETED and session.analysis_result is not None:
            payload["result"] = result_summary(session.analysis_result)
        return payload

    def list_sessions(self) -> List[Dict[str, Any]]:
        return [session.summary_dict() for session in self.registry.list_all()]

    def cleanup(self, session_id: str) -> None:
        self.registry.remove(session_id)

    def sweep(self) -> List[str]:
        return self.registry.sweep()

    # One-shot flow

    async def one_shot(
        self,
        repo_url: str,
        auth_token: str | None = None,
        *,
        user_id: str | None = None,
    ) -> Dict[str, Any]:
        """Clone, analyze and clean up in one call, adding deployment docs."""
        session = await self.clone(repo_url, auth_token)
        try:
            state = await self.analyze(session.session_id)
            primary = state.tech_stack.primary if state.tech_stack else "unknown"
            loop = asyncio.get_running_loop()
            docs = await loop.run_in_executor(None, search_deployment_docs, self.search, primary)
            artifacts = state.generated_files.to_dict() if state.generated_files else {}
            if user_id and self.memory is not None:
                content = (
                    f"DevPilot generated DevOps configuration for {primary} project. "
                    f"Repository: {repo_url}. Generated files: {', '.join(artifacts)}. "
                    f"Timestamp: {isoformat(utcnow())}"
                )
                await loop.run_in_executor(None, self.memory.append, user_id, content)
            return {
                "success": True,
                "sessionId": session.session_id,
                "repoName": session.repo_name,
                "techStack": state.tech_stack.to_dict() if state.tech_stack else None,
                "codebaseAnalysis": state.codebase_analysis.to_dict() if state.codebase_analysis else None,
                "generatedFiles": artifacts,
                "verificationResults": state.verification.to_dict() if state.verification else None,
                "deploymentDocs": [doc.to_dict() for doc in docs],
                "messages": [message.to_dict() for message in state.messages],
                "errors": list(state.errors),
            }
        finally:
            try:
                self.registry.remove(session.session_id)
            except (OSError, SessionNotFoundError) as exc:
                logger.warning("Failed to clean up session %s: %s", session.session_id, exc)

    # Progress events

    def _phase_listener(self, session_id: str) -> Callable[[ProgressUpdate], Awaitable[None]]:
        def _listener(update: ProgressUpdate) -> Awaitable[None]:
            return self._publish(progress_event(session_id, update))

        return _listener

    @staticmethod
    def _event(
        session: Session,
        step: str,
        progress: int,
        *,
        messages: Optional[List[Dict[str, Any]]] = None,
        errors: Optional[List[str]] = None,
        tech_stack: Optional[Dict[str, Any]] = None,
        generated_files: Optional[List[str]] = None,
    ) -> Dict[str, Any]:
        event: Dict[str, Any] = {
            "sessionId": session.session_id,
            "step": step,
            "progress": progress,
            "status": session.status.value,
        }
        if messages is not None:
            event["messages"] = messages
        if errors is not None:
            event["errors"] = errors
        if tech_stack is not None:
            event["techStack"] = tech_stack
        if generated_files is not None:
            event["generatedFiles"] = generated_files
        return event

    async def _publish(self, event: Dict[str, Any]) -> None:
        if self.events is None:
            return
        try:
            result = self.events(event)
            if inspect.isawaitable(result):
                await result
        except Exception:
            logger.exception("Progress event delivery failed for %s", event.get("sessionId"))
