"""In-memory session registry with lifecycle enforcement and retention sweep."""

from __future__ import annotations

import shutil
import threading
import uuid
from copy import copy
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any, Dict, List, Optional

from .errors import InvalidTransitionError, SessionNotFoundError
from .logging import get_logger
from .models import Session, SessionStatus, utcnow

logger = get_logger("sessions")

_ALLOWED_TRANSITIONS = {
    SessionStatus.CLONING: {SessionStatus.CLONED, SessionStatus.FAILED},
    SessionStatus.CLONED: {SessionStatus.ANALYZING, SessionStatus.FAILED},
    SessionStatus.ANALYZING: {SessionStatus.COMPLETED, SessionStatus.FAILED},
    SessionStatus.COMPLETED: set(),
    SessionStatus.FAILED: set(),
}

_MUTABLE_FIELDS = {
    "status",
    "local_path",
    "cloned_at",
    "analysis_started_at",
    "completed_at",
    "error",
    "analysis_result",
}


def new_session_id() -> str:
    return uuid.uuid4().hex


class SessionRegistry:
    """Owns every live session.

    The registry lock only guards the mapping itself; each session carries its
    own lock so updates to different sessions never contend.
    """

    def __init__(self, retention: timedelta = timedelta(hours=24)) -> None:
        self.retention = retention
        self._sessions: Dict[str, Session] = {}
        self._locks: Dict[str, threading.Lock] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)

    def create(
        self,
        *,
        repo_url: str,
        repo_name: str,
        workspace: Path,
        local_path: Optional[Path] = None,
        session_id: Optional[str] = None,
    ) -> Session:
        session = Session(
            session_id=session_id or new_session_id(),
            repo_url=repo_url,
            repo_name=repo_name,
            workspace=Path(workspace),
            local_path=Path(local_path) if local_path else Path(workspace) / repo_name,
        )
        with self._lock:
            if session.session_id in self._sessions:
                raise InvalidTransitionError(f"Session already exists: {session.session_id}")
            self._sessions[session.session_id] = session
            self._locks[session.session_id] = threading.Lock()
        logger.debug("Registered session %s for %s", session.session_id, repo_url)
        return copy(session)

    def get(self, session_id: str) -> Session:
        """Return a snapshot copy of the session."""
        with self._lock:
            session = self._sessions.get(session_id)
            lock = self._locks.get(session_id)
        if session is None or lock is None:
            raise SessionNotFoundError(session_id)
        with lock:
            return copy(session)

    def update(self, session_id: str, **patch: Any) -> Session:
        unknown = set(patch) - _MUTABLE_FIELDS
        if unknown:
            raise InvalidTransitionError(f"Fields cannot be patched: {', '.join(sorted(unknown))}")

        with self._lock:
            session = self._sessions.get(session_id)
            lock = self._locks.get(session_id)
        if session is None or lock is None:
            raise SessionNotFoundError(session_id)

        with lock:
            if session.status.terminal:
                raise InvalidTransitionError(
                    f"Session {session_id} is {session.status.value} and can no longer change"
                )
            status = patch.get("status")
            if status is not None:
                status = SessionStatus(status)
                if status not in _ALLOWED_TRANSITIONS[session.status]:
                    raise InvalidTransitionError(
                        f"Cannot move session {session_id} from {session.status.value} to {status.value}"
                    )
                patch["status"] = status
            target = status or session.status
            has_result = patch.get("analysis_result", session.analysis_result) is not None
            if has_result != (target is SessionStatus.COMPLETED):
                raise InvalidTransitionError(
                    "analysis_result must be set exactly when the session is completed"
                )
            for name, value in patch.items():
                setattr(session, name, value)
            return copy(session)

    def remove(self, session_id: str, *, purge: bool = True) -> Session:
        """Delete the session's scratch directory (by default), then forget it.

        A failed delete raises ``OSError`` and leaves the session registered,
        so a later call or sweep can retry it.
        """
        with self._lock:
            session = self._sessions.get(session_id)
        if session is None:
            raise SessionNotFoundError(session_id)
        if purge:
            _delete_workspace(session.workspace)
        with self._lock:
            session = self._sessions.pop(session_id, None)
            self._locks.pop(session_id, None)
        if session is None:
            raise SessionNotFoundError(session_id)
        logger.info("Removed session %s", session_id)
        return session

    def list_all(self) -> List[Session]:
        with self._lock:
            sessions = list(self._sessions.values())
        return sorted((copy(session) for session in sessions), key=lambda item: item.created_at)

    def sweep(self, now: Optional[datetime] = None) -> List[str]:
        """Remove sessions older than the retention window; return their ids."""
        cutoff = (now or utcnow()) - self.retention
        with self._lock:
            expired = [sid for sid, session in self._sessions.items() if session.created_at < cutoff]

        removed: List[str] = []
        for session_id in expired:
            try:
                self.remove(session_id)
            except SessionNotFoundError:
                continue
            except OSError as exc:
                logger.warning("Failed to clean up session %s: %s", session_id, exc)
                continue
            removed.append(session_id)
        if removed:
            logger.info("Swept %d expired session(s)", len(removed))
        return removed


def _delete_workspace(workspace: Path) -> None:
    if workspace.exists():
        shutil.rmtree(workspace)
