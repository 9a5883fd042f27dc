"""Repository snapshot acquisition via shallow git clones."""

from __future__ import annotations

import asyncio
import functools
import os
import re
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Iterable
from urllib.parse import quote

from .errors import CloneFailedError, InfrastructureError, InvalidUrlError
from .logging import get_logger

logger = get_logger("acquirer")

CommandRunner = Callable[..., str]


@dataclass(frozen=True)
class AcquiredRepository:
    local_path: Path
    repo_name: str
    workspace: Path


def _url_pattern(host: str) -> re.Pattern[str]:
    return re.compile(rf"^https://{re.escape(host)}/[\w\-.]+/[\w\-.]+?(?:\.git)?$")


def parse_repo_url(repo_url: str, *, host: str = "github.com") -> str:
    """Validate ``repo_url`` and return the repository name without ``.git``.

    Raises InvalidUrlError for anything that is not
    ``https://<host>/<owner>/<name>[.git]``.
    """
    candidate = (repo_url or "").strip()
    if not candidate or not _url_pattern(host).match(candidate):
        raise InvalidUrlError(f"Invalid repository URL: expected https://{host}/<owner>/<name>")
    name = candidate.rstrip("/").rsplit("/", 1)[-1]
    if name.endswith(".git"):
        name = name[: -len(".git")]
    if not name or name in {".", ".."}:
        raise InvalidUrlError(f"Invalid repository URL: expected https://{host}/<owner>/<name>")
    return name


def authenticated_url(repo_url: str, auth_token: str | None) -> str:
    """Embed ``auth_token`` as the userinfo of an https URL, percent-encoded."""
    if not auth_token:
        return repo_url
    return repo_url.replace("https://", f"https://{quote(auth_token, safe='')}@", 1)


def redact(text: str, *secrets: str | None) -> str:
    for secret in secrets:
        if secret:
            text = text.replace(secret, "***")
    return text


class RepoAcquirer:
    """Clones repositories into per-session scratch directories."""

    def __init__(
        self,
        scratch_root: Path,
        *,
        host: str = "github.com",
        runner: CommandRunner | None = None,
    ) -> None:
        self.scratch_root = Path(scratch_root)
        self.host = host
        self._runner = runner or self._default_runner

    def validate(self, repo_url: str) -> str:
        return parse_repo_url(repo_url, host=self.host)

    def workspace_for(self, session_id: str) -> Path:
        return self.scratch_root / session_id

    async def acquire(
        self,
        repo_url: str,
        auth_token: str | None = None,
        *,
        session_id: str,
    ) -> AcquiredRepository:
        """Clone ``repo_url`` without blocking the event loop."""
        loop = asyncio.get_running_loop()
        call = functools.partial(self.acquire_sync, repo_url, auth_token, session_id=session_id)
        return await loop.run_in_executor(None, call)

    def acquire_sync(
        self,
        repo_url: str,
        auth_token: str | None = None,
        *,
        session_id: str,
    ) -> AcquiredRepository:
        repo_name = self.validate(repo_url)
        workspace = self.workspace_for(session_id)
        target = workspace / repo_name
        try:
            workspace.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise InfrastructureError(f"Unable to create workspace {workspace}: {exc}") from exc

        logger.info("Cloning %s into %s", repo_url, target)
        clone_url = authenticated_url(repo_url.strip(), auth_token)
        secrets = (auth_token, quote(auth_token, safe="")) if auth_token else ()
        args = ["git", "clone", "--depth", "1", clone_url, str(target)]
        env = os.environ.copy()
        env["GIT_TERMINAL_PROMPT"] = "0"
        try:
            self._runner(args, cwd=workspace, env=env, capture_output=True)
        except subprocess.CalledProcessError as exc:
            # exc.cmd still holds the tokenised URL
            detail = (exc.stderr or exc.stdout or str(exc)).strip()
            message = redact(f"Failed to clone repository: {detail}", *secrets)
            logger.warning(message)
            raise CloneFailedError(message) from None
        except FileNotFoundError as exc:
            raise CloneFailedError("Failed to clone repository: git executable not found") from exc
        except OSError as exc:
            message = redact(f"Failed to clone repository: {exc}", *secrets)
            raise CloneFailedError(message) from None

        logger.info("Cloned %s", repo_name)
        return AcquiredRepository(local_path=target, repo_name=repo_name, workspace=workspace)

    @staticmethod
    def _default_runner(
        args: Iterable[str],
        *,
        cwd: Path,
        env: dict[str, str] | None = None,
        capture_output: bool = False,
    ) -> str:
        completed = subprocess.run(
            list(args),
            cwd=str(cwd),
            env=env,
            check=True,
            text=True,
            capture_output=capture_output,
        )
        if capture_output:
            return completed.stdout
        return ""
