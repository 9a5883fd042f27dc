"""Tests for devpilot.sessions."""

from __future__ import annotations

import threading
from datetime import timedelta
from pathlib import Path

import pytest

from devpilot.errors import InvalidTransitionError, SessionNotFoundError
from devpilot.models import PipelineState, SessionStatus, utcnow
from devpilot import sessions as sessions_module
from devpilot.sessions import SessionRegistry


def _create(registry: SessionRegistry, tmp_path: Path, session_id: str = "abc") -> None:
    registry.create(
        session_id=session_id,
        repo_url="https://github.com/acme/demo",
        repo_name="demo",
        workspace=tmp_path / session_id,
    )


def _result() -> PipelineState:
    return PipelineState(repo_url="https://github.com/acme/demo", repo_path=Path("demo"))


def test_create_and_get_returns_snapshots(tmp_path: Path) -> None:
    registry = SessionRegistry()
    _create(registry, tmp_path)

    session = registry.get("abc")
    session.status = SessionStatus.FAILED

    assert registry.get("abc").status is SessionStatus.CLONING
    assert registry.get("abc").local_path == tmp_path / "abc" / "demo"
    assert len(registry) == 1


def test_duplicate_and_unknown_ids(tmp_path: Path) -> None:
    registry = SessionRegistry()
    _create(registry, tmp_path)

    with pytest.raises(InvalidTransitionError):
        _create(registry, tmp_path)
    with pytest.raises(SessionNotFoundError):
        registry.get("missing")
    with pytest.raises(SessionNotFoundError):
        registry.update("missing", status=SessionStatus.CLONED)
    with pytest.raises(SessionNotFoundError):
        registry.remove("missing")


def test_lifecycle_to_completed(tmp_path: Path) -> None:
    registry = SessionRegistry()
    _create(registry, tmp_path)

    registry.update("abc", status=SessionStatus.CLONED, cloned_at=utcnow())
    registry.update("abc", status=SessionStatus.ANALYZING, analysis_started_at=utcnow())
    done = registry.update("abc", status="completed", analysis_result=_result(), completed_at=utcnow())

    assert done.status is SessionStatus.COMPLETED
    assert done.analysis_result is not None
    with pytest.raises(InvalidTransitionError):
        registry.update("abc", error="late")


def test_disallowed_transitions(tmp_path: Path) -> None:
    registry = SessionRegistry()
    _create(registry, tmp_path)

    with pytest.raises(InvalidTransitionError):
        registry.update("abc", status=SessionStatus.ANALYZING)
    with pytest.raises(InvalidTransitionError):
        registry.update("abc", repo_url="https://github.com/evil/repo")

    registry.update("abc", status=SessionStatus.CLONED)
    registry.update("abc", status=SessionStatus.ANALYZING)
    with pytest.raises(InvalidTransitionError):
        registry.update("abc", status=SessionStatus.ANALYZING)


def test_result_only_with_completed_status(tmp_path: Path) -> None:
    registry = SessionRegistry()
    _create(registry, tmp_path)
    registry.update("abc", status=SessionStatus.CLONED)
    registry.update("abc", status=SessionStatus.ANALYZING)

    with pytest.raises(InvalidTransitionError):
        registry.update("abc", analysis_result=_result())
    with pytest.raises(InvalidTransitionError):
        registry.update("abc", status=SessionStatus.COMPLETED)

    assert registry.get("abc").status is SessionStatus.ANALYZING


def test_failed_is_terminal(tmp_path: Path) -> None:
    registry = SessionRegistry()
    _create(registry, tmp_path)
    registry.update("abc", status=SessionStatus.FAILED, error="boom")

    with pytest.raises(InvalidTransitionError):
        registry.update("abc", status=SessionStatus.CLONED)


def test_only_one_concurrent_analysis_start_wins(tmp_path: Path) -> None:
    registry = SessionRegistry()
    _create(registry, tmp_path)
    registry.update("abc", status=SessionStatus.CLONED)
    outcomes: list[str] = []
    barrier = threading.Barrier(8)

    def start() -> None:
        barrier.wait()
        try:
            registry.update("abc", status=SessionStatus.ANALYZING)
        except InvalidTransitionError:
            outcomes.append("rejected")
        else:
            outcomes.append("won")

    threads = [threading.Thread(target=start) for _ in range(8)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert outcomes.count("won") == 1
    assert outcomes.count("rejected") == 7


def test_remove_purges_workspace(tmp_path: Path) -> None:
    registry = SessionRegistry()
    _create(registry, tmp_path)
    workspace = tmp_path / "abc" / "demo"
    workspace.mkdir(parents=True)
    (workspace / "README.md").write_text("hi", encoding="utf-8")

    removed = registry.remove("abc")

    assert removed.session_id == "abc"
    assert not (tmp_path / "abc").exists()
    assert len(registry) == 0


def test_remove_without_purge_keeps_files(tmp_path: Path) -> None:
    registry = SessionRegistry()
    _create(registry, tmp_path)
    (tmp_path / "abc").mkdir()

    registry.remove("abc", purge=False)

    assert (tmp_path / "abc").exists()


def test_list_all_sorted_by_creation(tmp_path: Path) -> None:
    registry = SessionRegistry()
    for session_id in ("first", "second", "third"):
        _create(registry, tmp_path, session_id)

    assert [session.session_id for session in registry.list_all()] == ["first", "second", "third"]


def test_sweep_removes_only_expired_sessions(tmp_path: Path) -> None:
    registry = SessionRegistry(retention=timedelta(hours=1))
    _create(registry, tmp_path, "old")
    _create(registry, tmp_path, "new")
    (tmp_path / "old").mkdir()

    assert registry.sweep() == []

    later = utcnow() + timedelta(hours=2)
    removed = registry.sweep(now=later)

    assert sorted(removed) == ["new", "old"]
    assert not (tmp_path / "old").exists()
    assert len(registry) == 0


def test_failed_delete_keeps_session_for_the_next_sweep(tmp_path: Path, monkeypatch) -> None:
    registry = SessionRegistry(retention=timedelta(hours=1))
    for session_id in ("bad", "good"):
        _create(registry, tmp_path, session_id)
        (tmp_path / session_id).mkdir()

    real_rmtree = sessions_module.shutil.rmtree
    failures = {"bad": 1}

    def flaky_rmtree(path, *args, **kwargs):
        name = Path(path).name
        if failures.get(name):
            failures[name] -= 1
            raise PermissionError(f"busy: {path}")
        real_rmtree(path, *args, **kwargs)

    monkeypatch.setattr(sessions_module.shutil, "rmtree", flaky_rmtree)
    later = utcnow() + timedelta(hours=2)

    assert registry.sweep(now=later) == ["good"]
    assert registry.get("bad").session_id == "bad"
    assert (tmp_path / "bad").exists()
    assert not (tmp_path / "good").exists()

    assert registry.sweep(now=later) == ["bad"]
    assert not (tmp_path / "bad").exists()
    assert len(registry) == 0


def test_remove_propagates_delete_failure(tmp_path: Path, monkeypatch) -> None:
    registry = SessionRegistry()
    _create(registry, tmp_path)
    (tmp_path / "abc").mkdir()

    def refuse(path, *args, **kwargs):
        raise PermissionError(f"busy: {path}")

    monkeypatch.setattr(sessions_module.shutil, "rmtree", refuse)

    with pytest.raises(PermissionError):
        registry.remove("abc")
    assert registry.get("abc").status is SessionStatus.CLONING
