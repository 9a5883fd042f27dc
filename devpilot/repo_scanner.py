"""Repository scanning and inventory building utilities."""

from __future__ import annotations

import os
from dataclasses import dataclass
from fnmatch import fnmatchcase
from pathlib import Path
from typing import List, Sequence

from .config import ScannerConfig
from .logging import get_logger
from .models import InventoryEntry, ProjectStructure

logger = get_logger("scanner")


@dataclass
class IgnoreRule:
    """Represents an ignore rule parsed from .gitignore."""

    pattern: str
    directory_only: bool
    anchored: bool
    negate: bool
    has_slash: bool

    def matches(self, rel_path: str, is_dir: bool) -> bool:
        if not self.pattern:
            return False
        if self.directory_only and not is_dir:
            return False

        target = rel_path
        if self.anchored or self.has_slash:
            if fnmatchcase(target, self.pattern):
                return True
            if self.directory_only and target.startswith(f"{self.pattern}/"):
                return True
            return False

        for part in target.split("/"):
            if fnmatchcase(part, self.pattern):
                return True
        return False


def _build_ignore_rule(pattern: str, negate: bool = False) -> IgnoreRule | None:
    pattern = pattern.strip()
    if not pattern:
        return None

    directory_only = pattern.endswith("/")
    if directory_only:
        pattern = pattern[:-1]

    anchored = pattern.startswith("/")
    if anchored:
        pattern = pattern[1:]

    has_slash = "/" in pattern
    return IgnoreRule(
        pattern=pattern,
        directory_only=directory_only,
        anchored=anchored,
        negate=negate,
        has_slash=has_slash,
    )


def _parse_gitignore(path: Path) -> List[IgnoreRule]:
    if not path.is_file():
        return []

    rules: List[IgnoreRule] = []
    try:
        lines = path.read_text(encoding="utf-8").splitlines()
    except (OSError, UnicodeDecodeError) as exc:
        logger.warning("Unable to read %s: %s", path, exc)
        return []
    for raw_line in lines:
        line = raw_line.strip()
        if not line or line.startswith("#"):
            continue
        negate = line.startswith("!")
        if negate:
            line = line[1:]
        rule = _build_ignore_rule(line, negate=negate)
        if rule is not None:
            rules.append(rule)
    return rules


def _should_ignore(rel_path: str, is_dir: bool, rules: Sequence[IgnoreRule]) -> bool:
    ignored = False
    for rule in rules:
        if rule.matches(rel_path, is_dir):
            ignored = not rule.negate
    return ignored


def _extension(name: str) -> str:
    return Path(name).suffix.lower()


class RepoScanner:
    """Walks a repository snapshot and produces a flat inventory."""

    def __init__(self, config: ScannerConfig | None = None) -> None:
        config = config or ScannerConfig()
        self.allowed_dotfiles = frozenset(config.allowed_dotfiles)
        self.excluded_dirs = frozenset(config.excluded_dirs)
        self.respect_gitignore = config.respect_gitignore

    def is_excluded(self, name: str, *, is_dir: bool) -> bool:
        """Return True when a single path component should be skipped."""
        if name.startswith(".") and name not in self.allowed_dotfiles:
            return True
        if is_dir and name in self.excluded_dirs:
            return True
        return False

    def scan(self, root: str | Path) -> ProjectStructure:
        """Return ``relative path -> InventoryEntry`` for everything under ``root``."""
        root_path = Path(root).expanduser().resolve()
        if not root_path.exists():
            raise FileNotFoundError(f"Repository path not found: {root}")
        if not root_path.is_dir():
            raise NotADirectoryError(f"Repository path is not a directory: {root}")

        rules = _parse_gitignore(root_path / ".gitignore") if self.respect_gitignore else []
        structure: ProjectStructure = {}

        def _on_walk_error(exc: OSError) -> None:
            logger.warning("Skipping unreadable directory %s: %s", exc.filename, exc.strerror or exc)

        for dirpath, dirnames, filenames in os.walk(root_path, onerror=_on_walk_error):
            current_dir = Path(dirpath)
            rel_dir = current_dir.relative_to(root_path).as_posix() if current_dir != root_path else ""

            kept_dirs = []
            for name in sorted(dirnames):
                rel_path = f"{rel_dir}/{name}" if rel_dir else name
                if self.is_excluded(name, is_dir=True) or _should_ignore(rel_path, True, rules):
                    continue
                kept_dirs.append(name)
                structure[rel_path] = InventoryEntry(type="directory")
            dirnames[:] = kept_dirs

            for name in sorted(filenames):
                rel_path = f"{rel_dir}/{name}" if rel_dir else name
                if self.is_excluded(name, is_dir=False) or _should_ignore(rel_path, False, rules):
                    continue
                try:
                    size = (current_dir / name).stat().st_size
                except OSError as exc:
                    logger.warning("Skipping unreadable file %s: %s", rel_path, exc)
                    continue
                structure[rel_path] = InventoryEntry(type="file", size=size, extension=_extension(name))

        logger.debug("Scanned %d entries under %s", len(structure), root_path)
        return structure
