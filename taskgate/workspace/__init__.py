"""
TASKGATE Workspace

Filesystem view of the target repository. Reads are free; writes need a
PathGrant from the approval gateway that names the exact path, so nothing
lands on disk that did not pass allow/deny validation first.
"""

from __future__ import annotations

import fnmatch
import os
from pathlib import Path
from typing import Iterable, Iterator

from loguru import logger

from taskgate.approval import PathGrant
from taskgate.catalog import normalize_path
from taskgate.errors import TaskPermissionError

SKIP_DIRS = {
    ".git", ".hg", ".svn", "__pycache__", ".venv", "venv", "node_modules",
    ".mypy_cache", ".pytest_cache", ".ruff_cache", ".tox", "dist", "build",
    ".taskgate", "site-packages",
}


class Workspace:
    """Project-root-relative file access with grant-checked writes."""

    def __init__(self, root: Path, skip_dirs: Iterable[str] | None = None):
        self.root = Path(root).resolve()
        self.skip_dirs = set(skip_dirs) if skip_dirs is not None else set(SKIP_DIRS)

    def path(self, rel: str | Path) -> Path:
        normalized = normalize_path(rel)
        if normalized is None:
            raise TaskPermissionError(f"Path escapes the workspace: {rel}", path=str(rel))
        return self.root / normalized

    def exists(self, rel: str | Path) -> bool:
        return self.path(rel).exists()

    def read_text(self, rel: str | Path) -> str:
        return self.path(rel).read_text(encoding="utf-8")

    def write_text(self, rel: str | Path, content: str, grant: PathGrant) -> Path:
        if not grant.covers(rel):
            raise TaskPermissionError(
                f"Write to {rel} is not covered by the grant for '{grant.task_id}'",
                path=str(rel),
                task_id=grant.task_id,
            )
        target = self.path(rel)
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(content, encoding="utf-8")
        logger.info(f"[WORKSPACE] Wrote {normalize_path(rel)} ({len(content)} bytes)")
        return target

    def relative(self, path: Path) -> str:
        return path.resolve().relative_to(self.root).as_posix()

    def iter_files(
        self,
        roots: Iterable[str],
        extensions: Iterable[str] | None = None,
        exclude: Iterable[str] = (),
    ) -> Iterator[str]:
        """
        Yield project-relative file paths under each root, sorted, deduplicated.

        `exclude` holds fnmatch globs tested against the relative path, where
        `*` also crosses directories (`*/tests/*`).
        """
        suffixes = set(extensions) if extensions is not None else None
        excludes = list(exclude)
        seen: set[str] = set()

        def wanted(rel: str) -> bool:
            if rel in seen:
                return False
            if suffixes is not None and Path(rel).suffix not in suffixes:
                return False
            return not any(fnmatch.fnmatchcase(rel, pattern) for pattern in excludes)

        for root in roots:
            start = self.path(root)
            if start.is_file():
                rel = self.relative(start)
                if wanted(rel):
                    seen.add(rel)
                    yield rel
                continue
            if not start.is_dir():
                logger.debug(f"[WORKSPACE] Scan root does not exist: {root}")
                continue

            for dirpath, dirnames, filenames in os.walk(start):
                dirnames[:] = sorted(d for d in dirnames if d not in self.skip_dirs)
                for filename in sorted(filenames):
                    rel = self.relative(Path(dirpath) / filename)
                    if wanted(rel):
                        seen.add(rel)
                        yield rel
