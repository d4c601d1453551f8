"""Repo discovery — walk a directory tree and find every git repository root."""

from __future__ import annotations

import logging
import os
import threading
from dataclasses import dataclass
from typing import Iterator, Optional

GIT_DIR = ".git"

# Never descended into; a pruned directory that is itself a repo is still reported.
PRUNE_DIRS = frozenset({
    "node_modules", ".venv", "venv", "__pycache__", "target", "build",
    "dist", ".gradle", ".dart_tool", "vendor", ".next", ".nuxt",
    "bin", "obj", ".tox", ".mypy_cache", ".ruff_cache", ".pytest_cache",
    "site-packages", ".cargo", ".rustup", "Pods",
})

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class WalkWarning:
    path: str
    reason: str


def _has_git_entry(path: str) -> bool:
    """Like is_repository_root, but lets errors other than "not there" escape."""
    try:
        os.lstat(os.path.join(path, GIT_DIR))
    except (FileNotFoundError, NotADirectoryError):
        return False
    return True


def _reason(exc: OSError) -> str:
    if isinstance(exc, PermissionError):
        return "permission denied"
    return exc.strerror or str(exc)


def is_repository_root(path: str, logger: logging.Logger = logger) -> bool:
    """Return True if `path` holds a `.git` directory (or a worktree `.git` file).

    Never raises: anything that prevents the check counts as "not a repo".
    """
    try:
        return _has_git_entry(path)
    except OSError as exc:
        logger.debug("Cannot check %s for a repository: %s", path, _reason(exc))
        return False


class Walker:
    """Depth-first, lexicographically ordered search for repository roots.

    Symlinks are never followed and each directory inode is visited once, so
    the walk terminates on any tree. A repository root is yielded and not
    descended into.
    """

    def __init__(
        self,
        root: str,
        *,
        max_depth: Optional[int] = None,
        include_hidden: bool = False,
        prune_dirs: frozenset[str] = PRUNE_DIRS,
        logger: logging.Logger = logger,
    ) -> None:
        self.root = os.path.abspath(os.path.expanduser(root))
        self.max_depth = max_depth
        self.include_hidden = include_hidden
        self.prune_dirs = prune_dirs
        self.logger = logger
        self.warnings: list[WalkWarning] = []

    def walk(self, cancel: Optional[threading.Event] = None) -> Iterator[str]:
        # (path, depth, descend)
        stack: list[tuple[str, int, bool]] = [(self.root, 0, True)]
        seen: set[tuple[int, int]] = set()

        while stack:
            if cancel is not None and cancel.is_set():
                self.logger.debug("Walk cancelled with %d directories pending", len(stack))
                return

            path, depth, descend = stack.pop()
            try:
                is_repo = _has_git_entry(path)
            except OSError as exc:
                # Cannot tell whether this is a repository, so it is not searched either.
                self._skip(path, _reason(exc))
                continue
            if is_repo:
                yield path
                continue
            if not descend:
                continue
            if self.max_depth is not None and depth >= self.max_depth:
                continue

            try:
                st = os.stat(path, follow_symlinks=False)
                with os.scandir(path) as it:
                    entries = sorted(it, key=lambda e: e.name)
            except OSError as exc:
                self._skip(path, _reason(exc))
                continue

            key = (st.st_dev, st.st_ino)
            if key in seen:
                continue
            seen.add(key)

            children: list[tuple[str, int, bool]] = []
            for entry in entries:
                try:
                    if not entry.is_dir(follow_symlinks=False):
                        continue
                except OSError as exc:
                    self._skip(entry.path, _reason(exc))
                    continue
                if entry.name == GIT_DIR:
                    continue
                if entry.name.startswith(".") and not self.include_hidden:
                    continue
                children.append((entry.path, depth + 1, entry.name not in self.prune_dirs))

            # Reversed so the lexicographically first child is popped first.
            stack.extend(reversed(children))

    def _skip(self, path: str, reason: str) -> None:
        self.warnings.append(WalkWarning(path, reason))
        self.logger.warning("Skipping unreadable directory %s: %s", path, reason)


def find_repos(root: str, max_depth: Optional[int] = None, **kwargs) -> list[str]:
    """Recursively find all git repository paths under root.

    Returns a sorted list of absolute paths to repository roots.
    """
    repos = list(Walker(root, max_depth=max_depth, **kwargs).walk())
    repos.sort()
    return repos
