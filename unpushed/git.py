"""Repository status — subprocess-based git inspection and the dirty verdict."""

from __future__ import annotations

import logging
import os
import re
import subprocess
import threading
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Protocol

logger = logging.getLogger(__name__)

# Read-only, non-interactive, parseable git.
GIT_ENV = {
    "GIT_OPTIONAL_LOCKS": "0",
    "GIT_TERMINAL_PROMPT": "0",
    "LC_ALL": "C",
}

AB_RE = re.compile(r"^\+(\d+) -(\d+)$")


class DirtyReason(str, Enum):
    UNCOMMITTED_CHANGES = "uncommitted_changes"
    UNTRACKED_FILES = "untracked_files"
    UNPUSHED_COMMITS = "unpushed_commits"
    STASH = "stash"


class VerdictKind(str, Enum):
    CLEAN = "clean"
    DIRTY = "dirty"
    ERROR = "error"


@dataclass(frozen=True)
class StatusVerdict:
    """Outcome of evaluating one repository.

    DIRTY carries at least one reason, ERROR carries a cause, CLEAN carries
    neither. Build through `clean()`, `dirty()` and `error()`.
    """

    kind: VerdictKind
    reasons: frozenset[DirtyReason] = frozenset()
    cause: str = ""
    missing_head: bool = False

    def __post_init__(self) -> None:
        if (self.kind is VerdictKind.DIRTY) != bool(self.reasons):
            raise ValueError("a dirty verdict needs reasons, other verdicts must have none")
        if (self.kind is VerdictKind.ERROR) != bool(self.cause):
            raise ValueError("an error verdict needs a cause, other verdicts must have none")

    @classmethod
    def clean(cls, missing_head: bool = False) -> StatusVerdict:
        return cls(VerdictKind.CLEAN, missing_head=missing_head)

    @classmethod
    def dirty(cls, reasons, missing_head: bool = False) -> StatusVerdict:
        return cls(VerdictKind.DIRTY, reasons=frozenset(reasons), missing_head=missing_head)

    @classmethod
    def error(cls, cause: str) -> StatusVerdict:
        return cls(VerdictKind.ERROR, cause=cause)

    @property
    def is_clean(self) -> bool:
        return self.kind is VerdictKind.CLEAN

    @property
    def is_dirty(self) -> bool:
        return self.kind is VerdictKind.DIRTY

    @property
    def is_error(self) -> bool:
        return self.kind is VerdictKind.ERROR

    def sorted_reasons(self) -> list[DirtyReason]:
        order = list(DirtyReason)
        return sorted(self.reasons, key=order.index)


@dataclass
class RepoStatus:
    """Raw facts read from `git status --porcelain=v2 --branch`."""

    oid: Optional[str] = None           # None while HEAD is unborn
    branch: Optional[str] = None        # None when detached
    upstream: Optional[str] = None
    ahead: Optional[int] = None         # None when the upstream ref is unknown
    behind: Optional[int] = None
    staged: int = 0
    unstaged: int = 0
    unmerged: int = 0
    untracked: int = 0
    stashes: int = 0
    unknown_lines: list[str] = field(default_factory=list)

    @property
    def unborn(self) -> bool:
        return self.oid is None

    @property
    def detached(self) -> bool:
        return self.branch is None


class GitError(Exception):
    """A git invocation failed or produced output we cannot read."""


class StatusEvaluator(Protocol):
    def evaluate(self, repo_path: str) -> StatusVerdict: ...


class GitProcesses:
    """Registry of running git children so an abandoned evaluation can be killed.

    Once `kill_all()` has been called no further git process is started.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._procs: set[subprocess.Popen] = set()
        self.aborted = False

    def spawn(self, cmd: list[str], **kwargs) -> subprocess.Popen:
        with self._lock:
            if self.aborted:
                raise GitError(f"git {cmd[3]} aborted")
            proc = subprocess.Popen(cmd, **kwargs)
            self._procs.add(proc)
            return proc

    def release(self, proc: subprocess.Popen) -> None:
        with self._lock:
            self._procs.discard(proc)

    def kill_all(self) -> int:
        """Kill every live child. Returns how many were still running."""
        with self._lock:
            self.aborted = True
            procs = list(self._procs)
        for proc in procs:
            proc.kill()
        return len(procs)


def _run_git(
    repo_path: str,
    args: list[str],
    timeout: Optional[float] = None,
    processes: Optional[GitProcesses] = None,
) -> str:
    """Run a git command inside repo_path and return stdout, raising GitError on failure."""
    env = dict(os.environ, **GIT_ENV)
    # Stop git from climbing into an enclosing repository when repo_path is broken.
    env["GIT_CEILING_DIRECTORIES"] = os.path.dirname(os.path.abspath(repo_path))
    if processes is None:
        processes = GitProcesses()

    try:
        proc = processes.spawn(
            ["git", "-C", repo_path] + args,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            text=True,
            errors="replace",
            env=env,
        )
    except OSError as exc:
        raise GitError(f"cannot run git: {exc}") from exc

    try:
        stdout, stderr = proc.communicate(timeout=timeout)
    except subprocess.TimeoutExpired as exc:
        proc.kill()
        proc.communicate()
        raise GitError(f"git {args[0]} timed out after {timeout}s") from exc
    finally:
        processes.release(proc)

    if processes.aborted:
        raise GitError(f"git {args[0]} aborted")
    if proc.returncode != 0:
        detail = stderr.strip().splitlines()
        msg = detail[-1] if detail else f"exit status {proc.returncode}"
        raise GitError(f"git {args[0]} failed: {msg}")
    return stdout


def parse_status(output: str) -> RepoStatus:
    """Parse porcelain v2 output (with --branch headers) into a RepoStatus."""
    status = RepoStatus()

    for line in output.splitlines():
        if not line:
            continue

        if line.startswith("# "):
            key, _, value = line[2:].partition(" ")
            if key == "branch.oid":
                status.oid = None if value == "(initial)" else value
            elif key == "branch.head":
                status.branch = None if value == "(detached)" else value
            elif key == "branch.upstream":
                status.upstream = value
            elif key == "branch.ab":
                m = AB_RE.match(value)
                if not m:
                    raise GitError(f"unexpected branch.ab header: {value!r}")
                status.ahead, status.behind = int(m.group(1)), int(m.group(2))
            continue

        tag = line[0]
        if tag in ("1", "2"):
            xy = line[2:4]
            if len(xy) != 2:
                raise GitError(f"unexpected status entry: {line!r}")
            if xy[0] != ".":
                status.staged += 1
            if xy[1] != ".":
                status.unstaged += 1
        elif tag == "u":
            status.unmerged += 1
        elif tag == "?":
            status.untracked += 1
        elif tag == "!":
            continue
        else:
            status.unknown_lines.append(line)

    return status


def count_stashes(
    repo_path: str,
    timeout: Optional[float] = None,
    processes: Optional[GitProcesses] = None,
) -> int:
    output = _run_git(repo_path, ["stash", "list"], timeout=timeout, processes=processes)
    return len([ln for ln in output.splitlines() if ln.strip()])


def read_status(
    repo_path: str,
    timeout: Optional[float] = None,
    processes: Optional[GitProcesses] = None,
) -> RepoStatus:
    """Collect everything needed for a verdict (two git calls)."""
    output = _run_git(repo_path, [
        "status", "--porcelain=v2", "--branch", "--untracked-files=normal",
    ], timeout=timeout, processes=processes)
    status = parse_status(output)
    status.stashes = count_stashes(repo_path, timeout=timeout, processes=processes)
    return status


def dirty_reasons(status: RepoStatus) -> frozenset[DirtyReason]:
    """Every reason that applies; all signals are checked."""
    reasons = set()
    if status.staged or status.unstaged or status.unmerged:
        reasons.add(DirtyReason.UNCOMMITTED_CHANGES)
    if status.untracked:
        reasons.add(DirtyReason.UNTRACKED_FILES)
    # No upstream, a vanished upstream ref, detached or unborn HEAD: nothing to compare.
    if status.upstream and status.ahead:
        reasons.add(DirtyReason.UNPUSHED_COMMITS)
    if status.stashes:
        reasons.add(DirtyReason.STASH)
    return frozenset(reasons)


class GitStatusEvaluator:
    """Evaluate repositories by invoking the git binary.

    `timeout` bounds each git call in seconds (None waits forever).
    `abort()` kills the git processes still running; after it every
    evaluation ends in an ERROR verdict.
    """

    def __init__(self, timeout: Optional[float] = None, logger: logging.Logger = logger) -> None:
        self.timeout = timeout
        self.logger = logger
        self.processes = GitProcesses()

    def abort(self) -> None:
        killed = self.processes.kill_all()
        if killed:
            self.logger.warning("Killed %d git processes still running", killed)

    def evaluate(self, repo_path: str) -> StatusVerdict:
        try:
            status = read_status(repo_path, timeout=self.timeout, processes=self.processes)
        except GitError as exc:
            return StatusVerdict.error(str(exc))

        if status.unknown_lines:
            self.logger.debug(
                "Ignoring %d unrecognised status lines in %s", len(status.unknown_lines), repo_path,
            )

        reasons = dirty_reasons(status)
        if reasons:
            return StatusVerdict.dirty(reasons, missing_head=status.unborn)
        return StatusVerdict.clean(missing_head=status.unborn)
