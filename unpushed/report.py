"""Result aggregation — collect verdicts from the workers into one sorted report."""

from __future__ import annotations

import os
import threading
from dataclasses import dataclass
from typing import Iterable, Optional

from unpushed.git import StatusVerdict, VerdictKind
from unpushed.scanner import WalkWarning


class DuplicateVerdictError(RuntimeError):
    """A repository was evaluated more than once."""


@dataclass(frozen=True)
class RepoVerdict:
    path: str
    verdict: StatusVerdict


@dataclass
class ScanSummary:
    total: int = 0
    clean: int = 0
    dirty: int = 0
    errored: int = 0
    missing_head: int = 0
    skipped_dirs: int = 0
    discarded: int = 0

    @classmethod
    def from_result(cls, result: ScanResult) -> ScanSummary:
        s = cls(
            total=len(result.entries) + len(result.discarded),
            skipped_dirs=len(result.warnings),
            discarded=len(result.discarded),
        )
        for entry in result.entries:
            v = entry.verdict
            if v.kind is VerdictKind.CLEAN:
                s.clean += 1
            elif v.kind is VerdictKind.DIRTY:
                s.dirty += 1
            else:
                s.errored += 1
            if v.missing_head:
                s.missing_head += 1
        return s


@dataclass
class ScanResult:
    root: str
    entries: tuple[RepoVerdict, ...] = ()
    warnings: tuple[WalkWarning, ...] = ()
    discarded: tuple[str, ...] = ()
    cancelled: bool = False

    def dirty(self) -> list[RepoVerdict]:
        return [e for e in self.entries if e.verdict.is_dirty]

    def errored(self) -> list[RepoVerdict]:
        return [e for e in self.entries if e.verdict.is_error]

    def missing_head(self) -> list[RepoVerdict]:
        return [e for e in self.entries if e.verdict.missing_head]

    def summary(self) -> ScanSummary:
        return ScanSummary.from_result(self)

    def relpath(self, path: str) -> str:
        rel = os.path.relpath(path, self.root)
        return path if rel.startswith("..") else rel

    def to_dict(self) -> dict:
        s = self.summary()
        return {
            "root": self.root,
            "cancelled": self.cancelled,
            "summary": {
                "total": s.total,
                "clean": s.clean,
                "dirty": s.dirty,
                "errored": s.errored,
                "missing_head": s.missing_head,
                "skipped_dirs": s.skipped_dirs,
                "discarded": s.discarded,
            },
            "repos": [
                {
                    "path": e.path,
                    "status": e.verdict.kind.value,
                    "reasons": [r.value for r in e.verdict.sorted_reasons()],
                    "error": e.verdict.cause or None,
                    "missing_head": e.verdict.missing_head,
                }
                for e in self.entries
            ],
            "warnings": [{"path": w.path, "reason": w.reason} for w in self.warnings],
            "discarded": list(self.discarded),
        }


class Aggregator:
    """Thread-safe sink for verdicts arriving from any worker, in any order.

    The coordinator calls `complete()` once the walker is exhausted and the
    pool has drained; `finalize()` waits for that and may be called once.
    """

    def __init__(self, root: str) -> None:
        self.root = root
        self._lock = threading.Lock()
        self._verdicts: dict[str, StatusVerdict] = {}
        self._discarded: set[str] = set()
        self._warnings: list[WalkWarning] = []
        self._cancelled = False
        self._done = threading.Event()
        self._finalized = False

    def record(self, path: str, verdict: StatusVerdict) -> bool:
        """Store a verdict. Returns False if the scan was already completed."""
        with self._lock:
            if self._done.is_set():
                return False
            if path in self._verdicts or path in self._discarded:
                raise DuplicateVerdictError(f"repository already evaluated: {path}")
            self._verdicts[path] = verdict
            return True

    def discard(self, path: str) -> bool:
        """Note a repository that was found but will not be evaluated.

        Returns False if the scan was already completed.
        """
        with self._lock:
            if self._done.is_set():
                return False
            if path in self._verdicts or path in self._discarded:
                raise DuplicateVerdictError(f"repository already evaluated: {path}")
            self._discarded.add(path)
            return True

    def __len__(self) -> int:
        with self._lock:
            return len(self._verdicts)

    def complete(
        self,
        warnings: Iterable[WalkWarning] = (),
        cancelled: bool = False,
        discarded: Iterable[str] = (),
    ) -> None:
        with self._lock:
            self._warnings = list(warnings)
            self._cancelled = cancelled
            for path in discarded:
                if path not in self._verdicts:
                    self._discarded.add(path)
        self._done.set()

    def finalize(self, timeout: Optional[float] = None) -> ScanResult:
        with self._lock:
            if self._finalized:
                raise RuntimeError("finalize() already called for this scan")
            self._finalized = True

        if not self._done.wait(timeout):
            raise TimeoutError("scan did not complete in time")

        with self._lock:
            entries = tuple(
                RepoVerdict(path, self._verdicts[path]) for path in sorted(self._verdicts)
            )
            return ScanResult(
                root=self.root,
                entries=entries,
                warnings=tuple(self._warnings),
                discarded=tuple(sorted(self._discarded)),
                cancelled=self._cancelled,
            )
