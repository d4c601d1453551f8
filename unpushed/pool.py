"""Scan engine — walker feeding a bounded queue drained by a fixed worker pool."""

from __future__ import annotations

import logging
import os
import threading
import time
from collections import deque
from dataclasses import dataclass
from typing import Callable, Optional, Union

from unpushed.git import GitStatusEvaluator, StatusEvaluator, StatusVerdict
from unpushed.report import Aggregator, ScanResult
from unpushed.scanner import PRUNE_DIRS, Walker

logger = logging.getLogger(__name__)

VerdictCallback = Callable[[str, StatusVerdict], None]

POLL_INTERVAL = 0.1


class ConfigError(ValueError):
    """Invalid scan configuration; nothing has been scanned."""


class QueueClosed(Exception):
    """push() on a queue that no longer accepts work."""


class _EndOfWork:
    def __repr__(self) -> str:
        return "END_OF_WORK"


END_OF_WORK = _EndOfWork()


@dataclass(frozen=True)
class WorkItem:
    path: str


def available_parallelism() -> int:
    """CPUs this process may run on (not just CPUs in the machine)."""
    try:
        return len(os.sched_getaffinity(0)) or 1
    except (AttributeError, OSError):
        return os.cpu_count() or 1


@dataclass(frozen=True)
class ScanRequest:
    root: str
    threads: int
    queue_size: int
    max_depth: Optional[int] = None
    include_hidden: bool = False
    prune_dirs: frozenset[str] = PRUNE_DIRS
    timeout: Optional[float] = None
    grace_period: float = 5.0

    @classmethod
    def create(
        cls,
        root: str = ".",
        threads: Optional[int] = None,
        *,
        queue_size: Optional[int] = None,
        max_depth: Optional[int] = None,
        include_hidden: bool = False,
        prune_dirs: frozenset[str] = PRUNE_DIRS,
        timeout: Optional[float] = None,
        grace_period: float = 5.0,
    ) -> ScanRequest:
        """Validate configuration and build a request; raises ConfigError."""
        root = os.path.abspath(os.path.expanduser(root))
        if not os.path.exists(root):
            raise ConfigError(f"search path does not exist: {root}")
        if not os.path.isdir(root):
            raise ConfigError(f"search path is not a directory: {root}")

        if threads is None:
            threads = available_parallelism()
        if threads < 1:
            raise ConfigError(f"thread count must be positive, got {threads}")
        if queue_size is None:
            queue_size = threads * 4
        if queue_size < 1:
            raise ConfigError(f"queue size must be positive, got {queue_size}")
        if max_depth is not None and max_depth < 0:
            raise ConfigError(f"max depth cannot be negative, got {max_depth}")
        if timeout is not None and timeout <= 0:
            raise ConfigError(f"timeout must be positive, got {timeout}")
        if grace_period < 0:
            raise ConfigError(f"grace period cannot be negative, got {grace_period}")

        return cls(
            root=root,
            threads=threads,
            queue_size=queue_size,
            max_depth=max_depth,
            include_hidden=include_hidden,
            prune_dirs=frozenset(prune_dirs),
            timeout=timeout,
            grace_period=grace_period,
        )


class WorkQueue:
    """Blocking handoff between one producer and many consumers.

    `maxsize` bounds the queue (0 = unbounded); a full queue blocks the
    producer. After `close()` consumers drain what is left and then get
    END_OF_WORK on every pop.
    """

    def __init__(self, maxsize: int = 0) -> None:
        self.maxsize = maxsize
        self._items: deque[WorkItem] = deque()
        self._closed = False
        self._cond = threading.Condition()

    @property
    def closed(self) -> bool:
        with self._cond:
            return self._closed

    def __len__(self) -> int:
        with self._cond:
            return len(self._items)

    def push(self, item: WorkItem) -> None:
        with self._cond:
            while self.maxsize and len(self._items) >= self.maxsize and not self._closed:
                self._cond.wait()
            if self._closed:
                raise QueueClosed(item.path)
            self._items.append(item)
            self._cond.notify_all()

    def pop(self) -> Union[WorkItem, _EndOfWork]:
        with self._cond:
            while not self._items and not self._closed:
                self._cond.wait()
            if self._items:
                item = self._items.popleft()
                self._cond.notify_all()
                return item
            return END_OF_WORK

    def close(self) -> None:
        """No more pushes; queued items are still handed out."""
        with self._cond:
            self._closed = True
            self._cond.notify_all()

    def cancel(self) -> list[WorkItem]:
        """Close and drop everything still queued. Returns the dropped items."""
        with self._cond:
            self._closed = True
            dropped = list(self._items)
            self._items.clear()
            self._cond.notify_all()
            return dropped


class WorkerPool:
    """Exactly `size` workers, each looping pop -> evaluate -> record.

    Workers are daemon threads: a worker abandoned after the grace period
    never keeps the interpreter alive.
    """

    def __init__(
        self,
        size: int,
        queue: WorkQueue,
        evaluator: StatusEvaluator,
        aggregator: Aggregator,
        *,
        cancel: threading.Event,
        on_verdict: Optional[VerdictCallback] = None,
        logger: logging.Logger = logger,
    ) -> None:
        self.size = size
        self.queue = queue
        self.evaluator = evaluator
        self.aggregator = aggregator
        self.cancel = cancel
        self.on_verdict = on_verdict
        self.logger = logger
        self._threads: list[threading.Thread] = []
        self._errors: list[BaseException] = []
        self._in_flight: set[str] = set()
        self._lock = threading.Lock()

    def start(self) -> None:
        self._threads = [
            threading.Thread(target=self._run, name=f"unpushed-worker-{i}", daemon=True)
            for i in range(self.size)
        ]
        for thread in self._threads:
            thread.start()
        self.logger.debug("Started %d workers", self.size)

    def _run(self) -> None:
        try:
            self._work()
        except BaseException as exc:
            with self._lock:
                self._errors.append(exc)

    def _work(self) -> int:
        evaluated = 0
        while True:
            item = self.queue.pop()
            if item is END_OF_WORK:
                return evaluated
            if self.cancel.is_set():
                self.aggregator.discard(item.path)
                continue

            with self._lock:
                self._in_flight.add(item.path)
            try:
                verdict = self._evaluate(item.path)
                if verdict.is_error and self.cancel.is_set():
                    # Interrupted git calls fail; that says nothing about the repository.
                    self.aggregator.discard(item.path)
                    continue
                if not self.aggregator.record(item.path, verdict):
                    self.logger.debug("Dropping late verdict for %s", item.path)
                    continue
            finally:
                with self._lock:
                    self._in_flight.discard(item.path)

            self._log_verdict(item.path, verdict)
            if self.on_verdict is not None:
                self.on_verdict(item.path, verdict)
            evaluated += 1

    def abandoned(self) -> list[str]:
        """Paths whose evaluation was still running when the pool gave up on it."""
        with self._lock:
            return sorted(self._in_flight)

    def _evaluate(self, path: str) -> StatusVerdict:
        try:
            return self.evaluator.evaluate(path)
        except Exception as exc:
            # Recorded as this repository's error; the worker keeps going.
            self.logger.exception("Evaluator crashed on %s", path)
            return StatusVerdict.error(f"{type(exc).__name__}: {exc}")

    def _log_verdict(self, path: str, verdict: StatusVerdict) -> None:
        if verdict.is_error:
            self.logger.warning("Failed to check repository %s: %s", path, verdict.cause)
            return
        if verdict.missing_head:
            self.logger.warning("Repository has no HEAD: %s", path)
        if verdict.is_dirty:
            reasons = ", ".join(r.value for r in verdict.sorted_reasons())
            self.logger.debug("Repository is dirty: %s (%s)", path, reasons)
        else:
            self.logger.debug("Repository is clean: %s", path)

    def _raise_worker_error(self) -> None:
        with self._lock:
            if self._errors:
                raise self._errors[0]

    def join(self, grace: Optional[float] = None) -> bool:
        """Wait for every worker to see END_OF_WORK.

        Once cancellation is requested, in-flight evaluations get `grace`
        seconds; after that the evaluator is aborted (if it supports
        `abort()`) and the workers are abandoned. Returns True if all
        workers exited.
        """
        deadline = None
        pending = list(self._threads)
        while pending:
            if deadline is None and self.cancel.is_set() and grace is not None:
                deadline = time.monotonic() + grace
            timeout = POLL_INTERVAL
            if deadline is not None:
                timeout = min(timeout, max(deadline - time.monotonic(), 0))
            pending[0].join(timeout)
            self._raise_worker_error()
            pending = [t for t in pending if t.is_alive()]
            if pending and deadline is not None and time.monotonic() >= deadline:
                break

        if not pending:
            return True

        self.logger.warning(
            "Abandoning %d workers still evaluating after %.1fs", len(pending), grace,
        )
        abort = getattr(self.evaluator, "abort", None)
        if abort is not None:
            abort()
        return False


def run_scan(
    request: ScanRequest,
    evaluator: Optional[StatusEvaluator] = None,
    *,
    cancel: Optional[threading.Event] = None,
    on_verdict: Optional[VerdictCallback] = None,
    logger: logging.Logger = logger,
) -> ScanResult:
    """Walk request.root, evaluate every repository found, and return the sorted result.

    Blocks until the walk is exhausted and every queued repository has been
    evaluated. Setting `cancel` (or Ctrl-C on this thread) stops the walk,
    drops queued work and returns what was gathered so far.
    """
    cancel = cancel if cancel is not None else threading.Event()
    if evaluator is None:
        evaluator = GitStatusEvaluator(timeout=request.timeout, logger=logger)

    logger.info("Starting repository scan of %s with %d threads", request.root, request.threads)

    walker = Walker(
        request.root,
        max_depth=request.max_depth,
        include_hidden=request.include_hidden,
        prune_dirs=request.prune_dirs,
        logger=logger,
    )
    queue = WorkQueue(maxsize=request.queue_size)
    aggregator = Aggregator(request.root)
    pool = WorkerPool(
        request.threads, queue, evaluator, aggregator,
        cancel=cancel, on_verdict=on_verdict, logger=logger,
    )

    pool.start()
    try:
        for path in walker.walk(cancel):
            logger.info("Found repository %s", path)
            queue.push(WorkItem(path))
        queue.close()
        # After a cancel the workers discard what they pop instead of evaluating it.
        pool.join(grace=request.grace_period)
    except KeyboardInterrupt:
        logger.warning("Interrupted, stopping scan")
        cancel.set()
        queue.close()
        pool.join(grace=request.grace_period)
    except BaseException:
        cancel.set()
        queue.cancel()
        raise

    discarded = [item.path for item in queue.cancel()] + pool.abandoned()
    aggregator.complete(walker.warnings, cancelled=cancel.is_set(), discarded=discarded)
    result = aggregator.finalize()

    s = result.summary()
    logger.info(
        "Scan complete: %d repositories, %d clean, %d dirty, %d errored, %d directories skipped",
        s.total, s.clean, s.dirty, s.errored, s.skipped_dirs,
    )
    if s.errored:
        logger.warning("%d repositories could not be checked", s.errored)
    return result
