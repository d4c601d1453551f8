"""Tests for result aggregation and the report model."""

import threading

import pytest

from unpushed.git import DirtyReason, StatusVerdict
from unpushed.report import Aggregator, DuplicateVerdictError, ScanResult, ScanSummary
from unpushed.scanner import WalkWarning

CLEAN = StatusVerdict.clean()
DIRTY = StatusVerdict.dirty([DirtyReason.UNTRACKED_FILES])
ERROR = StatusVerdict.error("git status failed: corrupt")


def _aggregate(verdicts: dict, **complete) -> ScanResult:
    agg = Aggregator("/root")
    for path, verdict in verdicts.items():
        agg.record(path, verdict)
    agg.complete(**complete)
    return agg.finalize()


def test_finalize_sorts_by_path():
    result = _aggregate({"/root/zeta": CLEAN, "/root/alpha": DIRTY, "/root/mid": ERROR})
    assert [e.path for e in result.entries] == ["/root/alpha", "/root/mid", "/root/zeta"]


def test_record_rejects_duplicates():
    agg = Aggregator("/root")
    agg.record("/root/a", CLEAN)
    with pytest.raises(DuplicateVerdictError):
        agg.record("/root/a", DIRTY)


def test_discard_then_record_is_duplicate():
    agg = Aggregator("/root")
    agg.discard("/root/a")
    with pytest.raises(DuplicateVerdictError):
        agg.record("/root/a", CLEAN)


def test_finalize_only_once():
    agg = Aggregator("/root")
    agg.complete()
    agg.finalize()
    with pytest.raises(RuntimeError):
        agg.finalize()


def test_finalize_waits_for_completion():
    agg = Aggregator("/root")
    agg.record("/root/a", CLEAN)
    results = []

    t = threading.Thread(target=lambda: results.append(agg.finalize()))
    t.start()
    t.join(0.2)
    assert t.is_alive()

    agg.record("/root/b", DIRTY)
    agg.complete()
    t.join(5)
    assert not t.is_alive()
    assert len(results[0].entries) == 2


def test_finalize_timeout():
    agg = Aggregator("/root")
    with pytest.raises(TimeoutError):
        agg.finalize(timeout=0.05)


def test_concurrent_records_all_kept():
    agg = Aggregator("/root")

    def producer(n: int) -> None:
        for i in range(200):
            agg.record(f"/root/w{n}/r{i:03d}", CLEAN)

    threads = [threading.Thread(target=producer, args=(n,)) for n in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    agg.complete()
    result = agg.finalize()
    assert len(result.entries) == 1600
    assert len({e.path for e in result.entries}) == 1600


def test_summary_counts():
    result = _aggregate(
        {
            "/root/a": CLEAN,
            "/root/b": DIRTY,
            "/root/c": ERROR,
            "/root/d": StatusVerdict.clean(missing_head=True),
        },
        warnings=[WalkWarning("/root/locked", "permission denied")],
        cancelled=True,
        discarded=["/root/e"],
    )
    s = result.summary()
    assert s == ScanSummary(
        total=5, clean=2, dirty=1, errored=1, missing_head=1, skipped_dirs=1, discarded=1,
    )
    assert result.cancelled


def test_result_filters():
    result = _aggregate({"/root/a": CLEAN, "/root/b": DIRTY, "/root/c": ERROR})
    assert [e.path for e in result.dirty()] == ["/root/b"]
    assert [e.path for e in result.errored()] == ["/root/c"]
    assert result.missing_head() == []


def test_relpath():
    result = ScanResult(root="/root")
    assert result.relpath("/root/a/b") == "a/b"
    assert result.relpath("/elsewhere/x") == "/elsewhere/x"


def test_to_dict():
    result = _aggregate(
        {"/root/a": StatusVerdict.dirty([DirtyReason.STASH, DirtyReason.UNCOMMITTED_CHANGES]), "/root/b": ERROR},
    )
    data = result.to_dict()
    assert data["summary"]["dirty"] == 1
    assert data["summary"]["errored"] == 1
    assert data["repos"][0] == {
        "path": "/root/a",
        "status": "dirty",
        "reasons": ["uncommitted_changes", "stash"],
        "error": None,
        "missing_head": False,
    }
    assert data["repos"][1]["error"] == "git status failed: corrupt"
    assert data["cancelled"] is False


def test_late_verdict_and_discard_are_dropped():
    agg = Aggregator("/root")
    agg.record("/root/a", CLEAN)
    agg.complete(discarded=["/root/b"])
    assert agg.record("/root/b", DIRTY) is False
    assert agg.discard("/root/c") is False
    result = agg.finalize()
    assert [e.path for e in result.entries] == ["/root/a"]
    assert result.discarded == ("/root/b",)


def test_complete_ignores_discarded_path_that_was_recorded():
    agg = Aggregator("/root")
    agg.record("/root/a", CLEAN)
    agg.complete(discarded=["/root/a"])
    result = agg.finalize()
    assert [e.path for e in result.entries] == ["/root/a"]
    assert result.discarded == ()
