"""Acceptance tests for exclusive read-modify-write cycles on one document."""

import multiprocessing
import os
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path

import pytest

from mdspec import rewriter
from mdspec.errors import LockAcquisitionFailure
from mdspec.rewriter import DocumentLock
from mdspec.runner import process, rewrite

pytestmark = pytest.mark.acceptance

VARIABLES = Path(__file__).resolve().parents[1] / "testdata" / "calculator" / "variables.md"
TITLES = ["sum", "difference", "product", "quotient"]


def _stale(text: str) -> str:
    for value in ["15", "8", "70", "2.8"]:
        text = text.replace(f"```\n{value}\n```", "```\n?\n```")
    return text


@pytest.fixture
def slow_patches(monkeypatch: pytest.MonkeyPatch) -> list[str]:
    """Stretch the critical section and record entry/exit of every cycle."""
    events: list[str] = []
    guard = threading.Lock()
    original = rewriter.apply_patches

    def apply_slowly(text, patches):
        with guard:
            events.append("enter")
        time.sleep(0.05)
        result = original(text, patches)
        with guard:
            events.append("exit")
        return result

    monkeypatch.setattr(rewriter, "apply_patches", apply_slowly)
    return events


def _rewrite_in_process(path: Path, handler, title: str, log: Path) -> None:
    """Rewrite one example from a separate process, logging the critical section."""
    original = rewriter.apply_patches

    def apply_slowly(text, patches):
        with open(log, "a") as fh:
            fh.write(f"enter {os.getpid()}\n")
        time.sleep(0.05)
        result = original(text, patches)
        with open(log, "a") as fh:
            fh.write(f"exit {os.getpid()}\n")
        return result

    rewriter.apply_patches = apply_slowly
    if not rewrite(path, handler, examples=[title]).rewritten:
        raise SystemExit(1)


class TestLockExclusivity:
    def test_cycles_never_interleave(self, write_doc, calculator, slow_patches) -> None:
        path = write_doc(_stale(VARIABLES.read_text()))
        with ThreadPoolExecutor(max_workers=len(TITLES)) as pool:
            futures = [pool.submit(rewrite, path, calculator, examples=[t]) for t in TITLES]
            reports = [f.result() for f in futures]

        assert slow_patches == ["enter", "exit"] * len(TITLES)
        assert all(r.rewritten for r in reports)

    def test_per_example_units_keep_every_update(
        self, write_doc, calculator, slow_patches
    ) -> None:
        path = write_doc(_stale(VARIABLES.read_text()))
        threads = [
            threading.Thread(target=rewrite, args=(path, calculator), kwargs={"examples": [t]})
            for t in TITLES
        ]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert path.read_text() == VARIABLES.read_text()
        assert process(path, calculator).passed == len(TITLES)

    def test_whole_document_rewrites_are_consistent(
        self, write_doc, calculator, slow_patches
    ) -> None:
        path = write_doc(_stale(VARIABLES.read_text()))
        with ThreadPoolExecutor(max_workers=3) as pool:
            list(pool.map(lambda _: rewrite(path, calculator), range(3)))
        assert path.read_text() == VARIABLES.read_text()

    @pytest.mark.skipif(
        "fork" not in multiprocessing.get_all_start_methods(), reason="needs fork"
    )
    def test_separate_processes_never_interleave(
        self, write_doc, calculator, tmp_path: Path
    ) -> None:
        path = write_doc(_stale(VARIABLES.read_text()))
        log = tmp_path / "cycles.log"
        context = multiprocessing.get_context("fork")
        workers = [
            context.Process(target=_rewrite_in_process, args=(path, calculator, t, log))
            for t in TITLES
        ]
        for worker in workers:
            worker.start()
        for worker in workers:
            worker.join(timeout=30)

        assert [w.exitcode for w in workers] == [0] * len(TITLES)
        events = [line.split() for line in log.read_text().splitlines()]
        assert [kind for kind, _ in events] == ["enter", "exit"] * len(TITLES)
        pids = [pid for _, pid in events]
        assert pids[0::2] == pids[1::2]
        assert len(set(pids)) == len(TITLES)
        assert path.read_text() == VARIABLES.read_text()

    def test_lock_timeout(self, write_doc, calculator) -> None:
        stale = _stale(VARIABLES.read_text())
        path = write_doc(stale)
        with DocumentLock(path):
            with pytest.raises(LockAcquisitionFailure, match="timed out"):
                rewrite(path, calculator, lock_timeout=0.1)
        assert path.read_text() == stale
