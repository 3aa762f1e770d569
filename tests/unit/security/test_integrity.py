"""Unit tests — integrity digest and monitor."""

from __future__ import annotations

from pathlib import Path

import pytest

from ticketgate.security.integrity import IntegrityMonitor, compute_digest


def _tree(root: Path) -> Path:
    (root / "pkg" / "sub").mkdir(parents=True)
    (root / "pkg" / "a.py").write_text("A = 1\n")
    (root / "pkg" / "sub" / "b.py").write_text("B = 2\n")
    (root / "pkg" / "notes.txt").write_text("ignored\n")
    return root / "pkg"


@pytest.mark.unit
class TestComputeDigest:
    def test_stable_across_calls(self, tmp_path: Path) -> None:
        pkg = _tree(tmp_path)
        assert compute_digest([pkg]) == compute_digest([pkg])

    def test_ignores_non_python_files(self, tmp_path: Path) -> None:
        pkg = _tree(tmp_path)
        before = compute_digest([pkg])
        (pkg / "notes.txt").write_text("changed\n")
        assert compute_digest([pkg]) == before

    def test_changes_when_source_changes(self, tmp_path: Path) -> None:
        pkg = _tree(tmp_path)
        before = compute_digest([pkg])
        (pkg / "sub" / "b.py").write_text("B = 3\n")
        assert compute_digest([pkg]) != before


@pytest.mark.unit
class TestIntegrityMonitor:
    async def test_callback_fires_once(self, tmp_path: Path) -> None:
        pkg = _tree(tmp_path)
        calls: list[tuple[str, str]] = []

        async def on_violation(expected: str, actual: str) -> None:
            calls.append((expected, actual))

        monitor = IntegrityMonitor([pkg], interval_seconds=0, on_violation=on_violation)
        baseline = monitor.capture_baseline()
        assert await monitor.check() is True

        (pkg / "a.py").write_text("A = 99\n")
        assert await monitor.check() is False
        assert await monitor.check() is False

        assert monitor.halted
        assert len(calls) == 1
        assert calls[0][0] == baseline

    async def test_start_without_interval_only_captures_baseline(self, tmp_path: Path) -> None:
        monitor = IntegrityMonitor([_tree(tmp_path)], interval_seconds=0)
        await monitor.start()
        assert monitor.baseline is not None
        assert await monitor.check()
        await monitor.stop()
