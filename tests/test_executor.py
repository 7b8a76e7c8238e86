"""
Unit tests for the plan executor.
"""

import os
import tempfile
import threading
from pathlib import Path

from sorty.executor import PlanExecutor, execute_move, is_stale, retry_plan
from sorty.types import ExecutionStatus, MoveAction, MovePlan, PlannedMove


def planned_move(src: Path, dest: Path, action: MoveAction = MoveAction.PLANNED) -> PlannedMove:
    """Build a plan entry for an existing source file."""
    stat = src.stat()
    return PlannedMove(
        source=str(src),
        destination=str(dest) if action == MoveAction.PLANNED else None,
        action=action,
        category="Images",
        size=stat.st_size,
        mtime=stat.st_mtime,
    )


class TestIsStale:
    """Tests for is_stale."""

    def test_unchanged(self):
        """An untouched source is not stale."""
        with tempfile.TemporaryDirectory() as tmp:
            src = Path(tmp) / "x.jpg"
            src.write_bytes(b"image")
            assert is_stale(planned_move(src, Path(tmp) / "out.jpg")) is None

    def test_modified(self):
        """A source with a new size is stale."""
        with tempfile.TemporaryDirectory() as tmp:
            src = Path(tmp) / "x.jpg"
            src.write_bytes(b"image")
            move = planned_move(src, Path(tmp) / "out.jpg")
            src.write_bytes(b"a bigger image")
            assert "changed" in is_stale(move)

    def test_missing(self):
        """A vanished source is stale."""
        with tempfile.TemporaryDirectory() as tmp:
            src = Path(tmp) / "x.jpg"
            src.write_bytes(b"image")
            move = planned_move(src, Path(tmp) / "out.jpg")
            src.unlink()
            assert "no longer exists" in is_stale(move)


class TestExecuteMove:
    """Tests for execute_move."""

    def test_move_creates_folders(self):
        """The file is moved and the category folder created."""
        with tempfile.TemporaryDirectory() as tmp:
            src = Path(tmp) / "x.jpg"
            src.write_bytes(b"image")
            dest = Path(tmp) / "Images" / "x.jpg"

            result = execute_move(planned_move(src, dest))

            assert result.status == ExecutionStatus.EXECUTED
            assert not src.exists()
            assert dest.read_bytes() == b"image"

    def test_dry_run(self):
        """Dry run leaves everything in place."""
        with tempfile.TemporaryDirectory() as tmp:
            src = Path(tmp) / "x.jpg"
            src.write_bytes(b"image")
            dest = Path(tmp) / "Images" / "x.jpg"

            result = execute_move(planned_move(src, dest), dry_run=True)

            assert result.status == ExecutionStatus.DRY_RUN
            assert src.exists()
            assert not dest.parent.exists()

    def test_never_overwrites(self):
        """A destination that appeared after planning is not overwritten."""
        with tempfile.TemporaryDirectory() as tmp:
            src = Path(tmp) / "x.jpg"
            src.write_bytes(b"image")
            dest = Path(tmp) / "Images" / "x.jpg"
            move = planned_move(src, dest)
            dest.parent.mkdir()
            dest.write_bytes(b"someone else")

            result = execute_move(move)

            assert result.status == ExecutionStatus.FAILED
            assert dest.read_bytes() == b"someone else"
            assert src.exists()

    def test_stale_source_not_moved(self):
        """A source changed after planning is not moved."""
        with tempfile.TemporaryDirectory() as tmp:
            src = Path(tmp) / "x.jpg"
            src.write_bytes(b"image")
            os.utime(src, (1000, 1000))
            dest = Path(tmp) / "Images" / "x.jpg"
            move = planned_move(src, dest)
            os.utime(src, (2000, 2000))

            result = execute_move(move)

            assert result.status == ExecutionStatus.FAILED
            assert src.exists()
            assert not dest.exists()

    def test_not_planned_is_skipped(self):
        """Entries that are not PLANNED are left alone."""
        with tempfile.TemporaryDirectory() as tmp:
            src = Path(tmp) / "x.jpg"
            src.write_bytes(b"image")
            move = planned_move(src, Path(tmp) / "out.jpg", MoveAction.SKIPPED_CONFLICT)

            result = execute_move(move)

            assert result.status == ExecutionStatus.SKIPPED
            assert src.exists()


class TestPlanExecutor:
    """Tests for PlanExecutor."""

    def _plan(self, tmp: str, count: int) -> MovePlan:
        moves = []
        for i in range(count):
            src = Path(tmp) / f"f{i}.jpg"
            src.write_bytes(f"image {i}".encode())
            moves.append(planned_move(src, Path(tmp) / "Images" / src.name))
        return MovePlan(root=tmp, moves=tuple(moves))

    def test_execute_all(self):
        """Every planned entry is moved, results in plan order."""
        with tempfile.TemporaryDirectory() as tmp:
            plan = self._plan(tmp, 3)

            results = PlanExecutor().execute(plan)

            assert [r.status for r in results] == [ExecutionStatus.EXECUTED] * 3
            assert [r.source for r in results] == [m.source for m in plan]
            assert sorted(os.listdir(Path(tmp) / "Images")) == ["f0.jpg", "f1.jpg", "f2.jpg"]

    def test_failure_does_not_stop_run(self):
        """One failing entry doesn't abort the others."""
        with tempfile.TemporaryDirectory() as tmp:
            plan = self._plan(tmp, 3)
            Path(plan.moves[1].source).unlink()

            executor = PlanExecutor()
            results = executor.execute(plan)

            assert [r.status for r in results] == [
                ExecutionStatus.EXECUTED, ExecutionStatus.FAILED, ExecutionStatus.EXECUTED
            ]
            assert executor.get_stats()["failed"] == 1
            assert "Failed: 1" in executor.get_summary()

    def test_max_moves(self):
        """Moves past the limit are reported as not attempted."""
        with tempfile.TemporaryDirectory() as tmp:
            plan = self._plan(tmp, 3)

            results = PlanExecutor(max_moves=2).execute(plan)

            assert [r.status for r in results] == [
                ExecutionStatus.EXECUTED, ExecutionStatus.EXECUTED, ExecutionStatus.CANCELLED
            ]
            assert Path(plan.moves[2].source).exists()

    def test_cancelled(self):
        """A set cancel event leaves every entry untouched."""
        with tempfile.TemporaryDirectory() as tmp:
            plan = self._plan(tmp, 2)
            event = threading.Event()
            event.set()

            results = PlanExecutor(cancel_event=event).execute(plan)

            assert [r.status for r in results] == [ExecutionStatus.CANCELLED] * 2
            assert all(Path(m.source).exists() for m in plan)

    def test_cancel_midway(self):
        """Cancelling from the progress callback stops later entries."""
        with tempfile.TemporaryDirectory() as tmp:
            plan = self._plan(tmp, 3)
            event = threading.Event()

            def on_progress(current, total, move):
                if current == 1:
                    event.set()

            results = PlanExecutor(cancel_event=event).execute(plan, on_progress)

            assert [r.status for r in results] == [
                ExecutionStatus.EXECUTED, ExecutionStatus.CANCELLED, ExecutionStatus.CANCELLED
            ]

    def test_dry_run_summary(self):
        """Dry-run summary reports would-be moves."""
        with tempfile.TemporaryDirectory() as tmp:
            plan = self._plan(tmp, 2)
            executor = PlanExecutor(dry_run=True)
            executor.execute(plan)
            assert "Would move: 2" in executor.get_summary()


class TestRetryPlan:
    """Tests for retry_plan."""

    def test_retry_failed_subset(self):
        """The retry plan holds only failed and unattempted entries."""
        with tempfile.TemporaryDirectory() as tmp:
            moves = []
            for name in ["a.jpg", "b.jpg", "c.jpg"]:
                src = Path(tmp) / name
                src.write_bytes(name.encode())
                moves.append(planned_move(src, Path(tmp) / "Images" / name))
            plan = MovePlan(root=tmp, moves=tuple(moves))

            # Block b.jpg by occupying its destination
            blocked = Path(moves[1].destination)
            blocked.parent.mkdir()
            blocked.write_bytes(b"blocker")

            results = PlanExecutor().execute(plan)
            retry = retry_plan(plan, results)

            assert [m.source for m in retry] == [moves[1].source]

            blocked.unlink()
            results = PlanExecutor().execute(retry)
            assert [r.status for r in results] == [ExecutionStatus.EXECUTED]
