"""
Unit tests for the move planner.
"""

import os
import tempfile
from pathlib import Path
from typing import Optional

import pytest

from sorty.duplicates import find_duplicates
from sorty.planner import (
    DUPLICATES_FOLDER,
    MovePlanner,
    add_suffix,
    category_dir,
    resolve_destination,
)
from sorty.rules import Classifier, load_rules
from sorty.types import FileEntry, MoveAction


RULES = load_rules([
    {"target": "Images", "extensions": ["jpg", "png"]},
    {"target": "Media/Video", "extensions": ["mp4"]},
])


def write_entry(path: Path, content: bytes, mtime: Optional[float] = None) -> FileEntry:
    """Write a file and return its catalog entry."""
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(content)
    if mtime is not None:
        os.utime(path, (mtime, mtime))
    stat = path.stat()
    return FileEntry(path=str(path), name=path.name, size=stat.st_size, mtime=stat.st_mtime)


def make_planner(root: str, **kwargs) -> MovePlanner:
    return MovePlanner(root=root, classifier=Classifier(RULES), **kwargs)


class TestAddSuffix:
    """Tests for add_suffix."""

    @pytest.mark.parametrize("name,counter,expected", [
        ("x.jpg", 1, "x_1.jpg"),
        ("x.jpg", 12, "x_12.jpg"),
        ("Makefile", 2, "Makefile_2"),
        ("a.tar.gz", 1, "a.tar_1.gz"),
    ])
    def test_suffix(self, name, counter, expected):
        """The counter goes before the final extension."""
        assert add_suffix(name, counter) == expected


class TestResolveDestination:
    """Tests for resolve_destination."""

    def test_free_name(self):
        """A free name is used as-is."""
        path, renamed = resolve_destination("/dest", "x.jpg", exists=lambda p: False)
        assert path == os.path.join("/dest", "x.jpg")
        assert renamed is False

    def test_claimed_name(self):
        """Claimed names get a suffix."""
        claimed = {os.path.join("/dest", "x.jpg"), os.path.join("/dest", "x_1.jpg")}
        path, renamed = resolve_destination("/dest", "x.jpg", claimed, exists=lambda p: False)
        assert path == os.path.join("/dest", "x_2.jpg")
        assert renamed is True

    def test_existing_name(self):
        """Names taken on disk get a suffix."""
        taken = {os.path.join("/dest", "x.jpg")}
        path, renamed = resolve_destination("/dest", "x.jpg", exists=taken.__contains__)
        assert path == os.path.join("/dest", "x_1.jpg")
        assert renamed is True


class TestCategoryDir:
    """Tests for category_dir."""

    def test_nested_category(self):
        """Nested categories become nested folders."""
        assert category_dir("/root", "Media/Video") == os.path.join("/root", "Media", "Video")


class TestMovePlanner:
    """Tests for MovePlanner."""

    def test_planned_moves(self):
        """Matching files go to their category, others to unsorted."""
        with tempfile.TemporaryDirectory() as tmp:
            x = write_entry(Path(tmp) / "x.jpg", b"image")
            y = write_entry(Path(tmp) / "y.doc", b"document")

            plan = make_planner(tmp).plan([x, y])

            assert [m.action for m in plan] == [MoveAction.PLANNED, MoveAction.PLANNED]
            assert plan.moves[0].destination == os.path.join(tmp, "Images", "x.jpg")
            assert plan.moves[1].destination == os.path.join(tmp, "unsorted", "y.doc")
            assert plan.moves[0].category == "Images"
            assert plan.moves[0].size == x.size
            assert plan.moves[0].mtime == x.mtime

    def test_planning_does_not_touch_filesystem(self):
        """No folders are created while planning."""
        with tempfile.TemporaryDirectory() as tmp:
            x = write_entry(Path(tmp) / "x.jpg", b"image")

            make_planner(tmp).plan([x])

            assert sorted(os.listdir(tmp)) == ["x.jpg"]

    def test_conflict_with_different_file(self):
        """A different file at the target is a conflict."""
        with tempfile.TemporaryDirectory() as tmp:
            x = write_entry(Path(tmp) / "x.jpg", b"new image")
            existing = Path(tmp) / "Images" / "x.jpg"
            write_entry(existing, b"old image")

            plan = make_planner(tmp).plan([x])

            move = plan.moves[0]
            assert move.action == MoveAction.SKIPPED_CONFLICT
            assert move.destination is None
            assert move.existing == str(existing)

    def test_identical_file_at_target(self):
        """An identical file at the target makes the move a no-op."""
        with tempfile.TemporaryDirectory() as tmp:
            x = write_entry(Path(tmp) / "x.jpg", b"same image")
            existing = Path(tmp) / "Images" / "x.jpg"
            write_entry(existing, b"same image")

            plan = make_planner(tmp).plan([x])

            assert plan.moves[0].action == MoveAction.ALREADY_SORTED
            assert plan.moves[0].existing == str(existing)
            assert plan.planned() == []

    def test_directory_at_target_is_conflict(self):
        """A folder with the file's name at the target is a conflict."""
        with tempfile.TemporaryDirectory() as tmp:
            x = write_entry(Path(tmp) / "x.jpg", b"image")
            (Path(tmp) / "Images" / "x.jpg").mkdir(parents=True)

            plan = make_planner(tmp).plan([x])

            assert plan.moves[0].action == MoveAction.SKIPPED_CONFLICT

    def test_already_in_place(self):
        """A file already in its category folder stays put."""
        with tempfile.TemporaryDirectory() as tmp:
            x = write_entry(Path(tmp) / "Images" / "x.jpg", b"image")

            plan = make_planner(tmp).plan([x])

            assert plan.moves[0].action == MoveAction.ALREADY_SORTED
            assert plan.moves[0].destination == x.path

    def test_already_in_place_with_dotted_target(self):
        """A target written as ./Images still recognizes files in Images/."""
        with tempfile.TemporaryDirectory() as tmp:
            x = write_entry(Path(tmp) / "Images" / "x.jpg", b"image")
            rules = load_rules([{"target": "./Images", "extensions": ["jpg"]}])

            plan = MovePlanner(root=tmp, classifier=Classifier(rules)).plan([x])

            assert plan.moves[0].action == MoveAction.ALREADY_SORTED

    def test_collisions_get_suffixes(self):
        """Files headed to the same name are suffixed in plan order."""
        with tempfile.TemporaryDirectory() as tmp:
            first = write_entry(Path(tmp) / "a" / "x.jpg", b"one")
            second = write_entry(Path(tmp) / "b" / "x.jpg", b"two")
            third = write_entry(Path(tmp) / "c" / "x.jpg", b"three")

            plan = make_planner(tmp).plan([first, second, third])

            names = [os.path.basename(m.destination) for m in plan]
            assert names == ["x.jpg", "x_1.jpg", "x_2.jpg"]
            assert [m.renamed for m in plan] == [False, True, True]

    def test_destinations_unique(self):
        """No two plan entries share a destination."""
        with tempfile.TemporaryDirectory() as tmp:
            entries = [
                write_entry(Path(tmp) / "Images" / "x.jpg", b"in place"),
                write_entry(Path(tmp) / "a" / "x.jpg", b"other"),
                write_entry(Path(tmp) / "b" / "x.jpg", b"in place"),
                write_entry(Path(tmp) / "c" / "x_1.jpg", b"third"),
            ]

            plan = make_planner(tmp).plan(entries)

            destinations = [m.destination for m in plan if m.destination is not None]
            assert len(destinations) == len(set(destinations))

    def test_duplicates_skipped(self):
        """Non-canonical duplicates stay in place by default."""
        with tempfile.TemporaryDirectory() as tmp:
            original = write_entry(Path(tmp) / "a.jpg", b"photo", mtime=1000)
            copy = write_entry(Path(tmp) / "b.jpg", b"photo", mtime=2000)
            groups, _ = find_duplicates([original, copy])

            plan = make_planner(tmp, duplicate_groups=groups).plan([original, copy])

            assert plan.moves[0].action == MoveAction.PLANNED
            assert plan.moves[1].action == MoveAction.SKIPPED_DUPLICATE
            assert plan.moves[1].destination is None
            assert plan.moves[1].existing == original.path

    def test_duplicates_quarantined(self):
        """Quarantine plans copies into the duplicates folder."""
        with tempfile.TemporaryDirectory() as tmp:
            original = write_entry(Path(tmp) / "a.mp4", b"clip", mtime=1000)
            copy = write_entry(Path(tmp) / "b.mp4", b"clip", mtime=2000)
            groups, _ = find_duplicates([original, copy])

            planner = make_planner(tmp, duplicate_groups=groups, duplicates_action="quarantine")
            plan = planner.plan([original, copy])

            assert plan.moves[1].action == MoveAction.PLANNED
            assert plan.moves[1].destination == os.path.join(
                tmp, DUPLICATES_FOLDER, "Media", "Video", "b.mp4"
            )

    def test_stats(self):
        """Planner counts each action."""
        with tempfile.TemporaryDirectory() as tmp:
            x = write_entry(Path(tmp) / "x.jpg", b"image")
            planner = make_planner(tmp)
            planner.plan([x])

            stats = planner.get_stats()

            assert stats["planned"] == 1
            assert stats["skipped_conflict"] == 0
