"""
Move planner for sorting catalog files into category folders.

This module is responsible for:
- Computing each file's target path (root/<category>/<name>)
- Leaving non-canonical duplicates in place, or routing them to the
  _DUPLICATES quarantine folder
- Refusing to overwrite: a different file at the target is a conflict
- Downgrading to a no-op when an identical file is already at the target
- Handling name collisions between planned files with _1, _2, etc. suffixes
- Returning an immutable MovePlan without touching the filesystem

Planning only reads the filesystem (existence checks and hashes of files
already at a target). Moving is done by the executor.
"""

import logging
import os
import threading
from typing import Callable, Dict, Iterable, List, Optional, Sequence, Set, Tuple

from .config import DuplicatesAction
from .duplicates import duplicate_paths
from .fingerprint import Fingerprinter
from .rules import Classifier
from .scanner import check_cancelled
from .types import DuplicateGroup, FileEntry, MoveAction, MovePlan, PlannedMove

# Quarantine folder name
DUPLICATES_FOLDER = "_DUPLICATES"

logger = logging.getLogger(__name__)


def add_suffix(name: str, counter: int) -> str:
    """Insert a numeric suffix before the extension: "x.jpg" -> "x_1.jpg"."""
    stem, ext = os.path.splitext(name)
    return f"{stem}_{counter}{ext}"


def resolve_destination(
    dest_dir: str,
    name: str,
    claimed: Optional[Set[str]] = None,
    exists: Callable[[str], bool] = os.path.lexists
) -> Tuple[str, bool]:
    """
    Resolve a unique destination path for a file.

    If the target path already exists (or is in claimed), appends _1, _2,
    etc. before the extension until a free name is found.

    Args:
        dest_dir: The directory the file goes into
        name: The original file name
        claimed: Paths already claimed by earlier entries of the plan
        exists: Existence check (read-only)

    Returns:
        Tuple of (destination path, whether a suffix was added)
    """
    claimed = claimed or set()

    candidate = os.path.join(dest_dir, name)
    if candidate not in claimed and not exists(candidate):
        return candidate, False

    counter = 1
    while True:
        candidate = os.path.join(dest_dir, add_suffix(name, counter))
        if candidate not in claimed and not exists(candidate):
            return candidate, True
        counter += 1

        # Safety limit to prevent infinite loops
        if counter > 10000:
            raise RuntimeError(
                f"Could not find unique name for '{name}' in {dest_dir} "
                f"after 10000 attempts"
            )


def category_dir(root: str, category: str) -> str:
    """Directory for a category ("Media/Images" nests under root)."""
    return os.path.join(root, *category.split("/"))


class MovePlanner:
    """
    Builds a MovePlan for classified catalog entries.

    Entries are planned in the order given (scan discovery order), which
    makes collision suffixes deterministic: the first file to claim a name
    keeps it.
    """

    def __init__(
        self,
        root: str,
        classifier: Classifier,
        fingerprinter: Optional[Fingerprinter] = None,
        duplicate_groups: Sequence[DuplicateGroup] = (),
        duplicates_action: DuplicatesAction = "skip",
        cancel_event: Optional[threading.Event] = None
    ):
        """
        Initialize the planner.

        Args:
            root: The scanned root; category folders are created under it
            classifier: Compiled classification rules
            fingerprinter: Used to compare a source with a file already at
                           its target (shared with duplicate detection so
                           hashes are reused)
            duplicate_groups: Result of duplicate detection
            duplicates_action: "skip" (leave non-canonical copies in place)
                               or "quarantine" (plan them into _DUPLICATES/)
            cancel_event: Optional event checked between entries
        """
        self.root = os.path.abspath(root)
        self.classifier = classifier
        self.fingerprinter = fingerprinter or Fingerprinter(cancel_event=cancel_event)
        self.duplicates_action = duplicates_action
        self.cancel_event = cancel_event

        self._duplicates: Dict[str, DuplicateGroup] = duplicate_paths(duplicate_groups)

        # Destinations claimed by earlier entries of this plan
        self._claimed: Set[str] = set()

        # Statistics
        self._stats: Dict[MoveAction, int] = {action: 0 for action in MoveAction}

    def _same_content(self, entry: FileEntry, existing: str) -> Optional[bool]:
        """Compare a source with the file at its target; None if unreadable."""
        if not os.path.isfile(existing):
            return False
        try:
            source_fp = self.fingerprinter.fingerprint(entry, require_hash=True)
            existing_fp = self.fingerprinter.fingerprint_path(existing)
        except OSError as e:
            logger.warning(f"Cannot compare {entry.path} with {existing}: {e}")
            return None
        return source_fp == existing_fp

    def _result(
        self,
        entry: FileEntry,
        category: str,
        action: MoveAction,
        destination: Optional[str] = None,
        existing: Optional[str] = None,
        renamed: bool = False,
        message: str = ""
    ) -> PlannedMove:
        self._stats[action] += 1
        return PlannedMove(
            source=entry.path,
            destination=destination,
            action=action,
            category=category,
            size=entry.size,
            mtime=entry.mtime,
            existing=existing,
            renamed=renamed,
            message=message
        )

    def plan_entry(self, entry: FileEntry) -> PlannedMove:
        """
        Plan a single file.

        Handles:
        - Non-canonical duplicates (SKIPPED_DUPLICATE, or quarantine)
        - Files already in place (ALREADY_SORTED)
        - A file already at the target (ALREADY_SORTED if identical,
          SKIPPED_CONFLICT otherwise)
        - Collisions with earlier planned files (PLANNED with suffix)

        Args:
            entry: The catalog entry to plan

        Returns:
            The PlannedMove for this entry
        """
        category = self.classifier.classify(entry)
        dest_dir = category_dir(self.root, category)

        group = self._duplicates.get(entry.path)
        if group is not None:
            if self.duplicates_action == "skip":
                logger.debug(f"Skipping duplicate: {entry.path} (canonical: {group.canonical.path})")
                return self._result(
                    entry, category, MoveAction.SKIPPED_DUPLICATE,
                    existing=group.canonical.path,
                    message=f"Duplicate of {group.canonical.path}"
                )
            dest_dir = os.path.join(self.root, DUPLICATES_FOLDER, *category.split("/"))

        target = os.path.join(dest_dir, entry.name)

        if os.path.normcase(os.path.abspath(entry.path)) == os.path.normcase(target):
            self._claimed.add(target)
            return self._result(
                entry, category, MoveAction.ALREADY_SORTED,
                destination=target,
                message="Already in place"
            )

        if os.path.lexists(target):
            same = self._same_content(entry, target)
            if same:
                logger.debug(f"Identical file already at {target}: {entry.path}")
                return self._result(
                    entry, category, MoveAction.ALREADY_SORTED,
                    existing=target,
                    message=f"Identical file already at {target}"
                )

            logger.info(f"Conflict, different file at {target}: {entry.path}")
            reason = "could not be compared" if same is None else "has different content"
            return self._result(
                entry, category, MoveAction.SKIPPED_CONFLICT,
                existing=target,
                message=f"Existing file at {target} {reason}"
            )

        destination, renamed = resolve_destination(dest_dir, entry.name, self._claimed)
        self._claimed.add(destination)

        if renamed:
            message = f"Move to {destination} (renamed to {os.path.basename(destination)})"
        elif group is not None:
            message = f"Quarantine duplicate of {group.canonical.path}"
        else:
            message = f"Move to {destination}"

        return self._result(
            entry, category, MoveAction.PLANNED,
            destination=destination,
            renamed=renamed,
            message=message
        )

    def plan(self, entries: Iterable[FileEntry]) -> MovePlan:
        """
        Plan every entry, in order.

        Args:
            entries: Catalog entries in discovery order

        Returns:
            The immutable MovePlan
        """
        moves: List[PlannedMove] = []
        for entry in entries:
            check_cancelled(self.cancel_event)
            moves.append(self.plan_entry(entry))

        logger.info(
            f"Planned {len(moves)} files: "
            f"{self._stats[MoveAction.PLANNED]} to move, "
            f"{self._stats[MoveAction.ALREADY_SORTED]} already sorted, "
            f"{self._stats[MoveAction.SKIPPED_DUPLICATE]} duplicates, "
            f"{self._stats[MoveAction.SKIPPED_CONFLICT]} conflicts"
        )
        return MovePlan(root=self.root, moves=tuple(moves))

    def get_stats(self) -> Dict[str, int]:
        """
        Get statistics about planned entries.

        Returns:
            Dictionary mapping action names to counts
        """
        return {action.value: count for action, count in self._stats.items()}
