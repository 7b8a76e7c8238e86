"""
Type definitions and data classes for the sorty application.

This module defines:
- FileEntry: Immutable snapshot of a scanned file
- DirectoryEntry: Directory discovered during scanning
- ScanError: A file that could not be read during scan or hashing
- Catalog: The read-only result of a scan
- Fingerprint: Size plus optional content hash
- DuplicateGroup: Files sharing a complete fingerprint
- PairStatus / ArchivePair: Archives matched to sibling directories
- MoveAction / PlannedMove / MovePlan: The output of the move planner
- ExecutionStatus / ExecutionResult: Outcome of executing a plan
- ReportEntry: Data class for CSV report rows
- Analysis: Everything produced by analyze()
"""

import os
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Dict, Iterable, List, Optional, Tuple


@dataclass(frozen=True)
class FileEntry:
    """
    Represents a regular file discovered during scanning.

    The entry is a snapshot: if the file changes on disk after the scan, the
    size/mtime recorded here go stale, which the executor detects before
    moving anything.

    Attributes:
        path: The full absolute path to the file
        name: The file's basename (e.g., "photo.jpg")
        size: Size in bytes at scan time
        mtime: Modification time (seconds since epoch) at scan time
        content_hash: Hex content hash, filled in lazily by the fingerprinter
        file_id: (st_dev, st_ino) of the file, None where the platform
                 does not report one; hard links and followed symlinks
                 to the same file share it
    """
    path: str
    name: str
    size: int
    mtime: float
    content_hash: Optional[str] = None
    file_id: Optional[Tuple[int, int]] = None

    @property
    def extension(self) -> str:
        """Lower-cased final extension without the dot ("" if none)."""
        _, ext = os.path.splitext(self.name)
        return ext[1:].lower()

    @property
    def parent(self) -> str:
        """Directory containing this file."""
        return os.path.dirname(self.path)

    def with_hash(self, content_hash: str) -> "FileEntry":
        """Return a copy of this entry carrying the given content hash."""
        return replace(self, content_hash=content_hash)


@dataclass(frozen=True)
class DirectoryEntry:
    """A directory discovered during scanning."""
    name: str
    path: str

    @property
    def parent(self) -> str:
        return os.path.dirname(self.path)


@dataclass(frozen=True)
class ScanError:
    """A path that could not be read and was excluded from processing."""
    path: str
    message: str
    phase: str = "scan"  # "scan" or "hash"


@dataclass(frozen=True)
class Catalog:
    """
    Read-only result of scanning a root directory.

    Attributes:
        root: Absolute path of the scanned root
        entries: Every regular file found, in discovery order
        directories: Directories seen during the scan
        errors: Entries that could not be read
    """
    root: str
    entries: Tuple[FileEntry, ...] = ()
    directories: Tuple[DirectoryEntry, ...] = ()
    errors: Tuple[ScanError, ...] = ()

    @property
    def files(self) -> Tuple[FileEntry, ...]:
        """Non-empty files, the only ones considered for duplicates."""
        return tuple(e for e in self.entries if e.size > 0)

    @property
    def empty_files(self) -> Tuple[FileEntry, ...]:
        """Zero-byte files (reported, never grouped as duplicates)."""
        return tuple(e for e in self.entries if e.size == 0)


@dataclass(frozen=True)
class Fingerprint:
    """
    Cheap-then-expensive identity of a file.

    Two fingerprints with a hash are equal only when size and hash match.
    A fingerprint without a hash only says "same size" and is never treated
    as a confirmed duplicate.
    """
    size: int
    content_hash: Optional[str] = None

    @property
    def is_complete(self) -> bool:
        return self.content_hash is not None


@dataclass(frozen=True)
class DuplicateGroup:
    """
    A set of files sharing a complete fingerprint.

    Attributes:
        fingerprint: The shared size and content hash
        canonical: The earliest-modified copy, treated as the original
        duplicates: The other copies (at least one)
    """
    fingerprint: Fingerprint
    canonical: FileEntry
    duplicates: Tuple[FileEntry, ...]

    @property
    def entries(self) -> Tuple[FileEntry, ...]:
        return (self.canonical,) + self.duplicates

    @property
    def count(self) -> int:
        return 1 + len(self.duplicates)

    @property
    def wasted_bytes(self) -> int:
        """Space taken by the non-canonical copies."""
        return self.fingerprint.size * len(self.duplicates)


class PairStatus(Enum):
    """How confidently an archive was paired with a directory."""
    REDUNDANT = "redundant"    # Exactly one same-named sibling directory
    AMBIGUOUS = "ambiguous"    # Several case variants; caller decides


@dataclass(frozen=True)
class ArchivePair:
    """An archive file and the sibling directories that look like its contents."""
    archive: FileEntry
    candidates: Tuple[str, ...]
    status: PairStatus

    @property
    def directory(self) -> Optional[str]:
        """The paired directory, or None when the pairing is ambiguous."""
        if self.status == PairStatus.REDUNDANT:
            return self.candidates[0]
        return None


class MoveAction(Enum):
    """Planned outcome for a single file."""
    PLANNED = "planned"                      # Will be moved to destination
    SKIPPED_DUPLICATE = "skipped_duplicate"  # Non-canonical duplicate, left in place
    SKIPPED_CONFLICT = "skipped_conflict"    # A different file occupies the destination
    ALREADY_SORTED = "already_sorted"        # Identical file already at destination


@dataclass(frozen=True)
class PlannedMove:
    """
    A single entry of a move plan.

    Only PLANNED entries, and files already in place, carry a destination,
    so no two entries of a plan share one.

    Attributes:
        source: Path of the file to move
        destination: Where the file goes (None when it stays put)
        action: The planned outcome
        category: The category folder the file was classified into
        size: Source size at scan time, rechecked before executing
        mtime: Source mtime at scan time, rechecked before executing
        existing: The file that caused a skip or no-op (the canonical copy,
                  the conflicting file, or the identical file at the target)
        renamed: True when a numeric suffix was added to avoid a collision
        message: Human-readable explanation
    """
    source: str
    destination: Optional[str]
    action: MoveAction
    category: str
    size: int = 0
    mtime: float = 0.0
    existing: Optional[str] = None
    renamed: bool = False
    message: str = ""


@dataclass(frozen=True)
class MovePlan:
    """Ordered, immutable description of intended file relocations."""
    root: str
    moves: Tuple[PlannedMove, ...] = ()

    def __len__(self) -> int:
        return len(self.moves)

    def __iter__(self):
        return iter(self.moves)

    def planned(self) -> List[PlannedMove]:
        """Entries that will actually be moved."""
        return [m for m in self.moves if m.action == MoveAction.PLANNED]

    def by_action(self) -> Dict[MoveAction, List[PlannedMove]]:
        """Group entries by action, preserving plan order."""
        grouped: Dict[MoveAction, List[PlannedMove]] = {a: [] for a in MoveAction}
        for move in self.moves:
            grouped[move.action].append(move)
        return grouped

    def subset(self, sources: Iterable[str]) -> "MovePlan":
        """Return a plan restricted to the given source paths, in plan order."""
        wanted = set(sources)
        return MovePlan(
            root=self.root,
            moves=tuple(m for m in self.moves if m.source in wanted)
        )


class ExecutionStatus(Enum):
    """Status of executing one plan entry."""
    EXECUTED = "executed"    # File was moved
    FAILED = "failed"        # Move attempted or refused; see message
    SKIPPED = "skipped"      # Entry was not PLANNED
    DRY_RUN = "dry_run"      # Would move (dry run mode)
    CANCELLED = "cancelled"  # Not attempted because execution was cancelled


@dataclass
class ExecutionResult:
    """Result of executing one plan entry."""
    source: str
    destination: Optional[str]
    status: ExecutionStatus
    message: str


@dataclass
class ReportEntry:
    """Entry for the CSV report."""
    timestamp: str
    kind: str
    status: str
    source_path: str
    dest_path: str
    message: str


@dataclass(frozen=True)
class Analysis:
    """Everything analyze() produces for a catalog."""
    plan: MovePlan
    duplicates: Tuple[DuplicateGroup, ...] = ()
    archives: Tuple[ArchivePair, ...] = ()
    hash_errors: Tuple[ScanError, ...] = field(default_factory=tuple)
