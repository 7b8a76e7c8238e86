"""
Duplicate detection over a scanned catalog.

This module is responsible for:
- Treating hard links and followed symlinks to one file as a single file
- Grouping files by size in a single pass
- Hashing only the members of size buckets with more than one file
- Building DuplicateGroups of files sharing size and content hash
- Choosing the canonical copy (earliest modification time)
- Ordering groups deterministically

Detection only: nothing here deletes or moves files.
"""

import logging
import threading
from collections import defaultdict
from typing import Dict, Iterable, List, Optional, Set, Tuple

from .fingerprint import Fingerprinter
from .scanner import check_cancelled
from .types import DuplicateGroup, FileEntry, Fingerprint, ScanError

logger = logging.getLogger(__name__)


def group_by_size(entries: Iterable[FileEntry]) -> Dict[int, List[FileEntry]]:
    """Group entries by their size in bytes, preserving discovery order."""
    buckets: Dict[int, List[FileEntry]] = defaultdict(list)
    for entry in entries:
        buckets[entry.size].append(entry)
    return dict(buckets)


def canonical_sort_key(entry: FileEntry) -> Tuple[float, str]:
    """Earliest modification time first; path breaks ties."""
    return (entry.mtime, entry.path)


def build_group(fingerprint: Fingerprint, entries: List[FileEntry]) -> DuplicateGroup:
    """Build a DuplicateGroup from two or more entries sharing a fingerprint."""
    ordered = sorted(entries, key=canonical_sort_key)
    return DuplicateGroup(
        fingerprint=fingerprint,
        canonical=ordered[0],
        duplicates=tuple(ordered[1:])
    )


def distinct_files(entries: Iterable[FileEntry]) -> List[FileEntry]:
    """
    Drop entries that are another name for a file already seen.

    Hard links, and symlinks when links are followed, share a file_id with
    their target. Only the first of them is kept, so a file is never
    reported as a duplicate of itself.
    """
    seen: Set[Tuple[int, int]] = set()
    distinct: List[FileEntry] = []
    for entry in entries:
        if entry.file_id is not None:
            if entry.file_id in seen:
                logger.debug(f"Same file as an earlier entry, not a duplicate: {entry.path}")
                continue
            seen.add(entry.file_id)
        distinct.append(entry)
    return distinct

def find_duplicates(
    entries: Iterable[FileEntry],
    fingerprinter: Optional[Fingerprinter] = None,
    cancel_event: Optional[threading.Event] = None
) -> Tuple[List[DuplicateGroup], List[ScanError]]:
    """
    Find groups of files with identical contents.

    Files are bucketed by size first; only buckets with more than one member
    are hashed, so unique-sized files are never read. Zero-byte files should
    be filtered out by the caller (Catalog.files does this).
    Entries naming the same file on disk (see distinct_files) count once.

    Args:
        entries: Catalog entries to examine
        fingerprinter: Fingerprinter to hash with (a default one is created)
        cancel_event: Optional event checked between buckets

    Returns:
        Tuple of (duplicate groups, hash errors). Groups are sorted by
        descending size, then by canonical path.
    """
    fingerprinter = fingerprinter or Fingerprinter(cancel_event=cancel_event)

    size_buckets = group_by_size(distinct_files(entries))
    candidates = [bucket for bucket in size_buckets.values() if len(bucket) > 1]
    candidate_count = sum(len(bucket) for bucket in candidates)

    logger.info(
        f"Duplicate candidates: {candidate_count} files "
        f"in {len(candidates)} size groups"
    )

    # Hash every candidate in one batch so the worker pool stays busy
    to_hash = [entry for bucket in candidates for entry in bucket]
    hashed, errors = fingerprinter.hash_entries(to_hash)

    by_fingerprint: Dict[Fingerprint, List[FileEntry]] = defaultdict(list)
    for entry in hashed:
        check_cancelled(cancel_event)
        key = Fingerprint(size=entry.size, content_hash=entry.content_hash)
        by_fingerprint[key].append(entry)

    groups = [
        build_group(key, members)
        for key, members in by_fingerprint.items()
        if len(members) > 1
    ]
    groups.sort(key=lambda g: (-g.count, g.canonical.path))

    wasted = sum(g.wasted_bytes for g in groups)
    logger.info(
        f"Found {len(groups)} duplicate groups "
        f"({sum(len(g.duplicates) for g in groups)} redundant copies, {wasted} bytes)"
    )

    return groups, errors


def duplicate_paths(groups: Iterable[DuplicateGroup]) -> Dict[str, DuplicateGroup]:
    """Map every non-canonical copy's path to its group."""
    return {
        entry.path: group
        for group in groups
        for entry in group.duplicates
    }
