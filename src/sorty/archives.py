"""
Archive pairing: archives next to a directory that looks like their contents.

This module is responsible for:
- Recognizing archives from an allow-list of extensions (compound ones too)
- Deriving an archive's base name ("photos.tar.gz" -> "photos")
- Looking up same-named sibling directories, exactly or case-insensitively
- Flagging single exact matches as possibly redundant and reporting every
  candidate when the match is ambiguous

Pairing is a name heuristic only; archives are never opened.
"""

import logging
from collections import defaultdict
from typing import Dict, Iterable, List, Optional, Sequence

from .config import DEFAULT_ARCHIVE_EXTENSIONS
from .types import ArchivePair, Catalog, DirectoryEntry, FileEntry, PairStatus

logger = logging.getLogger(__name__)


def archive_base_name(
    name: str,
    extensions: Sequence[str] = DEFAULT_ARCHIVE_EXTENSIONS
) -> Optional[str]:
    """
    Strip a recognized archive extension from a file name.

    The longest matching extension wins, so "a.tar.gz" yields "a" rather
    than "a.tar".

    Returns:
        The base name, or None if the file is not a recognized archive
    """
    name_lower = name.lower()
    for ext in sorted(extensions, key=len, reverse=True):
        suffix = "." + ext.lower().lstrip(".")
        if name_lower.endswith(suffix) and len(name) > len(suffix):
            return name[:-len(suffix)]
    return None


def index_directories(directories: Iterable[DirectoryEntry]) -> Dict[str, List[DirectoryEntry]]:
    """Group directories by their parent path."""
    by_parent: Dict[str, List[DirectoryEntry]] = defaultdict(list)
    for directory in directories:
        by_parent[directory.parent].append(directory)
    return by_parent


def pair_archive(
    archive: FileEntry,
    base_name: str,
    siblings: Sequence[DirectoryEntry]
) -> Optional[ArchivePair]:
    """
    Pair one archive with its sibling directories.

    Returns:
        REDUNDANT pair for exactly one exact-name sibling and no case
        variants; AMBIGUOUS pair listing every candidate otherwise; None when
        no sibling matches at all.
    """
    exact = [d.path for d in siblings if d.name == base_name]
    variants = [
        d.path for d in siblings
        if d.name != base_name and d.name.lower() == base_name.lower()
    ]

    if not exact and not variants:
        return None

    if len(exact) == 1 and not variants:
        return ArchivePair(
            archive=archive,
            candidates=(exact[0],),
            status=PairStatus.REDUNDANT
        )

    return ArchivePair(
        archive=archive,
        candidates=tuple(sorted(exact + variants)),
        status=PairStatus.AMBIGUOUS
    )


def find_archive_pairs(
    catalog: Catalog,
    extensions: Sequence[str] = DEFAULT_ARCHIVE_EXTENSIONS
) -> List[ArchivePair]:
    """
    Find archives that sit next to a directory with the same base name.

    Args:
        catalog: The scanned catalog
        extensions: Archive extensions to recognize

    Returns:
        ArchivePairs sorted by archive path
    """
    siblings_by_parent = index_directories(catalog.directories)
    pairs: List[ArchivePair] = []

    for entry in catalog.entries:
        base_name = archive_base_name(entry.name, extensions)
        if base_name is None:
            continue

        pair = pair_archive(entry, base_name, siblings_by_parent.get(entry.parent, []))
        if pair is None:
            continue

        if pair.status == PairStatus.AMBIGUOUS:
            logger.info(
                f"Ambiguous archive pairing for {entry.path}: "
                f"{len(pair.candidates)} candidates"
            )
        else:
            logger.debug(f"Archive {entry.path} pairs with {pair.directory}")
        pairs.append(pair)

    pairs.sort(key=lambda p: p.archive.path)
    logger.info(f"Found {len(pairs)} archive/folder pairs")
    return pairs
