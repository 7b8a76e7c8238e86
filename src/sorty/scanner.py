"""
Directory scanner for building the file catalog under a root directory.

This module is responsible for:
- Scanning a directory tree using os.scandir (fast)
- Recording a FileEntry snapshot (size, mtime) for every regular file
- Recording directories so archives can be paired with them later
- Skipping excluded names (substring or glob patterns)
- Recording unreadable entries instead of aborting the scan
- Recording each file's on-disk identity so links to one file are recognized
- Skipping directories reached a second time through followed links
- Producing entries in a deterministic order (sorted by name per directory)
"""

import fnmatch
import logging
import os
import threading
from pathlib import Path
from typing import List, Optional, Sequence, Set, Tuple, Union

from .config import OrganizerConfig
from .errors import OperationCancelled
from .types import Catalog, DirectoryEntry, FileEntry, ScanError

logger = logging.getLogger(__name__)


def matches_exclusion_pattern(name: str, patterns: Sequence[str]) -> Optional[str]:
    """
    Check if a file or directory name matches any exclusion pattern.

    Patterns can be:
    - Simple substrings: "temp" matches "my_temp_file.txt"
    - Glob patterns: "*.bak" matches "notes.bak", "~$*" matches "~$report.docx"

    Args:
        name: The basename to check
        patterns: List of exclusion patterns

    Returns:
        The matching pattern if found, None otherwise
    """
    if not patterns:
        return None

    name_lower = name.lower()

    for pattern in patterns:
        pattern_lower = pattern.lower()

        # Try fnmatch first (handles *, ?, [seq])
        if fnmatch.fnmatch(name_lower, pattern_lower):
            return pattern

        # Also try simple substring match
        if pattern_lower in name_lower:
            return pattern

    return None


def file_id_of(stat_info: os.stat_result) -> Optional[Tuple[int, int]]:
    """Identity of a file on disk, or None when the platform reports no inode."""
    if not stat_info.st_ino:
        return None
    return (stat_info.st_dev, stat_info.st_ino)


def check_cancelled(cancel_event: Optional[threading.Event]) -> None:
    """Raise OperationCancelled if the event has been set."""
    if cancel_event is not None and cancel_event.is_set():
        raise OperationCancelled("Operation cancelled")


def scan_directory(
    root: Union[str, Path],
    config: Optional[OrganizerConfig] = None,
    cancel_event: Optional[threading.Event] = None
) -> Catalog:
    """
    Scan a directory and collect a catalog of its files.

    Only the root's immediate children are collected unless
    config.recursive is set. Directories are always recorded, so that an
    archive in any scanned directory can be paired with its siblings.
    Permission errors and vanished entries are logged, recorded in
    Catalog.errors and skipped.

    Args:
        root: The root directory to scan
        config: Scan options (defaults to OrganizerConfig())
        cancel_event: Optional event checked between entries

    Returns:
        A read-only Catalog

    Raises:
        FileNotFoundError: If root doesn't exist
        NotADirectoryError: If root is not a directory
        OperationCancelled: If cancel_event is set during the scan
    """
    config = config or OrganizerConfig()
    root_path = Path(root)

    if not root_path.exists():
        raise FileNotFoundError(f"Root not found: {root_path}")

    if not root_path.is_dir():
        raise NotADirectoryError(f"Root is not a directory: {root_path}")

    root_str = os.path.abspath(str(root_path))
    follow = config.follow_symlinks

    logger.info(f"Scanning files under: {root_str}")

    files: List[FileEntry] = []
    directories: List[DirectoryEntry] = []
    errors: List[ScanError] = []
    visited: Set[Tuple[int, int]] = set()

    def _scan(dir_path: str) -> None:
        """Scan one directory, recursing when configured."""
        if follow:
            # Followed links can lead back to a directory already scanned
            try:
                dir_stat = os.stat(dir_path)
            except OSError as e:
                logger.warning(f"Cannot scan directory {dir_path}: {e}")
                errors.append(ScanError(path=dir_path, message=str(e)))
                return
            key = (dir_stat.st_dev, dir_stat.st_ino)
            if key in visited:
                logger.debug(f"Skipping already scanned directory: {dir_path}")
                return
            visited.add(key)

        try:
            with os.scandir(dir_path) as it:
                entries = sorted(it, key=lambda e: e.name)
        except OSError as e:
            logger.warning(f"Cannot scan directory {dir_path}: {e}")
            errors.append(ScanError(path=dir_path, message=str(e)))
            return

        for entry in entries:
            check_cancelled(cancel_event)

            excluded_by = matches_exclusion_pattern(entry.name, config.exclude_patterns)
            if excluded_by:
                logger.debug(f"Excluded by pattern '{excluded_by}': {entry.path}")
                continue

            try:
                if entry.is_dir(follow_symlinks=follow):
                    directories.append(DirectoryEntry(name=entry.name, path=entry.path))
                    if config.recursive:
                        _scan(entry.path)
                elif entry.is_file(follow_symlinks=follow):
                    stat_info = entry.stat(follow_symlinks=follow)
                    files.append(FileEntry(
                        path=entry.path,
                        name=entry.name,
                        size=stat_info.st_size,
                        mtime=stat_info.st_mtime,
                        file_id=file_id_of(stat_info)
                    ))

                    if len(files) % 10000 == 0:
                        logger.info(f"Scanned {len(files)} files...")
                else:
                    logger.debug(f"Skipping special file or link: {entry.path}")

            except OSError as e:
                logger.warning(f"Cannot access {entry.path}: {e}")
                errors.append(ScanError(path=entry.path, message=str(e)))

    _scan(root_str)

    catalog = Catalog(
        root=root_str,
        entries=tuple(files),
        directories=tuple(directories),
        errors=tuple(errors)
    )

    logger.info(
        f"Scan complete: {len(files)} files, {len(directories)} folders found "
        f"({len(catalog.empty_files)} empty, {len(errors)} access errors skipped)"
    )

    return catalog
