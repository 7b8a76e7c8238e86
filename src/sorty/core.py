"""
The three entry points used by the CLI: scan, analyze and execute.

    catalog = scan(root, config)
    analysis = analyze(catalog, config)
    results = execute(analysis.plan)

scan() and analyze() never modify the filesystem, and running them twice on
an unchanged tree yields identical plans. execute() is the only step that
moves files.
"""

import logging
import threading
from pathlib import Path
from typing import List, Optional, Union

from .archives import find_archive_pairs
from .config import OrganizerConfig
from .duplicates import find_duplicates
from .executor import PlanExecutor
from .fingerprint import Fingerprinter
from .planner import MovePlanner
from .rules import Classifier
from .scanner import scan_directory
from .types import Analysis, Catalog, ExecutionResult, MovePlan

logger = logging.getLogger(__name__)


def scan(
    root: Union[str, Path],
    config: Optional[OrganizerConfig] = None,
    cancel_event: Optional[threading.Event] = None
) -> Catalog:
    """
    Scan a root directory into a read-only catalog.

    Raises:
        FileNotFoundError: If root doesn't exist
        NotADirectoryError: If root is not a directory
        OperationCancelled: If cancel_event is set during the scan
    """
    return scan_directory(root, config or OrganizerConfig(), cancel_event)


def analyze(
    catalog: Catalog,
    config: Optional[OrganizerConfig] = None,
    cancel_event: Optional[threading.Event] = None
) -> Analysis:
    """
    Detect duplicates, pair archives and plan moves for a catalog.

    Hashing happens only for files whose size collides with another file
    (and for files whose target is already occupied). Files that cannot be
    hashed are excluded from duplicate detection and reported in
    Analysis.hash_errors.

    Args:
        catalog: Result of scan()
        config: Rules and options (defaults to OrganizerConfig())
        cancel_event: Optional event for cooperative cancellation

    Returns:
        Analysis with the plan, duplicate groups and archive pairs

    Raises:
        OperationCancelled: If cancel_event is set during analysis
    """
    config = config or OrganizerConfig()

    fingerprinter = Fingerprinter(
        max_workers=config.max_workers,
        read_timeout=config.read_timeout,
        cancel_event=cancel_event
    )

    logger.info(f"Analyzing {len(catalog.entries)} files under {catalog.root}")

    duplicates, hash_errors = find_duplicates(catalog.files, fingerprinter, cancel_event)
    archives = find_archive_pairs(catalog, config.archive_extensions)

    classifier = Classifier(config.rules, config.matcher, config.unsorted_folder)
    planner = MovePlanner(
        root=catalog.root,
        classifier=classifier,
        fingerprinter=fingerprinter,
        duplicate_groups=duplicates,
        duplicates_action=config.duplicates_action,
        cancel_event=cancel_event
    )

    # Files that could not be hashed are excluded from further processing
    unreadable = {error.path for error in hash_errors}
    plan = planner.plan(e for e in catalog.entries if e.path not in unreadable)

    return Analysis(
        plan=plan,
        duplicates=tuple(duplicates),
        archives=tuple(archives),
        hash_errors=tuple(hash_errors)
    )


def execute(
    plan: MovePlan,
    dry_run: bool = False,
    cancel_event: Optional[threading.Event] = None,
    max_moves: Optional[int] = None
) -> List[ExecutionResult]:
    """
    Perform the moves of a plan.

    Returns:
        One ExecutionResult per plan entry, in plan order
    """
    executor = PlanExecutor(dry_run=dry_run, max_moves=max_moves, cancel_event=cancel_event)
    return executor.execute(plan)
