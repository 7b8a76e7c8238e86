"""
Plan executor for performing the moves described by a MovePlan.

This module is responsible for:
- Moving PLANNED files to their destinations (shutil.move, cross-volume safe)
- Re-checking each source's size/mtime against the plan before moving
- Never overwriting: a destination that appeared since planning fails
- Supporting dry-run mode (no actual moves)
- Recording per-move errors (permissions, disk full) instead of aborting
- Building a retry plan from the moves that failed

This is the only part of sorty that mutates the filesystem.
"""

import logging
import os
import shutil
import threading
from typing import Dict, List, Optional

from .errors import OperationCancelled
from .scanner import check_cancelled
from .types import ExecutionResult, ExecutionStatus, MoveAction, MovePlan, PlannedMove

logger = logging.getLogger(__name__)


def is_stale(move: PlannedMove) -> Optional[str]:
    """
    Check whether a source changed since the scan.

    Returns:
        A reason string if the source is missing or changed, None otherwise
    """
    try:
        stat_info = os.stat(move.source)
    except FileNotFoundError:
        return "Source file no longer exists (may have been moved already)"
    except OSError as e:
        return f"Cannot stat source: {e}"

    if stat_info.st_size != move.size or stat_info.st_mtime != move.mtime:
        return "Source changed since scan (size or modification time differs)"
    return None


def execute_move(move: PlannedMove, dry_run: bool = False) -> ExecutionResult:
    """
    Execute a single plan entry.

    Handles:
    - Entries that are not PLANNED (SKIPPED)
    - Missing or modified sources (FAILED, nothing moved)
    - Destinations that already exist (FAILED, nothing overwritten)
    - Missing destination folders (created)
    - Cross-volume moves (via shutil.move copy+delete)

    Args:
        move: The plan entry to execute
        dry_run: If True, simulate the move without performing it

    Returns:
        ExecutionResult with status and details
    """
    if move.action != MoveAction.PLANNED or move.destination is None:
        return ExecutionResult(
            source=move.source,
            destination=move.destination,
            status=ExecutionStatus.SKIPPED,
            message=f"Not planned ({move.action.value})"
        )

    src = move.source
    dest = move.destination

    stale = is_stale(move)
    if stale:
        logger.warning(f"{stale}: {src}")
        return ExecutionResult(src, dest, ExecutionStatus.FAILED, stale)

    if os.path.lexists(dest):
        logger.warning(f"Destination already exists: {dest}")
        return ExecutionResult(
            src, dest, ExecutionStatus.FAILED,
            "Destination already exists (appeared after planning)"
        )

    # Dry run - just report what would happen
    if dry_run:
        logger.info(f"[DRY RUN] Moving: {src} -> {dest}")
        return ExecutionResult(src, dest, ExecutionStatus.DRY_RUN, f"Would move to {dest}")

    # Ensure destination parent exists
    dest_parent = os.path.dirname(dest)
    try:
        os.makedirs(dest_parent, exist_ok=True)
    except OSError as e:
        logger.error(f"Cannot create destination folder {dest_parent}: {e}")
        return ExecutionResult(
            src, dest, ExecutionStatus.FAILED,
            f"Cannot create destination directory: {e}"
        )

    logger.info(f"Moving: {src} -> {dest}")
    try:
        shutil.move(src, dest)
    except (OSError, shutil.Error) as e:
        logger.error(f"Move failed: {src} -> {dest}: {e}")
        return ExecutionResult(src, dest, ExecutionStatus.FAILED, f"{type(e).__name__}: {e}")

    return ExecutionResult(src, dest, ExecutionStatus.EXECUTED, "Moved successfully")


class PlanExecutor:
    """
    Executes a MovePlan entry by entry.

    Errors never stop the run; each entry gets its own ExecutionResult, and
    the plan stays valid for retrying just the failed subset.
    """

    def __init__(
        self,
        dry_run: bool = False,
        max_moves: Optional[int] = None,
        cancel_event: Optional[threading.Event] = None
    ):
        """
        Initialize the executor.

        Args:
            dry_run: If True, simulate moves without performing them
            max_moves: Optional limit on number of moves (for safety testing)
            cancel_event: Optional event checked between entries
        """
        self.dry_run = dry_run
        self.max_moves = max_moves
        self.cancel_event = cancel_event

        # Statistics
        self._stats: Dict[ExecutionStatus, int] = {status: 0 for status in ExecutionStatus}

    def execute(self, plan: MovePlan, progress_callback=None) -> List[ExecutionResult]:
        """
        Execute every entry of a plan.

        When cancelled, entries not yet attempted are reported as CANCELLED
        rather than raising, so callers always get a complete result list.

        Args:
            plan: The plan to execute
            progress_callback: Optional callable(current, total, move)

        Returns:
            One ExecutionResult per plan entry, in plan order
        """
        results: List[ExecutionResult] = []
        total = len(plan)
        ops_count = 0
        cancelled = False

        logger.info(f"Executing plan: {len(plan.planned())} moves out of {total} entries")

        for i, move in enumerate(plan.moves):
            if not cancelled:
                try:
                    check_cancelled(self.cancel_event)
                except OperationCancelled:
                    logger.info(f"Execution cancelled with {total - i} entries remaining")
                    cancelled = True

            limit_reached = self.max_moves is not None and ops_count >= self.max_moves

            if cancelled or (limit_reached and move.action == MoveAction.PLANNED):
                reason = "Execution cancelled" if cancelled else f"Move limit reached ({self.max_moves})"
                result = ExecutionResult(
                    move.source, move.destination, ExecutionStatus.CANCELLED, reason
                )
            else:
                if progress_callback:
                    progress_callback(i + 1, total, move)
                result = execute_move(move, self.dry_run)

            if result.status in (ExecutionStatus.EXECUTED, ExecutionStatus.DRY_RUN):
                ops_count += 1

            self._stats[result.status] += 1
            results.append(result)

            # Log progress every 100 processed
            if (i + 1) % 100 == 0:
                logger.info(f"Processed {i + 1}/{total} entries ({ops_count} moves)...")

        logger.info(f"Completed: {len(results)} processed, {ops_count} moves performed")
        return results

    def get_stats(self) -> Dict[str, int]:
        """
        Get statistics about executed entries.

        Returns:
            Dictionary mapping status names to counts
        """
        return {status.value: count for status, count in self._stats.items()}

    def get_summary(self) -> str:
        """
        Get a human-readable summary of the execution.

        Returns:
            Formatted summary string
        """
        stats = self.get_stats()
        total = sum(stats.values())

        lines = [f"Execution Summary ({total} total):"]
        if self.dry_run:
            lines.append(f"  Would move: {stats['dry_run']}")
        else:
            lines.append(f"  Moved: {stats['executed']}")
        if stats["skipped"]:
            lines.append(f"  Not planned: {stats['skipped']}")
        if stats["cancelled"]:
            lines.append(f"  Not attempted: {stats['cancelled']}")
        if stats["failed"]:
            lines.append(f"  Failed: {stats['failed']}")

        return "\n".join(lines)


def retry_plan(plan: MovePlan, results: List[ExecutionResult]) -> MovePlan:
    """
    Build a plan containing only the moves that failed or were not attempted.

    Args:
        plan: The plan that was executed
        results: The results of executing it

    Returns:
        A MovePlan restricted to the entries worth retrying
    """
    retry_statuses = (ExecutionStatus.FAILED, ExecutionStatus.CANCELLED)
    sources = [r.source for r in results if r.status in retry_statuses]
    return plan.subset(sources)
