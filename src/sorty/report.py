"""
Report generation for analyses and executions.

This module is responsible for:
- Rendering a line-oriented text report of a plan, duplicate groups,
  archive pairs, empty files and unreadable entries
- Creating detailed CSV reports, streamed to keep memory low
- Recording run parameters for traceability
- Generating summary statistics
"""

import csv
import logging
import os
from datetime import datetime
from pathlib import Path
from typing import Dict, Iterable, List, Optional, TextIO, Union

from .types import (
    Analysis,
    ArchivePair,
    Catalog,
    DuplicateGroup,
    ExecutionResult,
    MoveAction,
    PlannedMove,
    ReportEntry,
    ScanError,
)

logger = logging.getLogger(__name__)

# CSV column headers in order
REPORT_COLUMNS = [
    "timestamp",
    "kind",
    "status",
    "source_path",
    "dest_path",
    "message",
]

# Row kinds
KIND_PARAMETER = "parameter"
KIND_PLAN = "plan"
KIND_DUPLICATE = "duplicate"
KIND_ARCHIVE = "archive"
KIND_ERROR = "error"
KIND_EXECUTION = "execution"


def display_path(path: Optional[str], root: Optional[str] = None) -> str:
    """Show a path relative to root when it lives under it."""
    if not path:
        return ""
    if root:
        try:
            rel = os.path.relpath(path, root)
        except ValueError:
            return path
        if not rel.startswith(os.pardir):
            return rel
    return path


def format_size(size: int) -> str:
    """Human-readable byte count."""
    value = float(size)
    for unit in ("B", "KB", "MB", "GB"):
        if value < 1024 or unit == "GB":
            return f"{int(value)} {unit}" if unit == "B" else f"{value:.1f} {unit}"
        value /= 1024
    return f"{size} B"


def format_plan(plan_moves: Iterable[PlannedMove], root: Optional[str] = None) -> List[str]:
    """One line per plan entry: action, source and destination or reason."""
    lines = []
    for move in plan_moves:
        source = display_path(move.source, root)
        if move.action == MoveAction.PLANNED:
            detail = f"-> {display_path(move.destination, root)}"
        else:
            detail = f"({move.message})" if move.message else ""
        lines.append(f"  {move.action.name:<18} {source} {detail}".rstrip())
    return lines


def format_duplicates(groups: Iterable[DuplicateGroup], root: Optional[str] = None) -> List[str]:
    """Original/duplicate listing for every group."""
    lines = []
    for i, group in enumerate(groups, start=1):
        lines.append(
            f"  Group {i} ({group.count} files, {format_size(group.fingerprint.size)} each):"
        )
        lines.append(f"    original:  {display_path(group.canonical.path, root)}")
        for entry in group.duplicates:
            lines.append(f"    duplicate: {display_path(entry.path, root)}")
    return lines


def format_archives(pairs: Iterable[ArchivePair], root: Optional[str] = None) -> List[str]:
    """One line per archive pair."""
    lines = []
    for pair in pairs:
        archive = display_path(pair.archive.path, root)
        candidates = ", ".join(display_path(c, root) for c in pair.candidates)
        if pair.directory is not None:
            lines.append(f"  possibly redundant: {archive} (extracted in {candidates})")
        else:
            lines.append(f"  ambiguous:          {archive} (candidates: {candidates})")
    return lines


def format_analysis(catalog: Catalog, analysis: Analysis) -> str:
    """
    Render a complete text report.

    Args:
        catalog: The scanned catalog (for empty files and scan errors)
        analysis: The result of analyze()

    Returns:
        The report as a single string
    """
    root = catalog.root
    plan = analysis.plan
    groups = analysis.duplicates
    redundant = sum(len(g.duplicates) for g in groups)

    lines = [f"Report for {root}:"]

    lines.append(f"\nMove plan ({len(plan)} entries, {len(plan.planned())} to move):")
    lines.extend(format_plan(plan.moves, root) or ["  (nothing to do)"])

    lines.append(
        f"\n{len(groups)} duplicate group(s), {redundant} duplicate file(s) total"
    )
    lines.extend(format_duplicates(groups, root))

    if analysis.archives:
        lines.append(f"\nArchive pairs ({len(analysis.archives)}):")
        lines.extend(format_archives(analysis.archives, root))

    if catalog.empty_files:
        lines.append("\nEmpty files:")
        lines.extend(f"  {display_path(e.path, root)}" for e in catalog.empty_files)
    else:
        lines.append("\nNo empty files found.")

    errors = list(catalog.errors) + list(analysis.hash_errors)
    if errors:
        lines.append(f"\nUnreadable entries ({len(errors)}, skipped):")
        lines.extend(f"  {display_path(e.path, root)}: {e.message}" for e in errors)

    return "\n".join(lines)


class ReportWriter:
    """
    Streaming CSV report writer.

    Writes entries incrementally to keep memory usage low, suitable for
    trees with hundreds of thousands of files.
    """

    def __init__(
        self,
        report_path: Union[str, Path],
        include_header: bool = True
    ):
        """
        Initialize the report writer.

        Args:
            report_path: Path where the CSV report will be written
            include_header: Whether to write header row (default: True)
        """
        self.report_path = Path(report_path)
        self.include_header = include_header

        self._file: Optional[TextIO] = None
        self._writer = None
        self._row_count = 0
        self._stats: Dict[str, int] = {}

    def __enter__(self):
        """Context manager entry - opens the file."""
        self.open()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Context manager exit - closes the file."""
        self.close()
        return False

    def open(self) -> None:
        """Open the report file for writing."""
        if self._file is not None:
            return  # Already open

        # Ensure parent directory exists
        self.report_path.parent.mkdir(parents=True, exist_ok=True)

        logger.info(f"Opening report file: {self.report_path}")
        self._file = open(self.report_path, "w", newline="", encoding="utf-8")
        self._writer = csv.writer(self._file, quoting=csv.QUOTE_MINIMAL)

        if self.include_header:
            self._writer.writerow(REPORT_COLUMNS)

    def close(self) -> None:
        """Close the report file."""
        if self._file is not None:
            self._file.close()
            self._file = None
            self._writer = None
            logger.info(
                f"Report closed: {self._row_count} rows written to {self.report_path}"
            )

    def _ensure_open(self) -> None:
        """Ensure file is open, open if not."""
        if self._file is None:
            self.open()

    def _get_timestamp(self) -> str:
        """Get current timestamp in ISO format."""
        return datetime.now().strftime("%Y-%m-%d %H:%M:%S")

    def write_parameters(self, params: Dict[str, str]) -> None:
        """
        Write run parameters as rows at the start of the report.

        Parameters are written as rows with kind "parameter"; empty values
        are left out.

        Args:
            params: Dictionary of parameter names to values
        """
        self._ensure_open()

        timestamp = self._get_timestamp()
        for key, value in params.items():
            if value:
                self._writer.writerow([timestamp, KIND_PARAMETER, "PARAMETER", "", "", f"{key}={value}"])
                self._row_count += 1

        self._writer.writerow([timestamp, KIND_PARAMETER, "PARAMETER", "", "", "--- END PARAMETERS ---"])
        self._row_count += 1
        self._file.flush()

    def write_entry(self, entry: ReportEntry) -> None:
        """
        Write a single report entry to the CSV.

        Args:
            entry: The ReportEntry to write
        """
        self._ensure_open()

        self._writer.writerow([
            entry.timestamp,
            entry.kind,
            entry.status,
            entry.source_path,
            entry.dest_path,
            entry.message,
        ])
        self._row_count += 1
        key = f"{entry.kind}:{entry.status}"
        self._stats[key] = self._stats.get(key, 0) + 1

        # Flush periodically for safety
        if self._row_count % 100 == 0:
            self._file.flush()

    def write_planned_move(self, move: PlannedMove, timestamp: Optional[str] = None) -> None:
        """Write one plan entry."""
        self.write_entry(ReportEntry(
            timestamp=timestamp or self._get_timestamp(),
            kind=KIND_PLAN,
            status=move.action.name,
            source_path=move.source,
            dest_path=move.destination or move.existing or "",
            message=move.message,
        ))

    def write_duplicate_group(self, group: DuplicateGroup, timestamp: Optional[str] = None) -> None:
        """Write one row per copy; the canonical copy is marked ORIGINAL."""
        timestamp = timestamp or self._get_timestamp()
        self.write_entry(ReportEntry(
            timestamp=timestamp,
            kind=KIND_DUPLICATE,
            status="ORIGINAL",
            source_path=group.canonical.path,
            dest_path="",
            message=f"{group.count} copies, hash {group.fingerprint.content_hash}",
        ))
        for entry in group.duplicates:
            self.write_entry(ReportEntry(
                timestamp=timestamp,
                kind=KIND_DUPLICATE,
                status="DUPLICATE",
                source_path=entry.path,
                dest_path=group.canonical.path,
                message=f"Duplicate of {group.canonical.path}",
            ))

    def write_archive_pair(self, pair: ArchivePair, timestamp: Optional[str] = None) -> None:
        """Write one row per archive pair; candidates are joined with '|'."""
        if pair.directory is not None:
            message = "Archive appears to be already extracted"
        else:
            message = f"{len(pair.candidates)} candidate folders, not resolved"
        self.write_entry(ReportEntry(
            timestamp=timestamp or self._get_timestamp(),
            kind=KIND_ARCHIVE,
            status=pair.status.name,
            source_path=pair.archive.path,
            dest_path="|".join(pair.candidates),
            message=message,
        ))

    def write_scan_error(self, error: ScanError, timestamp: Optional[str] = None) -> None:
        """Write an entry that was skipped because it could not be read."""
        self.write_entry(ReportEntry(
            timestamp=timestamp or self._get_timestamp(),
            kind=KIND_ERROR,
            status=error.phase.upper() + "_ERROR",
            source_path=error.path,
            dest_path="",
            message=error.message,
        ))

    def write_execution_result(self, result: ExecutionResult, timestamp: Optional[str] = None) -> None:
        """Write the outcome of executing one plan entry."""
        self.write_entry(ReportEntry(
            timestamp=timestamp or self._get_timestamp(),
            kind=KIND_EXECUTION,
            status=result.status.name,
            source_path=result.source,
            dest_path=result.destination or "",
            message=result.message,
        ))

    def write_analysis(self, catalog: Catalog, analysis: Analysis) -> None:
        """Write every plan entry, duplicate group, archive pair and error."""
        timestamp = self._get_timestamp()
        for move in analysis.plan.moves:
            self.write_planned_move(move, timestamp)
        for group in analysis.duplicates:
            self.write_duplicate_group(group, timestamp)
        for pair in analysis.archives:
            self.write_archive_pair(pair, timestamp)
        for error in list(catalog.errors) + list(analysis.hash_errors):
            self.write_scan_error(error, timestamp)

    def get_stats(self) -> Dict[str, int]:
        """
        Get statistics about written entries.

        Returns:
            Dictionary mapping "kind:status" to count
        """
        return dict(self._stats)

    def get_row_count(self) -> int:
        """Get total number of rows written."""
        return self._row_count

    def get_summary(self) -> str:
        """
        Get a human-readable summary of the report.

        Returns:
            Formatted summary string
        """
        lines = [f"Report Summary ({self._row_count} total entries):"]

        planned = self._stats.get("plan:PLANNED", 0)
        if planned:
            lines.append(f"  Planned moves: {planned}")

        already = self._stats.get("plan:ALREADY_SORTED", 0)
        if already:
            lines.append(f"  Already sorted: {already}")

        skipped_dup = self._stats.get("plan:SKIPPED_DUPLICATE", 0)
        skipped_conflict = self._stats.get("plan:SKIPPED_CONFLICT", 0)
        if skipped_dup or skipped_conflict:
            lines.append(f"  Skipped: {skipped_dup + skipped_conflict}")
            if skipped_dup:
                lines.append(f"    (duplicates: {skipped_dup})")
            if skipped_conflict:
                lines.append(f"    (conflicts: {skipped_conflict})")

        duplicates = self._stats.get("duplicate:DUPLICATE", 0)
        if duplicates:
            lines.append(f"  Duplicate copies: {duplicates}")

        archives = sum(v for k, v in self._stats.items() if k.startswith(KIND_ARCHIVE + ":"))
        if archives:
            lines.append(f"  Archive pairs: {archives}")

        executed = self._stats.get("execution:EXECUTED", 0)
        if executed:
            lines.append(f"  Moved: {executed}")

        failed = self._stats.get("execution:FAILED", 0)
        if failed:
            lines.append(f"  Failed moves: {failed}")

        errors = sum(v for k, v in self._stats.items() if k.startswith(KIND_ERROR + ":"))
        if errors:
            lines.append(f"  Errors: {errors}")

        return "\n".join(lines)


def generate_report(
    catalog: Catalog,
    analysis: Analysis,
    report_path: Union[str, Path],
    results: Optional[List[ExecutionResult]] = None
) -> ReportWriter:
    """
    Generate a complete CSV report from in-memory results.

    This is a convenience function; for streaming, use ReportWriter directly.

    Args:
        catalog: The scanned catalog
        analysis: The result of analyze()
        report_path: Path for the CSV report
        results: Optional execution results to append

    Returns:
        The ReportWriter used (for accessing stats)
    """
    with ReportWriter(report_path) as writer:
        writer.write_analysis(catalog, analysis)

        timestamp = writer._get_timestamp()
        for result in results or []:
            writer.write_execution_result(result, timestamp)

        logger.info(writer.get_summary())
        return writer
