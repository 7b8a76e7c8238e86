"""
Command-line interface for the sorty application.

This module is responsible for:
- Parsing command-line arguments using argparse
- Configuring logging based on verbosity level
- Building the run configuration from a YAML file and CLI overrides
- Orchestrating scan, analyze and (optionally) execute
- Displaying the report and results to the user
"""

import argparse
import logging
import sys
import threading
import time
from datetime import datetime
from pathlib import Path
from typing import Dict, List, Optional

from . import __version__, PRODUCT_NAME, PRODUCT_DESCRIPTION
from .config import DUPLICATES_ACTIONS, OrganizerConfig, load_config, load_rules_file
from .core import analyze, scan
from .errors import ConfigError, OperationCancelled
from .executor import PlanExecutor
from .report import ReportWriter, format_analysis
from .rules import MATCHERS
from .types import Analysis, Catalog, ExecutionResult, MoveAction

logger = logging.getLogger(__name__)


def create_parser() -> argparse.ArgumentParser:
    """Create and configure the argument parser."""
    parser = argparse.ArgumentParser(
        prog="sorty",
        description=f"""
{PRODUCT_NAME} - {PRODUCT_DESCRIPTION}

Scan ROOT, report duplicate files and archives that were already
extracted, and plan how to sort files into category folders under ROOT.

Nothing is moved unless --execute is given. Files are never deleted.
        """.strip(),
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Show the plan for the current directory
  %(prog)s .

  # Include subdirectories and write a CSV report
  %(prog)s ~/Downloads -r --report sorty.csv

  # Use custom rules
  %(prog)s ~/Downloads --rules rules.yaml

  # Preview execution without moving anything
  %(prog)s ~/Downloads --execute --dry-run

  # Sort for real, moving duplicates to _DUPLICATES/
  %(prog)s ~/Downloads --execute --duplicates-action quarantine

Notes:
  - Duplicates are detected by size, then by content hash
  - The earliest-modified copy of a duplicate set is kept as the original
  - Name collisions get _1, _2, etc. before the extension
  - Existing files at a destination are never overwritten
        """
    )

    # Positional arguments
    parser.add_argument(
        "root",
        type=Path,
        nargs="?",
        default=Path("."),
        help="Directory to scan (default: current directory)"
    )

    # Scan options
    parser.add_argument(
        "-r", "--recursive",
        action="store_true",
        default=None,
        help="Traverse subdirectories"
    )
    parser.add_argument(
        "--exclude-pattern",
        type=str,
        action="append",
        default=[],
        dest="exclude_patterns",
        metavar="PATTERN",
        help="Skip names matching pattern (glob or substring). Can be specified multiple times."
    )

    # Configuration
    parser.add_argument(
        "-c", "--config",
        type=Path,
        default=None,
        metavar="YAML",
        help="YAML config file (rules and options)"
    )
    parser.add_argument(
        "--rules",
        type=Path,
        default=None,
        metavar="YAML",
        help="YAML file with classification rules (overrides rules from --config)"
    )
    parser.add_argument(
        "--workers",
        type=int,
        default=None,
        metavar="N",
        help="Maximum concurrent hashing threads (default: 4)"
    )
    parser.add_argument(
        "--read-timeout",
        type=float,
        default=None,
        metavar="SECS",
        help="Give up hashing a file after SECS seconds (for network mounts)"
    )
    parser.add_argument(
        "--duplicates-action",
        type=str,
        choices=DUPLICATES_ACTIONS,
        default=None,
        dest="duplicates_action",
        metavar="ACTION",
        help="Duplicates: 'skip' (leave in place, default) or 'quarantine' (plan into _DUPLICATES/)"
    )
    parser.add_argument(
        "--matcher",
        type=str,
        choices=MATCHERS,
        default=None,
        metavar="ALGO",
        help="Keyword rule matching: 'bucket' (default) or 'aho' (Aho-Corasick)"
    )

    # Execution
    parser.add_argument(
        "--execute",
        action="store_true",
        help="Perform the planned moves"
    )
    parser.add_argument(
        "-n", "--dry-run", "--whatif",
        action="store_true",
        dest="dry_run",
        help="With --execute, go through the moves without performing them"
    )
    parser.add_argument(
        "-y", "--yes",
        action="store_true",
        help="Skip confirmation prompt (use with caution)"
    )
    parser.add_argument(
        "--max-moves",
        type=int,
        default=None,
        metavar="N",
        help="Limit to first N move operations (for safe testing)"
    )

    # Report options
    parser.add_argument(
        "--report",
        type=Path,
        default=None,
        metavar="CSV_FILE",
        help="Write a CSV report of the plan, duplicates and results"
    )
    parser.add_argument(
        "-q", "--quiet",
        action="store_true",
        help="Only print the summary, not the full report"
    )

    # Verbosity
    parser.add_argument(
        "-v", "--verbose",
        action="count",
        default=0,
        help="Increase output verbosity (-v for INFO, -vv for DEBUG)"
    )
    parser.add_argument(
        "--version",
        action="version",
        version=__version__
    )

    return parser


def setup_logging(verbosity: int) -> None:
    """Configure logging based on verbosity level."""
    if verbosity >= 2:
        level = logging.DEBUG
    elif verbosity >= 1:
        level = logging.INFO
    else:
        level = logging.WARNING

    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S"
    )


def validate_paths(args: argparse.Namespace) -> bool:
    """Validate that required paths exist."""
    errors = []

    if not args.root.exists():
        errors.append(f"Root not found: {args.root}")
    elif not args.root.is_dir():
        errors.append(f"Root is not a directory: {args.root}")

    for option, path in (("--config", args.config), ("--rules", args.rules)):
        if path is not None and not path.exists():
            errors.append(f"{option} file not found: {path}")

    for error in errors:
        logger.error(error)
        print(f"Error: {error}", file=sys.stderr)

    return len(errors) == 0


def build_config(args: argparse.Namespace) -> OrganizerConfig:
    """
    Build the run configuration: YAML config, then rules file, then flags.

    Raises:
        ConfigError: If any part of the configuration is invalid
    """
    config = load_config(args.config) if args.config else OrganizerConfig()

    rules = load_rules_file(args.rules) if args.rules else None
    exclude = tuple(config.exclude_patterns) + tuple(args.exclude_patterns)

    return config.with_overrides(
        rules=rules,
        recursive=args.recursive,
        exclude_patterns=exclude if args.exclude_patterns else None,
        max_workers=args.workers,
        read_timeout=args.read_timeout,
        duplicates_action=args.duplicates_action,
        matcher=args.matcher,
    )


def get_run_parameters(args: argparse.Namespace, config: OrganizerConfig) -> Dict[str, str]:
    """
    Get run parameters as a dictionary for traceability.

    Args:
        args: Parsed command-line arguments
        config: The effective configuration

    Returns:
        Dictionary of parameter names to values
    """
    return {
        "version": __version__,
        "timestamp": datetime.now().isoformat(),
        "root": str(args.root.resolve()),
        "config": str(args.config.resolve()) if args.config else "",
        "rules": str(args.rules.resolve()) if args.rules else "",
        "rule_count": str(len(config.rules)),
        "recursive": str(config.recursive),
        "exclude_patterns": ",".join(config.exclude_patterns),
        "max_workers": str(config.max_workers),
        "read_timeout": str(config.read_timeout) if config.read_timeout else "",
        "duplicates_action": config.duplicates_action,
        "matcher": config.matcher,
        "execute": str(args.execute),
        "dry_run": str(args.dry_run),
        "max_moves": str(args.max_moves) if args.max_moves else "",
    }


def confirm_operation(total_moves: int, root: Path) -> bool:
    """
    Prompt user to confirm the move operation.

    Args:
        total_moves: Number of files to be moved
        root: The directory being sorted

    Returns:
        True if user confirms, False otherwise
    """
    print(f"\n{'!'*60}")
    print("CONFIRMATION REQUIRED")
    print(f"{'!'*60}")
    print(f"\nYou are about to MOVE {total_moves} file(s) into category folders under:")
    print(f"  {root}")
    print("\nUse --dry-run to preview changes first.")
    print(f"{'!'*60}\n")

    try:
        response = input("Type 'yes' to proceed, or anything else to cancel: ")
        return response.strip().lower() == "yes"
    except EOFError:
        # Non-interactive environment
        return False


def print_banner(args: argparse.Namespace, config: OrganizerConfig) -> None:
    """Print startup banner with configuration."""
    print(f"\n{'='*60}")
    print(f"{PRODUCT_NAME}")
    print(f"Version {__version__}")
    print(f"{PRODUCT_DESCRIPTION}")
    print(f"{'='*60}")
    print(f"Root:         {args.root}")
    print(f"Rules:        {len(config.rules)}" + (f" (from {args.rules})" if args.rules else ""))
    print(f"Recursive:    {'yes' if config.recursive else 'no'}")

    if not args.execute:
        print("Mode:         PLAN ONLY (no changes will be made)")
    elif args.dry_run:
        print("Mode:         DRY RUN (no changes will be made)")
    else:
        print("Mode:         LIVE (files will be moved)")

    if args.report:
        print(f"Report:       {args.report}")
    if config.exclude_patterns:
        print(f"Exclusions:   {', '.join(config.exclude_patterns)}")
    if config.duplicates_action != "skip":
        print(f"Duplicates:   {config.duplicates_action}")
    if args.max_moves:
        print(f"Limits:       Moves: {args.max_moves}")

    print(f"{'='*60}\n")


def print_summary(
    catalog: Catalog,
    analysis: Analysis,
    exec_stats: Optional[Dict[str, int]],
    dry_run: bool,
    elapsed: Optional[float] = None
) -> None:
    """Print final summary of operations."""
    grouped = analysis.plan.by_action()
    redundant = sum(len(g.duplicates) for g in analysis.duplicates)
    wasted = sum(g.wasted_bytes for g in analysis.duplicates)

    print(f"\n{'='*60}")
    print("SUMMARY")
    print(f"{'='*60}")

    print(f"\nScan:")
    print(f"  Files scanned:         {len(catalog.entries)}")
    print(f"  Empty files:           {len(catalog.empty_files)}")
    errors = len(catalog.errors) + len(analysis.hash_errors)
    if errors:
        print(f"  Unreadable (skipped):  {errors}")

    print(f"\nAnalysis:")
    print(f"  Duplicate groups:      {len(analysis.duplicates)}")
    if redundant:
        print(f"    (redundant copies:   {redundant}, {wasted} bytes)")
    print(f"  Archive pairs:         {len(analysis.archives)}")

    print(f"\nPlan:")
    print(f"  To move:               {len(grouped[MoveAction.PLANNED])}")
    renamed = sum(1 for m in grouped[MoveAction.PLANNED] if m.renamed)
    if renamed:
        print(f"    (with rename:        {renamed})")
    print(f"  Already sorted:        {len(grouped[MoveAction.ALREADY_SORTED])}")
    print(f"  Skipped duplicates:    {len(grouped[MoveAction.SKIPPED_DUPLICATE])}")
    print(f"  Skipped conflicts:     {len(grouped[MoveAction.SKIPPED_CONFLICT])}")

    if exec_stats is not None:
        print(f"\nExecution:")
        if dry_run:
            print(f"  Would move:            {exec_stats.get('dry_run', 0)}")
        else:
            print(f"  Moved:                 {exec_stats.get('executed', 0)}")
        if exec_stats.get("cancelled", 0):
            print(f"  Not attempted:         {exec_stats.get('cancelled', 0)}")
        if exec_stats.get("failed", 0):
            print(f"  Failed:                {exec_stats.get('failed', 0)}")

    if elapsed is not None:
        print(f"\nElapsed: {elapsed:.3f} s")
    print(f"{'='*60}\n")


def write_report(
    path: Path,
    params: Dict[str, str],
    catalog: Catalog,
    analysis: Analysis,
    results: List[ExecutionResult]
) -> int:
    """Write the CSV report and return the number of rows written."""
    with ReportWriter(path) as writer:
        writer.write_parameters(params)
        writer.write_analysis(catalog, analysis)
        for result in results:
            writer.write_execution_result(result)
        return writer.get_row_count()


def main(argv: list = None) -> int:
    """
    Main entry point for the CLI.

    Args:
        argv: Command-line arguments (defaults to sys.argv[1:])

    Returns:
        Exit code (0 for success, 1 for errors, 2 if some moves failed)
    """
    parser = create_parser()
    args = parser.parse_args(argv)

    setup_logging(args.verbose)

    logger.info(f"{PRODUCT_NAME} v{__version__}")
    logger.debug(f"Arguments: {args}")

    # Validate paths before proceeding
    if not validate_paths(args):
        return 1

    cancel_event = threading.Event()

    try:
        config = build_config(args)

        run_params = get_run_parameters(args, config)
        logger.info("Run parameters:")
        for key, value in run_params.items():
            if value:  # Only log non-empty values
                logger.info(f"  {key}: {value}")

        print_banner(args, config)

        # Step 1: Scan
        print("Step 1: Scanning files...")
        started = time.monotonic()
        catalog = scan(args.root, config, cancel_event)
        print(f"  Found {len(catalog.entries)} files, {len(catalog.directories)} folders")

        # Step 2: Analyze
        print("\nStep 2: Analyzing (duplicates, archives, move plan)...")
        analysis = analyze(catalog, config, cancel_event)
        elapsed = time.monotonic() - started
        print(f"  Planned moves: {len(analysis.plan.planned())}")

        if not args.quiet:
            print()
            print(format_analysis(catalog, analysis))

        # Step 3: Execute (optional)
        results: List[ExecutionResult] = []
        exec_stats: Optional[Dict[str, int]] = None
        planned = len(analysis.plan.planned())

        if args.execute and planned > 0:
            if not args.dry_run and not args.yes:
                if not confirm_operation(planned, args.root):
                    print("\nOperation cancelled by user.")
                    logger.info("Operation cancelled by user at confirmation prompt")
                    return 0
            elif args.yes:
                logger.info("Confirmation skipped (--yes flag)")

            mode_str = "DRY RUN" if args.dry_run else "Moving"
            print(f"\nStep 3: {mode_str} {planned} files...")

            executor = PlanExecutor(
                dry_run=args.dry_run,
                max_moves=args.max_moves,
                cancel_event=cancel_event
            )
            results = executor.execute(analysis.plan)
            exec_stats = executor.get_stats()
            print(executor.get_summary())

        # Report
        if args.report:
            print(f"\nWriting report to {args.report}...")
            rows = write_report(args.report, run_params, catalog, analysis, results)
            print(f"  Wrote {rows} entries")

        print_summary(catalog, analysis, exec_stats, args.dry_run, elapsed)

        if args.report:
            print(f"Report saved to: {args.report}")

        # Return error code if there were failed moves
        if exec_stats and exec_stats.get("failed", 0) > 0:
            return 2

        return 0

    except ConfigError as e:
        print(f"\nConfig error: {e}", file=sys.stderr)
        logger.error(f"Config error: {e}")
        return 1

    except (FileNotFoundError, NotADirectoryError) as e:
        print(f"\nError: {e}", file=sys.stderr)
        logger.error(f"File not found: {e}")
        return 1

    except (KeyboardInterrupt, OperationCancelled):
        cancel_event.set()
        print("\n\nOperation cancelled by user.", file=sys.stderr)
        return 130

    except Exception as e:
        print(f"\nUnexpected error: {e}", file=sys.stderr)
        logger.exception("Unexpected error")
        return 1


if __name__ == "__main__":
    sys.exit(main())
