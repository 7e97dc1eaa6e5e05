"""
Command-line interface for the TestRail synchronization tool.
"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import TYPE_CHECKING

from . import testrail_utils as tru
from .context import DEFAULT_COMPARE_FIELD, DEFAULT_LOG_DIR, DEFAULT_WORKERS, MigrationContext
from .exceptions import SyncError
from .export import write_run_summary
from .orchestrator import StageResult, SyncOrchestrator
from .utils import PassError, setup_logging

if TYPE_CHECKING:
    from collections.abc import Sequence

logger: logging.Logger = logging.getLogger(__name__)

COMMANDS: dict[str, str] = {
    "suites": "Copy suites missing from the destination project",
    "sections": "Copy sections missing from the destination suite",
    "shared-steps": "Copy shared steps not used by source cases and missing from the destination",
    "cases": "Copy cases missing from the destination suite, rewriting shared step references",
    "full": "Run suites, sections, shared-steps and cases in that order",
}


def _common_arguments() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(add_help=False)

    _ = parser.add_argument("--src-project", type=int, required=True, help="Source project ID")
    _ = parser.add_argument("--src-suite", type=int, required=True, help="Source suite ID")
    _ = parser.add_argument("--dst-project", type=int, required=True, help="Destination project ID")
    _ = parser.add_argument("--dst-suite", type=int, required=True, help="Destination suite ID")

    _ = parser.add_argument(
        "--compare-field",
        default=DEFAULT_COMPARE_FIELD,
        help=f"Field used to detect duplicate shared steps and cases (default: {DEFAULT_COMPARE_FIELD})",
    )
    _ = parser.add_argument("--dry-run", action="store_true", help="Fetch and compare only, create nothing")
    _ = parser.add_argument("--approve", "-y", action="store_true", help="Import without asking for confirmation")
    _ = parser.add_argument(
        "--save-mapping", "-m", action="store_true", help="Save the source -> destination ID mapping when done"
    )
    _ = parser.add_argument("--mapping-file", help="Mapping file from a previous run, used to rewrite references")
    _ = parser.add_argument(
        "--export", action="store_true", help="Write fetched and filtered entities to the log directory"
    )
    _ = parser.add_argument(
        "--log-dir", default=str(DEFAULT_LOG_DIR), help=f"Directory for logs and exports (default: {DEFAULT_LOG_DIR})"
    )
    _ = parser.add_argument(
        "--workers",
        type=int,
        default=DEFAULT_WORKERS,
        help=f"Maximum concurrent create requests, 0 for unlimited (default: {DEFAULT_WORKERS})",
    )

    _ = parser.add_argument("--url", help="TestRail base URL (default: $TESTRAIL_URL)")
    _ = parser.add_argument("--username", help="TestRail user email (default: $TESTRAIL_USERNAME)")
    _ = parser.add_argument(
        "--api-key-pass", help="Path for the API key in pass utility (default: $TESTRAIL_API_KEY or testrail/api_key)"
    )
    _ = parser.add_argument("--insecure", action="store_true", help="Skip TLS certificate verification")

    _ = parser.add_argument(
        "--verbose", "-v", action="count", default=0, help="Increase console verbosity (-v info, -vv debug)"
    )
    return parser


def parse_arguments(argv: Sequence[str] | None = None) -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        prog="testrail-sync",
        description="Copy TestRail suites, sections, shared steps and cases between projects without duplicates",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)
    common = _common_arguments()
    for name, help_text in COMMANDS.items():
        _ = subparsers.add_parser(name, parents=[common], help=help_text, description=help_text)
    return parser.parse_args(argv)


def _confirm_import(stage: StageResult) -> bool:
    """Ask on stdin whether the novel items of a stage should be imported."""
    try:
        answer = input(f"Import {len(stage.novel)} new {stage.entity_type}? [y/N]: ")
    except EOFError:
        return False
    return answer.strip().lower() in {"y", "yes"}


def _print_stage_report(stage: StageResult) -> None:
    print(f"\n{stage.entity_type.capitalize()}:")
    print(f"  Source: {stage.source_count}, destination: {stage.destination_count}")
    if stage.excluded:
        print(f"  In use by source cases (skipped): {stage.excluded}")
    print(f"  Already present: {stage.duplicates}")
    print(f"  New: {len(stage.novel)}")

    if stage.dry_run:
        print("  Dry run: nothing imported")
        return
    if stage.cancelled:
        print("  Cancelled: nothing imported")
        return

    report = stage.report
    print(f"  Imported: {report.imported}")
    if report.errors:
        print(f"  Failed: {report.failed}")
        for error in report.errors:
            print(f"    - {error}")


def _run(args: argparse.Namespace) -> None:
    client = tru.get_client(args.url, args.username, args.api_key_pass, verify=not args.insecure)
    workers: int | None = args.workers if args.workers > 0 else None

    with MigrationContext(
        client,
        args.src_project,
        args.src_suite,
        args.dst_project,
        args.dst_suite,
        compare_field=args.compare_field,
        log_dir=args.log_dir,
        workers=workers,
    ) as ctx:
        if args.mapping_file:
            added = ctx.load_mapping(Path(args.mapping_file))
            print(f"Loaded mapping: {added} pairs")
        elif args.command == "cases":
            print("Warning: no mapping file loaded, shared step references will not be rewritten")

        orchestrator = SyncOrchestrator(
            ctx,
            dry_run=args.dry_run,
            confirm=None if args.approve else _confirm_import,
            export_snapshots=args.export,
            save_mapping=args.save_mapping,
        )

        stages: list[StageResult]
        if args.command == "full":
            stages = orchestrator.migrate_full().stages
        else:
            migrate = {
                "suites": orchestrator.migrate_suites,
                "sections": orchestrator.migrate_sections,
                "shared-steps": orchestrator.migrate_shared_steps,
                "cases": orchestrator.migrate_cases,
            }[args.command]
            stages = [migrate()]

        for stage in stages:
            _print_stage_report(stage)

        if args.command == "cases":
            cases = stages[0]
            summary = write_run_summary(
                ctx.log_dir,
                "sync_cases",
                matches=cases.duplicates,
                filtered=len(cases.novel),
                errors=cases.report.errors,
                mapping=orchestrator.mapping(),
            )
            print(f"\nSummary saved: {summary}")

        if orchestrator.mapping_file:
            print(f"Mapping saved: {orchestrator.mapping_file}")
        print(f"\nCreated {ctx.imported} entities")


def main(argv: Sequence[str] | None = None) -> None:
    """Main entry point."""
    args = parse_arguments(argv)

    verbosity: int = getattr(args, "verbose", 0)
    setup_logging(verbosity=verbosity)

    try:
        _run(args)
    except (SyncError, PassError, OSError):
        logger.exception("Synchronization failed")
        sys.exit(1)

    sys.exit(0)
