"""Command-line interface for upstream sync.

Commands:
    detect   List available upstream versions
    diff     Show what changed upstream (never writes)
    sync     Apply upstream changes (--dry-run to preview)
    status   Show the persisted baseline summary

Exit status: 0 on success, 1 on a fatal error (bad configuration, missing
tree, unknown version), 2 when a sync left errors, unresolved conflicts
or failed verification.
"""

import argparse
import json
import logging
import sys
from pathlib import Path

from dotenv import load_dotenv

from . import __version__
from .config_loader import load_hierarchical_config
from .config_schema import build_config, to_runtime_config
from .logger import setup_logging
from .sync.engine import UpstreamSyncEngine
from .sync.models import ConflictStrategy, FileStatus, SyncOptions
from .sync.releases import UnknownVersionError
from .sync.reporter import (
    detect_to_json,
    diff_report_to_json,
    format_conflict_diff,
    format_detect,
    format_diff_report,
    format_status,
    format_sync_run,
    status_to_json,
    sync_run_to_json,
)

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_FATAL = 1
EXIT_INCOMPLETE = 2


def _common_parser() -> argparse.ArgumentParser:
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument("--config", help="Extra YAML config file")
    common.add_argument("--local-dir", help="Root of the local installation")
    common.add_argument("--releases-dir", help="Directory of upstream releases")
    common.add_argument("--state-file", help="Baseline state file")
    common.add_argument("--backup-dir", help="Root of per-run backups")
    common.add_argument(
        "--json", action="store_true", help="Print machine-readable JSON"
    )
    common.add_argument(
        "--debug", action="store_true", help="Enable debug logging"
    )
    common.add_argument("--log-file", help="Also write logs to this file")
    common.add_argument(
        "--log-format",
        choices=["text", "json"],
        help="Log line format (default: from config, else text)",
    )
    return common


def _filter_parser() -> argparse.ArgumentParser:
    filters = argparse.ArgumentParser(add_help=False)
    filters.add_argument(
        "--category",
        help="Only paths whose first segment matches ('root' for top-level files)",
    )
    filters.add_argument("--path", help="Only paths containing this substring")
    filters.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Per-file logging and unified diffs for conflicts",
    )
    return filters


def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser for all subcommands."""
    common = _common_parser()
    filters = _filter_parser()

    parser = argparse.ArgumentParser(
        prog="upstream-sync",
        description="Selectively apply upstream releases to a customized installation",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  upstream-sync detect
  upstream-sync diff v2.4 --category hooks
  upstream-sync sync --dry-run
  upstream-sync sync v2.4 --conflict keep-local
  upstream-sync sync --bootstrap v2.3
  upstream-sync status --json
        """,
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"upstream-sync version {__version__}",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser(
        "detect", parents=[common], help="List available upstream versions"
    )

    diff = sub.add_parser(
        "diff", parents=[common, filters], help="Show classified changes"
    )
    diff.add_argument("version", nargs="?", help="Upstream version (default: latest)")
    diff.add_argument(
        "--show-orphans",
        action="store_true",
        help="Also list local-only files",
    )

    sync = sub.add_parser(
        "sync", parents=[common, filters], help="Apply upstream changes"
    )
    sync.add_argument("version", nargs="?", help="Upstream version (default: latest)")
    sync.add_argument(
        "--dry-run",
        action="store_true",
        help="Preview changes without touching disk",
    )
    sync.add_argument(
        "--conflict",
        choices=[s.value for s in ConflictStrategy],
        help="How to treat files changed on both sides (default: from config, else skip)",
    )
    sync.add_argument(
        "--bootstrap",
        action="store_true",
        help="Seed the baseline from the current installation and exit",
    )

    sub.add_parser(
        "status", parents=[common], help="Show sync history and baseline"
    )
    return parser


def _emit(args: argparse.Namespace, text: str, data: dict) -> None:
    if args.json:
        print(json.dumps(data, indent=2))
    else:
        print(text)


def _print_conflict_diffs(
    engine: UpstreamSyncEngine, version: str, paths: list[str]
) -> None:
    if not paths:
        return
    upstream_dir = engine.releases.upstream_path(version)
    for rel in paths:
        print()
        print(format_conflict_diff(rel, upstream_dir, engine.local_dir))


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


def cmd_detect(engine: UpstreamSyncEngine, args: argparse.Namespace) -> int:
    versions, state = engine.detect()
    _emit(args, format_detect(versions, state), detect_to_json(versions, state))
    return EXIT_OK


def cmd_diff(engine: UpstreamSyncEngine, args: argparse.Namespace) -> int:
    report = engine.diff(
        args.version,
        category=args.category,
        path_contains=args.path,
        include_orphans=args.show_orphans,
    )
    _emit(args, format_diff_report(report), diff_report_to_json(report))
    if args.verbose and not args.json:
        _print_conflict_diffs(
            engine,
            report.upstream_version,
            [e.relative_path for e in report.with_status(FileStatus.CONFLICT)],
        )
    return EXIT_OK


def cmd_sync(
    engine: UpstreamSyncEngine,
    args: argparse.Namespace,
    default_strategy: ConflictStrategy,
) -> int:
    if args.bootstrap:
        state = engine.bootstrap(args.version)
        text = (
            f"Baseline established from {state.last_synced_version}: "
            f"{len(state.files)} files tracked.\n"
            f"State saved to: {engine.store.path}"
        )
        _emit(
            args,
            text,
            {
                "version": state.last_synced_version,
                "files_tracked": len(state.files),
                "state_file": str(engine.store.path),
            },
        )
        return EXIT_OK

    options = SyncOptions(
        dry_run=args.dry_run,
        conflict_strategy=(
            ConflictStrategy(args.conflict)
            if args.conflict
            else default_strategy
        ),
        verbose=args.verbose,
    )
    run = engine.sync(
        args.version,
        options,
        category=args.category,
        path_contains=args.path,
    )
    _emit(args, format_sync_run(run), sync_run_to_json(run))
    if args.verbose and not args.json:
        _print_conflict_diffs(engine, run.version, run.result.conflicts)
    return EXIT_OK if run.succeeded else EXIT_INCOMPLETE


def cmd_status(engine: UpstreamSyncEngine, args: argparse.Namespace) -> int:
    state, latest = engine.status()
    _emit(args, format_status(state, latest), status_to_json(state, latest))
    return EXIT_OK


# ---------------------------------------------------------------------------
# Entry points
# ---------------------------------------------------------------------------


def main(argv: list[str] | None = None) -> int:
    """Parse *argv*, run one command, and return the exit status."""
    args = build_parser().parse_args(argv)
    load_dotenv()

    try:
        raw = load_hierarchical_config(
            Path(args.config) if args.config else None
        )
        unified = build_config(raw)
        config = to_runtime_config(
            unified,
            cli_overrides={
                "local_dir": args.local_dir,
                "releases_dir": args.releases_dir,
                "state_file": args.state_file,
                "backup_dir": args.backup_dir,
                "debug": args.debug,
            },
        )
    except (ValueError, FileNotFoundError) as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return EXIT_FATAL

    setup_logging(
        mode="cli",
        debug=args.debug,
        log_file=args.log_file or unified.logging.file,
        log_format=args.log_format or unified.logging.format,
        level=unified.logging.level,
    )

    try:
        engine = UpstreamSyncEngine.from_config(config)
        match args.command:
            case "detect":
                return cmd_detect(engine, args)
            case "diff":
                return cmd_diff(engine, args)
            case "sync":
                return cmd_sync(engine, args, config.conflict_strategy)
            case "status":
                return cmd_status(engine, args)
            case _:
                raise ValueError(f"Unknown command: {args.command}")
    except (UnknownVersionError, ValueError) as e:
        # ValueError covers InvalidTreeError and a malformed publish manifest
        logger.debug("Fatal error", exc_info=True)
        print(f"Error: {e}", file=sys.stderr)
        return EXIT_FATAL


def run() -> None:
    """Console script entry point."""
    try:
        sys.exit(main())
    except KeyboardInterrupt:
        print("\nInterrupted.", file=sys.stderr)
        sys.exit(130)


if __name__ == "__main__":
    run()
