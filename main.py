#!/usr/bin/env python3
"""
Main entry point for wp-migrate.

Provides a command-line interface for importing backup archives into a
WordPress installation, rolling back imports and exporting native backups.
"""
from typing import List, Optional
import argparse
import logging
import signal
import sys
from pathlib import Path

from wp_migrate import __version__
from wp_migrate.archive.registry import AdapterRegistry
from wp_migrate.config import get_config, Config
from wp_migrate.errors import ConfirmationError, MigrationError
from wp_migrate.exporter import export_site
from wp_migrate.importer import ImportOptions, ImportOrchestrator
from wp_migrate.logger_config import TRACE, setup_logging
from wp_migrate.rollback import rollback
from wp_migrate.snapshot import list_snapshots
from wp_migrate.transport import LocalTransport
from wp_migrate.utils import Colors, format_bytes, make_stamp
from wp_migrate.wpcli import WpCli

# Setup logging
setup_logging(level=logging.INFO)

logger = logging.getLogger("wp_migrate.cli")


def print_section(title: str) -> None:
    """Print a formatted section title."""
    print(f"\n{Colors.BOLD}{Colors.HEADER}{'=' * 60}{Colors.ENDC}")
    print(f"{Colors.BOLD}{Colors.HEADER}{title}{Colors.ENDC}")
    print(f"{Colors.BOLD}{Colors.HEADER}{'=' * 60}{Colors.ENDC}\n")


def _parse_args(argv: List[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="wp-migrate",
        description="Import a WordPress backup archive into an existing installation.",
    )
    mode = parser.add_mutually_exclusive_group()
    mode.add_argument("--archive", help="Backup archive (zip, tar.gz or extracted directory) to import.")
    mode.add_argument(
        "--duplicator-archive",
        metavar="PATH",
        help="Alias for --archive PATH --archive-type duplicator.",
    )
    mode.add_argument(
        "--rollback",
        action="store_true",
        help="Restore the newest snapshot (or the one named by --snapshot).",
    )
    mode.add_argument("--list-snapshots", action="store_true", help="List available snapshots.")
    mode.add_argument("--export", metavar="OUTPUT", help="Write a native backup zip of this site.")

    parser.add_argument(
        "--archive-type",
        default=None,
        help="Skip detection and use this format (it must still validate).",
    )
    parser.add_argument("--snapshot", metavar="STAMP", help="Snapshot to restore with --rollback.")
    parser.add_argument("--dry-run", action="store_true", help="Show the plan without changing anything.")
    parser.add_argument("--yes", action="store_true", help="Skip confirmation prompts.")
    parser.add_argument("--verbose", action="store_true", help="Log debug output.")
    parser.add_argument("--trace", action="store_true", help="Also log every external command.")
    parser.add_argument("--wp-path", default=None, help="WordPress root (default: current directory).")
    parser.add_argument(
        "--no-search-replace",
        action="store_true",
        help="Do not rewrite imported URLs to the destination's; only report the mismatch.",
    )
    parser.add_argument(
        "--preserve-dest-plugins",
        action="store_true",
        help="Keep destination plugins/themes that are missing from the archive (deactivated).",
    )
    parser.add_argument(
        "--stellarsites",
        action="store_true",
        help="Managed-host mode: keep mu-plugins and preserve destination plugins/themes.",
    )
    parser.add_argument("--log-file", default=None, help="Write the log to this file.")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")

    args = parser.parse_args(argv)
    if args.duplicator_archive:
        if args.archive_type and args.archive_type != "duplicator":
            parser.error("--duplicator-archive cannot be combined with another --archive-type")
        args.archive = args.duplicator_archive
        args.archive_type = "duplicator"
    if not (args.archive or args.rollback or args.list_snapshots or args.export):
        parser.error("one of --archive, --rollback, --list-snapshots or --export is required")
    return args


def _log_level(args: argparse.Namespace) -> Optional[int]:
    if args.trace:
        return TRACE
    if args.verbose:
        return logging.DEBUG
    return None


def _log_file(args: argparse.Namespace, config: Config, stamp: str) -> Optional[str]:
    if args.log_file:
        return args.log_file
    if args.archive and not args.dry_run:
        return str(config.log_file_for(stamp))
    return None


def confirm(prompt: str) -> bool:
    """Ask on the terminal; refuse when stdin is not interactive."""
    if not sys.stdin.isatty():
        raise ConfirmationError(
            "Interactive confirmation required but stdin is not a terminal.\n"
            "  1. Add --yes to skip confirmation (recommended for automation)\n"
            "  2. Use --dry-run to preview without confirmation"
        )
    reply = input(prompt)
    return reply.strip().lower() in ("y", "yes")


def _handle_sigterm(signum, frame) -> None:
    raise SystemExit(128 + signum)


def _run_import(args: argparse.Namespace, config: Config, commands: WpCli, stamp: str) -> int:
    registry = AdapterRegistry()
    if args.archive_type:
        # Raises ValidationError listing the available types.
        registry.get(args.archive_type)

    options = ImportOptions(
        archive=Path(args.archive),
        archive_type=args.archive_type,
        dry_run=args.dry_run,
        assume_yes=args.yes,
        search_replace=not args.no_search_replace,
        preserve_plugins=args.preserve_dest_plugins,
        stellarsites=args.stellarsites,
    )
    orchestrator = ImportOrchestrator(
        commands,
        LocalTransport(),
        options,
        config=config,
        registry=registry,
        confirm=confirm,
        stamp=stamp,
    )
    result = orchestrator.run()

    print_section("Import Summary")
    print(result)
    if result.plan and result.dry_run:
        print()
        print(result.plan)
    if result.success or result.cancelled:
        return 0
    print(f"{Colors.FAIL}Error: {result.error}{Colors.ENDC}")
    return 1


def _run_rollback(args: argparse.Namespace, config: Config, commands: WpCli) -> int:
    result = rollback(
        commands,
        LocalTransport(),
        snapshots_dir=config.snapshots_dir,
        stamp=args.snapshot,
        confirm=confirm,
        assume_yes=args.yes,
        dry_run=args.dry_run,
    )
    if result.completed:
        print(f"{Colors.OKGREEN}Restored snapshot {result.snapshot.stamp}{Colors.ENDC}")
    return 0


def _list_snapshots(config: Config) -> int:
    snapshots = list_snapshots(config.snapshots_dir)
    print_section(f"Snapshots in {config.snapshots_dir}")
    if not snapshots:
        print("No snapshots found.")
        return 0
    for i, snapshot in enumerate(snapshots, 1):
        size = format_bytes(snapshot.database.stat().st_size)
        prefix = snapshot.table_prefix or "?"
        print(f"{i:2d}. {snapshot.stamp}  {size:>10s}  prefix={prefix:10s} ({snapshot.age_days:.1f} days old)")
        if snapshot.content_backup:
            print(f"      wp-content: {snapshot.content_backup}")
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    """Main function."""
    if argv is None:
        argv = sys.argv[1:]
    args = _parse_args(argv)
    stamp = make_stamp()

    # Get configuration
    config = get_config(wp_path=args.wp_path)
    setup_logging(level=_log_level(args), log_file=_log_file(args, config, stamp))

    if args.list_snapshots:
        return _list_snapshots(config)

    if not config.validate():
        print(f"{Colors.FAIL}Error: WordPress root not found or not readable: {config.wp_path}{Colors.ENDC}")
        print("Run from the WordPress root or pass --wp-path.")
        return 1

    signal.signal(signal.SIGTERM, _handle_sigterm)
    commands = WpCli(config.wp_path, binary=config.wp_binary)

    try:
        if args.export:
            result = export_site(commands, Path(args.export))
            print(f"{Colors.OKGREEN}{result}{Colors.ENDC}")
            return 0
        if args.rollback:
            return _run_rollback(args, config, commands)
        return _run_import(args, config, commands, stamp)
    except (MigrationError, OSError) as e:
        print(f"{Colors.FAIL}Error: {e}{Colors.ENDC}")
        logger.debug("Error during execution", exc_info=True)
        return 1


if __name__ == '__main__':
    sys.exit(main())
