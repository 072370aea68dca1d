"""
Archive import orchestration.

An import run moves through a fixed sequence of states:

    IDLE -> DETECTING -> ADMITTING -> EXTRACTING -> SNAPSHOTTING
         -> IMPORTING -> VERIFYING -> CLEANING -> DONE

Any state can end in FAILED. Nothing is modified before SNAPSHOTTING, so
failures up to and including snapshot creation need no rollback. A failure
in IMPORTING or VERIFYING restores the snapshot before the run ends.

A dry run stops after ADMITTING: it builds and logs the ImportPlan and
finishes in DONE without writing anything.

The temporary extraction directory is removed only when the run succeeds;
failed runs keep it for inspection. Maintenance mode is held from
SNAPSHOTTING through CLEANING and released on every exit path.
"""

import logging
import shutil
import tempfile
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Callable, Iterator, List, Optional

from wp_migrate.archive.base import Archive, ExtractionResult, FormatAdapter
from wp_migrate.archive.registry import AdapterRegistry
from wp_migrate.config import Config, get_config
from wp_migrate.diskspace import check_disk_space
from wp_migrate.errors import (
    CommandError,
    ConfirmationError,
    ImportPhaseError,
    MigrationError,
    RollbackError,
    SnapshotError,
    ValidationError,
)
from wp_migrate.importer.plan import ImportPlan, build_plan
from wp_migrate.importer.preserve import PreservationPlan, plan_preservation, restore_preserved
from wp_migrate.importer.urls import SiteUrls, UrlAlignment, align_urls
from wp_migrate.importer.validation import ValidationResult, validate_import
from wp_migrate.prefix import PrefixResolution, resolve_prefix
from wp_migrate.report import SkippedItems
from wp_migrate.rollback import rollback
from wp_migrate.safety import ensure_within
from wp_migrate.snapshot import Snapshot, cleanup_old_snapshots, create_snapshot
from wp_migrate.transport import FileTransport
from wp_migrate.utils import count_files, format_bytes, make_stamp
from wp_migrate.wpcli import WordPressCommands, clear_database, maintenance_lock

logger = logging.getLogger(__name__)

TEMP_DIR_PREFIX = "wp-migrate-archive-"

# Root-anchored; see transport.sync_tree.
BASE_EXCLUDES = ("/object-cache.php",)
STELLARSITES_EXCLUDES = ("/mu-plugins/", "/mu-plugins.php")

Confirm = Callable[[str], bool]


class ImportState(Enum):
    IDLE = "idle"
    DETECTING = "detecting"
    ADMITTING = "admitting"
    EXTRACTING = "extracting"
    SNAPSHOTTING = "snapshotting"
    IMPORTING = "importing"
    VERIFYING = "verifying"
    CLEANING = "cleaning"
    DONE = "done"
    FAILED = "failed"


@dataclass
class ImportOptions:
    """What to import and how."""

    archive: Path
    archive_type: Optional[str] = None
    dry_run: bool = False
    assume_yes: bool = False
    search_replace: bool = True
    preserve_plugins: bool = False
    stellarsites: bool = False

    @property
    def preserve(self) -> bool:
        return self.preserve_plugins or self.stellarsites

    @property
    def excludes(self) -> List[str]:
        excludes = list(BASE_EXCLUDES)
        if self.stellarsites:
            excludes.extend(STELLARSITES_EXCLUDES)
        return excludes


@dataclass
class ImportResult:
    """Result of an import run."""

    success: bool
    state: ImportState
    dry_run: bool = False
    cancelled: bool = False
    format_name: Optional[str] = None
    plan: Optional[ImportPlan] = None
    snapshot: Optional[Snapshot] = None
    prefix: Optional[PrefixResolution] = None
    urls: Optional[UrlAlignment] = None
    validation: Optional[ValidationResult] = None
    skipped: List[SkippedItems] = field(default_factory=list)
    temp_dir: Optional[Path] = None
    history: List[ImportState] = field(default_factory=list)
    rolled_back: bool = False
    exception: Optional[MigrationError] = None
    error: Optional[str] = None
    duration_seconds: float = 0.0

    def __str__(self) -> str:
        if self.cancelled:
            status = "CANCELLED"
        elif self.success:
            status = "SUCCESS"
        else:
            status = f"FAILED in {self.failed_state.value if self.failed_state else '?'}: {self.error}"
        mode = "dry-run" if self.dry_run else "import"
        lines = [f"Import {status} ({mode})"]
        if self.format_name:
            lines.append(f"  Format: {self.format_name}")
        if self.snapshot:
            lines.append(f"  Snapshot: {self.snapshot.stamp} ({self.snapshot.database})")
        if self.prefix:
            lines.append(f"  Table prefix: {self.prefix.configured} -> {self.prefix.resolved}")
        if self.urls and self.urls.pairs:
            lines.append(
                f"  URLs: {len(self.urls.pairs)} search-replace pairs, "
                f"{self.urls.replacements} replacements"
            )
        if self.rolled_back:
            lines.append("  Rolled back to snapshot")
        if self.temp_dir and not self.success:
            lines.append(f"  Temporary directory kept: {self.temp_dir}")
        for skipped in self.skipped:
            lines.append(f"  Skipped {skipped}")
        lines.append(f"  Duration: {self.duration_seconds:.2f}s")
        return "\n".join(lines)

    @property
    def failed_state(self) -> Optional[ImportState]:
        """The state the run was in when it failed."""
        if self.state != ImportState.FAILED or len(self.history) < 2:
            return None
        return self.history[-2]


@contextmanager
def extraction_workspace(work_dir: Path) -> Iterator[Path]:
    """
    Create a temporary extraction directory under work_dir.

    The directory is removed when the block completes and kept when it
    raises (including KeyboardInterrupt and SystemExit).
    """
    work_dir = Path(work_dir)
    work_dir.mkdir(parents=True, exist_ok=True)
    temp_dir = Path(tempfile.mkdtemp(prefix=TEMP_DIR_PREFIX, dir=str(work_dir)))
    logger.info(f"Created temporary directory: {temp_dir}")
    try:
        yield temp_dir
    except BaseException:
        logger.warning(f"Temporary directory kept for inspection: {temp_dir}")
        raise
    logger.info(f"Removing temporary directory: {temp_dir}")
    shutil.rmtree(temp_dir, ignore_errors=True)


class ImportOrchestrator:
    """
    Drives one archive import against a target installation.

    Example:
        orchestrator = ImportOrchestrator(WpCli(path), LocalTransport(), ImportOptions(archive))
        result = orchestrator.run()
    """

    def __init__(
        self,
        commands: WordPressCommands,
        transport: FileTransport,
        options: ImportOptions,
        config: Optional[Config] = None,
        registry: Optional[AdapterRegistry] = None,
        confirm: Optional[Confirm] = None,
        disk_usage: Callable = shutil.disk_usage,
        stamp: Optional[str] = None,
    ):
        self.commands = commands
        self.transport = transport
        self.options = options
        self.config = config or get_config()
        self.registry = registry or AdapterRegistry()
        self.confirm = confirm
        self.disk_usage = disk_usage

        self.state = ImportState.IDLE
        self.history: List[ImportState] = [ImportState.IDLE]
        self.stamp = stamp or make_stamp()
        self.archive: Optional[Archive] = None
        self.adapter: Optional[FormatAdapter] = None
        self.original_urls: Optional[SiteUrls] = None
        self.content_dir: Optional[Path] = None
        self.plan: Optional[ImportPlan] = None
        self.extraction: Optional[ExtractionResult] = None
        self.snapshot: Optional[Snapshot] = None
        self.preservation = PreservationPlan()
        self.prefix: Optional[PrefixResolution] = None
        self.urls: Optional[UrlAlignment] = None
        self.validation: Optional[ValidationResult] = None
        self.temp_dir: Optional[Path] = None
        self.skipped: List[SkippedItems] = []
        self.rolled_back = False

    def _enter(self, state: ImportState) -> None:
        logger.debug(f"State: {self.state.value} -> {state.value}")
        self.state = state
        self.history.append(state)

    def _collect(self, skipped: Optional[SkippedItems]) -> None:
        if skipped:
            self.skipped.append(skipped)

    def _result(self, success: bool, cancelled: bool = False, error: Optional[Exception] = None) -> ImportResult:
        return ImportResult(
            success=success,
            state=self.state,
            dry_run=self.options.dry_run,
            cancelled=cancelled,
            format_name=self.adapter.name if self.adapter else None,
            plan=self.plan,
            snapshot=self.snapshot,
            prefix=self.prefix,
            urls=self.urls,
            validation=self.validation,
            skipped=list(self.skipped),
            temp_dir=self.temp_dir,
            history=list(self.history),
            rolled_back=self.rolled_back,
            exception=error if isinstance(error, MigrationError) else None,
            error=str(error) if error is not None else None,
        )

    def run(self) -> ImportResult:
        """
        Run the import.

        Errors never escape: they end the run in FAILED and are reported
        on the result. ConfirmationError is the exception, since it means
        the caller has to change how it invokes the run.

        Returns:
            ImportResult describing the final state.
        """
        start_time = datetime.now()
        try:
            result = self._run()
        except ConfirmationError:
            raise
        except (MigrationError, OSError, ValueError) as e:
            failed_in = self.state
            self._enter(ImportState.FAILED)
            logger.error(f"Import failed during {failed_in.value}: {e}")
            result = self._result(success=False, error=e)
        result.duration_seconds = (datetime.now() - start_time).total_seconds()
        self._log_skipped()
        return result

    def _run(self) -> ImportResult:
        # Step 1: Capture destination URLs before anything changes
        logger.info("Step 1: Capturing current destination URLs...")
        self.original_urls = SiteUrls.read(self.commands)
        logger.info(f"Current site home: {self.original_urls.home}")
        logger.info(f"Current site URL: {self.original_urls.siteurl}")

        self._detect()
        self._admit()

        self.plan = self._build_plan()
        for line in self.plan.render().splitlines():
            logger.info(line)

        if self.options.dry_run:
            logger.info("[dry-run] Archive import preview complete. No changes made.")
            self._enter(ImportState.DONE)
            return self._result(success=True)

        if not self._confirmed():
            logger.info("Import cancelled by user.")
            self._enter(ImportState.DONE)
            return self._result(success=False, cancelled=True)

        with extraction_workspace(self.config.work_dir) as temp_dir:
            self.temp_dir = temp_dir
            self._extract(temp_dir)
            self._enter(ImportState.SNAPSHOTTING)
            with maintenance_lock(self.commands):
                self._snapshot()
                try:
                    self._import()
                    self._verify()
                except (MigrationError, OSError, ValueError) as e:
                    raise self._roll_back(e) from e
                self._clean()

        self._enter(ImportState.DONE)
        self._log_rollback_instructions()
        logger.info("Archive import complete.")
        return self._result(success=True)

    def _detect(self) -> None:
        self._enter(ImportState.DETECTING)
        logger.info("Step 2: Detecting archive format...")
        try:
            self.archive = Archive.from_path(self.options.archive, self.options.archive_type)
        except FileNotFoundError as e:
            raise ValidationError(str(e)) from e
        self.adapter = self.registry.detect(self.archive)
        logger.info(f"Archive format: {self.adapter.display_name}")

    def _admit(self) -> None:
        self._enter(ImportState.ADMITTING)
        logger.info("Step 3: Checking disk space...")
        estimate = check_disk_space(
            self.archive.size,
            self.config.work_dir,
            self.config.space_multiplier,
            self.disk_usage,
        )
        logger.info(
            f"Archive size {format_bytes(estimate.archive_size)}, "
            f"need {format_bytes(estimate.required)}, have {format_bytes(estimate.available)}"
        )
        self.content_dir = Path(self.commands.content_dir())
        logger.info(f"Destination WP_CONTENT_DIR: {self.content_dir}")

    def _build_plan(self) -> ImportPlan:
        return build_plan(
            archive=self.archive.path,
            format_name=self.adapter.name,
            layout_hint=self.adapter.layout_hint,
            content_dir=self.content_dir,
            snapshots_dir=self.config.snapshots_dir,
            work_dir=self.config.work_dir,
            stamp=self.stamp,
            excludes=self.options.excludes,
            search_replace=self.options.search_replace,
            preserve_plugins=self.options.preserve,
            original_urls=self.original_urls,
            snapshot_keep=self.config.snapshot_keep,
        )

    def _confirmed(self) -> bool:
        if self.options.assume_yes:
            logger.info("Proceeding with import (--yes flag set)")
            return True
        if self.confirm is None:
            raise ConfirmationError(
                "Interactive confirmation required but not available. "
                "Re-run with --yes to proceed, or --dry-run to preview."
            )
        return self.confirm("Proceed with import? [y/N]: ")

    def _extract(self, temp_dir: Path) -> None:
        self._enter(ImportState.EXTRACTING)
        logger.info(f"Step 4: Extracting {self.adapter.display_name} archive...")
        self._collect(self.adapter.extract(self.archive, temp_dir))

        logger.info("Step 5: Locating database and wp-content...")
        database = ensure_within(temp_dir, self.adapter.find_database(temp_dir))
        content = ensure_within(temp_dir, self.adapter.find_content(temp_dir))
        self.extraction = ExtractionResult(
            temp_dir=temp_dir,
            database=database,
            content=content,
            prefix_hint=self.adapter.prefix_hint(temp_dir),
            file_count=count_files(temp_dir),
        )
        logger.info(f"Extracted {self.extraction.file_count} files")
        logger.info(f"Found database: {database.relative_to(temp_dir)}")
        logger.info(f"Found wp-content: {content.relative_to(temp_dir)}")

    def _snapshot(self) -> None:
        logger.info("Step 6: Backing up current database and wp-content...")
        self.snapshot = create_snapshot(
            self.commands,
            self.transport,
            self.config.snapshots_dir,
            self.content_dir,
            stamp=self.stamp,
        )
        if self.options.preserve:
            logger.info("Detecting destination plugins/themes to preserve...")
            self.preservation = plan_preservation(self.content_dir, self.extraction.content)

    def _require_snapshot(self) -> Snapshot:
        if self.snapshot is None:
            raise SnapshotError("No snapshot exists; refusing to modify the destination")
        return self.snapshot

    def _import(self) -> None:
        self._enter(ImportState.IMPORTING)
        snapshot = self._require_snapshot()

        logger.info("Step 7: Resetting destination database...")
        skipped = clear_database(self.commands)
        self._collect(skipped)

        logger.info(f"Step 8: Importing database from {self.extraction.database.name}...")
        self.commands.import_database(self.extraction.database)

        logger.info("Step 9: Resolving table prefix...")
        hints = [self.extraction.prefix_hint] if self.extraction.prefix_hint else []
        self.prefix = resolve_prefix(self.commands, hints)

        logger.info("Step 10: Aligning URLs...")
        self.urls = align_urls(
            self.commands, self.original_urls, enabled=self.options.search_replace
        )
        if self.urls.failed:
            failed = SkippedItems(stage="search-replace", reason="pairs failed")
            for old, new in self.urls.failed:
                failed.add(f"{old} -> {new}")
            self._collect(failed)

        logger.info("Step 11: Replacing wp-content with archive contents...")
        logger.info(f"  Source: {self.extraction.content.relative_to(self.extraction.temp_dir)}")
        logger.info(f"  Destination: {self.content_dir}")
        if self.options.stellarsites:
            logger.info("StellarSites mode: Preserving destination mu-plugins directory and loader")
        sync = self.transport.sync_tree(
            self.extraction.content, self.content_dir, excludes=self.options.excludes, delete=True
        )
        logger.info(f"wp-content synced: {sync.copied} copied, {sync.deleted} removed")
        if sync.excluded:
            excluded = SkippedItems(stage="wp-content sync", reason="paths excluded")
            for path in sync.excluded:
                excluded.add(path)
            self._collect(excluded)

        if self.preservation:
            restored = restore_preserved(
                self.preservation,
                snapshot.content_backup,
                self.content_dir,
                self.transport,
                self.commands,
            )
            self._collect(restored.failed)

        self._flush_cache()

    def _flush_cache(self) -> None:
        if not self.commands.has_command("redis"):
            logger.info("Skipping Object Cache Pro cache flush; wp redis command not available.")
            return
        logger.info("Flushing Object Cache Pro cache...")
        try:
            self.commands.flush_cache()
        except CommandError as e:
            logger.warning(f"Failed to flush object cache, cache may be stale: {e}")

    def _verify(self) -> None:
        self._enter(ImportState.VERIFYING)
        logger.info("Step 12: Verifying import...")
        expected = self.original_urls if self.options.search_replace else None
        self.validation = validate_import(
            self.commands, self.content_dir, self.prefix.resolved, expected
        )
        if not self.validation.passed:
            raise ImportPhaseError(f"Post-import verification failed: {self.validation.summary}")

    def _roll_back(self, cause: Exception) -> MigrationError:
        """Restore the snapshot after a destructive failure; return the error to raise."""
        logger.error(f"Import failed during {self.state.value}: {cause}")
        logger.warning(f"Rolling back to snapshot {self.snapshot.stamp}...")
        try:
            rollback(
                self.commands,
                self.transport,
                snapshot=self.snapshot,
                assume_yes=True,
                hold_maintenance=False,
            )
        except RollbackError as e:
            logger.critical(str(e))
            return e
        self.rolled_back = True
        return ImportPhaseError(
            f"{cause}\nDestination restored from snapshot {self.snapshot.stamp}.",
            rolled_back=True,
        )

    def _clean(self) -> None:
        self._enter(ImportState.CLEANING)
        logger.info("Step 13: Cleaning up...")
        deleted = cleanup_old_snapshots(
            self.config.snapshots_dir, self.transport, keep_count=self.config.snapshot_keep
        )
        if deleted:
            logger.info(f"Removed {len(deleted)} old snapshot files")

    def _log_rollback_instructions(self) -> None:
        snapshot = self.snapshot
        logger.info("ROLLBACK INSTRUCTIONS (if needed):")
        logger.info(f"  wp-migrate --rollback --snapshot {snapshot.stamp}")
        logger.info("Or manually:")
        logger.info("  1. Restore database:")
        logger.info(f"     gunzip -c {snapshot.database} | wp db import -")
        logger.info("  2. Restore wp-content:")
        logger.info(f"     rm -rf {snapshot.content_target}")
        logger.info(f"     cp -a {snapshot.content_backup} {snapshot.content_target}")
        if self.prefix and self.prefix.changed:
            logger.info("  3. Restore table prefix in wp-config.php:")
            logger.info(
                f'     wp config set table_prefix "{self.prefix.configured}" --type=variable'
            )

    def _log_skipped(self) -> None:
        if not self.skipped:
            return
        logger.info("Skipped items:")
        for skipped in self.skipped:
            logger.info(f"  {skipped}")


def run_import(
    commands: WordPressCommands,
    transport: FileTransport,
    options: ImportOptions,
    config: Optional[Config] = None,
    confirm: Optional[Confirm] = None,
) -> ImportResult:
    """Run one archive import with the default adapter registry."""
    orchestrator = ImportOrchestrator(commands, transport, options, config=config, confirm=confirm)
    return orchestrator.run()
