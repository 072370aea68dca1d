"""
Snapshot restore.

Restoring is idempotent. The dump is imported into an emptied database,
the content backup is mirrored onto the content directory (the backup
itself is kept), and the recorded table prefix is written back. Running
it twice against the same snapshot gives the same end state.

Used manually (wp-migrate --rollback) and automatically by the importer
when a destructive step fails. The site is in maintenance mode for the
whole restore; the importer already holds it and passes hold_maintenance=False.
"""

import gzip
import logging
import shutil
import tempfile
from contextlib import nullcontext
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, List, Optional

from wp_migrate.errors import CommandError, ConfirmationError, RollbackError
from wp_migrate.snapshot import Snapshot, content_backup_path, find_snapshot
from wp_migrate.transport import FileTransport
from wp_migrate.wpcli import WordPressCommands, clear_database, maintenance_lock

logger = logging.getLogger(__name__)

Confirm = Callable[[str], bool]


@dataclass
class RollbackResult:
    """Outcome of a rollback request."""

    snapshot: Snapshot
    dry_run: bool = False
    cancelled: bool = False
    restored_database: bool = False
    restored_content: bool = False
    restored_prefix: Optional[str] = None
    plan: List[str] = field(default_factory=list)

    @property
    def completed(self) -> bool:
        return self.restored_database and not (self.dry_run or self.cancelled)


def _content_paths(snapshot: Snapshot, commands: WordPressCommands):
    target = snapshot.content_target or commands.content_dir()
    backup = snapshot.content_backup or content_backup_path(target, snapshot.stamp)
    return Path(target), Path(backup)


def rollback_plan(snapshot: Snapshot, target: Path, backup: Optional[Path]) -> List[str]:
    """Human-readable steps a rollback of snapshot would perform."""
    steps = [
        "Reset the database",
        f"Import database from {snapshot.database}",
    ]
    if backup is not None:
        steps.append(f"Replace {target} with {backup}")
    else:
        steps.append("Keep the current wp-content (no content backup found)")
    if snapshot.table_prefix:
        steps.append(f"Set table prefix to {snapshot.table_prefix}")
    return steps


def restore_database(commands: WordPressCommands, dump: Path) -> None:
    """Empty the database and import a gzipped dump."""
    with tempfile.TemporaryDirectory(prefix="wp-migrate-restore-") as tmp:
        raw = Path(tmp) / "restore.sql"
        with gzip.open(dump, "rb") as src, open(raw, "wb") as out:
            shutil.copyfileobj(src, out)
        clear_database(commands)
        commands.import_database(raw)


def rollback(
    commands: WordPressCommands,
    transport: FileTransport,
    snapshots_dir: Optional[Path] = None,
    snapshot: Optional[Snapshot] = None,
    stamp: Optional[str] = None,
    confirm: Optional[Confirm] = None,
    assume_yes: bool = False,
    dry_run: bool = False,
    hold_maintenance: bool = True,
) -> RollbackResult:
    """
    Restore a snapshot.

    Args:
        commands: WordPress command surface of the target.
        transport: File transport of the target.
        snapshots_dir: Where snapshots are stored (used when snapshot is None).
        snapshot: Snapshot to restore. Defaults to stamp, then the newest.
        stamp: Stamp of the snapshot to restore.
        confirm: Callable asked for confirmation; returns True to proceed.
        assume_yes: Skip confirmation.
        dry_run: Report the plan without restoring.
        hold_maintenance: Put the site in maintenance mode while restoring.
            False when the caller already holds it.

    Returns:
        RollbackResult describing what was done.

    Raises:
        SnapshotError: If the snapshot cannot be found.
        ConfirmationError: If confirmation is needed but no confirm callable was given.
        RollbackError: If restoring failed; carries manual recovery instructions.
    """
    if snapshot is None:
        if snapshots_dir is None:
            raise ValueError("snapshots_dir is required when no snapshot is given")
        snapshot = find_snapshot(snapshots_dir, stamp)

    target, backup = _content_paths(snapshot, commands)
    content_backup: Optional[Path] = backup if transport.exists(backup) else None
    plan = rollback_plan(snapshot, target, content_backup)
    result = RollbackResult(snapshot=snapshot, dry_run=dry_run, plan=plan)

    logger.info(f"Rollback to snapshot {snapshot.stamp}:")
    for number, step in enumerate(plan, 1):
        logger.info(f"  {number}. {step}")

    if dry_run:
        logger.info("[dry-run] No changes made")
        return result

    if not assume_yes:
        if confirm is None:
            raise ConfirmationError("Rollback requires confirmation; re-run with --yes to proceed")
        if not confirm(f"Restore snapshot {snapshot.stamp}? Type 'yes' to continue: "):
            logger.info("Rollback cancelled")
            result.cancelled = True
            return result

    lock = maintenance_lock(commands) if hold_maintenance else nullcontext()
    try:
        with lock:
            logger.info(f"Restoring database from {snapshot.database}")
            restore_database(commands, snapshot.database)
            result.restored_database = True

            if content_backup is not None:
                logger.info(f"Restoring wp-content from {content_backup}")
                transport.sync_tree(content_backup, target, excludes=(), delete=True)
                result.restored_content = True
            else:
                logger.warning(f"No content backup found at {backup}; wp-content left as is")

            if snapshot.table_prefix and commands.get_table_prefix() != snapshot.table_prefix:
                logger.info(f"Restoring table prefix: {snapshot.table_prefix}")
                commands.set_table_prefix(snapshot.table_prefix)
                result.restored_prefix = snapshot.table_prefix
    except (CommandError, OSError, ValueError) as e:
        raise RollbackError(
            f"Rollback to snapshot {snapshot.stamp} failed: {e}",
            database_path=snapshot.database,
            content_backup=content_backup,
            content_target=target,
            wp_path=getattr(commands, "wp_path", None),
        ) from e

    logger.info(f"Rollback to snapshot {snapshot.stamp} complete")
    return result
