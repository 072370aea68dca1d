"""
Pre-import snapshots of the target installation.

A snapshot is taken once per import run, before the first destructive
step. It only reads the current site:

    <snapshots_dir>/pre-archive-backup_<stamp>.sql.gz   gzipped database export
    <content_dir>.backup-<stamp>                        copy of wp-content
    <snapshots_dir>/pre-archive-backup_<stamp>.json     manifest (paths, prefix)

Older snapshots stay on disk and can be restored by stamp until
cleanup_old_snapshots() removes them.
"""

from __future__ import annotations

import gzip
import json
import logging
import re
import shutil
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import List, Optional

from wp_migrate.errors import CommandError, SnapshotError
from wp_migrate.transport import FileTransport
from wp_migrate.utils import make_stamp, parse_stamp
from wp_migrate.wpcli import WordPressCommands

logger = logging.getLogger(__name__)

SNAPSHOT_PREFIX = "pre-archive-backup_"

# pre-archive-backup_YYYYmmdd-HHMMSS.sql.gz
_SNAPSHOT_PATTERN = re.compile(r"^pre-archive-backup_(\d{8}-\d{6})\.sql\.gz$")


@dataclass(frozen=True)
class Snapshot:
    """A restorable copy of the database and content directory."""

    stamp: str
    created_at: datetime
    database: Path
    content_backup: Optional[Path] = None
    content_target: Optional[Path] = None
    table_prefix: Optional[str] = None

    @property
    def manifest(self) -> Path:
        return self.database.with_name(f"{SNAPSHOT_PREFIX}{self.stamp}.json")

    @property
    def age_days(self) -> float:
        """Get the age of the snapshot in days."""
        delta = datetime.now() - self.created_at
        return delta.total_seconds() / (24 * 60 * 60)

    def to_dict(self) -> dict:
        return {
            "stamp": self.stamp,
            "created_at": self.created_at.isoformat(),
            "database": str(self.database),
            "content_backup": str(self.content_backup) if self.content_backup else None,
            "content_target": str(self.content_target) if self.content_target else None,
            "table_prefix": self.table_prefix,
        }


def database_path(snapshots_dir: Path, stamp: str) -> Path:
    return Path(snapshots_dir) / f"{SNAPSHOT_PREFIX}{stamp}.sql.gz"


def content_backup_path(content_dir: Path, stamp: str) -> Path:
    content_dir = Path(content_dir)
    return content_dir.with_name(f"{content_dir.name}.backup-{stamp}")


def _load_manifest(dump: Path, stamp: str, created_at: datetime) -> Snapshot:
    manifest = dump.with_name(f"{SNAPSHOT_PREFIX}{stamp}.json")
    if not manifest.is_file():
        return Snapshot(stamp=stamp, created_at=created_at, database=dump)
    try:
        data = json.loads(manifest.read_text(encoding="utf-8"))
    except (OSError, ValueError) as e:
        logger.warning(f"Ignoring unreadable snapshot manifest {manifest}: {e}")
        return Snapshot(stamp=stamp, created_at=created_at, database=dump)
    backup = data.get("content_backup")
    target = data.get("content_target")
    return Snapshot(
        stamp=stamp,
        created_at=created_at,
        database=dump,
        content_backup=Path(backup) if backup else None,
        content_target=Path(target) if target else None,
        table_prefix=data.get("table_prefix"),
    )


def list_snapshots(snapshots_dir: Path) -> List[Snapshot]:
    """
    List all snapshots in a directory, sorted by creation date (newest first).

    Args:
        snapshots_dir: Directory containing snapshot dumps.

    Returns:
        List of Snapshot objects, newest first.
    """
    snapshots_dir = Path(snapshots_dir).expanduser()
    if not snapshots_dir.is_dir():
        return []

    snapshots: List[Snapshot] = []
    for f in snapshots_dir.iterdir():
        match = _SNAPSHOT_PATTERN.match(f.name)
        if not match or not f.is_file():
            continue
        created_at = parse_stamp(match.group(1))
        if created_at is None:
            continue
        snapshots.append(_load_manifest(f, match.group(1), created_at))

    snapshots.sort(key=lambda s: s.created_at, reverse=True)
    return snapshots


def get_latest_snapshot(snapshots_dir: Path) -> Optional[Snapshot]:
    """Get the most recent snapshot, or None if there is none."""
    snapshots = list_snapshots(snapshots_dir)
    return snapshots[0] if snapshots else None


def find_snapshot(snapshots_dir: Path, stamp: Optional[str] = None) -> Snapshot:
    """
    Find a snapshot by stamp, or the newest one when stamp is None.

    Raises:
        SnapshotError: If no matching snapshot exists.
    """
    snapshots = list_snapshots(snapshots_dir)
    if not snapshots:
        raise SnapshotError(f"No snapshots found in {snapshots_dir}")
    if stamp is None:
        return snapshots[0]
    for snapshot in snapshots:
        if snapshot.stamp == stamp:
            return snapshot
    available = ", ".join(s.stamp for s in snapshots)
    raise SnapshotError(f"Snapshot {stamp} not found in {snapshots_dir}. Available: {available}")


def _discard(paths: List[Path], transport: FileTransport) -> None:
    for path in paths:
        try:
            transport.remove_tree(path)
        except OSError as e:
            logger.warning(f"Could not remove partial snapshot file {path}: {e}")


def create_snapshot(
    commands: WordPressCommands,
    transport: FileTransport,
    snapshots_dir: Path,
    content_dir: Path,
    stamp: Optional[str] = None,
) -> Snapshot:
    """
    Capture the current database and content directory.

    Nothing in the target installation is modified. On failure any
    partially written snapshot files are removed.

    Args:
        commands: WordPress command surface of the target.
        transport: File transport for the content copy.
        snapshots_dir: Where the dump and manifest are written.
        content_dir: The target's wp-content directory.
        stamp: Timestamp string; defaults to now.

    Returns:
        The created Snapshot.

    Raises:
        SnapshotError: If any part of the snapshot could not be written.
    """
    stamp = stamp or make_stamp()
    created_at = parse_stamp(stamp) or datetime.now()
    snapshots_dir = Path(snapshots_dir)
    dump = database_path(snapshots_dir, stamp)
    raw = dump.with_suffix("")
    backup = content_backup_path(content_dir, stamp)

    if dump.exists() or transport.exists(backup):
        raise SnapshotError(f"Snapshot {stamp} already exists: {dump}")

    written: List[Path] = []
    try:
        transport.make_dirs(snapshots_dir)

        logger.info(f"Backing up current database to: {dump}")
        written.append(raw)
        commands.export_database(raw)
        written.append(dump)
        with open(raw, "rb") as src, gzip.open(dump, "wb") as out:
            shutil.copyfileobj(src, out)
        raw.unlink()

        logger.info(f"Backing up current wp-content to: {backup}")
        written.append(backup)
        transport.copy_tree(Path(content_dir), backup)

        snapshot = Snapshot(
            stamp=stamp,
            created_at=created_at,
            database=dump,
            content_backup=backup,
            content_target=Path(content_dir),
            table_prefix=commands.get_table_prefix(),
        )
        written.append(snapshot.manifest)
        snapshot.manifest.write_text(json.dumps(snapshot.to_dict(), indent=2), encoding="utf-8")
    except (CommandError, OSError) as e:
        _discard(written, transport)
        raise SnapshotError(f"Failed to create snapshot {stamp}: {e}") from e

    logger.info(f"Snapshot created successfully: {stamp}")
    return snapshot


def cleanup_old_snapshots(
    snapshots_dir: Path,
    transport: FileTransport,
    keep_count: int = 5,
) -> List[Path]:
    """
    Remove old snapshots, keeping only the most recent ones.

    Args:
        snapshots_dir: Directory containing snapshots.
        transport: File transport used to remove content backups.
        keep_count: Number of recent snapshots to keep.

    Returns:
        List of paths that were deleted.
    """
    deleted: List[Path] = []
    for snapshot in list_snapshots(snapshots_dir)[keep_count:]:
        for path in (snapshot.database, snapshot.manifest, snapshot.content_backup):
            if path is None or not transport.exists(path):
                continue
            try:
                transport.remove_tree(path)
                deleted.append(path)
            except OSError as e:
                logger.warning(f"Failed to delete snapshot file {path}: {e}")
        logger.info(f"Deleted old snapshot: {snapshot.stamp}")
    return deleted
