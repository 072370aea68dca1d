"""
Native backup export.

Writes the zip layout the native adapter detects:

    wpmigrate-backup.json   format_version, created_at, site_url,
                            table_prefix, table_count, wordpress_version
    database.sql            full database export
    wp-content/             content directory (symlinks are skipped)
"""

import json
import logging
import tempfile
import zipfile
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional

from wp_migrate.archive.native import CONTENT_DIR, DATABASE_FILE, FORMAT_VERSION, METADATA_FILE
from wp_migrate.report import SkippedItems
from wp_migrate.wpcli import WordPressCommands

logger = logging.getLogger(__name__)


@dataclass
class ExportResult:
    """Result of a native export."""

    path: Path
    metadata: Dict[str, Any]
    files: int = 0
    skipped: SkippedItems = field(
        default_factory=lambda: SkippedItems(stage="export", reason="symlinks not exported")
    )

    def __str__(self) -> str:
        return (
            f"Exported {self.path.name}: {self.metadata['table_count']} tables, "
            f"{self.files} content files"
        )


def build_metadata(commands: WordPressCommands) -> Dict[str, Any]:
    """Describe the current site for wpmigrate-backup.json."""
    metadata: Dict[str, Any] = {
        "format_version": FORMAT_VERSION,
        "created_at": datetime.now(tz=timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ"),
        "site_url": commands.get_option("siteurl"),
        "table_prefix": commands.get_table_prefix(),
        "table_count": len(commands.list_tables()),
    }
    version = commands.core_version()
    if version:
        metadata["wordpress_version"] = version
    return metadata


def _write_content(archive: zipfile.ZipFile, content_dir: Path, result: ExportResult) -> None:
    archive.writestr(f"{CONTENT_DIR}/", "")
    for path in sorted(content_dir.rglob("*")):
        relative = path.relative_to(content_dir).as_posix()
        if path.is_symlink():
            result.skipped.add(relative)
            continue
        name = f"{CONTENT_DIR}/{relative}"
        if path.is_dir():
            archive.writestr(f"{name}/", "")
        elif path.is_file():
            archive.write(path, name)
            result.files += 1


def export_site(
    commands: WordPressCommands,
    output: Path,
    content_dir: Optional[Path] = None,
) -> ExportResult:
    """
    Export the database and content directory as a native backup.

    The archive is written next to output under a temporary name and
    renamed when complete, so output never holds a partial backup.

    Args:
        commands: WordPress command surface of the site to export.
        output: Path of the zip file to create.
        content_dir: wp-content directory; asked from WordPress when omitted.

    Returns:
        ExportResult with the metadata written.

    Raises:
        FileExistsError: If output already exists.
        CommandError: If WordPress could not export the database.
    """
    output = Path(output)
    if output.exists():
        raise FileExistsError(f"Export target already exists: {output}")
    content_dir = Path(content_dir) if content_dir else Path(commands.content_dir())
    partial = output.with_name(f".{output.name}.partial")

    logger.info(f"Exporting site to {output}")
    metadata = build_metadata(commands)
    result = ExportResult(path=output, metadata=metadata)

    try:
        with tempfile.TemporaryDirectory(prefix="wp-migrate-export-") as tmp:
            dump = Path(tmp) / DATABASE_FILE
            logger.info("Exporting database...")
            commands.export_database(dump)

            output.parent.mkdir(parents=True, exist_ok=True)
            with zipfile.ZipFile(partial, "w", compression=zipfile.ZIP_DEFLATED) as archive:
                archive.writestr(METADATA_FILE, json.dumps(metadata, indent=2))
                archive.write(dump, DATABASE_FILE)
                logger.info(f"Adding {content_dir}...")
                _write_content(archive, content_dir, result)
        partial.replace(output)
    except BaseException:
        partial.unlink(missing_ok=True)
        raise

    if result.skipped:
        logger.warning(str(result.skipped))
    logger.info(str(result))
    return result
