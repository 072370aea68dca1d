"""
Solid Backups (formerly BackupBuddy) full backups, legacy format.

Layout (zip, or the extracted directory):
    wp-content/uploads/backupbuddy_temp/<id>/importbuddy.php     signature
    wp-content/uploads/backupbuddy_temp/<id>/backupbuddy_dat.php alternative signature
    wp-content/uploads/backupbuddy_temp/<id>/*.sql               one dump per table
    wp-content/                                                  content directory
"""

import logging
import re
from pathlib import Path

from wp_migrate.archive.base import (
    DIRECTORY,
    ZIP,
    Archive,
    FormatAdapter,
    MIN_SQL_FILES,
    consolidate_sql_files,
    dirs_named,
    list_members,
    match_members,
    sql_files_in,
)
from wp_migrate.errors import DiscoveryError

logger = logging.getLogger(__name__)

TEMP_DIR = "backupbuddy_temp"
TEMP_PATH = Path("wp-content") / "uploads" / TEMP_DIR
SIGNATURE_FILES = ("importbuddy.php", "backupbuddy_dat.php")
SIGNATURE_PATTERN = (
    r"(^|/)" + re.escape(TEMP_DIR) + r"/([^/]+/)?(importbuddy|backupbuddy_dat)\.php$"
)
CONSOLIDATED_FILE = "solidbackups-database-consolidated.sql"


class SolidBackupsAdapter(FormatAdapter):
    name = "solidbackups"
    display_name = "Solid Backups"
    containers = (ZIP, DIRECTORY)
    layout_hint = f"{TEMP_PATH}/<id>/importbuddy.php or backupbuddy_dat.php"

    def _validate(self, archive: Archive, container: str) -> bool:
        if container == DIRECTORY:
            temp = archive.path / TEMP_PATH
            if not temp.is_dir():
                return False
            return any(
                any(temp.glob(pattern)) for name in SIGNATURE_FILES for pattern in (name, f"*/{name}")
            )
        return bool(match_members(list_members(archive.path, container), SIGNATURE_PATTERN))

    def find_database(self, root: Path) -> Path:
        root = Path(root)
        for temp in dirs_named(root, TEMP_DIR):
            if temp.parent.name != "uploads":
                continue
            for backup_dir in sorted(p for p in temp.iterdir() if p.is_dir()):
                count = len(sql_files_in(backup_dir))
                logger.debug(f"  {backup_dir}: {count} SQL files")
                if count >= MIN_SQL_FILES:
                    output, _count = consolidate_sql_files(backup_dir, root / CONSOLIDATED_FILE)
                    return output
        raise DiscoveryError(
            "database dump", root, [f"{TEMP_PATH}/<id>/ with at least {MIN_SQL_FILES} .sql files"]
        )

    def find_content(self, root: Path) -> Path:
        content = Path(root) / "wp-content"
        if content.is_dir():
            return content
        return super().find_content(root)
