"""
Jetpack Backup (VaultPress) downloads.

Layout (tar.gz, tar or zip, or the extracted directory):
    meta.json               manifest
    sql/<prefix>options.sql one dump per table
    wp-content/             content directory

The per-table dumps are joined into one file inside the extraction
directory. The options dump's file name gives the original table prefix.
"""

import logging
import re
from pathlib import Path
from typing import Optional

from wp_migrate.archive.base import (
    DIRECTORY,
    TAR,
    TAR_GZ,
    ZIP,
    Archive,
    FormatAdapter,
    MIN_SQL_FILES,
    consolidate_sql_files,
    dirs_named,
    list_members,
    match_members,
    sql_files_in,
    wrapper_prefix,
)
from wp_migrate.errors import DiscoveryError
from wp_migrate.safety import is_valid_table_prefix

logger = logging.getLogger(__name__)

MANIFEST_FILE = "meta.json"
SQL_DIR = "sql"
CONSOLIDATED_FILE = "jetpack-database-consolidated.sql"
OPTIONS_SUFFIX = "options.sql"


class JetpackAdapter(FormatAdapter):
    name = "jetpack"
    display_name = "Jetpack Backup"
    containers = (TAR_GZ, TAR, ZIP, DIRECTORY)
    layout_hint = f"{MANIFEST_FILE}, {SQL_DIR}/<prefix>options.sql, wp-content/"

    def _validate(self, archive: Archive, container: str) -> bool:
        if container == DIRECTORY:
            root = archive.path
            return (
                (root / MANIFEST_FILE).is_file()
                and (root / SQL_DIR).is_dir()
                and any((root / SQL_DIR).glob(f"*{OPTIONS_SUFFIX}"))
            )
        names = list_members(archive.path, container)
        wrap = wrapper_prefix(names)
        if wrap + MANIFEST_FILE not in names:
            return False
        pattern = "^" + re.escape(wrap + SQL_DIR + "/") + r"[A-Za-z0-9_]*options\.sql$"
        return bool(match_members(names, pattern))

    def _sql_dir(self, root: Path) -> Path:
        for candidate in dirs_named(root, SQL_DIR):
            count = len(sql_files_in(candidate))
            logger.debug(f"  {candidate}: {count} SQL files")
            if count >= MIN_SQL_FILES:
                return candidate
        raise DiscoveryError(
            "database dump", root, [f"{SQL_DIR}/ with at least {MIN_SQL_FILES} .sql files"]
        )

    def find_database(self, root: Path) -> Path:
        root = Path(root)
        output, _count = consolidate_sql_files(self._sql_dir(root), root / CONSOLIDATED_FILE)
        return output

    def find_content(self, root: Path) -> Path:
        content = Path(root) / "wp-content"
        if content.is_dir():
            return content
        return super().find_content(root)

    def prefix_hint(self, root: Path) -> Optional[str]:
        try:
            sql_dir = self._sql_dir(Path(root))
        except DiscoveryError:
            return None
        for dump in sql_files_in(sql_dir):
            if dump.name.endswith(OPTIONS_SUFFIX):
                prefix = dump.name[: -len(OPTIONS_SUFFIX)]
                if is_valid_table_prefix(prefix):
                    logger.debug(f"Prefix hint from {dump.name}: {prefix}")
                    return prefix
        return None
