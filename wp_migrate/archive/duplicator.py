"""
Duplicator (Pro and Lite) archives.

Layout (zip):
    installer.php                         signature (optional in newer builds)
    dup-installer/dup-database__<id>.sql  database dump
    wp-content/ somewhere                 located by score
"""

import logging
from pathlib import Path

from wp_migrate.archive.base import (
    ZIP,
    Archive,
    FormatAdapter,
    list_members,
    match_members,
    wrapper_prefix,
)
from wp_migrate.errors import DiscoveryError

logger = logging.getLogger(__name__)

INSTALLER_FILE = "installer.php"
INSTALLER_DIR = "dup-installer"
DATABASE_PATTERN = r"(^|/)dup-installer/dup-database__[^/]*\.sql$"


class DuplicatorAdapter(FormatAdapter):
    name = "duplicator"
    display_name = "Duplicator"
    containers = (ZIP,)
    layout_hint = f"{INSTALLER_FILE} or {INSTALLER_DIR}/dup-database__*.sql"

    def _validate(self, archive: Archive, container: str) -> bool:
        names = list_members(archive.path, container)
        if wrapper_prefix(names) + INSTALLER_FILE in names:
            return True
        return bool(match_members(names, DATABASE_PATTERN))

    def find_database(self, root: Path) -> Path:
        root = Path(root)
        dumps = sorted(
            p for p in root.rglob("dup-database__*.sql") if p.is_file() and p.parent.name == INSTALLER_DIR
        )
        if not dumps:
            raise DiscoveryError("database dump", root, [f"{INSTALLER_DIR}/dup-database__*.sql"])
        if len(dumps) > 1:
            logger.warning(f"Multiple Duplicator dumps found, using {dumps[0].name}")
        return dumps[0]
