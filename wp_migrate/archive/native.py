"""
Native wp-migrate backup format.

Layout (zip, written by wp_migrate.exporter):
    wpmigrate-backup.json   metadata, must carry format_version
    database.sql            full database export
    wp-content/             content directory
"""

import json
import logging
from pathlib import Path
from typing import Any, Dict, Optional

from wp_migrate.archive.base import ZIP, Archive, FormatAdapter, list_members, read_member
from wp_migrate.errors import DiscoveryError
from wp_migrate.safety import is_valid_table_prefix

logger = logging.getLogger(__name__)

METADATA_FILE = "wpmigrate-backup.json"
DATABASE_FILE = "database.sql"
CONTENT_DIR = "wp-content"
FORMAT_VERSION = "1.0"


def read_metadata(root: Path) -> Dict[str, Any]:
    """Load the metadata file from an extracted native backup."""
    with open(Path(root) / METADATA_FILE, encoding="utf-8") as f:
        return json.load(f)


class NativeAdapter(FormatAdapter):
    name = "wpmigrate"
    display_name = "wp-migrate Backup"
    containers = (ZIP,)
    layout_hint = f"{METADATA_FILE} (with format_version), {DATABASE_FILE}, {CONTENT_DIR}/"

    def _validate(self, archive: Archive, container: str) -> bool:
        if METADATA_FILE not in list_members(archive.path, container):
            return False
        metadata = json.loads(read_member(archive.path, container, METADATA_FILE).decode("utf-8"))
        if not isinstance(metadata, dict) or not metadata.get("format_version"):
            logger.debug(f"{METADATA_FILE} has no format_version")
            return False
        return True

    def find_database(self, root: Path) -> Path:
        database = Path(root) / DATABASE_FILE
        if not database.is_file():
            raise DiscoveryError("database dump", root, [DATABASE_FILE])
        return database

    def find_content(self, root: Path) -> Path:
        content = Path(root) / CONTENT_DIR
        if content.is_dir():
            return content
        return super().find_content(root)

    def prefix_hint(self, root: Path) -> Optional[str]:
        try:
            prefix = read_metadata(root).get("table_prefix")
        except (OSError, ValueError) as e:
            logger.debug(f"Could not read {METADATA_FILE}: {e}")
            return None
        if isinstance(prefix, str) and is_valid_table_prefix(prefix):
            return prefix
        return None
