"""
Solid Backups NextGen archives.

A rewrite of the legacy format with no importbuddy signature:
    data/<prefix>_options.sql ...    one dump per table
    files/wp-content/                single site
    files/subdomains/<site>/wp-content/  multisite
    meta/                            optional metadata
"""

import logging
import re
from pathlib import Path
from typing import List, Optional

from wp_migrate.archive.base import (
    DIRECTORY,
    ZIP,
    Archive,
    FormatAdapter,
    MIN_SQL_FILES,
    consolidate_sql_files,
    dirs_named,
    has_member,
    list_members,
    match_members,
    sql_files_in,
    wrapper_prefix,
)
from wp_migrate.archive.locator import find_content_root, score_content_dir
from wp_migrate.errors import DiscoveryError

logger = logging.getLogger(__name__)

DATA_DIR = "data"
FILES_DIR = "files"
CONSOLIDATED_FILE = "solidbackups-nextgen-database-consolidated.sql"


def _best_subdomain_content(subdomains: Path) -> Optional[Path]:
    best: Optional[Path] = None
    best_score = 0
    for content in sorted(subdomains.rglob("wp-content")):
        if not content.is_dir():
            continue
        score = score_content_dir(content)
        logger.debug(f"    {content} (score {score})")
        if score > best_score:
            best, best_score = content, score
    return best


class SolidBackupsNextGenAdapter(FormatAdapter):
    name = "solidbackups_nextgen"
    display_name = "Solid Backups NextGen"
    containers = (ZIP, DIRECTORY)
    layout_hint = f"{DATA_DIR}/<prefix>_options.sql and {FILES_DIR}/"

    def _validate(self, archive: Archive, container: str) -> bool:
        if container == DIRECTORY:
            root = archive.path
            return (
                (root / DATA_DIR).is_dir()
                and (root / FILES_DIR).is_dir()
                and len(sql_files_in(root / DATA_DIR)) >= MIN_SQL_FILES
            )
        names = list_members(archive.path, container)
        wrap = wrapper_prefix(names)
        if not (has_member(names, wrap + DATA_DIR) and has_member(names, wrap + FILES_DIR)):
            return False
        return bool(match_members(names, "^" + re.escape(wrap + DATA_DIR) + r"/[^/]*_options\.sql$"))

    def find_database(self, root: Path) -> Path:
        # WordPress core and plugins ship data/ directories too
        root = Path(root)
        for candidate in dirs_named(root, DATA_DIR):
            count = len(sql_files_in(candidate))
            logger.debug(f"  {candidate}: {count} SQL files")
            if count >= MIN_SQL_FILES:
                output, _count = consolidate_sql_files(candidate, root / CONSOLIDATED_FILE)
                return output
        raise DiscoveryError(
            "database dump", root, [f"{DATA_DIR}/ with at least {MIN_SQL_FILES} .sql files"]
        )

    def find_content(self, root: Path) -> Path:
        root = Path(root)
        candidates: List[Path] = dirs_named(root, FILES_DIR)
        for candidate in candidates:
            direct = candidate / "wp-content"
            if direct.is_dir():
                if score_content_dir(direct) > 0:
                    return direct
                logger.debug(f"  {direct} lacks plugins/themes/uploads")
            elif (candidate / "subdomains").is_dir():
                best = _best_subdomain_content(candidate / "subdomains")
                if best is not None:
                    logger.info(f"Using multisite wp-content: {best.relative_to(root)}")
                    return best

        for candidate in candidates:
            found = find_content_root(candidate)
            if found is not None:
                return found.path

        raise DiscoveryError(
            "wp-content directory",
            root,
            [f"{FILES_DIR}/wp-content/", f"{FILES_DIR}/subdomains/<site>/wp-content/"],
        )
