"""
wp-migrate - Import WordPress site backups into an existing installation.

This package provides functionality to:
- Detect native, Duplicator, Jetpack and Solid Backups archives
- Extract them safely and locate the database dump and wp-content
- Snapshot the destination, import, verify and roll back on failure
"""

__version__ = "0.1.0"

from wp_migrate.config import Config, get_config
from wp_migrate.importer import ImportOptions, ImportResult, run_import
from wp_migrate.rollback import rollback

__all__ = [
    "get_config",
    "Config",
    "ImportOptions",
    "ImportResult",
    "run_import",
    "rollback",
]
