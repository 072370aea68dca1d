"""
Configuration module for wp-migrate.

Handles the locations an import run reads from and writes to.

Paths:
    - wp_path: WordPress root of the destination installation
    - snapshots_dir: pre-import database dumps and snapshot manifests
    - log_dir: per-run log files
    - work_dir: parent of temporary extraction directories

Every default can be overridden by an environment variable or an explicit
constructor argument (argument wins).
"""

import os
import tempfile
from pathlib import Path
from typing import Optional


class Config:
    """Configuration class for wp-migrate."""

    DEFAULT_SNAPSHOT_DIR_NAME = "db-backups"
    DEFAULT_LOG_DIR_NAME = "logs"
    DEFAULT_WP_BINARY = "wp"

    # Peak disk usage estimate: archive + extracted copy + working copies
    DEFAULT_SPACE_MULTIPLIER = 3

    # Historical snapshots kept after a successful import
    DEFAULT_SNAPSHOT_KEEP = 5

    def __init__(
        self,
        wp_path: Optional[str] = None,
        snapshots_dir: Optional[str] = None,
        log_dir: Optional[str] = None,
        work_dir: Optional[str] = None,
        wp_binary: Optional[str] = None,
        space_multiplier: Optional[int] = None,
        snapshot_keep: Optional[int] = None,
    ):
        """
        Initialize configuration.

        Args:
            wp_path: WordPress root. Defaults to $WP_MIGRATE_WP_PATH, then cwd.
            snapshots_dir: Snapshot directory. Defaults to $WP_MIGRATE_SNAPSHOT_DIR,
                    then <wp_path>/db-backups.
            log_dir: Log directory. Defaults to $WP_MIGRATE_LOG_DIR, then <wp_path>/logs.
            work_dir: Parent of temporary extraction directories. Defaults to
                    the system temp directory (honours TMPDIR).
            wp_binary: WP-CLI executable. Defaults to $WP_CLI_BIN, then "wp".
            space_multiplier: Disk space multiplier applied to the archive size.
            snapshot_keep: Number of historical snapshots kept by cleanup.
        """
        self._wp_path = Path(wp_path or os.getenv("WP_MIGRATE_WP_PATH") or Path.cwd())

        snapshots = snapshots_dir or os.getenv("WP_MIGRATE_SNAPSHOT_DIR")
        self._snapshots_dir = (
            Path(snapshots) if snapshots else self._wp_path / self.DEFAULT_SNAPSHOT_DIR_NAME
        )

        logs = log_dir or os.getenv("WP_MIGRATE_LOG_DIR")
        self._log_dir = Path(logs) if logs else self._wp_path / self.DEFAULT_LOG_DIR_NAME

        self._work_dir = Path(work_dir) if work_dir else Path(tempfile.gettempdir())
        self._wp_binary = wp_binary or os.getenv("WP_CLI_BIN") or self.DEFAULT_WP_BINARY

        self._space_multiplier = (
            space_multiplier if space_multiplier is not None else self.DEFAULT_SPACE_MULTIPLIER
        )
        self._snapshot_keep = (
            snapshot_keep if snapshot_keep is not None else self.DEFAULT_SNAPSHOT_KEEP
        )

    @property
    def wp_path(self) -> Path:
        """Get the WordPress root directory."""
        return self._wp_path

    @property
    def snapshots_dir(self) -> Path:
        """Get the snapshot directory."""
        return self._snapshots_dir

    @property
    def log_dir(self) -> Path:
        """Get the log directory."""
        return self._log_dir

    @property
    def work_dir(self) -> Path:
        """Get the parent directory for temporary extraction directories."""
        return self._work_dir

    @property
    def wp_binary(self) -> str:
        """Get the WP-CLI executable name or path."""
        return self._wp_binary

    @property
    def space_multiplier(self) -> int:
        return self._space_multiplier

    @property
    def snapshot_keep(self) -> int:
        return self._snapshot_keep

    def validate(self) -> bool:
        """
        Validate that the WordPress root exists and is a directory.

        Returns:
            True if wp_path is an existing directory, False otherwise.
        """
        return self._wp_path.is_dir() and os.access(self._wp_path, os.R_OK)

    def log_file_for(self, stamp: str) -> Path:
        """Path of the log file for an import run started at stamp."""
        return self._log_dir / f"migrate-archive-import-{stamp}.log"


# Global configuration instance
_config: Optional[Config] = None


def get_config(wp_path: Optional[str] = None) -> Config:
    """
    Get or create the global configuration instance.

    Args:
        wp_path: Optional WordPress root. Passing it rebuilds the configuration.

    Returns:
        Config instance.
    """
    global _config
    if _config is None or wp_path is not None:
        _config = Config(wp_path)
    return _config


def set_config(config: Config) -> None:
    """
    Set the global configuration instance.

    Args:
        config: Config instance to use.
    """
    global _config
    _config = config
