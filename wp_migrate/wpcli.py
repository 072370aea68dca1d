"""
WordPress command surface.

WordPressCommands is the interface the importer uses for every database
and option operation. WpCli implements it by running WP-CLI as a
subprocess against an explicit --path, with plugins and themes skipped so
a broken extension in the imported site cannot break the import.

Every command line is logged at TRACE level before it runs.
"""

import logging
import re
import shlex
import subprocess
from abc import ABC, abstractmethod
from contextlib import contextmanager
from pathlib import Path
from typing import Callable, Iterator, List, Optional, Sequence

from wp_migrate.errors import CommandError
from wp_migrate.logger_config import TRACE
from wp_migrate.report import SkippedItems
from wp_migrate.safety import is_valid_table_name, is_valid_table_prefix

logger = logging.getLogger(__name__)

SEARCH_REPLACE_FLAGS = ("--skip-columns=guid",)

_CONFIG_PREFIX_LINE = re.compile(
    r"^(\s*\$table_prefix\s*=\s*)(['\"])[^'\"]*\2\s*;", re.MULTILINE
)


class WordPressCommands(ABC):
    """Operations the importer needs from a WordPress installation."""

    @abstractmethod
    def export_database(self, path: Path) -> Path:
        """Write a full SQL dump to path and return it."""

    @abstractmethod
    def import_database(self, path: Path) -> None:
        """Load an SQL dump into the database."""

    @abstractmethod
    def reset_database(self) -> None:
        """Drop every table in the database."""

    @abstractmethod
    def drop_table(self, table: str) -> None:
        """Drop one table. The name must pass is_valid_table_name()."""

    @abstractmethod
    def list_tables(self) -> List[str]:
        """All tables in the database, regardless of prefix."""

    @abstractmethod
    def get_option(self, name: str) -> str: ...

    @abstractmethod
    def set_option(self, name: str, value: str) -> None: ...

    @abstractmethod
    def search_replace(self, old: str, new: str, network: bool = False) -> int:
        """Replace old with new across the database; return the replacement count."""

    @abstractmethod
    def get_table_prefix(self) -> str:
        """Prefix currently declared in wp-config.php."""

    @abstractmethod
    def set_table_prefix(self, prefix: str) -> None:
        """Write prefix to wp-config.php."""

    @abstractmethod
    def content_dir(self) -> Path:
        """Absolute path of the installation's wp-content directory."""

    @abstractmethod
    def maintenance_mode(self, enabled: bool) -> None: ...

    @abstractmethod
    def is_multisite(self) -> bool: ...

    @abstractmethod
    def has_command(self, name: str) -> bool:
        """True if WP-CLI (including plugin commands) provides name."""

    @abstractmethod
    def flush_cache(self) -> None:
        """Flush the persistent object cache."""

    @abstractmethod
    def deactivate_plugin(self, name: str) -> None: ...

    @abstractmethod
    def core_version(self) -> Optional[str]: ...


class WpCli(WordPressCommands):
    """
    WP-CLI subprocess implementation.

    Args:
        wp_path: WordPress root passed as --path to every call.
        binary: WP-CLI executable.
        runner: subprocess.run compatible callable (injected by tests).
    """

    def __init__(self, wp_path: Path, binary: str = "wp", runner: Callable = subprocess.run):
        self.wp_path = Path(wp_path)
        self.binary = binary
        self._runner = runner

    def _argv(self, args: Sequence[str], skip_extensions: bool) -> List[str]:
        argv = [self.binary, f"--path={self.wp_path}"]
        if skip_extensions:
            argv += ["--skip-plugins", "--skip-themes"]
        return argv + list(args)

    def run(self, *args: str, skip_extensions: bool = True) -> str:
        """
        Run one WP-CLI command and return its stripped stdout.

        Raises:
            CommandError: If the command exits nonzero or cannot be started.
        """
        argv = self._argv(args, skip_extensions)
        logger.log(TRACE, shlex.join(argv))
        try:
            proc = self._runner(argv, capture_output=True, text=True, check=False)
        except OSError as e:
            raise CommandError(argv, 127, str(e)) from e
        if proc.returncode != 0:
            raise CommandError(argv, proc.returncode, proc.stderr or "")
        return (proc.stdout or "").strip()

    def succeeds(self, *args: str, skip_extensions: bool = True) -> bool:
        """Run a command used as a predicate: True on exit code 0."""
        try:
            self.run(*args, skip_extensions=skip_extensions)
        except CommandError:
            return False
        return True

    def export_database(self, path: Path) -> Path:
        self.run("db", "export", str(path), "--add-drop-table")
        return Path(path)

    def import_database(self, path: Path) -> None:
        self.run("db", "import", str(path))

    def reset_database(self) -> None:
        self.run("db", "reset", "--yes")

    def drop_table(self, table: str) -> None:
        if not is_valid_table_name(table):
            raise ValueError(f"Refusing to drop unrecognized table name: {table!r}")
        self.run("db", "query", f"DROP TABLE IF EXISTS `{table}`")

    def list_tables(self) -> List[str]:
        output = self.run("db", "tables", "--all-tables")
        return [line.strip() for line in output.splitlines() if line.strip()]

    def get_option(self, name: str) -> str:
        return self.run("option", "get", name)

    def set_option(self, name: str, value: str) -> None:
        self.run("option", "update", name, value)

    def search_replace(self, old: str, new: str, network: bool = False) -> int:
        args = ["search-replace", old, new, *SEARCH_REPLACE_FLAGS, "--format=count"]
        if network:
            args.append("--network")
        output = self.run(*args)
        try:
            return int(output.splitlines()[-1]) if output else 0
        except ValueError:
            logger.debug(f"Unexpected search-replace output: {output!r}")
            return 0

    def get_table_prefix(self) -> str:
        return self.run("db", "prefix")

    def set_table_prefix(self, prefix: str) -> None:
        """
        Write prefix with `wp config set`, editing wp-config.php directly if
        WP-CLI wrote a different value (it mishandles leading underscores).
        """
        if not is_valid_table_prefix(prefix):
            raise ValueError(f"Invalid table prefix: {prefix!r}")
        self.run("config", "set", "table_prefix", prefix, "--type=variable")
        if self.get_table_prefix() == prefix:
            return
        logger.warning("wp config set wrote a different prefix, editing wp-config.php directly")
        self._rewrite_config_prefix(prefix)

    def _rewrite_config_prefix(self, prefix: str) -> None:
        config_file = self.wp_path / "wp-config.php"
        text = config_file.read_text(encoding="utf-8")
        updated, count = _CONFIG_PREFIX_LINE.subn(
            lambda m: f"{m.group(1)}'{prefix}';", text, count=1
        )
        if count == 0:
            raise CommandError(["edit", str(config_file)], 1, "No $table_prefix line found")
        config_file.write_text(updated, encoding="utf-8")

    def content_dir(self) -> Path:
        return Path(self.run("eval", "echo WP_CONTENT_DIR;"))

    def maintenance_mode(self, enabled: bool) -> None:
        self.run("maintenance-mode", "activate" if enabled else "deactivate")

    def is_multisite(self) -> bool:
        return self.succeeds("core", "is-installed", "--network")

    def has_command(self, name: str) -> bool:
        return self.succeeds("cli", "has-command", name, skip_extensions=False)

    def flush_cache(self) -> None:
        self.run("redis", "flush", skip_extensions=False)

    def deactivate_plugin(self, name: str) -> None:
        self.run("plugin", "deactivate", name)

    def core_version(self) -> Optional[str]:
        try:
            return self.run("core", "version") or None
        except CommandError as e:
            logger.debug(f"Could not read WordPress version: {e}")
            return None


def clear_database(commands: WordPressCommands) -> SkippedItems:
    """
    Empty the database before an import.

    Falls back to dropping tables one by one when `db reset` fails. Only
    names accepted by is_valid_table_name() are dropped; the rest are
    reported as skipped.
    """
    skipped = SkippedItems(stage="database reset", reason="tables left in place (unrecognized name)")
    try:
        commands.reset_database()
        return skipped
    except CommandError as e:
        logger.warning(f"Database reset failed, dropping tables individually: {e}")

    for table in commands.list_tables():
        if not is_valid_table_name(table):
            skipped.add(table)
            continue
        commands.drop_table(table)
    if skipped:
        logger.warning(str(skipped))
    return skipped


@contextmanager
def maintenance_lock(commands: WordPressCommands) -> Iterator[None]:
    """
    Hold WordPress maintenance mode for the duration of the block.

    A failure to enable propagates before the block runs. A failure to
    disable is logged and swallowed so it cannot mask the block's outcome.
    """
    logger.info("Enabling maintenance mode on destination...")
    commands.maintenance_mode(True)
    try:
        yield
    finally:
        logger.info("Disabling maintenance mode...")
        try:
            commands.maintenance_mode(False)
        except CommandError as e:
            logger.warning(f"Failed to disable maintenance mode: {e}")
