"""
Pytest fixtures for wp-migrate tests.

This module provides shared fixtures for testing detection, extraction and
the import pipeline without WP-CLI or a real database.

Fixture Categories:
    1. FakeWordPress, an in-memory WordPressCommands that records calls
    2. Destination site fixtures (wp-content tree, config, transport)
    3. Archive fixtures for every supported format (zip, tar.gz, directories)

Design Notes:
    - Fixtures use tmp_path for isolation between tests
    - Dumps use a small SQL subset: DROP TABLE, CREATE TABLE, INSERT INTO ... VALUES
    - Options rows are stored as "'name', 'value'" so get_option can read them back
"""

import hashlib
import json
import re
import tarfile
import zipfile
from collections import namedtuple
from pathlib import Path
from typing import Callable, Dict, List, Optional

import pytest

from wp_migrate.config import Config
from wp_migrate.errors import CommandError
from wp_migrate.transport import LocalTransport
from wp_migrate.wpcli import WordPressCommands

DEST_URL = "https://dest.example"
SOURCE_URL = "https://source.example"

_DROP = re.compile(r"^DROP TABLE IF EXISTS `([^`]+)`;$")
_CREATE = re.compile(r"^CREATE TABLE `([^`]+)`")
_INSERT = re.compile(r"^INSERT INTO `([^`]+)` VALUES \((.*)\);$")
_OPTION_ROW = re.compile(r"^'([^']*)', '(.*)'$")

DiskUsage = namedtuple("DiskUsage", ["total", "used", "free"])


def pytest_configure(config):
    config.addinivalue_line("markers", "property: hypothesis property-based tests")


# =============================================================================
# Fake WordPress command surface
# =============================================================================


def option_row(name: str, value: str) -> str:
    return f"'{name}', '{value}'"


def site_tables(prefix: str, home: str, posts: int = 2) -> Dict[str, List[str]]:
    """Rows of a small WordPress database using prefix and home URL."""
    return {
        f"{prefix}options": [
            option_row("home", home),
            option_row("siteurl", home),
            option_row("blogname", "Example"),
        ],
        f"{prefix}posts": [f"{i}, 'Post {i}', '{home}/?p={i}'" for i in range(1, posts + 1)],
        f"{prefix}postmeta": ["1, 1, '_edit_lock', '1700000000:1'"],
        f"{prefix}users": ["1, 'admin', 'admin@example.com'"],
        f"{prefix}usermeta": ["1, 1, 'nickname', 'admin'"],
        f"{prefix}comments": [],
        f"{prefix}terms": ["1, 'Uncategorized', 'uncategorized'"],
    }


def dump_tables(tables: Dict[str, List[str]]) -> str:
    lines: List[str] = []
    for table in sorted(tables):
        lines.append(f"DROP TABLE IF EXISTS `{table}`;")
        lines.append(f"CREATE TABLE `{table}` (id INT);")
        lines.extend(f"INSERT INTO `{table}` VALUES ({row});" for row in tables[table])
    return "\n".join(lines) + "\n"


def per_table_dumps(tables: Dict[str, List[str]]) -> Dict[str, str]:
    """One dump file per table, named <table>.sql."""
    return {f"{table}.sql": dump_tables({table: rows}) for table, rows in tables.items()}


class FakeWordPress(WordPressCommands):
    """
    In-memory WordPress installation.

    Tables map names to row strings. Every call is recorded in ``calls``.
    ``fail(method, error, times)`` makes the next calls to method raise.
    """

    MUTATING = {
        "import_database",
        "reset_database",
        "drop_table",
        "set_option",
        "search_replace",
        "set_table_prefix",
        "maintenance_mode",
        "flush_cache",
        "deactivate_plugin",
    }

    def __init__(self, wp_path: Path, prefix: str = "wp_", home: str = DEST_URL):
        self.wp_path = Path(wp_path)
        self.prefix = prefix
        self.tables: Dict[str, List[str]] = site_tables(prefix, home)
        self.calls: List[tuple] = []
        self.available_commands = set()
        self.maintenance = False
        self.multisite = False
        self.reset_supported = True
        self._failures: Dict[str, List[Exception]] = {}

    def fail(self, method: str, error: Optional[Exception] = None, times: int = 1) -> None:
        error = error or CommandError(["wp", method], 1, f"{method} failed")
        self._failures.setdefault(method, []).extend([error] * times)

    def _call(self, method: str, *args) -> None:
        self.calls.append((method, *args))
        pending = self._failures.get(method)
        if pending:
            raise pending.pop(0)

    def called(self, method: str) -> List[tuple]:
        return [c for c in self.calls if c[0] == method]

    @property
    def mutations(self) -> List[tuple]:
        return [c for c in self.calls if c[0] in self.MUTATING]

    def dump(self) -> str:
        return dump_tables(self.tables)

    def row_counts(self) -> Dict[str, int]:
        return {table: len(rows) for table, rows in self.tables.items()}

    def export_database(self, path: Path) -> Path:
        self._call("export_database", Path(path))
        Path(path).write_text(self.dump(), encoding="utf-8")
        return Path(path)

    def import_database(self, path: Path) -> None:
        self._call("import_database", Path(path))
        for line in Path(path).read_text(encoding="utf-8").splitlines():
            line = line.strip()
            drop = _DROP.match(line)
            if drop:
                self.tables.pop(drop.group(1), None)
                continue
            create = _CREATE.match(line)
            if create:
                self.tables[create.group(1)] = []
                continue
            insert = _INSERT.match(line)
            if insert:
                self.tables.setdefault(insert.group(1), []).append(insert.group(2))

    def reset_database(self) -> None:
        self._call("reset_database")
        if not self.reset_supported:
            raise CommandError(["wp", "db", "reset", "--yes"], 1, "reset not permitted")
        self.tables.clear()

    def drop_table(self, table: str) -> None:
        self._call("drop_table", table)
        self.tables.pop(table, None)

    def list_tables(self) -> List[str]:
        self._call("list_tables")
        return sorted(self.tables)

    def _options_table(self) -> List[str]:
        table = f"{self.prefix}options"
        if table not in self.tables:
            raise CommandError(["wp", "option", "get"], 1, f"Table '{table}' doesn't exist")
        return self.tables[table]

    def get_option(self, name: str) -> str:
        self._call("get_option", name)
        for row in self._options_table():
            match = _OPTION_ROW.match(row)
            if match and match.group(1) == name:
                return match.group(2)
        raise CommandError(["wp", "option", "get", name], 1, f"Could not get '{name}' option")

    def set_option(self, name: str, value: str) -> None:
        self._call("set_option", name, value)
        rows = self._options_table()
        for i, row in enumerate(rows):
            match = _OPTION_ROW.match(row)
            if match and match.group(1) == name:
                rows[i] = option_row(name, value)
                return
        rows.append(option_row(name, value))

    def search_replace(self, old: str, new: str, network: bool = False) -> int:
        self._call("search_replace", old, new, network)
        count = 0
        for rows in self.tables.values():
            for i, row in enumerate(rows):
                if old in row:
                    count += row.count(old)
                    rows[i] = row.replace(old, new)
        return count

    def get_table_prefix(self) -> str:
        self._call("get_table_prefix")
        return self.prefix

    def set_table_prefix(self, prefix: str) -> None:
        self._call("set_table_prefix", prefix)
        self.prefix = prefix

    def content_dir(self) -> Path:
        self._call("content_dir")
        return self.wp_path / "wp-content"

    def maintenance_mode(self, enabled: bool) -> None:
        self._call("maintenance_mode", enabled)
        self.maintenance = enabled

    def is_multisite(self) -> bool:
        self._call("is_multisite")
        return self.multisite

    def has_command(self, name: str) -> bool:
        self._call("has_command", name)
        return name in self.available_commands

    def flush_cache(self) -> None:
        self._call("flush_cache")

    def deactivate_plugin(self, name: str) -> None:
        self._call("deactivate_plugin", name)

    def core_version(self) -> Optional[str]:
        self._call("core_version")
        return "6.4.2"


# =============================================================================
# Destination site fixtures
# =============================================================================


def _write_files(root: Path, files: Dict[str, str]) -> None:
    for relative, content in files.items():
        target = root / relative
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(content, encoding="utf-8")


DEST_CONTENT_FILES = {
    "plugins/akismet/akismet.php": "<?php // akismet",
    "plugins/dest-only/dest-only.php": "<?php // destination only",
    "themes/twentytwentyfour/style.css": "/* dest theme */",
    "themes/dest-theme/style.css": "/* destination only theme */",
    "uploads/2024/01/photo.txt": "dest upload",
    "object-cache.php": "<?php // dest object cache",
    "mu-plugins/host-loader.php": "<?php // managed host",
    "mu-plugins.php": "<?php // mu loader",
}

SOURCE_CONTENT_FILES = {
    "plugins/akismet/akismet.php": "<?php // akismet from archive",
    "plugins/hello-dolly/hello.php": "<?php // hello",
    "themes/twentytwentyfour/style.css": "/* archive theme */",
    "uploads/2023/05/image.txt": "archive upload",
    "object-cache.php": "<?php // source object cache",
}


@pytest.fixture
def wp_site(tmp_path: Path) -> Path:
    """A destination WordPress root with a populated wp-content."""
    site = tmp_path / "site"
    (site / "wp-content").mkdir(parents=True)
    _write_files(site / "wp-content", DEST_CONTENT_FILES)
    (site / "wp-config.php").write_text("<?php\n$table_prefix = 'wp_';\n", encoding="utf-8")
    return site


@pytest.fixture
def fake_wp(wp_site: Path) -> FakeWordPress:
    """FakeWordPress bound to wp_site with wp_ tables and the destination URL."""
    return FakeWordPress(wp_site)


@pytest.fixture
def transport() -> LocalTransport:
    return LocalTransport()


@pytest.fixture
def config(tmp_path: Path, wp_site: Path) -> Config:
    """Config with every directory inside tmp_path."""
    return Config(
        wp_path=str(wp_site),
        snapshots_dir=str(tmp_path / "snapshots"),
        log_dir=str(tmp_path / "logs"),
        work_dir=str(tmp_path / "work"),
    )


@pytest.fixture
def plenty_of_space() -> Callable:
    return lambda path: DiskUsage(total=10**13, used=0, free=10**12)


def _digest_tree(root: Path) -> Dict[str, str]:
    digest: Dict[str, str] = {}
    for path in sorted(Path(root).rglob("*")):
        relative = path.relative_to(root).as_posix()
        if path.is_dir():
            digest[relative + "/"] = ""
        else:
            digest[relative] = hashlib.sha256(path.read_bytes()).hexdigest()
    return digest


@pytest.fixture
def tree_digest() -> Callable[[Path], Dict[str, str]]:
    """Function returning {relative path: sha256} for a directory tree."""
    return _digest_tree


# =============================================================================
# Archive builders
# =============================================================================


def zip_directory(source: Path, output: Path, extra: Optional[Dict[str, str]] = None) -> Path:
    """Zip every file under source (names relative to source)."""
    with zipfile.ZipFile(output, "w") as zf:
        for path in sorted(source.rglob("*")):
            if path.is_file():
                zf.write(path, path.relative_to(source).as_posix())
        for name, content in (extra or {}).items():
            zf.writestr(name, content)
    return output


def mark_zip_entry_encrypted(archive: Path, name: str) -> Path:
    """Set the encryption bit on name's central directory record, as password-protected backups do."""
    data = bytearray(archive.read_bytes())
    start = data.find(b"PK\x01\x02")
    while start != -1:
        name_length = int.from_bytes(data[start + 28 : start + 30], "little")
        if data[start + 46 : start + 46 + name_length] == name.encode():
            data[start + 8] |= 0x01
        start = data.find(b"PK\x01\x02", start + 46)
    archive.write_bytes(bytes(data))
    return archive


def tar_directory(source: Path, output: Path) -> Path:
    with tarfile.open(output, "w:gz") as tf:
        for path in sorted(source.iterdir()):
            tf.add(path, arcname=path.name)
    return output


def build_native_tree(root: Path, prefix: str = "wp_", home: str = SOURCE_URL) -> Path:
    tables = site_tables(prefix, home, posts=3)
    metadata = {
        "format_version": "1.0",
        "created_at": "2024-05-01T12:00:00Z",
        "site_url": home,
        "table_prefix": prefix,
        "table_count": len(tables),
    }
    _write_files(
        root,
        {
            "wpmigrate-backup.json": json.dumps(metadata),
            "database.sql": dump_tables(tables),
        },
    )
    _write_files(root / "wp-content", SOURCE_CONTENT_FILES)
    return root


def build_duplicator_tree(root: Path, prefix: str = "wp_", home: str = SOURCE_URL) -> Path:
    _write_files(
        root,
        {
            "installer.php": "<?php // duplicator installer",
            "dup-installer/dup-database__5f2a9c_20240501.sql": dump_tables(
                site_tables(prefix, home, posts=3)
            ),
            "dup-installer/main.installer.php": "<?php",
            "wp-admin/index.php": "<?php",
            "wp-config.php": "<?php",
        },
    )
    _write_files(root / "wp-content", SOURCE_CONTENT_FILES)
    return root


def build_jetpack_tree(root: Path, prefix: str = "wp_", home: str = SOURCE_URL) -> Path:
    _write_files(root, {"meta.json": json.dumps({"siteurl": home})})
    _write_files(root / "sql", per_table_dumps(site_tables(prefix, home, posts=3)))
    _write_files(root / "wp-content", SOURCE_CONTENT_FILES)
    return root


def build_solidbackups_tree(root: Path, prefix: str = "wp_", home: str = SOURCE_URL) -> Path:
    _write_files(root / "wp-content", SOURCE_CONTENT_FILES)
    temp = root / "wp-content" / "uploads" / "backupbuddy_temp" / "k3j4h5"
    _write_files(temp, {"importbuddy.php": "<?php // importbuddy"})
    _write_files(temp, per_table_dumps(site_tables(prefix, home, posts=3)))
    _write_files(root, {"wp-config.php": "<?php"})
    return root


def build_nextgen_tree(root: Path, prefix: str = "wp_", home: str = SOURCE_URL) -> Path:
    _write_files(root / "data", per_table_dumps(site_tables(prefix, home, posts=3)))
    _write_files(root / "files" / "wp-content", SOURCE_CONTENT_FILES)
    _write_files(root / "meta", {"backup.json": json.dumps({"type": "full"})})
    return root


@pytest.fixture
def native_archive(tmp_path: Path) -> Path:
    tree = build_native_tree(tmp_path / "build-native")
    return zip_directory(tree, tmp_path / "site-backup.zip")


@pytest.fixture
def make_native_archive(tmp_path: Path) -> Callable[..., Path]:
    """Factory for native archives with a chosen prefix, URL and extra entries."""

    def _make(prefix: str = "wp_", home: str = SOURCE_URL, extra: Optional[Dict[str, str]] = None) -> Path:
        tree = build_native_tree(tmp_path / f"build-native-{prefix}", prefix=prefix, home=home)
        return zip_directory(tree, tmp_path / f"native-{prefix}.zip", extra=extra)

    return _make


@pytest.fixture
def duplicator_archive(tmp_path: Path) -> Path:
    tree = build_duplicator_tree(tmp_path / "build-duplicator")
    return zip_directory(tree, tmp_path / "20240501_site_archive.zip")


@pytest.fixture
def jetpack_archive(tmp_path: Path) -> Path:
    tree = build_jetpack_tree(tmp_path / "build-jetpack")
    return tar_directory(tree, tmp_path / "jetpack-backup.tar.gz")


@pytest.fixture
def jetpack_directory(tmp_path: Path) -> Path:
    return build_jetpack_tree(tmp_path / "jetpack-extracted")


@pytest.fixture
def solidbackups_archive(tmp_path: Path) -> Path:
    tree = build_solidbackups_tree(tmp_path / "build-solid")
    return zip_directory(tree, tmp_path / "backup-example-full.zip")


@pytest.fixture
def nextgen_archive(tmp_path: Path) -> Path:
    tree = build_nextgen_tree(tmp_path / "build-nextgen")
    return zip_directory(tree, tmp_path / "nextgen-backup.zip")


@pytest.fixture
def nextgen_directory(tmp_path: Path) -> Path:
    return build_nextgen_tree(tmp_path / "nextgen-extracted")


@pytest.fixture
def all_archives(
    native_archive: Path,
    duplicator_archive: Path,
    jetpack_archive: Path,
    solidbackups_archive: Path,
    nextgen_archive: Path,
) -> Dict[str, Path]:
    """Adapter name -> archive of that format."""
    return {
        "wpmigrate": native_archive,
        "duplicator": duplicator_archive,
        "jetpack": jetpack_archive,
        "solidbackups": solidbackups_archive,
        "solidbackups_nextgen": nextgen_archive,
    }
