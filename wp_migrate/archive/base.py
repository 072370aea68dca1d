"""
Shared archive helpers and the FormatAdapter interface.

Container handling:
    - zip: zipfile (symlink entries are skipped)
    - tar, tar.gz: tarfile (regular files and directories only)
    - directory: an already-extracted backup, copied instead of unpacked

Extraction is guarded in two passes. Every entry name is checked before
anything is written, so an unsafe entry aborts the run with an empty
destination. While writing, each target path is resolved again and must
stay inside the destination.
"""

import logging
import os
import re
import shutil
import stat
import sys
import tarfile
import zipfile
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, List, Optional, Sequence, Tuple

from wp_migrate.archive.locator import find_content_root
from wp_migrate.errors import DiscoveryError, ExtractionError, PathSafetyError
from wp_migrate.report import SkippedItems
from wp_migrate.safety import ensure_within, first_unsafe_path
from wp_migrate.utils import directory_size

logger = logging.getLogger(__name__)

ZIP = "zip"
TAR = "tar"
TAR_GZ = "tar.gz"
DIRECTORY = "directory"
UNKNOWN = "unknown"

GZIP_MAGIC = b"\x1f\x8b"
MIN_SQL_FILES = 5
SIGNATURE_READ_LIMIT = 1_048_576  # 1 MB


@dataclass(frozen=True)
class Archive:
    """An import source. Never modified."""

    path: Path
    size: int
    archive_type: Optional[str] = None

    @classmethod
    def from_path(cls, path, archive_type: Optional[str] = None) -> "Archive":
        """
        Build an Archive from a file or directory path.

        Raises:
            FileNotFoundError: If the path does not exist.
        """
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"Archive not found: {path}")
        size = directory_size(path) if path.is_dir() else path.stat().st_size
        return cls(path=path, size=size, archive_type=archive_type)

    @property
    def container(self) -> str:
        return detect_container(self.path)


@dataclass
class ExtractionResult:
    """Where an archive landed and what was found inside it."""

    temp_dir: Path
    database: Path
    content: Path
    prefix_hint: Optional[str] = None
    file_count: int = 0
    skipped: List[SkippedItems] = field(default_factory=list)


def detect_container(path: Path) -> str:
    """
    Identify the container type from file contents, not the extension.

    Returns:
        One of "zip", "tar", "tar.gz", "directory", "unknown".
    """
    path = Path(path)
    if path.is_dir():
        return DIRECTORY
    if not path.is_file():
        return UNKNOWN
    if zipfile.is_zipfile(path):
        return ZIP
    with open(path, "rb") as f:
        magic = f.read(2)
    if magic == GZIP_MAGIC:
        return TAR_GZ
    if tarfile.is_tarfile(path):
        return TAR
    return UNKNOWN


def normalize_member(name: str) -> str:
    """Strip leading "./" segments that tar writes for relative entries."""
    while name.startswith("./"):
        name = name[2:]
    return name


def list_members(path: Path, container: str) -> List[str]:
    """
    List entry names without extracting.

    Directory entries keep their trailing slash where the container
    records one. Names are normalized with normalize_member().
    """
    if container == ZIP:
        with zipfile.ZipFile(path) as zf:
            return [normalize_member(n) for n in zf.namelist()]
    if container in (TAR, TAR_GZ):
        with tarfile.open(path, "r:*") as tf:
            names = []
            for member in tf.getmembers():
                name = normalize_member(member.name)
                names.append(name + "/" if member.isdir() and not name.endswith("/") else name)
            return names
    raise ExtractionError(f"Cannot list entries of {path} (container: {container})")


def has_member(names: Sequence[str], path: str) -> bool:
    """True if path is a file entry, a directory entry, or a parent of any entry."""
    path = path.rstrip("/")
    directory = path + "/"
    return any(n == path or n.startswith(directory) for n in names)


def match_members(names: Iterable[str], pattern: str) -> List[str]:
    """Entries whose full name matches the regular expression pattern."""
    regex = re.compile(pattern)
    return [n for n in names if regex.search(n)]


def wrapper_prefix(names: Sequence[str]) -> str:
    """
    Return "dir/" when every entry sits under one top-level directory, else "".
    """
    tops = {n.split("/", 1)[0] for n in names if n}
    if len(tops) != 1:
        return ""
    top = tops.pop()
    if any(n == top for n in names):
        return ""
    return top + "/"


def read_member(path: Path, container: str, name: str, limit: int = SIGNATURE_READ_LIMIT) -> bytes:
    """
    Read one small entry (a signature or metadata file) without extracting.

    Raises:
        KeyError: If the entry does not exist.
        ExtractionError: If the entry is larger than limit.
    """
    if container == ZIP:
        with zipfile.ZipFile(path) as zf:
            info = zf.getinfo(name)
            if info.file_size > limit:
                raise ExtractionError(f"Entry {name} too large to inspect ({info.file_size} bytes)")
            return zf.read(info)
    if container in (TAR, TAR_GZ):
        with tarfile.open(path, "r:*") as tf:
            for member in tf.getmembers():
                if normalize_member(member.name) == name and member.isfile():
                    if member.size > limit:
                        raise ExtractionError(
                            f"Entry {name} too large to inspect ({member.size} bytes)"
                        )
                    handle = tf.extractfile(member)
                    assert handle is not None
                    return handle.read()
        raise KeyError(name)
    if container == DIRECTORY:
        target = ensure_within(path, name)
        if target.stat().st_size > limit:
            raise ExtractionError(f"Entry {name} too large to inspect")
        return target.read_bytes()
    raise ExtractionError(f"Cannot read entries of {path} (container: {container})")


def _progress_enabled() -> bool:
    return sys.stdout.isatty()


class _Progress:
    """Logs extraction progress in 10% steps when attached to a terminal."""

    def __init__(self, total: int, enabled: bool):
        self.total = max(total, 1)
        self.enabled = enabled
        self._last = -1

    def update(self, done: int) -> None:
        if not self.enabled:
            return
        percent = done * 100 // self.total
        if percent // 10 != self._last // 10:
            self._last = percent
            logger.info(f"Extracting: {percent}% ({done}/{self.total} entries)")


def _discard_contents(destination: Path) -> None:
    for child in destination.iterdir():
        if child.is_dir() and not child.is_symlink():
            shutil.rmtree(child, ignore_errors=True)
        else:
            child.unlink(missing_ok=True)


def _is_zip_symlink(info: zipfile.ZipInfo) -> bool:
    # Unix mode bits live in the high word of external_attr
    return stat.S_ISLNK(info.external_attr >> 16)


def _extract_zip(path: Path, destination: Path, show_progress: bool) -> SkippedItems:
    skipped = SkippedItems(stage="extract", reason="links or special files skipped")
    with zipfile.ZipFile(path) as zf:
        infos = zf.infolist()
        progress = _Progress(len(infos), show_progress)
        unsafe = first_unsafe_path(i.filename for i in infos)
        if unsafe is not None:
            raise PathSafetyError(unsafe, destination)
        for count, info in enumerate(infos, 1):
            if _is_zip_symlink(info):
                skipped.add(info.filename)
                continue
            ensure_within(destination, info.filename)
            zf.extract(info, destination)
            progress.update(count)
    return skipped


def _extract_tar(path: Path, destination: Path, show_progress: bool) -> SkippedItems:
    skipped = SkippedItems(stage="extract", reason="links or special files skipped")
    with tarfile.open(path, "r:*") as tf:
        members = tf.getmembers()
        progress = _Progress(len(members), show_progress)
        unsafe = first_unsafe_path(m.name for m in members)
        if unsafe is not None:
            raise PathSafetyError(unsafe, destination)
        for count, member in enumerate(members, 1):
            if not (member.isfile() or member.isdir()):
                skipped.add(member.name)
                continue
            ensure_within(destination, member.name)
            tf.extract(member, destination, filter="data")
            progress.update(count)
    return skipped


def _copy_directory(source: Path, destination: Path) -> SkippedItems:
    skipped = SkippedItems(stage="extract", reason="links or special files skipped")
    for dirpath, dirnames, filenames in os.walk(source):
        current = Path(dirpath)
        relative = current.relative_to(source)
        target_dir = ensure_within(destination, relative)
        target_dir.mkdir(parents=True, exist_ok=True)
        for name in list(dirnames):
            if (current / name).is_symlink():
                skipped.add(str(relative / name))
                dirnames.remove(name)
        for name in filenames:
            entry = current / name
            if entry.is_symlink() or not entry.is_file():
                skipped.add(str(relative / name))
                continue
            shutil.copy2(entry, ensure_within(destination, relative / name))
    return skipped


def safe_extract(
    path: Path, destination: Path, container: Optional[str] = None, show_progress: Optional[bool] = None
) -> SkippedItems:
    """
    Extract an archive (or copy a backup directory) into destination.

    Args:
        path: Archive file or backup directory.
        destination: Existing, empty directory owned by the current run.
        container: Container type; detected when omitted.
        show_progress: Log progress. Defaults to True only when stdout is a TTY.

    Returns:
        SkippedItems listing links and special files that were not written.

    Raises:
        PathSafetyError: An entry would land outside destination. Nothing
            from the archive is left in destination.
        ExtractionError: The archive is corrupt, encrypted or uses an
            unsupported compression method.
    """
    path = Path(path)
    destination = Path(destination)
    container = container or detect_container(path)
    enabled = _progress_enabled() if show_progress is None else show_progress

    logger.debug(f"Extracting {container} {path} -> {destination}")
    try:
        if container == ZIP:
            return _extract_zip(path, destination, enabled)
        if container in (TAR, TAR_GZ):
            return _extract_tar(path, destination, enabled)
        if container == DIRECTORY:
            return _copy_directory(path, destination)
    except PathSafetyError:
        _discard_contents(destination)
        raise
    except (zipfile.BadZipFile, tarfile.TarError, OSError, EOFError, RuntimeError) as e:
        # zipfile raises RuntimeError for encrypted entries and its NotImplementedError
        # subclass for unsupported compression methods
        raise ExtractionError(f"Failed to extract {path}: {e}", destination) from e
    raise ExtractionError(f"Unsupported container type for {path}: {container}", destination)


def sql_files_in(directory: Path) -> List[Path]:
    """Sorted *.sql files directly inside directory."""
    return sorted(p for p in directory.glob("*.sql") if p.is_file())


def consolidate_sql_files(
    directory: Path, output: Path, min_files: int = MIN_SQL_FILES
) -> Tuple[Path, int]:
    """
    Concatenate per-table dumps into one file.

    Files are joined in sorted name order, each followed by a newline.

    Returns:
        Tuple of the output path and the number of files joined.

    Raises:
        DiscoveryError: If directory holds fewer than min_files dumps.
    """
    files = sql_files_in(directory)
    if len(files) < min_files:
        raise DiscoveryError(
            "database dump",
            directory,
            [f"at least {min_files} .sql files (found {len(files)})"],
        )
    with open(output, "wb") as out:
        for sql_file in files:
            logger.debug(f"  Adding: {sql_file.name}")
            with open(sql_file, "rb") as src:
                shutil.copyfileobj(src, out)
            out.write(b"\n")
    logger.info(f"Consolidated {len(files)} SQL files into {output.name}")
    return output, len(files)


def dirs_named(root: Path, name: str) -> List[Path]:
    """Directories called name below root, shallowest first, then by path."""
    found = [p for p in root.rglob(name) if p.is_dir() and not p.is_symlink()]
    return sorted(found, key=lambda p: (len(p.relative_to(root).parts), str(p)))


class FormatAdapter(ABC):
    """
    Detection, extraction and discovery for one backup layout.

    Subclasses set the class attributes and implement _validate,
    find_database and (optionally) find_content.
    """

    name: str = ""
    display_name: str = ""
    required_tools: Tuple[str, ...] = ("wp",)
    containers: Tuple[str, ...] = (ZIP,)
    layout_hint: str = ""

    def validate(self, archive: Archive) -> bool:
        """
        Cheap, read-only check that archive has this adapter's layout.

        Never raises: any error means "not this format".
        """
        try:
            container = detect_container(archive.path)
            if container not in self.containers:
                logger.debug(f"{self.display_name}: container {container} not supported")
                return False
            return self._validate(archive, container)
        except Exception as e:
            logger.debug(f"{self.display_name}: validation error: {e}")
            return False

    @abstractmethod
    def _validate(self, archive: Archive, container: str) -> bool:
        """Format-specific signature check; may raise."""

    def extract(self, archive: Archive, destination: Path) -> SkippedItems:
        """Unpack archive into destination with every entry guarded."""
        return safe_extract(archive.path, destination)

    @abstractmethod
    def find_database(self, root: Path) -> Path:
        """
        Locate the SQL dump below root.

        Raises:
            DiscoveryError: If no dump is found.
        """

    def find_content(self, root: Path) -> Path:
        """
        Locate the wp-content directory below root using the locator.

        Raises:
            DiscoveryError: If no directory scores above zero.
        """
        candidate = find_content_root(root)
        if candidate is None:
            raise DiscoveryError("wp-content directory", root, ["plugins/", "themes/", "uploads/"])
        logger.info(
            f"Found wp-content: {candidate.path.relative_to(root)} (score {candidate.score})"
        )
        return candidate.path

    def prefix_hint(self, root: Path) -> Optional[str]:
        """Table prefix suggested by the archive layout, if any."""
        return None

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.name}>"
