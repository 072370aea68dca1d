"""
Filesystem transport.

FileTransport is the interface for the file operations the importer
performs on the target installation. LocalTransport implements them with
shutil and os for an installation on the local disk.

sync_tree() follows rsync "-a --delete" semantics with root-anchored
excludes: "/object-cache.php" matches only at the top of the tree, and a
trailing slash ("/mu-plugins/") matches only a directory. Excluded paths
are neither copied nor deleted.
"""

import logging
import os
import shutil
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Sequence

logger = logging.getLogger(__name__)


@dataclass
class SyncResult:
    """What a sync changed in the destination."""

    copied: int = 0
    deleted: int = 0
    excluded: List[str] = field(default_factory=list)


def _is_excluded(relative: str, is_dir: bool, excludes: Sequence[str]) -> bool:
    for pattern in excludes:
        anchored = pattern.startswith("/")
        dir_only = pattern.endswith("/")
        name = pattern.strip("/")
        target = relative if anchored else relative.rsplit("/", 1)[-1]
        if target == name and (is_dir or not dir_only):
            return True
    return False


def _remove(path: Path) -> None:
    if path.is_dir() and not path.is_symlink():
        shutil.rmtree(path)
    else:
        path.unlink()


class FileTransport(ABC):
    """File operations against the target installation."""

    @abstractmethod
    def copy_tree(self, source: Path, destination: Path) -> None:
        """Copy source to a new destination, preserving links and metadata."""

    @abstractmethod
    def sync_tree(
        self, source: Path, destination: Path, excludes: Sequence[str] = (), delete: bool = True
    ) -> SyncResult:
        """Make destination mirror source, leaving excluded paths alone."""

    @abstractmethod
    def make_dirs(self, path: Path) -> None: ...

    @abstractmethod
    def remove_tree(self, path: Path) -> None: ...

    @abstractmethod
    def exists(self, path: Path) -> bool: ...


class LocalTransport(FileTransport):
    """Transport for an installation on the local filesystem."""

    def copy_tree(self, source: Path, destination: Path) -> None:
        logger.debug(f"Copying {source} -> {destination}")
        shutil.copytree(source, destination, symlinks=True)

    def sync_tree(
        self, source: Path, destination: Path, excludes: Sequence[str] = (), delete: bool = True
    ) -> SyncResult:
        source = Path(source)
        destination = Path(destination)
        result = SyncResult()
        destination.mkdir(parents=True, exist_ok=True)
        logger.debug(f"Syncing {source}/ -> {destination}/ (excludes: {list(excludes)})")

        keep = set()
        for dirpath, dirnames, filenames in os.walk(source):
            current = Path(dirpath)
            rel_dir = current.relative_to(source)

            for name in list(dirnames):
                rel = (rel_dir / name).as_posix()
                src_entry = current / name
                if _is_excluded(rel, True, excludes):
                    result.excluded.append(rel + "/")
                    dirnames.remove(name)
                    continue
                keep.add(rel)
                dst_entry = destination / rel
                if src_entry.is_symlink():
                    dirnames.remove(name)
                    self._copy_link(src_entry, dst_entry)
                    result.copied += 1
                    continue
                if dst_entry.exists() and (dst_entry.is_symlink() or not dst_entry.is_dir()):
                    _remove(dst_entry)
                dst_entry.mkdir(exist_ok=True)
                shutil.copystat(src_entry, dst_entry)

            for name in filenames:
                rel = (rel_dir / name).as_posix()
                if _is_excluded(rel, False, excludes):
                    result.excluded.append(rel)
                    continue
                keep.add(rel)
                src_entry = current / name
                dst_entry = destination / rel
                if src_entry.is_symlink():
                    self._copy_link(src_entry, dst_entry)
                else:
                    if dst_entry.is_dir() and not dst_entry.is_symlink():
                        shutil.rmtree(dst_entry)
                    elif dst_entry.is_symlink():
                        dst_entry.unlink()
                    shutil.copy2(src_entry, dst_entry)
                result.copied += 1

        if delete:
            result.deleted = self._delete_extraneous(destination, keep, excludes)
        logger.info(
            f"Synced {result.copied} entries, deleted {result.deleted}, excluded {len(result.excluded)}"
        )
        return result

    @staticmethod
    def _copy_link(source: Path, destination: Path) -> None:
        if destination.exists() or destination.is_symlink():
            _remove(destination)
        os.symlink(os.readlink(source), destination)

    @staticmethod
    def _delete_extraneous(destination: Path, keep: set, excludes: Sequence[str]) -> int:
        deleted = 0
        for dirpath, dirnames, filenames in os.walk(destination, topdown=True):
            current = Path(dirpath)
            rel_dir = current.relative_to(destination)
            for name in list(dirnames):
                rel = (rel_dir / name).as_posix()
                if _is_excluded(rel, True, excludes):
                    dirnames.remove(name)
                elif rel not in keep:
                    _remove(current / name)
                    dirnames.remove(name)
                    deleted += 1
            for name in filenames:
                rel = (rel_dir / name).as_posix()
                if rel not in keep and not _is_excluded(rel, False, excludes):
                    (current / name).unlink()
                    deleted += 1
        return deleted

    def make_dirs(self, path: Path) -> None:
        Path(path).mkdir(parents=True, exist_ok=True)

    def remove_tree(self, path: Path) -> None:
        path = Path(path)
        if path.exists() or path.is_symlink():
            _remove(path)

    def exists(self, path: Path) -> bool:
        return Path(path).exists()
