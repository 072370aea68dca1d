"""
Disk-space admission check, run before anything is extracted.
"""

import logging
import shutil
from dataclasses import dataclass
from pathlib import Path
from typing import Callable

from wp_migrate.errors import AdmissionError
from wp_migrate.utils import format_bytes

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SpaceEstimate:
    """Required and available bytes at one location."""

    path: Path
    archive_size: int
    multiplier: int
    required: int
    available: int

    @property
    def sufficient(self) -> bool:
        return self.available >= self.required

    def __str__(self) -> str:
        return (
            f"required {format_bytes(self.required)} "
            f"({self.multiplier}x {format_bytes(self.archive_size)}), "
            f"available {format_bytes(self.available)} at {self.path}"
        )


def _existing_parent(path: Path) -> Path:
    path = Path(path).absolute()
    while not path.exists() and path != path.parent:
        path = path.parent
    return path


def estimate_space(
    archive_size: int,
    destination: Path,
    multiplier: int = 3,
    disk_usage: Callable = shutil.disk_usage,
) -> SpaceEstimate:
    """
    Estimate peak usage as multiplier times the archive size.

    Args:
        archive_size: Compressed archive size in bytes.
        destination: Directory on the filesystem that will hold the
            extracted copy. The nearest existing parent is measured.
        multiplier: Safety factor for extracted and working copies.
        disk_usage: Callable returning an object with a ``free`` attribute.

    Returns:
        SpaceEstimate for destination.
    """
    location = _existing_parent(destination)
    free = disk_usage(str(location)).free
    return SpaceEstimate(
        path=location,
        archive_size=archive_size,
        multiplier=multiplier,
        required=archive_size * multiplier,
        available=free,
    )


def check_disk_space(
    archive_size: int,
    destination: Path,
    multiplier: int = 3,
    disk_usage: Callable = shutil.disk_usage,
) -> SpaceEstimate:
    """
    Fail fast when destination cannot hold the extracted archive.

    Raises:
        AdmissionError: With both figures, if free space is insufficient.
    """
    estimate = estimate_space(archive_size, destination, multiplier, disk_usage)
    logger.info(f"Disk space check: {estimate}")
    if not estimate.sufficient:
        raise AdmissionError(estimate.path, estimate.required, estimate.available)
    return estimate
