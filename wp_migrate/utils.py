"""
Utility functions and classes for wp-migrate.
"""

import os
from datetime import datetime
from pathlib import Path
from typing import Optional

STAMP_FORMAT = "%Y%m%d-%H%M%S"


class Colors:
    """ANSI color codes for terminal output."""

    HEADER = "\033[95m"
    OKBLUE = "\033[94m"
    OKCYAN = "\033[96m"
    OKGREEN = "\033[92m"
    WARNING = "\033[93m"
    FAIL = "\033[91m"
    ENDC = "\033[0m"
    BOLD = "\033[1m"
    UNDERLINE = "\033[4m"


def make_stamp(moment: Optional[datetime] = None) -> str:
    """
    Format a timestamp the way snapshot and log file names use it.

    Args:
        moment: Time to format. Defaults to now.

    Returns:
        Stamp string (e.g., "20250115-103045").
    """
    return (moment or datetime.now()).strftime(STAMP_FORMAT)


def parse_stamp(stamp: str) -> Optional[datetime]:
    """Parse a stamp produced by make_stamp, or return None."""
    try:
        return datetime.strptime(stamp, STAMP_FORMAT)
    except ValueError:
        return None


def format_bytes(count: int) -> str:
    """
    Format a byte count with binary units.

    Args:
        count: Number of bytes.

    Returns:
        Formatted string (e.g., "512B", "1.5MB").
    """
    value = float(count)
    for unit in ("B", "KB", "MB", "GB"):
        if abs(value) < 1024:
            return f"{int(value)}{unit}" if unit == "B" else f"{value:.1f}{unit}"
        value /= 1024
    return f"{value:.1f}TB"


def directory_size(path: Path) -> int:
    """Total size in bytes of the regular files below path."""
    total = 0
    for dirpath, _dirnames, filenames in os.walk(path):
        for name in filenames:
            full = os.path.join(dirpath, name)
            if not os.path.islink(full):
                total += os.path.getsize(full)
    return total


def count_files(path: Path) -> int:
    """Number of regular files below path."""
    return sum(len(filenames) for _dirpath, _dirnames, filenames in os.walk(path))
