"""
Error taxonomy for wp-migrate.

Errors are ordered by how far the import got before failing:

    ValidationError   no adapter matched / override rejected (nothing touched)
    AdmissionError    not enough disk space (nothing touched)
    ExtractionError   archive could not be unpacked (temp dir kept)
    PathSafetyError   unsafe archive entry (temp dir kept)
    DiscoveryError    database or content root missing (temp dir kept)
    SnapshotError     current site could not be captured (nothing touched)
    ImportPhaseError  destructive phase failed (rollback attempted)
    RollbackError     rollback itself failed (manual recovery required)

Only ImportPhaseError and RollbackError are raised after the first
destructive write.
"""

from pathlib import Path
from typing import List, Optional, Sequence


class MigrationError(Exception):
    """Base class for all wp-migrate failures."""


class ValidationError(MigrationError):
    """The archive format could not be recognized or the override did not validate."""

    def __init__(self, message: str, tried: Optional[Sequence[str]] = None):
        self.tried: List[str] = list(tried or [])
        if self.tried:
            message = f"{message}\nFormats tried: {', '.join(self.tried)}"
        super().__init__(message)


class ConfirmationError(MigrationError):
    """Interactive confirmation was required but is not possible."""


class AdmissionError(MigrationError):
    """Insufficient free space to extract and import the archive."""

    def __init__(self, path: Path, required: int, available: int):
        self.path = Path(path)
        self.required = required
        self.available = available
        super().__init__(
            f"Insufficient disk space at {self.path}: "
            f"required {required} bytes, available {available} bytes "
            f"(shortfall {required - available} bytes)"
        )


class ExtractionError(MigrationError):
    """The archive could not be extracted."""

    def __init__(self, message: str, temp_dir: Optional[Path] = None):
        self.temp_dir = temp_dir
        if temp_dir is not None:
            message = f"{message}\nExtraction directory kept for inspection: {temp_dir}"
        super().__init__(message)


class PathSafetyError(ExtractionError):
    """An archive entry would be written outside the extraction directory."""

    def __init__(self, entry: str, temp_dir: Optional[Path] = None):
        self.entry = entry
        super().__init__(f"Unsafe path in archive, extraction aborted: {entry!r}", temp_dir)


class DiscoveryError(MigrationError):
    """The database dump or content root was not found inside the archive."""

    def __init__(self, what: str, root: Path, expected: Sequence[str] = ()):
        self.what = what
        self.root = Path(root)
        self.expected = list(expected)
        message = f"Unable to locate {what} in extracted archive: {self.root}"
        if self.expected:
            message += "\nExpected: " + ", ".join(self.expected)
        super().__init__(message)


class SnapshotError(MigrationError):
    """The current database or content directory could not be captured."""


class CommandError(MigrationError):
    """An external command exited with a nonzero status."""

    def __init__(self, argv: Sequence[str], returncode: int, stderr: str = ""):
        self.argv = list(argv)
        self.returncode = returncode
        self.stderr = stderr.strip()
        message = f"Command failed (exit {returncode}): {' '.join(self.argv)}"
        if self.stderr:
            message += f"\n{self.stderr}"
        super().__init__(message)


class ImportPhaseError(MigrationError):
    """A destructive import step failed.

    ``rolled_back`` records whether the automatic rollback completed.
    """

    def __init__(self, message: str, rolled_back: bool = False):
        self.rolled_back = rolled_back
        super().__init__(message)


class PrefixResolutionError(ImportPhaseError):
    """No table prefix resolves all core tables of the imported database."""

    def __init__(self, candidates: Sequence[str], tables: Sequence[str]):
        self.candidates = list(candidates)
        self.tables = list(tables)
        shown = ", ".join(self.tables[:20]) or "(none)"
        if len(self.tables) > 20:
            shown += f", ... ({len(self.tables)} total)"
        super().__init__(
            "Could not resolve the imported table prefix. "
            f"Candidates tried: {', '.join(self.candidates) or '(none)'}. "
            f"Tables present: {shown}"
        )


class RollbackError(MigrationError):
    """Restoring a snapshot failed; the site may be inconsistent."""

    def __init__(
        self,
        message: str,
        database_path: Optional[Path] = None,
        content_backup: Optional[Path] = None,
        content_target: Optional[Path] = None,
        wp_path: Optional[Path] = None,
    ):
        self.database_path = database_path
        self.content_backup = content_backup
        self.content_target = content_target
        self.wp_path = wp_path
        super().__init__(f"{message}\n\n{self.recovery_instructions()}")

    def recovery_instructions(self) -> str:
        """Return the manual commands that restore the snapshot."""
        lines = ["Manual recovery required:"]
        path_flag = f" --path={self.wp_path}" if self.wp_path else ""
        if self.database_path:
            lines.append("  1. Restore database:")
            lines.append(f"       gunzip -c {self.database_path} | wp{path_flag} db import -")
        if self.content_backup and self.content_target:
            lines.append("  2. Restore content directory:")
            lines.append(f"       rm -rf {self.content_target}")
            lines.append(f"       cp -a {self.content_backup} {self.content_target}")
        return "\n".join(lines)
