"""
Post-import verification.

These checks run in the Verifying state. Any failed check fails the
import, which triggers an automatic rollback.

Validation Checks:
    1. Core tables (options, posts, users) exist under the resolved prefix
    2. wp-config.php declares the resolved prefix
    3. home and siteurl match the destination (when URLs were aligned)
    4. The content directory exists and looks like wp-content
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional

from wp_migrate.archive.locator import score_content_dir
from wp_migrate.errors import CommandError
from wp_migrate.importer.urls import SiteUrls
from wp_migrate.prefix import CORE_SUFFIXES
from wp_migrate.wpcli import WordPressCommands

logger = logging.getLogger(__name__)


@dataclass
class ValidationCheck:
    """Result of a single validation check."""

    name: str
    passed: bool
    message: str
    details: Optional[str] = None


@dataclass
class ValidationResult:
    """Result of all validation checks."""

    passed: bool
    checks: List[ValidationCheck] = field(default_factory=list)
    summary: str = ""

    def __str__(self) -> str:
        lines = []
        for check in self.checks:
            icon = "✓" if check.passed else "✗"
            lines.append(f"{icon} {check.name}: {check.message}")
            if check.details and not check.passed:
                lines.append(f"  → {check.details}")

        status = "All checks passed" if self.passed else "Some checks failed"
        lines.append(f"\n{status}.")
        return "\n".join(lines)


def check_core_tables(commands: WordPressCommands, prefix: str) -> ValidationCheck:
    """Verify options, posts and users exist under prefix."""
    tables = set(commands.list_tables())
    missing = [f"{prefix}{s}" for s in CORE_SUFFIXES if f"{prefix}{s}" not in tables]
    return ValidationCheck(
        name="Core tables",
        passed=not missing,
        message=f"{len(CORE_SUFFIXES) - len(missing)}/{len(CORE_SUFFIXES)} present for prefix {prefix}",
        details=f"Missing: {', '.join(missing)}" if missing else None,
    )


def check_table_prefix(commands: WordPressCommands, expected: str) -> ValidationCheck:
    """Verify wp-config.php declares the expected prefix."""
    actual = commands.get_table_prefix()
    return ValidationCheck(
        name="Table prefix",
        passed=actual == expected,
        message=f"wp-config.php prefix is {actual}",
        details=f"Expected {expected}" if actual != expected else None,
    )


def check_site_urls(commands: WordPressCommands, expected: SiteUrls) -> ValidationCheck:
    """Verify home and siteurl match the destination's original values."""
    actual = SiteUrls.read(commands)
    return ValidationCheck(
        name="Site URLs",
        passed=actual == expected,
        message=f"home={actual.home} siteurl={actual.siteurl}",
        details=f"Expected home={expected.home} siteurl={expected.siteurl}"
        if actual != expected
        else None,
    )


def check_content_dir(content_dir: Path) -> ValidationCheck:
    """Verify the content directory exists and has plugins/themes/uploads."""
    content_dir = Path(content_dir)
    if not content_dir.is_dir():
        return ValidationCheck(
            name="wp-content", passed=False, message=f"{content_dir} does not exist"
        )
    score = score_content_dir(content_dir)
    return ValidationCheck(
        name="wp-content",
        passed=score > 0,
        message=f"{content_dir} (score {score}/3)",
        details="No plugins/, themes/ or uploads/ directory" if score == 0 else None,
    )


def validate_import(
    commands: WordPressCommands,
    content_dir: Path,
    prefix: str,
    expected_urls: Optional[SiteUrls] = None,
) -> ValidationResult:
    """
    Run all post-import checks.

    Args:
        commands: WordPress command surface of the target.
        content_dir: The target's wp-content directory.
        prefix: The resolved table prefix.
        expected_urls: Destination URLs, checked only when given.

    Returns:
        ValidationResult with every check.
    """
    checks: List[ValidationCheck] = []
    try:
        checks.append(check_core_tables(commands, prefix))
        checks.append(check_table_prefix(commands, prefix))
        if expected_urls is not None:
            checks.append(check_site_urls(commands, expected_urls))
    except CommandError as e:
        checks.append(ValidationCheck(name="WordPress", passed=False, message=str(e)))
    checks.append(check_content_dir(content_dir))

    passed = all(c.passed for c in checks)
    failed = [c.name for c in checks if not c.passed]
    summary = "All checks passed" if passed else f"Failed: {', '.join(failed)}"
    result = ValidationResult(passed=passed, checks=checks, summary=summary)
    for line in str(result).splitlines():
        if line:
            logger.info(line)
    return result
