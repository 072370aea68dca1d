"""
Table prefix resolution after a database import.

The imported dump may use a different prefix than wp-config.php declares.
A candidate prefix is accepted when <prefix>options, <prefix>posts and
<prefix>users all exist. Candidates are tried in this order:

    1. the prefix declared in wp-config.php
    2. hints from the archive layout (e.g. Jetpack's options dump name)
    3. every prefix derived from a table ending in "options", sorted

The import wins: if the accepted prefix differs from the configuration,
wp-config.php is rewritten and the change is verified.
"""

import logging
from dataclasses import dataclass
from typing import Iterable, List, Optional, Sequence

from wp_migrate.errors import ImportPhaseError, PrefixResolutionError
from wp_migrate.safety import is_valid_table_name, is_valid_table_prefix
from wp_migrate.wpcli import WordPressCommands

logger = logging.getLogger(__name__)

CORE_SUFFIXES = ("options", "posts", "users")


@dataclass(frozen=True)
class PrefixResolution:
    """Outcome of resolving the imported table prefix."""

    configured: str
    resolved: str

    @property
    def changed(self) -> bool:
        return self.configured != self.resolved


def has_core_tables(prefix: str, tables: Iterable[str]) -> bool:
    """True if options, posts and users all exist under prefix."""
    present = set(tables)
    return all(f"{prefix}{suffix}" in present for suffix in CORE_SUFFIXES)


def derive_candidates(tables: Iterable[str]) -> List[str]:
    """Prefixes implied by every valid table name ending in "options"."""
    found = set()
    for table in tables:
        if table.endswith("options") and is_valid_table_name(table):
            prefix = table[: -len("options")]
            if is_valid_table_prefix(prefix):
                found.add(prefix)
    return sorted(found)


def candidate_prefixes(
    configured: str, tables: Sequence[str], hints: Sequence[str] = ()
) -> List[str]:
    """Ordered, de-duplicated candidate prefixes."""
    ordered: List[str] = []
    for prefix in [configured, *hints, *derive_candidates(tables)]:
        if prefix and is_valid_table_prefix(prefix) and prefix not in ordered:
            ordered.append(prefix)
    return ordered


def find_prefix(
    configured: str, tables: Sequence[str], hints: Sequence[str] = ()
) -> Optional[str]:
    """First candidate whose core tables all exist, or None."""
    for prefix in candidate_prefixes(configured, tables, hints):
        if has_core_tables(prefix, tables):
            return prefix
    return None


def resolve_prefix(
    commands: WordPressCommands, hints: Sequence[str] = ()
) -> PrefixResolution:
    """
    Resolve the imported prefix and align wp-config.php with it.

    Args:
        commands: WordPress command surface of the target installation.
        hints: Extra candidate prefixes suggested by the archive.

    Returns:
        PrefixResolution with the configured and resolved prefixes.

    Raises:
        PrefixResolutionError: If no candidate has all core tables.
        ImportPhaseError: If wp-config.php could not be updated.
    """
    configured = commands.get_table_prefix()
    tables = commands.list_tables()
    logger.info(f"Current wp-config.php table prefix: {configured}")

    resolved = find_prefix(configured, tables, hints)
    if resolved is None:
        raise PrefixResolutionError(candidate_prefixes(configured, tables, hints), tables)

    result = PrefixResolution(configured=configured, resolved=resolved)
    if not result.changed:
        logger.info(f"Imported tables use the configured prefix: {resolved}")
        return result

    logger.info(f"Updating wp-config.php table prefix: {configured} -> {resolved}")
    commands.set_table_prefix(resolved)
    actual = commands.get_table_prefix()
    if actual != resolved:
        raise ImportPhaseError(
            f"Failed to update table prefix to {resolved!r}; wp-config.php reports {actual!r}"
        )
    logger.info(f"Verified table prefix: {resolved}")
    return result
