"""
Pure validators guarding archive paths and database identifiers.

Nothing in this module touches the filesystem or the database, except
ensure_within(), which resolves paths to compare them.
"""

import logging
import re
from pathlib import Path
from typing import Iterable, Optional, Tuple, Union

from wp_migrate.errors import PathSafetyError

logger = logging.getLogger(__name__)

# A ".." segment touching a separator on either side, or a bare "..".
_TRAVERSAL = re.compile(r"(^|[/\\])\.\.([/\\]|$)")
_DRIVE_LETTER = re.compile(r"^[A-Za-z]:")

# Core WordPress table names without prefix, single site then multisite.
TABLE_STEMS: Tuple[str, ...] = (
    "commentmeta",
    "comments",
    "links",
    "options",
    "postmeta",
    "posts",
    "term_relationships",
    "term_taxonomy",
    "termmeta",
    "terms",
    "usermeta",
    "users",
    "blogmeta",
    "blogs",
    "blog_versions",
    "registration_log",
    "signups",
    "site",
    "sitemeta",
)

# Keywords that could chain a second statement if a name were ever split on "_".
_SQL_KEYWORDS = frozenset(
    {"or", "and", "union", "select", "drop", "delete", "insert", "update", "where"}
)

_TABLE_NAME = re.compile(
    r"(?P<prefix>[A-Za-z0-9_]*?)(?P<stem>"
    + "|".join(sorted((re.escape(s) for s in TABLE_STEMS), key=len, reverse=True))
    + r")"
)
_IDENTIFIER = re.compile(r"[A-Za-z0-9_]+")

PathLike = Union[str, Path]


def is_safe_archive_path(name: str) -> bool:
    """
    Decide whether an archive entry name can be extracted safely.

    Rejects traversal structure (".." next to "/" or "\\"), absolute names
    and drive-letter prefixes. A ".." inside a longer token such as
    "John-Smith-Jr..jpg" is accepted.

    Args:
        name: Entry name exactly as stored in the archive.

    Returns:
        True if the entry stays inside the extraction directory.
    """
    if not name:
        return False
    if name[0] in "/\\":
        return False
    if _DRIVE_LETTER.match(name):
        return False
    if "\x00" in name:
        return False
    return _TRAVERSAL.search(name) is None


def first_unsafe_path(names: Iterable[str]) -> Optional[str]:
    """Return the first unsafe entry name, or None if all are safe."""
    for name in names:
        if not is_safe_archive_path(name):
            return name
    return None


def ensure_within(root: PathLike, candidate: PathLike) -> Path:
    """
    Resolve candidate and require it to be root or a descendant of root.

    Args:
        root: Directory that must contain the candidate.
        candidate: Path to check (absolute, or relative to root).

    Returns:
        The resolved candidate path.

    Raises:
        PathSafetyError: If the candidate resolves outside root.
    """
    root_path = Path(root).resolve()
    candidate_path = Path(candidate)
    if not candidate_path.is_absolute():
        candidate_path = root_path / candidate_path
    resolved = candidate_path.resolve()
    if resolved != root_path and root_path not in resolved.parents:
        raise PathSafetyError(str(candidate), root_path)
    return resolved


def is_valid_table_prefix(prefix: str) -> bool:
    """True if prefix is a non-empty string of letters, digits and underscores."""
    return bool(prefix) and _IDENTIFIER.fullmatch(prefix) is not None


def is_valid_table_name(name: str) -> bool:
    """
    Check a table name against the known WordPress schema vocabulary.

    The name must be letters, digits and underscores only, and must be one
    of TABLE_STEMS optionally preceded by a prefix (e.g. "wp_options",
    "custom_posts", "wp_2_postmeta"). Underscore-separated SQL keywords
    are rejected anywhere in the name.

    Args:
        name: Candidate table name.

    Returns:
        True if the name may be used in a generated statement.
    """
    if not name or _IDENTIFIER.fullmatch(name) is None:
        return False
    if _TABLE_NAME.fullmatch(name) is None:
        return False
    tokens = name.lower().split("_")
    if any(token in _SQL_KEYWORDS for token in tokens):
        logger.debug(f"Rejected table name with SQL keyword token: {name}")
        return False
    return True


def split_table_name(name: str) -> Optional[Tuple[str, str]]:
    """
    Split a valid table name into (prefix, stem).

    Returns:
        Tuple of prefix and stem, or None if the name is not valid.
    """
    if not is_valid_table_name(name):
        return None
    match = _TABLE_NAME.fullmatch(name)
    assert match is not None
    return match.group("prefix"), match.group("stem")
