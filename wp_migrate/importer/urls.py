"""
URL alignment after a database import.

The imported database carries the source site's home and siteurl. Every
occurrence is rewritten to the destination's URLs with search-replace,
including the forms serialized data and page builders store:

    https://old.example/      trailing slash as given
    https://old.example       trailing slash trimmed
    https:\\/\\/old.example   JSON-escaped slashes
    old.example               bare host
    //old.example             protocol-relative
"""

import logging
import re
from dataclasses import dataclass, field
from typing import List, Optional, Tuple

from wp_migrate.errors import CommandError
from wp_migrate.wpcli import WordPressCommands

logger = logging.getLogger(__name__)

Pair = Tuple[str, str]

_SCHEME = re.compile(r"^[A-Za-z][A-Za-z0-9+.-]*://")


@dataclass(frozen=True)
class SiteUrls:
    home: str
    siteurl: str

    @classmethod
    def read(cls, commands: WordPressCommands) -> "SiteUrls":
        return cls(home=commands.get_option("home"), siteurl=commands.get_option("siteurl"))


@dataclass
class UrlAlignment:
    """What URL alignment did."""

    pairs: List[Pair] = field(default_factory=list)
    replacements: int = 0
    failed: List[Pair] = field(default_factory=list)
    skipped: bool = False


def json_escape_slashes(value: str) -> str:
    return value.replace("\\", "\\\\").replace("/", "\\/")


def host_only(url: str) -> str:
    """Strip scheme, leading "//" and any path from url."""
    value = _SCHEME.sub("", url)
    if value.startswith("//"):
        value = value[2:]
    return value.split("/", 1)[0]


def _add_pair(pairs: List[Pair], old: str, new: str) -> None:
    if not old or not new or old == new:
        return
    if (old, new) not in pairs:
        pairs.append((old, new))


def add_variations(pairs: List[Pair], old: str, new: str) -> None:
    """Append old -> new and its slash and JSON variants, skipping duplicates."""
    if not old or not new:
        return
    _add_pair(pairs, old, new)

    old_trimmed = old[:-1] if old.endswith("/") else old
    new_trimmed = new[:-1] if new.endswith("/") else new
    _add_pair(pairs, old_trimmed, new_trimmed)
    _add_pair(pairs, old_trimmed + "/", new_trimmed + "/")

    _add_pair(pairs, json_escape_slashes(old), json_escape_slashes(new))
    old_json = json_escape_slashes(old_trimmed)
    new_json = json_escape_slashes(new_trimmed)
    _add_pair(pairs, old_json, new_json)
    _add_pair(pairs, old_json + "\\/", new_json + "\\/")


def build_replacements(imported: SiteUrls, original: SiteUrls) -> List[Pair]:
    """Ordered, de-duplicated search-replace pairs from imported to original URLs."""
    pairs: List[Pair] = []
    add_variations(pairs, imported.home, original.home)
    add_variations(pairs, imported.siteurl, original.siteurl)

    old_host = host_only(imported.home)
    new_host = host_only(original.home)
    if old_host and new_host:
        add_variations(pairs, old_host, new_host)
        add_variations(pairs, f"//{old_host}", f"//{new_host}")
    return pairs


def align_urls(
    commands: WordPressCommands,
    original: SiteUrls,
    enabled: bool = True,
    network: Optional[bool] = None,
) -> UrlAlignment:
    """
    Rewrite imported URLs to the destination's.

    Individual search-replace failures are logged and collected, not raised.

    Args:
        commands: WordPress command surface of the target.
        original: Destination URLs captured before the import.
        enabled: False only logs the mismatch (--no-search-replace).
        network: Multisite flag; detected when None.

    Returns:
        UrlAlignment with the pairs run and total replacement count.
    """
    imported = SiteUrls.read(commands)
    logger.info(f"Imported home URL: {imported.home}")
    logger.info(f"Imported site URL: {imported.siteurl}")
    result = UrlAlignment()

    if imported == original:
        logger.info("Imported URLs match destination URLs; no replacement needed.")
        return result

    if not enabled:
        result.skipped = True
        logger.info("Skipping URL alignment (--no-search-replace flag set)")
        logger.info(f"  Imported home: {imported.home}  destination home: {original.home}")
        logger.info(f"  Imported siteurl: {imported.siteurl}  destination siteurl: {original.siteurl}")
        return result

    if network is None:
        network = commands.is_multisite()
    result.pairs = build_replacements(imported, original)
    logger.info(f"Running {len(result.pairs)} search-replace operations...")
    for old, new in result.pairs:
        logger.info(f"  Replacing: {old} -> {new}")
        try:
            result.replacements += commands.search_replace(old, new, network=network)
        except CommandError as e:
            logger.warning(f"search-replace failed for: {old} -> {new}: {e}")
            result.failed.append((old, new))

    logger.info("Ensuring destination URLs are set correctly...")
    commands.set_option("home", original.home)
    commands.set_option("siteurl", original.siteurl)
    return result
