"""
Adapter registry and format detection.

Adapters are tried in a fixed order, native format first. The first
adapter whose validate() succeeds is bound for the rest of the run.
"""

import logging
from typing import List, Optional, Sequence

from wp_migrate.archive.base import Archive, FormatAdapter
from wp_migrate.archive.duplicator import DuplicatorAdapter
from wp_migrate.archive.jetpack import JetpackAdapter
from wp_migrate.archive.native import NativeAdapter
from wp_migrate.archive.solidbackups import SolidBackupsAdapter
from wp_migrate.archive.solidbackups_nextgen import SolidBackupsNextGenAdapter
from wp_migrate.errors import ValidationError

logger = logging.getLogger(__name__)

ALIASES = {
    "native": "wpmigrate",
    "wp_migrate": "wpmigrate",
    "backupbuddy": "solidbackups",
    "solid_backups": "solidbackups",
    "nextgen": "solidbackups_nextgen",
    "solid_backups_nextgen": "solidbackups_nextgen",
}


def default_adapters() -> List[FormatAdapter]:
    """All supported adapters in detection order."""
    return [
        NativeAdapter(),
        DuplicatorAdapter(),
        JetpackAdapter(),
        SolidBackupsAdapter(),
        SolidBackupsNextGenAdapter(),
    ]


def normalize_name(name: str) -> str:
    key = name.strip().lower().replace("-", "_")
    return ALIASES.get(key, key)


class AdapterRegistry:
    """Ordered collection of format adapters."""

    def __init__(self, adapters: Optional[Sequence[FormatAdapter]] = None):
        self._adapters: List[FormatAdapter] = list(adapters) if adapters else default_adapters()

    @property
    def adapters(self) -> List[FormatAdapter]:
        return list(self._adapters)

    @property
    def names(self) -> List[str]:
        return [adapter.name for adapter in self._adapters]

    def get(self, name: str) -> FormatAdapter:
        """
        Look up an adapter by name (case, "-" and "_" insensitive).

        Raises:
            ValidationError: If no adapter has that name.
        """
        key = normalize_name(name)
        for adapter in self._adapters:
            if adapter.name == key:
                return adapter
        raise ValidationError(
            f"Unknown archive type: {name}. Available types: {', '.join(self.names)}"
        )

    def detect(self, archive: Archive) -> FormatAdapter:
        """
        Bind the adapter for archive.

        An explicit archive.archive_type skips detection but must still
        validate.

        Raises:
            ValidationError: If the override does not validate or no adapter matches.
        """
        if archive.archive_type:
            adapter = self.get(archive.archive_type)
            logger.info(f"Using specified format: {adapter.display_name}")
            if not adapter.validate(archive):
                raise ValidationError(
                    f"Archive {archive.path} is not a valid {adapter.display_name} backup.\n"
                    f"Expected: {adapter.layout_hint}",
                    tried=[adapter.display_name],
                )
            return adapter

        logger.info("Auto-detecting archive format...")
        tried = []
        for adapter in self._adapters:
            tried.append(adapter.display_name)
            logger.debug(f"  Trying {adapter.display_name}...")
            if adapter.validate(archive):
                logger.info(f"Detected format: {adapter.display_name}")
                return adapter
        raise ValidationError(f"Unable to detect archive format: {archive.path}", tried=tried)
