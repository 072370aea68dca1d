"""
Backup archive formats: detection, guarded extraction and discovery.
"""

from wp_migrate.archive.base import Archive, ExtractionResult, FormatAdapter, safe_extract
from wp_migrate.archive.locator import ContentCandidate, find_content_root
from wp_migrate.archive.registry import AdapterRegistry, default_adapters

__all__ = [
    "AdapterRegistry",
    "Archive",
    "ContentCandidate",
    "ExtractionResult",
    "FormatAdapter",
    "default_adapters",
    "find_content_root",
    "safe_extract",
]
