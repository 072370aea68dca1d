"""
Destination plugin and theme preservation (--preserve-dest-plugins).

Plugins and themes installed on the destination but missing from the
archive would be deleted by the content sync. They are recorded before
the sync and copied back from the snapshot's content backup afterwards.
Restored plugins are deactivated, since the imported database never
configured them.
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import List

from wp_migrate.errors import CommandError
from wp_migrate.report import SkippedItems
from wp_migrate.transport import FileTransport
from wp_migrate.wpcli import WordPressCommands

logger = logging.getLogger(__name__)


def installed(content_dir: Path, kind: str) -> List[str]:
    """Directory names under content_dir/kind ("plugins" or "themes")."""
    base = Path(content_dir) / kind
    if not base.is_dir():
        return []
    return sorted(p.name for p in base.iterdir() if p.is_dir())


@dataclass
class PreservationPlan:
    """Destination-only extensions to restore after the content sync."""

    plugins: List[str] = field(default_factory=list)
    themes: List[str] = field(default_factory=list)

    def __bool__(self) -> bool:
        return bool(self.plugins or self.themes)


@dataclass
class PreservationResult:
    restored_plugins: List[str] = field(default_factory=list)
    restored_themes: List[str] = field(default_factory=list)
    failed: SkippedItems = field(
        default_factory=lambda: SkippedItems(stage="preserve", reason="items not restored")
    )


def plan_preservation(dest_content: Path, archive_content: Path) -> PreservationPlan:
    """Compare destination and archive plugins/themes."""
    plan = PreservationPlan()
    for kind, target in (("plugins", plan.plugins), ("themes", plan.themes)):
        dest = installed(dest_content, kind)
        source = set(installed(archive_content, kind))
        target.extend(name for name in dest if name not in source)
        logger.info(
            f"  Destination has {len(dest)} {kind}, archive has {len(source)}; "
            f"unique to destination: {len(target)}"
        )
    if plan.plugins:
        logger.info(f"  Plugins to preserve: {' '.join(plan.plugins)}")
    if plan.themes:
        logger.info(f"  Themes to preserve: {' '.join(plan.themes)}")
    return plan


def restore_preserved(
    plan: PreservationPlan,
    backup_content: Path,
    dest_content: Path,
    transport: FileTransport,
    commands: WordPressCommands,
) -> PreservationResult:
    """
    Copy preserved items back from the content backup and deactivate plugins.

    Failures are warnings and are reported in the result.
    """
    result = PreservationResult()
    if not plan:
        return result
    logger.info("Restoring destination plugins/themes not in source...")

    for kind, names, restored in (
        ("plugins", plan.plugins, result.restored_plugins),
        ("themes", plan.themes, result.restored_themes),
    ):
        for name in names:
            source = Path(backup_content) / kind / name
            target = Path(dest_content) / kind / name
            try:
                if transport.exists(target):
                    transport.remove_tree(target)
                transport.make_dirs(target.parent)
                transport.copy_tree(source, target)
            except OSError as e:
                logger.warning(f"Failed to restore {kind[:-1]} {name}: {e}")
                result.failed.add(f"{kind}/{name}")
                continue
            logger.info(f"    Restored {kind[:-1]}: {name}")
            restored.append(name)

    for name in result.restored_plugins:
        try:
            commands.deactivate_plugin(name)
            logger.info(f"    Deactivated: {name}")
        except CommandError as e:
            logger.warning(f"Could not deactivate plugin {name}: {e}")
    return result
