"""
Import plan: the ordered steps an import run will perform.

The plan is built before anything is extracted or modified. Dry runs print
it and stop; real runs log it and then execute the same sequence.
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional, Sequence

from wp_migrate.importer.urls import SiteUrls
from wp_migrate.snapshot import content_backup_path, database_path


@dataclass(frozen=True)
class PlanStep:
    action: str
    detail: str = ""
    destructive: bool = False


@dataclass
class ImportPlan:
    """Ordered steps for one import run."""

    archive: Path
    format_name: str
    steps: List[PlanStep] = field(default_factory=list)

    def add(self, action: str, detail: str = "", destructive: bool = False) -> None:
        self.steps.append(PlanStep(action=action, detail=detail, destructive=destructive))

    @property
    def destructive_steps(self) -> List[PlanStep]:
        return [s for s in self.steps if s.destructive]

    def render(self) -> str:
        lines = [f"Import plan for {self.archive} ({self.format_name}):"]
        for number, step in enumerate(self.steps, 1):
            marker = " [destructive]" if step.destructive else ""
            detail = f": {step.detail}" if step.detail else ""
            lines.append(f"  {number:2d}. {step.action}{detail}{marker}")
        return "\n".join(lines)

    def __str__(self) -> str:
        return self.render()


def build_plan(
    archive: Path,
    format_name: str,
    layout_hint: str,
    content_dir: Path,
    snapshots_dir: Path,
    work_dir: Path,
    stamp: str,
    excludes: Sequence[str],
    search_replace: bool = True,
    preserve_plugins: bool = False,
    original_urls: Optional[SiteUrls] = None,
    snapshot_keep: int = 5,
) -> ImportPlan:
    """
    Describe the import of archive into the installation owning content_dir.

    Returns:
        ImportPlan whose steps mirror what ImportOrchestrator executes.
    """
    plan = ImportPlan(archive=Path(archive), format_name=format_name)
    plan.add("Extract archive", f"into a temporary directory under {work_dir}")
    plan.add("Locate database dump and wp-content", layout_hint)
    plan.add("Enable maintenance mode")
    plan.add("Back up database", str(database_path(snapshots_dir, stamp)))
    plan.add("Back up wp-content", str(content_backup_path(content_dir, stamp)))
    if preserve_plugins:
        plan.add("Record destination plugins/themes missing from the archive")
    plan.add("Reset database", destructive=True)
    plan.add("Import database dump", destructive=True)
    plan.add("Resolve table prefix and update wp-config.php if it differs", destructive=True)
    if original_urls is not None and search_replace:
        plan.add(
            "Align URLs",
            f"imported home/siteurl -> {original_urls.home} / {original_urls.siteurl}",
            destructive=True,
        )
    elif original_urls is not None:
        plan.add("Report URL mismatch only (--no-search-replace)")
    plan.add(
        "Replace wp-content with archive contents",
        f"{content_dir} (excluding {', '.join(excludes)})",
        destructive=True,
    )
    if preserve_plugins:
        plan.add("Restore destination-only plugins/themes (plugins deactivated)", destructive=True)
    plan.add("Flush object cache if wp redis is available")
    plan.add("Verify import")
    plan.add("Disable maintenance mode")
    plan.add("Remove temporary directory", f"and keep the newest {snapshot_keep} snapshots")
    return plan
