"""
Archive import: planning, orchestration and the post-import steps.
"""

from wp_migrate.importer.pipeline import (
    ImportOptions,
    ImportOrchestrator,
    ImportResult,
    ImportState,
    run_import,
)
from wp_migrate.importer.plan import ImportPlan, build_plan

__all__ = [
    "ImportOptions",
    "ImportOrchestrator",
    "ImportPlan",
    "ImportResult",
    "ImportState",
    "build_plan",
    "run_import",
]
