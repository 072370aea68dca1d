"""
Per-stage report values.

Stages that filter, skip or exclude items return a SkippedItems value
instead of recording them anywhere global. The import pipeline collects
them on its result and logs them once at the end of the run.
"""

from dataclasses import dataclass, field
from typing import List


@dataclass
class SkippedItems:
    """Items a single stage deliberately did not process."""

    stage: str
    reason: str
    items: List[str] = field(default_factory=list)

    def add(self, item: str) -> None:
        self.items.append(item)

    def __bool__(self) -> bool:
        return bool(self.items)

    def __str__(self) -> str:
        shown = ", ".join(self.items[:10])
        if len(self.items) > 10:
            shown += f", ... ({len(self.items)} total)"
        return f"{self.stage}: {len(self.items)} {self.reason}: {shown}"
