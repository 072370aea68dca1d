"""
Content root discovery.

Backup tools nest wp-content under arbitrary wrapper directories, so the
content root is found by scoring candidate directories instead of by path.
A candidate earns one point for each of plugins/, themes/ and uploads/.
"""

import logging
from collections import deque
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional

logger = logging.getLogger(__name__)

CONTENT_MARKERS = ("plugins", "themes", "uploads")
MAX_SCORE = len(CONTENT_MARKERS)
DEFAULT_MAX_DEPTH = 5


@dataclass(frozen=True)
class ContentCandidate:
    """A scored directory inside an extraction tree."""

    path: Path
    score: int
    depth: int


def score_content_dir(directory: Path) -> int:
    """Count how many of plugins/, themes/, uploads/ exist below directory."""
    return sum(1 for marker in CONTENT_MARKERS if (directory / marker).is_dir())


def _child_dirs(directory: Path) -> List[Path]:
    try:
        children = [p for p in directory.iterdir() if p.is_dir() and not p.is_symlink()]
    except OSError as e:
        logger.debug(f"Cannot list {directory}: {e}")
        return []
    return sorted(children, key=lambda p: p.name)


def find_content_root(root: Path, max_depth: int = DEFAULT_MAX_DEPTH) -> Optional[ContentCandidate]:
    """
    Find the best-scoring content root below root.

    Directories are visited breadth first, root included, down to max_depth
    levels below root. The highest score wins; on a tie the shallower
    directory wins, then the one visited first. A perfect score ends the
    search immediately.

    Args:
        root: Extraction directory to search.
        max_depth: Deepest level (relative to root) that is scored.

    Returns:
        The winning ContentCandidate, or None if no directory scores above 0.
    """
    root = Path(root)
    best: Optional[ContentCandidate] = None
    queue = deque([(root, 0)])

    while queue:
        directory, depth = queue.popleft()
        score = score_content_dir(directory)
        if score > 0:
            logger.debug(f"Content candidate {directory} (score {score}, depth {depth})")
        if score > 0 and (best is None or score > best.score):
            best = ContentCandidate(path=directory, score=score, depth=depth)
            if score == MAX_SCORE:
                break
        if depth < max_depth:
            queue.extend((child, depth + 1) for child in _child_dirs(directory))

    if best is None:
        logger.debug(f"No content root found below {root}")
    return best
