"""Ranked candidate lookup.

Several stages need "look in these places, in this order, and take the best
hit": the package search (script directory, then ``out/``), the runtime binary
(known paths, then a scoped search). Groups are tried in order; inside the
first group that yields anything, the most recently modified path wins and
ties are broken by path name (descending) so the result is deterministic.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Callable, Iterable, List, Optional, Sequence

logger = logging.getLogger(__name__)

PathFilter = Callable[[Path], bool]


def _rank_key(p: Path) -> tuple[float, str]:
    try:
        mtime = p.stat().st_mtime
    except OSError:
        mtime = float("-inf")
    return (mtime, str(p))


def pick_newest(paths: Iterable[Path]) -> Optional[Path]:
    ranked = sorted(paths, key=_rank_key, reverse=True)
    return ranked[0] if ranked else None


def first_ranked(groups: Sequence[Iterable[Path]], accept: PathFilter | None = None) -> Optional[Path]:
    for group in groups:
        hits = [p for p in group if accept is None or accept(p)]
        best = pick_newest(hits)
        if best is not None:
            return best
    return None


def find_newest(dirs: Sequence[Path], pattern: str) -> Optional[Path]:
    """Most recent file matching ``pattern`` in the first directory that has one."""

    groups = [sorted(d.glob(pattern)) if d.is_dir() else [] for d in dirs]
    found = first_ranked(groups, accept=lambda p: p.is_file())
    if found is not None:
        logger.info("Found %s in %s", found.name, found.parent)
    return found


def first_existing(paths: Sequence[Path], accept: PathFilter | None = None) -> Optional[Path]:
    """First path (in the given order) that exists and passes ``accept``."""

    return first_ranked([[p] for p in paths], accept=lambda p: p.exists() and (accept is None or accept(p)))


def walk_named(roots: Sequence[Path], name: str) -> List[Path]:
    """All regular files called ``name`` below ``roots``."""

    hits: List[Path] = []
    for root in roots:
        if not root.is_dir():
            continue
        for dirpath, _dirnames, filenames in os.walk(root):
            if name in filenames:
                hits.append(Path(dirpath) / name)
    return hits


def walk_dirs_named(roots: Sequence[Path], name: str) -> List[List[Path]]:
    """Directories called ``name`` below each root, one group per root."""

    groups: List[List[Path]] = []
    for root in roots:
        group: List[Path] = []
        if root.is_dir():
            for dirpath, dirnames, _filenames in os.walk(root):
                if name in dirnames:
                    group.append(Path(dirpath) / name)
        groups.append(group)
    return groups
