from __future__ import annotations

import logging
import os
import shutil
from pathlib import Path
from typing import List, Optional, Sequence

from ..models import Principal

logger = logging.getLogger(__name__)

BLOCK_BEGIN = "# BEGIN MANAGED BY kiosk-provisioner:"
BLOCK_END = "# END MANAGED BY kiosk-provisioner:"


def _chown(path: Path, owner: Optional[Principal]) -> None:
    if owner is not None:
        os.chown(path, owner.uid, owner.gid, follow_symlinks=False)


def ensure_dir(path: Path, *, owner: Optional[Principal] = None, dry_run: bool = False) -> None:
    if dry_run:
        logger.info("Would create directory %s", path)
        return
    path.mkdir(parents=True, exist_ok=True)
    _chown(path, owner)


def write_file(
    path: Path,
    contents: str,
    *,
    owner: Optional[Principal] = None,
    mode: Optional[int] = None,
    dry_run: bool = False,
) -> None:
    """Overwrite ``path``. Files under a user's tree get that user as owner."""

    if dry_run:
        logger.info("Would write %s", path)
        return
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(contents, encoding="utf-8")
    if mode is not None:
        path.chmod(mode)
    _chown(path, owner)
    logger.info("Wrote %s", path)


def remove_file(path: Path, *, dry_run: bool = False) -> bool:
    if not path.exists():
        return False
    if dry_run:
        logger.info("Would remove %s", path)
        return True
    path.unlink()
    logger.info("Removed %s", path)
    return True


def chown_tree(root: Path, owner: Principal, *, dry_run: bool = False) -> None:
    if dry_run:
        logger.info("Would chown -R %s:%s %s", owner.name, owner.name, root)
        return
    _chown(root, owner)
    for dirpath, dirnames, filenames in os.walk(root):
        for name in dirnames + filenames:
            _chown(Path(dirpath) / name, owner)


def copy_entries(src: Path, dst: Path, patterns: Sequence[str], *, dry_run: bool = False) -> List[str]:
    """Copy top-level entries of ``src`` matching ``patterns`` into ``dst``.

    Existing files in ``dst`` are overwritten, so a re-run converges on the
    same tree.
    """

    copied: List[str] = []
    for pattern in patterns:
        for item in sorted(src.glob(pattern)):
            out = dst / item.name
            if dry_run:
                logger.info("Would copy %s -> %s", item, out)
            elif item.is_dir():
                shutil.copytree(item, out, symlinks=True, dirs_exist_ok=True)
            else:
                dst.mkdir(parents=True, exist_ok=True)
                shutil.copy2(item, out)
            if item.name not in copied:
                copied.append(item.name)
    return copied


def replace_marked_block(text: str, block_name: str, new_lines: Sequence[str]) -> str:
    """Insert or replace the ``block_name`` section between the managed markers.

    Passing no lines removes the section entirely.
    """

    begin = f"{BLOCK_BEGIN} {block_name}"
    end = f"{BLOCK_END} {block_name}"
    lines = text.splitlines()
    try:
        i0 = next(i for i, line in enumerate(lines) if line.strip() == begin)
        i1 = next(i for i, line in enumerate(lines) if line.strip() == end and i > i0)
    except StopIteration:
        if not new_lines:
            return text
        appended = [begin, *new_lines, end]
        head = text.rstrip("\n")
        return (head + "\n\n" if head else "") + "\n".join(appended) + "\n"

    if new_lines:
        replaced = lines[: i0 + 1] + list(new_lines) + lines[i1:]
    else:
        replaced = lines[:i0] + lines[i1 + 1 :]
        while replaced and not replaced[-1].strip():
            replaced.pop()
    out = "\n".join(replaced).rstrip("\n")
    return out + "\n" if out else ""


def update_marked_block(
    path: Path,
    block_name: str,
    new_lines: Sequence[str],
    *,
    owner: Optional[Principal] = None,
    dry_run: bool = False,
) -> bool:
    """Rewrite one managed block of ``path``; returns True if the file changed."""

    before = path.read_text(encoding="utf-8") if path.exists() else ""
    after = replace_marked_block(before, block_name, new_lines)
    if after == before:
        return False
    if not after and not path.exists():
        return False
    write_file(path, after, owner=owner, dry_run=dry_run)
    return True
