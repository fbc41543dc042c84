from __future__ import annotations

import contextlib
import logging
import os
import shutil
from pathlib import Path
from typing import Iterator, List, Sequence

from .command import run_cmd

logger = logging.getLogger(__name__)

HOST_ROOT = Path("/")

# apt, dpkg maintainer scripts and setcap need these inside the target.
BIND_MOUNTS = ("/dev", "/proc", "/sys")

# Searched when resolving a command inside a target root.
ROOT_PATH = ("/usr/local/sbin", "/usr/local/bin", "/usr/sbin", "/usr/bin", "/sbin", "/bin")


def is_host(root: Path) -> bool:
    return Path(root) == HOST_ROOT


def chroot_argv(root: Path, argv: Sequence[str]) -> List[str]:
    """``argv`` as it must be run to act on ``root`` (unchanged for the live host)."""

    if is_host(root):
        return list(argv)
    return ["chroot", str(root), *argv]


@contextlib.contextmanager
def chroot_binds(root: Path, *, dry_run: bool = False) -> Iterator[None]:
    """Bind the kernel filesystems into ``root`` for the duration of the block."""

    if is_host(root):
        yield
        return

    mounted: List[str] = []
    try:
        for src in BIND_MOUNTS:
            dst = str(Path(root) / src.lstrip("/"))
            run_cmd(["mount", "--bind", src, dst], dry_run=dry_run)
            mounted.append(dst)
        yield
    finally:
        for dst in reversed(mounted):
            run_cmd(["umount", "-lf", dst], check=False, dry_run=dry_run)


def which_in_root(root: Path, name: str) -> Path | None:
    """Path of the executable ``name`` as the PATH of ``root`` would find it.

    For a target root the result is the host path of the file.
    """

    if is_host(root):
        found = shutil.which(name)
        return Path(found) if found else None
    for d in ROOT_PATH:
        candidate = Path(root) / d.lstrip("/") / name
        # Absolute symlinks inside the target point into the target, not the host.
        resolved = realpath_in_root(root, candidate)
        if resolved.is_file() and os.access(resolved, os.X_OK):
            return candidate
    return None


def realpath_in_root(root: Path, path: Path) -> Path:
    """Follow symlinks of ``path`` without leaving ``root``.

    Absolute link targets are read relative to ``root``, as they would be
    inside the provisioned system.
    """

    if is_host(root):
        return Path(os.path.realpath(path))

    p = Path(path)
    for _ in range(40):
        if not p.is_symlink():
            break
        target = os.readlink(p)
        if os.path.isabs(target):
            p = Path(root) / target.lstrip("/")
        else:
            p = Path(os.path.normpath(p.parent / target))
    return p
