from __future__ import annotations

import logging
import shutil
from pathlib import Path
from typing import Sequence

from .chroot import HOST_ROOT, chroot_argv, is_host
from .command import CmdResult, run_cmd
from .fsutil import write_file

logger = logging.getLogger(__name__)

APT_ENV = {"DEBIAN_FRONTEND": "noninteractive"}

# Where a package downloaded outside the target is copied so apt inside it can read it.
STAGING_DIR = "/var/cache/kiosk-provisioner"


def apt_update(*, root: Path = HOST_ROOT, dry_run: bool = False) -> None:
    run_cmd(chroot_argv(root, ["apt-get", "update"]), env=APT_ENV, dry_run=dry_run)


def apt_install(
    packages: Sequence[str],
    *,
    with_recommends: bool = True,
    root: Path = HOST_ROOT,
    dry_run: bool = False,
) -> None:
    if not packages:
        return
    argv = [
        "apt-get",
        "install",
        "-y",
    ]
    if not with_recommends:
        argv.append("--no-install-recommends")
    run_cmd(chroot_argv(root, [*argv, *packages]), env=APT_ENV, dry_run=dry_run)


def stage_into_root(package_path: Path, root: Path, *, dry_run: bool = False) -> str:
    """Make ``package_path`` visible inside ``root``; returns the path apt should use."""

    if is_host(root):
        return str(package_path.resolve())
    target = f"{STAGING_DIR}/{package_path.name}"
    staged = Path(root) / target.lstrip("/")
    if dry_run:
        logger.info("Would copy %s -> %s", package_path, staged)
    else:
        staged.parent.mkdir(parents=True, exist_ok=True)
        shutil.copy2(package_path, staged)
    return target


def apt_install_file(package_path: Path, *, root: Path = HOST_ROOT, dry_run: bool = False) -> CmdResult:
    """Install a local package file, letting apt pull in its dependencies.

    The caller decides what a failure means, so this never raises on exit status.
    """
    target = stage_into_root(package_path, root, dry_run=dry_run)
    return run_cmd(
        chroot_argv(root, ["apt-get", "install", "-y", target]),
        check=False,
        env=APT_ENV,
        dry_run=dry_run,
    )


def register_library_path(
    conf_path: Path,
    library_dir: str,
    *,
    root: Path = HOST_ROOT,
    dry_run: bool = False,
) -> None:
    """Point the dynamic linker at ``library_dir`` and refresh its cache."""

    write_file(conf_path, library_dir + "\n", dry_run=dry_run)
    run_cmd(chroot_argv(root, ["ldconfig"]), dry_run=dry_run)
    logger.info("Library path registered: %s (%s)", library_dir, conf_path)
