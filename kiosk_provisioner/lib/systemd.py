from __future__ import annotations

import logging
from pathlib import Path

from .chroot import HOST_ROOT, chroot_argv, is_host
from .command import run_cmd

logger = logging.getLogger(__name__)


def daemon_reload(*, root: Path = HOST_ROOT, dry_run: bool = False) -> None:
    if not is_host(root):
        # No manager runs inside a target root; it reads the units at its first boot.
        logger.info("Skipping daemon-reload for target root %s", root)
        return
    run_cmd(["systemctl", "daemon-reload"], dry_run=dry_run)


def enable(unit: str, *, now: bool = False, root: Path = HOST_ROOT, dry_run: bool = False) -> None:
    argv = ["systemctl", "enable"]
    if now and is_host(root):
        argv.append("--now")
    run_cmd(chroot_argv(root, [*argv, unit]), dry_run=dry_run)


def disable(unit: str, *, root: Path = HOST_ROOT, dry_run: bool = False) -> None:
    # A unit that was never enabled is not an error here.
    r = run_cmd(chroot_argv(root, ["systemctl", "disable", unit]), check=False, dry_run=dry_run)
    if not r.ok:
        logger.info("systemctl disable %s returned %s (ignored)", unit, r.returncode)
