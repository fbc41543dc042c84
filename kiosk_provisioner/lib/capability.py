from __future__ import annotations

import logging
from pathlib import Path

from .chroot import HOST_ROOT, chroot_argv
from .command import run_cmd

logger = logging.getLogger(__name__)

NET_BIND_SERVICE = "cap_net_bind_service"


def setcap_command(binary: str, capability: str = NET_BIND_SERVICE) -> str:
    return f"sudo setcap '{capability}=+ep' {binary}"


def grant(
    binary: str,
    capability: str = NET_BIND_SERVICE,
    *,
    root: Path = HOST_ROOT,
    dry_run: bool = False,
) -> bool:
    """Add ``capability`` to ``binary`` and confirm it by reading it back.

    ``binary`` is the path as seen from ``root``. Returns False (never raises)
    when either setcap or the confirmation fails.
    """

    r = run_cmd(chroot_argv(root, ["setcap", f"{capability}=+ep", binary]), check=False, dry_run=dry_run)
    if not r.ok:
        logger.warning("setcap failed on %s (%s): %s", binary, r.returncode, r.stderr.strip())
        return False
    if dry_run:
        return True
    return has_capability(binary, capability, root=root)


def has_capability(binary: str, capability: str = NET_BIND_SERVICE, *, root: Path = HOST_ROOT) -> bool:
    r = run_cmd(chroot_argv(root, ["getcap", binary]), check=False)
    return r.ok and capability in r.stdout
