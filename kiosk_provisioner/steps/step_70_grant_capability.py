from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Optional

from ..config import ProvisionConfig
from ..lib import capability
from ..lib.candidates import first_existing, pick_newest, walk_named
from ..lib.chroot import realpath_in_root, which_in_root
from ..models import CapabilityGrant, InstallStrategy, RunState

logger = logging.getLogger(__name__)


def _is_real_binary(p: Path) -> bool:
    return p.is_file() and os.access(p, os.X_OK) and p.suffix != ".sh"


class GrantCapabilityStep:
    """Let the runtime bind privileged ports without running it as root.

    Every failure here is a warning: the kiosk still works on an unprivileged port.
    """

    step_id = "70_grant_capability"

    def locate_binary(self, run: RunState, cfg: ProvisionConfig) -> Optional[Path]:
        ctx = run.context
        strategy = run.outcome.strategy if run.outcome else None

        if strategy is InstallStrategy.PACKAGE:
            found = first_existing([ctx.system_path(p) for p in cfg.binary_candidates], accept=Path.is_file)
            if found is None:
                roots = [ctx.system_path(r) for r in cfg.binary_search_roots]
                found = pick_newest(p for p in walk_named(roots, cfg.command) if _is_real_binary(p))
            return found

        if strategy is InstallStrategy.MANUAL:
            found = which_in_root(ctx.system_root, cfg.runtime_command)
            return realpath_in_root(ctx.system_root, found) if found else None

        return None

    def run(self, run: RunState, cfg: ProvisionConfig) -> RunState:
        ctx = run.context
        cap = capability.NET_BIND_SERVICE
        logger.info("Granting privileged port binding capability...")

        binary = self.locate_binary(run, cfg)
        if binary is None:
            if run.outcome is not None and run.outcome.strategy is InstallStrategy.MANUAL:
                target = f"$(readlink -f $(which {cfg.runtime_command}))"
            else:
                target = f"$(which {cfg.command})"
            remediation = capability.setcap_command(target, cap)
            run.warn(f"Could not find the runtime binary. Port {cfg.port} may not work. Manually run: {remediation}")
            logger.warning("Runtime binary not found; capability not granted")
            run.grant = CapabilityGrant(binary=None, capability=cap, granted=False, remediation=remediation)
            return run

        if run.outcome is not None:
            run.outcome.runtime_binary = binary

        remediation = capability.setcap_command(ctx.machine_path(binary), cap)
        granted = capability.grant(ctx.machine_path(binary), cap, root=ctx.system_root, dry_run=ctx.dry_run)
        if granted:
            logger.info("Capability granted to: %s", binary)
        else:
            run.warn(f"Failed to set capability on {binary}. Manually run: {remediation}")
        run.grant = CapabilityGrant(binary=binary, capability=cap, granted=granted, remediation=remediation)
        return run
