from __future__ import annotations

import logging

from ..config import ProvisionConfig
from ..lib import systemd
from ..lib.pkg import apt_install, apt_update
from ..models import RunState

logger = logging.getLogger(__name__)


class InstallSystemPackagesStep:
    step_id = "40_install_system_packages"

    def run(self, run: RunState, cfg: ProvisionConfig) -> RunState:
        dry_run = run.context.dry_run
        root = run.context.system_root
        packages = cfg.system_packages

        logger.info("Installing system dependencies: %s", " ".join(packages))
        apt_update(root=root, dry_run=dry_run)
        apt_install(packages, root=root, dry_run=dry_run)

        if cfg.mdns:
            systemd.enable(f"{cfg.mdns_service}.service", now=True, root=root, dry_run=dry_run)

        run.decisions["system_packages"] = list(packages)
        run.decisions["mdns"] = cfg.mdns
        return run
