from __future__ import annotations

import logging
from pathlib import Path
from typing import List, Optional

from ..config import ProvisionConfig
from ..errors import DependencyInstallFailed, MissingManualInstallFiles, PackageInstallFailed
from ..lib.candidates import find_newest, first_ranked, walk_dirs_named
from ..lib.chroot import chroot_argv, is_host
from ..lib.command import run_cmd
from ..lib.fsutil import chown_tree, copy_entries, ensure_dir
from ..lib.pkg import apt_install_file, register_library_path
from ..models import InstallationOutcome, InstallStrategy, RunState

logger = logging.getLogger(__name__)


class InstallApplicationStep:
    """Install the application from a package if one is at hand, else from source files.

    A package that is found but fails to install is fatal; it does not fall
    back to the manual strategy.
    """

    step_id = "50_install_application"

    def find_package(self, run: RunState, cfg: ProvisionConfig) -> Optional[Path]:
        return find_newest(run.search_dirs(), cfg.package_glob)

    def run(self, run: RunState, cfg: ProvisionConfig) -> RunState:
        ctx = run.context
        logger.info("Installation directory: %s", ctx.install_root)
        ensure_dir(ctx.install_dir, owner=ctx.principal, dry_run=ctx.dry_run)

        package = self.find_package(run, cfg)
        if package is not None:
            run.outcome = self._install_package(run, cfg, package)
        else:
            logger.info("No %s package found. Attempting manual installation...", cfg.package_ext)
            run.outcome = self._install_manual(run, cfg)

        run.decisions["strategy"] = run.outcome.strategy.value if run.outcome.strategy else None
        return run

    def _install_package(self, run: RunState, cfg: ProvisionConfig, package: Path) -> InstallationOutcome:
        ctx = run.context
        logger.info("Installing package: %s", package.name)
        r = apt_install_file(package, root=ctx.system_root, dry_run=ctx.dry_run)
        if not r.ok:
            raise PackageInstallFailed(
                f"Failed to install package {package} (exit {r.returncode})\n{r.stderr.strip()}".rstrip()
            )
        logger.info("Package installed successfully")

        library_dir = self._locate_library_dir(run, cfg)
        register_library_path(
            ctx.system_path(f"/etc/ld.so.conf.d/{cfg.name}.conf"),
            library_dir,
            root=ctx.system_root,
            dry_run=ctx.dry_run,
        )
        return InstallationOutcome(
            strategy=InstallStrategy.PACKAGE,
            success=True,
            package_path=package,
            library_dir=Path(library_dir),
        )

    def _locate_library_dir(self, run: RunState, cfg: ProvisionConfig) -> str:
        ctx = run.context
        roots = [ctx.system_path(r) for r in cfg.package_install_roots]
        found = first_ranked(walk_dirs_named(roots, "lib"))
        if found is not None:
            return ctx.machine_path(found)
        # No lib/ directory shipped: the top-level install root holds the libraries.
        return cfg.package_install_roots[0]

    def _install_manual(self, run: RunState, cfg: ProvisionConfig) -> InstallationOutcome:
        ctx = run.context
        dirs = run.search_dirs()
        source = dirs[0] if dirs else Path.cwd()

        missing: List[str] = [name for name in cfg.manual_required if not (source / name).exists()]
        if missing:
            for name in missing:
                logger.error("Missing required file/directory: %s", name)
            raise MissingManualInstallFiles(missing, str(source))

        logger.info("Copying application files to %s", ctx.install_root)
        copied = copy_entries(source, ctx.install_dir, cfg.manual_copy, dry_run=ctx.dry_run)
        chown_tree(ctx.install_dir, ctx.principal, dry_run=ctx.dry_run)
        run.decisions["manual_copied"] = copied

        # Run as the kiosk user so the dependency cache is not root-owned.
        argv = ["sudo", "-u", ctx.principal.name, "-H", *self._in_install_root(run, cfg)]
        r = run_cmd(
            chroot_argv(ctx.system_root, argv),
            check=False,
            cwd=str(ctx.install_dir),
            dry_run=ctx.dry_run,
        )
        if not r.ok:
            raise DependencyInstallFailed(
                f"Failed to install dependencies (exit {r.returncode}): {' '.join(cfg.dependency_command)}\n"
                f"{r.stderr.strip()}".rstrip()
            )
        logger.info("Manual installation completed successfully")
        return InstallationOutcome(strategy=InstallStrategy.MANUAL, success=True)

    def _in_install_root(self, run: RunState, cfg: ProvisionConfig) -> List[str]:
        if is_host(run.context.system_root):
            return list(cfg.dependency_command)
        # chroot(8) starts in /, so the working directory is set inside the target.
        return [
            "sh",
            "-c",
            'cd "$1" && shift && exec "$@"',
            "sh",
            str(run.context.install_root),
            *cfg.dependency_command,
        ]
