from __future__ import annotations

import logging
import os

from ..config import ProvisionConfig
from ..lib.chroot import which_in_root
from ..models import InstallStrategy, RunState, VerificationReport

logger = logging.getLogger(__name__)


class VerifyInstallationStep:
    """Re-check the installed state. Failures are warnings, never fatal."""

    step_id = "80_verify_installation"

    def run(self, run: RunState, cfg: ProvisionConfig) -> RunState:
        ctx = run.context
        report = VerificationReport()
        strategy = run.outcome.strategy if run.outcome else None

        if strategy is InstallStrategy.PACKAGE:
            found = which_in_root(ctx.system_root, cfg.command)
            report.add(
                "command_on_path",
                found is not None,
                f"{cfg.command} found at {ctx.machine_path(found)}" if found else f"{cfg.command} command not found in PATH",
            )
        elif strategy is InstallStrategy.MANUAL:
            for rel in cfg.manual_verify_dirs:
                d = ctx.install_dir / rel
                if not d.is_dir():
                    report.add(f"dir:{rel}", False, f"Required directory missing: {d}")
                elif not os.access(d, os.R_OK):
                    report.add(f"dir:{rel}", False, f"Directory not readable: {d}")
                else:
                    report.add(f"dir:{rel}", True, str(d))
            deps = ctx.install_dir / cfg.dependency_dir
            report.add(
                "dependencies",
                deps.is_dir(),
                str(deps) if deps.is_dir() else f"{cfg.dependency_dir} directory missing. Dependencies may not be installed.",
            )

        if run.integration is not None and not ctx.dry_run:
            for name, path in (
                ("startup_wrapper", run.integration.startup_wrapper),
                ("session_profile", run.integration.session_profile),
                ("autostart_descriptor", run.integration.autostart_descriptor),
            ):
                report.add(name, path.exists(), str(path) if path.exists() else f"Missing: {path}")

        for failure in report.failures:
            logger.warning("Verification: %s", failure.message)
            run.warn(failure.message)

        run.verification = report
        logger.info("Verification %s (%d checks)", "passed" if report.ok else "found problems", len(report.checks))
        return run
