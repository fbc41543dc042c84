from __future__ import annotations

import argparse
import contextlib
import logging
import signal
import sys
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional

from .config import ProvisionConfig, load_config
from .errors import ProvisionError
from .lib.arch import detect_arch, resolve_arch
from .lib.chroot import chroot_binds
from .lib.download import download_workspace
from .lib.identity import require_root, resolve_principal
from .logging_utils import DEFAULT_LOG_PATH, configure_logging
from .models import AutostartVariant, InstallationContext, RunState
from .pipeline import PipelineProgress, Step, run_pipeline
from .state_store import record_error, save_state
from .steps import (
    FetchArtifactsStep,
    GrantCapabilityStep,
    InstallApplicationStep,
    InstallSystemPackagesStep,
    IntegrateSessionStep,
    ReportStep,
    ResolveReleaseStep,
    VerifyInstallationStep,
)

logger = logging.getLogger(__name__)


DEFAULT_STATE_PATH = "/var/lib/kiosk-provisioner/last-run.json"


def build_steps(*, offline: bool, system_packages: bool = True) -> List[Step]:
    steps: List[Step] = []
    if not offline:
        steps += [ResolveReleaseStep(), FetchArtifactsStep()]
    if system_packages:
        steps.append(InstallSystemPackagesStep())
    steps += [
        InstallApplicationStep(),
        IntegrateSessionStep(),
        GrantCapabilityStep(),
        VerifyInstallationStep(),
        ReportStep(),
    ]
    return steps


def build_context(
    cfg: ProvisionConfig,
    *,
    user: Optional[str] = None,
    arch: Optional[str] = None,
    autostart: Optional[str] = None,
    source_dir: Optional[str] = None,
    system_root: str = "/",
    install_root: Optional[str] = None,
    dry_run: bool = False,
) -> InstallationContext:
    """Resolve who, where and what once; the result is immutable for the run."""

    require_root()
    principal = resolve_principal(user)
    tag = resolve_arch(arch) if arch else detect_arch()
    variant = AutostartVariant(autostart) if autostart else cfg.autostart

    return InstallationContext(
        principal=principal,
        install_root=Path(install_root or cfg.install_root),
        arch=tag,
        autostart=variant,
        system_root=Path(system_root),
        source_dir=Path(source_dir).resolve() if source_dir else None,
        dry_run=dry_run,
    )


@contextlib.contextmanager
def _workspace(offline: bool) -> Iterator[Optional[Path]]:
    if offline:
        yield None
        return
    with download_workspace() as tmp:
        yield tmp


def run(
    ctx: InstallationContext,
    cfg: ProvisionConfig,
    *,
    state_path: Optional[str] = None,
    system_packages: bool = True,
    log_path: Optional[str] = None,
) -> RunState:
    """Run the provisioning pipeline and write the run record, even on failure."""

    offline = ctx.source_dir is not None
    steps = build_steps(offline=offline, system_packages=system_packages)
    record_path = state_path or str(ctx.system_path(DEFAULT_STATE_PATH))

    state = RunState(context=ctx)
    record: Dict[str, Any] = {"log_path": log_path}
    progress = PipelineProgress()
    try:
        with _workspace(offline) as work_dir, chroot_binds(ctx.system_root, dry_run=ctx.dry_run):
            state.work_dir = work_dir
            state = run_pipeline(run=state, cfg=cfg, steps=steps, progress=progress).run
        return state
    except ProvisionError as e:
        logger.error("Provisioning failed in step %s: %s", progress.current_step, e)
        record_error(record, step=progress.current_step, error=e)
        raise
    except Exception as e:
        logger.exception("Provisioning failed")
        record_error(record, step=progress.current_step, error=e)
        raise
    finally:
        record["ran_steps"] = list(progress.completed)
        record.update(state.to_record())
        if ctx.dry_run:
            logger.info("Dry run: run record not written (%s)", record_path)
        else:
            try:
                save_state(record_path, record)
            except OSError as e:
                logger.warning("Could not write run record %s: %s", record_path, e)


def _terminate(signum: int, _frame: Any) -> None:
    # Unwind through the download workspace's cleanup instead of dying in place.
    raise SystemExit(128 + signum)


def main(argv: Optional[list[str]] = None) -> int:
    p = argparse.ArgumentParser(
        prog="kiosk-provisioner",
        description="Install an application and configure this machine as a kiosk host.",
    )
    p.add_argument("--config", default=None, help="YAML provisioning profile (defaults: Companion Dashboard)")
    p.add_argument(
        "--autostart",
        choices=[v.value for v in AutostartVariant],
        default=None,
        help="Auto-start mechanism (default from profile: login-hook)",
    )
    p.add_argument("--user", default=None, help="Kiosk user (default: SUDO_USER)")
    p.add_argument("--arch", default=None, help="Override detected machine architecture (e.g. x86_64, aarch64)")
    p.add_argument(
        "--source-dir",
        default=None,
        help="Offline mode: install from a package or source tree in this directory instead of downloading",
    )
    p.add_argument(
        "--target-root",
        default="/",
        help="Root of the filesystem to provision; commands run in it through chroot (default: this machine)",
    )
    p.add_argument("--install-root", default=None, help="Application directory (default /opt/<name>)")
    p.add_argument("--state", default=None, help="Path to the run record (json|yaml)")
    p.add_argument("--log", default=DEFAULT_LOG_PATH, help="Path to provisioner log")
    p.add_argument("--skip-system-packages", action="store_true", help="Do not apt-get install kiosk dependencies")
    p.add_argument("--dry-run", action="store_true", help="Log commands and writes without executing them")

    args = p.parse_args(argv)

    log_path = configure_logging(log_path=args.log)
    signal.signal(signal.SIGTERM, _terminate)

    try:
        cfg = load_config(args.config)
        ctx = build_context(
            cfg,
            user=args.user,
            arch=args.arch,
            autostart=args.autostart,
            source_dir=args.source_dir,
            system_root=args.target_root,
            install_root=args.install_root,
            dry_run=bool(args.dry_run),
        )
        state = run(
            ctx,
            cfg,
            state_path=args.state,
            system_packages=not args.skip_system_packages,
            log_path=log_path,
        )
    except ProvisionError as e:
        print(f"\nError: {e}", file=sys.stderr)
        return 1
    except (OSError, ValueError) as e:
        logger.error("Provisioning aborted: %s", e)
        print(f"\nError: {e}", file=sys.stderr)
        return 1

    print(state.report_text or "")
    return 0
