from __future__ import annotations

import logging
from pathlib import Path

from ..config import ProvisionConfig
from ..lib import systemd, templates
from ..lib.fsutil import ensure_dir, remove_file, update_marked_block, write_file
from ..models import AutostartVariant, IntegrationArtifacts, RunState

logger = logging.getLogger(__name__)

# ensure_dir chowns only the leaf, so parents are listed before children.
USER_DIRS = (".local", ".local/share", ".config", ".cache")


class IntegrateSessionStep:
    """Write the kiosk session glue: startup wrapper, X session profile, auto-start.

    Every file is rendered from scratch and overwritten, and the auto-start
    variant not selected is torn down, so the session is never started twice.
    """

    step_id = "60_integrate_session"

    def run(self, run: RunState, cfg: ProvisionConfig) -> RunState:
        ctx = run.context
        owner = ctx.principal
        dry_run = ctx.dry_run
        home = ctx.home

        wrapper = ctx.install_dir / "start-display.sh"
        write_file(
            wrapper,
            templates.startup_wrapper(
                display_name=cfg.display_name,
                packaged_binary=f"/usr/bin/{cfg.command}",
                launch_args=cfg.launch_args,
                source_launch=cfg.source_launch_command,
                display=cfg.display,
                runtime_log=cfg.runtime_log,
            ),
            owner=owner,
            mode=0o755,
            dry_run=dry_run,
        )

        profile = home / ".xinitrc"
        write_file(
            profile,
            templates.session_profile(
                display_name=cfg.display_name,
                wrapper_path=ctx.machine_path(wrapper),
                window_manager=cfg.window_manager,
                cursor_idle=cfg.cursor_idle,
                wm_settle=cfg.wm_settle,
            ),
            owner=owner,
            mode=0o755,
            dry_run=dry_run,
        )

        autologin = ctx.system_path(f"/etc/systemd/system/getty@tty{cfg.tty}.service.d/autologin.conf")
        write_file(autologin, templates.autologin_dropin(owner.name), dry_run=dry_run)

        if ctx.autostart is AutostartVariant.SERVICE:
            descriptor = self._install_service(run, cfg)
        else:
            descriptor = self._install_login_hook(run, cfg)

        for rel in USER_DIRS:
            ensure_dir(home / rel, owner=owner, dry_run=dry_run)

        systemd.daemon_reload(root=ctx.system_root, dry_run=dry_run)
        if ctx.autostart is AutostartVariant.SERVICE:
            systemd.enable(descriptor.name, root=ctx.system_root, dry_run=dry_run)

        run.integration = IntegrationArtifacts(
            startup_wrapper=wrapper,
            session_profile=profile,
            autostart_descriptor=descriptor,
            autologin_dropin=autologin,
            display=cfg.display,
            variant=ctx.autostart,
        )
        run.decisions["autostart"] = ctx.autostart.value
        logger.info("Session integration written (autostart=%s)", ctx.autostart.value)
        return run

    def _unit_path(self, run: RunState, cfg: ProvisionConfig) -> Path:
        return run.context.system_path(f"/etc/systemd/system/{cfg.name}.service")

    def _install_login_hook(self, run: RunState, cfg: ProvisionConfig) -> Path:
        ctx = run.context
        bash_profile = ctx.home / ".bash_profile"
        update_marked_block(
            bash_profile,
            templates.LOGIN_HOOK_BLOCK,
            templates.login_hook_lines(cfg.tty),
            owner=ctx.principal,
            dry_run=ctx.dry_run,
        )

        unit = self._unit_path(run, cfg)
        if unit.exists():
            logger.info("Removing service unit left by a previous service-variant run: %s", unit)
            systemd.disable(unit.name, root=ctx.system_root, dry_run=ctx.dry_run)
            remove_file(unit, dry_run=ctx.dry_run)
        return bash_profile

    def _install_service(self, run: RunState, cfg: ProvisionConfig) -> Path:
        ctx = run.context
        unit = self._unit_path(run, cfg)
        write_file(
            unit,
            templates.service_unit(
                display_name=cfg.display_name,
                user=ctx.principal.name,
                home=str(ctx.principal.home),
                display=cfg.display,
                vt=cfg.service_vt,
                start_delay=cfg.start_delay,
                restart_sec=cfg.restart_sec,
            ),
            mode=0o644,
            dry_run=ctx.dry_run,
        )

        # The unit launches the session itself; a login hook would start a second one.
        bash_profile = ctx.home / ".bash_profile"
        if bash_profile.exists():
            update_marked_block(
                bash_profile,
                templates.LOGIN_HOOK_BLOCK,
                [],
                owner=ctx.principal,
                dry_run=ctx.dry_run,
            )
        return unit
