from __future__ import annotations

import logging
from typing import List

from ..config import ProvisionConfig
from ..lib.net import endpoint, local_ip
from ..models import AutostartVariant, RunState

logger = logging.getLogger(__name__)


def _boot_sequence(run: RunState, cfg: ProvisionConfig) -> List[str]:
    user = run.context.principal.name
    if run.context.autostart is AutostartVariant.SERVICE:
        return [
            f"1. Boot to console and auto-login as {user}",
            f"2. Start systemd service '{cfg.name}.service'",
            f"3. Launch X server with {cfg.window_manager} window manager",
            f"4. Launch {cfg.display_name} in read-only display mode (locked canvas)",
        ]
    return [
        f"1. Boot to console and auto-login as {user}",
        f"2. Start X server with {cfg.window_manager} window manager",
        f"3. Launch {cfg.display_name} in read-only display mode (locked canvas)",
    ]


def _troubleshooting(run: RunState, cfg: ProvisionConfig) -> List[str]:
    lines: List[str] = []
    if run.context.autostart is AutostartVariant.SERVICE:
        unit = cfg.name
        lines += [
            f"Check service status: sudo systemctl status {unit}",
            f"View service logs: sudo journalctl -u {unit} -f",
            f"View app logs: tail -f {cfg.runtime_log}",
            f"Restart service: sudo systemctl restart {unit}",
            f"Stop service: sudo systemctl stop {unit}",
            f"Disable auto-start: sudo systemctl disable {unit}",
            f"If display not showing, check: ps aux | grep {cfg.command}",
        ]
    else:
        lines += [
            f"If display not showing after reboot, SSH in and check: ps aux | grep {cfg.command}",
            f"View app logs: tail -f {cfg.runtime_log}",
            "Manually test: from console (not SSH), run: startx",
        ]
    lines += [
        "View X server logs: cat ~/.local/share/xorg/Xorg.0.log",
        f"Check web server: curl {endpoint('localhost', cfg.port, '/')}",
        f"Verify port capability: getcap $(which {cfg.runtime_command}) or getcap $(which {cfg.command})",
    ]
    if cfg.mdns:
        lines.append("Test mDNS: avahi-browse -a")
    return lines


def render_report(run: RunState, cfg: ProvisionConfig, ip: str | None) -> str:
    # Only verification decides the headline; other warnings are listed below it.
    ok = run.verification.ok if run.verification else True
    out: List[str] = []
    if ok:
        out.append("=== Installation Complete! ===")
    else:
        out.append("=== Installation Complete (with warnings) ===")
        out.append("Please review the warnings below before rebooting.")
    out.append("")

    strategy = run.outcome.strategy.value if run.outcome and run.outcome.strategy else "unknown"
    out.append(f"Installation method: {strategy} / auto-start: {run.context.autostart.value}")
    out.append("")

    if run.warnings:
        out.append("Warnings:")
        out += [f"  - {w}" for w in run.warnings]
        out.append("")

    out.append("The system will now automatically:")
    out += _boot_sequence(run, cfg)
    out.append("")

    hosts: List[tuple[str, str]] = []
    if cfg.mdns:
        hosts.append((cfg.hostname, "via mDNS"))
    if ip:
        hosts.append((ip, "via IP address"))

    out.append(f"Access {cfg.display_name} from other devices at:")
    out += [f"  {endpoint(h, cfg.port)} ({how})" for h, how in hosts] or ["  (no network address found)"]
    out.append("")
    out.append("Control view (full settings access):")
    out += [f"  {endpoint(h, cfg.port, cfg.control_path)}" for h, _how in hosts] or ["  (no network address found)"]
    out.append("")
    out.append("To complete installation, reboot the system:")
    out.append("  sudo reboot")
    out.append("")
    out.append("Troubleshooting:")
    out += [f"  - {line}" for line in _troubleshooting(run, cfg)]
    out.append("")
    return "\n".join(out)


class ReportStep:
    step_id = "90_report"

    def run(self, run: RunState, cfg: ProvisionConfig) -> RunState:
        ip = local_ip(dry_run=run.context.dry_run)
        run.report_text = render_report(run, cfg, ip)
        run.decisions["local_ip"] = ip
        logger.info("Final report rendered (warnings=%d)", len(run.warnings))
        return run
