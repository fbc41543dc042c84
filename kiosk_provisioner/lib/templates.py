"""Text of the files the session integration writes.

Each function is pure: the same inputs always render the same bytes, which
is what makes re-provisioning idempotent.
"""

from __future__ import annotations

import shlex
from pathlib import Path
from typing import List, Sequence

LOGIN_HOOK_BLOCK = "kiosk-autostart"


def _q(value: str | Path) -> str:
    return shlex.quote(str(value))


def startup_wrapper(
    *,
    display_name: str,
    packaged_binary: str,
    launch_args: Sequence[str],
    source_launch: Sequence[str],
    display: int,
    runtime_log: str,
) -> str:
    args = " ".join(_q(a) for a in launch_args)
    packaged = f"{_q(packaged_binary)} {args}".rstrip()
    source = f"{' '.join(_q(a) for a in source_launch)} {args}".rstrip()
    log = _q(runtime_log)
    return "\n".join(
        [
            "#!/bin/bash",
            f"# Start {display_name} in display mode (read-only, locked canvas)",
            "",
            'cd "$(dirname "$0")"',
            "",
            "export NODE_ENV=production",
            f"export DISPLAY=:{display}",
            "",
            f'echo "[$(date)] Starting {display_name} in display mode..." >> {log}',
            "",
            f"if [ -x {_q(packaged_binary)} ]; then",
            "    # Installed from package",
            f"    {packaged} >> {log} 2>&1 &",
            "else",
            "    # Installed from source tree",
            f"    {source} >> {log} 2>&1 &",
            "fi",
            "",
            "APP_PID=$!",
            f'echo "[$(date)] {display_name} started with PID $APP_PID" >> {log}',
            'wait "$APP_PID"',
            "",
        ]
    )


def session_profile(
    *,
    display_name: str,
    wrapper_path: str,
    window_manager: str,
    cursor_idle: float,
    wm_settle: int,
) -> str:
    wrapper = _q(wrapper_path)
    return "\n".join(
        [
            "#!/bin/bash",
            "# Disable screen blanking and power management",
            "xset s off",
            "xset -dpms",
            "xset s noblank",
            "",
            f"# Hide mouse cursor after {cursor_idle:g} seconds of inactivity",
            f"unclutter -idle {cursor_idle:g} -root &",
            "",
            f"{_q(window_manager)} &",
            "",
            f"# Wait for {window_manager} to start",
            f"sleep {wm_settle}",
            "",
            f"if [ -x {wrapper} ]; then",
            f"    exec {wrapper}",
            "fi",
            f'echo "ERROR: {display_name} startup script not found: {wrapper_path}" >&2',
            "exit 1",
            "",
        ]
    )


def login_hook_lines(tty: int) -> List[str]:
    return [
        f"# Start X at login on tty{tty}",
        f'if [ -z "$DISPLAY" ] && [ "$XDG_VTNR" = {tty} ]; then',
        "    exec startx",
        "fi",
    ]


def autologin_dropin(user: str) -> str:
    return "\n".join(
        [
            "[Service]",
            "ExecStart=",
            f"ExecStart=-/sbin/agetty --autologin {user} --noclear %I $TERM",
            "",
        ]
    )


def service_unit(
    *,
    display_name: str,
    user: str,
    home: str,
    display: int,
    vt: int,
    start_delay: int,
    restart_sec: int,
) -> str:
    return "\n".join(
        [
            "[Unit]",
            f"Description={display_name} Display Service",
            "After=network-online.target graphical.target",
            "Wants=network-online.target",
            "",
            "[Service]",
            "Type=simple",
            f"User={user}",
            f"Environment=DISPLAY=:{display}",
            f"Environment=XAUTHORITY={home}/.Xauthority",
            f"ExecStartPre=/bin/sleep {start_delay}",
            f"ExecStart=/usr/bin/startx {home}/.xinitrc -- :{display} vt{vt}",
            "Restart=on-failure",
            f"RestartSec={restart_sec}",
            "StandardOutput=journal",
            "StandardError=journal",
            "",
            "[Install]",
            "WantedBy=graphical.target",
            "",
        ]
    )
