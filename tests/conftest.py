"""Shared fixtures: a throwaway system root, a fake command runner, a fake kiosk user."""

from __future__ import annotations

import os
import subprocess
from pathlib import Path
from typing import Callable, Dict, List, Optional, Tuple

import pytest

from kiosk_provisioner.config import ProvisionConfig
from kiosk_provisioner.lib import command
from kiosk_provisioner.models import AutostartVariant, InstallationContext, Principal, RunState

Handler = Callable[[List[str], dict], Tuple[int, str, str]]


class FakeRunner:
    """Stands in for subprocess.run inside the command runner and records every call.

    Commands wrapped in ``chroot ROOT`` are dispatched and matched on the inner
    command; ``calls`` keeps the full argv.
    """

    def __init__(self) -> None:
        self.calls: List[List[str]] = []
        self.cwds: List[Optional[str]] = []
        self.handlers: Dict[str, Handler] = {
            "getcap": lambda argv, kw: (0, f"{argv[-1]} cap_net_bind_service=ep\n", ""),
            "hostname": lambda argv, kw: (0, "192.168.1.50 fe80::1\n", ""),
            "file": lambda argv, kw: (0, "data\n", ""),
        }

    def on(self, program: str, handler: Handler) -> None:
        self.handlers[program] = handler

    def fail(self, program: str, returncode: int = 1, stderr: str = "boom") -> None:
        self.handlers[program] = lambda argv, kw: (returncode, "", stderr)

    @staticmethod
    def inner(argv: List[str]) -> List[str]:
        return argv[2:] if argv[:1] == ["chroot"] else argv

    def __call__(self, argv, **kwargs):
        argv = list(argv)
        self.calls.append(argv)
        self.cwds.append(kwargs.get("cwd"))
        cmd = self.inner(argv)
        handler = self.handlers.get(cmd[0])
        rc, out, err = handler(cmd, kwargs) if handler else (0, "", "")
        return subprocess.CompletedProcess(argv, rc, out, err)

    def ran(self, *prefix: str) -> bool:
        return any(self.inner(call)[: len(prefix)] == list(prefix) for call in self.calls)

    def commands(self, program: str) -> List[List[str]]:
        return [self.inner(c) for c in self.calls if self.inner(c)[:1] == [program]]


@pytest.fixture
def fake_cmd(monkeypatch) -> FakeRunner:
    runner = FakeRunner()
    monkeypatch.setattr(command.subprocess, "run", runner)
    return runner


@pytest.fixture
def system_root(tmp_path: Path) -> Path:
    root = tmp_path / "root"
    root.mkdir()
    return root


@pytest.fixture
def principal() -> Principal:
    # The test process's own ids, so chown() succeeds without privileges.
    return Principal(name="kiosk", uid=os.getuid(), gid=os.getgid(), home=Path("/home/kiosk"))


@pytest.fixture
def cfg() -> ProvisionConfig:
    return ProvisionConfig()


@pytest.fixture
def make_run(system_root: Path, principal: Principal):
    def _make(
        *,
        autostart: AutostartVariant = AutostartVariant.LOGIN_HOOK,
        source_dir: Optional[Path] = None,
        work_dir: Optional[Path] = None,
        arch: str = "amd64",
    ) -> RunState:
        ctx = InstallationContext(
            principal=principal,
            install_root=Path("/opt/companion-dashboard"),
            arch=arch,
            autostart=autostart,
            system_root=system_root,
            source_dir=source_dir,
        )
        return RunState(context=ctx, work_dir=work_dir)

    return _make


DEB_BYTES = b"!<arch>\ndebian-binary   1700000000  0     0     100644  4         `\n2.0\n"


@pytest.fixture
def deb_bytes() -> bytes:
    return DEB_BYTES


@pytest.fixture
def source_tree(tmp_path: Path) -> Path:
    """A checkout with everything the manual strategy needs."""

    src = tmp_path / "checkout"
    (src / "dist").mkdir(parents=True)
    (src / "dist" / "index.html").write_text("<html></html>", encoding="utf-8")
    (src / "src").mkdir()
    (src / "src" / "main.js").write_text("console.log('hi')\n", encoding="utf-8")
    (src / "package.json").write_text('{"name": "companion-dashboard"}\n', encoding="utf-8")
    (src / "package-lock.json").write_text("{}\n", encoding="utf-8")
    (src / "README.md").write_text("not copied\n", encoding="utf-8")
    return src


def npm_creates_node_modules(argv, kwargs):
    Path(kwargs["cwd"], "node_modules").mkdir(exist_ok=True)
    return 0, "added 42 packages\n", ""


@pytest.fixture
def npm_ok(fake_cmd: FakeRunner) -> FakeRunner:
    fake_cmd.on("sudo", npm_creates_node_modules)
    return fake_cmd
