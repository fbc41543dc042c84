from __future__ import annotations

import os
from pathlib import Path

import pytest

from kiosk_provisioner.errors import (
    DependencyInstallFailed,
    MissingManualInstallFiles,
    PackageInstallFailed,
)
from kiosk_provisioner.models import InstallationOutcome, InstallStrategy
from kiosk_provisioner.steps import InstallApplicationStep


def _deb(directory: Path, name: str, body: bytes, mtime: float = 1000) -> Path:
    directory.mkdir(parents=True, exist_ok=True)
    p = directory / name
    p.write_bytes(body)
    os.utime(p, (mtime, mtime))
    return p


def test_package_strategy_installs_and_registers_library_dir(fake_cmd, make_run, cfg, tmp_path, system_root, deb_bytes):
    work = tmp_path / "work"
    _deb(work, "Companion.Dashboard-2.2.0-linux-amd64.deb", deb_bytes, mtime=1000)
    newest = _deb(work, "Companion.Dashboard-2.3.0-linux-amd64.deb", deb_bytes, mtime=2000)
    (system_root / "opt" / "Companion Dashboard" / "resources" / "lib").mkdir(parents=True)

    run = InstallApplicationStep().run(make_run(work_dir=work), cfg)

    assert run.outcome.strategy is InstallStrategy.PACKAGE
    assert run.outcome.success
    assert run.outcome.package_path == newest
    staged = "/var/cache/kiosk-provisioner/Companion.Dashboard-2.3.0-linux-amd64.deb"
    assert ["chroot", str(system_root), "apt-get", "install", "-y", staged] in fake_cmd.calls
    assert (system_root / staged.lstrip("/")).read_bytes() == deb_bytes
    conf = system_root / "etc" / "ld.so.conf.d" / "companion-dashboard.conf"
    assert conf.read_text(encoding="utf-8") == "/opt/Companion Dashboard/resources/lib\n"
    assert ["chroot", str(system_root), "ldconfig"] in fake_cmd.calls
    assert (system_root / "opt" / "companion-dashboard").is_dir()


def test_package_without_lib_dir_falls_back_to_install_root(fake_cmd, make_run, cfg, tmp_path, system_root, deb_bytes):
    work = tmp_path / "work"
    _deb(work / "out", "Companion.Dashboard-2.3.0-linux-amd64.deb", deb_bytes)

    run = InstallApplicationStep().run(make_run(work_dir=work), cfg)

    conf = system_root / "etc" / "ld.so.conf.d" / "companion-dashboard.conf"
    assert conf.read_text(encoding="utf-8") == "/opt/Companion Dashboard\n"
    assert run.outcome.library_dir == Path("/opt/Companion Dashboard")


def test_broken_package_is_fatal_without_manual_fallback(fake_cmd, make_run, cfg, source_tree, system_root, deb_bytes):
    _deb(source_tree, "Companion.Dashboard-2.3.0-linux-amd64.deb", deb_bytes)
    fake_cmd.fail("apt-get", 100, "dpkg: dependency problems")

    run = make_run(source_dir=source_tree)
    with pytest.raises(PackageInstallFailed) as exc:
        InstallApplicationStep().run(run, cfg)

    assert "dependency problems" in str(exc.value)
    assert run.outcome is None
    assert not fake_cmd.commands("sudo")
    assert not (system_root / "opt" / "companion-dashboard" / "dist").exists()


def test_manual_strategy_copies_and_installs_as_user(npm_ok, make_run, cfg, source_tree, system_root, principal):
    run = InstallApplicationStep().run(make_run(source_dir=source_tree), cfg)

    install = system_root / "opt" / "companion-dashboard"
    assert run.outcome == InstallationOutcome(strategy=InstallStrategy.MANUAL, success=True)
    assert (install / "dist" / "index.html").is_file()
    assert (install / "src" / "main.js").is_file()
    assert (install / "package.json").is_file()
    assert (install / "package-lock.json").is_file()
    assert not (install / "README.md").exists()
    assert (install / "dist").stat().st_uid == principal.uid

    sudo = npm_ok.commands("sudo")
    assert sudo == [
        ["sudo", "-u", "kiosk", "-H", "sh", "-c", 'cd "$1" && shift && exec "$@"', "sh", "/opt/companion-dashboard"]
        + ["npm", "install", "--omit=dev"]
    ]
    full = next(i for i, call in enumerate(npm_ok.calls) if call[2:3] == ["sudo"])
    assert npm_ok.calls[full][:2] == ["chroot", str(system_root)]
    assert npm_ok.cwds[full] == str(install)
    assert not npm_ok.commands("apt-get")


def test_missing_manual_files_named_and_nothing_copied(fake_cmd, make_run, cfg, source_tree, system_root):
    (source_tree / "package.json").unlink()
    for child in (source_tree / "src").iterdir():
        child.unlink()
    (source_tree / "src").rmdir()

    with pytest.raises(MissingManualInstallFiles) as exc:
        InstallApplicationStep().run(make_run(source_dir=source_tree), cfg)

    assert exc.value.missing == ["src", "package.json"]
    assert "src" in str(exc.value) and "package.json" in str(exc.value)
    install = system_root / "opt" / "companion-dashboard"
    assert list(install.iterdir()) == []
    assert not fake_cmd.commands("sudo")


def test_dependency_failure_is_fatal(fake_cmd, make_run, cfg, source_tree):
    fake_cmd.fail("sudo", 1, "npm ERR! network")
    with pytest.raises(DependencyInstallFailed) as exc:
        InstallApplicationStep().run(make_run(source_dir=source_tree), cfg)
    assert "npm ERR! network" in str(exc.value)


def test_outcome_invariant():
    with pytest.raises(ValueError):
        InstallationOutcome(strategy=None, success=True)
    with pytest.raises(ValueError):
        InstallationOutcome(strategy=InstallStrategy.PACKAGE, success=False)
