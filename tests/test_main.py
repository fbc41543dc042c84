from __future__ import annotations

import json
import os
import pwd
import shutil
import tempfile
from pathlib import Path

import pytest
import requests

from kiosk_provisioner import main as main_mod
from kiosk_provisioner.errors import InvalidArtifact
from kiosk_provisioner.lib import identity
from kiosk_provisioner.state_store import load_state

ARTIFACT = "Companion.Dashboard-2.3.0-linux-amd64.deb"
RELEASE_DOC = {
    "tag_name": "v2.3.0",
    "assets": [{"name": ARTIFACT, "browser_download_url": f"https://example.test/dl/{ARTIFACT}"}],
}


class FakeHTTP:
    """Serves the release API, the package and the helper script."""

    def __init__(self, package_body: bytes):
        self.package_body = package_body
        self.urls = []

    def __call__(self, url, **kwargs):
        self.urls.append(url)
        if "/releases/latest" in url:
            return _Response(json.dumps(RELEASE_DOC).encode())
        if url.endswith(".sh"):
            return _Response(b"#!/bin/bash\necho helper\n")
        return _Response(self.package_body)


class _Response:
    def __init__(self, body: bytes, status_code: int = 200):
        self.content = body
        self.status_code = status_code
        self.ok = status_code < 400

    def json(self):
        return json.loads(self.content)

    def raise_for_status(self):
        if not self.ok:
            raise requests.HTTPError(f"{self.status_code}", response=self)

    def iter_content(self, chunk_size=1):
        yield self.content

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return False


@pytest.fixture
def scratch(tmp_path, monkeypatch):
    d = tmp_path / "scratch"
    d.mkdir()
    monkeypatch.setattr(tempfile, "tempdir", str(d))
    return d


@pytest.fixture
def host(monkeypatch, fake_cmd, scratch):
    """A machine where we are root, invoked via sudo by the 'kiosk' user."""

    monkeypatch.setattr(os, "geteuid", lambda: 0)
    monkeypatch.setattr(
        identity.pwd,
        "getpwnam",
        lambda name: pwd.struct_passwd((name, "x", 1000, 1000, "", f"/home/{name}", "/bin/bash")),
    )
    monkeypatch.setattr(os, "chown", lambda *args, **kwargs: None)
    monkeypatch.setattr(main_mod, "configure_logging", lambda **kwargs: kwargs.get("log_path"))
    monkeypatch.setattr(main_mod.signal, "signal", lambda *args: None)
    monkeypatch.setattr(shutil, "which", lambda name: f"/usr/bin/{name}")
    return fake_cmd


@pytest.fixture
def argv(tmp_path, system_root):
    return ["--user", "kiosk", "--arch", "x86_64", "--target-root", str(system_root), "--log", str(tmp_path / "run.log")]


@pytest.fixture
def packaged_checkout(source_tree, deb_bytes):
    (source_tree / ARTIFACT).write_bytes(deb_bytes)
    return source_tree


@pytest.fixture
def packaged_command(system_root):
    """What installing the package puts on the target's PATH."""

    p = system_root / "usr" / "bin" / "companion-dashboard"
    p.parent.mkdir(parents=True)
    p.write_text("#!/bin/sh\n", encoding="utf-8")
    p.chmod(0o755)
    return p


def _record(system_root: Path):
    return load_state(str(system_root / "var/lib/kiosk-provisioner/last-run.json"))


def _snapshot(root: Path):
    out = {}
    for p in sorted(root.rglob("*")):
        rel = p.relative_to(root).as_posix()
        if p.is_file():
            out[rel] = (p.read_bytes(), p.stat().st_mode)
        else:
            out[rel] = None
    return out


def test_offline_package_run_is_idempotent(host, argv, packaged_checkout, packaged_command, system_root, tmp_path, capsys):
    binary = system_root / "opt" / "Companion Dashboard" / "companion-dashboard"
    binary.parent.mkdir(parents=True)
    binary.write_text("#!/bin/sh\n", encoding="utf-8")
    binary.chmod(0o755)

    args = [*argv, "--source-dir", str(packaged_checkout)]
    assert main_mod.main(args) == 0
    first = _snapshot(system_root)
    first_out = capsys.readouterr().out
    assert main_mod.main(args) == 0
    second = _snapshot(system_root)

    assert first == second
    assert first_out.startswith("=== Installation Complete! ===")
    profile = (system_root / "home/kiosk/.bash_profile").read_text(encoding="utf-8")
    assert profile.count("exec startx") == 1
    assert host.ran("setcap", "cap_net_bind_service=+ep", "/opt/Companion Dashboard/companion-dashboard")
    assert ["mount", "--bind", "/dev", str(system_root / "dev")] in host.calls
    assert ["umount", "-lf", str(system_root / "dev")] in host.calls

    record = _record(system_root)
    assert record["decisions"]["strategy"] == "package"
    assert record["context"]["arch"] == "amd64"
    assert "errors" not in record
    assert record["ran_steps"][-1] == "90_report"
    assert record["log_path"] == str(tmp_path / "run.log")


def test_capability_problem_is_not_fatal(host, argv, packaged_checkout, packaged_command, capsys):
    assert main_mod.main([*argv, "--source-dir", str(packaged_checkout)]) == 0

    out = capsys.readouterr().out
    assert out.startswith("=== Installation Complete! ===")
    assert "Could not find the runtime binary" in out


def test_fatal_error_exits_nonzero_and_records_step(host, argv, tmp_path, system_root, capsys):
    empty = tmp_path / "empty"
    empty.mkdir()

    assert main_mod.main([*argv, "--source-dir", str(empty)]) == 1

    assert "missing required files" in capsys.readouterr().err
    record = _record(system_root)
    assert record["errors"][0]["step"] == "50_install_application"
    assert record["errors"][0]["type"] == "MissingManualInstallFiles"
    assert record["ran_steps"] == ["40_install_system_packages"]


def test_online_run_downloads_validates_and_cleans_up(host, argv, monkeypatch, scratch, system_root, deb_bytes):
    http = FakeHTTP(deb_bytes)
    monkeypatch.setattr(requests, "get", http)

    assert main_mod.main(argv) == 0

    assert http.urls[0] == "https://api.github.com/repos/tomhillmeyer/companion-dashboard/releases/latest"
    assert http.urls[1] == f"https://example.test/dl/{ARTIFACT}"
    assert http.urls[2].endswith("/v2.3.0/install-linux-server.sh")
    installs = [c for c in host.commands("apt-get") if c[-1].endswith(ARTIFACT)]
    assert len(installs) == 1
    assert list(scratch.iterdir()) == []
    assert _record(system_root)["release"]["tag"] == "v2.3.0"


def test_invalid_download_never_reaches_installer(host, argv, monkeypatch, scratch, system_root, capsys):
    monkeypatch.setattr(requests, "get", FakeHTTP(b"<!DOCTYPE html><html>rate limited</html>"))
    host.on("file", lambda args, kwargs: (0, "HTML document, ASCII text\n", ""))

    assert main_mod.main(argv) == 1

    assert host.commands("apt-get") == []
    assert list(scratch.iterdir()) == []
    assert "HTML document" in capsys.readouterr().err
    record = _record(system_root)
    assert record["errors"][0]["step"] == "30_fetch_artifacts"
    assert record["errors"][0]["type"] == InvalidArtifact.__name__


def test_dry_run_touches_nothing(host, argv, packaged_checkout, system_root, capsys):
    assert main_mod.main([*argv, "--source-dir", str(packaged_checkout), "--dry-run"]) == 0

    assert list(system_root.iterdir()) == []
    assert host.calls == []
    assert "Installation method: package" in capsys.readouterr().out


def test_must_run_as_root(host, argv, monkeypatch):
    monkeypatch.setattr(os, "geteuid", lambda: 1000)
    assert main_mod.main(argv) == 1


def test_unknown_architecture(host, tmp_path, system_root, capsys):
    args = ["--user", "kiosk", "--arch", "riscv64", "--target-root", str(system_root), "--log", str(tmp_path / "l")]
    assert main_mod.main(args) == 1
    assert "riscv64" in capsys.readouterr().err


def test_bad_autostart_choice_is_a_usage_error(host, argv):
    with pytest.raises(SystemExit) as exc:
        main_mod.main([*argv, "--autostart", "cron"])
    assert exc.value.code == 2


def test_malformed_profile_is_reported_not_raised(host, argv, tmp_path, capsys):
    profile = tmp_path / "broken.yaml"
    profile.write_text("kiosk: [unclosed\n", encoding="utf-8")

    assert main_mod.main([*argv, "--config", str(profile)]) == 1
    assert "not valid YAML" in capsys.readouterr().err


def test_empty_profile_list_is_rejected_before_provisioning(host, argv, tmp_path, system_root, capsys):
    profile = tmp_path / "kiosk.yaml"
    profile.write_text("product:\n  package_install_roots: []\n", encoding="utf-8")

    assert main_mod.main([*argv, "--config", str(profile)]) == 1
    assert "package_install_roots" in capsys.readouterr().err
    assert host.calls == []
