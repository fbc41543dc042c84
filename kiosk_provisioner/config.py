from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

import yaml

from .models import AutostartVariant

SUPPORTED_PACKAGE_EXTS = {"deb"}

# Product lists that must not be empty.
NON_EMPTY_LISTS = (
    "package_install_roots",
    "binary_search_roots",
    "manual_required",
    "manual_copy",
    "dependency_command",
    "source_launch_command",
)

NUMERIC_KEYS = (
    "timeout",
    "display",
    "tty",
    "service_vt",
    "cursor_idle",
    "wm_settle",
    "start_delay",
    "restart_sec",
    "port",
)

DEFAULT_SYSTEM_PACKAGES = [
    "xorg",
    "openbox",
    "nodejs",
    "npm",
    "unclutter",
    "x11-xserver-utils",
    "libcap2-bin",
    "avahi-daemon",
    "avahi-utils",
]


def _section(raw: Dict[str, Any], key: str) -> Dict[str, Any]:
    value = raw.get(key) or {}
    if not isinstance(value, dict):
        raise ValueError(f"config section '{key}' must be a mapping")
    return value


def _str_list(value: Any, default: List[str]) -> List[str]:
    if value is None:
        return list(default)
    if isinstance(value, str):
        return [value]
    if not isinstance(value, (list, tuple)):
        raise ValueError(f"expected a list of strings, got {value!r}")
    return [str(v) for v in value]


def _number(section: Dict[str, Any], key: str, default: Any, kind: Callable[[Any], Any]) -> Any:
    # An explicit null in YAML means "use the default".
    value = section.get(key)
    if value is None:
        return kind(default)
    try:
        return kind(value)
    except (TypeError, ValueError) as e:
        raise ValueError(f"config key '{key}' must be a number, got {value!r}") from e


@dataclass(frozen=True)
class ProvisionConfig:
    """Product and kiosk profile. Properties fall back to the Companion Dashboard defaults."""

    raw: Dict[str, Any] = field(default_factory=dict)

    # product

    @property
    def product(self) -> Dict[str, Any]:
        return _section(self.raw, "product")

    @property
    def name(self) -> str:
        return str(self.product.get("name") or "companion-dashboard")

    @property
    def display_name(self) -> str:
        return str(self.product.get("display_name") or "Companion Dashboard")

    @property
    def repository(self) -> str:
        return str(self.product.get("repository") or "tomhillmeyer/companion-dashboard")

    @property
    def artifact_prefix(self) -> str:
        return str(self.product.get("artifact_prefix") or "Companion.Dashboard")

    @property
    def platform(self) -> str:
        return str(self.product.get("platform") or "linux")

    @property
    def package_ext(self) -> str:
        return str(self.product.get("package_ext") or "deb").lstrip(".")

    @property
    def package_glob(self) -> str:
        return f"{self.artifact_prefix}-*.{self.package_ext}"

    @property
    def helper_script(self) -> str:
        return str(self.product.get("helper_script") or "install-linux-server.sh")

    @property
    def command(self) -> str:
        return str(self.product.get("command") or self.name)

    @property
    def launch_args(self) -> List[str]:
        return _str_list(self.product.get("launch_args"), ["--no-sandbox", "--kiosk-mode"])

    @property
    def install_root(self) -> str:
        return str(self.product.get("install_root") or f"/opt/{self.name}")

    @property
    def package_install_roots(self) -> List[str]:
        return _str_list(
            self.product.get("package_install_roots"),
            [f"/opt/{self.display_name}", f"/usr/lib/{self.name}"],
        )

    @property
    def binary_candidates(self) -> List[str]:
        return _str_list(
            self.product.get("binary_candidates"),
            [
                f"/opt/{self.display_name}/{self.command}",
                f"/opt/{self.display_name}/chrome-sandbox",
                f"/usr/lib/{self.name}/{self.command}",
            ],
        )

    @property
    def binary_search_roots(self) -> List[str]:
        return _str_list(self.product.get("binary_search_roots"), ["/opt", "/usr/lib"])

    @property
    def manual_required(self) -> List[str]:
        return _str_list(self.product.get("manual_required"), ["dist", "src", "package.json"])

    @property
    def manual_copy(self) -> List[str]:
        return _str_list(self.product.get("manual_copy"), ["dist", "src", "package*.json"])

    @property
    def manual_verify_dirs(self) -> List[str]:
        return _str_list(self.product.get("manual_verify_dirs"), ["dist", "src"])

    @property
    def dependency_dir(self) -> str:
        return str(self.product.get("dependency_dir") or "node_modules")

    @property
    def dependency_command(self) -> List[str]:
        return _str_list(self.product.get("dependency_command"), ["npm", "install", "--omit=dev"])

    @property
    def runtime_command(self) -> str:
        return str(self.product.get("runtime_command") or "node")

    @property
    def source_launch_command(self) -> List[str]:
        return _str_list(self.product.get("source_launch_command"), ["npx", "electron", "."])

    # release

    @property
    def release(self) -> Dict[str, Any]:
        return _section(self.raw, "release")

    @property
    def api_base(self) -> str:
        return str(self.release.get("api_base") or "https://api.github.com").rstrip("/")

    @property
    def raw_base(self) -> str:
        return str(self.release.get("raw_base") or "https://raw.githubusercontent.com").rstrip("/")

    @property
    def timeout(self) -> float:
        return _number(self.release, "timeout", 30, float)

    # kiosk

    @property
    def kiosk(self) -> Dict[str, Any]:
        return _section(self.raw, "kiosk")

    @property
    def autostart(self) -> AutostartVariant:
        return AutostartVariant(str(self.kiosk.get("autostart") or AutostartVariant.LOGIN_HOOK.value))

    @property
    def display(self) -> int:
        return _number(self.kiosk, "display", 0, int)

    @property
    def tty(self) -> int:
        return _number(self.kiosk, "tty", 1, int)

    @property
    def service_vt(self) -> int:
        return _number(self.kiosk, "service_vt", 7, int)

    @property
    def cursor_idle(self) -> float:
        return _number(self.kiosk, "cursor_idle", 0.1, float)

    @property
    def wm_settle(self) -> int:
        return _number(self.kiosk, "wm_settle", 2, int)

    @property
    def window_manager(self) -> str:
        return str(self.kiosk.get("window_manager") or "openbox")

    @property
    def start_delay(self) -> int:
        return _number(self.kiosk, "start_delay", 5, int)

    @property
    def restart_sec(self) -> int:
        return _number(self.kiosk, "restart_sec", 10, int)

    @property
    def runtime_log(self) -> str:
        return str(self.kiosk.get("runtime_log") or f"/tmp/{self.name}.log")

    # network

    @property
    def network(self) -> Dict[str, Any]:
        return _section(self.raw, "network")

    @property
    def mdns(self) -> bool:
        return bool(self.network.get("mdns", True))

    @property
    def hostname(self) -> str:
        return str(self.network.get("hostname") or "dashboard.local")

    @property
    def port(self) -> int:
        return _number(self.network, "port", 80, int)

    @property
    def control_path(self) -> str:
        return "/" + str(self.network.get("control_path") or "/control").lstrip("/")

    # system packages

    @property
    def system_packages(self) -> List[str]:
        return _str_list(self.raw.get("system_packages"), DEFAULT_SYSTEM_PACKAGES)

    @property
    def mdns_service(self) -> str:
        return str(self.raw.get("mdns_service") or "avahi-daemon")

    def validate(self) -> "ProvisionConfig":
        if self.package_ext not in SUPPORTED_PACKAGE_EXTS:
            raise ValueError(
                f"Unsupported package_ext {self.package_ext!r} (supported: {', '.join(sorted(SUPPORTED_PACKAGE_EXTS))})"
            )
        try:
            self.autostart
        except ValueError as e:
            raise ValueError(f"kiosk.autostart must be one of: {', '.join(v.value for v in AutostartVariant)}") from e

        for key in NON_EMPTY_LISTS:
            if not getattr(self, key):
                raise ValueError(f"product.{key} must list at least one entry")

        for key in NUMERIC_KEYS:
            getattr(self, key)
        if self.timeout <= 0:
            raise ValueError("release.timeout must be positive")
        return self


def load_config(path: Optional[str]) -> ProvisionConfig:
    if path is None:
        return ProvisionConfig().validate()

    p = Path(path)
    if not p.exists():
        raise FileNotFoundError(path)

    if p.suffix.lower() not in {".yaml", ".yml"}:
        raise ValueError("provisioning profile must be YAML")

    try:
        raw = yaml.safe_load(p.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as e:
        raise ValueError(f"{p.name} is not valid YAML: {e}") from e
    if not isinstance(raw, dict):
        raise ValueError(f"{p.name} must contain a mapping/object")

    return ProvisionConfig(raw=raw).validate()
