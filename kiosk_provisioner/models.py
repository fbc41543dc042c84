from __future__ import annotations

import enum
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional


class AutostartVariant(str, enum.Enum):
    LOGIN_HOOK = "login-hook"
    SERVICE = "service"


class InstallStrategy(str, enum.Enum):
    PACKAGE = "package"
    MANUAL = "manual"


class ArtifactStatus(str, enum.Enum):
    UNVALIDATED = "unvalidated"
    VALID = "valid"
    INVALID = "invalid"


@dataclass(frozen=True)
class Principal:
    """The non-elevated user the kiosk runs as."""

    name: str
    uid: int
    gid: int
    home: Path


@dataclass(frozen=True)
class InstallationContext:
    principal: Principal
    install_root: Path
    arch: str
    autostart: AutostartVariant
    system_root: Path = Path("/")
    source_dir: Optional[Path] = None
    dry_run: bool = False

    def system_path(self, path: str | Path) -> Path:
        """Resolve an absolute system path (``/etc/...``) under the system root."""
        return self.system_root / str(path).lstrip("/")

    def machine_path(self, path: Path) -> str:
        """Inverse of system_path: the absolute path as the provisioned machine sees it."""
        try:
            rel = path.relative_to(self.system_root)
        except ValueError:
            return str(path)
        return "/" if rel == Path(".") else "/" + rel.as_posix()

    @property
    def home(self) -> Path:
        return self.system_path(self.principal.home)

    @property
    def install_dir(self) -> Path:
        return self.system_path(self.install_root)


@dataclass(frozen=True)
class ReleaseDescriptor:
    tag: str
    version: str
    artifact_name: str
    artifact_url: str
    helper_name: str
    helper_url: str
    available_assets: List[str] = field(default_factory=list)


@dataclass
class LocalArtifact:
    path: Path
    declared_type: str
    size: int = 0
    status: ArtifactStatus = ArtifactStatus.UNVALIDATED
    observed_type: Optional[str] = None


@dataclass
class InstallationOutcome:
    strategy: Optional[InstallStrategy]
    success: bool
    runtime_binary: Optional[Path] = None
    package_path: Optional[Path] = None
    library_dir: Optional[Path] = None

    def __post_init__(self) -> None:
        if (self.strategy is not None) != bool(self.success):
            raise ValueError("InstallationOutcome.strategy must be set if and only if success is true")


@dataclass(frozen=True)
class IntegrationArtifacts:
    startup_wrapper: Path
    session_profile: Path
    autostart_descriptor: Path
    autologin_dropin: Path
    display: int
    variant: AutostartVariant


@dataclass(frozen=True)
class CapabilityGrant:
    binary: Optional[Path]
    capability: str
    granted: bool
    remediation: Optional[str] = None


@dataclass(frozen=True)
class CheckResult:
    name: str
    passed: bool
    message: str = ""


@dataclass
class VerificationReport:
    checks: List[CheckResult] = field(default_factory=list)

    def add(self, name: str, passed: bool, message: str = "") -> None:
        self.checks.append(CheckResult(name=name, passed=passed, message=message))

    @property
    def ok(self) -> bool:
        return all(c.passed for c in self.checks)

    @property
    def failures(self) -> List[CheckResult]:
        return [c for c in self.checks if not c.passed]


@dataclass
class RunState:
    """Everything one provisioning run produces, passed from step to step."""

    context: InstallationContext
    work_dir: Optional[Path] = None
    release: Optional[ReleaseDescriptor] = None
    artifact: Optional[LocalArtifact] = None
    helper: Optional[LocalArtifact] = None
    outcome: Optional[InstallationOutcome] = None
    integration: Optional[IntegrationArtifacts] = None
    grant: Optional[CapabilityGrant] = None
    verification: Optional[VerificationReport] = None
    report_text: Optional[str] = None
    warnings: List[str] = field(default_factory=list)
    decisions: Dict[str, Any] = field(default_factory=dict)

    def warn(self, message: str) -> None:
        self.warnings.append(message)

    def search_dirs(self) -> List[Path]:
        """Directories searched for a package artifact, in priority order."""
        base = self.context.source_dir or self.work_dir
        if base is None:
            return []
        return [base, base / "out"]

    def to_record(self) -> Dict[str, Any]:
        ctx = self.context
        record: Dict[str, Any] = {
            "context": {
                "user": ctx.principal.name,
                "home": str(ctx.principal.home),
                "install_root": str(ctx.install_root),
                "arch": ctx.arch,
                "autostart": ctx.autostart.value,
                "system_root": str(ctx.system_root),
                "source_dir": str(ctx.source_dir) if ctx.source_dir else None,
                "dry_run": ctx.dry_run,
            },
            "decisions": dict(self.decisions),
            "warnings": list(self.warnings),
        }
        if self.release is not None:
            record["release"] = {
                "tag": self.release.tag,
                "version": self.release.version,
                "artifact": self.release.artifact_name,
                "url": self.release.artifact_url,
            }
        if self.outcome is not None:
            record["outcome"] = {
                "strategy": self.outcome.strategy.value if self.outcome.strategy else None,
                "success": self.outcome.success,
                "runtime_binary": str(self.outcome.runtime_binary) if self.outcome.runtime_binary else None,
            }
        if self.grant is not None:
            record["capability"] = {
                "binary": str(self.grant.binary) if self.grant.binary else None,
                "granted": self.grant.granted,
            }
        if self.verification is not None:
            record["verification"] = {
                "ok": self.verification.ok,
                "checks": [
                    {"name": c.name, "passed": c.passed, "message": c.message}
                    for c in self.verification.checks
                ],
            }
        return record
