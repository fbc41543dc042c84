from .step_20_resolve_release import ResolveReleaseStep
from .step_30_fetch_artifacts import FetchArtifactsStep
from .step_40_install_system_packages import InstallSystemPackagesStep
from .step_50_install_application import InstallApplicationStep
from .step_60_integrate_session import IntegrateSessionStep
from .step_70_grant_capability import GrantCapabilityStep
from .step_80_verify_installation import VerifyInstallationStep
from .step_90_report import ReportStep

__all__ = [
    "ResolveReleaseStep",
    "FetchArtifactsStep",
    "InstallSystemPackagesStep",
    "InstallApplicationStep",
    "IntegrateSessionStep",
    "GrantCapabilityStep",
    "VerifyInstallationStep",
    "ReportStep",
]
