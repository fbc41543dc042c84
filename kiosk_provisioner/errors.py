from __future__ import annotations

from typing import Iterable, List, Optional


class ProvisionError(RuntimeError):
    """Fatal provisioning failure: aborts the run with a non-zero exit code."""


class InsufficientPrivilege(ProvisionError):
    pass


class NoActingIdentity(ProvisionError):
    pass


class UnsupportedArchitecture(ProvisionError):
    def __init__(self, raw: str, supported: Iterable[str]) -> None:
        self.raw = raw
        self.supported = list(supported)
        super().__init__(
            f"Unsupported architecture: {raw!r} (supported: {', '.join(self.supported)})"
        )


class ReleaseMetadataUnavailable(ProvisionError):
    pass


class ArtifactNotFound(ProvisionError):
    def __init__(self, expected: str, available: Iterable[str]) -> None:
        self.expected = expected
        self.available = list(available)
        listing = "\n".join(f"  {name}" for name in self.available) or "  (no assets)"
        super().__init__(
            f"Could not find {expected} in latest release\nAvailable files:\n{listing}"
        )


class DownloadFailed(ProvisionError):
    def __init__(self, url: str, reason: str) -> None:
        self.url = url
        self.reason = reason
        super().__init__(f"Download failed: {reason}\nURL: {url}")


class InvalidArtifact(ProvisionError):
    def __init__(self, path: str, observed_type: str, size: int) -> None:
        self.path = path
        self.observed_type = observed_type
        self.size = size
        super().__init__(
            f"Downloaded file is not a valid package: {path}\n"
            f"File type: {observed_type}\n"
            f"File size: {size} bytes"
        )


class PackageInstallFailed(ProvisionError):
    pass


class MissingManualInstallFiles(ProvisionError):
    def __init__(self, missing: Iterable[str], source_dir: Optional[str] = None) -> None:
        self.missing: List[str] = list(missing)
        self.source_dir = source_dir
        where = f" in {source_dir}" if source_dir else ""
        super().__init__(
            f"Manual installation failed: missing required files{where}: "
            + ", ".join(self.missing)
        )


class DependencyInstallFailed(ProvisionError):
    pass


class CommandFailed(ProvisionError):
    def __init__(self, argv_text: str, returncode: int, stderr: str = "") -> None:
        self.argv_text = argv_text
        self.returncode = returncode
        self.stderr = stderr
        super().__init__(f"Command failed ({returncode}): {argv_text}\n{stderr}".rstrip())
