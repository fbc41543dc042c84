from __future__ import annotations

import logging

from ..config import ProvisionConfig
from ..errors import DownloadFailed, ProvisionError
from ..lib.download import download_file, sniff_package
from ..models import ArtifactStatus, LocalArtifact, RunState

logger = logging.getLogger(__name__)


class FetchArtifactsStep:
    step_id = "30_fetch_artifacts"

    def run(self, run: RunState, cfg: ProvisionConfig) -> RunState:
        release = run.release
        if release is None:
            raise ProvisionError("release must be resolved before fetching artifacts")
        if run.work_dir is None:
            raise ProvisionError("download workspace missing")

        dest = run.work_dir / release.artifact_name
        size = download_file(release.artifact_url, dest)
        artifact = LocalArtifact(path=dest, declared_type=cfg.package_ext, size=size)
        run.artifact = artifact

        try:
            artifact.observed_type = sniff_package(dest, cfg.package_ext)
        except ProvisionError:
            artifact.status = ArtifactStatus.INVALID
            raise
        artifact.status = ArtifactStatus.VALID
        logger.info("Downloaded package %s (%d bytes)", dest.name, size)

        helper = run.work_dir / release.helper_name
        helper_size = download_file(release.helper_url, helper)
        if helper_size == 0:
            raise DownloadFailed(release.helper_url, "installation helper is empty")
        helper.chmod(0o755)
        run.helper = LocalArtifact(
            path=helper,
            declared_type="helper",
            size=helper_size,
            status=ArtifactStatus.VALID,
        )
        logger.info("Downloaded installation helper %s", helper.name)
        return run
