from __future__ import annotations

import logging

from ..config import ProvisionConfig
from ..lib.releases import (
    artifact_filename,
    asset_names,
    fetch_latest_release,
    helper_url,
    normalize_version,
    release_tag,
    select_asset,
)
from ..models import ReleaseDescriptor, RunState

logger = logging.getLogger(__name__)


class ResolveReleaseStep:
    step_id = "20_resolve_release"

    def run(self, run: RunState, cfg: ProvisionConfig) -> RunState:
        doc = fetch_latest_release(cfg.repository, api_base=cfg.api_base, timeout=cfg.timeout)

        tag = release_tag(doc)
        version = normalize_version(tag)
        logger.info("Latest version: %s", tag)

        filename = artifact_filename(
            cfg.artifact_prefix,
            version,
            cfg.platform,
            run.context.arch,
            cfg.package_ext,
        )
        url = select_asset(doc, filename)
        logger.info("Found package: %s", filename)

        run.release = ReleaseDescriptor(
            tag=tag,
            version=version,
            artifact_name=filename,
            artifact_url=url,
            helper_name=cfg.helper_script,
            helper_url=helper_url(cfg.repository, tag, cfg.helper_script, raw_base=cfg.raw_base),
            available_assets=asset_names(doc),
        )
        run.decisions["release"] = {"tag": tag, "artifact": filename}
        return run
