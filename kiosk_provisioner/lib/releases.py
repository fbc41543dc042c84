from __future__ import annotations

import logging
from typing import Any, Dict, List

import requests

from ..errors import ArtifactNotFound, ReleaseMetadataUnavailable

logger = logging.getLogger(__name__)

USER_AGENT = "kiosk-provisioner"


def fetch_latest_release(repo: str, *, api_base: str = "https://api.github.com", timeout: float = 30) -> Dict[str, Any]:
    """GET the latest-release document for ``repo`` (``owner/name``)."""

    url = f"{api_base.rstrip('/')}/repos/{repo}/releases/latest"
    headers = {"Accept": "application/vnd.github+json", "User-Agent": USER_AGENT}
    logger.info("Fetching latest release information: %s", url)
    try:
        r = requests.get(url, headers=headers, timeout=timeout)
    except requests.RequestException as e:
        raise ReleaseMetadataUnavailable(f"Could not fetch release information from {url}: {e}") from e

    if r.status_code == 404:
        raise ReleaseMetadataUnavailable(f"Could not fetch release information: {repo} not found")
    if not r.ok:
        raise ReleaseMetadataUnavailable(f"Could not fetch release information: HTTP {r.status_code} from {url}")
    if not r.content or not r.content.strip():
        raise ReleaseMetadataUnavailable(f"Empty release information from {url}")

    try:
        doc = r.json()
    except ValueError as e:
        raise ReleaseMetadataUnavailable(f"Invalid release information from {url}: {e}") from e

    if not isinstance(doc, dict) or not doc:
        raise ReleaseMetadataUnavailable(f"Unexpected release document from {url}")
    if str(doc.get("message") or "").strip().lower() == "not found":
        raise ReleaseMetadataUnavailable(f"Could not fetch release information: {repo} not found")
    return doc


def release_tag(doc: Dict[str, Any]) -> str:
    tag = doc.get("tag_name")
    if tag is None or not str(tag).strip() or str(tag).strip() == "null":
        raise ReleaseMetadataUnavailable("Could not determine latest version (no tag_name)")
    return str(tag).strip()


def normalize_version(tag: str) -> str:
    """Drop one leading non-digit scheme character: ``v2.3.0`` -> ``2.3.0``."""
    if tag and not tag[0].isdigit():
        return tag[1:]
    return tag


def artifact_filename(prefix: str, version: str, platform: str, arch: str, ext: str) -> str:
    return f"{prefix}-{version}-{platform}-{arch}.{ext.lstrip('.')}"


def asset_names(doc: Dict[str, Any]) -> List[str]:
    return [str(a.get("name")) for a in (doc.get("assets") or []) if isinstance(a, dict) and a.get("name")]


def select_asset(doc: Dict[str, Any], filename: str) -> str:
    """Download URL of the asset named exactly ``filename``."""

    for asset in doc.get("assets") or []:
        if not isinstance(asset, dict):
            continue
        if asset.get("name") == filename:
            url = asset.get("browser_download_url")
            if url:
                return str(url)
    raise ArtifactNotFound(filename, asset_names(doc))


def helper_url(repo: str, tag: str, script: str, *, raw_base: str = "https://raw.githubusercontent.com") -> str:
    return f"{raw_base.rstrip('/')}/{repo}/{tag}/{script}"
