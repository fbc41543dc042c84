from __future__ import annotations

import contextlib
import logging
import shutil
import tempfile
from pathlib import Path
from typing import Iterator

import requests

from ..errors import DownloadFailed, InvalidArtifact
from .command import run_cmd

logger = logging.getLogger(__name__)

CHUNK_SIZE = 1024 * 512

# ar(1) global header followed by the first member name of a .deb.
_DEB_MAGIC = b"!<arch>\n"
_DEB_FIRST_MEMBER = b"debian-binary"


@contextlib.contextmanager
def download_workspace(prefix: str = "kiosk-provisioner-") -> Iterator[Path]:
    """Scratch directory removed on every exit path, including interrupts."""

    with tempfile.TemporaryDirectory(prefix=prefix) as tmp:
        logger.info("Download workspace: %s", tmp)
        try:
            yield Path(tmp)
        finally:
            logger.info("Cleaning up download workspace %s", tmp)


def download_file(url: str, dest: Path, *, timeout: float = 120) -> int:
    """Stream ``url`` into ``dest``; returns the number of bytes written."""

    logger.info("Downloading %s -> %s", url, dest)
    dest.parent.mkdir(parents=True, exist_ok=True)
    written = 0
    try:
        with requests.get(url, stream=True, timeout=timeout, allow_redirects=True) as r:
            r.raise_for_status()
            with dest.open("wb") as f:
                for chunk in r.iter_content(chunk_size=CHUNK_SIZE):
                    if chunk:
                        f.write(chunk)
                        written += len(chunk)
    except requests.HTTPError as e:
        status = e.response.status_code if e.response is not None else "?"
        raise DownloadFailed(url, f"HTTP {status}") from e
    except requests.RequestException as e:
        raise DownloadFailed(url, str(e)) from e
    except OSError as e:
        raise DownloadFailed(url, f"cannot write {dest}: {e}") from e
    logger.info("Downloaded %s (%d bytes)", dest.name, written)
    return written


def _describe_bytes(head: bytes) -> str:
    if not head:
        return "empty"
    stripped = head.lstrip().lower()
    if stripped.startswith((b"<!doctype html", b"<html")):
        return "HTML document"
    if stripped.startswith((b"{", b"[")):
        return "JSON data"
    if head.startswith(_DEB_MAGIC):
        return "current ar archive"
    if head.startswith(b"PK\x03\x04"):
        return "Zip archive data"
    if all(32 <= b < 127 or b in (9, 10, 13) for b in head):
        return "ASCII text"
    return "data"


def describe_file(path: Path) -> str:
    """Human-readable type, preferring file(1) when it is installed."""

    if shutil.which("file"):
        r = run_cmd(["file", "-b", str(path)], check=False)
        if r.ok and r.stdout.strip():
            return r.stdout.strip()
    with path.open("rb") as f:
        return _describe_bytes(f.read(512))


def is_debian_package(head: bytes) -> bool:
    return head.startswith(_DEB_MAGIC) and head[len(_DEB_MAGIC):].startswith(_DEB_FIRST_MEMBER)


SIGNATURES = {
    "deb": is_debian_package,
}


def sniff_package(path: Path, ext: str) -> str:
    """Fail with InvalidArtifact unless ``path`` carries the package signature for ``ext``.

    Guards against installing an HTML error page or a truncated download.
    Returns the observed type description.
    """

    if not path.is_file():
        raise InvalidArtifact(str(path), "missing", 0)
    size = path.stat().st_size
    with path.open("rb") as f:
        head = f.read(64)
    check = SIGNATURES.get(ext.lstrip("."))
    if check is None or not check(head):
        raise InvalidArtifact(str(path), describe_file(path), size)
    observed = "Debian binary package" if ext.lstrip(".") == "deb" else ext
    logger.info("Validated %s: %s (%d bytes)", path.name, observed, size)
    return observed
