from __future__ import annotations

import logging
import platform

from ..errors import UnsupportedArchitecture

logger = logging.getLogger(__name__)

# Raw `uname -m` style identifiers -> Debian package architecture.
ARCH_MAP = {
    "x86_64": "amd64",
    "amd64": "amd64",
    "aarch64": "arm64",
    "arm64": "arm64",
}


def resolve_arch(raw: str) -> str:
    """Map a raw platform identifier to its package architecture tag.

    Unlike hardware detection, nothing is guessed here: an identifier outside
    ARCH_MAP aborts the run.
    """
    key = (raw or "").strip().lower()
    try:
        tag = ARCH_MAP[key]
    except KeyError:
        raise UnsupportedArchitecture(raw, sorted(ARCH_MAP)) from None
    logger.info("Detected architecture: %s (using %s packages)", raw, tag)
    return tag


def detect_arch() -> str:
    return resolve_arch(platform.machine())
