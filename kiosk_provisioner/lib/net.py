from __future__ import annotations

import logging
from typing import Optional

from .command import run_cmd

logger = logging.getLogger(__name__)


def local_ip(*, dry_run: bool = False) -> Optional[str]:
    """First address from ``hostname -I`` (best-effort)."""

    r = run_cmd(["hostname", "-I"], check=False, dry_run=dry_run)
    if not r.ok:
        return None
    fields = r.stdout.split()
    return fields[0] if fields else None


def endpoint(host: str, port: int, path: str = "") -> str:
    netloc = host if port == 80 else f"{host}:{port}"
    return f"http://{netloc}{path}"
