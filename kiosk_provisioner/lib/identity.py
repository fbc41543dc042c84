from __future__ import annotations

import logging
import os
import pwd
from pathlib import Path
from typing import Mapping, Optional

from ..errors import InsufficientPrivilege, NoActingIdentity
from ..models import Principal

logger = logging.getLogger(__name__)


def require_root() -> None:
    if os.geteuid() != 0:
        raise InsufficientPrivilege("Please run as root (use sudo)")


def resolve_principal(
    user: Optional[str] = None,
    *,
    environ: Optional[Mapping[str, str]] = None,
) -> Principal:
    """Resolve the non-elevated user who requested the run.

    An explicit ``user`` wins; otherwise SUDO_USER. Running as root directly
    (no requesting user) is refused, since every kiosk file must belong to a
    regular account.
    """

    env = os.environ if environ is None else environ
    name = (user or env.get("SUDO_USER") or "").strip()
    if not name:
        raise NoActingIdentity("Please run this with sudo, not as root directly (or pass --user)")

    try:
        info = pwd.getpwnam(name)
    except KeyError:
        raise NoActingIdentity(f"Unable to resolve acting user: {name}") from None

    if info.pw_uid == 0:
        raise NoActingIdentity(f"Acting user must not be root: {name}")

    principal = Principal(name=info.pw_name, uid=info.pw_uid, gid=info.pw_gid, home=Path(info.pw_dir))
    logger.info("Installing for user: %s (uid=%s home=%s)", principal.name, principal.uid, principal.home)
    return principal
