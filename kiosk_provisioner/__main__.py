from __future__ import annotations

from kiosk_provisioner.main import main

if __name__ == "__main__":
    raise SystemExit(main())
