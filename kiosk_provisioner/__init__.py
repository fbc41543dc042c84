"""Kiosk provisioner (Python-first, stage-driven).

Core design goals:
- One-shot and re-runnable: every file is rewritten, nothing is resumed
- Two install strategies: release package or source tree
- Architecture-aware artifact selection
- Fatal errors stop the run; post-install problems are reported as warnings
- Centralized logging
"""

__version__ = "0.1.0"

__all__ = ["__version__"]
