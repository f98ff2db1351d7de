"""
Orchestrator Package.

============================================================
PURPOSE
============================================================
Process wiring and operator entry points.

- runtime: composition root, signal handling, shutdown
- cli: argparse commands (run, force-update, publish, ...)

============================================================
"""

from orchestrator.runtime import Runtime, setup_logging


__all__ = [
    "Runtime",
    "setup_logging",
]
