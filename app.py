#!/usr/bin/env python3
"""
Market Signal Pipeline - Main Application Entry Point.

============================================================
SINGLE ENTRYPOINT
============================================================
This is the ONE executable entry point of the pipeline.

- Compatible with PM2 process management
- Can be started, stopped, and restarted safely
- Handles SIGINT/SIGTERM gracefully (see orchestrator.runtime)

============================================================
USAGE
============================================================
Direct execution:
    python app.py run

With PM2:
    pm2 start app.py --interpreter python --name market-signals -- run

Administrative commands:
    python app.py force-update altcoin_season_index
    python app.py publish 1234
    python app.py status

============================================================
"""

import sys
from pathlib import Path

# Add project root to path
PROJECT_ROOT = Path(__file__).parent.absolute()
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from orchestrator.cli import main


if __name__ == "__main__":
    sys.exit(main())
