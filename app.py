#!/usr/bin/env python3
"""
Facility Runtime - Main Application Entry Point.

============================================================
SINGLE ENTRYPOINT
============================================================
This is the ONE executable entry point for a worker process.

- Compatible with PM2 process management
- Can be started and stopped safely
- Handles SIGINT/SIGTERM gracefully
- Wires the facility catalog into one controlled runtime

============================================================
USAGE
============================================================
Direct execution:
    python app.py --env production --conf coin:coin

With PM2:
    pm2 start app.py --interpreter python --name wrk-base -- --env production

Environment-based configuration:
    WORKER_ENV=production WORKER_TYPE=wrk-base python app.py

============================================================
"""

import logging
import sys
from pathlib import Path

# Add project root to path
PROJECT_ROOT = Path(__file__).parent.absolute()
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from orchestrator.cli import main as cli_main
from orchestrator.core import Orchestrator
from orchestrator.registry import FacilityCatalog, default_catalog


STATUS_SAVE_INTERVAL_SECONDS = 60.0


# ============================================================
# FACILITY WIRING
# ============================================================

def build_catalog() -> FacilityCatalog:
    """
    Catalog of every facility this process can load.

    Register additional implementations here:
        default_catalog({"db-sqlite": SqliteFacility})
    """
    return default_catalog()


def setup_worker(orchestrator: Orchestrator) -> None:
    """
    Declare worker facilities and schedule status snapshots.

    Args:
        orchestrator: Freshly initialized orchestrator
    """
    logger = logging.getLogger(__name__)

    def on_started(wrk: Orchestrator) -> None:
        intervals = wrk.get_facility("intervals", "0")
        if intervals is None:
            logger.warning("Intervals facility not available, status snapshots disabled")
            return
        intervals.add("status", wrk.save_status, STATUS_SAVE_INTERVAL_SECONDS)
        logger.info(f"Status snapshots every {STATUS_SAVE_INTERVAL_SECONDS:.0f}s")

    if orchestrator.config.status_persistence_enabled:
        orchestrator.on_started(on_started)


# ============================================================
# ENTRY POINT
# ============================================================

def main() -> int:
    """Main entry point."""
    return cli_main(catalog=build_catalog(), setup=setup_worker)


if __name__ == "__main__":
    sys.exit(main())
