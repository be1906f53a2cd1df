"""
Orchestrator Package - Worker Lifecycle Layer.

============================================================
PACKAGE OVERVIEW
============================================================
This package owns the lifecycle of a worker process: which
facilities exist, in what order they start, and that they stop
in exactly the reverse order once in-flight work is done.

============================================================
CORE PRINCIPLES
============================================================
1. Facilities start one at a time, lowest priority first
2. Facilities stop in the exact reverse of the start order
3. One live facility per identity key
4. Any startup failure aborts startup (crash early)
5. Shutdown waits for the critical section to clear

============================================================
ARCHITECTURE
============================================================

    +-----------------------------------------------------+
    |                     Orchestrator                    |
    |-----------------------------------------------------|
    |  LifecycleState   |  CREATED .. STOPPED             |
    |  FacilityRegistry |  identity key -> live facility  |
    |  FacilityCatalog  |  facility name -> factory       |
    |  CriticalSection  |  in-flight work tracking        |
    |  CLI              |  Command-line interface         |
    +-----------------------------------------------------+

============================================================
QUICK START
============================================================
Command line usage::

    python app.py --env production --conf coin:coin
    python app.py --show-facilities

Programmatic usage::

    import asyncio
    from orchestrator import Orchestrator, RuntimeConfig, default_catalog

    async def main():
        catalog = default_catalog({"db-sqlite": SqliteFacility})
        wrk = Orchestrator(RuntimeConfig(root="/srv/wrk"), catalog=catalog)
        wrk.init()
        wrk.set_init_facilities([
            ("fac", "db-sqlite", "main", "main", {}, 0),
        ])
        await wrk.run_forever()

    asyncio.run(main())

============================================================
EXPORTS
============================================================
"""

# ============================================================
# Models
# ============================================================
from orchestrator.models import (
    # Enums
    LifecycleState,
    FacilityStatus,
    VALID_TRANSITIONS,

    # Facilities
    DEFAULT_PRIORITY,
    FacilityDescriptor,
    FacilityInstance,

    # Configuration
    RuntimeConfig,
)

# ============================================================
# Registry
# ============================================================
from orchestrator.registry import (
    # Identity
    normalize_name,
    identity_key,

    # Registry
    FacilityRegistry,

    # Catalog
    FacilityCatalog,
    default_catalog,
)

# ============================================================
# Critical Section
# ============================================================
from orchestrator.critical_section import CriticalSection

# ============================================================
# Core
# ============================================================
from orchestrator.core import (
    # Main orchestrator
    Orchestrator,

    # Factory function
    create_orchestrator,

    # Logging setup
    setup_logging,
)

# ============================================================
# CLI
# ============================================================
from orchestrator.cli import (
    create_parser,
    parse_conf_arg,
    validate_args,
    build_config,
    main,
    async_main,
)

# ============================================================
# Package metadata
# ============================================================
__version__ = "1.0.0"

__all__ = [
    # Models
    "LifecycleState",
    "FacilityStatus",
    "VALID_TRANSITIONS",
    "DEFAULT_PRIORITY",
    "FacilityDescriptor",
    "FacilityInstance",
    "RuntimeConfig",

    # Registry
    "normalize_name",
    "identity_key",
    "FacilityRegistry",
    "FacilityCatalog",
    "default_catalog",

    # Critical section
    "CriticalSection",

    # Core
    "Orchestrator",
    "create_orchestrator",
    "setup_logging",

    # CLI
    "create_parser",
    "parse_conf_arg",
    "validate_args",
    "build_config",
    "main",
    "async_main",
]
