"""
Core Module Package.

This package contains the infrastructure components that the
orchestrator and facilities depend on.

Components:
- config_store: Layered JSON configuration with example validation
- status_store: Per-worker status snapshots
- exceptions: Custom exception hierarchy
"""

from .config_store import ConfigRule, ConfigStore
from .status_store import StatusStore
from .exceptions import WorkerError, ConfigurationError, ConfigValidationError

__all__ = [
    "ConfigRule",
    "ConfigStore",
    "StatusStore",
    "WorkerError",
    "ConfigurationError",
    "ConfigValidationError",
]
