"""
Orchestrator - Models.

============================================================
RESPONSIBILITY
============================================================
Defines data models for the facility orchestrator.

- Lifecycle states and valid transitions
- Facility descriptors and live facility records
- Runtime configuration dataclass

============================================================
"""

from enum import Enum
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Set, Union
import os


# ============================================================
# LIFECYCLE STATE
# ============================================================

class LifecycleState(Enum):
    """Orchestrator lifecycle state."""

    CREATED = "created"
    """Facility table may still be declared."""

    STARTING = "starting"
    """Facilities are being instantiated and started."""

    RUNNING = "running"
    """All facilities started."""

    FAILED = "failed"
    """Start aborted; already started facilities remain registered."""

    STOPPING = "stopping"
    """Shutdown requested; no new facility may be added."""

    STOPPED = "stopped"
    """Terminal state, no restart."""

    @property
    def is_stopping(self) -> bool:
        """Check if shutdown has begun."""
        return self in (LifecycleState.STOPPING, LifecycleState.STOPPED)

    @property
    def is_terminal(self) -> bool:
        """Check if state is terminal."""
        return self == LifecycleState.STOPPED


VALID_TRANSITIONS: Dict[LifecycleState, Set[LifecycleState]] = {
    LifecycleState.CREATED: {LifecycleState.STARTING},
    LifecycleState.STARTING: {LifecycleState.RUNNING, LifecycleState.FAILED},
    LifecycleState.RUNNING: {LifecycleState.STOPPING},
    LifecycleState.FAILED: {LifecycleState.STOPPING},
    LifecycleState.STOPPING: {LifecycleState.STOPPED},
    LifecycleState.STOPPED: set(),
}


# ============================================================
# FACILITY STATUS
# ============================================================

class FacilityStatus(Enum):
    """Status of one live facility."""

    STARTING = "starting"
    RUNNING = "running"
    STOPPING = "stopping"
    STOPPED = "stopped"
    ERROR = "error"


# ============================================================
# FACILITY DESCRIPTOR
# ============================================================

DEFAULT_PRIORITY = 0
"""Priority of a descriptor that does not declare one."""

Namespace = Union[str, Callable[[Any], str]]
Options = Union[Mapping[str, Any], Callable[[Any], Mapping[str, Any]]]


@dataclass(frozen=True)
class FacilityDescriptor:
    """Declaration of one facility to instantiate at start."""

    kind: str
    """Category tag, informational only."""

    name: str
    """Catalog name of the implementation."""

    namespace: Namespace
    """Logical partition, or a callable taking the orchestrator."""

    label: str
    """Disambiguates instances of the same name."""

    options: Options = field(default_factory=dict)
    """Options mapping, or a callable taking the orchestrator."""

    priority: int = DEFAULT_PRIORITY
    """Lower starts first, stops last."""

    @classmethod
    def from_entry(
        cls,
        entry: Union["FacilityDescriptor", Sequence[Any]],
    ) -> "FacilityDescriptor":
        """Build from a descriptor or a (kind, name, ns, label, opts[, prio]) tuple."""
        if isinstance(entry, FacilityDescriptor):
            return entry

        if len(entry) not in (5, 6):
            raise ValueError(
                f"Facility entry needs 5 or 6 items, got {len(entry)}: {entry!r}"
            )

        kind, name, namespace, label, options = entry[:5]
        priority = entry[5] if len(entry) == 6 and entry[5] is not None else DEFAULT_PRIORITY
        return cls(
            kind=kind,
            name=name,
            namespace=namespace,
            label=str(label),
            options=options if options is not None else {},
            priority=int(priority),
        )

    def resolve_namespace(self, owner: Any) -> str:
        """Evaluate a deferred namespace against the owner."""
        if callable(self.namespace):
            return self.namespace(owner)
        return self.namespace

    def resolve_options(self, owner: Any) -> Dict[str, Any]:
        """Evaluate deferred options against the owner, returning a fresh dict."""
        options = self.options(owner) if callable(self.options) else self.options
        return dict(options or {})


# ============================================================
# FACILITY INSTANCE
# ============================================================

@dataclass
class FacilityInstance:
    """Registry record of a live facility."""

    key: str
    descriptor: FacilityDescriptor
    instance: Any
    status: FacilityStatus = FacilityStatus.STARTING
    started_at: Optional[datetime] = None
    stopped_at: Optional[datetime] = None
    error: Optional[str] = None

    @property
    def name(self) -> str:
        """Get facility name."""
        return self.descriptor.name

    @property
    def label(self) -> str:
        """Get facility label."""
        return self.descriptor.label

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to dictionary."""
        return {
            "key": self.key,
            "kind": self.descriptor.kind,
            "name": self.descriptor.name,
            "label": self.descriptor.label,
            "priority": self.descriptor.priority,
            "status": self.status.value,
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "stopped_at": self.stopped_at.isoformat() if self.stopped_at else None,
            "error": self.error,
        }


# ============================================================
# RUNTIME CONFIGURATION
# ============================================================

@dataclass
class RuntimeConfig:
    """Configuration for the orchestrator."""

    env: str = "development"
    """Environment name, selects configuration variants."""

    root: str = field(default_factory=os.getcwd)
    """Worker root holding config/ and status/."""

    worker_type: str = "worker"
    """Process type, prefixes the status snapshot."""

    # Shutdown settings
    shutdown_timeout_seconds: Optional[float] = None
    """Deadline for the critical section to clear; None waits forever."""

    # Status persistence
    status_persistence_enabled: bool = True
    """Load/save the status snapshot."""

    # Logging
    log_level: str = "INFO"
    """Logging level."""

    log_format: str = "text"
    """Logging format (json or text)."""

    correlation_id_prefix: str = "wrk"
    """Prefix for correlation IDs."""

    @classmethod
    def from_env(cls) -> "RuntimeConfig":
        """Load configuration from environment variables."""
        timeout = os.getenv("SHUTDOWN_TIMEOUT_SECONDS")
        return cls(
            env=os.getenv("WORKER_ENV", "development"),
            root=os.getenv("WORKER_ROOT", os.getcwd()),
            worker_type=os.getenv("WORKER_TYPE", "worker"),
            shutdown_timeout_seconds=float(timeout) if timeout else None,
            status_persistence_enabled=os.getenv("STATUS_PERSISTENCE_ENABLED", "true").lower() == "true",
            log_level=os.getenv("LOG_LEVEL", "INFO"),
            log_format=os.getenv("LOG_FORMAT", "text"),
        )

    def validate(self) -> List[str]:
        """Validate configuration, return list of errors."""
        errors = []

        if not self.env:
            errors.append("env must not be empty")

        if not self.worker_type:
            errors.append("worker_type must not be empty")

        if self.shutdown_timeout_seconds is not None and self.shutdown_timeout_seconds <= 0:
            errors.append("shutdown_timeout_seconds must be positive")

        if self.log_format not in ("json", "text"):
            errors.append("log_format must be 'json' or 'text'")

        return errors


# ============================================================
# EXPORTS
# ============================================================

__all__ = [
    # Enums
    "LifecycleState",
    "FacilityStatus",
    "VALID_TRANSITIONS",

    # Facilities
    "DEFAULT_PRIORITY",
    "FacilityDescriptor",
    "FacilityInstance",

    # Configuration
    "RuntimeConfig",
]
