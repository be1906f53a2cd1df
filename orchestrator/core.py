"""
Orchestrator - Core.

============================================================
RESPONSIBILITY
============================================================
Lifecycle orchestrator of a worker process.

- Declares the facility table (built-ins plus caller entries)
- Starts facilities one at a time in priority order
- Stops them in the exact reverse order
- Waits for in-flight work before tearing anything down
- Crashes early rather than run a partial facility set

============================================================
STATE MACHINE
============================================================
CREATED -> STARTING -> RUNNING -> STOPPING -> STOPPED
              |                      ^
              +------> FAILED -------+

No restart from STOPPED. start() and stop() never overlap.

============================================================
"""

import asyncio
import json
import logging
import signal
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Sequence, Union

from .models import (
    FacilityDescriptor,
    FacilityStatus,
    LifecycleState,
    RuntimeConfig,
    VALID_TRANSITIONS,
)
from .registry import FacilityCatalog, FacilityRegistry, default_catalog, identity_key
from .critical_section import CriticalSection
from core.config_store import ConfigStore, RuleSet
from core.status_store import StatusStore
from core.exceptions import (
    ConfigurationError,
    DuplicateKeyError,
    FacilityLoadError,
    FacilityRuntimeError,
    ShutdownError,
    StateTransitionError,
    wrap_exception,
)


# ============================================================
# LOGGING SETUP
# ============================================================

def setup_logging(
    level: str = "INFO",
    log_format: str = "text",
    correlation_id: Optional[str] = None,
) -> logging.Logger:
    """
    Set up structured logging.

    Args:
        level: Log level
        log_format: Output format (json or text)
        correlation_id: Correlation ID for tracing

    Returns:
        Configured logger
    """
    log_level = getattr(logging, level.upper(), logging.INFO)

    if log_format == "json":
        formatter = logging.Formatter(
            json.dumps({
                "timestamp": "%(asctime)s",
                "level": "%(levelname)s",
                "logger": "%(name)s",
                "message": "%(message)s",
                "correlation_id": correlation_id or "",
            })
        )
    else:
        formatter = logging.Formatter(
            f"%(asctime)s | %(levelname)-8s | %(name)s | {correlation_id or ''} | %(message)s"
        )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)
    root_logger.handlers = [handler]

    return logging.getLogger("orchestrator")


# ============================================================
# ORCHESTRATOR
# ============================================================

FacilityEntry = Union[FacilityDescriptor, Sequence[Any]]
StartedListener = Callable[["Orchestrator"], Any]

BUILTIN_FACILITIES: List[FacilityEntry] = [
    ("fac", "intervals", "0", "0", {}, -10),
]


class Orchestrator:
    """
    Facility lifecycle orchestrator.

    Subclass it per worker type and override the hook methods
    (_after_facilities_started, _after_start, _before_stop,
    _after_stop) for worker-specific behaviour.

    Example:
        wrk = Orchestrator(RuntimeConfig(root="/srv/wrk", env="production"))
        wrk.init()
        wrk.load_conf("coin", group="coin", rules={"symbol": {"required": True}})
        wrk.set_init_facilities([
            ("fac", "db-sqlite", "main", "main", {}, 0),
            ("fac", "api", lambda w: w.conf.get("coin.symbol"), "0", lambda w: {...}, 5),
        ])
        await wrk.start()
        ...
        await wrk.stop()
    """

    def __init__(
        self,
        config: RuntimeConfig,
        catalog: Optional[FacilityCatalog] = None,
        config_store: Optional[ConfigStore] = None,
        status_store: Optional[StatusStore] = None,
    ):
        """
        Initialize orchestrator.

        Args:
            config: Runtime configuration
            catalog: Facility implementations (default: built-ins only)
            config_store: Configuration tree (default: <root>/config)
            status_store: Status snapshots (default: <root>/status)
        """
        errors = config.validate()
        if errors:
            raise ConfigurationError(
                message=f"Invalid configuration: {', '.join(errors)}",
            )

        self._config = config
        self._catalog = catalog or default_catalog()
        self._registry = FacilityRegistry()
        self._conf = config_store or ConfigStore(root=config.root, env=config.env)
        self._status_store = status_store or StatusStore(config.root)
        self._critical = CriticalSection()

        # Facility table
        self._descriptors: List[FacilityDescriptor] = []
        self._start_order: List[FacilityDescriptor] = []
        self._runtime_descriptors: List[FacilityDescriptor] = []
        self._initialized = False

        # Lifecycle state
        self._state = LifecycleState.CREATED
        self._active = False
        self._in_progress: Optional[str] = None
        self._last_error: Optional[str] = None

        # Signals
        self._started_event: Optional[asyncio.Event] = None
        self._started_fired = False
        self._started_listeners: List[StartedListener] = []
        self._shutdown_event: Optional[asyncio.Event] = None
        self._signals_installed: List[signal.Signals] = []

        # Worker data
        self.status: Dict[str, Any] = {}
        self.mem: Dict[str, Any] = {}

        self._correlation_id = (
            f"{config.correlation_id_prefix}_{config.worker_type}_"
            f"{datetime.now(timezone.utc).strftime('%Y%m%d_%H%M%S')}"
        )
        self._logger = logging.getLogger(__name__)

        self._logger.info(
            f"Orchestrator initialized | worker={config.worker_type} | env={config.env} | "
            f"correlation_id={self._correlation_id}"
        )

    # --------------------------------------------------------
    # Properties
    # --------------------------------------------------------

    @property
    def config(self) -> RuntimeConfig:
        """Get runtime configuration."""
        return self._config

    @property
    def conf(self) -> ConfigStore:
        """Get configuration tree."""
        return self._conf

    @property
    def registry(self) -> FacilityRegistry:
        """Get facility registry."""
        return self._registry

    @property
    def catalog(self) -> FacilityCatalog:
        """Get facility catalog."""
        return self._catalog

    @property
    def critical_section(self) -> CriticalSection:
        """Get the in-flight work tracker observed by shutdown."""
        return self._critical

    @property
    def state(self) -> LifecycleState:
        """Get lifecycle state."""
        return self._state

    @property
    def active(self) -> bool:
        """True once every facility has started, until they are stopped."""
        return self._active

    @property
    def stopping(self) -> bool:
        """True from the moment shutdown begins."""
        return self._state.is_stopping

    @property
    def started(self) -> bool:
        """Check if the started signal has fired."""
        return self._started_fired

    @property
    def root(self) -> str:
        """Get worker root."""
        return self._config.root

    @property
    def env(self) -> str:
        """Get environment name."""
        return self._config.env

    @property
    def prefix(self) -> str:
        """Status snapshot prefix."""
        return self._config.worker_type

    @property
    def correlation_id(self) -> str:
        """Get correlation ID."""
        return self._correlation_id

    @property
    def last_error(self) -> Optional[str]:
        """Get last lifecycle error."""
        return self._last_error

    @property
    def facility_table(self) -> List[FacilityDescriptor]:
        """Declared facilities in declaration order."""
        return list(self._descriptors)

    # --------------------------------------------------------
    # Setup
    # --------------------------------------------------------

    def init(self) -> None:
        """Load the status snapshot and declare built-in facilities."""
        if self._initialized:
            self._logger.warning("Orchestrator already initialized")
            return

        self.status = {}
        self.mem = {}
        self.load_status()
        self.set_init_facilities(BUILTIN_FACILITIES)
        self._initialized = True

    def load_conf(
        self,
        source_id: str,
        group: Optional[str] = None,
        rules: Optional[RuleSet] = None,
    ) -> Dict[str, Any]:
        """Load one configuration source into the tree."""
        return self._conf.load(source_id, group=group, rules=rules)

    def set_init_facilities(self, entries: Iterable[FacilityEntry]) -> None:
        """
        Append entries to the facility table.

        Raises:
            StateTransitionError: If startup has already begun
        """
        if self._state != LifecycleState.CREATED:
            raise StateTransitionError(
                message="Facility table is frozen once startup begins",
                from_state=self._state.value,
            )

        for entry in entries:
            descriptor = FacilityDescriptor.from_entry(entry)
            self._descriptors.append(descriptor)
            self._logger.debug(
                f"Declared facility: {descriptor.name}:{descriptor.label} "
                f"(prio={descriptor.priority})"
            )

    def get_plugin_context(self) -> Dict[str, Any]:
        """Limited owner context handed to every facility."""
        return {"env": self._config.env}

    def get_start_order(self) -> List[FacilityDescriptor]:
        """Facility table sorted by priority; ties keep declaration order."""
        return sorted(self._descriptors, key=lambda d: d.priority)

    def get_stop_order(self) -> List[FacilityDescriptor]:
        """Exact reverse of the start order, runtime additions first."""
        order = self._start_order or self.get_start_order()
        return list(reversed(order + self._runtime_descriptors))

    # --------------------------------------------------------
    # Status
    # --------------------------------------------------------

    def load_status(self) -> Dict[str, Any]:
        """Merge the persisted snapshot into status."""
        if self._config.status_persistence_enabled:
            self.status.update(self._status_store.read(self.prefix))
        return self.status

    def save_status(self) -> Optional[Path]:
        """Write status back wholesale."""
        if not self._config.status_persistence_enabled:
            return None
        return self._status_store.write(self.prefix, self.status)

    # --------------------------------------------------------
    # Facilities
    # --------------------------------------------------------

    def get_facility(self, name: str, label: Any) -> Optional[Any]:
        """Get a live facility by name and label."""
        return self._registry.lookup(identity_key(name, label))

    async def add_facility(self, entry: FacilityEntry) -> Any:
        """
        Instantiate, register and start one facility.

        Raises:
            StateTransitionError: If shutdown has begun
            DuplicateKeyError: If the identity key is already live
            FacilityLoadError: If the implementation cannot be built
            FacilityRuntimeError: If the facility fails to start
        """
        descriptor = FacilityDescriptor.from_entry(entry)

        if self.stopping:
            raise StateTransitionError(
                message=f"Cannot add facility while stopping: {descriptor.name}",
                from_state=self._state.value,
            )

        key = identity_key(descriptor.name, descriptor.label)
        if key in self._registry:
            raise self._duplicate(key)

        facility = self._build_facility(descriptor)
        record = self._registry.register(key, facility, descriptor)

        if self._in_progress != "start":
            self._runtime_descriptors.append(descriptor)

        try:
            await facility.start()
        except Exception as e:
            record.status = FacilityStatus.ERROR
            record.error = str(e)
            raise FacilityRuntimeError(
                message=f"Facility failed to start: {key}: {e}",
                key=key,
                operation="start",
                cause=e,
            ) from e

        record.status = FacilityStatus.RUNNING
        record.started_at = datetime.now(timezone.utc)
        self._logger.info(f"Started facility: {key} (prio={descriptor.priority})")
        return facility

    async def remove_facility(self, name: str, label: Any) -> bool:
        """
        Stop and unregister one facility.

        Returns:
            False if no such facility is live

        Raises:
            FacilityRuntimeError: If the facility fails to stop
        """
        key = identity_key(name, label)
        record = self._registry.get_record(key)
        if record is None:
            return False

        record.status = FacilityStatus.STOPPING
        try:
            await record.instance.stop()
        except Exception as e:
            record.status = FacilityStatus.ERROR
            record.error = str(e)
            raise FacilityRuntimeError(
                message=f"Facility failed to stop: {key}: {e}",
                key=key,
                operation="stop",
                cause=e,
            ) from e

        self._registry.unregister(key)
        record.status = FacilityStatus.STOPPED
        record.stopped_at = datetime.now(timezone.utc)
        self._logger.info(f"Stopped facility: {key}")
        return True

    def _build_facility(self, descriptor: FacilityDescriptor) -> Any:
        try:
            namespace = descriptor.resolve_namespace(self)
            options = descriptor.resolve_options(self)
        except Exception as e:
            raise wrap_exception(
                e,
                FacilityLoadError,
                message=f"Deferred facility options failed: {descriptor.name}: {e}",
                facility=descriptor.name,
                label=descriptor.label,
            ) from e

        options["ns"] = namespace
        options["label"] = descriptor.label
        options["root"] = self.root
        options["dir_conf"] = str(Path(self.root) / "config" / "facs")

        return self._catalog.create(
            descriptor.name,
            self,
            options,
            self.get_plugin_context(),
        )

    def _duplicate(self, key: str) -> DuplicateKeyError:
        self._logger.critical(f"Duplicate facility key: {key}")
        return DuplicateKeyError(key)

    # --------------------------------------------------------
    # Lifecycle
    # --------------------------------------------------------

    def _transition(self, target: LifecycleState) -> None:
        if target not in VALID_TRANSITIONS[self._state]:
            raise StateTransitionError(
                message=f"Invalid lifecycle transition: {self._state.value} -> {target.value}",
                from_state=self._state.value,
                to_state=target.value,
            )
        self._logger.debug(f"Lifecycle: {self._state.value} -> {target.value}")
        self._state = target

    def _begin(self, operation: str, target: LifecycleState) -> None:
        if self._in_progress:
            raise StateTransitionError(
                message=f"Cannot {operation} while {self._in_progress} is in progress",
                from_state=self._state.value,
                to_state=target.value,
            )
        self._transition(target)
        self._in_progress = operation

    async def start(self) -> None:
        """
        Start every declared facility in priority order.

        Any failure aborts the sequence: later facilities are never
        touched, earlier ones stay registered, state becomes FAILED
        and the error propagates.
        """
        self._begin("start", LifecycleState.STARTING)
        self._logger.info("=== WORKER STARTUP SEQUENCE ===")

        try:
            self._start_order = self.get_start_order()

            for descriptor in self._start_order:
                await self.add_facility(descriptor)

            await self._after_facilities_started()
            self._active = True
            self._transition(LifecycleState.RUNNING)
            await self._after_start()

        except Exception as e:
            self._last_error = str(e)
            # crash early to avoid silent fails in facilities
            self._logger.error(f"Startup failed: {e}", exc_info=True)
            if self._state == LifecycleState.STARTING:
                self._transition(LifecycleState.FAILED)
            raise
        finally:
            self._in_progress = None

        self._logger.info(
            f"=== WORKER STARTUP COMPLETE === ({len(self._registry)} facilities)"
        )
        self._emit_started()

    async def stop(self, fail_fast: bool = True) -> None:
        """
        Stop every live facility in reverse start order.

        A stop that raised leaves the orchestrator STOPPING; calling
        stop() again sweeps the facilities still registered.

        Args:
            fail_fast: Propagate the first facility failure immediately;
                otherwise finish the sweep and raise ShutdownError
        """
        if self._state == LifecycleState.STOPPED and not self._in_progress:
            self._logger.debug("Orchestrator already stopped")
            return

        if self._state == LifecycleState.STOPPING and not self._in_progress:
            # an earlier stop() raised; sweep whatever is still registered
            self._in_progress = "stop"
            self._logger.info("=== WORKER SHUTDOWN SEQUENCE (resumed) ===")
        else:
            self._begin("stop", LifecycleState.STOPPING)
            self._logger.info("=== WORKER SHUTDOWN SEQUENCE ===")

        failures: List[str] = []

        try:
            await self._wait_for_critical_section()
            await self._before_stop()

            for descriptor in self.get_stop_order():
                try:
                    await self.remove_facility(descriptor.name, descriptor.label)
                except FacilityRuntimeError as e:
                    if fail_fast:
                        raise
                    self._logger.error(f"Continuing shutdown after failure: {e}", exc_info=True)
                    failures.append(e.key)

            self._active = False
            await self._after_stop()
            self._transition(LifecycleState.STOPPED)

        except Exception as e:
            self._last_error = str(e)
            self._logger.error(f"Shutdown error: {e}", exc_info=True)
            raise
        finally:
            self._in_progress = None

        if failures:
            self._last_error = f"Facilities failed to stop: {', '.join(failures)}"
            raise ShutdownError(
                message=self._last_error,
                failed=failures,
            )

        self._logger.info("=== WORKER SHUTDOWN COMPLETE ===")

    async def _wait_for_critical_section(self) -> None:
        timeout = self._config.shutdown_timeout_seconds
        if self._critical.active:
            self._logger.info(
                f"Waiting for in-flight work to finish | depth={self._critical.depth}"
            )
        try:
            await self._critical.wait_clear(timeout=timeout)
        except asyncio.TimeoutError as e:
            raise ShutdownError(
                message="In-flight work did not finish before the shutdown deadline",
                timeout_seconds=timeout,
                cause=e,
            ) from e

    # --------------------------------------------------------
    # Hooks
    # --------------------------------------------------------

    async def _after_facilities_started(self) -> None:
        """Runs after the last facility starts, before active is set."""

    async def _after_start(self) -> None:
        """Runs once active is set."""

    async def _before_stop(self) -> None:
        """Runs after in-flight work clears, before facilities stop."""

    async def _after_stop(self) -> None:
        """Runs after every facility has stopped."""

    # --------------------------------------------------------
    # Started Signal
    # --------------------------------------------------------

    def _get_started_event(self) -> asyncio.Event:
        if self._started_event is None:
            self._started_event = asyncio.Event()
            if self._started_fired:
                self._started_event.set()
        return self._started_event

    async def wait_started(self) -> None:
        """Wait until startup completes."""
        await self._get_started_event().wait()

    def on_started(self, listener: StartedListener) -> None:
        """
        Register a started listener.

        Listeners are always scheduled on the loop, never called
        inline; one registered after startup runs on the next tick.
        """
        self._started_listeners.append(listener)
        if self._started_fired:
            asyncio.get_running_loop().call_soon(self._call_listener, listener)

    def _emit_started(self) -> None:
        self._started_fired = True
        self._get_started_event().set()

        loop = asyncio.get_running_loop()
        for listener in self._started_listeners:
            loop.call_soon(self._call_listener, listener)

    def _call_listener(self, listener: StartedListener) -> None:
        try:
            result = listener(self)
            if asyncio.iscoroutine(result):
                asyncio.get_running_loop().create_task(result)
        except Exception as e:
            self._logger.error(f"Started listener error: {e}", exc_info=True)

    # --------------------------------------------------------
    # Main Loop
    # --------------------------------------------------------

    def _get_shutdown_event(self) -> asyncio.Event:
        if self._shutdown_event is None:
            self._shutdown_event = asyncio.Event()
        return self._shutdown_event

    def request_shutdown(self) -> None:
        """Ask run_forever to stop the worker."""
        self._logger.info("Shutdown requested")
        self._get_shutdown_event().set()

    async def run_forever(self) -> None:
        """Start, wait for a shutdown request or signal, then stop."""
        if self._state == LifecycleState.CREATED:
            await self.start()

        self._install_signal_handlers()
        try:
            await self._get_shutdown_event().wait()
        finally:
            self._restore_signal_handlers()

        await self.stop()

    # --------------------------------------------------------
    # Signal Handlers
    # --------------------------------------------------------

    def _install_signal_handlers(self) -> None:
        """Install signal handlers for graceful shutdown."""
        if sys.platform == "win32":
            signal.signal(signal.SIGINT, self._signal_handler)
            return

        loop = asyncio.get_running_loop()
        for sig in (signal.SIGTERM, signal.SIGINT):
            loop.add_signal_handler(sig, self._async_signal_handler, sig)
            self._signals_installed.append(sig)

    def _restore_signal_handlers(self) -> None:
        """Remove installed signal handlers."""
        if not self._signals_installed:
            return

        loop = asyncio.get_running_loop()
        for sig in self._signals_installed:
            loop.remove_signal_handler(sig)
        self._signals_installed = []

    def _signal_handler(self, signum: int, frame: Any) -> None:
        """Synchronous signal handler (Windows)."""
        self._logger.info(f"Received signal {signum}")
        loop = asyncio.get_event_loop()
        loop.call_soon_threadsafe(self.request_shutdown)

    def _async_signal_handler(self, sig: signal.Signals) -> None:
        """Loop signal handler (Unix)."""
        self._logger.info(f"Received signal {sig.name}")
        self.request_shutdown()

    # --------------------------------------------------------
    # Status
    # --------------------------------------------------------

    def get_status(self) -> Dict[str, Any]:
        """Get orchestrator status."""
        return {
            "state": self._state.value,
            "active": self._active,
            "stopping": self.stopping,
            "worker_type": self._config.worker_type,
            "env": self._config.env,
            "correlation_id": self._correlation_id,
            "critical_depth": self._critical.depth,
            "last_error": self._last_error,
            "start_order": [
                identity_key(d.name, d.label) for d in (self._start_order or self.get_start_order())
            ],
            "facilities": self._registry.get_status_summary(),
        }


# ============================================================
# ORCHESTRATOR FACTORY
# ============================================================

def create_orchestrator(
    config: Optional[RuntimeConfig] = None,
    catalog: Optional[FacilityCatalog] = None,
    facilities: Optional[Mapping[str, Any]] = None,
) -> Orchestrator:
    """
    Factory function to create an initialized orchestrator.

    Args:
        config: Configuration (or load from environment)
        catalog: Facility catalog (default: built-ins)
        facilities: Extra name -> factory entries for the default catalog

    Returns:
        Orchestrator with init() already applied
    """
    if config is None:
        config = RuntimeConfig.from_env()

    if catalog is None:
        catalog = default_catalog(facilities)

    orchestrator = Orchestrator(config=config, catalog=catalog)
    orchestrator.init()
    return orchestrator


# ============================================================
# EXPORTS
# ============================================================

__all__ = [
    "BUILTIN_FACILITIES",
    "Orchestrator",
    "create_orchestrator",
    "setup_logging",
]
