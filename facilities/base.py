"""
Facilities - Base.

============================================================
RESPONSIBILITY
============================================================
Lifecycle contract every facility satisfies.

- Constructed as Facility(owner, options, context)
- async start() / async stop()
- options carry ns, label, root and dir_conf injected by the
  orchestrator

============================================================
"""

import logging
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Protocol


# ============================================================
# FACILITY PROTOCOL
# ============================================================

class FacilityProtocol(Protocol):
    """Protocol that all facilities implement."""

    async def start(self) -> None:
        """Start the facility."""
        ...

    async def stop(self) -> None:
        """Stop the facility."""
        ...


# ============================================================
# FACILITY BASE
# ============================================================

class Facility:
    """
    Base class for facilities.

    Subclasses override _start/_stop; start/stop keep the
    `active` flag in sync.
    """

    name = "facility"

    def __init__(
        self,
        owner: Any,
        opts: Mapping[str, Any],
        ctx: Optional[Mapping[str, Any]] = None,
    ):
        self.owner = owner
        self.opts: Dict[str, Any] = dict(opts)
        self.ctx: Dict[str, Any] = dict(ctx or {})
        self.ns = self.opts.get("ns")
        self.label = self.opts.get("label")
        self.active = False
        self._logger = logging.getLogger(f"{__name__}.{type(self).__name__}")

    @property
    def env(self) -> Optional[str]:
        """Environment name passed in the plugin context."""
        return self.ctx.get("env")

    @property
    def dir_conf(self) -> Optional[Path]:
        """Directory holding per-facility configuration."""
        dir_conf = self.opts.get("dir_conf")
        return Path(dir_conf) if dir_conf else None

    @property
    def critical_section(self) -> Any:
        """Owner's in-flight work tracker, if it has one."""
        return getattr(self.owner, "critical_section", None)

    async def start(self) -> None:
        """Start the facility."""
        await self._start()
        self.active = True
        self._logger.debug(f"Facility started: {self.name}:{self.label}")

    async def stop(self) -> None:
        """Stop the facility."""
        await self._stop()
        self.active = False
        self._logger.debug(f"Facility stopped: {self.name}:{self.label}")

    async def _start(self) -> None:
        pass

    async def _stop(self) -> None:
        pass

    def __repr__(self) -> str:
        return f"{type(self).__name__}(ns={self.ns!r}, label={self.label!r})"


__all__ = [
    "FacilityProtocol",
    "Facility",
]
