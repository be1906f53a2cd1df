"""
Shared fixtures for orchestrator tests.
"""

import json
from pathlib import Path
from typing import Any

import pytest

from facilities.base import Facility
from orchestrator.core import Orchestrator
from orchestrator.models import RuntimeConfig
from orchestrator.registry import default_catalog


# ============================================================
# HELPERS
# ============================================================

def write_json(path: Path, data: Any) -> Path:
    """Write a JSON document, creating parent directories."""
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(data), encoding="utf-8")
    return path


class RecordingFacility(Facility):
    """
    Facility that appends ("start"|"stop", label) to a shared journal.

    Options:
        journal: list receiving lifecycle events
        fail_on: operations that raise instead ("start", "stop")
        gate: asyncio.Event awaited before start completes
    """

    name = "recording"

    def __init__(self, owner, opts, ctx=None):
        super().__init__(owner, opts, ctx)
        self.journal = opts.get("journal", [])
        self.fail_on = tuple(opts.get("fail_on", ()))
        self.gate = opts.get("gate")

    async def _start(self) -> None:
        if self.gate is not None:
            await self.gate.wait()
        if "start" in self.fail_on:
            raise RuntimeError(f"start failed: {self.label}")
        self.journal.append(("start", self.label))

    async def _stop(self) -> None:
        if "stop" in self.fail_on:
            raise RuntimeError(f"stop failed: {self.label}")
        self.journal.append(("stop", self.label))


class ExplodingFacility(Facility):
    """Facility whose constructor fails."""

    name = "exploding"

    def __init__(self, owner, opts, ctx=None):
        raise RuntimeError("cannot construct")


def recording(label: str, priority: int = 0, journal=None, **opts) -> tuple:
    """Descriptor tuple for a RecordingFacility."""
    options = dict(opts)
    options["journal"] = journal if journal is not None else []
    return ("fac", "recording", label, label, options, priority)


# ============================================================
# FIXTURES
# ============================================================

@pytest.fixture
def catalog():
    """Catalog with built-ins plus test facilities."""
    return default_catalog({
        "recording": RecordingFacility,
        "exploding": ExplodingFacility,
    })


@pytest.fixture
def config(tmp_path):
    """Runtime configuration rooted in a temp directory."""
    return RuntimeConfig(root=str(tmp_path), env="test", worker_type="wrk-test")


@pytest.fixture
def orchestrator(config, catalog):
    """Orchestrator with test catalog, not yet initialized."""
    return Orchestrator(config=config, catalog=catalog)


@pytest.fixture
def journal():
    """Shared lifecycle journal."""
    return []
