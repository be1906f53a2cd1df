"""
Core Module - Status Store.

============================================================
RESPONSIBILITY
============================================================
Durable key-value snapshot of worker status.

- One JSON document per worker prefix under <root>/status/
- Read once at init, written back wholesale on demand
- Missing or unreadable snapshot means "no prior state"

============================================================
"""

import json
import logging
import os
from pathlib import Path
from typing import Any, Dict, Mapping, Union

from .exceptions import StatusStoreError


class StatusStore:
    """
    Reads and writes status snapshots keyed by a process-type prefix.

    Writes replace the snapshot atomically; the last write wins.
    """

    def __init__(self, root: Union[str, Path], directory: str = "status"):
        """
        Initialize status store.

        Args:
            root: Worker root directory
            directory: Sub-directory holding the snapshots
        """
        self._dir = Path(root) / directory
        self._logger = logging.getLogger(__name__)

    @property
    def directory(self) -> Path:
        """Get snapshot directory."""
        return self._dir

    def path_for(self, prefix: str) -> Path:
        """Get snapshot path for a prefix."""
        return self._dir / f"{prefix}.json"

    def read(self, prefix: str) -> Dict[str, Any]:
        """
        Read the snapshot for a prefix.

        Returns:
            Snapshot dict, empty if none exists or it cannot be parsed
        """
        path = self.path_for(prefix)
        if not path.exists():
            self._logger.debug(f"No status snapshot at {path}")
            return {}

        try:
            with open(path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            self._logger.warning(f"Ignoring unreadable status snapshot {path}: {e}")
            return {}

        if not isinstance(data, dict):
            self._logger.warning(f"Ignoring non-object status snapshot {path}")
            return {}

        return data

    def write(self, prefix: str, status: Mapping[str, Any]) -> Path:
        """
        Write the snapshot for a prefix, creating the directory if needed.

        The document is serialized before the file is touched and
        swapped in with os.replace, so a failed write keeps the
        previous snapshot.

        Raises:
            StatusStoreError: If the snapshot cannot be written
        """
        path = self.path_for(prefix)
        tmp_path = path.with_suffix(".json.tmp")
        try:
            payload = json.dumps(dict(status), indent=2)
            self._dir.mkdir(parents=True, exist_ok=True)
            with open(tmp_path, "w", encoding="utf-8") as f:
                f.write(payload)
            os.replace(tmp_path, path)
        except (OSError, TypeError, ValueError) as e:
            self._logger.error(f"Failed to persist status to {path}: {e}")
            raise StatusStoreError(
                message=f"Failed to persist status: {e}",
                prefix=prefix,
                path=str(path),
                cause=e,
            )

        self._logger.debug(f"Status persisted to {path}")
        return path


__all__ = [
    "StatusStore",
]
