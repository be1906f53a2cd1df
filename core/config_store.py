"""
Core Module - Config Store.

============================================================
RESPONSIBILITY
============================================================
Loads layered JSON configuration for a worker.

- <source>.<env>.json supersedes <source>.json wholesale
- Optional group scoping of each document
- Deep merge into one accumulated tree
- Validation against <source>.json.example and field rules

============================================================
FAILURE POLICY
============================================================
Configuration is checked once, eagerly, at boot. Any missing
key or rule violation is fatal: the full report is logged and
the process exits with status 1 (or ConfigValidationError is
raised when exit_on_error is disabled).

============================================================
"""

import copy
import json
import logging
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Union

from .exceptions import ConfigurationError, ConfigValidationError


_MISSING = object()


# ============================================================
# RULES
# ============================================================

@dataclass(frozen=True)
class ConfigRule:
    """Check applied to one dotted key path."""

    required: bool = False
    """Value must be present, not None and not an empty string."""

    same_as_example: bool = False
    """Value must deeply equal the example value."""

    @classmethod
    def coerce(cls, value: Union["ConfigRule", Mapping[str, Any]]) -> "ConfigRule":
        """Build a rule from a ConfigRule or a plain mapping."""
        if isinstance(value, ConfigRule):
            return value
        return cls(
            required=bool(value.get("required", False)),
            same_as_example=bool(
                value.get("same_as_example", value.get("sameAsExample", False))
            ),
        )


RuleSet = Mapping[str, Union[ConfigRule, Mapping[str, Any]]]


# ============================================================
# TREE HELPERS
# ============================================================

def deep_merge(target: Dict[str, Any], incoming: Mapping[str, Any]) -> Dict[str, Any]:
    """
    Merge incoming into target in place.

    Dicts merge key by key; lists and scalars are replaced wholesale.
    """
    for key, value in incoming.items():
        current = target.get(key)
        if isinstance(current, dict) and isinstance(value, Mapping):
            deep_merge(current, value)
        elif isinstance(value, Mapping):
            target[key] = deep_merge({}, value)
        else:
            target[key] = copy.deepcopy(value)
    return target


def collect_key_paths(
    document: Any,
    prefix: str = "",
    leaves_only: bool = False,
) -> List[str]:
    """
    Collect dotted key paths, recursing into dict values only.

    With leaves_only, paths to non-empty dicts are left out.
    """
    paths: List[str] = []
    if not isinstance(document, Mapping):
        return paths

    for key, value in document.items():
        path = f"{prefix}.{key}" if prefix else str(key)
        nested = isinstance(value, Mapping) and len(value) > 0
        if not (leaves_only and nested):
            paths.append(path)
        if nested:
            paths.extend(collect_key_paths(value, path, leaves_only))
    return paths


def deep_equal(left: Any, right: Any) -> bool:
    """
    Compare JSON values structurally.

    Booleans never equal numbers; dicts and lists recurse.
    """
    if isinstance(left, bool) or isinstance(right, bool):
        return isinstance(left, bool) and isinstance(right, bool) and left == right

    if isinstance(left, Mapping) and isinstance(right, Mapping):
        if left.keys() != right.keys():
            return False
        return all(deep_equal(left[key], right[key]) for key in left)

    if isinstance(left, (list, tuple)) and isinstance(right, (list, tuple)):
        if len(left) != len(right):
            return False
        return all(deep_equal(a, b) for a, b in zip(left, right))

    if isinstance(left, (Mapping, list, tuple)) or isinstance(right, (Mapping, list, tuple)):
        return False

    return left == right


def resolve_path(document: Any, path: str, default: Any = _MISSING) -> Any:
    """Resolve a dotted path, returning default when any segment is absent."""
    node = document
    for part in path.split("."):
        if not isinstance(node, Mapping) or part not in node:
            return default
        node = node[part]
    return node


def scope_to_group(document: Any, group: Optional[str]) -> Any:
    """Use the group subtree when the document has one."""
    if group and isinstance(document, Mapping) and group in document:
        return document[group]
    return document


# ============================================================
# CONFIG STORE
# ============================================================

class ConfigStore:
    """
    Accumulates configuration documents into one tree.

    Example:
        store = ConfigStore(root="/srv/worker", env="production")
        store.load("common")
        store.load("coin", group="coin", rules={"symbol": {"required": True}})
        store.get("coin.symbol")
    """

    def __init__(
        self,
        root: Union[str, Path],
        env: Optional[str] = None,
        directory: str = "config",
        exit_on_error: bool = True,
        data: Optional[Dict[str, Any]] = None,
    ):
        """
        Initialize config store.

        Args:
            root: Worker root directory
            env: Environment name used to pick document variants
            directory: Sub-directory holding the documents
            exit_on_error: Exit the process on validation failure
            data: Initial configuration tree
        """
        self._dir = Path(root) / directory
        self._env = env
        self._exit_on_error = exit_on_error
        self._data: Dict[str, Any] = data if data is not None else {}
        self._sources: List[str] = []
        self._logger = logging.getLogger(__name__)

    # --------------------------------------------------------
    # Properties
    # --------------------------------------------------------

    @property
    def data(self) -> Dict[str, Any]:
        """Get the accumulated configuration tree."""
        return self._data

    @property
    def env(self) -> Optional[str]:
        """Get environment name."""
        return self._env

    @property
    def directory(self) -> Path:
        """Get document directory."""
        return self._dir

    @property
    def sources(self) -> List[str]:
        """Get loaded source ids in load order."""
        return list(self._sources)

    def get(self, path: str, default: Any = None) -> Any:
        """Get a value by dotted path."""
        return resolve_path(self._data, path, default)

    # --------------------------------------------------------
    # Document Resolution
    # --------------------------------------------------------

    def document_path(self, source_id: str) -> Path:
        """Path of the document for a source, preferring the env variant."""
        if self._env:
            variant = self._dir / f"{source_id}.{self._env}.json"
            if variant.exists():
                return variant
        return self._dir / f"{source_id}.json"

    def example_path(self, source_id: str) -> Path:
        """Path of the example companion for a source."""
        return self._dir / f"{source_id}.json.example"

    def _read_json(self, path: Path, source_id: str) -> Dict[str, Any]:
        try:
            with open(path, "r", encoding="utf-8") as f:
                document = json.load(f)
        except FileNotFoundError as e:
            raise ConfigurationError(
                message=f"Configuration document not found: {path}",
                source=source_id,
                path=str(path),
                cause=e,
            )
        except (OSError, ValueError) as e:
            raise ConfigurationError(
                message=f"Configuration document unreadable: {path}: {e}",
                source=source_id,
                path=str(path),
                cause=e,
            )

        if not isinstance(document, dict):
            self._logger.warning(f"Ignoring non-object configuration document {path}")
            return {}
        return document

    # --------------------------------------------------------
    # Loading
    # --------------------------------------------------------

    def load(
        self,
        source_id: str,
        group: Optional[str] = None,
        rules: Optional[RuleSet] = None,
    ) -> Dict[str, Any]:
        """
        Load one source into the configuration tree.

        Args:
            source_id: Document name without extension
            group: Optional group key scoping the document
            rules: Dotted path -> rule checks

        Returns:
            The accumulated configuration tree

        Raises:
            ConfigurationError: If the document cannot be read
            ConfigValidationError: On validation failure with exit_on_error disabled
        """
        path = self.document_path(source_id)
        document = scope_to_group(self._read_json(path, source_id), group)

        example_path = self.example_path(source_id)
        if example_path.exists():
            example = scope_to_group(self._read_json(example_path, source_id), group)
            self._validate(source_id, document, example, rules or {})

        incoming = {group: document} if group else document
        if isinstance(incoming, Mapping):
            deep_merge(self._data, incoming)

        self._sources.append(source_id)
        self._logger.info(
            f"Loaded configuration '{source_id}' from {path.name}"
            + (f" | group={group}" if group else "")
        )
        return self._data

    # --------------------------------------------------------
    # Validation
    # --------------------------------------------------------

    def validate(
        self,
        source_id: str,
        document: Any,
        example: Any,
        rules: Optional[RuleSet] = None,
    ) -> None:
        """
        Validate a document against its example without merging it.

        Raises:
            ConfigValidationError: If any key is missing or any rule fails
        """
        missing_keys = self.find_missing_keys(document, example)
        rule_failures = self.check_rules(document, example, rules or {})

        if missing_keys or rule_failures:
            raise ConfigValidationError(
                source=source_id,
                missing_keys=missing_keys,
                rule_failures=rule_failures,
            )

    def _validate(
        self,
        source_id: str,
        document: Any,
        example: Any,
        rules: RuleSet,
    ) -> None:
        try:
            self.validate(source_id, document, example, rules)
        except ConfigValidationError as e:
            self._logger.critical(e.report())
            if self._exit_on_error:
                sys.exit(1)
            raise

    @staticmethod
    def find_missing_keys(document: Any, example: Any) -> List[str]:
        """Example leaf key paths absent from the document."""
        present = set(collect_key_paths(document))
        return [
            path
            for path in collect_key_paths(example, leaves_only=True)
            if path not in present
        ]

    @staticmethod
    def check_rules(document: Any, example: Any, rules: RuleSet) -> List[str]:
        """Evaluate field rules, returning one message per failure."""
        failures: List[str] = []

        for path, raw_rule in rules.items():
            rule = ConfigRule.coerce(raw_rule)
            value = resolve_path(document, path)

            if rule.required and (value is _MISSING or value is None or value == ""):
                failures.append(f"{path}: value is required")

            if rule.same_as_example:
                expected = resolve_path(example, path)
                if not deep_equal(value, expected):
                    failures.append(f"{path}: value differs from example")

        return failures


__all__ = [
    "ConfigRule",
    "ConfigStore",
    "RuleSet",
    "collect_key_paths",
    "deep_equal",
    "deep_merge",
    "resolve_path",
    "scope_to_group",
]
