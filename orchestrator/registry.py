"""
Orchestrator - Facility Registry.

============================================================
RESPONSIBILITY
============================================================
Maps facility identity keys to live instances and facility
names to the factories that build them.

- Derive identity keys from (name, label)
- Hold at most one live facility per key
- Resolve catalog names to constructors

============================================================
"""

import logging
import re
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Sequence, Union

from .models import FacilityDescriptor, FacilityInstance, FacilityStatus
from core.exceptions import DuplicateKeyError, FacilityLoadError, wrap_exception


# ============================================================
# IDENTITY KEYS
# ============================================================

DEFAULT_LOADER_PREFIXES = ("facility-",)
"""Loader prefixes stripped from facility names before keying."""

_WORD_RE = re.compile(r"[A-Z]+(?![a-z])|[A-Z]?[a-z]+|\d+")


def normalize_name(
    name: str,
    prefixes: Sequence[str] = DEFAULT_LOADER_PREFIXES,
) -> str:
    """
    Normalize a facility name to camelCase.

    Loader prefixes are stripped, words are split on separators and
    case boundaries, case-folded and de-duplicated in order.
    """
    lowered = name.lower()
    for prefix in prefixes:
        if prefix and lowered.startswith(prefix.lower()):
            name = name[len(prefix):]
            break

    words: List[str] = []
    for word in _WORD_RE.findall(name):
        word = word.lower()
        if word not in words:
            words.append(word)

    if not words:
        raise ValueError(f"Facility name has no usable characters: {name!r}")

    return words[0] + "".join(w.capitalize() for w in words[1:])


def identity_key(
    name: str,
    label: Any,
    prefixes: Sequence[str] = DEFAULT_LOADER_PREFIXES,
) -> str:
    """Registry key of the facility instance (name, label)."""
    return f"{normalize_name(name, prefixes)}_{label}"


# ============================================================
# FACILITY REGISTRY
# ============================================================

class FacilityRegistry:
    """
    Live facilities keyed by identity key.

    Owned by the orchestrator; entries are only added by
    add_facility and only removed by remove_facility.
    """

    def __init__(self):
        self._records: Dict[str, FacilityInstance] = {}
        self._logger = logging.getLogger(__name__)

    def __contains__(self, key: object) -> bool:
        return key in self._records

    def __len__(self) -> int:
        return len(self._records)

    def register(
        self,
        key: str,
        instance: Any,
        descriptor: Optional[FacilityDescriptor] = None,
    ) -> FacilityInstance:
        """
        Register a live facility.

        Raises:
            DuplicateKeyError: If the key is already registered
        """
        if key in self._records:
            raise DuplicateKeyError(key)

        if descriptor is None:
            descriptor = FacilityDescriptor(kind="fac", name=key, namespace="", label="")

        record = FacilityInstance(key=key, descriptor=descriptor, instance=instance)
        self._records[key] = record
        self._logger.debug(f"Registered facility: {key}")
        return record

    def unregister(self, key: str) -> Optional[FacilityInstance]:
        """Remove a facility; absent keys are ignored."""
        record = self._records.pop(key, None)
        if record is not None:
            self._logger.debug(f"Unregistered facility: {key}")
        return record

    def lookup(self, key: str) -> Optional[Any]:
        """Get a live facility handle."""
        record = self._records.get(key)
        return record.instance if record else None

    def get_record(self, key: str) -> Optional[FacilityInstance]:
        """Get the registry record of a facility."""
        return self._records.get(key)

    def keys(self) -> List[str]:
        """Registered keys in registration order."""
        return list(self._records)

    def get_status_summary(self) -> Dict[str, Any]:
        """Get summary of all facility statuses."""
        status_counts = {status.value: 0 for status in FacilityStatus}
        for record in self._records.values():
            status_counts[record.status.value] += 1

        return {
            "total_registered": len(self._records),
            "status_counts": status_counts,
            "facilities": [record.to_dict() for record in self._records.values()],
        }


# ============================================================
# FACILITY CATALOG
# ============================================================

FacilityFactory = Callable[[Any, Dict[str, Any], Dict[str, Any]], Any]


class FacilityCatalog:
    """
    Explicit table of facility implementations.

    Built at process build time; a facility name that is not in the
    catalog cannot be loaded.
    """

    def __init__(
        self,
        factories: Optional[Mapping[str, FacilityFactory]] = None,
        prefixes: Sequence[str] = DEFAULT_LOADER_PREFIXES,
    ):
        self._prefixes = tuple(prefixes)
        self._factories: Dict[str, FacilityFactory] = {}
        self._logger = logging.getLogger(__name__)

        for name, factory in (factories or {}).items():
            self.register(name, factory)

    def __contains__(self, name: object) -> bool:
        if not isinstance(name, str):
            return False
        try:
            return normalize_name(name, self._prefixes) in self._factories
        except ValueError:
            return False

    def register(self, name: str, factory: FacilityFactory) -> None:
        """
        Add a facility implementation.

        Raises:
            DuplicateKeyError: If the name is already taken
        """
        normalized = normalize_name(name, self._prefixes)
        if normalized in self._factories:
            raise DuplicateKeyError(
                normalized,
                message=f"Facility already in catalog: {name}",
            )
        self._factories[normalized] = factory
        self._logger.debug(f"Cataloged facility: {name} -> {normalized}")

    def resolve(self, name: str) -> FacilityFactory:
        """
        Get the factory for a facility name.

        Raises:
            FacilityLoadError: If no implementation is cataloged
        """
        try:
            normalized = normalize_name(name, self._prefixes)
        except ValueError as e:
            raise FacilityLoadError(
                message=f"Invalid facility name: {name!r}",
                facility=name,
                cause=e,
            )

        factory = self._factories.get(normalized)
        if factory is None:
            raise FacilityLoadError(
                message=f"Facility implementation not found: {name}",
                facility=name,
            )
        return factory

    def create(
        self,
        name: str,
        owner: Any,
        options: Dict[str, Any],
        context: Dict[str, Any],
    ) -> Any:
        """
        Instantiate a facility.

        Raises:
            FacilityLoadError: If the name is unknown or construction fails
        """
        factory = self.resolve(name)
        try:
            return factory(owner, options, context)
        except FacilityLoadError:
            raise
        except Exception as e:
            raise wrap_exception(
                e,
                FacilityLoadError,
                message=f"Facility failed to construct: {name}: {e}",
                facility=name,
                label=options.get("label"),
            ) from e

    def names(self) -> List[str]:
        """Normalized names of all cataloged facilities."""
        return list(self._factories)


def default_catalog(
    extra: Optional[Union[Mapping[str, FacilityFactory], Iterable[tuple]]] = None,
) -> FacilityCatalog:
    """Catalog with the built-in facilities, plus any extra entries."""
    from facilities.intervals import IntervalsFacility

    catalog = FacilityCatalog({"intervals": IntervalsFacility})
    entries = extra.items() if isinstance(extra, Mapping) else (extra or [])
    for name, factory in entries:
        catalog.register(name, factory)
    return catalog


# ============================================================
# EXPORTS
# ============================================================

__all__ = [
    "DEFAULT_LOADER_PREFIXES",
    "normalize_name",
    "identity_key",
    "FacilityRegistry",
    "FacilityFactory",
    "FacilityCatalog",
    "default_catalog",
]
