"""
Facilities Package.

Pluggable sub-components started and stopped by the orchestrator.

Components:
- base: lifecycle contract and base class
- intervals: built-in recurring timer facility
"""

from facilities.base import Facility, FacilityProtocol
from facilities.intervals import IntervalsFacility

__all__ = [
    "Facility",
    "FacilityProtocol",
    "IntervalsFacility",
]
