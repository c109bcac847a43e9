"""
Adapters layer - Facility catalog and reservation storage implementations.
"""

from .json_store import JsonReservationStore
from .memory_store import InMemoryFacilityCatalog, InMemoryReservationStore

__all__ = ["InMemoryFacilityCatalog", "InMemoryReservationStore", "JsonReservationStore"]
