"""
Service layer helpers that orchestrate adapters and domain logic.
"""

from .admission import ReservationAdmission, ReservationStoreProtocol
from .booking import FacilityBookingService, FacilityCatalogProtocol

__all__ = [
    "FacilityBookingService",
    "FacilityCatalogProtocol",
    "ReservationAdmission",
    "ReservationStoreProtocol",
]
