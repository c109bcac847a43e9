"""
Domain layer - Pure business logic without external dependencies.
"""

from .availability import AvailabilityGenerator
from .facility import Facility
from .grouping import SlotSelectionGrouper
from .interval_set import IntervalSet, PricingTierSet
from .models import (
    AvailableSlot,
    BookingRun,
    DayAvailability,
    DayType,
    PricingInterval,
    Reservation,
    ReservationStatus,
    TimeOfDay,
    TimeRange,
    WorkingHours,
)
from .working_hours import WorkingHoursPolicy

__all__ = [
    "AvailabilityGenerator",
    "AvailableSlot",
    "BookingRun",
    "DayAvailability",
    "DayType",
    "Facility",
    "IntervalSet",
    "PricingInterval",
    "PricingTierSet",
    "Reservation",
    "ReservationStatus",
    "SlotSelectionGrouper",
    "TimeOfDay",
    "TimeRange",
    "WorkingHours",
    "WorkingHoursPolicy",
]
