"""
Application service exposing the booking engine operations.

The service looks facilities up in a catalog, reads reservations from the
store and delegates the actual work to the domain layer and to
``ReservationAdmission``. Both collaborators are protocols so tests and the
CLI can plug in in-memory or file-backed adapters.
"""

from __future__ import annotations

import logging
from dataclasses import replace
from datetime import date as date_type
from decimal import Decimal
from typing import Callable, List, Optional, Protocol, Sequence, Tuple, Union

import pendulum
from pendulum import DateTime

from ..domain.availability import AvailabilityGenerator, as_pendulum_date
from ..domain.exceptions import NotFoundError, ValidationError
from ..domain.facility import Facility
from ..domain.grouping import SlotSelectionGrouper
from ..domain.models import (
    DayAvailability,
    DayType,
    PricingInterval,
    Reservation,
    ReservationStatus,
    TimeOfDay,
    TimeRange,
    format_slot_key,
    parse_slot_key,
)
from .admission import ReservationAdmission, ReservationStoreProtocol

logger = logging.getLogger(__name__)

Tiling = Tuple[PricingInterval, ...]


class FacilityCatalogProtocol(Protocol):
    """Protocol describing the facility lookup needed by the service."""

    def get(self, facility_id: str) -> Optional[Facility]:
        """Return the facility or None if it is unknown."""

    def save(self, facility: Facility) -> None:
        """Persist an edited facility."""


class FacilityBookingService:
    """
    Orchestrates availability reads, bookings and pricing edits.

    Facility and user context are passed explicitly into every call.
    """

    def __init__(
        self,
        catalog: FacilityCatalogProtocol,
        store: ReservationStoreProtocol,
        clock: Callable[[], DateTime] = pendulum.now,
        generator: Optional[AvailabilityGenerator] = None,
        grouper: Optional[SlotSelectionGrouper] = None,
    ) -> None:
        self._catalog = catalog
        self._store = store
        self._clock = clock
        self._generator = generator or AvailabilityGenerator()
        self._grouper = grouper or SlotSelectionGrouper()
        self._admission = ReservationAdmission(store, clock=clock)

    def get_facility(self, facility_id: str) -> Facility:
        facility = self._catalog.get(facility_id)
        if facility is None:
            raise NotFoundError(f"Facility '{facility_id}' not found")
        return facility

    def get_availability(
        self,
        facility_id: str,
        start_date: date_type,
        end_date: date_type,
    ) -> List[DayAvailability]:
        """Slot grids for every date in [start_date, end_date)."""
        facility = self.get_facility(facility_id)
        return self._build_grids(facility, start_date, end_date)

    def submit_booking(
        self,
        facility_id: str,
        user_id: str,
        booking_date: date_type,
        slot_keys: Sequence[str],
    ) -> List[Reservation]:
        """
        Book the selected slots of one date.

        Adjacent slots are merged into runs and every run becomes one pending
        reservation. Either all runs are stored or none.

        Raises:
            ValidationError: if no slot is selected, the day is closed or a
                key is not a slot of that day's grid
            ConflictError: if a selected slot is already reserved
        """
        if not slot_keys:
            raise ValidationError("No slots selected")

        facility = self.get_facility(facility_id)
        booking_date = as_pendulum_date(booking_date)
        day = self._build_grids(facility, booking_date, booking_date.add(days=1))[0]
        if not day.is_open:
            raise ValidationError(f"Facility '{facility_id}' is closed on {booking_date.isoformat()}")

        selected = []
        for key in slot_keys:
            slot = day.find_slot(format_slot_key(*parse_slot_key(key)))
            if slot is None:
                raise ValidationError(
                    f"'{key}' is not a bookable slot on {booking_date.isoformat()}"
                )
            # Taken slots are left to admission, which reports them as conflicts.
            selected.append(replace(slot, available=True))

        runs = self._grouper.group(selected)
        return self._admission.admit(facility, user_id, runs)

    def pay_reservation(self, reservation_id: int, user_id: str) -> Reservation:
        return self._admission.pay(reservation_id, user_id)

    def cancel_reservation(self, reservation_id: int, user_id: str) -> Reservation:
        return self._admission.cancel(reservation_id, user_id)

    def list_user_reservations(self, user_id: str) -> List[Reservation]:
        """Reservations of a user with statuses derived for the current time."""
        return self._with_effective_status(self._store.list_for_user(user_id))

    def list_upcoming_reservations(self, user_id: str) -> List[Reservation]:
        """Pending and confirmed reservations of a user that have not started yet."""
        now = self._clock()
        return sorted(
            (
                reservation
                for reservation in self._store.list_for_user(user_id)
                if reservation.blocks_slots and reservation.start_time > now
            ),
            key=lambda r: r.start_time,
        )

    def count_pending_reservations(self, user_id: str) -> int:
        """Number of future reservations of a user still waiting for payment."""
        return sum(
            1
            for reservation in self.list_upcoming_reservations(user_id)
            if reservation.status == ReservationStatus.PENDING
        )

    def list_facility_bookings(
        self,
        facility_id: str,
        start_date: date_type,
        end_date: date_type,
    ) -> List[Reservation]:
        """All reservations of a facility overlapping [start_date, end_date), any status."""
        facility = self.get_facility(facility_id)
        window = self._date_window(facility, start_date, end_date)
        return self._with_effective_status(self._store.list_for_facility(facility.id, window))

    def _build_grids(
        self,
        facility: Facility,
        start_date: date_type,
        end_date: date_type,
    ) -> List[DayAvailability]:
        window = self._date_window(facility, start_date, end_date)
        reservations = self._store.list_for_facility(facility.id, window)
        return self._generator.generate(facility, reservations, start_date, end_date)

    @staticmethod
    def _date_window(facility: Facility, start_date: date_type, end_date: date_type) -> TimeRange:
        """Midnight-to-midnight range covering the dates in [start_date, end_date)."""
        start_date = as_pendulum_date(start_date)
        end_date = as_pendulum_date(end_date)
        if end_date <= start_date:
            raise ValidationError(
                f"End date {end_date.isoformat()} must be after start date {start_date.isoformat()}"
            )
        return TimeRange(
            start=TimeOfDay(0).on(start_date, facility.timezone),
            end=TimeOfDay(0).on(end_date, facility.timezone),
        )

    def _with_effective_status(self, reservations: Sequence[Reservation]) -> List[Reservation]:
        now = self._clock()
        return [
            replace(reservation, status=reservation.effective_status(now))
            for reservation in sorted(reservations, key=lambda r: r.start_time)
        ]

    def get_pricing(self, facility_id: str, day_type: Union[DayType, str]) -> Tiling:
        facility = self.get_facility(facility_id)
        return facility.policy.tiers_for(self._day_type(day_type)).intervals

    def upsert_pricing_interval(
        self,
        facility_id: str,
        day_type: Union[DayType, str],
        start: Optional[TimeOfDay] = None,
        *,
        price_per_hour: Optional[Decimal] = None,
        new_start: Optional[TimeOfDay] = None,
    ) -> Tiling:
        """
        Add a tier (no ``start``) or edit the tier starting at ``start``.

        Editing can move the tier's start, which also moves the end of the
        tier before it, and/or change its price.
        """
        facility = self.get_facility(facility_id)
        tiers = facility.policy.tiers_for(self._day_type(day_type))
        if price_per_hour is not None and price_per_hour < 0:
            raise ValidationError(f"Price per hour must not be negative, got {price_per_hour}")

        if start is None:
            if not tiers.add_interval(price_per_hour):
                raise ValidationError(
                    f"No room for another pricing interval before closing time {tiers.close}"
                )
        else:
            if new_start is not None:
                tiers.update_boundary(start, new_start)
                start = new_start
            if price_per_hour is not None:
                tiers.update_price(start, price_per_hour)

        self._catalog.save(facility)
        logger.info("Updated %s pricing of facility %s", tiers.day_type.value, facility.id)
        return tiers.intervals

    def remove_pricing_interval(
        self,
        facility_id: str,
        day_type: Union[DayType, str],
        start: TimeOfDay,
    ) -> Tiling:
        facility = self.get_facility(facility_id)
        tiers = facility.policy.tiers_for(self._day_type(day_type))
        tiers.remove_interval(start)

        self._catalog.save(facility)
        logger.info("Removed %s pricing interval %s of facility %s", tiers.day_type.value, start, facility.id)
        return tiers.intervals

    def set_working_hours(
        self,
        facility_id: str,
        day_type: Union[DayType, str],
        open: TimeOfDay,
        close: TimeOfDay,
        is_open: Optional[bool] = None,
    ) -> Tiling:
        """Change the hours of a day type and return its re-fitted pricing tiers."""
        facility = self.get_facility(facility_id)
        day = self._day_type(day_type)
        facility.policy.set_working_hours(day, open, close, is_open=is_open)

        self._catalog.save(facility)
        logger.info("Set %s hours of facility %s to %s-%s", day.value, facility.id, open, close)
        return facility.policy.tiers_for(day).intervals

    @staticmethod
    def _day_type(value: Union[DayType, str]) -> DayType:
        try:
            return DayType(value)
        except ValueError:
            raise NotFoundError(f"Unknown day type '{value}'") from None
