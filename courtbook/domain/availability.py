"""
Core business logic for building the bookable slot grid of a facility.

Pure domain logic: the caller supplies the facility and the reservations it
already read from storage, no I/O happens here.
"""

from datetime import date as date_type
from typing import List, Sequence

import pendulum
from pendulum import Date

from .exceptions import ValidationError
from .facility import Facility
from .models import AvailableSlot, DayAvailability, Reservation, TimeOfDay, TimeRange


def as_pendulum_date(value: date_type) -> Date:
    """Normalise a stdlib or pendulum date to a pendulum Date."""
    return pendulum.date(value.year, value.month, value.day)


class AvailabilityGenerator:
    """
    Turns working hours, pricing tiers and reservations into slot grids.

    Algorithm, per date in [start_date, end_date):
    1. Resolve the day type from the weekday
    2. Closed or unconfigured day -> closed result without slots
    3. Cut [open, close) into granularity-wide buckets; buckets starting in a
       wall-clock gap of a daylight saving change are left out
    4. Price each bucket with the pricing tier containing its start
    5. Mark buckets overlapping a pending or confirmed reservation unavailable
    """

    def generate(
        self,
        facility: Facility,
        reservations: Sequence[Reservation],
        start_date: date_type,
        end_date: date_type,
    ) -> List[DayAvailability]:
        """
        Build availability for every date in the half-open range.

        Args:
            facility: Facility whose policy defines hours and pricing
            reservations: Reservations of the facility overlapping the range
            start_date: First date (inclusive)
            end_date: Last date (exclusive)

        Returns:
            One DayAvailability per date, in date order
        """
        start_date = as_pendulum_date(start_date)
        end_date = as_pendulum_date(end_date)
        if end_date <= start_date:
            raise ValidationError(
                f"End date {end_date.isoformat()} must be after start date {start_date.isoformat()}"
            )

        blocking = self._blocking_ranges(facility, reservations)
        days: List[DayAvailability] = []

        current = start_date
        while current < end_date:
            days.append(self.build_day(facility, current, blocking))
            current = current.add(days=1)

        return days

    def build_day(
        self,
        facility: Facility,
        day: Date,
        blocking: Sequence[TimeRange],
    ) -> DayAvailability:
        """Build the slot grid of a single date."""
        policy = facility.policy
        day_type = policy.day_type_for(day)
        hours = policy.hours_for(day_type)

        if hours is None or not hours.is_open:
            return DayAvailability(date=day, is_open=False, slots=[])

        tiers = policy.tiers_for(day_type)
        step = facility.granularity_minutes
        slots: List[AvailableSlot] = []

        for minute in range(hours.open.minutes, hours.close.minutes, step):
            start = TimeOfDay(minute)
            end = TimeOfDay(minute + step)
            start_at = start.on(day, facility.timezone)
            if (start_at.hour, start_at.minute) != (start.hour, start.minute):
                # Wall-clock time skipped by a daylight saving change.
                continue

            # Alignment is validated when tiers are configured, so the tier
            # containing the start also contains the whole bucket.
            tier = tiers.find(start)

            slot_range = TimeRange(start=start_at, end=end.on(day, facility.timezone))
            available = not any(slot_range.overlaps(busy) for busy in blocking)

            slots.append(
                AvailableSlot(
                    date=day,
                    start=start,
                    end=end,
                    price_per_hour=tier.price_per_hour,
                    available=available,
                )
            )

        return DayAvailability(date=day, is_open=True, slots=slots)

    @staticmethod
    def _blocking_ranges(
        facility: Facility,
        reservations: Sequence[Reservation],
    ) -> List[TimeRange]:
        """Time ranges of this facility's pending and confirmed reservations."""
        return sorted(
            (
                reservation.time_range
                for reservation in reservations
                if reservation.facility_id == facility.id and reservation.blocks_slots
            ),
            key=lambda r: r.start,
        )
