"""
Domain models for time ranges, pricing tiers, slots and reservations.
"""

from dataclasses import dataclass, field, replace
from datetime import time
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum
from typing import List, Optional, Tuple

import pendulum
from pendulum import Date, DateTime

from .exceptions import InvalidStateTransition, ValidationError

MINUTES_PER_DAY = 24 * 60
CENT = Decimal("0.01")


def quantize_price(amount: Decimal) -> Decimal:
    """Round a monetary amount to cents."""
    return amount.quantize(CENT, rounding=ROUND_HALF_UP)


def price_for_minutes(price_per_hour: Decimal, minutes: int) -> Decimal:
    """Price of ``minutes`` at an hourly rate, rounded to cents."""
    return quantize_price(price_per_hour * minutes / 60)


@dataclass(frozen=True, order=True)
class TimeOfDay:
    """
    Wall-clock time stored as minutes since midnight.

    Invariant: 00:00 <= value < 24:00.
    """
    minutes: int

    def __post_init__(self):
        if not 0 <= self.minutes < MINUTES_PER_DAY:
            raise ValidationError(f"Time of day out of range: {self.minutes} minutes")

    @classmethod
    def parse(cls, value: str) -> "TimeOfDay":
        """Parse ``HH:MM`` or ``HH:MM:SS`` (seconds must be zero)."""
        parts = value.strip().split(":")
        if len(parts) not in (2, 3) or not all(part.isdigit() for part in parts):
            raise ValidationError(f"Invalid time of day: '{value}' (expected HH:MM)")

        hours, minutes = int(parts[0]), int(parts[1])
        if len(parts) == 3 and int(parts[2]) != 0:
            raise ValidationError(f"Seconds are not supported: '{value}'")
        if hours > 23 or minutes > 59:
            raise ValidationError(f"Invalid time of day: '{value}'")

        return cls(hours * 60 + minutes)

    @classmethod
    def from_time(cls, value: time) -> "TimeOfDay":
        return cls(value.hour * 60 + value.minute)

    @property
    def hour(self) -> int:
        return self.minutes // 60

    @property
    def minute(self) -> int:
        return self.minutes % 60

    def add_minutes(self, minutes: int) -> "TimeOfDay":
        return TimeOfDay(self.minutes + minutes)

    def to_time(self) -> time:
        return time(hour=self.hour, minute=self.minute)

    def on(self, day: Date, timezone: str) -> DateTime:
        """Anchor this wall-clock time to a calendar day in a timezone."""
        return pendulum.datetime(
            day.year, day.month, day.day, self.hour, self.minute, tz=timezone
        )

    def __str__(self) -> str:
        return f"{self.hour:02d}:{self.minute:02d}"


def format_slot_key(start: TimeOfDay, end: TimeOfDay) -> str:
    return f"{start}-{end}"


def parse_slot_key(key: str) -> Tuple[TimeOfDay, TimeOfDay]:
    """Parse a slot key of the form ``HH:MM-HH:MM``."""
    parts = key.strip().split("-")
    if len(parts) != 2:
        raise ValidationError(f"Invalid slot key: '{key}' (expected HH:MM-HH:MM)")

    start, end = TimeOfDay.parse(parts[0]), TimeOfDay.parse(parts[1])
    if start >= end:
        raise ValidationError(f"Slot key start must be before end: '{key}'")
    return start, end


@dataclass(frozen=True)
class TimeRange:
    """
    Represents an immutable time range with start and end datetime.

    Invariant: start must be before end.
    """
    start: DateTime
    end: DateTime

    def __post_init__(self):
        if self.start >= self.end:
            raise ValidationError(f"Start time {self.start} must be before end time {self.end}")

    def duration_minutes(self) -> int:
        """Return the duration in minutes."""
        return int((self.end - self.start).total_seconds() / 60)

    def overlaps(self, other: "TimeRange") -> bool:
        """Check if this range overlaps with another (touching ends do not overlap)."""
        return self.start < other.end and self.end > other.start

    def __str__(self) -> str:
        return f"{self.start.format('DD.MM.YYYY HH:mm')} - {self.end.format('HH:mm')}"


class DayType(str, Enum):
    """Bucket of days sharing one working-hours and pricing policy."""
    WEEKDAY = "weekday"
    WEEKEND = "weekend"

    @classmethod
    def for_date(cls, day: Date) -> "DayType":
        # Saturday and Sunday
        return cls.WEEKEND if day.weekday() >= 5 else cls.WEEKDAY


@dataclass(frozen=True)
class WorkingHours:
    """Open/close bounds for one day type."""
    day_type: DayType
    open: TimeOfDay
    close: TimeOfDay
    is_open: bool = True

    def __post_init__(self):
        if self.open >= self.close:
            raise ValidationError(
                f"Opening time {self.open} must be before closing time {self.close} "
                f"for {self.day_type.value}"
            )

    def duration_minutes(self) -> int:
        return self.close.minutes - self.open.minutes


@dataclass(frozen=True)
class PricingInterval:
    """
    One pricing tier: a half-open [start, end) span with an hourly price.
    """
    day_type: DayType
    start: TimeOfDay
    end: TimeOfDay
    price_per_hour: Decimal

    def __post_init__(self):
        if self.start >= self.end:
            raise ValidationError(f"Interval start {self.start} must be before end {self.end}")
        if self.price_per_hour < 0:
            raise ValidationError(f"Price per hour must not be negative, got {self.price_per_hour}")

    def duration_minutes(self) -> int:
        return self.end.minutes - self.start.minutes

    def contains(self, moment: TimeOfDay) -> bool:
        return self.start <= moment < self.end

    def __str__(self) -> str:
        return f"{self.start}-{self.end} @ {self.price_per_hour}/h"


@dataclass(frozen=True)
class AvailableSlot:
    """A fixed-width bookable unit inside one pricing tier."""
    date: Date
    start: TimeOfDay
    end: TimeOfDay
    price_per_hour: Decimal
    available: bool = True

    @property
    def key(self) -> str:
        return format_slot_key(self.start, self.end)

    def duration_minutes(self) -> int:
        return self.end.minutes - self.start.minutes

    @property
    def price(self) -> Decimal:
        return price_for_minutes(self.price_per_hour, self.duration_minutes())

    def time_range(self, timezone: str) -> TimeRange:
        return TimeRange(start=self.start.on(self.date, timezone), end=self.end.on(self.date, timezone))


@dataclass
class DayAvailability:
    """Bookable slot grid for one date. Derived, never persisted."""
    date: Date
    is_open: bool
    slots: List[AvailableSlot] = field(default_factory=list)

    def find_slot(self, key: str) -> Optional[AvailableSlot]:
        for slot in self.slots:
            if slot.key == key:
                return slot
        return None

    @property
    def free_slots(self) -> List[AvailableSlot]:
        return [slot for slot in self.slots if slot.available]


@dataclass(frozen=True)
class BookingRun:
    """A maximal group of time-adjacent selected slots, booked as one reservation."""
    date: Date
    start: TimeOfDay
    end: TimeOfDay
    price: Decimal
    slots: Tuple[AvailableSlot, ...] = ()

    @property
    def key(self) -> str:
        return format_slot_key(self.start, self.end)

    def duration_minutes(self) -> int:
        return self.end.minutes - self.start.minutes

    def time_range(self, timezone: str) -> TimeRange:
        return TimeRange(start=self.start.on(self.date, timezone), end=self.end.on(self.date, timezone))

    def __str__(self) -> str:
        return f"{self.date.isoformat()} {self.key}"


class ReservationStatus(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"
    COMPLETED = "completed"


# Statuses that occupy their time range.
BLOCKING_STATUSES = frozenset({ReservationStatus.PENDING, ReservationStatus.CONFIRMED})


@dataclass(frozen=True)
class Reservation:
    """
    A booking of one facility by one user.

    Transitions return new instances; ``completed`` is never stored, it is
    derived from a confirmed reservation whose start time has passed.
    """
    facility_id: str
    user_id: str
    start_time: DateTime
    end_time: DateTime
    total_price: Decimal
    status: ReservationStatus = ReservationStatus.PENDING
    created_at: Optional[DateTime] = None
    id: Optional[int] = None

    @property
    def time_range(self) -> TimeRange:
        return TimeRange(start=self.start_time, end=self.end_time)

    @property
    def blocks_slots(self) -> bool:
        return self.status in BLOCKING_STATUSES

    def effective_status(self, now: DateTime) -> ReservationStatus:
        if self.status == ReservationStatus.CONFIRMED and self.start_time <= now:
            return ReservationStatus.COMPLETED
        return self.status

    def confirm(self) -> "Reservation":
        """Mark as paid: pending -> confirmed."""
        if self.status != ReservationStatus.PENDING:
            raise InvalidStateTransition(
                f"Reservation {self.id} cannot be paid while {self.status.value}"
            )
        return replace(self, status=ReservationStatus.CONFIRMED)

    def cancel(self, now: DateTime) -> "Reservation":
        """Cancel a pending or confirmed reservation that has not started yet."""
        if self.status not in BLOCKING_STATUSES:
            raise InvalidStateTransition(
                f"Reservation {self.id} cannot be cancelled while {self.status.value}"
            )
        if self.start_time <= now:
            raise InvalidStateTransition(
                f"Reservation {self.id} has already started and can no longer be cancelled"
            )
        return replace(self, status=ReservationStatus.CANCELLED)
