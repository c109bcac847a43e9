"""
Pricing-tier editor: an ordered set of priced intervals tiling a parent range.

Every edit is computed on a copy, validated and only then committed, so a
rejected edit leaves the set exactly as it was.
"""

from dataclasses import replace
from decimal import Decimal
from typing import List, Optional, Sequence, Tuple

from .exceptions import InvariantViolation, NotFoundError, ValidationError
from .models import DayType, PricingInterval, TimeOfDay

DEFAULT_PRICE_PER_HOUR = Decimal("20.00")


class IntervalSet:
    """
    Ordered, non-overlapping pricing intervals exactly covering [open, close).

    Invariants:
    - sorted intervals tile [open, close) with no gap and no overlap
    - granularity evenly divides every interval's duration
    """

    def __init__(
        self,
        day_type: DayType,
        open: TimeOfDay,
        close: TimeOfDay,
        granularity_minutes: int = 60,
        intervals: Optional[Sequence[PricingInterval]] = None,
        default_price: Decimal = DEFAULT_PRICE_PER_HOUR,
    ):
        if granularity_minutes <= 0:
            raise ValidationError("granularity_minutes must be greater than zero")
        if open >= close:
            raise ValidationError(f"Opening time {open} must be before closing time {close}")

        self.day_type = day_type
        self.granularity_minutes = granularity_minutes

        if intervals is None:
            intervals = [PricingInterval(day_type, open, close, default_price)]

        candidate = sorted(intervals, key=lambda i: i.start)
        self._validate(candidate, open, close)
        self._open = open
        self._close = close
        self._intervals: List[PricingInterval] = candidate

    @property
    def open(self) -> TimeOfDay:
        return self._open

    @property
    def close(self) -> TimeOfDay:
        return self._close

    @property
    def intervals(self) -> Tuple[PricingInterval, ...]:
        return tuple(self._intervals)

    def __len__(self) -> int:
        return len(self._intervals)

    def __iter__(self):
        return iter(tuple(self._intervals))

    def find(self, moment: TimeOfDay) -> Optional[PricingInterval]:
        """Return the interval containing ``moment``, if any."""
        for interval in self._intervals:
            if interval.contains(moment):
                return interval
        return None

    def get(self, start: TimeOfDay) -> PricingInterval:
        return self._intervals[self._index_of(start)]

    def add_interval(self, price_per_hour: Optional[Decimal] = None) -> bool:
        """
        Split the tail interval one granularity step after its start.

        The old tail shrinks to end at the new boundary and a new tail runs to
        close. Returns False (and changes nothing) when the boundary would not
        fall before close.
        """
        tail = self._intervals[-1]
        boundary_minutes = tail.start.minutes + self.granularity_minutes
        if boundary_minutes >= self._close.minutes:
            return False

        boundary = TimeOfDay(boundary_minutes)
        price = tail.price_per_hour if price_per_hour is None else price_per_hour
        new_tail = PricingInterval(self.day_type, boundary, self._close, price)

        candidate = self._intervals[:-1] + [replace(tail, end=boundary), new_tail]
        self._commit(candidate, self._open, self._close)
        return True

    def remove_interval(self, start: TimeOfDay) -> None:
        """
        Remove the interval starting at ``start``.

        The predecessor absorbs the removed span; the first interval is absorbed
        by its successor instead.
        """
        if len(self._intervals) <= 1:
            raise InvariantViolation(
                f"Cannot remove the only pricing interval of {self.day_type.value}"
            )

        index = self._index_of(start)
        removed = self._intervals[index]
        candidate = list(self._intervals)
        del candidate[index]

        if index > 0:
            candidate[index - 1] = replace(candidate[index - 1], end=removed.end)
        else:
            candidate[0] = replace(candidate[0], start=removed.start)

        self._commit(candidate, self._open, self._close)

    def update_boundary(self, start: TimeOfDay, new_start: TimeOfDay) -> None:
        """
        Move the start of an interval; the predecessor's end follows it.

        The target's own end and every other interval stay untouched.
        """
        index = self._index_of(start)
        if new_start == start:
            return
        if index == 0:
            raise InvariantViolation(
                f"The first interval must start at opening time {self._open}"
            )

        target = self._intervals[index]
        predecessor = self._intervals[index - 1]
        if not predecessor.start < new_start < target.end:
            raise InvariantViolation(
                f"New start {new_start} must lie strictly between {predecessor.start} "
                f"and {target.end}"
            )

        candidate = list(self._intervals)
        candidate[index] = replace(target, start=new_start)
        candidate[index - 1] = replace(predecessor, end=new_start)
        self._commit(candidate, self._open, self._close)

    def update_price(self, start: TimeOfDay, price_per_hour: Decimal) -> None:
        index = self._index_of(start)
        if price_per_hour < 0:
            raise ValidationError(f"Price per hour must not be negative, got {price_per_hour}")
        self._intervals[index] = replace(self._intervals[index], price_per_hour=price_per_hour)

    def change_parent_range(self, new_open: TimeOfDay, new_close: TimeOfDay) -> None:
        """
        Clamp every interval into [new_open, new_close).

        Intervals collapsing to zero width are dropped. The outermost surviving
        intervals are stretched to the new bounds so the range stays covered;
        if nothing survives, a single interval priced like the nearest old tier
        spans the whole new range.
        """
        if new_open >= new_close:
            raise ValidationError(
                f"Opening time {new_open} must be before closing time {new_close}"
            )

        clamped: List[PricingInterval] = []
        for interval in self._intervals:
            start = min(max(interval.start, new_open), new_close)
            end = min(max(interval.end, new_open), new_close)
            if start < end:
                clamped.append(replace(interval, start=start, end=end))

        if not clamped:
            nearest = self._intervals[0] if new_close <= self._open else self._intervals[-1]
            clamped = [replace(nearest, start=new_open, end=new_close)]
        else:
            clamped[0] = replace(clamped[0], start=new_open)
            clamped[-1] = replace(clamped[-1], end=new_close)

        self._commit(clamped, new_open, new_close)

    def _index_of(self, start: TimeOfDay) -> int:
        for index, interval in enumerate(self._intervals):
            if interval.start == start:
                return index
        raise NotFoundError(
            f"No {self.day_type.value} pricing interval starts at {start}"
        )

    def _commit(self, candidate: List[PricingInterval], open: TimeOfDay, close: TimeOfDay) -> None:
        self._validate(candidate, open, close)
        self._intervals = candidate
        self._open = open
        self._close = close

    def _validate(self, intervals: Sequence[PricingInterval], open: TimeOfDay, close: TimeOfDay) -> None:
        if not intervals:
            raise InvariantViolation(f"{self.day_type.value} needs at least one pricing interval")

        cursor = open
        for interval in intervals:
            if interval.day_type != self.day_type:
                raise InvariantViolation(
                    f"Interval {interval} belongs to {interval.day_type.value}, "
                    f"expected {self.day_type.value}"
                )
            if interval.start != cursor:
                kind = "gap" if interval.start > cursor else "overlap"
                raise InvariantViolation(
                    f"Pricing intervals of {self.day_type.value} have a {kind} at {cursor}"
                )
            if interval.duration_minutes() % self.granularity_minutes:
                raise InvariantViolation(
                    f"Interval {interval.start}-{interval.end} is not a multiple of "
                    f"{self.granularity_minutes} minutes"
                )
            cursor = interval.end

        if cursor != close:
            raise InvariantViolation(
                f"Pricing intervals of {self.day_type.value} end at {cursor}, "
                f"expected closing time {close}"
            )


# Pricing tiers of one day type are an IntervalSet over its working hours.
PricingTierSet = IntervalSet
