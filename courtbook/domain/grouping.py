"""
Groups a user's selected slots into contiguous, priced booking runs.
"""

from decimal import Decimal
from typing import List, Sequence

from .exceptions import ValidationError
from .models import AvailableSlot, BookingRun, quantize_price


class SlotSelectionGrouper:
    """
    Merges time-adjacent slots into maximal runs.

    Example:
    Selected: [09:00-10:00, 10:00-11:00, 13:00-14:00]
    Result:   [09:00-11:00, 13:00-14:00]
    """

    def group(self, slots: Sequence[AvailableSlot]) -> List[BookingRun]:
        """
        Group selected slots into runs and price each run.

        Raises:
            ValidationError: on an empty selection, an unavailable or
                duplicated slot, or slots from different dates
        """
        self._validate_selection(slots)

        ordered = sorted(slots, key=lambda slot: slot.start)
        runs: List[BookingRun] = []
        current: List[AvailableSlot] = [ordered[0]]

        for slot in ordered[1:]:
            if slot.start == current[-1].end:
                current.append(slot)
            else:
                runs.append(self._build_run(current))
                current = [slot]

        runs.append(self._build_run(current))
        return runs

    @staticmethod
    def _validate_selection(slots: Sequence[AvailableSlot]) -> None:
        if not slots:
            raise ValidationError("No slots selected")

        unavailable = [slot.key for slot in slots if not slot.available]
        if unavailable:
            raise ValidationError(f"Selected slots are not available: {', '.join(unavailable)}")

        dates = {slot.date for slot in slots}
        if len(dates) > 1:
            listed = ", ".join(sorted(day.isoformat() for day in dates))
            raise ValidationError(f"Selected slots span several dates: {listed}")

        seen = set()
        for slot in slots:
            if slot.start in seen:
                raise ValidationError(f"Slot {slot.key} selected more than once")
            seen.add(slot.start)

        ordered = sorted(slots, key=lambda slot: slot.start)
        for previous, current in zip(ordered, ordered[1:]):
            if current.start < previous.end:
                raise ValidationError(f"Selected slots {previous.key} and {current.key} overlap")

    @staticmethod
    def _build_run(slots: List[AvailableSlot]) -> BookingRun:
        # Sum price * minutes first so only the final amount is rounded.
        weighted = sum(
            (slot.price_per_hour * slot.duration_minutes() for slot in slots),
            Decimal(0),
        )
        return BookingRun(
            date=slots[0].date,
            start=slots[0].start,
            end=slots[-1].end,
            price=quantize_price(weighted / 60),
            slots=tuple(slots),
        )
