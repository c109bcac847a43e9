"""
Working-hours policy: per day type open/close bounds plus their pricing tiers.
"""

from dataclasses import replace
from decimal import Decimal
from typing import Dict, Iterable, Optional, Tuple

from pendulum import Date

from .exceptions import NotFoundError, ValidationError
from .interval_set import DEFAULT_PRICE_PER_HOUR, PricingTierSet
from .models import DayType, PricingInterval, TimeOfDay, WorkingHours


class WorkingHoursPolicy:
    """
    Holds one WorkingHours record and one PricingTierSet per day type.

    Changing the hours of a day type re-fits its pricing tiers to the new range
    so the tiling invariant keeps holding.
    """

    def __init__(
        self,
        granularity_minutes: int = 60,
        default_price: Decimal = DEFAULT_PRICE_PER_HOUR,
    ):
        if granularity_minutes <= 0:
            raise ValidationError("granularity_minutes must be greater than zero")
        self.granularity_minutes = granularity_minutes
        self.default_price = default_price
        self._hours: Dict[DayType, WorkingHours] = {}
        self._tiers: Dict[DayType, PricingTierSet] = {}

    @classmethod
    def from_records(
        cls,
        hours: Iterable[WorkingHours],
        pricing: Iterable[PricingInterval] = (),
        granularity_minutes: int = 60,
        default_price: Decimal = DEFAULT_PRICE_PER_HOUR,
    ) -> "WorkingHoursPolicy":
        """
        Build a policy from stored records.

        Day types without pricing records get a single tier at the default price.
        """
        policy = cls(granularity_minutes=granularity_minutes, default_price=default_price)
        by_day: Dict[DayType, list] = {}
        for interval in pricing:
            by_day.setdefault(interval.day_type, []).append(interval)

        for record in hours:
            if record.day_type in policy._hours:
                raise ValidationError(f"Duplicate working hours for {record.day_type.value}")
            policy._tiers[record.day_type] = PricingTierSet(
                record.day_type,
                record.open,
                record.close,
                granularity_minutes=granularity_minutes,
                intervals=by_day.pop(record.day_type, None),
                default_price=default_price,
            )
            policy._hours[record.day_type] = record

        if by_day:
            orphaned = ", ".join(sorted(day.value for day in by_day))
            raise ValidationError(f"Pricing configured for day types without working hours: {orphaned}")

        return policy

    @staticmethod
    def day_type_for(day: Date) -> DayType:
        return DayType.for_date(day)

    @property
    def day_types(self) -> Tuple[DayType, ...]:
        return tuple(day for day in DayType if day in self._hours)

    def hours_for(self, day_type: DayType) -> Optional[WorkingHours]:
        return self._hours.get(day_type)

    def tiers_for(self, day_type: DayType) -> PricingTierSet:
        try:
            return self._tiers[day_type]
        except KeyError:
            raise NotFoundError(f"No working hours configured for {day_type.value}") from None

    def set_working_hours(
        self,
        day_type: DayType,
        open: TimeOfDay,
        close: TimeOfDay,
        is_open: Optional[bool] = None,
    ) -> WorkingHours:
        """
        Create or change the hours of a day type.

        Existing pricing tiers are clamped into the new range; a new day type
        starts with one tier at the default price.
        """
        current = self._hours.get(day_type)
        if is_open is None:
            is_open = current.is_open if current else True
        record = WorkingHours(day_type=day_type, open=open, close=close, is_open=is_open)

        if current is None:
            self._tiers[day_type] = PricingTierSet(
                day_type,
                open,
                close,
                granularity_minutes=self.granularity_minutes,
                default_price=self.default_price,
            )
        else:
            self._tiers[day_type].change_parent_range(open, close)

        self._hours[day_type] = record
        return record

    def set_open(self, day_type: DayType, is_open: bool) -> WorkingHours:
        current = self._hours.get(day_type)
        if current is None:
            raise NotFoundError(f"No working hours configured for {day_type.value}")
        record = replace(current, is_open=is_open)
        self._hours[day_type] = record
        return record
