"""
Shared fixtures: a tennis court priced 10/h until noon and 15/h afterwards.
"""

from decimal import Decimal

import pendulum
import pytest

from courtbook.adapters.memory_store import InMemoryFacilityCatalog, InMemoryReservationStore
from courtbook.domain.facility import Facility
from courtbook.domain.models import DayType, PricingInterval, TimeOfDay, WorkingHours
from courtbook.domain.working_hours import WorkingHoursPolicy
from courtbook.services.booking import FacilityBookingService

TZ = "Europe/Sofia"
MONDAY = pendulum.date(2024, 11, 25)
SATURDAY = pendulum.date(2024, 11, 23)
NOW = pendulum.datetime(2024, 11, 20, 12, 0, tz=TZ)


def build_facility(facility_id: str = "court-1", granularity_minutes: int = 60) -> Facility:
    t = TimeOfDay.parse
    policy = WorkingHoursPolicy.from_records(
        hours=[
            WorkingHours(DayType.WEEKDAY, t("08:00"), t("22:00")),
            WorkingHours(DayType.WEEKEND, t("09:00"), t("20:00")),
        ],
        pricing=[
            PricingInterval(DayType.WEEKDAY, t("08:00"), t("12:00"), Decimal("10")),
            PricingInterval(DayType.WEEKDAY, t("12:00"), t("22:00"), Decimal("15")),
        ],
        granularity_minutes=granularity_minutes,
        default_price=Decimal("18"),
    )
    return Facility(id=facility_id, name="Tennis Court 1", policy=policy, timezone=TZ)


@pytest.fixture
def facility() -> Facility:
    return build_facility()


@pytest.fixture
def store() -> InMemoryReservationStore:
    return InMemoryReservationStore()


@pytest.fixture
def service(facility, store) -> FacilityBookingService:
    catalog = InMemoryFacilityCatalog([facility])
    return FacilityBookingService(catalog=catalog, store=store, clock=lambda: NOW)
