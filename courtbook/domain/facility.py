"""
Facility aggregate handed to the engine by the facility catalog.
"""

from dataclasses import dataclass

from .working_hours import WorkingHoursPolicy


@dataclass
class Facility:
    """A bookable facility with its working hours and pricing policy."""
    id: str
    name: str
    policy: WorkingHoursPolicy
    timezone: str = "Europe/Sofia"

    @property
    def granularity_minutes(self) -> int:
        """Width of one bookable slot, constant per facility."""
        return self.policy.granularity_minutes
