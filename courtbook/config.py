"""
Configuration management using Pydantic models loaded from YAML.
"""

from decimal import Decimal
from pathlib import Path
from typing import List, Optional

import pendulum
import yaml
from pydantic import BaseModel, Field, field_validator, model_validator

from .domain.facility import Facility
from .domain.models import DayType, PricingInterval, TimeOfDay, WorkingHours
from .domain.working_hours import WorkingHoursPolicy


def _normalize_time(value) -> str:
    """Validate an ``HH:MM`` string and return it in canonical form."""
    # YAML 1.1 reads unquoted 12:30 as the base-60 integer 750, i.e. minutes.
    if isinstance(value, int) and not isinstance(value, bool):
        return str(TimeOfDay(value))
    return str(TimeOfDay.parse(str(value)))


class WorkingHoursConfig(BaseModel):
    """Opening hours of one day type."""
    day_type: DayType
    open: str
    close: str
    is_open: bool = True

    @field_validator("open", "close", mode="before")
    @classmethod
    def validate_time(cls, value) -> str:
        return _normalize_time(value)

    @model_validator(mode="after")
    def validate_order(self) -> "WorkingHoursConfig":
        """Ensure the facility opens before it closes."""
        if TimeOfDay.parse(self.open) >= TimeOfDay.parse(self.close):
            raise ValueError(f"open must be earlier than close for {self.day_type.value}")
        return self


class PricingConfig(BaseModel):
    """One pricing tier."""
    day_type: DayType
    start: str
    end: str
    price_per_hour: Decimal = Field(ge=0)

    @field_validator("start", "end", mode="before")
    @classmethod
    def validate_time(cls, value) -> str:
        return _normalize_time(value)


class FacilityConfig(BaseModel):
    """Facility setup: hours and pricing per day type."""
    id: str
    name: str
    timezone: Optional[str] = None
    granularity_minutes: Optional[int] = None
    working_hours: List[WorkingHoursConfig] = Field(default_factory=list)
    pricing: List[PricingConfig] = Field(default_factory=list)

    @field_validator("granularity_minutes")
    @classmethod
    def validate_granularity(cls, value: Optional[int]) -> Optional[int]:
        if value is not None and value <= 0:
            raise ValueError("granularity_minutes must be greater than zero")
        return value

    @field_validator("working_hours")
    @classmethod
    def validate_unique_day_types(cls, value: List[WorkingHoursConfig]) -> List[WorkingHoursConfig]:
        """Exactly one working-hours record per day type."""
        seen: set[DayType] = set()
        for hours in value:
            if hours.day_type in seen:
                raise ValueError(f"Duplicate working hours for {hours.day_type.value}")
            seen.add(hours.day_type)
        return value

    def to_facility(self, defaults: "AppConfig") -> Facility:
        """
        Build the domain facility.

        Raises:
            ValidationError / InvariantViolation: if the pricing does not tile
                the working hours
        """
        policy = WorkingHoursPolicy.from_records(
            hours=[
                WorkingHours(
                    day_type=h.day_type,
                    open=TimeOfDay.parse(h.open),
                    close=TimeOfDay.parse(h.close),
                    is_open=h.is_open,
                )
                for h in self.working_hours
            ],
            pricing=[
                PricingInterval(
                    day_type=p.day_type,
                    start=TimeOfDay.parse(p.start),
                    end=TimeOfDay.parse(p.end),
                    price_per_hour=p.price_per_hour,
                )
                for p in self.pricing
            ],
            granularity_minutes=self.granularity_minutes or defaults.default_granularity_minutes,
            default_price=defaults.default_price_per_hour,
        )
        return Facility(
            id=self.id,
            name=self.name,
            policy=policy,
            timezone=self.timezone or defaults.timezone,
        )

    @classmethod
    def from_facility(cls, facility: Facility, previous: Optional["FacilityConfig"] = None) -> "FacilityConfig":
        """Serialise an edited facility, keeping unset optional fields unset."""
        policy = facility.policy
        working_hours = []
        pricing = []
        for day_type in policy.day_types:
            hours = policy.hours_for(day_type)
            working_hours.append(
                WorkingHoursConfig(
                    day_type=day_type,
                    open=str(hours.open),
                    close=str(hours.close),
                    is_open=hours.is_open,
                )
            )
            for interval in policy.tiers_for(day_type):
                pricing.append(
                    PricingConfig(
                        day_type=day_type,
                        start=str(interval.start),
                        end=str(interval.end),
                        price_per_hour=interval.price_per_hour,
                    )
                )

        return cls(
            id=facility.id,
            name=facility.name,
            timezone=previous.timezone if previous else facility.timezone,
            granularity_minutes=previous.granularity_minutes if previous else facility.granularity_minutes,
            working_hours=working_hours,
            pricing=pricing,
        )


class AppConfig(BaseModel):
    """Application configuration."""
    timezone: str = "Europe/Sofia"
    data_file: Path = Path("reservations.json")
    default_granularity_minutes: int = 60
    default_price_per_hour: Decimal = Field(default=Decimal("20.00"), ge=0)
    facilities: List[FacilityConfig] = Field(default_factory=list)

    @field_validator("timezone")
    @classmethod
    def validate_timezone(cls, value: str) -> str:
        """Ensure the timezone is a known IANA name."""
        try:
            pendulum.timezone(value)
        except Exception as exc:
            raise ValueError(f"Unknown timezone: {value}") from exc
        return value

    @field_validator("default_granularity_minutes")
    @classmethod
    def validate_granularity(cls, value: int) -> int:
        if value <= 0:
            raise ValueError("default_granularity_minutes must be greater than zero")
        return value

    @field_validator("facilities")
    @classmethod
    def validate_facilities(cls, value: List[FacilityConfig]) -> List[FacilityConfig]:
        """Ensure facility ids are unique."""
        seen: set[str] = set()
        for facility in value:
            if facility.id in seen:
                raise ValueError(f"Duplicate facility id detected: {facility.id}")
            seen.add(facility.id)
        return value

    @classmethod
    def load_from_yaml(cls, config_path: Path) -> "AppConfig":
        """
        Load configuration from YAML file.

        Args:
            config_path: Path to the YAML config file

        Returns:
            AppConfig instance

        Raises:
            FileNotFoundError: If config file doesn't exist
            ValueError: If config is invalid
        """
        if not config_path.exists():
            raise FileNotFoundError(
                f"Config file not found: {config_path}\n"
                f"Please create a config.yaml file. See config.example.yaml for reference."
            )

        try:
            with open(config_path, "r", encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}
        except yaml.YAMLError as exc:
            raise ValueError(f"Invalid YAML in {config_path}: {exc}") from exc

        if not isinstance(data, dict):
            raise ValueError("Config file must contain a mapping at the root level.")

        return cls(**data)

    def save_to_yaml(self, config_path: Path) -> None:
        """Write the configuration back, e.g. after pricing edits."""
        data = self.model_dump(mode="json", exclude_none=True)
        with open(config_path, "w", encoding="utf-8") as f:
            yaml.safe_dump(data, f, sort_keys=False, allow_unicode=True)

    def find_facility(self, facility_id: str) -> FacilityConfig | None:
        for facility in self.facilities:
            if facility.id == facility_id:
                return facility
        return None

    def build_facilities(self) -> List[Facility]:
        return [facility.to_facility(self) for facility in self.facilities]

    def update_facility(self, facility: Facility) -> None:
        """Replace the stored setup of an edited facility."""
        previous = self.find_facility(facility.id)
        updated = FacilityConfig.from_facility(facility, previous)
        self.facilities = [
            updated if existing.id == facility.id else existing
            for existing in self.facilities
        ]
        if previous is None:
            self.facilities.append(updated)

    def resolve_data_file(self, config_path: Path) -> Path:
        """Relative data file paths are resolved against the config directory."""
        if self.data_file.is_absolute():
            return self.data_file
        return config_path.parent / self.data_file


def get_default_config_path() -> Path:
    """Get the default configuration file path."""
    # Look for config.yaml in current directory
    current_dir = Path.cwd()
    config_path = current_dir / "config.yaml"

    if not config_path.exists():
        # Try in the project root (parent of the package)
        project_root = Path(__file__).parent.parent
        config_path = project_root / "config.yaml"

    return config_path
