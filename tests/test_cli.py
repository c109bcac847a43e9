"""
Tests for the Typer command line interface.
"""

import logging
from decimal import Decimal
from pathlib import Path

import pytest
from typer.testing import CliRunner

from courtbook import __version__
from courtbook.cli.app import app
from courtbook.config import AppConfig
from courtbook.domain.models import DayType

runner = CliRunner()

# 2030-01-07 is a Monday
MONDAY = "2030-01-07"

CONFIG_YAML = """
timezone: Europe/Sofia
data_file: reservations.json
facilities:
  - id: court-1
    name: Tennis Court 1
    working_hours:
      - day_type: weekday
        open: "08:00"
        close: "22:00"
      - day_type: weekend
        open: "09:00"
        close: "20:00"
        is_open: false
    pricing:
      - day_type: weekday
        start: "08:00"
        end: "12:00"
        price_per_hour: 10
      - day_type: weekday
        start: "12:00"
        end: "22:00"
        price_per_hour: 15
"""


@pytest.fixture(autouse=True)
def restore_logging():
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield
    root.handlers[:] = handlers
    root.setLevel(level)


@pytest.fixture
def config_path(tmp_path) -> Path:
    path = tmp_path / "config.yaml"
    path.write_text(CONFIG_YAML, encoding="utf-8")
    return path


def _invoke(config_path: Path, *args: str, **kwargs):
    return runner.invoke(app, [*args, "--config", str(config_path)], **kwargs)


def test_availability_lists_slots(config_path):
    result = _invoke(config_path, "availability", "court-1", "--start", MONDAY, "--days", "1")

    assert result.exit_code == 0, result.output
    assert "Tennis Court 1" in result.output
    assert "08:00-09:00" in result.output
    assert "21:00-22:00" in result.output
    assert "booked" not in result.output


def test_availability_reports_closed_days(config_path):
    result = _invoke(config_path, "availability", "court-1", "--start", "2030-01-12", "--days", "1")

    assert result.exit_code == 0, result.output
    assert "closed" in result.output


def test_book_then_list(config_path):
    booked = _invoke(
        config_path, "book", "court-1", MONDAY, "09:00-10:00", "10:00-11:00", "13:00-14:00", "--user", "alice"
    )
    listed = _invoke(config_path, "bookings", "--user", "alice")
    grid = _invoke(config_path, "availability", "court-1", "--start", MONDAY, "--days", "1")

    assert booked.exit_code == 0, booked.output
    assert "2 reservation(s) created" in booked.output
    assert "35.00" in booked.output
    assert listed.exit_code == 0, listed.output
    assert "pending" in listed.output
    assert "booked" in grid.output
    assert (config_path.parent / "reservations.json").exists()


def test_user_can_come_from_environment(config_path):
    result = _invoke(config_path, "book", "court-1", MONDAY, "09:00-10:00", env={"COURTBOOK_USER": "bob"})
    listed = _invoke(config_path, "bookings", "--user", "bob")

    assert result.exit_code == 0, result.output
    assert "pending" in listed.output


def test_double_booking_fails(config_path):
    _invoke(config_path, "book", "court-1", MONDAY, "09:00-10:00", "--user", "alice")

    result = _invoke(config_path, "book", "court-1", MONDAY, "09:00-10:00", "--user", "bob")

    assert result.exit_code == 1
    assert "Error" in result.output


def test_pay_and_cancel(config_path):
    _invoke(config_path, "book", "court-1", MONDAY, "09:00-10:00", "--user", "alice")

    foreign = _invoke(config_path, "pay", "1", "--user", "mallory")
    paid = _invoke(config_path, "pay", "1", "--user", "alice")
    cancelled = _invoke(config_path, "cancel", "1", "--user", "alice")

    assert foreign.exit_code == 1
    assert paid.exit_code == 0, paid.output
    assert "Reservation 1 confirmed" in paid.output
    assert cancelled.exit_code == 0, cancelled.output
    assert "Reservation 1 cancelled" in cancelled.output


def test_bookings_without_reservations(config_path):
    result = _invoke(config_path, "bookings", "--user", "nobody")

    assert result.exit_code == 0
    assert "No reservations found" in result.output


def test_upcoming_counts_unpaid_reservations(config_path):
    _invoke(config_path, "book", "court-1", MONDAY, "09:00-10:00", "13:00-14:00", "--user", "alice")
    _invoke(config_path, "pay", "1", "--user", "alice")

    result = _invoke(config_path, "upcoming", "--user", "alice")
    empty = _invoke(config_path, "upcoming", "--user", "bob")

    assert result.exit_code == 0, result.output
    assert "1 reservation(s) awaiting payment" in result.output
    assert "No upcoming reservations" in empty.output


def test_facility_bookings_show_every_user(config_path):
    _invoke(config_path, "book", "court-1", MONDAY, "09:00-10:00", "--user", "alice")
    _invoke(config_path, "book", "court-1", MONDAY, "11:00-12:00", "--user", "bob")

    result = _invoke(config_path, "facility-bookings", "court-1", "--start", MONDAY, "--days", "1")
    later = _invoke(config_path, "facility-bookings", "court-1", "--start", "2030-01-08", "--days", "1")

    assert result.exit_code == 0, result.output
    assert "alice" in result.output
    assert "bob" in result.output
    assert "No reservations found" in later.output


def test_pricing_edits_are_written_to_config(config_path):
    """Test that tier edits are saved back to the YAML file."""
    added = _invoke(config_path, "add-tier", "court-1", "weekday", "--price", "25")
    edited = _invoke(config_path, "edit-tier", "court-1", "weekday", "13:00", "--start", "18:00")
    removed = _invoke(config_path, "remove-tier", "court-1", "weekday", "12:00")

    assert added.exit_code == 0, added.output
    assert edited.exit_code == 0, edited.output
    assert removed.exit_code == 0, removed.output
    config = AppConfig.load_from_yaml(config_path)
    court = config.find_facility("court-1")
    assert [(p.start, p.end, p.price_per_hour) for p in court.pricing if p.day_type == DayType.WEEKDAY] == [
        ("08:00", "18:00", Decimal("10")),
        ("18:00", "22:00", Decimal("25")),
    ]


def test_set_hours_and_reopen(config_path):
    result = _invoke(config_path, "set-hours", "court-1", "weekend", "10:00", "18:00", "--open")

    assert result.exit_code == 0, result.output
    court = AppConfig.load_from_yaml(config_path).find_facility("court-1")
    weekend = next(h for h in court.working_hours if h.day_type == DayType.WEEKEND)
    assert (weekend.open, weekend.close, weekend.is_open) == ("10:00", "18:00", True)


def test_misaligned_hours_are_rejected(config_path):
    """Test that a rejected edit leaves the config file untouched."""
    before = config_path.read_text(encoding="utf-8")

    result = _invoke(config_path, "set-hours", "court-1", "weekday", "08:30", "22:00")

    assert result.exit_code == 1
    assert config_path.read_text(encoding="utf-8") == before


def test_pricing_shows_tiers(config_path):
    result = _invoke(config_path, "pricing", "court-1")

    assert result.exit_code == 0, result.output
    assert "12:00" in result.output
    assert "closed" in result.output


@pytest.mark.parametrize(
    "args",
    [
        ("availability", "court-9"),
        ("availability", "court-1", "--start", "07.01.2030"),
        ("book", "court-1", MONDAY, "07:00-08:00", "--user", "alice"),
        ("book", "court-1", "2020-01-06", "09:00-10:00", "--user", "alice"),
        ("edit-tier", "court-1", "weekday", "12:00", "--price", "cheap"),
    ],
)
def test_invalid_input_exits_with_error(config_path, args):
    result = _invoke(config_path, *args)

    assert result.exit_code == 1


def test_missing_config_file(tmp_path):
    result = runner.invoke(app, ["pricing", "court-1", "--config", str(tmp_path / "missing.yaml")])

    assert result.exit_code == 1
    assert "Config file not found" in result.output


def test_version():
    result = runner.invoke(app, ["version"])

    assert result.exit_code == 0
    assert __version__ in result.output
