"""
Main CLI application using Typer.
"""

import logging
import sys
import time
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Annotated, List, NoReturn, Optional

import pendulum
import typer
from pendulum import Date
from rich.console import Console
from rich.table import Table

from ..adapters.json_store import JsonReservationStore
from ..adapters.memory_store import InMemoryFacilityCatalog
from ..config import AppConfig, get_default_config_path
from ..domain.exceptions import CourtbookError
from ..domain.models import DayType, PricingInterval, Reservation, TimeOfDay
from ..services.booking import FacilityBookingService

app = typer.Typer(
    name="courtbook",
    help="Check facility availability and book time slots",
    add_completion=False
)

console = Console()

ConfigOption = Annotated[Optional[Path], typer.Option("--config", "-c", help="Path to config file. Defaults to ./config.yaml")]
UserOption = Annotated[str, typer.Option("--user", "-u", envvar="COURTBOOK_USER", help="Id of the booking user")]


def setup_logging(verbose: bool) -> None:
    """Configures logging to stderr with local time."""
    level = logging.DEBUG if verbose else logging.WARNING
    handler = logging.StreamHandler(sys.stderr)
    formatter = logging.Formatter(
        fmt="%(asctime)s [%(levelname)s]: %(name)s:%(lineno)d | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S"
    )
    formatter.converter = time.localtime
    handler.setFormatter(formatter)
    logging.basicConfig(level=level, handlers=[handler], force=True)


@app.callback()
def main(
    verbose: Annotated[bool, typer.Option("--verbose", "-v", help="Enable verbose logging.")] = False,
):
    setup_logging(verbose)


def _build_service(config_file: Optional[Path]) -> FacilityBookingService:
    """Wire the service from the YAML config; pricing edits are written back to it."""
    config_path = config_file or get_default_config_path()
    config = AppConfig.load_from_yaml(config_path)

    def save_facility(facility) -> None:
        config.update_facility(facility)
        config.save_to_yaml(config_path)

    catalog = InMemoryFacilityCatalog(config.build_facilities(), on_save=save_facility)
    store = JsonReservationStore(config.resolve_data_file(config_path))
    return FacilityBookingService(catalog=catalog, store=store)


def _parse_date(value: str) -> Date:
    try:
        return pendulum.from_format(value, "YYYY-MM-DD").date()
    except Exception as e:
        console.print(f"[red]Could not parse date '{value}': {e}[/red]")
        raise typer.Exit(1)


def _parse_time(value: str) -> TimeOfDay:
    try:
        return TimeOfDay.parse(value)
    except ValueError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(1)


def _parse_price(value: Optional[str]) -> Optional[Decimal]:
    if value is None:
        return None
    try:
        return Decimal(value)
    except InvalidOperation:
        console.print(f"[red]Invalid price: '{value}'[/red]")
        raise typer.Exit(1)


def _fail(error: Exception) -> NoReturn:
    console.print(f"[bold red]Error:[/bold red] {error}")
    raise typer.Exit(1)


def _print_tiling(title: str, intervals: tuple[PricingInterval, ...]) -> None:
    table = Table(title=title, show_header=True, header_style="bold cyan")
    table.add_column("From", style="bold yellow")
    table.add_column("To", style="bold yellow")
    table.add_column("Price / hour", justify="right")
    for interval in intervals:
        table.add_row(str(interval.start), str(interval.end), f"€{interval.price_per_hour}")
    console.print(table)


def _print_reservations(reservations: List[Reservation], title: str, show_user: bool = False) -> None:
    table = Table(title=title, show_header=True, header_style="bold cyan")
    table.add_column("ID", justify="right")
    if show_user:
        table.add_column("User")
    table.add_column("Facility", style="bold yellow")
    table.add_column("Date")
    table.add_column("Time")
    table.add_column("Status")
    table.add_column("Price", justify="right")
    for r in reservations:
        row = [str(r.id)]
        if show_user:
            row.append(r.user_id)
        row += [
            r.facility_id,
            r.start_time.format("DD.MM.YYYY"),
            f"{r.start_time.format('HH:mm')} – {r.end_time.format('HH:mm')}",
            r.status.value,
            f"€{r.total_price}",
        ]
        table.add_row(*row)
    console.print(table)


@app.command()
def availability(
    facility_id: Annotated[str, typer.Argument(help="Facility id from the config file")],
    config_file: ConfigOption = None,
    start: Annotated[Optional[str], typer.Option("--start", help="First date (YYYY-MM-DD). Defaults to today.")] = None,
    days: Annotated[int, typer.Option("--days", "-d", min=1, help="Number of days to show")] = 7,
):
    """
    Show the bookable slot grid of a facility.

    Examples:

        courtbook availability court-1
        courtbook availability court-1 --start 2030-01-07 --days 3
    """
    try:
        service = _build_service(config_file)
        start_date = _parse_date(start) if start else pendulum.today().date()
        facility = service.get_facility(facility_id)
        result = service.get_availability(facility_id, start_date, start_date.add(days=days))
    except (CourtbookError, FileNotFoundError, ValueError) as e:
        _fail(e)

    console.print(f"\n[bold cyan]{facility.name}[/bold cyan]\n")
    for day in result:
        heading = day.date.format("dddd, DD.MM.YYYY")
        if not day.is_open:
            console.print(f"[dim]{heading}: closed[/dim]\n")
            continue

        table = Table(title=heading, show_header=True, header_style="bold cyan")
        table.add_column("Slot", style="bold yellow")
        table.add_column("Price / hour", justify="right")
        table.add_column("Status")
        for slot in day.slots:
            status = "[green]free[/green]" if slot.available else "[red]booked[/red]"
            table.add_row(slot.key, f"€{slot.price_per_hour}", status)
        console.print(table)
        console.print()


@app.command()
def book(
    facility_id: Annotated[str, typer.Argument(help="Facility id from the config file")],
    date: Annotated[str, typer.Argument(help="Date of the booking (YYYY-MM-DD)")],
    slots: Annotated[List[str], typer.Argument(help="Slot keys, e.g. 09:00-10:00 10:00-11:00")],
    user: UserOption,
    config_file: ConfigOption = None,
):
    """
    Book one or more slots. Adjacent slots become a single reservation.
    """
    booking_date = _parse_date(date)
    try:
        service = _build_service(config_file)
        created = service.submit_booking(facility_id, user, booking_date, slots)
    except (CourtbookError, FileNotFoundError, ValueError) as e:
        _fail(e)

    console.print(f"[bold green]✓ {len(created)} reservation(s) created[/bold green]")
    _print_reservations(created, "New reservations")
    total = sum((r.total_price for r in created), Decimal(0))
    console.print(f"Total: [bold]€{total}[/bold] (pending payment)\n")


@app.command()
def pay(
    reservation_id: Annotated[int, typer.Argument(help="Reservation id")],
    user: UserOption,
    config_file: ConfigOption = None,
):
    """
    Mark a pending reservation as paid.
    """
    try:
        service = _build_service(config_file)
        reservation = service.pay_reservation(reservation_id, user)
    except (CourtbookError, FileNotFoundError, ValueError) as e:
        _fail(e)
    console.print(f"[green]✓ Reservation {reservation.id} confirmed.[/green]")


@app.command()
def cancel(
    reservation_id: Annotated[int, typer.Argument(help="Reservation id")],
    user: UserOption,
    config_file: ConfigOption = None,
):
    """
    Cancel a reservation that has not started yet.
    """
    try:
        service = _build_service(config_file)
        reservation = service.cancel_reservation(reservation_id, user)
    except (CourtbookError, FileNotFoundError, ValueError) as e:
        _fail(e)
    console.print(f"[green]✓ Reservation {reservation.id} cancelled.[/green]")


@app.command()
def bookings(
    user: UserOption,
    config_file: ConfigOption = None,
):
    """
    List the reservations of a user.
    """
    try:
        service = _build_service(config_file)
        reservations = service.list_user_reservations(user)
    except (CourtbookError, FileNotFoundError, ValueError) as e:
        _fail(e)

    if not reservations:
        console.print("[yellow]No reservations found.[/yellow]")
        return
    _print_reservations(reservations, f"Reservations of {user}")


@app.command()
def upcoming(
    user: UserOption,
    config_file: ConfigOption = None,
):
    """
    List reservations of a user that have not started yet.
    """
    try:
        service = _build_service(config_file)
        reservations = service.list_upcoming_reservations(user)
        pending = service.count_pending_reservations(user)
    except (CourtbookError, FileNotFoundError, ValueError) as e:
        _fail(e)

    if not reservations:
        console.print("[yellow]No upcoming reservations.[/yellow]")
        return
    _print_reservations(reservations, f"Upcoming reservations of {user}")
    if pending:
        console.print(f"[yellow]{pending} reservation(s) awaiting payment[/yellow]\n")


@app.command("facility-bookings")
def facility_bookings(
    facility_id: Annotated[str, typer.Argument(help="Facility id from the config file")],
    config_file: ConfigOption = None,
    start: Annotated[Optional[str], typer.Option("--start", help="First date (YYYY-MM-DD). Defaults to today.")] = None,
    days: Annotated[int, typer.Option("--days", "-d", min=1, help="Number of days to show")] = 7,
):
    """
    List all reservations of a facility, e.g. for the facility owner.
    """
    try:
        service = _build_service(config_file)
        start_date = _parse_date(start) if start else pendulum.today().date()
        reservations = service.list_facility_bookings(facility_id, start_date, start_date.add(days=days))
    except (CourtbookError, FileNotFoundError, ValueError) as e:
        _fail(e)

    if not reservations:
        console.print("[yellow]No reservations found.[/yellow]")
        return
    _print_reservations(reservations, f"Bookings of {facility_id}", show_user=True)


@app.command()
def pricing(
    facility_id: Annotated[str, typer.Argument(help="Facility id from the config file")],
    config_file: ConfigOption = None,
):
    """
    Show working hours and pricing tiers of a facility.
    """
    try:
        service = _build_service(config_file)
        facility = service.get_facility(facility_id)
    except (CourtbookError, FileNotFoundError, ValueError) as e:
        _fail(e)

    policy = facility.policy
    console.print(f"\n[bold cyan]{facility.name}[/bold cyan] (slots of {facility.granularity_minutes} min)\n")
    for day_type in policy.day_types:
        hours = policy.hours_for(day_type)
        state = "" if hours.is_open else " [red](closed)[/red]"
        _print_tiling(f"{day_type.value}: {hours.open} – {hours.close}{state}", policy.tiers_for(day_type).intervals)
        console.print()


@app.command("set-hours")
def set_hours(
    facility_id: Annotated[str, typer.Argument(help="Facility id from the config file")],
    day_type: Annotated[DayType, typer.Argument(help="weekday or weekend")],
    open_time: Annotated[str, typer.Argument(help="Opening time (HH:MM)")],
    close_time: Annotated[str, typer.Argument(help="Closing time (HH:MM)")],
    is_open: Annotated[Optional[bool], typer.Option("--open/--closed", help="Open or close this day type")] = None,
    config_file: ConfigOption = None,
):
    """
    Change working hours; pricing tiers are clamped to the new range.
    """
    try:
        service = _build_service(config_file)
        tiling = service.set_working_hours(
            facility_id, day_type, _parse_time(open_time), _parse_time(close_time), is_open=is_open
        )
    except (CourtbookError, FileNotFoundError, ValueError) as e:
        _fail(e)
    _print_tiling(f"{day_type.value} pricing", tiling)


@app.command("add-tier")
def add_tier(
    facility_id: Annotated[str, typer.Argument(help="Facility id from the config file")],
    day_type: Annotated[DayType, typer.Argument(help="weekday or weekend")],
    price: Annotated[Optional[str], typer.Option("--price", "-p", help="Hourly price of the new tier")] = None,
    config_file: ConfigOption = None,
):
    """
    Split the last pricing tier one slot after its start.
    """
    try:
        service = _build_service(config_file)
        tiling = service.upsert_pricing_interval(facility_id, day_type, price_per_hour=_parse_price(price))
    except (CourtbookError, FileNotFoundError, ValueError) as e:
        _fail(e)
    _print_tiling(f"{day_type.value} pricing", tiling)


@app.command("edit-tier")
def edit_tier(
    facility_id: Annotated[str, typer.Argument(help="Facility id from the config file")],
    day_type: Annotated[DayType, typer.Argument(help="weekday or weekend")],
    start: Annotated[str, typer.Argument(help="Current start of the tier (HH:MM)")],
    new_start: Annotated[Optional[str], typer.Option("--start", help="New start (HH:MM); moves the previous tier's end too")] = None,
    price: Annotated[Optional[str], typer.Option("--price", "-p", help="New hourly price")] = None,
    config_file: ConfigOption = None,
):
    """
    Move the start of a pricing tier and/or change its price.
    """
    try:
        service = _build_service(config_file)
        tiling = service.upsert_pricing_interval(
            facility_id,
            day_type,
            _parse_time(start),
            price_per_hour=_parse_price(price),
            new_start=_parse_time(new_start) if new_start else None,
        )
    except (CourtbookError, FileNotFoundError, ValueError) as e:
        _fail(e)
    _print_tiling(f"{day_type.value} pricing", tiling)


@app.command("remove-tier")
def remove_tier(
    facility_id: Annotated[str, typer.Argument(help="Facility id from the config file")],
    day_type: Annotated[DayType, typer.Argument(help="weekday or weekend")],
    start: Annotated[str, typer.Argument(help="Start of the tier to remove (HH:MM)")],
    config_file: ConfigOption = None,
):
    """
    Remove a pricing tier; its neighbour takes over the time span.
    """
    try:
        service = _build_service(config_file)
        tiling = service.remove_pricing_interval(facility_id, day_type, _parse_time(start))
    except (CourtbookError, FileNotFoundError, ValueError) as e:
        _fail(e)
    _print_tiling(f"{day_type.value} pricing", tiling)


@app.command()
def version():
    """
    Show version information.
    """
    from .. import __version__
    console.print(f"\n[bold cyan]courtbook[/bold cyan] version [bold]{__version__}[/bold]\n")


if __name__ == "__main__":
    app()
