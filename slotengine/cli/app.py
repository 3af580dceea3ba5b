"""
Main CLI application using Typer.
"""

import asyncio
import logging
from pathlib import Path
from typing import Annotated, List, NoReturn, Optional

import pendulum
import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.table import Table

from ..adapters.google_authenticator import GoogleAuthenticator
from ..adapters.google_calendar_client import GoogleCalendarClient
from ..adapters.mock_calendar_client import MockCalendarClient
from ..config import AppConfig, get_default_config_path
from ..domain.constraints import TimePreference
from ..domain.exceptions import CalendarAuthExpired, SlotEngineError
from ..domain.models import Meeting, MeetingUpdate
from ..domain.slot_scanner import SlotScanner
from ..domain.timezones import format_in_zone, parse_instant, resolve_timezone
from ..services.availability import AvailabilityService
from ..services.meetings import MeetingService

app = typer.Typer(
    name="slotengine",
    help="Find free meeting slots and manage meetings in Google Calendar",
    add_completion=False
)

console = Console()

ConfigOption = Annotated[
    Optional[Path],
    typer.Option("--config", "-c", help="Path to config file. Defaults to ./config.yaml"),
]
MockOption = Annotated[
    bool,
    typer.Option("--mock", help="Use bundled mock calendar data and skip authentication."),
]
TimezoneOption = Annotated[
    Optional[str],
    typer.Option("--timezone", "--tz", help="IANA timezone (defaults to the configured one)"),
]


@app.callback()
def main(
    verbose: Annotated[bool, typer.Option("--verbose", "-v", help="Show debug logging.")] = False,
):
    """Calendar availability engine."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, show_path=False)],
    )


def _load_config(config_file: Optional[Path], mock: bool) -> AppConfig:
    config_path = config_file or get_default_config_path()
    if mock and not config_path.exists():
        return AppConfig()
    return AppConfig.load_from_yaml(config_path)


def _build_authenticator(config: AppConfig) -> GoogleAuthenticator:
    return GoogleAuthenticator(
        client_id=config.google.client_id,
        client_secret=config.google.client_secret,
        scopes=config.google.scopes,
        cache_file=config.google.token_file,
    )


def _build_client(config: AppConfig, mock: bool):
    if mock:
        console.print("[yellow]⚠  MOCK MODE: using bundled test data, changes are not saved[/yellow]\n")
        return MockCalendarClient(calendar_id=config.google.calendar_id, timezone=config.timezone)
    return GoogleCalendarClient(
        authenticator=_build_authenticator(config),
        calendar_id=config.google.calendar_id,
        timezone=config.timezone,
    )


def _meeting_service(config: AppConfig, mock: bool) -> MeetingService:
    return MeetingService(
        calendar_client=_build_client(config, mock),
        default_timezone=config.timezone,
        search_days=config.defaults.search_days,
    )


def _fail(error: Exception) -> NoReturn:
    console.print(f"[bold red]Error:[/bold red] {error}")
    if isinstance(error, CalendarAuthExpired):
        console.print("Run [bold]slotengine connect[/bold] to reconnect your Google account.")
    raise typer.Exit(1)


@app.command()
def find(
    duration: Annotated[Optional[int], typer.Option("--duration", "-d", help="Meeting duration in minutes")] = None,
    start: Annotated[Optional[str], typer.Option("--start", help="First date to search (YYYY-MM-DD), default today")] = None,
    end: Annotated[Optional[str], typer.Option("--end", help="Last date to search (YYYY-MM-DD)")] = None,
    preference: Annotated[Optional[TimePreference], typer.Option("--preference", "-p", help="Time of day")] = None,
    not_before: Annotated[Optional[int], typer.Option("--not-before", help="Earliest start hour (0-23)")] = None,
    not_after: Annotated[Optional[int], typer.Option("--not-after", help="Latest hour (0-23)")] = None,
    exclude_day: Annotated[Optional[List[int]], typer.Option("--exclude-day", help="Weekday to skip, 0=Sunday")] = None,
    buffer_before: Annotated[int, typer.Option("--buffer-before", help="Free minutes required before")] = 0,
    buffer_after: Annotated[int, typer.Option("--buffer-after", help="Free minutes required after")] = 0,
    timezone: TimezoneOption = None,
    config_file: ConfigOption = None,
    mock: MockOption = False,
):
    """
    Find free meeting slots.

    Examples:

        slotengine find --duration 45 --preference afternoon

        slotengine find --start 2024-02-06 --end 2024-02-06 --not-before 14

        slotengine find --mock --exclude-day 3 --buffer-before 15
    """
    try:
        config = _load_config(config_file, mock)
        tz = timezone or config.timezone
        resolve_timezone(tz)
        defaults = config.defaults

        today = pendulum.now(tz)
        start_date = start or today.to_date_string()
        end_date = end or parse_instant(start_date, tz).add(days=defaults.window_days).to_date_string()

        service = AvailabilityService(
            calendar_client=_build_client(config, mock),
            slot_scanner=SlotScanner(
                result_cap=defaults.result_cap,
                exploration_cap=defaults.exploration_cap,
                step_minutes=defaults.step_minutes,
            ),
            default_timezone=config.timezone,
            window_days=defaults.window_days,
        )

        result = asyncio.run(
            service.search_available_slots_between_dates(
                duration or defaults.duration_minutes,
                start_date,
                end_date,
                preference=preference,
                not_before=not_before,
                not_after=not_after,
                excluded_weekdays=exclude_day,
                buffer_before_minutes=buffer_before,
                buffer_after_minutes=buffer_after,
                timezone=tz,
            )
        )
    except (SlotEngineError, FileNotFoundError, ValueError) as e:
        _fail(e)

    constraints = result.constraints
    console.print("[bold cyan]📊 Search:[/bold cyan]")
    console.print(f"   Window: {format_in_zone(constraints.window_start, tz)} - {format_in_zone(constraints.window_end, tz)}")
    console.print(f"   Hours: {constraints.start_hour}:00 - {constraints.end_hour}:00 ({tz})")
    console.print(f"   Duration: {constraints.duration_minutes} min\n")

    if result.problem is not None:
        console.print(f"[yellow]⚠ No times can match these constraints: {result.problem}[/yellow]\n")
        return

    if not result.slots:
        console.print(
            "[yellow]⚠ No free slots found.[/yellow]\n"
            "Try a longer window, a shorter duration or fewer constraints.\n"
        )
        return

    table = Table(title="Free slots", show_header=True, header_style="bold cyan")
    table.add_column("#", style="dim")
    table.add_column("Slot", style="bold green")
    table.add_column("Start (UTC)", style="dim")

    for idx, slot in enumerate(result.slots, 1):
        table.add_row(str(idx), slot.format_display(tz), slot.start.in_timezone("UTC").to_iso8601_string())

    console.print(table)
    console.print()


@app.command("last-meeting")
def last_meeting(
    date: Annotated[str, typer.Argument(help="Day to inspect (YYYY-MM-DD)")],
    timezone: TimezoneOption = None,
    config_file: ConfigOption = None,
    mock: MockOption = False,
):
    """
    Show the meeting that ends last on a given day.
    """
    try:
        config = _load_config(config_file, mock)
        tz = timezone or config.timezone
        event = asyncio.run(_meeting_service(config, mock).last_meeting_of_day(date, tz))
    except (SlotEngineError, FileNotFoundError, ValueError) as e:
        _fail(e)

    if event is None:
        console.print(f"\n[yellow]No meetings on {date}.[/yellow]\n")
        return

    console.print(Panel.fit(
        f"[bold]{event.title}[/bold]\n"
        f"{format_in_zone(event.start, tz)} - {format_in_zone(event.end, tz)}\n"
        f"[dim]{event.id}[/dim]",
        title=f"Last meeting on {date}"
    ))


@app.command()
def search(
    query: Annotated[str, typer.Argument(help="Text to look for in event titles and descriptions")],
    start: Annotated[Optional[str], typer.Option("--start", help="Search from (YYYY-MM-DD), default now")] = None,
    end: Annotated[Optional[str], typer.Option("--end", help="Search until (YYYY-MM-DD)")] = None,
    timezone: TimezoneOption = None,
    config_file: ConfigOption = None,
    mock: MockOption = False,
):
    """
    Search calendar events by text.
    """
    try:
        config = _load_config(config_file, mock)
        tz = timezone or config.timezone
        window_start = parse_instant(start, tz) if start else None
        window_end = parse_instant(end, tz).end_of("day") if end else None
        events = asyncio.run(_meeting_service(config, mock).search_events(query, window_start, window_end))
    except (SlotEngineError, FileNotFoundError, ValueError) as e:
        _fail(e)

    if not events:
        console.print(f"\n[yellow]No events matching '{query}'.[/yellow]\n")
        return

    table = Table(title=f"Events matching '{query}'", show_header=True, header_style="bold cyan")
    table.add_column("Title", style="bold yellow")
    table.add_column("When")
    table.add_column("ID", style="dim")

    for event in events:
        table.add_row(event.title, f"{format_in_zone(event.start, tz)} - {format_in_zone(event.end, tz)}", event.id)

    console.print()
    console.print(table)
    console.print()


@app.command()
def schedule(
    title: Annotated[str, typer.Argument(help="Meeting title")],
    start: Annotated[str, typer.Option("--start", help="Start time, e.g. 2024-02-06T14:00 (local to --timezone)")],
    duration: Annotated[Optional[int], typer.Option("--duration", "-d", help="Duration in minutes")] = None,
    description: Annotated[Optional[str], typer.Option("--description", help="Meeting description")] = None,
    attendee: Annotated[Optional[List[str]], typer.Option("--attendee", "-a", help="Attendee email (repeatable)")] = None,
    timezone: TimezoneOption = None,
    config_file: ConfigOption = None,
    mock: MockOption = False,
):
    """
    Schedule a meeting with a Google Meet link and invite attendees.
    """
    try:
        config = _load_config(config_file, mock)
        tz = timezone or config.timezone
        meeting = Meeting(
            title=title,
            start_time=parse_instant(start, tz),
            duration_minutes=duration or config.defaults.duration_minutes,
            description=description,
            attendees=list(attendee or []),
            timezone=tz,
        )
        event_id = asyncio.run(_meeting_service(config, mock).schedule_meeting(meeting))
    except (SlotEngineError, FileNotFoundError, ValueError) as e:
        _fail(e)

    console.print(
        f"\n[bold green]✓ Scheduled[/bold green] {title}: "
        f"{format_in_zone(meeting.start_time, tz)} - {format_in_zone(meeting.end_time, tz)}"
    )
    console.print(f"[dim]Event ID: {event_id}[/dim]\n")


@app.command()
def update(
    event_id: Annotated[str, typer.Argument(help="Calendar event ID")],
    title: Annotated[Optional[str], typer.Option("--title", help="New title")] = None,
    description: Annotated[Optional[str], typer.Option("--description", help="New description")] = None,
    start: Annotated[Optional[str], typer.Option("--start", help="New start time (local to --timezone)")] = None,
    duration: Annotated[Optional[int], typer.Option("--duration", "-d", help="New duration in minutes")] = None,
    timezone: TimezoneOption = None,
    config_file: ConfigOption = None,
    mock: MockOption = False,
):
    """
    Update an existing meeting. Only the given fields change.
    """
    try:
        config = _load_config(config_file, mock)
        tz = timezone or config.timezone
        changes = {"timezone": tz}
        if title is not None:
            changes["title"] = title
        if description is not None:
            changes["description"] = description
        if start is not None:
            changes["start_time"] = parse_instant(start, tz)
        if duration is not None:
            changes["duration_minutes"] = duration
        asyncio.run(_meeting_service(config, mock).update_meeting(event_id, MeetingUpdate(**changes)))
    except (SlotEngineError, FileNotFoundError, ValueError) as e:
        _fail(e)

    console.print(f"\n[bold green]✓ Updated[/bold green] event {event_id}\n")


@app.command()
def delete(
    event_id: Annotated[str, typer.Argument(help="Calendar event ID")],
    config_file: ConfigOption = None,
    mock: MockOption = False,
):
    """
    Delete a meeting and notify its attendees.
    """
    try:
        config = _load_config(config_file, mock)
        asyncio.run(_meeting_service(config, mock).delete_meeting(event_id))
    except (SlotEngineError, FileNotFoundError, ValueError) as e:
        _fail(e)

    console.print(f"\n[bold green]✓ Deleted[/bold green] event {event_id}\n")


@app.command()
def connect(
    config_file: ConfigOption = None,
):
    """
    Connect a Google account (opens a browser for consent).
    """
    try:
        config = _load_config(config_file, mock=False)
        authenticator = _build_authenticator(config)
        authenticator.authorize()
    except (SlotEngineError, FileNotFoundError, ValueError) as e:
        _fail(e)

    console.print(f"[green]Credentials stored in {authenticator.cache_backend}.[/green]\n")


@app.command()
def disconnect(
    config_file: ConfigOption = None,
):
    """
    Forget the stored Google credentials.
    """
    try:
        config = _load_config(config_file, mock=False)
        _build_authenticator(config).clear_cache()
    except (SlotEngineError, FileNotFoundError, ValueError) as e:
        _fail(e)

    console.print("\n[green]✓ Credentials removed.[/green]")
    console.print("Run [bold]slotengine connect[/bold] to connect again.\n")


@app.command()
def version():
    """
    Show version information.
    """
    from .. import __version__
    console.print(f"\n[bold cyan]slotengine[/bold cyan] version [bold]{__version__}[/bold]\n")


if __name__ == "__main__":
    app()
