"""
Calendar helpers for stringing appointments.

The shop works in a single fixed timezone (Asia/Seoul), so appointment
date/time strings from the application are interpreted there. Nothing in
this module reads the current time: the only time source is the
appointment itself, which keeps rendering deterministic.
"""

from datetime import date, datetime, time, timedelta
from typing import Optional
from zoneinfo import ZoneInfo

SHOP_TIMEZONE = "Asia/Seoul"
SHOP_TZ = ZoneInfo(SHOP_TIMEZONE)

DEFAULT_DURATION = timedelta(hours=1)
WEEKDAYS = ("Mon", "Tue", "Wed", "Thu", "Fri", "Sat", "Sun")


def escape_text(value: str) -> str:
    """Escape an iCalendar TEXT value (RFC 5545 3.3.11)."""
    return (
        value.replace("\\", "\\\\")
        .replace(";", "\\;")
        .replace(",", "\\,")
        .replace("\r\n", "\\n")
        .replace("\n", "\\n")
    )


def parse_schedule(date_str: Optional[str], time_str: Optional[str]) -> Optional[datetime]:
    """
    Combine an appointment date and time into an aware datetime.

    Returns None when either part is missing or malformed. Times may be
    given as "HH:MM" or a bare hour ("14").
    """
    if not date_str or not time_str:
        return None
    try:
        day = date.fromisoformat(date_str.strip())
        hh_raw, _, mm_raw = time_str.strip().partition(":")
        slot = time(int(hh_raw or 0), int(mm_raw or 0))
    except ValueError:
        return None
    return datetime.combine(day, slot, tzinfo=SHOP_TZ)


def format_schedule(date_str: Optional[str], time_str: Optional[str]) -> Optional[str]:
    """Human readable slot, e.g. '2026-10-20 (Tue) 14:00'; None when unscheduled."""
    start = parse_schedule(date_str, time_str)
    if start is None:
        return None
    return f"{start:%Y-%m-%d} ({WEEKDAYS[start.weekday()]}) {start:%H:%M}"


def appointment_window(start: datetime, duration: timedelta = DEFAULT_DURATION) -> tuple[datetime, datetime]:
    """
    Start/end of an appointment block.

    The end never rolls over into the next day: a block that would cross
    midnight ends at 23:59 of the start day instead.
    """
    end = start + duration
    if end.date() != start.date():
        end = start.replace(hour=23, minute=59, second=0, microsecond=0)
    return start, end


def build_ics(
    application_id: str,
    date_str: Optional[str],
    time_str: Optional[str],
    *,
    summary: str,
    description: str,
    domain: str = "dokkaebi-tennis",
    brand: str = "Dokkaebi Tennis",
) -> Optional[str]:
    """
    Build a single-event iCalendar document for an appointment.

    No DTSTAMP is emitted: the document must be byte-identical for the same
    appointment, whenever it is rendered.
    """
    start = parse_schedule(date_str, time_str)
    if start is None:
        return None
    start, end = appointment_window(start)

    lines = [
        "BEGIN:VCALENDAR",
        "VERSION:2.0",
        f"PRODID:-//{escape_text(brand)}//Stringing//KR",
        "CALSCALE:GREGORIAN",
        "METHOD:PUBLISH",
        "BEGIN:VEVENT",
        f"UID:stringing-{application_id}@{domain}",
        f"SUMMARY:{escape_text(summary)}",
        f"DTSTART;TZID={SHOP_TIMEZONE}:{start:%Y%m%dT%H%M%S}",
        f"DTEND;TZID={SHOP_TIMEZONE}:{end:%Y%m%dT%H%M%S}",
        f"DESCRIPTION:{escape_text(description)}",
        "END:VEVENT",
        "END:VCALENDAR",
    ]
    return "\r\n".join(lines)
