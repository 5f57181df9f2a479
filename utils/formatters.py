"""
Formatting utilities for consistent station data display.
"""
import re
from datetime import datetime
from typing import Optional

import humanize
import pytz

from components.directory.phone_validator import format_display
from database.models import BroadcastStatus, Feed

# US state -> IANA timezone, for showing times in a market's local zone
TIMEZONE_MAP = {
    # Eastern
    "CT": "America/New_York",
    "DC": "America/New_York",
    "DE": "America/New_York",
    "FL": "America/New_York",
    "GA": "America/New_York",
    "IN": "America/Indiana/Indianapolis",
    "KY": "America/Kentucky/Louisville",
    "MA": "America/New_York",
    "MD": "America/New_York",
    "ME": "America/New_York",
    "MI": "America/Detroit",
    "NC": "America/New_York",
    "NH": "America/New_York",
    "NJ": "America/New_York",
    "NY": "America/New_York",
    "OH": "America/New_York",
    "PA": "America/New_York",
    "RI": "America/New_York",
    "SC": "America/New_York",
    "VA": "America/New_York",
    "VT": "America/New_York",
    "WV": "America/New_York",
    # Central
    "AL": "America/Chicago",
    "AR": "America/Chicago",
    "IA": "America/Chicago",
    "IL": "America/Chicago",
    "KS": "America/Chicago",
    "LA": "America/Chicago",
    "MN": "America/Chicago",
    "MO": "America/Chicago",
    "MS": "America/Chicago",
    "ND": "America/Chicago",
    "NE": "America/Chicago",
    "OK": "America/Chicago",
    "SD": "America/Chicago",
    "TN": "America/Chicago",
    "TX": "America/Chicago",
    "WI": "America/Chicago",
    # Mountain
    "AZ": "America/Phoenix",
    "CO": "America/Denver",
    "ID": "America/Boise",
    "MT": "America/Denver",
    "NM": "America/Denver",
    "UT": "America/Denver",
    "WY": "America/Denver",
    # Pacific
    "CA": "America/Los_Angeles",
    "NV": "America/Los_Angeles",
    "OR": "America/Los_Angeles",
    "WA": "America/Los_Angeles",
    # Alaska/Hawaii
    "AK": "America/Anchorage",
    "HI": "Pacific/Honolulu",
    # Territories
    "PR": "America/Puerto_Rico",
    "GU": "Pacific/Guam",
}

STATUS_BADGES = {
    BroadcastStatus.LIVE: "🟢 LIVE",
    BroadcastStatus.RERACK: "🟡 RERACK",
    BroadcastStatus.MIGHT: "⚪ MIGHT",
}


def format_datetime(
    dt: Optional[datetime],
    timezone: Optional[str] = None,
    format_str: str = "%Y-%m-%d %I:%M %p",
) -> str:
    """
    Format datetime, optionally converted to another timezone.

    Naive datetimes are server-local wall-clock times and are shown as-is
    unless a timezone is given.

    Args:
        dt: Datetime to format (can be None)
        timezone: IANA timezone name to convert to
        format_str: strftime format string

    Returns:
        Formatted datetime string or "N/A" if None

    Examples:
        format_datetime(datetime(2024, 10, 22, 14, 30)) -> "2024-10-22 02:30 PM"
    """
    if dt is None:
        return "N/A"

    if timezone:
        if dt.tzinfo is None:
            dt = dt.astimezone()  # attach the server's local zone
        dt = dt.astimezone(pytz.timezone(timezone))

    return dt.strftime(format_str)


def humanize_datetime(dt: Optional[datetime], now: Optional[datetime] = None) -> str:
    """
    Convert datetime to human-readable relative time.

    Examples:
        humanize_datetime(datetime.now() - timedelta(hours=2)) -> "2 hours ago"
    """
    if dt is None:
        return "N/A"

    if now is None:
        now = datetime.now(dt.tzinfo) if dt.tzinfo else datetime.now()
    return humanize.naturaltime(now - dt)


def format_called_at(called_at: Optional[datetime], now: Optional[datetime] = None) -> str:
    """
    Label for the "called today" indicator.

    Examples:
        format_called_at(None) -> ""
        format_called_at(datetime.now() - timedelta(minutes=5)) -> "Called 5 minutes ago"
    """
    if called_at is None:
        return ""
    return f"Called {humanize_datetime(called_at, now)}"


def format_phone(phone: Optional[str]) -> str:
    """
    Format a canonical phone number for display.

    Examples:
        format_phone("+16502530000") -> "(650) 253-0000"
        format_phone(None) -> "N/A"
    """
    if not phone:
        return "N/A"
    return format_display(phone)


def format_broadcast_time(local: Optional[str], et: Optional[str]) -> str:
    """
    Combine local and Eastern air times into one label.

    Examples:
        format_broadcast_time("3:00 PM", "4:00 PM") -> "3:00 PM local / 4:00 PM ET"
        format_broadcast_time("", "4:00 PM") -> "4:00 PM ET"
        format_broadcast_time("", "") -> "Time TBD"
    """
    local = (local or "").strip()
    et = (et or "").strip()

    if not local and not et:
        return "Time TBD"
    if not local:
        return f"{et} ET"
    if not et:
        return f"{local} local"
    return f"{local} local / {et} ET"


def format_market_number(number: int) -> str:
    """Market #12"""
    return f"Market #{number}"


def format_feed(feed: Optional[Feed]) -> str:
    """
    Examples:
        format_feed(Feed.THREE_PM) -> "3PM"
    """
    if feed is None:
        return "N/A"
    return Feed(feed).value.upper()


def format_status_badge(status: Optional[BroadcastStatus]) -> str:
    """
    Broadcast status with emoji prefix.

    Examples:
        format_status_badge(BroadcastStatus.LIVE) -> "🟢 LIVE"
        format_status_badge(None) -> ""
    """
    if status is None:
        return ""
    return STATUS_BADGES[BroadcastStatus(status)]


def extract_state_code(market_name: Optional[str]) -> Optional[str]:
    """
    Two-letter state at the end of a market name.

    Examples:
        extract_state_code("Dallas, TX") -> "TX"
        extract_state_code("Metropolis") -> None
    """
    match = re.search(r",\s*([A-Z]{2})$", (market_name or "").strip())
    return match.group(1) if match else None


def market_timezone(market_name: Optional[str]) -> Optional[str]:
    """IANA timezone for a market, if its state is known."""
    state = extract_state_code(market_name)
    return TIMEZONE_MAP.get(state) if state else None
