from datetime import datetime, timedelta, timezone
from typing import Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError
import logging

from shared.config import BOT_TIMEZONE

logger = logging.getLogger(__name__)

# --- Internal override for testing ---
_current_time_override: Optional[datetime] = None


def bot_tz() -> ZoneInfo | timezone:
    try:
        return ZoneInfo(BOT_TIMEZONE)
    except ZoneInfoNotFoundError:
        logger.warning("Timezone %s not found. Using UTC fallback.", BOT_TIMEZONE)
        return timezone.utc


# === Time Access ===

def utcnow() -> datetime:
    return _current_time_override or datetime.now(timezone.utc)


def utcnow_iso() -> str:
    return utcnow().isoformat()


def local_now() -> datetime:
    return utcnow().astimezone(bot_tz())


def set_fake_utcnow(fake_time: datetime) -> None:
    global _current_time_override
    _current_time_override = fake_time


def clear_fake_utcnow() -> None:
    global _current_time_override
    _current_time_override = None

# === Time Parsing ===

def parse_datetime(value: str) -> datetime:
    """Parse an ISO-8601 string. Supports trailing 'Z'. Returns a datetime; no timezone normalization here."""
    s = value.strip()
    if s.endswith("Z"):
        s = s[:-1] + "+00:00"
    return datetime.fromisoformat(s)


def parse_iso_utc(value: Optional[str]) -> Optional[datetime]:
    """Lenient ISO parse to aware UTC. Naive values are taken as UTC, garbage gives None."""
    if not value:
        return None
    try:
        dt = parse_datetime(value)
    except (ValueError, AttributeError):
        return None
    if dt.tzinfo is None or dt.tzinfo.utcoffset(dt) is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)

# === Calendar helpers ===

def local_date_str(days_offset: int = 0) -> str:
    """YYYY-MM-DD of today (+ offset) in the bot timezone."""
    return (local_now() + timedelta(days=days_offset)).date().isoformat()


def split_injection_date(value: str) -> tuple[str, str]:
    """
    "2025-01-09T14:30:00" -> ("09.01.2025", "14:30")
    Date-only values get the clinic default time 09:00.
    """
    day, _, rest = value.partition("T")
    clock = rest[:5] if rest else "09:00"
    try:
        d = datetime.strptime(day, "%Y-%m-%d")
        shown = d.strftime("%d.%m.%Y")
    except ValueError:
        shown = day
    return shown, clock


def seconds_until(hour: int, minute: int) -> float:
    """Seconds until the next HH:MM wall-clock time in the bot timezone."""
    now_local = local_now()
    target = now_local.replace(hour=hour, minute=minute, second=0, microsecond=0)
    if target <= now_local:
        target += timedelta(days=1)
    return (target - now_local).total_seconds()
