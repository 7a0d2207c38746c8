"""Display helpers shared by the analyzers and report renderers."""
from datetime import date, datetime, time, timedelta
from typing import Optional, Tuple
from zoneinfo import ZoneInfo

from scripts.lib.config import MESSAGE_PREVIEW_CHARS, REPORT_TIMEZONE


def format_duration(ms: float) -> str:
    """Render milliseconds as `Hh Mm Ss` (hours wrap at 24)."""
    seconds = int((ms / 1000) % 60)
    minutes = int((ms / (1000 * 60)) % 60)
    hours = int((ms / (1000 * 60 * 60)) % 24)
    return f"{hours}h {minutes}m {seconds}s"


def format_local_datetime(dt: Optional[datetime], tz: str = REPORT_TIMEZONE) -> str:
    """`dd/mm/yyyy, HH:MM:SS` in the report time zone."""
    if dt is None:
        return ""
    return dt.astimezone(ZoneInfo(tz)).strftime("%d/%m/%Y, %H:%M:%S")


def format_minutes(ms: float) -> str:
    return f"{ms / 1000 / 60:.2f}"


def truncate(text: Optional[str], limit: int = MESSAGE_PREVIEW_CHARS) -> str:
    if not text:
        return ""
    return text[:limit] + ("..." if len(text) > limit else "")


def short_date(dt: datetime) -> str:
    """`DD/MM`, the form campaign names carry their launch date in."""
    return dt.strftime("%d/%m")


def local_today(tz: str = REPORT_TIMEZONE) -> date:
    return datetime.now(ZoneInfo(tz)).date()


def local_day_bounds(day: date, tz: str = REPORT_TIMEZONE) -> Tuple[datetime, datetime]:
    """[start, end) of *day* in the report time zone, as aware datetimes."""
    zone = ZoneInfo(tz)
    start = datetime.combine(day, time.min, tzinfo=zone)
    return start, start + timedelta(days=1)
