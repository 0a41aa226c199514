from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta

_EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")


def clean(value: object) -> str | None:
    """Strip a form value; empty → None."""
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def is_valid_email(value: str | None) -> bool:
    return bool(value and _EMAIL_RE.match(value))


def parse_date(s: str | None) -> date | None:
    """Parse YYYY-MM-DD; blank → None. Raises ValueError on bad input."""
    s = (s or "").strip()
    if not s:
        return None
    return date.fromisoformat(s)


def parse_due(date_str: str | None, time_str: str | None = None) -> datetime | None:
    """Combine a YYYY-MM-DD date and optional HH:MM time into a naive datetime."""
    d = parse_date(date_str)
    if d is None:
        return None
    t = (time_str or "").strip()
    if not t:
        return datetime.combine(d, time.min)
    return datetime.combine(d, time.fromisoformat(t))


def start_of_today(now: datetime | None = None) -> datetime:
    now = now or datetime.utcnow()
    return datetime.combine(now.date(), time.min)


def format_distance(delta: timedelta) -> str:
    """Rough human distance ("5 minutes", "about 3 hours", "2 days")."""
    seconds = abs(delta.total_seconds())
    minutes = round(seconds / 60)
    if minutes < 1:
        return "less than a minute"
    if minutes < 45:
        return f"{minutes} minute{'s' if minutes != 1 else ''}"
    hours = round(minutes / 60)
    if hours < 24:
        return f"about {hours} hour{'s' if hours != 1 else ''}"
    days = round(hours / 24)
    if days < 30:
        return f"{days} day{'s' if days != 1 else ''}"
    months = round(days / 30)
    if months < 12:
        return f"about {months} month{'s' if months != 1 else ''}"
    years = round(days / 365)
    return f"about {years} year{'s' if years != 1 else ''}"


@dataclass(frozen=True)
class TimeStatus:
    label: str
    is_overdue: bool
    is_due_soon: bool  # within 24 hours
    css_class: str


def time_status(due: datetime | None, now: datetime | None = None) -> TimeStatus:
    if due is None:
        return TimeStatus("No Due Date", False, False, "muted")

    now = now or datetime.utcnow()
    if due < now:
        return TimeStatus(f"Overdue by {format_distance(now - due)}", True, False, "overdue")

    remaining = due - now
    if remaining < timedelta(hours=24):
        return TimeStatus(f"Due in {format_distance(remaining)}", False, True, "due-soon")

    return TimeStatus(f"Due in {remaining.days} days", False, False, "normal")
