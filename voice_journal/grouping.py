"""Date bucketing and display labels for journal entries."""

from __future__ import annotations

import datetime as dt
from typing import Dict, Iterable, List, Optional, Tuple

from .models import Entry

TODAY = "Today"
YESTERDAY = "Yesterday"


def entry_date(entry: Entry) -> dt.date:
    """Local calendar date an entry was created on."""
    return dt.datetime.fromtimestamp(entry.created_at / 1000).date()


def format_date(day: dt.date) -> str:
    """Weekday, month and day in the current locale, e.g. 'Monday, October 19'."""
    return f"{day:%A}, {day:%B} {day.day}"


def group_key(entry: Entry, today: Optional[dt.date] = None) -> str:
    """Label an entry relative to ``today`` (the current local date by default).

    Keys are computed at call time, so an entry created late in the evening
    moves from "Today" to "Yesterday" once the date rolls over.
    """
    today = today or dt.date.today()
    day = entry_date(entry)
    if day == today:
        return TODAY
    if day == today - dt.timedelta(days=1):
        return YESTERDAY
    return format_date(day)


def bucket(entries: Iterable[Entry], now: Optional[dt.datetime] = None) -> List[Tuple[str, List[Entry]]]:
    """Group entries (newest first) under their date labels.

    Groups keep first-occurrence order and each key appears once, so for
    input sorted by ``created_at`` descending the groups run from the most
    recent date to the oldest and concatenating them gives back the input.
    """
    today = (now or dt.datetime.now()).date()
    groups: Dict[str, List[Entry]] = {}
    for entry in entries:
        groups.setdefault(group_key(entry, today), []).append(entry)
    return list(groups.items())


def format_entry_time(entry: Entry) -> str:
    """Short clock time for an entry, e.g. '9:05 AM'."""
    moment = dt.datetime.fromtimestamp(entry.created_at / 1000)
    hour = moment.hour % 12 or 12
    return f"{hour}:{moment:%M} {moment:%p}"


def format_duration(seconds: int) -> str:
    """Recording timer label, e.g. '1:05'."""
    minutes, secs = divmod(max(int(seconds), 0), 60)
    return f"{minutes}:{secs:02d}"
