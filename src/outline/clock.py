"""LOGBOOK clock lines: parsing and formatting of timer intervals.

A clock entry is rendered as

    CLOCK: [2024-03-01 Fri 10:00]--[2024-03-01 Fri 11:00] =>  1:00
    :id: 10010
    :comment: Pairing on the login fix

The :id: line links the interval to a remote worklog; an entry without it is
provisional. Timestamps have minute resolution and are written in the
configured local zone.
"""

import logging
import re
from datetime import datetime, timedelta
from typing import List, Optional

from .models import ClockBlock, ClockEntry

logger = logging.getLogger(__name__)

TIMESTAMP_PATTERN = r'\[(\d{4}-\d{2}-\d{2})(?:[ \t]+[^\s\]\d]+)?[ \t]+(\d{1,2}:\d{2})\]'
CLOCK_PATTERN = re.compile(
    r'^[ \t]*CLOCK:[ \t]*' + TIMESTAMP_PATTERN +
    r'(?:--' + TIMESTAMP_PATTERN + r'(?:[ \t]*=>[ \t]*(-?\d+:\d{2}))?)?[ \t]*$'
)
ID_PATTERN = re.compile(r'^[ \t]*:id:[ \t]*(\S+)[ \t]*$', re.IGNORECASE)
COMMENT_PATTERN = re.compile(r'^[ \t]*:comment:(?:[ \t]+(.*?))?[ \t]*$', re.IGNORECASE)

DAY_NAMES = ('Mon', 'Tue', 'Wed', 'Thu', 'Fri', 'Sat', 'Sun')


def truncate_to_minute(value: datetime) -> datetime:
    return value.replace(second=0, microsecond=0)


def parse_timestamp(date_part: str, time_part: str, tz) -> datetime:
    """Build an aware datetime from the date and time groups of a timestamp."""
    naive = datetime.strptime(f"{date_part} {time_part}", "%Y-%m-%d %H:%M")
    return tz.localize(naive)


def format_timestamp(value: datetime, tz) -> str:
    """Render an inactive timestamp, e.g. [2024-03-01 Fri 10:00]."""
    local = value.astimezone(tz) if value.tzinfo is not None else value
    return f"[{local:%Y-%m-%d} {DAY_NAMES[local.weekday()]} {local:%H:%M}]"


def format_duration(seconds: int) -> str:
    """Render a duration as hours:minutes right-aligned, e.g. ' 1:30'."""
    minutes = int(seconds) // 60
    return "%2d:%02d" % (minutes // 60, minutes % 60)


def clock_line(start: datetime, end: Optional[datetime], tz) -> str:
    """Render the CLOCK: line for an interval at minute resolution."""
    start = truncate_to_minute(start)
    if end is None:
        return f"CLOCK: {format_timestamp(start, tz)}"
    end = truncate_to_minute(end)
    duration = int((end - start).total_seconds())
    return (
        f"CLOCK: {format_timestamp(start, tz)}--{format_timestamp(end, tz)}"
        f" => {format_duration(duration)}"
    )


def interval_line(start: datetime, duration_seconds: int, tz) -> str:
    """CLOCK: line for an interval given by start and duration."""
    return clock_line(start, start + timedelta(seconds=int(duration_seconds)), tz)


def escape_comment(text: str) -> str:
    return "\\n".join(text.strip().splitlines())


def unescape_comment(text: str) -> str:
    return text.replace("\\n", "\n")


def parse_clock_block(lines: List[str], tz) -> ClockBlock:
    """Split LOGBOOK lines into clock entries and untouched other lines.

    :id: and :comment: lines attach to the clock line directly above them.
    Anything else, including malformed clock lines, is kept in other_lines.
    """
    block = ClockBlock()
    current: Optional[ClockEntry] = None

    for line in lines:
        match = CLOCK_PATTERN.match(line)
        if match:
            try:
                start = parse_timestamp(match.group(1), match.group(2), tz)
                end = None
                if match.group(3):
                    end = parse_timestamp(match.group(3), match.group(4), tz)
            except ValueError:
                logger.warning(f"Skipping malformed clock line: {line.strip()!r}")
                block.other_lines.append(line)
                current = None
                continue
            current = ClockEntry(start=start, end=end)
            block.entries.append(current)
            continue

        if current is not None:
            id_match = ID_PATTERN.match(line)
            if id_match and current.worklog_id is None:
                current.worklog_id = id_match.group(1)
                continue
            comment_match = COMMENT_PATTERN.match(line)
            if comment_match and not current.comment:
                current.comment = unescape_comment(comment_match.group(1) or "")
                continue

        current = None
        block.other_lines.append(line)

    return block


def format_clock_entry(entry: ClockEntry, tz) -> List[str]:
    """Render one entry as its CLOCK: line plus optional :id: / :comment: lines."""
    lines = [clock_line(entry.start, entry.end, tz)]
    if entry.worklog_id is not None:
        lines.append(f":id: {entry.worklog_id}")
    if entry.comment and entry.comment.strip():
        lines.append(f":comment: {escape_comment(entry.comment)}")
    return lines
