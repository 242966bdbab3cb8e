"""Data models for outline documents.

Sections and regions are plain snapshots of buffer offsets. They stay valid
until the next mutation of the document that precedes them; callers that
edit a document re-locate sections by identity afterwards.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional, Tuple


@dataclass(frozen=True)
class Region:
    """A half-open [start, end) range of buffer offsets."""
    start: int
    end: int

    @property
    def length(self) -> int:
        return self.end - self.start


@dataclass(frozen=True)
class DrawerRegion:
    """Location of a drawer (:NAME: ... :END:) inside a section.

    Attributes:
        name: Drawer name, e.g. "PROPERTIES" or "LOGBOOK"
        start: Offset of the opening :NAME: line
        content: Region between the opening and the :END: line
        end: Offset just after the :END: line
    """
    name: str
    start: int
    content: Region
    end: int


@dataclass(frozen=True)
class Section:
    """A headline and its subtree.

    Attributes:
        start: Offset of the headline's first star (the section's position)
        level: Number of stars
        headline: Headline text after the stars
        end: Offset where the subtree ends
    """
    start: int
    level: int
    headline: str
    end: int


@dataclass(frozen=True)
class HeadlineParts:
    """A headline split into keyword, priority cookie, title and tags."""
    keyword: str = ""
    priority: str = ""
    title: str = ""
    tags: Tuple[str, ...] = ()


@dataclass
class ClockEntry:
    """One timer interval of a LOGBOOK drawer.

    Attributes:
        start: Interval start (aware, minute precision)
        end: Interval end, None for a running clock
        worklog_id: Remote worklog id; None marks a provisional interval
        comment: Free-text note synced as the worklog comment
    """
    start: datetime
    end: Optional[datetime] = None
    worklog_id: Optional[str] = None
    comment: str = ""

    @property
    def is_running(self) -> bool:
        return self.end is None

    @property
    def is_provisional(self) -> bool:
        return self.worklog_id is None

    @property
    def duration_seconds(self) -> int:
        if self.end is None:
            return 0
        return int((self.end - self.start).total_seconds())


@dataclass
class ClockBlock:
    """Parsed LOGBOOK content: clock entries plus lines that are not clocks."""
    entries: List[ClockEntry] = field(default_factory=list)
    other_lines: List[str] = field(default_factory=list)


@dataclass(frozen=True)
class SectionSnapshot:
    """Identity, title and properties of a section, detached from its buffer."""
    identity: str
    title: str
    properties: Dict[str, str]
    position: int
    level: int
