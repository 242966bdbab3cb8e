"""Field normalization between Jira payloads and the local outline.

FieldNormalizer reads the fields that need more than a plain path lookup:
reference fields (status, issue type, priority, resolution) and timestamps.
It also derives the headline decorations (TODO keyword, priority cookie)
used by the renderer.

Conversion failures are never fatal: the original string is returned and a
warning is logged.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

import pytz

from .payload import lookup, lookup_first

logger = logging.getLogger(__name__)

# Local, human-readable timestamp form used for properties
LOCAL_TIME_FORMAT = "%Y-%m-%d %H:%M:%S"

# Jira timestamp form, e.g. 2024-03-01T10:00:00.000+0000
REMOTE_TIME_FORMAT = "%Y-%m-%dT%H:%M:%S.%f%z"
REMOTE_OUTPUT_FORMAT = "%Y-%m-%dT%H:%M:%S.000%z"

DEFAULT_PRIORITY_MARKERS: Dict[str, str] = {
    "Highest": "A",
    "Blocker": "A",
    "Critical": "A",
    "High": "A",
    "Medium": "B",
    "Major": "B",
    "Low": "C",
    "Minor": "C",
    "Lowest": "C",
    "Trivial": "C",
}

REFERENCE_FIELDS = ('status', 'issuetype', 'priority', 'resolution')


@dataclass
class ReferenceLists:
    """Id-to-name tables used to decode legacy payloads.

    Attributes:
        statuses: Status id -> status name
        issue_types: Issue type id -> type name
        priorities: Priority id -> priority name
        resolutions: Resolution id -> resolution name
    """
    statuses: Dict[str, str] = field(default_factory=dict)
    issue_types: Dict[str, str] = field(default_factory=dict)
    priorities: Dict[str, str] = field(default_factory=dict)
    resolutions: Dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_payload(cls, raw: Dict[str, List[Dict[str, Any]]]) -> "ReferenceLists":
        """Build from the result of APIWrapper.get_reference_lists()."""
        def table(name: str) -> Dict[str, str]:
            return {
                str(item.get('id')): str(item.get('name', ''))
                for item in raw.get(name, []) or []
                if isinstance(item, dict) and item.get('id') is not None
            }

        return cls(
            statuses=table('statuses'),
            issue_types=table('issue_types'),
            priorities=table('priorities'),
            resolutions=table('resolutions'),
        )

    def table_for(self, field_name: str) -> Dict[str, str]:
        return {
            'status': self.statuses,
            'issuetype': self.issue_types,
            'priority': self.priorities,
            'resolution': self.resolutions,
        }[field_name]


class FieldNormalizer:
    """Reads reference and time fields in a transport-independent way.

    Example:
        >>> normalizer = FieldNormalizer(timezone="Europe/Berlin")
        >>> normalizer.to_local("2024-03-01T10:00:00.000+0000")
        '2024-03-01 11:00:00'
    """

    def __init__(
        self,
        legacy_mode: bool = False,
        references: Optional[ReferenceLists] = None,
        timezone: str = "UTC",
        status_keywords: Optional[Dict[str, str]] = None,
        priority_markers: Optional[Dict[str, str]] = None,
    ):
        """Initialize the normalizer.

        Args:
            legacy_mode: Payloads carry reference ids instead of nested names
            references: Reference tables used in legacy mode
            timezone: Zone name used for local timestamps
            status_keywords: Status name -> headline keyword overrides
            priority_markers: Priority name -> cookie letter overrides
        """
        self.legacy_mode = legacy_mode
        self.references = references or ReferenceLists()
        self.tz = pytz.timezone(timezone)
        self.status_keywords = dict(status_keywords or {})
        self.priority_markers = {**DEFAULT_PRIORITY_MARKERS, **(priority_markers or {})}

    # ------------------------------------------------------- reference fields

    def reference_field(self, raw: Any, field_name: str) -> str:
        """Read status / issuetype / priority / resolution as a display name."""
        if not self.legacy_mode:
            return str(lookup(raw, f"fields.{field_name}.name"))

        value = lookup_first(raw, [field_name, f"fields.{field_name}"])
        if isinstance(value, dict):
            if value.get('name'):
                return str(value['name'])
            value = value.get('id', '')
        if value in ("", None):
            return ""
        table = self.references.table_for(field_name)
        name = table.get(str(value))
        if name is None:
            logger.debug(f"No {field_name} reference entry for id {value!r}")
            return str(value)
        return name

    def status(self, raw: Any) -> str:
        return self.reference_field(raw, 'status')

    def issue_type(self, raw: Any) -> str:
        return self.reference_field(raw, 'issuetype')

    def priority(self, raw: Any) -> str:
        return self.reference_field(raw, 'priority')

    def resolution(self, raw: Any) -> str:
        return self.reference_field(raw, 'resolution')

    # ----------------------------------------------------- headline decorations

    def status_keyword(self, status: str) -> str:
        """Map a status name to a headline keyword ("In Progress" -> "IN-PROGRESS")."""
        if not status:
            return ""
        if status in self.status_keywords:
            return self.status_keywords[status]
        return "-".join(status.upper().split())

    def priority_marker(self, priority: str) -> str:
        """Map a priority name to a cookie letter, "" when unknown."""
        if not priority:
            return ""
        return self.priority_markers.get(priority, "")

    # --------------------------------------------------------------- timestamps

    def parse_remote(self, value: str) -> Optional[datetime]:
        """Parse a Jira timestamp into an aware datetime, None on failure."""
        if not value:
            return None
        text = str(value).strip()
        if text.endswith('Z'):
            text = text[:-1] + '+0000'
        for fmt in (REMOTE_TIME_FORMAT, "%Y-%m-%dT%H:%M:%S%z"):
            try:
                return datetime.strptime(text, fmt)
            except ValueError:
                continue
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            return None
        if parsed.tzinfo is None:
            parsed = pytz.utc.localize(parsed)
        return parsed

    def parse_local(self, value: str) -> Optional[datetime]:
        """Parse a local timestamp ("2024-03-01 11:00:00") into an aware datetime."""
        if not value:
            return None
        try:
            naive = datetime.strptime(str(value).strip(), LOCAL_TIME_FORMAT)
        except ValueError:
            return None
        return self.tz.localize(naive)

    def localize(self, value: datetime) -> datetime:
        """Express an aware datetime in the configured zone (naive is taken as local)."""
        if value.tzinfo is None:
            return self.tz.localize(value)
        return value.astimezone(self.tz)

    def to_local(self, value: str) -> str:
        """Convert a Jira timestamp to the local form, or return it unchanged."""
        if not value:
            return ""
        parsed = self.parse_remote(value)
        if parsed is None:
            logger.warning(f"Could not convert remote timestamp {value!r}; keeping original")
            return str(value)
        return parsed.astimezone(self.tz).strftime(LOCAL_TIME_FORMAT)

    def to_remote(self, value: str) -> str:
        """Convert a local timestamp to the Jira form, or return it unchanged."""
        if not value:
            return ""
        parsed = self.parse_local(value)
        if parsed is None:
            logger.warning(f"Could not convert local timestamp {value!r}; keeping original")
            return str(value)
        return parsed.strftime(REMOTE_OUTPUT_FORMAT)
