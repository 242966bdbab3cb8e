"""Domain entities decoded from Jira payloads.

Every entity is an immutable snapshot of one remote record at fetch time.
The from_payload() constructors accept the heterogeneous shapes Jira returns
(REST v2 objects, legacy flat records) and normalize them through the path
resolver and the FieldNormalizer.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from .normalizer import FieldNormalizer
from .payload import lookup, lookup_first


def plain_text(value: Any) -> str:
    """Flatten a body that may be a string or an Atlassian document (ADF)."""
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    if isinstance(value, list):
        return "".join(plain_text(v) for v in value)
    if isinstance(value, dict):
        if value.get('type') == 'text':
            return str(value.get('text', ''))
        text = plain_text(value.get('content'))
        if value.get('type') in ('paragraph', 'heading', 'listItem'):
            text += "\n"
        return text
    return str(value)


def _names(values: Any) -> Tuple[str, ...]:
    """Extract display names from a list of strings or {"name": ...} objects."""
    names: List[str] = []
    for value in values or []:
        if isinstance(value, dict):
            name = value.get('name') or value.get('value')
        else:
            name = value
        if name:
            names.append(str(name))
    return tuple(names)


@dataclass(frozen=True)
class Project:
    key: str
    id: str = ""
    name: str = ""
    lead: str = ""
    description: str = ""
    url: str = ""

    @property
    def identity(self) -> str:
        return self.key

    @classmethod
    def from_payload(cls, raw: Dict[str, Any]) -> "Project":
        return cls(
            key=str(lookup(raw, 'key')),
            id=str(lookup(raw, 'id')),
            name=str(lookup(raw, 'name')),
            lead=str(lookup_first(raw, ['lead.displayName', 'lead.name', 'lead'])),
            description=plain_text(lookup(raw, 'description', None)),
            url=str(lookup(raw, 'self')),
        )

    def properties(self) -> Dict[str, str]:
        return {
            'key': self.key,
            'name': self.name,
            'lead': self.lead,
            'url': self.url,
        }


@dataclass(frozen=True)
class Issue:
    """A Jira issue; its identity key is the project-scoped key (EX-12)."""
    key: str
    id: str = ""
    status: str = ""
    issue_type: str = ""
    priority: str = ""
    assignee: str = ""
    reporter: str = ""
    summary: str = ""
    description: str = ""
    labels: Tuple[str, ...] = ()
    components: Tuple[str, ...] = ()
    created: str = ""
    updated: str = ""
    due_date: str = ""
    project_key: str = ""
    filename: str = ""
    resolution: str = ""

    @property
    def identity(self) -> str:
        return self.key

    @classmethod
    def from_payload(
        cls,
        raw: Dict[str, Any],
        normalizer: FieldNormalizer,
        filename: str = "",
    ) -> "Issue":
        key = str(lookup(raw, 'key'))
        project_key = str(lookup_first(raw, ['fields.project.key', 'project']))
        if not project_key and '-' in key:
            project_key = key.rsplit('-', 1)[0]
        return cls(
            key=key,
            id=str(lookup(raw, 'id')),
            status=normalizer.status(raw),
            issue_type=normalizer.issue_type(raw),
            priority=normalizer.priority(raw),
            assignee=str(lookup_first(raw, [
                'fields.assignee.displayName', 'fields.assignee.name', 'assignee'
            ])),
            reporter=str(lookup_first(raw, [
                'fields.reporter.displayName', 'fields.reporter.name', 'reporter'
            ])),
            summary=str(lookup_first(raw, ['fields.summary', 'summary'])).strip(),
            description=plain_text(
                lookup_first(raw, ['fields.description', 'description'], None)
            ).strip(),
            labels=_names(lookup_first(raw, ['fields.labels', 'labels'], [])),
            components=_names(lookup_first(raw, ['fields.components', 'components'], [])),
            created=normalizer.to_local(lookup_first(raw, ['fields.created', 'created'])),
            updated=normalizer.to_local(lookup_first(raw, ['fields.updated', 'updated'])),
            due_date=str(lookup_first(raw, ['fields.duedate', 'duedate'])),
            project_key=project_key,
            filename=filename,
            resolution=normalizer.resolution(raw),
        )

    def properties(self) -> Dict[str, str]:
        """Scalar properties rendered into the issue's property drawer."""
        return {
            'assignee': self.assignee,
            'filename': self.filename,
            'reporter': self.reporter,
            'type': self.issue_type,
            'priority': self.priority,
            'labels': ", ".join(self.labels),
            'components': ", ".join(self.components),
            'created': self.created,
            'updated': self.updated,
            'status': self.status,
            'resolution': self.resolution,
            'duedate': self.due_date,
        }


@dataclass(frozen=True)
class Comment:
    id: str
    author: str = ""
    body: str = ""
    created: str = ""
    updated: str = ""
    issue_key: str = ""
    author_id: str = ""

    @property
    def identity(self) -> str:
        return self.id

    @classmethod
    def from_payload(
        cls,
        raw: Dict[str, Any],
        normalizer: FieldNormalizer,
        issue_key: str,
    ) -> "Comment":
        return cls(
            id=str(lookup(raw, 'id')),
            author=str(lookup_first(raw, ['author.displayName', 'author.name', 'author'])),
            author_id=str(lookup_first(raw, ['author.accountId', 'author.key', 'author.name'])),
            body=plain_text(lookup(raw, 'body', None)).strip(),
            created=normalizer.to_local(lookup(raw, 'created')),
            updated=normalizer.to_local(lookup(raw, 'updated')),
            issue_key=issue_key,
        )

    def properties(self) -> Dict[str, str]:
        return {
            'author': self.author,
            'created': self.created,
            'updated': self.updated,
        }


@dataclass(frozen=True)
class Worklog:
    """A work-time record. A None id marks a provisional local interval."""
    id: Optional[str]
    started: datetime
    duration_seconds: int
    comment: str = ""
    issue_key: str = ""
    author: str = ""

    @property
    def identity(self) -> Optional[str]:
        return self.id

    @classmethod
    def from_payload(
        cls,
        raw: Dict[str, Any],
        normalizer: FieldNormalizer,
        issue_key: str,
    ) -> "Worklog":
        started = normalizer.parse_remote(str(lookup(raw, 'started')))
        if started is None:
            raise ValueError(f"Worklog {lookup(raw, 'id')!r} has no valid start time")
        worklog_id = lookup(raw, 'id', None)
        return cls(
            id=str(worklog_id) if worklog_id not in (None, "") else None,
            started=normalizer.localize(started),
            duration_seconds=int(lookup(raw, 'timeSpentSeconds', 0) or 0),
            comment=plain_text(lookup(raw, 'comment', None)).strip(),
            issue_key=issue_key,
            author=str(lookup_first(raw, ['author.displayName', 'author.name'])),
        )


@dataclass(frozen=True)
class Board:
    id: str
    name: str = ""
    board_type: str = ""
    jql: str = ""
    limit: Optional[int] = None

    @property
    def identity(self) -> str:
        return self.id

    @classmethod
    def from_payload(cls, raw: Dict[str, Any]) -> "Board":
        limit = lookup(raw, 'limit', None)
        return cls(
            id=str(lookup(raw, 'id')),
            name=str(lookup(raw, 'name')),
            board_type=str(lookup(raw, 'type')),
            jql=str(lookup(raw, 'jql')),
            limit=int(limit) if limit not in (None, "") else None,
        )

    def properties(self) -> Dict[str, str]:
        return {
            'name': self.name,
            'type': self.board_type,
            'jql': self.jql,
            'limit': str(self.limit) if self.limit else "",
        }


@dataclass(frozen=True)
class Attachment:
    id: str
    filename: str = ""
    author: str = ""
    created: str = ""
    size: int = 0
    content_url: str = ""
    issue_key: str = ""

    @property
    def identity(self) -> str:
        return self.id

    @classmethod
    def from_payload(
        cls,
        raw: Dict[str, Any],
        normalizer: FieldNormalizer,
        issue_key: str,
    ) -> "Attachment":
        return cls(
            id=str(lookup(raw, 'id')),
            filename=str(lookup(raw, 'filename')),
            author=str(lookup_first(raw, ['author.displayName', 'author.name'])),
            created=normalizer.to_local(lookup(raw, 'created')),
            size=int(lookup(raw, 'size', 0) or 0),
            content_url=str(lookup(raw, 'content')),
            issue_key=issue_key,
        )

    def properties(self) -> Dict[str, str]:
        return {
            'author': self.author,
            'created': self.created,
            'size': str(self.size) if self.size else "",
            'url': self.content_url,
        }


@dataclass
class EntityBatch:
    """Issues decoded from one query, plus the payloads that failed to decode."""
    issues: List[Issue] = field(default_factory=list)
    failed: List[Tuple[str, str]] = field(default_factory=list)
