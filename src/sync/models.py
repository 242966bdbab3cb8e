"""Data models for the sync engine.

This module defines the configuration and result types shared by the
renderer, the reconcilers, the search index and the engine. All models use
dataclasses for clean, type-safe data structures.
"""

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple


@dataclass
class SyncConfig:
    """Behavior options of a sync session.

    Attributes:
        working_dir: Directory holding the outline files
        default_jql: Query used by sync_issue_list() when none is given
        issue_limit: Maximum number of issues fetched per query
        project_files: Project key -> file name overrides (EX -> work.org)
        property_overrides: Canonical property name -> name written locally
        status_keywords: Status name -> headline keyword overrides
        priority_markers: Priority name -> priority cookie overrides
        ignored_comment_authors: Authors whose comments are never rendered
        comments_order: "chronological" or "reverse"
        legacy_mode: Payloads carry reference ids instead of nested names
        timezone: Zone name used for local timestamps and clock lines
        search_refresh_seconds: Index refresh period while a picker is open
        search_debounce_seconds: Delay between typing and filtering
    """
    working_dir: str = "."
    default_jql: str = "assignee = currentUser() AND resolution = Unresolved ORDER BY priority DESC, created ASC"
    issue_limit: int = 100
    project_files: Dict[str, str] = field(default_factory=dict)
    property_overrides: Dict[str, str] = field(default_factory=dict)
    status_keywords: Dict[str, str] = field(default_factory=dict)
    priority_markers: Dict[str, str] = field(default_factory=dict)
    ignored_comment_authors: List[str] = field(default_factory=list)
    comments_order: str = "chronological"
    legacy_mode: bool = False
    timezone: str = "UTC"
    search_refresh_seconds: float = 30.0
    search_debounce_seconds: float = 0.3


@dataclass(frozen=True)
class SectionLayout:
    """What the renderer writes into a section.

    Attributes:
        title: Complete headline text (keyword, cookie and title)
        properties: Canonical property name -> value; empty values are skipped
        body: Body text, None to leave the existing body untouched
    """
    title: str
    properties: Dict[str, str] = field(default_factory=dict)
    body: Optional[str] = None


@dataclass
class RenderReport:
    """Outcome of a batch render.

    Attributes:
        rendered: Identities rendered successfully
        failed: (identity, error message) for each entity that failed
        files: Files touched by the batch
    """
    rendered: List[str] = field(default_factory=list)
    failed: List[Tuple[str, str]] = field(default_factory=list)
    files: List[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failed

    def merge(self, other: "RenderReport") -> None:
        self.rendered.extend(other.rendered)
        self.failed.extend(other.failed)
        for path in other.files:
            if path not in self.files:
                self.files.append(path)


@dataclass
class WorklogReconcileResult:
    """Outcome of one worklog reconciliation pass for an issue.

    Attributes:
        issue_key: Issue that was reconciled
        updated: Worklog ids pushed with a new start / duration / comment
        created: Ids of worklogs created from provisional intervals
        adopted: Remote ids matched to provisional intervals without a call
        unchanged: Linked ids that needed no call
        failed: (description, error message) for each failed remote call
        entries: Number of clock entries written to the regenerated block
    """
    issue_key: str
    updated: List[str] = field(default_factory=list)
    created: List[str] = field(default_factory=list)
    adopted: List[str] = field(default_factory=list)
    unchanged: List[str] = field(default_factory=list)
    failed: List[Tuple[str, str]] = field(default_factory=list)
    entries: int = 0


@dataclass(frozen=True)
class SearchEntry:
    """One identity-bearing section as seen by the live search.

    Attributes:
        key: Identity of the section (issue key, comment id, ...)
        summary: Headline title without keyword, cookie or tags
        properties: Property drawer content at index time
        path: File holding the section
        position: Buffer offset at index time (may be stale, use key)
    """
    key: str
    summary: str
    properties: Dict[str, str]
    path: str
    position: int = 0

    @property
    def label(self) -> str:
        return f"{self.key} {self.summary}".strip()

    def matches(self, terms: List[str]) -> bool:
        haystack = self.label.lower()
        return all(term in haystack for term in terms)
