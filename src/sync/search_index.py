"""Live search over the identity-bearing sections of the working directory.

SearchIndex is a flat list of entries rebuilt from the outline files.
SearchPicker is one interactive search session on the EventLoop: while it is
open the index is refreshed on a periodic timer, typed input is debounced,
and a query that extends the previous one only filters the previous result
set. Timers are cancelled on close(); anything that fires afterwards is a
no-op.
"""

import logging
from typing import Callable, List, Optional, Tuple

from src.jira_client.dispatcher import EventLoop, TimerHandle
from src.outline.document import OutlineDocument
from src.outline.models import Section
from src.outline.store import DocumentStore

from .models import SearchEntry

logger = logging.getLogger(__name__)

ResultsListener = Callable[[List[SearchEntry]], None]


class SearchIndex:
    """Flattened (identity, summary, properties) list of every outline file."""

    def __init__(self, store: DocumentStore):
        self.store = store
        self._entries: List[SearchEntry] = []
        self.generation = 0

    def rebuild(self) -> List[SearchEntry]:
        """Rescan all outline files of the working directory."""
        entries: List[SearchEntry] = []
        for document in self.store.documents():
            entries.extend(self._scan(document))
        self._entries = entries
        self.generation += 1
        logger.debug(f"Search index rebuilt with {len(entries)} entries")
        return list(entries)

    def _scan(self, document: OutlineDocument) -> List[SearchEntry]:
        entries = []
        for section in document.sections():
            if document.identity(section) is None:
                continue
            snapshot = document.snapshot(section)
            entries.append(SearchEntry(
                key=snapshot.identity,
                summary=snapshot.title,
                properties=snapshot.properties,
                path=document.path or "",
                position=snapshot.position,
            ))
        return entries

    def snapshot(self) -> List[SearchEntry]:
        return list(self._entries)

    def search(self, query: str, within: Optional[List[SearchEntry]] = None) -> List[SearchEntry]:
        """Entries whose key and summary contain every word of query (case-insensitive)."""
        terms = query.lower().split()
        base = self._entries if within is None else within
        return [entry for entry in base if entry.matches(terms)]

    def locate(self, entry: SearchEntry) -> Tuple[OutlineDocument, Section]:
        """Resolve an entry back to its section, by identity.

        Raises:
            IdentityNotFoundError: If the section disappeared since indexing
        """
        document = self.store.open(entry.path)
        return document, document.require_identity(entry.key)


class SearchPicker:
    """An interactive, incrementally narrowing search session.

    Example:
        >>> picker = SearchPicker(index, loop, on_results=show)
        >>> picker.open()
        >>> picker.type("EX-1")
        >>> loop.run_pending()
        >>> document, section = picker.select(0)
    """

    def __init__(
        self,
        index: SearchIndex,
        loop: EventLoop,
        refresh_seconds: float = 30.0,
        debounce_seconds: float = 0.3,
        on_results: Optional[ResultsListener] = None,
    ):
        self.index = index
        self.loop = loop
        self.refresh_seconds = refresh_seconds
        self.debounce_seconds = debounce_seconds
        self.on_results = on_results
        self.query = ""
        self.results: List[SearchEntry] = []
        self.is_open = False
        self._applied_query: Optional[str] = None
        self._refresh_timer: Optional[TimerHandle] = None
        self._debounce_timer: Optional[TimerHandle] = None

    def open(self) -> List[SearchEntry]:
        """Start the session: rebuild the index and schedule periodic refreshes."""
        if self.is_open:
            return self.results
        self.is_open = True
        self.index.rebuild()
        self._refresh_timer = self.loop.call_every(self.refresh_seconds, self._on_refresh)
        self._applied_query = None
        self._apply()
        return self.results

    def close(self) -> None:
        """End the session and cancel its timers."""
        self.is_open = False
        for timer in (self._refresh_timer, self._debounce_timer):
            if timer is not None:
                timer.cancel()
        self._refresh_timer = None
        self._debounce_timer = None

    def __enter__(self) -> "SearchPicker":
        self.open()
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def type(self, query: str) -> None:
        """Set the query text; results are filtered after the debounce delay."""
        if not self.is_open:
            return
        self.query = query
        if self._debounce_timer is not None:
            self._debounce_timer.cancel()
        self._debounce_timer = self.loop.call_later(self.debounce_seconds, self._on_debounce)

    def _on_debounce(self) -> None:
        self._debounce_timer = None
        if not self.is_open:
            return
        self._apply()

    def _on_refresh(self) -> None:
        if not self.is_open:
            return
        self.index.rebuild()
        self.index_changed()

    def index_changed(self) -> None:
        """Re-filter from the full index, e.g. after a render pass rebuilt it."""
        if not self.is_open:
            return
        self._applied_query = None
        self._apply()

    def _apply(self) -> None:
        previous = self._applied_query
        if previous is not None and self.query.lower().startswith(previous.lower()):
            within = self.results
        else:
            within = None
        self.results = self.index.search(self.query, within=within)
        self._applied_query = self.query
        if self.on_results is not None:
            self.on_results(list(self.results))

    def select(self, choice: int = 0) -> Tuple[OutlineDocument, Section]:
        """Resolve result number choice to its section and end the session.

        Raises:
            IndexError: If there is no such result
            IdentityNotFoundError: If the section disappeared since indexing
        """
        entry = self.results[choice]
        try:
            return self.index.locate(entry)
        finally:
            self.close()
