"""Sync session: the context object passed to every engine operation.

A session bundles the remote endpoint, the document store of the working
directory, the normalizer, the event loop and the per-session caches. Two
sessions never share state, so tests and concurrent CLI invocations cannot
interfere with each other.
"""

import logging
from typing import Any, Dict, Optional, Set

from src.jira_client.api_wrapper import APIWrapper
from src.jira_client.auth import Authenticator
from src.jira_client.dispatcher import EventLoop
from src.models.entities import Issue
from src.models.normalizer import FieldNormalizer, ReferenceLists
from src.outline.store import DocumentStore

from .models import SyncConfig

logger = logging.getLogger(__name__)


class SyncSession:
    """State of one sync session.

    Attributes:
        api: Remote adapter
        store: Documents of the working directory
        config: Behavior options
        normalizer: Field normalizer configured from config
        loop: Event loop on which asynchronous continuations run
        cache: Issues decoded during this session, by key
        in_flight: Keys of issues with an unfinished sync pass
        closed: True once close() was called; late continuations are no-ops
    """

    def __init__(
        self,
        api: APIWrapper,
        store: DocumentStore,
        config: SyncConfig,
        loop: Optional[EventLoop] = None,
        normalizer: Optional[FieldNormalizer] = None,
    ):
        self.api = api
        self.store = store
        self.config = config
        self.loop = loop or api.loop or EventLoop()
        self.api.loop = self.loop
        self.normalizer = normalizer or FieldNormalizer(
            legacy_mode=config.legacy_mode,
            timezone=config.timezone,
            status_keywords=config.status_keywords,
            priority_markers=config.priority_markers,
        )
        self.cache: Dict[str, Issue] = {}
        self.in_flight: Set[str] = set()
        self.closed = False
        self._references_loaded = False

    @classmethod
    def from_config(
        cls,
        config: SyncConfig,
        authenticator: Optional[Authenticator] = None,
    ) -> "SyncSession":
        """Build a session talking to the Jira instance from the environment."""
        loop = EventLoop()
        api = APIWrapper(authenticator or Authenticator(), loop=loop)
        store = DocumentStore(
            config.working_dir,
            project_files=config.project_files,
            todo_keywords=config.status_keywords.values(),
        )
        return cls(api, store, config, loop=loop)

    def begin(self, issue_key: str) -> bool:
        """Mark an issue as in flight; False if a pass for it is still running."""
        if issue_key in self.in_flight:
            logger.warning(f"Sync of {issue_key} already in progress, skipping")
            return False
        self.in_flight.add(issue_key)
        return True

    def end(self, issue_key: str) -> None:
        self.in_flight.discard(issue_key)

    def ensure_references(self) -> None:
        """Fetch the reference lists once per session when in legacy mode."""
        if not self.normalizer.legacy_mode or self._references_loaded:
            return
        logger.info("Fetching reference lists for legacy payloads")
        self.normalizer.references = ReferenceLists.from_payload(self.api.get_reference_lists())
        self._references_loaded = True

    def close(self) -> None:
        """End the session; pending continuations become no-ops."""
        self.closed = True
        self.loop.shutdown()

    def __enter__(self) -> "SyncSession":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()
