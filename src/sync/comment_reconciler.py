"""Rendering of remote comments below their issue section."""

import logging
from typing import Iterable, List, Optional

from src.models.entities import Comment
from src.outline.document import OutlineDocument
from src.outline.models import Section

from .renderer import IdentityRenderer

logger = logging.getLogger(__name__)

CHRONOLOGICAL = "chronological"
REVERSE = "reverse"
COMMENT_ORDERS = (CHRONOLOGICAL, REVERSE)


class CommentReconciler:
    """Upserts comments as "Comment: <author>" children of an issue.

    Comments by ignored authors are never rendered. Comments that disappeared
    remotely are left in place; the rendered ones are kept in the configured
    order.
    """

    def __init__(
        self,
        renderer: IdentityRenderer,
        ignored_authors: Optional[Iterable[str]] = None,
        order: str = CHRONOLOGICAL,
    ):
        if order not in COMMENT_ORDERS:
            raise ValueError(f"Unknown comment order {order!r}, expected one of {COMMENT_ORDERS}")
        self.renderer = renderer
        self.ignored_authors = {a.strip().lower() for a in (ignored_authors or ()) if a.strip()}
        self.order = order

    def is_ignored(self, comment: Comment) -> bool:
        return (
            comment.author.lower() in self.ignored_authors
            or (bool(comment.author_id) and comment.author_id.lower() in self.ignored_authors)
        )

    def select(self, comments: Iterable[Comment]) -> List[Comment]:
        """Drop ignored authors and sort by creation time in the configured order."""
        kept = [c for c in comments if not self.is_ignored(c)]
        kept.sort(key=lambda c: c.created, reverse=(self.order == REVERSE))
        return kept

    def reconcile(
        self,
        document: OutlineDocument,
        issue_section: Section,
        comments: Iterable[Comment],
    ) -> List[str]:
        """Render comments under issue_section; returns the rendered comment ids."""
        selected = self.select(comments)
        for comment in selected:
            self.renderer.upsert(document, document.section_at(issue_section.start), comment)

        ordered = [c.id for c in selected]
        self._reorder(document, document.section_at(issue_section.start), ordered)
        logger.debug(f"Rendered {len(ordered)} comment(s) under {issue_section.headline!r}")
        return ordered

    def _reorder(
        self,
        document: OutlineDocument,
        issue_section: Section,
        ordered_ids: List[str],
    ) -> None:
        """Move rendered comment subtrees into ordered_ids order.

        The moved text is kept verbatim; other children stay where they are
        relative to the first comment.
        """
        wanted = set(ordered_ids)
        current = [
            (document.identity(child), child)
            for child in document.children(issue_section)
            if document.identity(child) in wanted
        ]
        if [identity for identity, _ in current] == [i for i in ordered_ids if i in dict(current)]:
            return

        texts = {}
        for identity, child in current:
            text = document.text[child.start:child.end]
            texts[identity] = text if text.endswith("\n") else text + "\n"
        anchor = current[0][1].start

        with document.edit_region(issue_section):
            for _, child in reversed(current):
                document.delete(child.start, child.end)
            document.insert(anchor, "".join(texts[i] for i in ordered_ids if i in texts))
        logger.debug("Reordered comment sections")
