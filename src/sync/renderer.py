"""Identity-based rendering of entities into outline sections.

Every rendered entity owns exactly one section, found again on the next
render through its identity property. Rendering the same entity twice
rewrites that section in place: the headline, the non-empty properties and
the body are replaced, children and user tags are kept.
"""

import logging
from typing import Any, Dict, Iterable, Optional

from src.models.entities import Attachment, Board, Comment, Issue, Project
from src.models.normalizer import FieldNormalizer
from src.outline.document import IDENTITY_PROPERTIES, OutlineDocument
from src.outline.models import HeadlineParts, Section

from .models import SectionLayout

logger = logging.getLogger(__name__)

PROJECT_HEADING_SUFFIX = "-Tickets"
ATTACHMENTS_TITLE = "Attachments"
ATTACHMENTS_SUFFIX = "-attachments"


def project_heading_title(project_key: str) -> str:
    return f"{project_key}{PROJECT_HEADING_SUFFIX}"


def attachments_identity(issue_key: str) -> str:
    return f"{issue_key}{ATTACHMENTS_SUFFIX}"


class IdentityRenderer:
    """Upserts entities into outline documents by identity.

    Attributes:
        normalizer: Supplies headline keywords and priority cookies
        property_overrides: Canonical property name -> locally used name

    Example:
        >>> renderer = IdentityRenderer(FieldNormalizer())
        >>> project = renderer.ensure_project_heading(doc, "EX")
        >>> section = renderer.upsert(doc, project, issue)
    """

    def __init__(
        self,
        normalizer: FieldNormalizer,
        property_overrides: Optional[Dict[str, str]] = None,
    ):
        self.normalizer = normalizer
        self.property_overrides = dict(property_overrides or {})

    def property_name(self, name: str) -> str:
        """Local name for a canonical property; identity names are never remapped."""
        if name.upper() in IDENTITY_PROPERTIES:
            return name
        return self.property_overrides.get(name, name)

    # ---------------------------------------------------------------- layouts

    def issue_title(self, issue: Issue) -> str:
        """Headline for an issue, e.g. "IN-PROGRESS [#A] Fix login"."""
        return OutlineDocument.join_headline(HeadlineParts(
            keyword=self.normalizer.status_keyword(issue.status),
            priority=self.normalizer.priority_marker(issue.priority),
            title=issue.summary or issue.key,
        ))

    def declare_status_keywords(self, document: OutlineDocument, issues: Iterable[Issue]) -> None:
        """Declare the headline keywords of issues in the document's #+TODO: line.

        Without the declaration a keyword with no priority cookie after it
        reads back as part of the title once the file is reloaded.
        """
        keywords = [self.normalizer.status_keyword(issue.status) for issue in issues]
        added = document.declare_todo_keywords(keywords)
        if added:
            logger.info(f"Declared headline keywords: {', '.join(added)}")

    def layout(self, entity: Any) -> SectionLayout:
        """Title, properties and body written for an entity."""
        if isinstance(entity, Issue):
            return SectionLayout(
                title=self.issue_title(entity),
                properties=entity.properties(),
                body=entity.description,
            )
        if isinstance(entity, Comment):
            return SectionLayout(
                title=f"Comment: {entity.author or 'unknown'}",
                properties=entity.properties(),
                body=entity.body,
            )
        if isinstance(entity, Project):
            return SectionLayout(
                title=entity.name or entity.key,
                properties=entity.properties(),
                body=entity.description,
            )
        if isinstance(entity, Board):
            return SectionLayout(title=entity.name or entity.id, properties=entity.properties())
        if isinstance(entity, Attachment):
            return SectionLayout(
                title=entity.filename or entity.id,
                properties=entity.properties(),
            )
        raise TypeError(f"Cannot render {type(entity).__name__}")

    # ----------------------------------------------------------------- upsert

    def upsert(
        self,
        document: OutlineDocument,
        scope: Optional[Section],
        entity: Any,
        identity_key: Optional[str] = None,
    ) -> Section:
        """Create or rewrite the section of entity inside scope.

        Args:
            document: Document to edit
            scope: Parent section (None for the top level of the document)
            entity: Entity to render
            identity_key: Identity to use instead of entity.identity

        Returns:
            The rendered section, located after all edits
        """
        identity = identity_key if identity_key is not None else entity.identity
        if isinstance(entity, Issue) and entity.status:
            document.todo_keywords.add(self.normalizer.status_keyword(entity.status))
        direct = isinstance(entity, (Comment, Attachment))
        return self.upsert_section(
            document, scope, str(identity), self.layout(entity), direct=direct
        )

    def upsert_section(
        self,
        document: OutlineDocument,
        scope: Optional[Section],
        identity: str,
        layout: SectionLayout,
        direct: bool = False,
    ) -> Section:
        """Upsert a section with an explicit identity and layout.

        With direct=True only direct children of scope are matched, for
        identities (comment and attachment ids) that are unique per parent only.
        """
        if not identity:
            raise ValueError("Cannot render a section without identity")

        with document.edit_region(scope):
            existing = document.find_by_identity(identity, scope, direct=direct)
            if existing is None:
                section = document.insert_child(scope, layout.title)
                logger.debug(f"Created section {identity}")
            else:
                parts = document.split_headline(existing.headline)
                title = layout.title
                if parts.tags:
                    title += " :" + ":".join(parts.tags) + ":"
                section = document.set_headline(existing, title)
                logger.debug(f"Updating section {identity} in place")

            with document.edit_region(section):
                for name in IDENTITY_PROPERTIES:
                    document.set_property(document.section_at(section.start), name, identity)
                for name, value in layout.properties.items():
                    if value in ("", None):
                        continue
                    document.set_property(
                        document.section_at(section.start),
                        self.property_name(name),
                        value,
                    )
                if layout.body is not None:
                    document.replace_body(document.section_at(section.start), layout.body)

            return document.section_at(section.start)

    # ------------------------------------------------------------ containers

    def ensure_project_heading(self, document: OutlineDocument, project_key: str) -> Section:
        """Top-level <KEY>-Tickets heading under which a project's issues nest."""
        title = project_heading_title(project_key)
        for section in document.children(None):
            if document.split_headline(section.headline).title == title:
                return section
        logger.info(f"Creating project heading {title}")
        return document.insert_child(None, title)

    def ensure_attachments_section(
        self,
        document: OutlineDocument,
        issue_section: Section,
        issue_key: str,
    ) -> Section:
        """Attachments subsection of an issue, created on first use."""
        return self.upsert_section(
            document,
            issue_section,
            attachments_identity(issue_key),
            SectionLayout(title=ATTACHMENTS_TITLE),
            direct=True,
        )
