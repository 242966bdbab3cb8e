"""Sync engine: the operations exposed to the command layer.

Queries are asynchronous: an operation submits the remote call and returns
its Future; the continuation decodes the payloads and renders them when the
EventLoop runs it. Mutations (push, comments, worklogs, create) are
synchronous. Every render pass saves the touched documents, rebuilds the
search index and notifies render listeners.
"""

import dataclasses
import logging
from concurrent.futures import Future
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple

from src.jira_client.errors import RemoteCallError, SyncError
from src.models.entities import (
    Attachment,
    Board,
    Comment,
    EntityBatch,
    Issue,
    Project,
)
from src.models.payload import lookup
from src.outline.document import OutlineDocument
from src.outline.errors import IdentityNotFoundError
from src.outline.models import Section
from src.outline.store import BOARDS_FILE, HEADONLY_FILE, PROJECTS_FILE

from .comment_reconciler import CommentReconciler
from .models import RenderReport, SearchEntry, SectionLayout, WorklogReconcileResult
from .renderer import IdentityRenderer
from .search_index import SearchIndex
from .session import SyncSession
from .worklog_reconciler import WorklogReconciler

logger = logging.getLogger(__name__)

RenderListener = Callable[[RenderReport], None]


class SyncEngine:
    """Synchronizes Jira entities with the outline files of a session.

    Attributes:
        session: Session context (api, store, config, loop, caches)
        renderer: Identity-based section renderer
        worklogs: LOGBOOK / worklog reconciler
        comments: Comment reconciler
        search_index: Live search index over the working directory
        reports: Render reports of this engine, in completion order

    Example:
        >>> engine = SyncEngine(SyncSession.from_config(config))
        >>> engine.sync_issue_list("project = EX")
        >>> engine.session.loop.run_until_idle()
        >>> engine.reports[-1].rendered
        ['EX-1', 'EX-2']
    """

    def __init__(self, session: SyncSession):
        self.session = session
        config = session.config
        self.renderer = IdentityRenderer(session.normalizer, config.property_overrides)
        self.worklogs = WorklogReconciler(session.api, session.normalizer)
        self.comments = CommentReconciler(
            self.renderer,
            ignored_authors=config.ignored_comment_authors,
            order=config.comments_order,
        )
        self.search_index = SearchIndex(session.store)
        self.reports: List[RenderReport] = []
        self._render_listeners: List[RenderListener] = []

    # -------------------------------------------------------------- plumbing

    @property
    def api(self):
        return self.session.api

    @property
    def store(self):
        return self.session.store

    def add_render_listener(self, listener: RenderListener) -> None:
        """Call listener with the report of every completed render pass."""
        self._render_listeners.append(listener)

    def _finish(self, report: RenderReport) -> RenderReport:
        """Save touched documents, rebuild the search index, notify listeners."""
        self.store.save_all()
        self.search_index.rebuild()
        self.reports.append(report)
        for listener in list(self._render_listeners):
            listener(report)
        if report.failed:
            logger.warning(f"Render finished with {len(report.failed)} failure(s)")
        return report

    def _alive(self) -> bool:
        if self.session.closed:
            logger.debug("Session closed, dropping late continuation")
            return False
        return True

    def _chain(self, issue_key: str, step: Callable[[Future], bool]) -> Callable[[Future], None]:
        """Continuation for one step of an issue pass.

        The issue stays in flight while step returns False (the pass goes on
        in a later continuation) and is released when it returns True or
        raises.
        """
        def run(future: Future) -> None:
            if not self._alive():
                self.session.end(issue_key)
                return
            done = True
            try:
                done = step(future)
            finally:
                if done:
                    self.session.end(issue_key)
        return run

    def _with_filename(self, issue: Issue) -> Issue:
        return dataclasses.replace(issue, filename=self.store.filename_for(issue.project_key))

    def decode_issues(self, payloads: Iterable[Dict[str, Any]]) -> EntityBatch:
        """Decode issue payloads; undecodable ones are reported, not raised."""
        self.session.ensure_references()
        batch = EntityBatch()
        for raw in payloads:
            try:
                issue = self._with_filename(Issue.from_payload(raw, self.session.normalizer))
                if not issue.key:
                    raise ValueError("payload has no issue key")
                batch.issues.append(issue)
            except (ValueError, TypeError) as e:
                key = str(lookup(raw, 'key')) or "?"
                logger.error(f"Could not decode issue {key}: {e}")
                batch.failed.append((key, str(e)))
        return batch

    def decode_comments(self, payloads: Iterable[Dict[str, Any]], issue_key: str) -> List[Comment]:
        return [Comment.from_payload(raw, self.session.normalizer, issue_key) for raw in payloads]

    def locate_issue(self, issue_key: str) -> Tuple[OutlineDocument, Section]:
        """Find the rendered section of an issue.

        The project's own file is searched first, then every outline file.

        Returns:
            (document, section)

        Raises:
            IdentityNotFoundError: If the issue has no section anywhere
        """
        project_key = issue_key.rsplit('-', 1)[0]
        document = self.store.open_project(project_key)
        section = document.find_by_identity(issue_key)
        if section is not None:
            return document, section
        for candidate in self.store.documents():
            section = candidate.find_by_identity(issue_key)
            if section is not None:
                return candidate, section
        raise IdentityNotFoundError(issue_key, self.store.working_dir)

    # ---------------------------------------------------------------- render

    def render_issues(self, issues: Iterable[Issue]) -> RenderReport:
        """Upsert issues into their project files.

        A failure aborts only the entity being rendered; it is recorded in
        the report and the batch goes on.
        """
        report = RenderReport()
        for issue in issues:
            try:
                document = self.store.open_project(issue.project_key)
                self.renderer.declare_status_keywords(document, [issue])
                project = self.renderer.ensure_project_heading(document, issue.project_key)
                self.renderer.upsert(document, project, issue)
            except (SyncError, ValueError, TypeError) as e:
                logger.error(f"Failed to render {issue.key}: {e}")
                report.failed.append((issue.key, str(e)))
                continue
            self.session.cache[issue.key] = issue
            report.rendered.append(issue.key)
            if document.path and document.path not in report.files:
                report.files.append(document.path)
        logger.info(f"Rendered {len(report.rendered)} issue(s)")
        return self._finish(report)

    def _render_flat(
        self,
        filename: str,
        entities: Iterable[Any],
        layout: Optional[Callable[[Any], SectionLayout]] = None,
    ) -> RenderReport:
        """Upsert entities as top-level sections of one list file."""
        document = self.store.open(filename)
        report = RenderReport(files=[document.path] if document.path else [])
        for entity in entities:
            try:
                if layout is None:
                    self.renderer.upsert(document, None, entity)
                else:
                    self.renderer.upsert_section(
                        document, None, str(entity.identity), layout(entity)
                    )
            except (SyncError, ValueError, TypeError) as e:
                logger.error(f"Failed to render {entity.identity}: {e}")
                report.failed.append((str(entity.identity), str(e)))
                continue
            report.rendered.append(str(entity.identity))
        return self._finish(report)

    # --------------------------------------------------------------- queries

    def sync_issue_list(self, query: Optional[str] = None, limit: Optional[int] = None) -> Future:
        """Fetch the issues matching query, render them, then their comments and worklogs."""
        jql = query or self.session.config.default_jql
        limit = limit or self.session.config.issue_limit
        logger.info(f"Syncing issues for: {jql}")

        def on_issues(future: Future) -> None:
            if not self._alive():
                return
            batch = self.decode_issues(future.result())
            report = self.render_issues(batch.issues)
            report.failed.extend(batch.failed)
            for key in report.rendered:
                if self.session.begin(key):
                    self.api.get_comments(key, callback=self._chain(key, self._reconcile_step(key)))

        return self.api.search_issues(jql, limit, callback=on_issues)

    def _reconcile_step(self, issue_key: str) -> Callable[[Future], bool]:
        """Comment sub-pass, then the worklog sub-pass, of one rendered issue."""
        def step(future: Future) -> bool:
            comments = self.decode_comments(future.result(), issue_key)
            document, section = self.locate_issue(issue_key)
            rendered = self.comments.reconcile(document, section, comments)
            self._reconcile(issue_key)
            self._finish(RenderReport(rendered=rendered, files=[document.path] if document.path else []))
            return True
        return step

    def refresh_issue(self, issue_key: str) -> Optional[Future]:
        """Re-fetch one issue and re-render it with its comments and worklogs.

        Returns:
            The Future of the first remote call, or None if a pass for the
            issue is still in flight
        """
        self.api.validate_issue_key(issue_key)
        if not self.session.begin(issue_key):
            return None

        def on_issue(future: Future) -> bool:
            batch = self.decode_issues([future.result()])
            if not batch.issues:
                self._finish(RenderReport(failed=batch.failed))
                return True
            report = self.render_issues(batch.issues)
            if not report.ok:
                return True
            self.api.get_comments(
                issue_key,
                callback=self._chain(issue_key, self._reconcile_step(issue_key)),
            )
            return False

        try:
            return self.api.get_issue(issue_key, callback=self._chain(issue_key, on_issue))
        except Exception:
            self.session.end(issue_key)
            raise

    def sync_issues_headonly(self, query: Optional[str] = None) -> Future:
        """Render matching issues as headlines with properties only."""
        jql = query or self.session.config.default_jql

        def on_issues(future: Future) -> None:
            if not self._alive():
                return
            batch = self.decode_issues(future.result())
            self.renderer.declare_status_keywords(self.store.open(HEADONLY_FILE), batch.issues)
            report = self._render_flat(
                HEADONLY_FILE,
                batch.issues,
                layout=lambda issue: SectionLayout(
                    title=self.renderer.issue_title(issue),
                    properties=issue.properties(),
                ),
            )
            report.failed.extend(batch.failed)

        return self.api.search_issues(jql, self.session.config.issue_limit, callback=on_issues)

    def sync_projects(self) -> Future:
        """Render every visible project into the project list file."""
        def on_projects(future: Future) -> None:
            if not self._alive():
                return
            projects = [Project.from_payload(raw) for raw in future.result()]
            self._render_flat(PROJECTS_FILE, projects)

        return self.api.get_projects(callback=on_projects)

    def sync_boards(self) -> Future:
        """Render every agile board into the board list file."""
        def on_boards(future: Future) -> None:
            if not self._alive():
                return
            boards = [Board.from_payload(raw) for raw in future.result()]
            self._render_flat(BOARDS_FILE, boards)

        return self.api.get_boards(callback=on_boards)

    def board_settings(self, board_id: str) -> Board:
        """Board with the jql / limit edited locally in the board list file."""
        document = self.store.open(BOARDS_FILE)
        section = document.find_by_identity(str(board_id))
        if section is None:
            return Board(id=str(board_id))
        properties = document.properties(section)
        name = self.renderer.property_name
        raw_limit = properties.get(name('limit'), "")
        return Board(
            id=str(board_id),
            name=properties.get(name('name'), ""),
            board_type=properties.get(name('type'), ""),
            jql=properties.get(name('jql'), ""),
            limit=int(raw_limit) if raw_limit.strip().isdigit() else None,
        )

    def sync_board_issues(self, board_id: str, limit: Optional[int] = None) -> Future:
        """Fetch and render the issues of a board, honoring its local jql / limit."""
        board = self.board_settings(board_id)
        limit = limit or board.limit or self.session.config.issue_limit
        logger.info(f"Syncing issues of board {board_id} (limit {limit})")

        def on_issues(future: Future) -> None:
            if not self._alive():
                return
            batch = self.decode_issues(future.result())
            report = self.render_issues(batch.issues)
            report.failed.extend(batch.failed)

        return self.api.get_board_issues(board_id, limit, board.jql or None, callback=on_issues)

    def sync_attachments(self, issue_key: str) -> Future:
        """Render attachment metadata into the issue's Attachments subsection."""
        self.api.validate_issue_key(issue_key)

        def on_attachments(future: Future) -> None:
            if not self._alive():
                return
            attachments = [
                Attachment.from_payload(raw, self.session.normalizer, issue_key)
                for raw in future.result()
            ]
            document, section = self.locate_issue(issue_key)
            container = self.renderer.ensure_attachments_section(document, section, issue_key)
            report = RenderReport(files=[document.path] if document.path else [])
            for attachment in attachments:
                self.renderer.upsert(document, document.section_at(container.start), attachment)
                report.rendered.append(attachment.id)
            self._finish(report)

        return self.api.get_attachments(issue_key, callback=on_attachments)

    def search_index_snapshot(self) -> List[SearchEntry]:
        """Current search entries; the index is built on first use."""
        if self.search_index.generation == 0:
            self.search_index.rebuild()
        return self.search_index.snapshot()

    # ------------------------------------------------------------- mutations

    def _reconcile(self, issue_key: str) -> WorklogReconcileResult:
        document, section = self.locate_issue(issue_key)
        result = self.worklogs.reconcile(document, section, issue_key)
        self.store.save_all()
        return result

    def reconcile_worklogs(self, issue_key: str) -> Optional[WorklogReconcileResult]:
        """Reconcile the issue's LOGBOOK with its remote worklogs.

        Returns:
            The reconcile result, or None if a pass for the issue is in flight

        Raises:
            IdentityNotFoundError: If the issue has no section
            RemoteCallError: If the remote worklogs cannot be fetched
        """
        if not self.session.begin(issue_key):
            return None
        try:
            return self._reconcile(issue_key)
        finally:
            self.session.end(issue_key)

    def _local_fields(self, document: OutlineDocument, section: Section) -> Dict[str, Any]:
        parts = document.split_headline(section.headline)
        properties = {k.lower(): v for k, v in document.properties(section).items()}
        name = self.renderer.property_name

        fields: Dict[str, Any] = {
            'summary': parts.title,
            'description': document.get_body(section).strip(),
        }
        priority = properties.get(name('priority').lower(), "")
        if priority:
            fields['priority'] = {'name': priority}
        labels = properties.get(name('labels').lower(), "")
        fields['labels'] = [label.strip() for label in labels.split(',') if label.strip()]
        return fields

    def push_issue(self, issue_key: str) -> Dict[str, Any]:
        """Push the local summary, description, priority and labels upstream.

        Returns:
            The fields sent to Jira

        Raises:
            IdentityNotFoundError: If the issue has no section
            RemoteCallError: If the update fails
        """
        document, section = self.locate_issue(issue_key)
        fields = self._local_fields(document, section)
        if not fields['summary']:
            raise ValueError(f"Issue {issue_key} has an empty summary")
        self.api.update_issue(issue_key, fields)
        logger.info(f"Pushed {', '.join(fields)} of {issue_key}")
        return fields

    def add_comment(self, issue_key: str, body: str) -> Comment:
        """Add a comment remotely and render it under the issue."""
        if not body.strip():
            raise ValueError("Comment body cannot be empty")
        document, section = self.locate_issue(issue_key)
        payload = self.api.add_comment(issue_key, body)
        comment = Comment.from_payload(payload, self.session.normalizer, issue_key)
        self.renderer.upsert(document, section, comment)
        self._finish(RenderReport(rendered=[comment.id], files=[document.path] if document.path else []))
        return comment

    def edit_comment(self, issue_key: str, comment_id: str, body: str) -> Comment:
        """Replace a comment's body remotely and re-render it."""
        if not body.strip():
            raise ValueError("Comment body cannot be empty")
        document, section = self.locate_issue(issue_key)
        payload = self.api.edit_comment(issue_key, comment_id, body)
        comment = Comment.from_payload(payload, self.session.normalizer, issue_key)
        self.renderer.upsert(document, section, comment, identity_key=comment.id or comment_id)
        self._finish(RenderReport(rendered=[comment_id], files=[document.path] if document.path else []))
        return comment

    def create_issue(
        self,
        project_key: str,
        issue_type: str,
        summary: str,
        description: str = "",
    ) -> Issue:
        """Create an issue remotely, then fetch and render it.

        Raises:
            ValueError: If project, type or summary is empty
            RemoteCallError: If creation or the follow-up fetch fails
        """
        if not project_key or not issue_type or not summary.strip():
            raise ValueError("project_key, issue_type and summary are required")
        fields = {
            'project': {'key': project_key},
            'issuetype': {'name': issue_type},
            'summary': summary.strip(),
            'description': description,
        }
        created = self.api.create_issue(fields)
        issue_key = str(lookup(created, 'key'))
        if not issue_key:
            raise RemoteCallError(f"Jira did not return a key for the new {project_key} issue")
        logger.info(f"Created {issue_key}")

        batch = self.decode_issues([self.api.get_issue(issue_key)])
        if not batch.issues:
            raise RemoteCallError(f"Could not decode created issue {issue_key}")
        self.render_issues(batch.issues)
        return batch.issues[0]
