"""Reconciliation of LOGBOOK clock entries with remote worklogs.

One pass per issue:

1. fetch the remote worklogs and index them by id;
2. parse the issue's LOGBOOK drawer into clock entries;
3. linked entries are compared with their worklog by start and duration in
   seconds, exactly, and pushed with a synchronous update when either differs;
4. provisional entries either adopt an unclaimed worklog with the same
   interval or are created remotely;
5. the remote set is fetched again and the drawer is rebuilt from it, newest
   first. Entries whose update or create failed are kept as they were.

Remote calls are synchronous so every compare-then-update step completes
before the next one starts.
"""

import logging
from datetime import timedelta
from typing import Dict, List, Optional, Set

from src.jira_client.api_wrapper import APIWrapper
from src.jira_client.errors import RemoteCallError
from src.models.entities import Worklog
from src.models.normalizer import FieldNormalizer
from src.models.payload import lookup
from src.outline.clock import (
    clock_line,
    format_clock_entry,
    interval_line,
    parse_clock_block,
)
from src.outline.document import OutlineDocument
from src.outline.models import ClockEntry, Section

from .models import WorklogReconcileResult

logger = logging.getLogger(__name__)

LOGBOOK = 'LOGBOOK'


class WorklogReconciler:
    """Two-way diff between clock entries and remote worklogs.

    Example:
        >>> reconciler = WorklogReconciler(api, normalizer)
        >>> result = reconciler.reconcile(doc, issue_section, "EX-5")
        >>> result.updated
        ['10010']
    """

    def __init__(self, api: APIWrapper, normalizer: FieldNormalizer):
        self.api = api
        self.normalizer = normalizer

    @property
    def tz(self):
        return self.normalizer.tz

    def fetch(self, issue_key: str) -> List[Worklog]:
        """Fetch and decode remote worklogs; undecodable records are skipped."""
        worklogs = []
        for raw in self.api.get_worklogs(issue_key):
            try:
                worklogs.append(Worklog.from_payload(raw, self.normalizer, issue_key))
            except ValueError as e:
                logger.warning(f"Skipping worklog of {issue_key}: {e}")
        return worklogs

    @staticmethod
    def unchanged(entry: ClockEntry, worklog: Worklog) -> bool:
        """True when start and duration match to the second; the note is ignored."""
        return (
            entry.start == worklog.started
            and entry.duration_seconds == worklog.duration_seconds
        )

    def same_interval(self, entry: ClockEntry, worklog: Worklog) -> bool:
        """True when both would render to the same CLOCK: line."""
        return (
            clock_line(entry.start, entry.end, self.tz)
            == interval_line(worklog.started, worklog.duration_seconds, self.tz)
        )

    def _find_unclaimed(
        self,
        entry: ClockEntry,
        worklogs: List[Worklog],
        claimed: Set[str],
    ) -> Optional[Worklog]:
        for worklog in worklogs:
            if worklog.id in claimed:
                continue
            if self.same_interval(entry, worklog):
                return worklog
        return None

    def reconcile(
        self,
        document: OutlineDocument,
        section: Section,
        issue_key: str,
    ) -> WorklogReconcileResult:
        """Run one reconciliation pass for the issue rendered at section.

        Raises:
            RemoteCallError: If fetching the remote worklogs fails; the
                LOGBOOK drawer is left untouched in that case
        """
        result = WorklogReconcileResult(issue_key=issue_key)

        remote = self.fetch(issue_key)
        table: Dict[str, Worklog] = {w.id: w for w in remote if w.id is not None}
        block = parse_clock_block(document.drawer_lines(section, LOGBOOK), self.tz)

        claimed: Set[str] = set()
        kept: List[ClockEntry] = []
        running: List[ClockEntry] = []

        for entry in block.entries:
            if entry.is_running:
                running.append(entry)
                continue

            if entry.worklog_id is not None:
                worklog = table.get(entry.worklog_id)
                if worklog is None:
                    logger.info(
                        f"Worklog {entry.worklog_id} of {issue_key} no longer exists remotely"
                    )
                    continue
                claimed.add(entry.worklog_id)
                if self.unchanged(entry, worklog):
                    result.unchanged.append(entry.worklog_id)
                    continue
                try:
                    self.api.update_worklog(
                        issue_key,
                        entry.worklog_id,
                        entry.start,
                        entry.duration_seconds,
                        comment=entry.comment,
                    )
                    result.updated.append(entry.worklog_id)
                    logger.info(f"Updated worklog {entry.worklog_id} of {issue_key}")
                except RemoteCallError as e:
                    logger.error(f"Update of worklog {entry.worklog_id} failed: {e}")
                    result.failed.append((f"update {entry.worklog_id}", str(e)))
                    kept.append(entry)
                continue

            match = self._find_unclaimed(entry, remote, claimed)
            if match is not None:
                claimed.add(match.id)
                result.adopted.append(match.id)
                logger.debug(f"Provisional interval matches worklog {match.id}")
                continue
            try:
                created = self.api.add_worklog(
                    issue_key,
                    entry.start,
                    entry.duration_seconds,
                    comment=entry.comment or None,
                )
                new_id = str(lookup(created, 'id'))
                result.created.append(new_id)
                if new_id:
                    claimed.add(new_id)
                logger.info(f"Created worklog {new_id or '?'} for {issue_key}")
            except RemoteCallError as e:
                logger.error(f"Create of worklog for {issue_key} failed: {e}")
                result.failed.append((f"create {clock_line(entry.start, entry.end, self.tz)}", str(e)))
                kept.append(entry)

        # A failed update keeps the local version of that worklog
        kept_ids = {e.worklog_id for e in kept if e.worklog_id is not None}
        authoritative = self.fetch(issue_key)
        entries = [
            ClockEntry(
                start=w.started,
                end=w.started + timedelta(seconds=w.duration_seconds),
                worklog_id=w.id,
                comment=w.comment,
            )
            for w in authoritative
            if w.id not in kept_ids
        ]
        entries.extend(kept)
        entries.sort(key=lambda e: e.start, reverse=True)

        lines: List[str] = []
        for entry in running + entries:
            lines.extend(format_clock_entry(entry, self.tz))
        lines.extend(block.other_lines)

        document.replace_drawer(document.section_at(section.start), LOGBOOK, lines)
        result.entries = len(entries)
        logger.info(
            f"Worklogs of {issue_key}: {len(result.updated)} updated, "
            f"{len(result.created)} created, {len(result.adopted)} adopted, "
            f"{len(result.failed)} failed"
        )
        return result
