"""Unit tests for sync.worklog_reconciler.WorklogReconciler."""

from datetime import datetime
from unittest.mock import Mock

import pytest
import pytz

from src.jira_client.errors import APIAccessError
from src.models.entities import Issue
from src.models.normalizer import FieldNormalizer
from src.outline.document import OutlineDocument
from src.sync.renderer import IdentityRenderer
from src.sync.worklog_reconciler import LOGBOOK, WorklogReconciler
from tests.fixtures.jira_payloads import make_issue, make_worklog


W10_ONE_HOUR = "CLOCK: [2024-03-01 Fri 10:00]--[2024-03-01 Fri 11:00] =>  1:00"
W10_TWO_HOURS = "CLOCK: [2024-03-01 Fri 10:00]--[2024-03-01 Fri 12:00] =>  2:00"
W11_HALF_HOUR = "CLOCK: [2024-03-02 Sat 09:00]--[2024-03-02 Sat 09:30] =>  0:30"


def _at(year, month, day, hour, minute=0):
    return pytz.utc.localize(datetime(year, month, day, hour, minute))


@pytest.fixture
def normalizer():
    return FieldNormalizer(timezone='UTC')


@pytest.fixture
def api():
    mock = Mock()
    mock.update_worklog.return_value = {}
    mock.add_worklog.return_value = {}
    return mock


@pytest.fixture
def reconciler(api, normalizer):
    return WorklogReconciler(api, normalizer)


@pytest.fixture
def document(normalizer):
    doc = OutlineDocument()
    renderer = IdentityRenderer(normalizer)
    project = renderer.ensure_project_heading(doc, "EX")
    renderer.upsert(doc, project, Issue.from_payload(make_issue("EX-5"), normalizer))
    return doc


def _with_logbook(doc, lines):
    doc.replace_drawer(doc.require_identity("EX-5"), LOGBOOK, lines)
    return doc.require_identity("EX-5")


def _logbook(doc):
    return doc.drawer_lines(doc.require_identity("EX-5"), LOGBOOK)


class TestPushLocalChanges:
    """Test cases for pushing edited and provisional clock entries."""

    def test_edited_interval_and_provisional_match(self, reconciler, api, document):
        section = _with_logbook(document, [W10_TWO_HOURS, ":id: 10010", W11_HALF_HOUR])
        api.get_worklogs.side_effect = [
            [
                make_worklog("10010", "2024-03-01T10:00:00.000+0000", 3600),
                make_worklog("10011", "2024-03-02T09:00:00.000+0000", 1800),
            ],
            [
                make_worklog("10010", "2024-03-01T10:00:00.000+0000", 7200),
                make_worklog("10011", "2024-03-02T09:00:00.000+0000", 1800),
            ],
        ]

        result = reconciler.reconcile(document, section, "EX-5")

        api.update_worklog.assert_called_once_with(
            "EX-5", "10010", _at(2024, 3, 1, 10), 7200, comment=""
        )
        api.add_worklog.assert_not_called()
        assert result.updated == ["10010"]
        assert result.adopted == ["10011"]
        assert result.entries == 2
        assert _logbook(document) == [W11_HALF_HOUR, ":id: 10011", W10_TWO_HOURS, ":id: 10010"]

    def test_unchanged_entry_is_not_pushed(self, reconciler, api, document):
        section = _with_logbook(document, [W10_ONE_HOUR, ":id: 10010"])
        api.get_worklogs.return_value = [make_worklog("10010")]

        result = reconciler.reconcile(document, section, "EX-5")

        api.update_worklog.assert_not_called()
        assert result.unchanged == ["10010"]
        assert _logbook(document) == [W10_ONE_HOUR, ":id: 10010"]

    def test_provisional_entry_is_created(self, reconciler, api, document):
        section = _with_logbook(document, [W11_HALF_HOUR])
        api.add_worklog.return_value = {'id': '10020'}
        api.get_worklogs.side_effect = [
            [],
            [make_worklog("10020", "2024-03-02T09:00:00.000+0000", 1800)],
        ]

        result = reconciler.reconcile(document, section, "EX-5")

        api.add_worklog.assert_called_once_with(
            "EX-5", _at(2024, 3, 2, 9), 1800, comment=None
        )
        assert result.created == ["10020"]
        assert _logbook(document) == [W11_HALF_HOUR, ":id: 10020"]

    @pytest.mark.parametrize("started,seconds", [
        ("2024-03-01T10:00:00.000+0000", 3630),
        ("2024-03-01T10:00:30.000+0000", 3600),
    ])
    def test_sub_minute_difference_is_pushed(self, reconciler, api, document, started, seconds):
        section = _with_logbook(document, [W10_ONE_HOUR, ":id: 10010"])
        api.get_worklogs.side_effect = [
            [make_worklog("10010", started, seconds)],
            [make_worklog("10010")],
        ]

        result = reconciler.reconcile(document, section, "EX-5")

        api.update_worklog.assert_called_once_with(
            "EX-5", "10010", _at(2024, 3, 1, 10), 3600, comment=""
        )
        assert result.updated == ["10010"]
        assert _logbook(document) == [W10_ONE_HOUR, ":id: 10010"]

    def test_note_only_difference_is_not_pushed(self, reconciler, api, document):
        section = _with_logbook(document, [W10_ONE_HOUR, ":id: 10010", ":comment: local"])
        api.get_worklogs.return_value = [make_worklog("10010", comment="remote")]

        result = reconciler.reconcile(document, section, "EX-5")

        api.update_worklog.assert_not_called()
        assert result.unchanged == ["10010"]
        assert _logbook(document) == [W10_ONE_HOUR, ":id: 10010", ":comment: remote"]


class TestRegeneration:
    """Test cases for rebuilding the LOGBOOK from the remote set."""

    def test_missing_linked_worklog_is_dropped(self, reconciler, api, document):
        section = _with_logbook(document, [W10_ONE_HOUR, ":id: 10099"])
        api.get_worklogs.return_value = []

        result = reconciler.reconcile(document, section, "EX-5")

        assert result.entries == 0
        assert _logbook(document) == []
        api.update_worklog.assert_not_called()

    def test_remote_only_worklogs_are_added_newest_first(self, reconciler, api, document):
        section = _with_logbook(document, [])
        api.get_worklogs.return_value = [
            make_worklog("10010", "2024-03-01T10:00:00.000+0000", 3600),
            make_worklog("10011", "2024-03-02T09:00:00.000+0000", 1800),
        ]

        result = reconciler.reconcile(document, section, "EX-5")

        assert result.entries == 2
        assert _logbook(document) == [W11_HALF_HOUR, ":id: 10011", W10_ONE_HOUR, ":id: 10010"]

    def test_failed_update_keeps_local_entry_once(self, reconciler, api, document):
        section = _with_logbook(document, [W10_TWO_HOURS, ":id: 10010"])
        api.get_worklogs.return_value = [make_worklog("10010")]
        api.update_worklog.side_effect = APIAccessError("rejected", "update_worklog")

        result = reconciler.reconcile(document, section, "EX-5")

        assert result.updated == []
        assert len(result.failed) == 1
        assert result.failed[0][0] == "update 10010"
        assert _logbook(document) == [W10_TWO_HOURS, ":id: 10010"]

    def test_failed_create_keeps_provisional_entry(self, reconciler, api, document):
        section = _with_logbook(document, [W11_HALF_HOUR])
        api.get_worklogs.return_value = []
        api.add_worklog.side_effect = APIAccessError("rejected", "add_worklog")

        result = reconciler.reconcile(document, section, "EX-5")

        assert len(result.failed) == 1
        assert _logbook(document) == [W11_HALF_HOUR]

    def test_running_clock_stays_first(self, reconciler, api, document):
        section = _with_logbook(
            document, ["CLOCK: [2024-03-03 Sun 08:00]", W10_ONE_HOUR, ":id: 10010"]
        )
        api.get_worklogs.return_value = [
            make_worklog("10010"),
            make_worklog("10011", "2024-03-02T09:00:00.000+0000", 1800),
        ]

        result = reconciler.reconcile(document, section, "EX-5")

        assert result.entries == 2
        assert _logbook(document)[0] == "CLOCK: [2024-03-03 Sun 08:00]"
        assert _logbook(document)[1] == W11_HALF_HOUR

    def test_other_lines_are_preserved(self, reconciler, api, document):
        section = _with_logbook(document, ["- Note taken on the design", W10_ONE_HOUR, ":id: 10010"])
        api.get_worklogs.return_value = [make_worklog("10010")]

        reconciler.reconcile(document, section, "EX-5")

        assert _logbook(document) == [W10_ONE_HOUR, ":id: 10010", "- Note taken on the design"]

    def test_fetch_failure_leaves_drawer_untouched(self, reconciler, api, document):
        section = _with_logbook(document, [W10_TWO_HOURS, ":id: 10010"])
        before = document.text
        api.get_worklogs.side_effect = APIAccessError("down", "get_worklogs")

        with pytest.raises(APIAccessError):
            reconciler.reconcile(document, section, "EX-5")

        assert document.text == before
        api.update_worklog.assert_not_called()

    def test_undecodable_worklog_is_skipped(self, reconciler, api):
        api.get_worklogs.return_value = [
            {'id': '1', 'started': 'not a date', 'timeSpentSeconds': 60},
            make_worklog("10010"),
        ]

        worklogs = reconciler.fetch("EX-5")

        assert [w.id for w in worklogs] == ["10010"]
