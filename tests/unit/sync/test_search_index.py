"""Unit tests for sync.search_index (SearchIndex and SearchPicker)."""

from unittest.mock import patch

import pytest

from src.jira_client.dispatcher import EventLoop
from src.outline.errors import IdentityNotFoundError
from src.outline.store import DocumentStore
from src.sync.search_index import SearchIndex, SearchPicker


EX_FILE = """* EX-Tickets
** TODO [#A] Fix login
:PROPERTIES:
:CUSTOM_ID: EX-1
:END:
** DONE Login page styling
:PROPERTIES:
:CUSTOM_ID: EX-2
:END:
** TODO Deploy pipeline
:PROPERTIES:
:CUSTOM_ID: EX-3
:END:
"""

OPS_FILE = """* OPS-Tickets
** TODO Rotate login certificates
:PROPERTIES:
:CUSTOM_ID: OPS-1
:END:
"""


class FakeClock:
    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now


@pytest.fixture
def store(tmp_path):
    (tmp_path / "EX.org").write_text(EX_FILE, encoding="utf-8")
    return DocumentStore(str(tmp_path))


@pytest.fixture
def index(store):
    return SearchIndex(store)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def loop(clock):
    event_loop = EventLoop(clock=clock)
    yield event_loop
    event_loop.shutdown()


@pytest.fixture
def shown():
    return []


@pytest.fixture
def picker(index, loop, shown):
    return SearchPicker(
        index, loop, refresh_seconds=30.0, debounce_seconds=0.3,
        on_results=shown.append,
    )


def _keys(entries):
    return [entry.key for entry in entries]


class TestSearchIndex:
    """Test cases for SearchIndex."""

    def test_rebuild_indexes_identity_sections(self, index):
        entries = index.rebuild()

        assert _keys(entries) == ["EX-1", "EX-2", "EX-3"]
        assert entries[0].summary == "Fix login"
        assert entries[0].properties == {"CUSTOM_ID": "EX-1"}
        assert index.generation == 1

    def test_search_requires_every_word(self, index):
        index.rebuild()

        assert _keys(index.search("login")) == ["EX-1", "EX-2"]
        assert _keys(index.search("LOGIN fix")) == ["EX-1"]
        assert _keys(index.search("ex-3")) == ["EX-3"]
        assert _keys(index.search("")) == ["EX-1", "EX-2", "EX-3"]

    def test_search_within_previous_results(self, index):
        index.rebuild()
        within = index.search("fix")

        assert _keys(index.search("login", within=within)) == ["EX-1"]

    def test_locate_resolves_by_identity(self, index):
        entry = index.rebuild()[1]

        document, section = index.locate(entry)

        assert document.identity(section) == "EX-2"
        assert section.headline == "DONE Login page styling"

    def test_locate_missing_section(self, index, store):
        entry = index.rebuild()[2]
        document = store.open("EX.org")
        document.delete_subtree(document.require_identity("EX-3"))

        with pytest.raises(IdentityNotFoundError):
            index.locate(entry)


class TestSearchPicker:
    """Test cases for the debounced, periodically refreshed picker."""

    def test_open_shows_everything(self, picker, shown):
        results = picker.open()

        assert _keys(results) == ["EX-1", "EX-2", "EX-3"]
        assert len(shown) == 1
        assert picker.is_open

    def test_typing_is_debounced(self, picker, loop, clock, shown):
        picker.open()

        picker.type("l")
        clock.now = 0.2
        picker.type("log")
        clock.now = 0.4
        loop.run_pending()
        assert len(shown) == 1

        clock.now = 0.5
        loop.run_pending()

        assert len(shown) == 2
        assert _keys(picker.results) == ["EX-1", "EX-2"]

    def test_extended_query_narrows_previous_results(self, picker, index, loop, clock):
        picker.open()
        picker.type("login")
        clock.now = 1.0
        loop.run_pending()
        previous = list(picker.results)

        with patch.object(index, "search", wraps=index.search) as search:
            picker.type("login fix")
            clock.now = 2.0
            loop.run_pending()

        assert search.call_args[1]["within"] == previous
        assert _keys(picker.results) == ["EX-1"]

    def test_new_query_searches_full_index(self, picker, index, loop, clock):
        picker.open()
        picker.type("login")
        clock.now = 1.0
        loop.run_pending()

        with patch.object(index, "search", wraps=index.search) as search:
            picker.type("deploy")
            clock.now = 2.0
            loop.run_pending()

        assert search.call_args[1]["within"] is None
        assert _keys(picker.results) == ["EX-3"]

    def test_periodic_refresh_picks_up_new_files(self, picker, index, loop, clock, tmp_path):
        picker.open()
        (tmp_path / "OPS.org").write_text(OPS_FILE, encoding="utf-8")

        clock.now = 30.0
        loop.run_pending()

        assert index.generation == 2
        assert "OPS-1" in _keys(picker.results)

    def test_refresh_repeats(self, picker, index, loop, clock):
        picker.open()

        for tick in (30.0, 60.0, 90.0):
            clock.now = tick
            loop.run_pending()

        assert index.generation == 4

    def test_close_cancels_timers(self, picker, index, loop, clock, shown):
        picker.open()
        picker.type("deploy")

        picker.close()
        clock.now = 100.0
        loop.run_pending()

        assert not picker.is_open
        assert index.generation == 1
        assert len(shown) == 1

    def test_late_callbacks_after_close_are_ignored(self, picker, index, shown):
        picker.open()
        picker.close()

        picker._on_debounce()
        picker._on_refresh()
        picker.index_changed()
        picker.type("login")

        assert index.generation == 1
        assert len(shown) == 1

    def test_index_changed_refilters_from_full_index(self, picker, index, loop, clock, store):
        picker.open()
        picker.type("login")
        clock.now = 1.0
        loop.run_pending()
        document = store.open("EX.org")
        issue = document.insert_child(document.sections()[0], "TODO Login audit")
        document.set_property(issue, "CUSTOM_ID", "EX-4")
        index.rebuild()

        picker.index_changed()

        assert _keys(picker.results) == ["EX-1", "EX-2", "EX-4"]

    def test_select_locates_and_closes(self, picker, loop, clock):
        picker.open()
        picker.type("deploy")
        clock.now = 1.0
        loop.run_pending()

        document, section = picker.select(0)

        assert document.identity(section) == "EX-3"
        assert not picker.is_open

    def test_select_out_of_range(self, picker):
        picker.open()

        with pytest.raises(IndexError):
            picker.select(10)

    def test_context_manager(self, picker):
        with picker as session:
            assert session.is_open

        assert not picker.is_open
