"""Unit tests for outline.store.DocumentStore."""

import os

from src.outline.store import BOARDS_FILE, DocumentStore


class TestDocumentStore:
    """Test cases for DocumentStore."""

    def test_filename_for_project(self, tmp_path):
        store = DocumentStore(str(tmp_path), project_files={'EX': 'work.org'})

        assert store.filename_for('EX') == 'work.org'
        assert store.filename_for('OPS') == 'OPS.org'

    def test_relative_working_dir_is_made_absolute(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)

        store = DocumentStore("org")

        assert store.working_dir == os.path.join(os.getcwd(), "org")
        assert store.path_for("EX.org") == os.path.join(os.getcwd(), "org", "EX.org")

    def test_open_is_cached(self, tmp_path):
        store = DocumentStore(str(tmp_path))

        assert store.open('EX.org') is store.open_project('EX')
        assert store.open(store.path_for('EX.org')) is store.open('EX.org')

    def test_save_all_writes_modified_documents_only(self, tmp_path):
        store = DocumentStore(str(tmp_path))
        store.open('EX.org').insert_child(None, "EX-Tickets")
        store.open(BOARDS_FILE)

        saved = store.save_all()

        assert saved == [str(tmp_path / 'EX.org')]
        assert (tmp_path / 'EX.org').read_text(encoding='utf-8') == "* EX-Tickets\n"
        assert not (tmp_path / BOARDS_FILE).exists()
        assert store.save_all() == []

    def test_org_files_sorted_and_filtered(self, tmp_path):
        for name in ('b.org', 'a.org', 'notes.txt'):
            (tmp_path / name).write_text("* x\n", encoding='utf-8')
        store = DocumentStore(str(tmp_path))

        assert store.org_files() == [str(tmp_path / 'a.org'), str(tmp_path / 'b.org')]
        assert len(store.documents()) == 2

    def test_missing_working_dir_has_no_files(self, tmp_path):
        assert DocumentStore(str(tmp_path / 'nope')).org_files() == []

    def test_add_keywords_reaches_open_documents(self, tmp_path):
        store = DocumentStore(str(tmp_path), todo_keywords=['OPEN'])
        document = store.open('EX.org')

        store.add_keywords(['IN-REVIEW', ''])

        assert 'OPEN' in document.todo_keywords
        assert 'IN-REVIEW' in document.todo_keywords
        assert '' not in store.todo_keywords
