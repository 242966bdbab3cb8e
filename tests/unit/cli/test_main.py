"""Unit tests for main CLI entry point (main.py).

Tests the Typer CLI application using CliRunner.
"""

import logging
from unittest.mock import Mock, patch

import pytest
from typer.testing import CliRunner

from src.cli.config import ConfigLoader
from src.cli.errors import InitError
from src.cli.main import GETTING_STARTED_MESSAGE, _configure_logging, _pick, app
from src.cli.models import ExitCode, SyncSummary
from src.jira_client.dispatcher import EventLoop
from src.outline.store import DocumentStore
from src.sync.models import SearchEntry, SyncConfig, WorklogReconcileResult
from src.sync.search_index import SearchIndex


runner = CliRunner()


@pytest.fixture(autouse=True)
def restore_app_logger():
    app_logger = logging.getLogger("src")
    handlers = list(app_logger.handlers)
    level = app_logger.level
    yield
    for handler in list(app_logger.handlers):
        if handler not in handlers:
            app_logger.removeHandler(handler)
            handler.close()
    app_logger.setLevel(level)


@pytest.fixture
def sync_command():
    with patch('src.cli.main.SyncCommand') as mock_cls:
        instance = Mock()
        instance.run.return_value = ExitCode.SUCCESS
        instance.summary = SyncSummary(rendered_count=2)
        instance.result = None
        mock_cls.return_value = instance
        yield mock_cls


def _action(sync_command):
    """The engine action handed to SyncCommand.run()."""
    return sync_command.return_value.run.call_args[0][0]


class TestConfigureLogging:
    """Test cases for _configure_logging function."""

    @pytest.mark.parametrize("verbosity,level", [
        (0, logging.WARNING),
        (1, logging.INFO),
        (2, logging.DEBUG),
        (5, logging.DEBUG),
    ])
    def test_verbosity_levels(self, verbosity, level):
        _configure_logging(verbosity)

        assert logging.getLogger("src").level == level

    def test_handlers_are_replaced(self):
        _configure_logging(0)
        _configure_logging(1)

        assert len(logging.getLogger("src").handlers) == 1

    def test_logdir_adds_file_handler(self, tmp_path):
        _configure_logging(1, str(tmp_path / "logs"))

        files = list((tmp_path / "logs").iterdir())
        assert len(files) == 1
        assert files[0].name.startswith("org-jira-sync_")
        assert len(logging.getLogger("src").handlers) == 2


class TestGlobalOptions:
    """Test cases for the app callback."""

    def test_version(self):
        result = runner.invoke(app, ["--version"])

        assert result.exit_code == 0
        assert "org-jira-sync version 0.1.0" in result.output

    def test_no_command_prints_getting_started(self):
        result = runner.invoke(app, [])

        assert result.exit_code == 0
        assert GETTING_STARTED_MESSAGE in result.output

    def test_config_path_is_passed(self, sync_command):
        runner.invoke(app, ["--config", "custom.yaml", "sync"])

        assert sync_command.call_args[1]["config_path"] == "custom.yaml"

    def test_default_config_path(self, sync_command):
        runner.invoke(app, ["sync"])

        assert sync_command.call_args[1]["config_path"] == ConfigLoader.DEFAULT_CONFIG_PATH


class TestRenderCommands:
    """Test cases for commands that print a render summary."""

    def test_sync(self, sync_command):
        result = runner.invoke(app, ["--no-color", "sync", "--jql", "project = EX", "-n", "5"])

        assert result.exit_code == ExitCode.SUCCESS
        assert "Rendered: 2 section(s)" in result.output
        engine = Mock()
        _action(sync_command)(engine)
        engine.sync_issue_list.assert_called_once_with("project = EX", 5)

    def test_sync_partial_failure(self, sync_command):
        sync_command.return_value.run.return_value = ExitCode.PARTIAL_FAILURE
        sync_command.return_value.summary = SyncSummary(failed=[("EX-2", "bad")])

        result = runner.invoke(app, ["--no-color", "sync"])

        assert result.exit_code == ExitCode.PARTIAL_FAILURE
        assert "completed with failures" in result.output

    def test_error_skips_summary(self, sync_command):
        sync_command.return_value.run.return_value = ExitCode.AUTH_ERROR

        result = runner.invoke(app, ["--no-color", "sync"])

        assert result.exit_code == ExitCode.AUTH_ERROR
        assert "Sync Summary" not in result.output

    def test_refresh_in_flight_warning(self, sync_command):
        result = runner.invoke(app, ["--no-color", "refresh", "EX-1"])

        assert "already in progress" in result.output
        engine = Mock()
        _action(sync_command)(engine)
        engine.refresh_issue.assert_called_once_with("EX-1")

    @pytest.mark.parametrize("args,method,call_args", [
        (["attachments", "EX-1"], "sync_attachments", ("EX-1",)),
        (["projects"], "sync_projects", ()),
        (["boards"], "sync_boards", ()),
        (["board-issues", "7", "--limit", "3"], "sync_board_issues", ("7", 3)),
        (["headonly", "--jql", "project = EX"], "sync_issues_headonly", ("project = EX",)),
    ])
    def test_engine_operations(self, sync_command, args, method, call_args):
        result = runner.invoke(app, args)

        assert result.exit_code == ExitCode.SUCCESS
        engine = Mock()
        _action(sync_command)(engine)
        getattr(engine, method).assert_called_once_with(*call_args)


class TestMutationCommands:
    """Test cases for push, comment, create and worklogs."""

    def test_worklogs(self, sync_command):
        sync_command.return_value.result = WorklogReconcileResult(
            issue_key="EX-5", updated=["10010"], entries=2
        )

        result = runner.invoke(app, ["--no-color", "worklogs", "EX-5"])

        assert result.exit_code == ExitCode.SUCCESS
        assert "Updated: 10010" in result.output

    def test_worklogs_with_failures(self, sync_command):
        sync_command.return_value.result = WorklogReconcileResult(
            issue_key="EX-5", failed=[("update 10010", "rejected")]
        )

        result = runner.invoke(app, ["--no-color", "worklogs", "EX-5"])

        assert result.exit_code == ExitCode.PARTIAL_FAILURE

    def test_push(self, sync_command):
        sync_command.return_value.result = {'summary': 'Fix', 'labels': []}

        result = runner.invoke(app, ["--no-color", "push", "EX-1"])

        assert result.exit_code == ExitCode.SUCCESS
        assert "Updated summary, labels of EX-1" in result.output

    def test_comment_add(self, sync_command):
        sync_command.return_value.result = Mock(id="200")

        result = runner.invoke(app, ["--no-color", "comment", "EX-1", "Shipped."])

        assert "Comment 200 saved on EX-1" in result.output
        engine = Mock()
        _action(sync_command)(engine)
        engine.add_comment.assert_called_once_with("EX-1", "Shipped.")

    def test_comment_edit(self, sync_command):
        sync_command.return_value.result = Mock(id="200")

        runner.invoke(app, ["comment", "EX-1", "Edited", "--id", "200"])

        engine = Mock()
        _action(sync_command)(engine)
        engine.edit_comment.assert_called_once_with("EX-1", "200", "Edited")

    def test_create(self, sync_command):
        sync_command.return_value.result = Mock(key="EX-3")

        result = runner.invoke(
            app, ["--no-color", "create", "EX", "Task", "New thing", "--description", "Details"]
        )

        assert "Created EX-3" in result.output
        engine = Mock()
        _action(sync_command)(engine)
        engine.create_issue.assert_called_once_with("EX", "Task", "New thing", "Details")


class TestInitCommand:
    """Test cases for the init command."""

    @patch('src.cli.main.InitCommand')
    def test_init_success(self, mock_init_cls):
        mock_init_cls.return_value.config_path = ".org-jira-sync/config.yaml"
        mock_init_cls.return_value.project_count = 2

        result = runner.invoke(app, ["--no-color", "init", "--dir", "~/org", "--timezone", "UTC"])

        assert result.exit_code == ExitCode.SUCCESS
        assert "initialized successfully" in result.output
        mock_init_cls.return_value.run.assert_called_once_with(
            "~/org", default_jql=None, timezone="UTC", verify=True
        )

    @patch('src.cli.main.InitCommand')
    def test_init_failure(self, mock_init_cls):
        mock_init_cls.return_value.run.side_effect = InitError("already exists")

        result = runner.invoke(app, ["--no-color", "init", "--dir", "~/org", "--no-verify"])

        assert result.exit_code == ExitCode.GENERAL_ERROR
        assert "already exists" in result.output

    def test_init_requires_dir(self):
        result = runner.invoke(app, ["init"])

        assert result.exit_code != 0


class TestSearch:
    """Test cases for the search command and the interactive picker."""

    def test_search_prints_matches(self, sync_command):
        sync_command.return_value.result = [
            SearchEntry(key="EX-1", summary="Fix login", properties={}, path="/org/EX.org")
        ]

        result = runner.invoke(app, ["--no-color", "search", "login"])

        assert result.exit_code == ExitCode.SUCCESS
        assert "EX-1" in result.output

    def test_interactive_search_prints_location(self, sync_command):
        sync_command.return_value.result = "/org/EX.org:10"

        result = runner.invoke(app, ["search", "-i"])

        assert "/org/EX.org:10" in result.output
        assert sync_command.return_value.run.call_args[1]["interactive"] is True

    def test_pick_returns_file_and_line(self, tmp_path):
        (tmp_path / "EX.org").write_text(
            "* EX-Tickets\n"
            "** TODO Fix login\n:PROPERTIES:\n:CUSTOM_ID: EX-1\n:END:\n"
            "** TODO Deploy pipeline\n:PROPERTIES:\n:CUSTOM_ID: EX-3\n:END:\n",
            encoding='utf-8',
        )
        engine = Mock()
        engine.session.config = SyncConfig(search_debounce_seconds=0)
        engine.search_index = SearchIndex(DocumentStore(str(tmp_path)))
        with EventLoop() as loop:
            engine.session.loop = loop
            with patch('src.cli.main.typer.prompt', return_value="0"):
                location = _pick(engine, Mock(), "deploy")

        assert location == f"{tmp_path / 'EX.org'}:6"
        engine.add_render_listener.assert_called_once()

    def test_pick_empty_answer_quits(self, tmp_path):
        engine = Mock()
        engine.session.config = SyncConfig()
        engine.search_index = SearchIndex(DocumentStore(str(tmp_path)))
        with EventLoop() as loop:
            engine.session.loop = loop
            with patch('src.cli.main.typer.prompt', return_value=""):
                assert _pick(engine, Mock(), "") is None
