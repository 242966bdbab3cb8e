"""Main CLI entry point for the org-jira-sync command.

This module provides the Typer application that serves as the entry point
for the org-jira-sync command-line tool. Global options (verbosity, log
directory, colors, config path) live on the app callback; each engine
operation is a subcommand.
"""

import logging
import sys
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Optional, Tuple

import typer

from src.cli.config import ConfigLoader
from src.cli.errors import InitError
from src.cli.init_command import InitCommand
from src.cli.models import ExitCode
from src.cli.output import OutputHandler
from src.cli.sync_command import SyncCommand
from src.sync.engine import SyncEngine
from src.sync.search_index import SearchPicker

__version__ = "0.1.0"

app = typer.Typer(
    name="org-jira-sync",
    help="""Sync Jira issues, comments and worklogs with local org files.

QUICK START:
  org-jira-sync init --dir ~/org/jira          # Initialize
  org-jira-sync sync                           # Fetch issues of the default query
  org-jira-sync refresh EX-12                  # Re-fetch one issue with comments and worklogs
  org-jira-sync worklogs EX-12                 # Push LOGBOOK clocks as worklogs
  org-jira-sync search --interactive           # Find an issue in the local files""",
    add_completion=False,
    rich_markup_mode=None,
    no_args_is_help=False,
)

logger = logging.getLogger(__name__)

GETTING_STARTED_MESSAGE = """init --dir <folder> [--jql <query>] [--timezone <zone>]   # Initialize
sync [--jql <query>] [--limit N]                          # Fetch and render issues
refresh <KEY>                                             # Re-fetch one issue
worklogs <KEY>                                            # Reconcile clocks and worklogs
push <KEY>                                                # Push summary, description, priority, labels
comment <KEY> <BODY> [--id <comment id>]                  # Add or edit a comment
search [QUERY] [--interactive]                            # Search the local files
--help                                                    # Show all commands"""


def _configure_logging(verbosity: int, logdir: Optional[str] = None) -> None:
    """Configure logging based on verbosity level.

    Configures only the 'src' namespace logger to avoid affecting third-party
    libraries. The root logger is left unchanged.

    Args:
        verbosity: Verbosity level (0=WARNING, 1=INFO, 2=DEBUG)
        logdir: Optional directory for log files (creates timestamped log file)
    """
    if verbosity == 0:
        level = logging.WARNING
    elif verbosity == 1:
        level = logging.INFO
    else:
        level = logging.DEBUG

    app_logger = logging.getLogger("src")
    app_logger.setLevel(level)
    for handler in list(app_logger.handlers):
        app_logger.removeHandler(handler)

    date_format = "%Y-%m-%d %H:%M:%S"
    formatter = logging.Formatter("%(asctime)s [%(levelname)8s] %(message)s", datefmt=date_format)

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setLevel(level)
    console_handler.setFormatter(formatter)
    app_logger.addHandler(console_handler)

    if logdir:
        log_path = Path(logdir)
        log_path.mkdir(parents=True, exist_ok=True)

        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        log_file = log_path / f"org-jira-sync_{timestamp}.log"

        file_formatter = logging.Formatter(
            "%(asctime)s - %(name)s - %(levelname)s - %(message)s", datefmt=date_format
        )
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setLevel(level)
        file_handler.setFormatter(file_formatter)
        app_logger.addHandler(file_handler)

        logger.info(f"Logging to file: {log_file}")


def _output(ctx: typer.Context) -> OutputHandler:
    return ctx.obj["output"]


def _execute(
    ctx: typer.Context,
    action: Callable[[SyncEngine], Any],
    description: str,
    interactive: bool = False,
) -> Tuple[ExitCode, SyncCommand]:
    command = SyncCommand(config_path=ctx.obj["config"], output_handler=_output(ctx))
    exit_code = command.run(action, description, interactive=interactive)
    return exit_code, command


def _finish_render(ctx: typer.Context, exit_code: ExitCode, command: SyncCommand) -> None:
    if exit_code in (ExitCode.SUCCESS, ExitCode.PARTIAL_FAILURE):
        _output(ctx).print_summary(command.summary)
    raise typer.Exit(exit_code)


@app.callback(invoke_without_command=True)
def main_callback(
    ctx: typer.Context,
    config: str = typer.Option(
        ConfigLoader.DEFAULT_CONFIG_PATH,
        "--config",
        "-c",
        help="Path to the configuration file",
    ),
    logdir: Optional[str] = typer.Option(
        None,
        "--logdir",
        help="Directory for log files (creates timestamped log file)",
    ),
    verbosity: int = typer.Option(
        0,
        "--verbosity",
        "-v",
        help="Verbosity level: 0=summary, 1=info, 2=debug",
    ),
    no_color: bool = typer.Option(
        False,
        "--no-color",
        help="Disable colored output",
    ),
    version: bool = typer.Option(
        False,
        "--version",
        "-V",
        help="Show version and exit",
    ),
) -> None:
    """Sync Jira issues, comments and worklogs with local org files."""
    if version:
        typer.echo(f"org-jira-sync version {__version__}")
        raise typer.Exit()

    _configure_logging(verbosity, logdir)
    ctx.obj = {
        "config": config,
        "output": OutputHandler(verbosity=verbosity, no_color=no_color),
    }

    if ctx.invoked_subcommand is None:
        typer.echo(GETTING_STARTED_MESSAGE)
        raise typer.Exit()


@app.command()
def init(
    ctx: typer.Context,
    directory: str = typer.Option(..., "--dir", "-d", help="Directory for the org files", metavar="FOLDER"),
    jql: Optional[str] = typer.Option(None, "--jql", help="Default query used by 'sync'"),
    timezone: Optional[str] = typer.Option(None, "--timezone", help="Zone for local timestamps, e.g. Europe/Berlin"),
    no_verify: bool = typer.Option(False, "--no-verify", help="Do not check the credentials against Jira"),
) -> None:
    """Create the configuration file and the working directory."""
    output = _output(ctx)
    try:
        output.info("Initializing sync configuration...")
        output.info(f"  Working directory: {directory}")

        init_cmd = InitCommand(config_path=ctx.obj["config"])
        with output.spinner("Checking Jira credentials..."):
            init_cmd.run(directory, default_jql=jql, timezone=timezone, verify=not no_verify)

        output.success("Configuration initialized successfully")
        output.info(f"  Config file: {init_cmd.config_path}")
        if not no_verify:
            output.info(f"  Visible projects: {init_cmd.project_count}")
        output.info("")
        output.info("Next steps:")
        output.info(f"  1. Review {init_cmd.config_path}")
        output.info("  2. Run 'org-jira-sync sync' to fetch your issues")
        raise typer.Exit(ExitCode.SUCCESS)

    except InitError as e:
        logger.error(f"Initialization failed: {e}")
        output.error(f"Initialization failed: {e}")
        raise typer.Exit(ExitCode.GENERAL_ERROR)

    except typer.Exit:
        raise

    except Exception as e:
        logger.exception("Unexpected error during initialization")
        output.error(f"Unexpected error: {e}")
        raise typer.Exit(ExitCode.GENERAL_ERROR)


@app.command()
def sync(
    ctx: typer.Context,
    jql: Optional[str] = typer.Option(None, "--jql", help="Query instead of the configured default"),
    limit: Optional[int] = typer.Option(None, "--limit", "-n", min=1, help="Maximum number of issues"),
) -> None:
    """Fetch the issues of a query and render them with their comments."""
    exit_code, command = _execute(
        ctx, lambda engine: engine.sync_issue_list(jql, limit), "Syncing issues..."
    )
    _finish_render(ctx, exit_code, command)


@app.command()
def refresh(
    ctx: typer.Context,
    key: str = typer.Argument(..., help="Issue key, e.g. EX-12"),
) -> None:
    """Re-fetch one issue with its comments and worklogs."""
    exit_code, command = _execute(
        ctx, lambda engine: engine.refresh_issue(key), f"Refreshing {key}..."
    )
    if exit_code == ExitCode.SUCCESS and command.result is None:
        _output(ctx).warning(f"A sync of {key} is already in progress")
    _finish_render(ctx, exit_code, command)


@app.command()
def worklogs(
    ctx: typer.Context,
    key: str = typer.Argument(..., help="Issue key, e.g. EX-12"),
) -> None:
    """Reconcile the issue's LOGBOOK clocks with its Jira worklogs."""
    exit_code, command = _execute(
        ctx, lambda engine: engine.reconcile_worklogs(key), f"Reconciling worklogs of {key}..."
    )
    result = command.result
    if exit_code == ExitCode.SUCCESS:
        if result is None:
            _output(ctx).warning(f"A sync of {key} is already in progress")
        else:
            _output(ctx).print_worklog_result(result)
            if result.failed:
                exit_code = ExitCode.PARTIAL_FAILURE
    raise typer.Exit(exit_code)


@app.command()
def push(
    ctx: typer.Context,
    key: str = typer.Argument(..., help="Issue key, e.g. EX-12"),
) -> None:
    """Push the local summary, description, priority and labels of an issue."""
    exit_code, command = _execute(ctx, lambda engine: engine.push_issue(key), f"Pushing {key}...")
    if exit_code == ExitCode.SUCCESS:
        _output(ctx).success(f"Updated {', '.join(command.result)} of {key}")
    raise typer.Exit(exit_code)


@app.command()
def comment(
    ctx: typer.Context,
    key: str = typer.Argument(..., help="Issue key, e.g. EX-12"),
    body: str = typer.Argument(..., help="Comment text"),
    comment_id: Optional[str] = typer.Option(None, "--id", help="Edit this comment instead of adding one"),
) -> None:
    """Add a comment to an issue, or edit one of its comments."""
    if comment_id:
        action = lambda engine: engine.edit_comment(key, comment_id, body)  # noqa: E731
    else:
        action = lambda engine: engine.add_comment(key, body)  # noqa: E731
    exit_code, command = _execute(ctx, action, f"Sending comment to {key}...")
    if exit_code == ExitCode.SUCCESS:
        _output(ctx).success(f"Comment {command.result.id} saved on {key}")
    raise typer.Exit(exit_code)


@app.command()
def create(
    ctx: typer.Context,
    project: str = typer.Argument(..., help="Project key, e.g. EX"),
    issue_type: str = typer.Argument(..., help="Issue type, e.g. Task"),
    summary: str = typer.Argument(..., help="Issue summary"),
    description: str = typer.Option("", "--description", help="Issue description"),
) -> None:
    """Create an issue and render it into its project file."""
    exit_code, command = _execute(
        ctx,
        lambda engine: engine.create_issue(project, issue_type, summary, description),
        f"Creating {project} issue...",
    )
    if exit_code == ExitCode.SUCCESS:
        _output(ctx).success(f"Created {command.result.key}")
    raise typer.Exit(exit_code)


@app.command()
def attachments(
    ctx: typer.Context,
    key: str = typer.Argument(..., help="Issue key, e.g. EX-12"),
) -> None:
    """Render the attachment list of an issue."""
    exit_code, command = _execute(
        ctx, lambda engine: engine.sync_attachments(key), f"Fetching attachments of {key}..."
    )
    _finish_render(ctx, exit_code, command)


@app.command()
def projects(ctx: typer.Context) -> None:
    """Render every visible project into the project list file."""
    exit_code, command = _execute(ctx, lambda engine: engine.sync_projects(), "Fetching projects...")
    _finish_render(ctx, exit_code, command)


@app.command()
def boards(ctx: typer.Context) -> None:
    """Render every agile board into the board list file."""
    exit_code, command = _execute(ctx, lambda engine: engine.sync_boards(), "Fetching boards...")
    _finish_render(ctx, exit_code, command)


@app.command("board-issues")
def board_issues(
    ctx: typer.Context,
    board_id: str = typer.Argument(..., help="Board id from the board list file"),
    limit: Optional[int] = typer.Option(None, "--limit", "-n", min=1, help="Maximum number of issues"),
) -> None:
    """Fetch and render the issues of a board."""
    exit_code, command = _execute(
        ctx,
        lambda engine: engine.sync_board_issues(board_id, limit),
        f"Fetching issues of board {board_id}...",
    )
    _finish_render(ctx, exit_code, command)


@app.command()
def headonly(
    ctx: typer.Context,
    jql: Optional[str] = typer.Option(None, "--jql", help="Query instead of the configured default"),
) -> None:
    """Render matching issues as headlines with properties only."""
    exit_code, command = _execute(
        ctx, lambda engine: engine.sync_issues_headonly(jql), "Fetching issue headlines..."
    )
    _finish_render(ctx, exit_code, command)


def _section_line(document, section) -> int:
    return document.text.count("\n", 0, section.start) + 1


def _pick(engine: SyncEngine, output: OutputHandler, query: str) -> Optional[str]:
    """Prompt loop of an interactive search; returns "path:line" of the choice."""
    config = engine.session.config
    loop = engine.session.loop
    picker = SearchPicker(
        engine.search_index,
        loop,
        refresh_seconds=config.search_refresh_seconds,
        debounce_seconds=config.search_debounce_seconds,
        on_results=output.print_search_results,
    )
    engine.add_render_listener(lambda report: picker.index_changed())

    with picker:
        while True:
            if query:
                picker.type(query)
                loop.run_pending(timeout=picker.debounce_seconds)
            answer = typer.prompt(
                "Refine query, pick a number, or leave empty to quit",
                default="",
                show_default=False,
            ).strip()
            if not answer:
                return None
            if answer.isdigit():
                document, section = picker.select(int(answer))
                return f"{document.path}:{_section_line(document, section)}"
            query = answer


@app.command()
def search(
    ctx: typer.Context,
    query: str = typer.Argument("", help="Words that must all appear in the key or summary"),
    interactive: bool = typer.Option(False, "--interactive", "-i", help="Narrow the results as you type"),
) -> None:
    """Search the identity-bearing sections of the working directory."""
    output = _output(ctx)
    if interactive:
        exit_code, command = _execute(
            ctx, lambda engine: _pick(engine, output, query), "", interactive=True
        )
        if exit_code == ExitCode.SUCCESS and command.result:
            output.print(command.result)
        raise typer.Exit(exit_code)

    def run_search(engine: SyncEngine):
        engine.search_index_snapshot()
        return engine.search_index.search(query)

    exit_code, command = _execute(ctx, run_search, "Indexing org files...")
    if exit_code == ExitCode.SUCCESS:
        output.print_search_results(command.result)
    raise typer.Exit(exit_code)


def main() -> None:
    """Main entry point for the CLI application."""
    app()


if __name__ == "__main__":
    main()
