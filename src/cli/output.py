"""Terminal output handling using Rich library.

This module provides the OutputHandler class for all CLI terminal output.
Uses Rich library for spinners, colored output, and formatted summaries.
Supports verbosity levels and --no-color flag.
"""

from contextlib import contextmanager
from typing import Iterator, List

from rich.console import Console
from rich.live import Live
from rich.spinner import Spinner
from rich.table import Table

from src.cli.models import SyncSummary
from src.sync.models import SearchEntry, WorklogReconcileResult


class OutputHandler:
    """Handles all terminal output using Rich library.

    Attributes:
        verbosity: Verbosity level (0=summary, 1=info, 2=debug)
        console: Rich Console instance for output

    Example:
        >>> handler = OutputHandler(verbosity=1, no_color=False)
        >>> handler.success("Operation completed")
        >>> with handler.spinner("Fetching issues..."):
        ...     pass
    """

    def __init__(self, verbosity: int = 0, no_color: bool = False):
        """Initialize output handler.

        Args:
            verbosity: Verbosity level (0=summary, 1=info, 2=debug)
            no_color: Disable color output if True
        """
        self.verbosity = verbosity
        self.console = Console(
            force_terminal=not no_color,
            no_color=no_color,
            highlight=False,
        )

    def success(self, message: str) -> None:
        self.console.print(f"[green]✓[/green] {message}")

    def error(self, message: str) -> None:
        self.console.print(f"[red]✗[/red] {message}", style="red")

    def warning(self, message: str) -> None:
        self.console.print(f"[yellow]⚠[/yellow] {message}", style="yellow")

    def info(self, message: str) -> None:
        """Display info message (only if verbosity >= 1)."""
        if self.verbosity >= 1:
            self.console.print(message)

    def debug(self, message: str) -> None:
        """Display debug message (only if verbosity >= 2)."""
        if self.verbosity >= 2:
            self.console.print(f"[dim]{message}[/dim]")

    def print(self, message: str) -> None:
        self.console.print(message)

    @contextmanager
    def spinner(self, message: str) -> Iterator[None]:
        """Display spinner while a command waits for Jira.

        Example:
            >>> with handler.spinner("Fetching issues..."):
            ...     loop.run_until_idle()
        """
        spinner = Spinner("dots", text=message)
        with Live(spinner, console=self.console, refresh_per_second=10):
            yield

    def print_summary(self, summary: SyncSummary) -> None:
        """Display render summary with color coding."""
        self.console.print("\n[bold]Sync Summary:[/bold]")

        if summary.rendered_count > 0:
            self.console.print(f"  [blue]↓[/blue] Rendered: {summary.rendered_count} section(s)")

        if summary.failed_count > 0:
            self.console.print(f"  [red]✗[/red] Failed: {summary.failed_count}")
            for identity, reason in summary.failed:
                self.console.print(f"    • {identity}: {reason}")

        for path in summary.files:
            self.debug(f"  wrote {path}")

        if summary.rendered_count == 0 and summary.failed_count == 0:
            self.console.print("\n[yellow]Nothing to render[/yellow]")
        elif summary.failed_count > 0:
            self.console.print("\n[red]Sync completed with failures[/red]")
        else:
            self.console.print("\n[green]Sync completed successfully[/green]")

    def print_worklog_result(self, result: WorklogReconcileResult) -> None:
        """Display the outcome of a worklog reconciliation."""
        self.console.print(f"\n[bold]Worklogs of {result.issue_key}:[/bold]")

        if result.updated:
            self.console.print(f"  [green]↑[/green] Updated: {', '.join(result.updated)}")

        if result.created:
            self.console.print(f"  [green]+[/green] Created: {', '.join(result.created)}")

        if result.adopted:
            self.console.print(f"  [blue]≡[/blue] Linked: {', '.join(result.adopted)}")

        if result.unchanged:
            self.console.print(f"  [dim]─[/dim] Unchanged: {len(result.unchanged)}")

        for description, reason in result.failed:
            self.console.print(f"  [red]✗[/red] {description}: {reason}")

        self.console.print(f"\n{result.entries} clock entr{'y' if result.entries == 1 else 'ies'} written")

    def print_search_results(self, entries: List[SearchEntry], limit: int = 20) -> None:
        """Display search matches as a numbered table."""
        if not entries:
            self.console.print("[yellow]No matches[/yellow]")
            return

        table = Table(show_header=True, header_style="bold")
        table.add_column("#", justify="right")
        table.add_column("Key")
        table.add_column("Summary")
        table.add_column("File", style="dim")
        for number, entry in enumerate(entries[:limit]):
            table.add_row(str(number), entry.key, entry.summary, entry.path)
        self.console.print(table)

        if len(entries) > limit:
            self.console.print(f"[dim]… {len(entries) - limit} more[/dim]")
