"""Command-line interface for syncing Jira with org files.

This package provides the `org-jira-sync` CLI tool that drives the sync
engine: configuration loading, the event loop, progress indication and the
mapping of failures to exit codes.
"""

from .sync_command import SyncCommand
from .init_command import InitCommand
from .models import ExitCode, SyncSummary
from .errors import (
    CLIError,
    ConfigError,
    ConfigFilesystemError,
    ConfigNotFoundError,
    InitError,
)

__all__ = [
    'SyncCommand',
    'InitCommand',
    'ExitCode',
    'SyncSummary',
    'CLIError',
    'ConfigError',
    'ConfigFilesystemError',
    'ConfigNotFoundError',
    'InitError',
]
