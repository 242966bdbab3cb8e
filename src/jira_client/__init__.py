"""Jira client library for org-jira-sync.

This package provides Python abstractions over the Jira REST API: a
credential loader, an API wrapper that returns decoded payloads, and the
cooperative event loop on which asynchronous calls complete.
"""

from .errors import (
    SyncError,
    RemoteCallError,
    InvalidCredentialsError,
    IssueNotFoundError,
    APIUnreachableError,
    APIAccessError,
)

__all__ = [
    "SyncError",
    "RemoteCallError",
    "InvalidCredentialsError",
    "IssueNotFoundError",
    "APIUnreachableError",
    "APIAccessError",
]
