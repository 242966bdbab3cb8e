"""Typed exception hierarchy for Jira-related errors.

This module defines all custom exceptions used by the Jira client library.
All exceptions inherit from the SyncError base class for easy catching and
include descriptive messages with context to help with debugging.

Remote failures are never retried: they propagate to the caller (synchronous
calls) or to the registered continuation (asynchronous calls) and recovery
is left to a manual re-run of the command.
"""

from typing import Optional


class SyncError(Exception):
    """Base exception for all org-jira-sync errors.

    Use this to catch any application-level error from the sync tool.
    """
    pass


class RemoteCallError(SyncError):
    """Base exception for all failures of a call to the Jira service."""
    pass


class InvalidCredentialsError(RemoteCallError):
    """Raised when API credentials are missing, invalid, or rejected."""

    def __init__(self, user: str, endpoint: str, reason: str = ""):
        detail = reason or "API token is invalid"
        super().__init__(f"{detail} (user: {user}, endpoint: {endpoint})")
        self.user = user
        self.endpoint = endpoint
        self.reason = reason


class IssueNotFoundError(RemoteCallError):
    """Raised when a requested issue (or one of its children) does not exist."""

    def __init__(self, issue_key: str):
        super().__init__(f"Issue {issue_key} not found")
        self.issue_key = issue_key


class APIUnreachableError(RemoteCallError):
    """Raised when the Jira API is not available or unreachable."""

    def __init__(self, endpoint: str):
        super().__init__(f"API is not available at {endpoint}")
        self.endpoint = endpoint


class APIAccessError(RemoteCallError):
    """Raised when an API call fails for any other reason."""

    def __init__(self, message: str = "Jira API failure", operation: Optional[str] = None):
        super().__init__(message)
        self.operation = operation
