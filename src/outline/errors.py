"""Typed exception hierarchy for outline document errors.

All exceptions inherit from OutlineError and carry the context needed to
report the failure to the user.
"""

from typing import Optional

from src.jira_client.errors import SyncError


class OutlineError(SyncError):
    """Base exception for all outline document errors."""
    pass


class IdentityNotFoundError(OutlineError):
    """Raised when a section expected to carry an identity is missing.

    Continuing would render into the wrong location, so the current command
    is aborted.
    """

    def __init__(self, identity: str, location: Optional[str] = None):
        message = f"No section with identity '{identity}'"
        if location:
            message += f" in {location}"
        super().__init__(message)
        self.identity = identity
        self.location = location


class RegionError(OutlineError):
    """Raised when a text region is malformed or outside the visible buffer."""

    def __init__(self, start: int, end: int, lower: int, upper: int):
        super().__init__(
            f"Invalid region [{start}, {end}) for visible buffer [{lower}, {upper})"
        )
        self.start = start
        self.end = end
        self.lower = lower
        self.upper = upper


class DocumentFilesystemError(OutlineError):
    """Raised when reading or writing a document file fails."""

    def __init__(self, file_path: str, operation: str, reason: Optional[str] = None):
        message = f"Document operation '{operation}' failed for {file_path}"
        if reason:
            message += f": {reason}"
        super().__init__(message)
        self.file_path = file_path
        self.operation = operation
        self.reason = reason
