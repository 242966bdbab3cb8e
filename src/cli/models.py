"""Data models for CLI operations.

This module defines all data models used by the CLI module.
All models use dataclasses for clean, type-safe data structures,
following the patterns established in src/sync/models.py.
"""

from dataclasses import dataclass, field
from enum import IntEnum
from typing import List, Tuple

from src.sync.models import RenderReport


class ExitCode(IntEnum):
    """Exit codes for CLI operations.

    These exit codes provide meaningful feedback about the operation result:
    - SUCCESS (0): Operation completed successfully
    - GENERAL_ERROR (1): General error (config issues, validation failures)
    - PARTIAL_FAILURE (2): Some entities could not be rendered or pushed
    - AUTH_ERROR (3): Authentication or authorization failure
    - NETWORK_ERROR (4): Network connectivity or API availability issues
    - IDENTITY_NOT_FOUND (5): An expected outline section is missing

    Example:
        >>> exit_code = ExitCode.SUCCESS
        >>> sys.exit(exit_code)
    """
    SUCCESS = 0
    GENERAL_ERROR = 1
    PARTIAL_FAILURE = 2
    AUTH_ERROR = 3
    NETWORK_ERROR = 4
    IDENTITY_NOT_FOUND = 5


@dataclass
class SyncSummary:
    """Summary of a command's render passes for display to user.

    Attributes:
        rendered_count: Number of sections rendered
        failed: (identity, error message) for each failed entity
        files: Outline files touched

    Example:
        >>> summary = SyncSummary.from_reports(engine.reports)
        >>> print(f"Rendered {summary.rendered_count} sections")
    """
    rendered_count: int = 0
    failed: List[Tuple[str, str]] = field(default_factory=list)
    files: List[str] = field(default_factory=list)

    @property
    def failed_count(self) -> int:
        return len(self.failed)

    @classmethod
    def from_reports(cls, reports: List[RenderReport]) -> "SyncSummary":
        merged = RenderReport()
        for report in reports:
            merged.merge(report)
        return cls(
            rendered_count=len(merged.rendered),
            failed=list(merged.failed),
            files=list(merged.files),
        )
