"""Test fixtures for org-jira-sync unit tests.

This module provides sample Jira payloads (issues, comments, worklogs,
attachments, projects, boards) in the shapes the REST API returns.
"""

from .jira_payloads import (
    LEGACY_REFERENCE_LISTS,
    make_attachment,
    make_board,
    make_comment,
    make_issue,
    make_legacy_issue,
    make_project,
    make_worklog,
)

__all__ = [
    "LEGACY_REFERENCE_LISTS",
    "make_attachment",
    "make_board",
    "make_comment",
    "make_issue",
    "make_legacy_issue",
    "make_project",
    "make_worklog",
]
