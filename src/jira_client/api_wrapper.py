"""API wrapper for the Jira REST API.

This module wraps the atlassian-python-api Jira client and provides error
translation from HTTP exceptions to our typed exception hierarchy. Every
query can run synchronously (callback omitted, the decoded payload is
returned) or asynchronously on the EventLoop (a Future is returned and the
callback receives it on the loop thread once the call completes).

Failed calls are not retried: the typed error is raised to the synchronous
caller or stored in the Future handed to the callback.
"""

import logging
import re
from concurrent.futures import Future
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Union

from atlassian import Jira
from requests.exceptions import ConnectionError, ConnectTimeout, ReadTimeout, Timeout

from .auth import Authenticator
from .dispatcher import Continuation, EventLoop
from .errors import (
    APIAccessError,
    APIUnreachableError,
    InvalidCredentialsError,
    IssueNotFoundError,
)

logger = logging.getLogger(__name__)

# Jira's worklog "started" format (millisecond precision, numeric offset)
JIRA_TIME_FORMAT = "%Y-%m-%dT%H:%M:%S.000%z"

ISSUE_KEY_PATTERN = re.compile(r'^(?:[A-Z][A-Z0-9_]*-\d+|\d+)$')

# Reference lists needed to decode legacy payloads (id -> display name)
REFERENCE_ENDPOINTS = {
    'statuses': 'rest/api/2/status',
    'priorities': 'rest/api/2/priority',
    'issue_types': 'rest/api/2/issuetype',
    'resolutions': 'rest/api/2/resolution',
}


class APIWrapper:
    """Wrapper around atlassian-python-api Jira client with error translation.

    This class provides a thin wrapper over the Jira API client that:
    1. Handles authentication using the Authenticator
    2. Translates HTTP errors to typed exceptions
    3. Runs calls synchronously or hands them to the EventLoop
    4. Returns decoded JSON payloads (dicts and lists) only

    Example:
        >>> api = APIWrapper(Authenticator(), loop=EventLoop())
        >>> issue = api.get_issue("EX-12")
        >>> api.get_worklogs("EX-12", callback=on_worklogs)
    """

    def __init__(self, authenticator: Authenticator, loop: Optional[EventLoop] = None):
        """Initialize the API wrapper.

        Args:
            authenticator: Authenticator instance for loading credentials
            loop: EventLoop used for asynchronous calls (created on demand)
        """
        self._authenticator = authenticator
        self._client: Optional[Jira] = None
        self.loop = loop

    def _get_client(self) -> Jira:
        """Get or lazily create the Jira API client.

        Raises:
            InvalidCredentialsError: If credentials are missing
        """
        if self._client is None:
            creds = self._authenticator.get_credentials()
            self._client = Jira(
                url=creds.url,
                username=creds.user,
                password=creds.api_token,
                cloud=creds.cloud,
                timeout=30,
            )
        return self._client

    def validate_issue_key(self, issue_key: str) -> None:
        """Validate an issue key ("EX-12") or numeric issue id.

        Raises:
            ValueError: If the key is empty or malformed
        """
        if not issue_key or not str(issue_key).strip():
            raise ValueError("issue_key cannot be empty")
        if not ISSUE_KEY_PATTERN.match(str(issue_key).strip()):
            raise ValueError(
                f"Invalid issue key format: '{issue_key}'. "
                f"Expected PROJECT-123 or a numeric id."
            )

    def _sanitize_credentials(self, text: str) -> str:
        """Mask tokens, passwords and e-mail local parts in error text."""
        if not text:
            return text

        sanitized = re.sub(r'://([\w.-]+):([\w.-]+)@', r'://***:***@', text)
        sanitized = re.sub(
            r'Authorization:\s*[^\n\r]+',
            'Authorization: ***REDACTED***',
            sanitized,
            flags=re.IGNORECASE
        )
        sanitized = re.sub(
            r'(Bearer|Basic)\s+[^\s\n\r]+',
            r'\1 ***REDACTED***',
            sanitized,
            flags=re.IGNORECASE
        )
        sanitized = re.sub(
            r'(api_?token|token|password)["\']?\s*[:=]\s*["\']?([^"\'\s&]+)',
            r'\1=***REDACTED***',
            sanitized,
            flags=re.IGNORECASE
        )
        sanitized = re.sub(
            r'\b[\w.-]+@([\w.-]+\.[a-z]{2,})\b',
            r'***@\1',
            sanitized,
            flags=re.IGNORECASE
        )
        return sanitized

    def _status_code(self, exception: Exception) -> Optional[int]:
        if hasattr(exception, 'status_code') and isinstance(exception.status_code, int):
            return exception.status_code
        response = getattr(exception, 'response', None)
        if response is not None and isinstance(getattr(response, 'status_code', None), int):
            return response.status_code
        return None

    def _translate_error(
        self,
        exception: Exception,
        operation: str,
        issue_key: Optional[str] = None,
    ) -> Exception:
        """Translate HTTP exceptions to typed Jira exceptions.

        Args:
            exception: The original exception from the API client
            operation: Description of the operation that failed (for logging)
            issue_key: Issue the operation targeted, if any

        Returns:
            Exception: One of our typed RemoteCallError subclasses
        """
        if isinstance(exception, (Timeout, ConnectTimeout, ReadTimeout, ConnectionError)):
            return APIUnreachableError(endpoint=self._endpoint())

        status_code = self._status_code(exception)
        error_msg = str(exception).lower()

        if status_code == 401 or '401' in error_msg or 'unauthorized' in error_msg:
            creds = self._authenticator.get_credentials()
            return InvalidCredentialsError(user=creds.user, endpoint=creds.url)

        if status_code == 404 or 'does not exist' in error_msg or 'not found' in error_msg:
            return IssueNotFoundError(issue_key=issue_key or "unknown")

        if any(keyword in error_msg for keyword in [
            'connection',
            'timeout',
            'unreachable',
            'failed to connect',
        ]):
            return APIUnreachableError(endpoint=self._endpoint())

        safe_error_msg = self._sanitize_credentials(str(exception))
        logger.error(f"API operation failed: {operation} - {safe_error_msg}")
        return APIAccessError(f"Jira API failure during {operation}", operation=operation)

    def _endpoint(self) -> str:
        try:
            return self._authenticator.get_credentials().url
        except InvalidCredentialsError:
            return "unknown"

    def _dispatch(
        self,
        operation: str,
        call: Callable[[Jira], Any],
        callback: Optional[Continuation],
        issue_key: Optional[str] = None,
    ) -> Union[Any, Future]:
        """Run call synchronously, or on the loop when a callback is given."""

        def _run():
            try:
                return call(self._get_client())
            except InvalidCredentialsError:
                raise
            except Exception as e:
                raise self._translate_error(e, operation, issue_key) from e

        if callback is None:
            logger.debug(f"Calling {operation} synchronously")
            return _run()

        if self.loop is None:
            self.loop = EventLoop()
        logger.debug(f"Submitting {operation}")
        return self.loop.submit(_run, callback=callback)

    @staticmethod
    def format_time(value: datetime) -> str:
        """Format an aware datetime the way Jira expects worklog timestamps."""
        return value.strftime(JIRA_TIME_FORMAT)

    # ------------------------------------------------------------------ queries

    def search_issues(
        self,
        jql: str,
        limit: Optional[int] = None,
        callback: Optional[Continuation] = None,
    ) -> Any:
        """Search issues with a JQL query.

        Returns:
            List of raw issue payloads
        """
        def _call(client: Jira) -> List[Dict[str, Any]]:
            result = client.jql(jql, limit=limit) or {}
            return list(result.get('issues', []))

        return self._dispatch(f"search_issues({jql})", _call, callback)

    def get_issue(self, issue_key: str, callback: Optional[Continuation] = None) -> Any:
        """Fetch a single issue payload."""
        self.validate_issue_key(issue_key)
        return self._dispatch(
            f"get_issue({issue_key})",
            lambda client: client.issue(issue_key),
            callback,
            issue_key,
        )

    def get_comments(self, issue_key: str, callback: Optional[Continuation] = None) -> Any:
        """Fetch all comment payloads of an issue."""
        self.validate_issue_key(issue_key)

        def _call(client: Jira) -> List[Dict[str, Any]]:
            result = client.issue_get_comments(issue_key) or {}
            return list(result.get('comments', []))

        return self._dispatch(f"get_comments({issue_key})", _call, callback, issue_key)

    def get_worklogs(self, issue_key: str, callback: Optional[Continuation] = None) -> Any:
        """Fetch all worklog payloads of an issue."""
        self.validate_issue_key(issue_key)

        def _call(client: Jira) -> List[Dict[str, Any]]:
            result = client.issue_get_worklog(issue_key) or {}
            return list(result.get('worklogs', []))

        return self._dispatch(f"get_worklogs({issue_key})", _call, callback, issue_key)

    def get_attachments(self, issue_key: str, callback: Optional[Continuation] = None) -> Any:
        """Fetch attachment metadata of an issue."""
        self.validate_issue_key(issue_key)

        def _call(client: Jira) -> List[Dict[str, Any]]:
            result = client.issue(issue_key, fields='attachment') or {}
            return list((result.get('fields') or {}).get('attachment') or [])

        return self._dispatch(f"get_attachments({issue_key})", _call, callback, issue_key)

    def get_projects(self, callback: Optional[Continuation] = None) -> Any:
        """Fetch all visible projects."""
        return self._dispatch(
            "get_projects()",
            lambda client: list(client.projects() or []),
            callback,
        )

    def get_boards(self, callback: Optional[Continuation] = None) -> Any:
        """Fetch all agile boards."""
        def _call(client: Jira) -> List[Dict[str, Any]]:
            result = client.get_all_agile_boards() or {}
            return list(result.get('values', []))

        return self._dispatch("get_boards()", _call, callback)

    def get_board_issues(
        self,
        board_id: Union[int, str],
        limit: Optional[int] = None,
        jql: Optional[str] = None,
        callback: Optional[Continuation] = None,
    ) -> Any:
        """Fetch the issues of an agile board, optionally filtered by JQL."""
        params: Dict[str, Any] = {}
        if limit:
            params['maxResults'] = limit
        if jql:
            params['jql'] = jql

        def _call(client: Jira) -> List[Dict[str, Any]]:
            result = client.get(f"rest/agile/1.0/board/{board_id}/issue", params=params) or {}
            return list(result.get('issues', []))

        return self._dispatch(f"get_board_issues({board_id})", _call, callback)

    def get_reference_lists(self, callback: Optional[Continuation] = None) -> Any:
        """Fetch status, priority, issue type and resolution reference lists.

        Returns:
            Dict mapping list name to a list of {"id", "name"} payloads
        """
        def _call(client: Jira) -> Dict[str, List[Dict[str, Any]]]:
            return {
                name: list(client.get(path) or [])
                for name, path in REFERENCE_ENDPOINTS.items()
            }

        return self._dispatch("get_reference_lists()", _call, callback)

    # ---------------------------------------------------------------- mutations

    def create_issue(self, fields: Dict[str, Any], callback: Optional[Continuation] = None) -> Any:
        """Create an issue; returns the {"id", "key"} payload."""
        return self._dispatch(
            "create_issue()",
            lambda client: client.create_issue(fields=fields),
            callback,
        )

    def update_issue(
        self,
        issue_key: str,
        fields: Dict[str, Any],
        callback: Optional[Continuation] = None,
    ) -> Any:
        """Update fields of an existing issue."""
        self.validate_issue_key(issue_key)
        return self._dispatch(
            f"update_issue({issue_key})",
            lambda client: client.update_issue_field(issue_key, fields),
            callback,
            issue_key,
        )

    def add_comment(self, issue_key: str, body: str, callback: Optional[Continuation] = None) -> Any:
        """Add a comment to an issue."""
        self.validate_issue_key(issue_key)
        return self._dispatch(
            f"add_comment({issue_key})",
            lambda client: client.issue_add_comment(issue_key, body),
            callback,
            issue_key,
        )

    def edit_comment(
        self,
        issue_key: str,
        comment_id: str,
        body: str,
        callback: Optional[Continuation] = None,
    ) -> Any:
        """Replace the body of an existing comment."""
        self.validate_issue_key(issue_key)
        return self._dispatch(
            f"edit_comment({issue_key}, {comment_id})",
            lambda client: client.issue_edit_comment(issue_key, comment_id, body),
            callback,
            issue_key,
        )

    def add_worklog(
        self,
        issue_key: str,
        started: datetime,
        duration_seconds: int,
        comment: Optional[str] = None,
        callback: Optional[Continuation] = None,
    ) -> Any:
        """Create a worklog; returns the created worklog payload (with its id)."""
        self.validate_issue_key(issue_key)
        data: Dict[str, Any] = {
            'started': self.format_time(started),
            'timeSpentSeconds': int(duration_seconds),
        }
        if comment:
            data['comment'] = comment
        return self._dispatch(
            f"add_worklog({issue_key})",
            lambda client: client.post(f"rest/api/2/issue/{issue_key}/worklog", data=data),
            callback,
            issue_key,
        )

    def update_worklog(
        self,
        issue_key: str,
        worklog_id: str,
        started: datetime,
        duration_seconds: int,
        comment: Optional[str] = None,
        callback: Optional[Continuation] = None,
    ) -> Any:
        """Update start, duration and comment of an existing worklog."""
        self.validate_issue_key(issue_key)
        data: Dict[str, Any] = {
            'started': self.format_time(started),
            'timeSpentSeconds': int(duration_seconds),
        }
        if comment is not None:
            data['comment'] = comment
        return self._dispatch(
            f"update_worklog({issue_key}, {worklog_id})",
            lambda client: client.put(
                f"rest/api/2/issue/{issue_key}/worklog/{worklog_id}", data=data
            ),
            callback,
            issue_key,
        )
