"""Authentication module for loading Jira credentials.

Credentials come from JIRA_URL, JIRA_USER and JIRA_API_TOKEN, read from the
environment or a .env file through python-dotenv. The site URL is validated
and reduced to the site root, so a URL copied from the browser
(".../browse/EX-1") or from the REST docs (".../rest/api/2") works too.
"""

import os
import re
from typing import List, NamedTuple
from urllib.parse import urlsplit, urlunsplit

from dotenv import load_dotenv

from .errors import InvalidCredentialsError

REQUIRED_VARIABLES = ('JIRA_URL', 'JIRA_USER', 'JIRA_API_TOKEN')

CLOUD_HOST_SUFFIXES = ('.atlassian.net', '.jira.com')

# Path suffixes that are not part of the site root
SITE_PATH_PATTERN = re.compile(r'/(?:rest|browse|projects|secure|jira/software)(?:/.*)?$')


class Credentials(NamedTuple):
    """Jira API credentials.

    cloud is False for self-hosted Server / Data Center sites.
    """
    url: str
    user: str
    api_token: str
    cloud: bool = True


def site_root(url: str) -> str:
    """Normalize a Jira URL to its site root.

    Raises:
        ValueError: If url is not an absolute http(s) URL
    """
    parts = urlsplit(url.strip())
    if parts.scheme not in ('http', 'https') or not parts.netloc:
        raise ValueError(f"JIRA_URL must be an http(s) URL, got '{url}'")
    path = SITE_PATH_PATTERN.sub('', parts.path).rstrip('/')
    return urlunsplit((parts.scheme, parts.netloc, path, '', ''))


def is_cloud_site(url: str) -> bool:
    host = (urlsplit(url).hostname or "").lower()
    return host.endswith(CLOUD_HOST_SUFFIXES)


class Authenticator:
    """Loads and validates Jira credentials from environment variables.

    Credentials are never cached or logged.

    Example:
        >>> creds = Authenticator().get_credentials()
        >>> creds.url, creds.cloud
        ('https://example.atlassian.net', True)
    """

    def __init__(self):
        load_dotenv()

    def get_credentials(self) -> Credentials:
        """Get Jira credentials from environment variables.

        Raises:
            InvalidCredentialsError: If variables are missing (all missing
                names are reported at once) or JIRA_URL is not a valid URL
        """
        values = {name: (os.getenv(name) or "").strip() for name in REQUIRED_VARIABLES}
        user = values['JIRA_USER'] or "unknown"
        endpoint = values['JIRA_URL'] or "unknown"

        missing: List[str] = [name for name in REQUIRED_VARIABLES if not values[name]]
        if missing:
            raise InvalidCredentialsError(
                user=user,
                endpoint=endpoint,
                reason=f"Missing environment variable(s): {', '.join(missing)}",
            )

        try:
            url = site_root(values['JIRA_URL'])
        except ValueError as e:
            raise InvalidCredentialsError(user=user, endpoint=endpoint, reason=str(e))

        return Credentials(
            url=url,
            user=values['JIRA_USER'],
            api_token=values['JIRA_API_TOKEN'],
            cloud=is_cloud_site(url),
        )
