"""Unit tests for jira_client.auth."""

from unittest.mock import patch

import pytest

from src.jira_client.auth import Authenticator, is_cloud_site, site_root
from src.jira_client.errors import InvalidCredentialsError

ENV = {
    'JIRA_URL': 'https://example.atlassian.net/',
    'JIRA_USER': 'dev@example.com',
    'JIRA_API_TOKEN': 'token',
}


@pytest.fixture
def authenticator():
    with patch('src.jira_client.auth.load_dotenv'):
        yield Authenticator()


class TestAuthenticator:
    """Test cases for loading credentials from the environment."""

    def test_loads_dotenv_on_init(self):
        with patch('src.jira_client.auth.load_dotenv') as mock_load:
            Authenticator()

        mock_load.assert_called_once_with()

    def test_credentials_from_environment(self, authenticator):
        with patch.dict('os.environ', ENV):
            creds = authenticator.get_credentials()

        assert creds.url == 'https://example.atlassian.net'
        assert creds.user == 'dev@example.com'
        assert creds.api_token == 'token'
        assert creds.cloud is True

    def test_self_hosted_site(self, authenticator):
        env = dict(ENV, JIRA_URL='https://jira.example.com/jira/browse/EX-1')
        with patch.dict('os.environ', env):
            creds = authenticator.get_credentials()

        assert creds.url == 'https://jira.example.com/jira'
        assert creds.cloud is False

    @pytest.mark.parametrize("missing", ['JIRA_URL', 'JIRA_USER', 'JIRA_API_TOKEN'])
    def test_missing_variable(self, authenticator, missing):
        env = dict(ENV, **{missing: ''})
        with patch.dict('os.environ', env):
            with pytest.raises(InvalidCredentialsError) as exc_info:
                authenticator.get_credentials()

        assert missing in str(exc_info.value)
        if missing == 'JIRA_USER':
            assert exc_info.value.user == 'unknown'
        if missing == 'JIRA_URL':
            assert exc_info.value.endpoint == 'unknown'

    def test_every_missing_variable_is_reported(self, authenticator):
        env = dict(ENV, JIRA_USER='', JIRA_API_TOKEN='  ')
        with patch.dict('os.environ', env):
            with pytest.raises(InvalidCredentialsError) as exc_info:
                authenticator.get_credentials()

        assert exc_info.value.reason == "Missing environment variable(s): JIRA_USER, JIRA_API_TOKEN"

    def test_invalid_url(self, authenticator):
        env = dict(ENV, JIRA_URL='example.atlassian.net')
        with patch.dict('os.environ', env):
            with pytest.raises(InvalidCredentialsError) as exc_info:
                authenticator.get_credentials()

        assert "http(s) URL" in exc_info.value.reason
        assert exc_info.value.endpoint == 'example.atlassian.net'


class TestSiteRoot:
    """Test cases for URL normalization."""

    @pytest.mark.parametrize("url,expected", [
        ("https://example.atlassian.net", "https://example.atlassian.net"),
        ("https://example.atlassian.net/browse/EX-1", "https://example.atlassian.net"),
        ("https://example.atlassian.net/rest/api/2/issue/EX-1?fields=summary", "https://example.atlassian.net"),
        ("https://example.atlassian.net/jira/software/projects/EX/boards/7", "https://example.atlassian.net"),
        ("http://jira.local:8080/jira/", "http://jira.local:8080/jira"),
    ])
    def test_site_root(self, url, expected):
        assert site_root(url) == expected

    @pytest.mark.parametrize("url", ["", "ftp://example.com", "https://"])
    def test_rejects_non_http_urls(self, url):
        with pytest.raises(ValueError):
            site_root(url)

    @pytest.mark.parametrize("url,cloud", [
        ("https://example.atlassian.net", True),
        ("https://EXAMPLE.jira.com", True),
        ("https://jira.example.com", False),
    ])
    def test_cloud_detection(self, url, cloud):
        assert is_cloud_site(url) is cloud
