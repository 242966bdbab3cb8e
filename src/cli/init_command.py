"""InitCommand for configuration initialization.

This module implements the init command that creates the sync configuration
and the working directory, after checking the Jira credentials.
"""

import logging
import os
from typing import Optional

from src.jira_client.api_wrapper import APIWrapper
from src.jira_client.auth import Authenticator
from src.jira_client.errors import RemoteCallError
from src.sync.models import SyncConfig

from .config import ConfigLoader
from .errors import CLIError, InitError

logger = logging.getLogger(__name__)


class InitCommand:
    """Handles initialization of sync configuration.

    Example:
        >>> init = InitCommand()
        >>> init.run(working_dir="~/org/jira", timezone="Europe/Berlin")
    """

    DEFAULT_CONFIG_PATH = ConfigLoader.DEFAULT_CONFIG_PATH

    def __init__(
        self,
        api_wrapper: Optional[APIWrapper] = None,
        config_path: Optional[str] = None
    ):
        """Initialize the init command.

        Args:
            api_wrapper: Optional APIWrapper instance for testing
            config_path: Optional config file path (defaults to .org-jira-sync/config.yaml)
        """
        self.api_wrapper = api_wrapper
        self.config_path = config_path or self.DEFAULT_CONFIG_PATH
        self.project_count = 0

    def _get_api_wrapper(self) -> APIWrapper:
        if self.api_wrapper is None:
            self.api_wrapper = APIWrapper(Authenticator())
        return self.api_wrapper

    def _check_config_exists(self) -> None:
        """Check if config file already exists.

        Raises:
            InitError: If config file already exists
        """
        if os.path.exists(self.config_path):
            raise InitError(
                f"Configuration file already exists at {self.config_path}\n"
                "Please delete it first if you want to reinitialize."
            )

    def _verify_credentials(self) -> int:
        """Fetch the project list once to check URL and credentials.

        Returns:
            Number of visible projects

        Raises:
            InitError: If the credentials are missing or rejected
        """
        try:
            projects = self._get_api_wrapper().get_projects()
        except RemoteCallError as e:
            raise InitError(
                f"Could not connect to Jira: {e}\n"
                "Please ensure JIRA_URL, JIRA_USER, and JIRA_API_TOKEN "
                "environment variables are set."
            )
        logger.info(f"Credentials valid, {len(projects)} project(s) visible")
        return len(projects)

    def _create_directories(self, working_dir: str) -> None:
        """Create the config directory and the working directory.

        Raises:
            InitError: If directory creation fails
        """
        for directory in (os.path.dirname(self.config_path), working_dir):
            if not directory:
                continue
            try:
                os.makedirs(directory, exist_ok=True)
                logger.info(f"Created directory: {directory}")
            except OSError as e:
                raise InitError(f"Failed to create directory {directory}: {str(e)}")

    def run(
        self,
        working_dir: str,
        default_jql: Optional[str] = None,
        timezone: Optional[str] = None,
        verify: bool = True,
    ) -> SyncConfig:
        """Run the init command to create sync configuration.

        Args:
            working_dir: Directory for the outline files
            default_jql: Query used by "sync" when none is given
            timezone: Zone name for local timestamps
            verify: Check the credentials against Jira first

        Returns:
            The saved configuration

        Raises:
            InitError: If initialization fails at any step
        """
        self._check_config_exists()

        config = SyncConfig(working_dir=os.path.normpath(os.path.expanduser(working_dir)))
        if default_jql:
            config.default_jql = default_jql
        if timezone:
            config.timezone = timezone
        try:
            # Round trip through the parser so invalid values are rejected early
            config = ConfigLoader._parse_config(vars(config))
        except CLIError as e:
            raise InitError(str(e))

        if verify:
            self.project_count = self._verify_credentials()

        self._create_directories(config.working_dir)

        try:
            ConfigLoader.save(self.config_path, config)
        except CLIError as e:
            raise InitError(f"Failed to save configuration: {str(e)}")

        logger.info(f"Configuration saved to {self.config_path}")
        return config
