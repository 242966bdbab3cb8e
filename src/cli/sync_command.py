"""Command orchestration for the CLI.

SyncCommand loads the configuration, opens a sync session, runs one engine
operation, drives the event loop until every continuation has run, and
translates the outcome into an ExitCode.
"""

import logging
from contextlib import nullcontext
from typing import Any, Callable, Optional

from src.cli.config import ConfigLoader
from src.cli.errors import CLIError, ConfigError, ConfigNotFoundError
from src.cli.models import ExitCode, SyncSummary
from src.cli.output import OutputHandler
from src.jira_client.auth import Authenticator
from src.jira_client.errors import (
    APIAccessError,
    APIUnreachableError,
    InvalidCredentialsError,
    IssueNotFoundError,
    SyncError,
)
from src.outline.errors import IdentityNotFoundError
from src.sync.engine import SyncEngine
from src.sync.models import SyncConfig
from src.sync.session import SyncSession

logger = logging.getLogger(__name__)

Action = Callable[[SyncEngine], Any]
SessionFactory = Callable[[SyncConfig], SyncSession]


class SyncCommand:
    """Runs engine operations with configuration, event loop and error mapping.

    Example:
        >>> output = OutputHandler(verbosity=1)
        >>> cmd = SyncCommand(output_handler=output)
        >>> exit_code = cmd.run(lambda engine: engine.sync_issue_list(), "Syncing issues")
        >>> sys.exit(exit_code)
    """

    def __init__(
        self,
        config_path: str = ConfigLoader.DEFAULT_CONFIG_PATH,
        output_handler: Optional[OutputHandler] = None,
        authenticator: Optional[Authenticator] = None,
        session_factory: Optional[SessionFactory] = None,
    ):
        """Initialize the command with its dependencies.

        Args:
            config_path: Path to configuration YAML file
            output_handler: OutputHandler for terminal output (optional)
            authenticator: Authenticator for the Jira API (optional)
            session_factory: Builds the session from the config (optional, for tests)
        """
        self.config_path = config_path
        self.output_handler = output_handler or OutputHandler()
        self.authenticator = authenticator
        self.session_factory = session_factory
        self.result: Any = None
        self.summary = SyncSummary()

    def _open_session(self, config: SyncConfig) -> SyncSession:
        if self.session_factory is not None:
            return self.session_factory(config)
        return SyncSession.from_config(config, self.authenticator)

    def load_config(self) -> SyncConfig:
        logger.info(f"Loading configuration from {self.config_path}")
        return ConfigLoader.load(self.config_path)

    def run(
        self,
        action: Action,
        description: str = "Working...",
        interactive: bool = False,
    ) -> ExitCode:
        """Run action against a fresh engine and wait for its continuations.

        Args:
            action: Function receiving the engine; its return value is kept
                in self.result
            description: Spinner text
            interactive: Skip the spinner because action reads from the terminal

        Returns:
            ExitCode indicating success or specific failure type
        """
        output = self.output_handler
        try:
            config = self.load_config()
            with self._open_session(config) as session:
                engine = SyncEngine(session)
                status = nullcontext() if interactive else output.spinner(description)
                with status:
                    self.result = action(engine)
                    session.loop.run_until_idle()

                errors = list(session.loop.errors)
                self.summary = SyncSummary.from_reports(engine.reports)

            for error in errors[1:]:
                logger.error(f"Additional failure: {error}")
                output.error(str(error))
            if errors:
                raise errors[0]

            if self.summary.failed:
                return ExitCode.PARTIAL_FAILURE
            return ExitCode.SUCCESS

        except ConfigNotFoundError as e:
            logger.error(f"Configuration error: {e}")
            output.error(str(e))
            output.print("Run 'org-jira-sync init --dir <folder>' to get started.")
            return ExitCode.GENERAL_ERROR

        except ConfigError as e:
            logger.error(f"Configuration error: {e}")
            output.error(f"Configuration error: {e}")
            return ExitCode.GENERAL_ERROR

        except InvalidCredentialsError as e:
            logger.error(f"Authentication failed: {e}")
            output.error(f"Authentication failed: {e}")
            output.info("Check JIRA_URL, JIRA_USER and JIRA_API_TOKEN environment variables")
            return ExitCode.AUTH_ERROR

        except (APIUnreachableError, APIAccessError) as e:
            logger.error(f"API error: {e}")
            output.error(f"API error: {e}")
            output.info("Check your internet connection and try again")
            return ExitCode.NETWORK_ERROR

        except IdentityNotFoundError as e:
            logger.error(f"Missing section: {e}")
            output.error(f"{e}. Sync the issue first.")
            return ExitCode.IDENTITY_NOT_FOUND

        except IssueNotFoundError as e:
            logger.error(f"Issue not found: {e}")
            output.error(str(e))
            return ExitCode.GENERAL_ERROR

        except (CLIError, SyncError, ValueError) as e:
            logger.error(f"Command failed: {e}")
            output.error(f"Error: {e}")
            return ExitCode.GENERAL_ERROR

        except Exception as e:
            logger.exception("Unexpected error during sync")
            output.error(f"Unexpected error: {e}")
            return ExitCode.GENERAL_ERROR
