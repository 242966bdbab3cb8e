"""YAML configuration loading and validation.

This module handles loading and saving the sync configuration stored in
.org-jira-sync/config.yaml. Every field is optional; missing fields take
the SyncConfig defaults.
"""

import os
from typing import Any, Dict, List

import pytz
import yaml

from src.sync.comment_reconciler import COMMENT_ORDERS
from src.sync.models import SyncConfig

from .errors import ConfigError, ConfigFilesystemError, ConfigNotFoundError


class ConfigLoader:
    """Handles configuration file loading, validation, and saving.

    Configuration file structure:
        working_dir: "~/org/jira"
        default_jql: "assignee = currentUser() AND resolution = Unresolved"
        issue_limit: 100
        project_files:
          EX: "example.org"
        property_overrides:
          assignee: "owner"
        status_keywords:
          "In Progress": "STARTED"
        priority_markers:
          "Major": "A"
        ignored_comment_authors: ["jira-bot"]
        comments_order: "chronological"
        legacy_mode: false
        timezone: "Europe/Berlin"
        search_refresh_seconds: 30
        search_debounce_seconds: 0.3
    """

    DEFAULT_CONFIG_DIR = '.org-jira-sync'
    DEFAULT_CONFIG_FILE = 'config.yaml'
    DEFAULT_CONFIG_PATH = os.path.join(DEFAULT_CONFIG_DIR, DEFAULT_CONFIG_FILE)

    MAPPING_FIELDS = ('project_files', 'property_overrides', 'status_keywords', 'priority_markers')

    @classmethod
    def load(cls, config_path: str = DEFAULT_CONFIG_PATH) -> SyncConfig:
        """Load and parse configuration from a YAML file.

        Args:
            config_path: Path to the YAML configuration file

        Returns:
            SyncConfig object with parsed configuration

        Raises:
            ConfigNotFoundError: If the file does not exist
            ConfigFilesystemError: If the file cannot be read
            ConfigError: If configuration is invalid or malformed
        """
        try:
            with open(config_path, 'r', encoding='utf-8') as f:
                content = f.read()
        except FileNotFoundError:
            raise ConfigNotFoundError(config_path)
        except PermissionError:
            raise ConfigFilesystemError(config_path, 'read', 'Permission denied')
        except OSError as e:
            raise ConfigFilesystemError(config_path, 'read', str(e))

        try:
            config_dict = yaml.safe_load(content)
        except yaml.YAMLError as e:
            raise ConfigError(f"Invalid YAML syntax: {str(e)}")

        if config_dict is None:
            return SyncConfig()

        if not isinstance(config_dict, dict):
            raise ConfigError(
                f"Configuration must be a YAML dictionary, got {type(config_dict).__name__}"
            )

        return cls._parse_config(config_dict)

    @classmethod
    def save(cls, config_path: str, sync_config: SyncConfig) -> None:
        """Save configuration to a YAML file.

        Raises:
            ConfigFilesystemError: If file cannot be written
        """
        config_dict = {
            'working_dir': sync_config.working_dir,
            'default_jql': sync_config.default_jql,
            'issue_limit': sync_config.issue_limit,
            'project_files': dict(sync_config.project_files),
            'property_overrides': dict(sync_config.property_overrides),
            'status_keywords': dict(sync_config.status_keywords),
            'priority_markers': dict(sync_config.priority_markers),
            'ignored_comment_authors': list(sync_config.ignored_comment_authors),
            'comments_order': sync_config.comments_order,
            'legacy_mode': sync_config.legacy_mode,
            'timezone': sync_config.timezone,
            'search_refresh_seconds': sync_config.search_refresh_seconds,
            'search_debounce_seconds': sync_config.search_debounce_seconds,
        }

        yaml_str = yaml.safe_dump(
            config_dict,
            default_flow_style=False,
            allow_unicode=True,
            sort_keys=False
        )

        config_dir = os.path.dirname(config_path)
        if config_dir:
            try:
                os.makedirs(config_dir, exist_ok=True)
            except OSError as e:
                raise ConfigFilesystemError(config_dir, 'create_directory', str(e))

        try:
            with open(config_path, 'w', encoding='utf-8') as f:
                f.write(yaml_str)
        except PermissionError:
            raise ConfigFilesystemError(config_path, 'write', 'Permission denied')
        except OSError as e:
            raise ConfigFilesystemError(config_path, 'write', str(e))

    @classmethod
    def _parse_mapping(cls, value: Any, name: str) -> Dict[str, str]:
        if value is None:
            return {}
        if not isinstance(value, dict):
            raise ConfigError("Field must be a mapping", name)
        return {str(k): str(v) for k, v in value.items()}

    @classmethod
    def _parse_list(cls, value: Any, name: str) -> List[str]:
        if value is None:
            return []
        if not isinstance(value, list):
            raise ConfigError("Field must be a list", name)
        return [str(item) for item in value]

    @classmethod
    def _parse_config(cls, config_dict: Dict[str, Any]) -> SyncConfig:
        """Parse and validate configuration dictionary.

        Raises:
            ConfigError: If configuration is invalid
        """
        defaults = SyncConfig()

        mappings = {
            name: cls._parse_mapping(config_dict.get(name), name)
            for name in cls.MAPPING_FIELDS
        }
        ignored = cls._parse_list(config_dict.get('ignored_comment_authors'), 'ignored_comment_authors')

        try:
            working_dir = str(config_dict.get('working_dir', defaults.working_dir))
            default_jql = str(config_dict.get('default_jql', defaults.default_jql))
            issue_limit = int(config_dict.get('issue_limit', defaults.issue_limit))
            comments_order = str(config_dict.get('comments_order', defaults.comments_order))
            legacy_mode = bool(config_dict.get('legacy_mode', defaults.legacy_mode))
            timezone = str(config_dict.get('timezone', defaults.timezone))
            refresh = float(config_dict.get('search_refresh_seconds', defaults.search_refresh_seconds))
            debounce = float(config_dict.get('search_debounce_seconds', defaults.search_debounce_seconds))
        except (ValueError, TypeError) as e:
            raise ConfigError(f"Invalid field type: {str(e)}")

        if not working_dir.strip():
            raise ConfigError("Field cannot be empty", 'working_dir')

        if issue_limit < 1:
            raise ConfigError(f"Must be at least 1, got {issue_limit}", 'issue_limit')

        if comments_order not in COMMENT_ORDERS:
            raise ConfigError(
                f"Must be one of {', '.join(COMMENT_ORDERS)}, got '{comments_order}'",
                'comments_order'
            )

        if timezone not in pytz.all_timezones_set:
            raise ConfigError(f"Unknown timezone '{timezone}'", 'timezone')

        if refresh <= 0:
            raise ConfigError(f"Must be positive, got {refresh}", 'search_refresh_seconds')

        if debounce < 0:
            raise ConfigError(f"Cannot be negative, got {debounce}", 'search_debounce_seconds')

        return SyncConfig(
            working_dir=os.path.expanduser(working_dir),
            default_jql=default_jql,
            issue_limit=issue_limit,
            project_files=mappings['project_files'],
            property_overrides=mappings['property_overrides'],
            status_keywords=mappings['status_keywords'],
            priority_markers=mappings['priority_markers'],
            ignored_comment_authors=ignored,
            comments_order=comments_order,
            legacy_mode=legacy_mode,
            timezone=timezone,
            search_refresh_seconds=refresh,
            search_debounce_seconds=debounce,
        )
