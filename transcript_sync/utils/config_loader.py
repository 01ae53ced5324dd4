"""Configuration loader for the transcript shipper."""

import os
import re
from pathlib import Path
from typing import Any, Dict, Optional

import structlog
import yaml
from pydantic import ValidationError

from transcript_sync.models.config import AppConfig

log = structlog.stdlib.get_logger()


class ConfigurationError(Exception):
    """Raised when configuration is invalid or missing."""

    pass


class ConfigLoader:
    """Loads and validates shipper configuration from YAML files and environment variables."""

    def __init__(self) -> None:
        """Initialize the ConfigLoader."""
        self.env_var_pattern = re.compile(r"\$\{([^}]+)\}")

    def load_config(self, config_path: Optional[str] = None) -> AppConfig:
        """Load configuration from YAML file with environment variable overrides.

        Values set through TRANSCRIPT_SYNC_* environment variables are merged
        by pydantic-settings; values from the YAML file take precedence since
        they are passed as init arguments.

        Args:
            config_path: Path to the configuration YAML file. If None, uses default.yaml

        Returns:
            AppConfig: Validated application configuration

        Raises:
            ConfigurationError: If configuration file is missing or invalid
        """
        if config_path is None:
            config_path = self._get_default_config_path()

        log.info("loading_configuration", config_path=config_path)

        config_dict = self._load_yaml_file(config_path)
        config_dict = self._substitute_env_vars(config_dict)

        try:
            app_config = AppConfig(**config_dict)
            log.info("configuration_loaded_successfully")
            return app_config
        except ValidationError as e:
            log.error("configuration_validation_failed", error=str(e))
            raise ConfigurationError(f"Configuration validation failed: {e}") from e

    def _get_default_config_path(self) -> str:
        """Get the default configuration file path based on environment.

        Returns:
            str: Path to the configuration file
        """
        env = os.getenv("TRANSCRIPT_SYNC_ENV", "default")
        config_dir = Path(__file__).parent.parent.parent / "config"
        config_file = config_dir / f"{env}.yaml"

        if not config_file.exists():
            config_file = config_dir / "default.yaml"

        if not config_file.exists():
            raise ConfigurationError(
                f"Configuration file not found: {config_file}. "
                f"Please create config/default.yaml or set TRANSCRIPT_SYNC_ENV to a valid environment."
            )

        return str(config_file)

    def _load_yaml_file(self, config_path: str) -> Dict[str, Any]:
        """Load YAML configuration file.

        An empty file is accepted and yields the defaults.

        Raises:
            ConfigurationError: If file cannot be read or parsed
        """
        try:
            with open(config_path, "r") as f:
                config_dict = yaml.safe_load(f)
        except FileNotFoundError:
            raise ConfigurationError(f"Configuration file not found: {config_path}")
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Failed to parse YAML file {config_path}: {e}")
        except OSError as e:
            raise ConfigurationError(f"Failed to load configuration file {config_path}: {e}")

        if config_dict is None:
            config_dict = {}
        if not isinstance(config_dict, dict):
            raise ConfigurationError(
                f"Configuration file must contain a mapping at the top level: {config_path}"
            )

        log.debug("yaml_file_loaded", config_path=config_path)
        return config_dict

    def _substitute_env_vars(self, config: Any) -> Any:
        """Recursively substitute environment variables in configuration.

        Environment variables are specified as ${VAR_NAME} in the YAML file.

        Raises:
            ConfigurationError: If a required environment variable is not set
        """
        if isinstance(config, dict):
            return {key: self._substitute_env_vars(value) for key, value in config.items()}
        elif isinstance(config, list):
            return [self._substitute_env_vars(item) for item in config]
        elif isinstance(config, str):
            return self._substitute_env_var_in_string(config)
        else:
            return config

    def _substitute_env_var_in_string(self, value: str) -> str:
        """Substitute ${VAR_NAME} references in a string."""
        matches = self.env_var_pattern.findall(value)

        for var_name in matches:
            env_value = os.getenv(var_name)
            if env_value is None:
                raise ConfigurationError(
                    f"Required environment variable not set: {var_name}. "
                    f"Please set {var_name} in your environment or .env file."
                )
            value = value.replace(f"${{{var_name}}}", env_value)

        return value

    def validate_config(self, config: AppConfig) -> list[str]:
        """Validate configuration and return any warnings.

        Pydantic handles field validation during model creation; this checks
        combinations that are legal but probably unintended.

        Args:
            config: Application configuration to validate

        Returns:
            List of warning messages (empty if no warnings)
        """
        warnings = []

        if not config.backend.is_configured:
            warnings.append("backend_url and api_key must both be set before syncing")

        if (
            config.backend.backend_url.startswith("http://")
            and not config.backend.is_localhost
        ):
            warnings.append(
                f"backend_url '{config.backend.backend_url}' uses plain http for a non-local host"
            )

        if not config.redaction.enabled:
            warnings.append("redaction is disabled: transcripts will be uploaded unscrubbed")
        elif not config.redaction.use_default_patterns and not config.redaction.patterns:
            warnings.append("redaction is enabled but no patterns are configured")

        if warnings:
            log.warning("configuration_validation_warnings", warnings=warnings)

        return warnings
