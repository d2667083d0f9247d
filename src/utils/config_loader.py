"""Configuration loader for the recording library sync service."""

import os
import re
from pathlib import Path
from typing import Any, Dict, Optional

import structlog
import yaml
from pydantic import ValidationError

from src.models.config import AppConfig

log = structlog.stdlib.get_logger()

# Isolation levels that let a multi-source scan see sources at different points in time
WEAK_ISOLATION_LEVELS = {"READ UNCOMMITTED", "READ COMMITTED", "AUTOCOMMIT"}


class ConfigurationError(Exception):
    """Raised when configuration is invalid or missing."""

    pass


class ConfigLoader:
    """Loads and validates application configuration from YAML files and environment variables."""

    def __init__(self, config_dir: Optional[Path] = None) -> None:
        """Initialize the ConfigLoader.

        Args:
            config_dir: Directory holding <env>.yaml files; the repository's config/ if None
        """
        self.env_var_pattern = re.compile(r"\$\{([^}]+)\}")
        self.config_dir = config_dir or Path(__file__).parent.parent.parent / "config"

    def load_config(self, config_path: Optional[str] = None) -> AppConfig:
        """Load configuration from YAML file with environment variable overrides.

        Args:
            config_path: Path to the configuration YAML file. If None, uses the APP_ENV file

        Returns:
            AppConfig: Validated application configuration

        Raises:
            ConfigurationError: If configuration is missing, unreadable or invalid
        """
        if config_path is None:
            config_path = self._get_default_config_path()

        log.info("loading_configuration", config_path=config_path)

        config_dict = self._load_yaml_file(config_path)
        config_dict = self._substitute_env_vars(config_dict)

        try:
            app_config = AppConfig(**config_dict)
        except ValidationError as e:
            log.error("configuration_validation_failed", error=str(e))
            raise ConfigurationError(f"Configuration validation failed: {e}") from e

        log.info("configuration_loaded_successfully")
        return app_config

    def _get_default_config_path(self) -> str:
        """Resolve config/<APP_ENV>.yaml, falling back to config/default.yaml."""
        env = os.getenv("APP_ENV", "default")
        config_file = self.config_dir / f"{env}.yaml"

        if not config_file.exists():
            config_file = self.config_dir / "default.yaml"

        if not config_file.exists():
            raise ConfigurationError(
                f"Configuration file not found: {config_file}. "
                f"Please create config/default.yaml or set APP_ENV to a valid environment."
            )

        return str(config_file)

    def _load_yaml_file(self, config_path: str) -> Dict[str, Any]:
        """Load a YAML mapping from disk.

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
            raise ConfigurationError(f"Configuration file is empty: {config_path}")
        if not isinstance(config_dict, dict):
            raise ConfigurationError(f"Configuration file must contain a mapping: {config_path}")

        log.debug("yaml_file_loaded", config_path=config_path)
        return config_dict

    def _substitute_env_vars(self, config: Any) -> Any:
        """Recursively substitute ${VAR_NAME} references with environment values."""
        if isinstance(config, dict):
            return {key: self._substitute_env_vars(value) for key, value in config.items()}
        elif isinstance(config, list):
            return [self._substitute_env_vars(item) for item in config]
        elif isinstance(config, str):
            return self._substitute_env_var_in_string(config)
        else:
            return config

    def _substitute_env_var_in_string(self, value: str) -> str:
        """Expand every ${NAME} reference in value.

        Raises:
            ConfigurationError: If a referenced environment variable is not set
        """
        return self.env_var_pattern.sub(_env_value, value)

    def validate_config(self, config: AppConfig) -> list[str]:
        """Return warnings for settings that load but are risky for sync.

        Args:
            config: Application configuration to validate

        Returns:
            List of warning messages (empty if no warnings)
        """
        warnings = []

        isolation = (config.database.isolation_level or "").upper()
        if isolation in WEAK_ISOLATION_LEVELS:
            warnings.append(
                f"database.isolation_level '{config.database.isolation_level}' is weaker than "
                f"REPEATABLE READ; sources read during one pull may not share a snapshot"
            )

        url = config.database.url
        if url.startswith("sqlite") and (url.rstrip("/") in ("sqlite:", "sqlite:/") or ":memory:" in url):
            warnings.append("database.url points at an in-memory SQLite database")

        if config.logging.log_level.upper() == "DEBUG":
            warnings.append("logging.log_level DEBUG logs every source query result count")

        if warnings:
            log.warning("configuration_validation_warnings", warnings=warnings)

        return warnings


def _env_value(match: re.Match[str]) -> str:
    name = match.group(1)
    env_value = os.getenv(name)
    if env_value is None:
        raise ConfigurationError(
            f"Required environment variable not set: {name}. "
            f"Set {name} in the environment before starting the service."
        )
    return env_value
