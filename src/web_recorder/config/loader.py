"""
Config Loader - Layer configuration sources into one Settings object.

Sources, highest priority first:
    1. Explicit overrides (CLI options, keyword arguments)
    2. Environment variables (WEB_RECORDER__SECTION__KEY), including .env files
    3. YAML config file
    4. Defaults
"""

import os
from pathlib import Path
from typing import Any, Dict, Optional, Union

import yaml
from dotenv import load_dotenv
from pydantic import ValidationError

from web_recorder.config.settings import Settings, deep_merge
from web_recorder.exceptions import ConfigurationError

# Points at a config file when no explicit path is given
CONFIG_PATH_ENV = "WEB_RECORDER_CONFIG"

DEFAULT_CONFIG_PATHS = [
    Path("web-recorder.yaml"),
    Path("web-recorder.yml"),
    Path("config/web-recorder.yaml"),
    Path.home() / ".config" / "web-recorder" / "config.yaml",
]

DEFAULT_ENV_FILES = [Path(".env"), Path(".env.local")]


class ConfigLoader:
    """
    Builds Settings from a YAML file, the environment and overrides.

    ``Settings(**values)`` lets constructor values win over environment
    variables, so the file layer cannot simply be passed to the constructor.
    The loader instead collects each layer as a dict and merges them in
    priority order before validating once.
    """

    def __init__(self, config_path: Optional[Union[str, Path]] = None):
        self.config_path = Path(config_path) if config_path else None

    def find_config_file(self) -> Optional[Path]:
        """
        Locate the config file.

        An explicit path (argument, then ``WEB_RECORDER_CONFIG``) must exist;
        otherwise the first default location that exists is used.

        Raises:
            ConfigurationError: If an explicit path does not exist
        """
        explicit = self.config_path
        if explicit is None and os.environ.get(CONFIG_PATH_ENV):
            explicit = Path(os.environ[CONFIG_PATH_ENV])

        if explicit is not None:
            if not explicit.exists():
                raise ConfigurationError(f"Config file not found: {explicit}", {"path": str(explicit)})
            return explicit

        return next((path for path in DEFAULT_CONFIG_PATHS if path.exists()), None)

    def load_yaml_config(self, path: Path) -> Dict[str, Any]:
        """
        Read a YAML config file. An empty file yields ``{}``.

        Raises:
            ConfigurationError: If the file is not valid YAML or not a mapping
        """
        try:
            with open(path, "r") as f:
                config = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Invalid YAML in {path}: {e}", {"path": str(path)})

        if config is None:
            return {}
        if not isinstance(config, dict):
            raise ConfigurationError(f"Config file {path} must contain a mapping", {"path": str(path)})
        return config

    def load_env_file(self, env_file: Optional[Union[str, Path]] = None) -> None:
        """Export a .env file into the environment (existing variables win)."""
        if env_file:
            load_dotenv(env_file)
            return
        for path in DEFAULT_ENV_FILES:
            if path.exists():
                load_dotenv(path)
                return

    def environment_values(self) -> Dict[str, Any]:
        """Only the values that WEB_RECORDER__* variables actually set."""
        return self._validate({}).model_dump(exclude_unset=True)

    def load(
        self,
        env_file: Optional[Union[str, Path]] = None,
        overrides: Optional[Dict[str, Any]] = None,
    ) -> Settings:
        """
        Load settings from all sources.

        Raises:
            ConfigurationError: If a source is unreadable or a value is invalid
        """
        self.load_env_file(env_file)

        values: Dict[str, Any] = {}
        config_file = self.find_config_file()
        if config_file:
            deep_merge(values, self.load_yaml_config(config_file))
        deep_merge(values, self.environment_values())
        if overrides:
            deep_merge(values, overrides)

        return self._validate(values)

    def _validate(self, values: Dict[str, Any]) -> Settings:
        try:
            return Settings(**values)
        except ValidationError as e:
            raise ConfigurationError(
                f"Invalid configuration: {e}",
                {"error_count": e.error_count()},
            )


def load_config(
    config_path: Optional[Union[str, Path]] = None,
    env_file: Optional[Union[str, Path]] = None,
    **overrides: Any,
) -> Settings:
    """
    Convenience function to load configuration.

    Args:
        config_path: Optional path to config file
        env_file: Optional path to .env file
        **overrides: Section dicts that override every other source

    Returns:
        Complete Settings instance

    Example:
        >>> settings = load_config()
        >>> settings = load_config(config_path="recorder.yaml")
        >>> settings = load_config(server={"port": 9000})
    """
    return ConfigLoader(config_path).load(env_file=env_file, overrides=overrides or None)
