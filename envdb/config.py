"""
Configuration for envdb.

Values are merged in order: built-in defaults, YAML file, environment.
Environment variables may come from a .env file (python-dotenv).
"""

import copy
import logging
import os
from pathlib import Path
from typing import Any, Dict, Optional

import yaml
from dotenv import find_dotenv, load_dotenv

logger = logging.getLogger(__name__)


class ConfigError(ValueError):
    """Configuration file is unreadable or malformed."""


DEFAULT_CONFIG_PATH = Path("config") / "envdb.yaml"

DEFAULTS: Dict[str, Dict[str, Any]] = {
    "database": {
        "url": "sqlite:///.data/envdb.db",
        "echo": False,
        "busy_timeout_seconds": 30,
    },
    "store": {
        "serialize_upserts": True,
    },
    "reconciler": {
        "continue_on_error": False,
    },
    "reaper": {
        "enabled": False,
        "interval_seconds": 300,
        "skip_online": True,
    },
    "api": {
        "host": "0.0.0.0",
        "port": 8000,
    },
    "logging": {
        "level": "INFO",
    },
}

# env var -> (section, key, cast)
ENV_OVERRIDES = {
    "ENVDB_DATABASE_URL": ("database", "url", str),
    "ENVDB_LOG_LEVEL": ("logging", "level", str),
    "ENVDB_API_HOST": ("api", "host", str),
    "ENVDB_API_PORT": ("api", "port", int),
}


def load_config(config_path: Optional[str] = None) -> Dict[str, Any]:
    """
    Load configuration.

    Args:
        config_path: Path to YAML config file. If None, uses
                     config/envdb.yaml when it exists.

    Returns:
        Dict of config sections.

    Raises:
        ConfigError: File cannot be parsed or is not a mapping of sections.
    """
    config = copy.deepcopy(DEFAULTS)

    path = Path(config_path) if config_path else DEFAULT_CONFIG_PATH
    if path.exists():
        try:
            with open(path) as f:
                file_config = yaml.safe_load(f)
        except (OSError, yaml.YAMLError) as e:
            raise ConfigError(f"Failed to load config from {path}: {e}") from e

        if file_config:
            if not isinstance(file_config, dict):
                raise ConfigError(f"Config {path} must be a mapping, got {type(file_config).__name__}")
            for section, values in file_config.items():
                if not isinstance(values, dict):
                    raise ConfigError(f"Config section '{section}' in {path} must be a mapping")
                config.setdefault(section, {}).update(values)
            logger.info(f"Loaded config from {path}")
    elif config_path:
        logger.warning(f"Config file {path} not found, using defaults")

    load_dotenv(find_dotenv(usecwd=True))
    for env_var, (section, key, cast) in ENV_OVERRIDES.items():
        value = os.getenv(env_var)
        if value is None:
            continue
        try:
            config[section][key] = cast(value)
        except ValueError as e:
            raise ConfigError(f"Invalid value for {env_var}: {value!r}") from e

    return config
