"""Provides functions for loading and accessing configuration settings.

Supports loading from .env files, environment variables, and a dedicated
configuration file (~/.wikiipsum/config.yaml). Command-line flags always
win over anything loaded here; these values only fill in what was not given.
"""

import logging
import math
import os
from pathlib import Path
from typing import Any, Dict, Optional

import yaml
from dotenv import load_dotenv

from wikiipsum.infrastructure.wikipedia.summary_client import (
    DEFAULT_REQUEST_TIMEOUT_S,
    SUMMARY_URL_TEMPLATE,
)

logger = logging.getLogger(__name__)

# --- Configuration Constants ---
DEFAULT_CONFIG_DIR = Path.home() / ".wikiipsum"
DEFAULT_CONFIG_FILE = DEFAULT_CONFIG_DIR / "config.yaml"
ENV_FILE_NAME = ".env"
ENV_PREFIX = "WIKIIPSUM_"

# Maximum request rate the Wikipedia REST API allows per client.
MAX_RATE_LIMIT = 200.0

# --- Global Configuration Store ---
_config: Dict[str, Any] = {}
_test_config: Dict[str, Any] = {}
_loaded = False


def load_configuration(config_file: Optional[Path] = None, env_file: Optional[Path] = None) -> None:
    """Loads configuration from environment, .env file, and YAML file.

    Priority order (highest to lowest):
    1. Environment Variables
    2. .env file
    3. YAML configuration file
    4. Default values passed to get_config

    Args:
        config_file: Path to the YAML configuration file (defaults to DEFAULT_CONFIG_FILE).
        env_file: Path to the .env file (searches upwards from cwd if None).
    """
    global _config, _loaded
    if _loaded:
        logger.debug("Configuration already loaded.")
        return

    _config = {}
    config_file = config_file or DEFAULT_CONFIG_FILE

    # 1. YAML file (lowest priority)
    if config_file.exists():
        try:
            with open(config_file, 'r') as f:
                yaml_config = yaml.safe_load(f)
            if isinstance(yaml_config, dict):
                _config.update(_flatten(yaml_config))
                logger.info(f"Loaded configuration from YAML: {config_file}")
            elif yaml_config is not None:
                logger.warning(f"YAML config file {config_file} did not contain a dictionary.")
        except (OSError, yaml.YAMLError) as e:
            logger.error(f"Failed to load or parse YAML config {config_file}: {e}")
    else:
        logger.debug(f"YAML config file not found: {config_file}")

    # 2. .env file; override=False keeps real environment variables on top
    dotenv_path = env_file or find_dotenv_path()
    if dotenv_path:
        if load_dotenv(dotenv_path=dotenv_path, override=False):
            logger.info(f"Loaded environment variables from: {dotenv_path}")
    else:
        logger.debug("Skipping .env file loading (no file found).")

    _loaded = True
    logger.info("Configuration loading process completed.")


def _flatten(data: Dict[str, Any], prefix: str = "") -> Dict[str, Any]:
    """Flattens nested YAML mappings into dotted keys ('logging': {'level': x} -> 'logging.level')."""
    flat: Dict[str, Any] = {}
    for key, value in data.items():
        full_key = f"{prefix}{key}"
        if isinstance(value, dict):
            flat.update(_flatten(value, prefix=f"{full_key}."))
        else:
            flat[full_key] = value
    return flat


def _coerce(value: str) -> Any:
    if value.lower() == 'true':
        return True
    if value.lower() == 'false':
        return False
    try:
        if '.' in value:
            return float(value)
        return int(value)
    except ValueError:
        return value


def env_var_name(key: str) -> str:
    """Environment variable that overrides `key`, e.g. 'logging.level' -> WIKIIPSUM_LOGGING_LEVEL."""
    return f"{ENV_PREFIX}{key.upper().replace('.', '_').replace('-', '_')}"


def get_config(key: str, default: Any = None) -> Any:
    """
    Get a configuration value by key.

    Priority:
    1. Test configuration (if in testing mode)
    2. Environment variable (WIKIIPSUM_<KEY>)
    3. YAML config
    4. Default value

    Args:
        key: The configuration key
        default: Default value if the key is not found

    Returns:
        The configuration value
    """
    if key in _test_config:
        return _test_config[key]

    env_key = env_var_name(key)
    if env_key in os.environ:
        return _coerce(os.environ[env_key])

    if key in _config:
        return _config[key]

    logger.debug(f"Config key '{key}' not found in environment or loaded config. Returning default: {default}")
    return default


def find_dotenv_path() -> Optional[Path]:
    """Searches for the .env file upwards from the current directory."""
    cwd = Path.cwd()
    for path in [cwd] + list(cwd.parents):
        env_path = path / ENV_FILE_NAME
        if env_path.is_file():
            return env_path
    return None

# --- Convenience Functions ---

def get_user_agent() -> Optional[str]:
    """User-Agent contact info for API calls."""
    value = get_config('user_agent')
    return str(value) if value else None


def get_lang() -> Optional[str]:
    """Wikipedia language code, e.g. 'en'."""
    value = get_config('lang')
    return str(value) if value else None


def get_number(key: str, default: float) -> float:
    """Reads a numeric setting.

    Raises:
        ValueError: If the configured value is not a number, naming the
            setting and its environment variable.
    """
    value = get_config(key, default)
    try:
        return float(value)
    except (TypeError, ValueError):
        raise ValueError(
            f"setting '{key}' ({env_var_name(key)}) must be a number, got {value!r}"
        ) from None


def get_rate_limit() -> float:
    """Requested rate in requests per second; 0 means 'as fast as allowed'."""
    return get_number('rate', 0.0)


def get_max_rate() -> float:
    maximum = get_number('max_rate', MAX_RATE_LIMIT)
    if not (maximum > 0 and math.isfinite(maximum)):
        raise ValueError(f"setting 'max_rate' must be a positive number, got {maximum!r}")
    return maximum


def get_request_timeout() -> float:
    """Per-request network timeout in seconds."""
    return get_number('request_timeout', DEFAULT_REQUEST_TIMEOUT_S)


def get_summary_url_template() -> str:
    return str(get_config('summary_url_template', SUMMARY_URL_TEMPLATE))


def build_summary_url(lang: str) -> str:
    """Formats the random summary endpoint for a language code."""
    return get_summary_url_template().format(lang=lang)


def resolve_rate_limit(requested: float, maximum: float = MAX_RATE_LIMIT) -> float:
    """Clamps a requested rate into (0, maximum].

    Non-positive, too-large and NaN rates become the maximum.
    """
    if not 0 < requested <= maximum:
        if requested > maximum:
            logger.warning(f"Rate {requested:g} req/s exceeds the maximum, using {maximum:g} req/s.")
        return maximum
    return requested


def set_config_for_testing(config_dict: Dict[str, Any]) -> None:
    """
    Set configuration values for testing purposes.
    These values will override any existing configuration.

    Args:
        config_dict: Dictionary of configuration values to set
    """
    _test_config.update(config_dict)
    logger.debug(f"Set testing configuration: {config_dict}")


def clear_test_config() -> None:
    """Clear all testing configuration values."""
    _test_config.clear()
    logger.debug("Cleared testing configuration")
