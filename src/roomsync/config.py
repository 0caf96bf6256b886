"""
Configuration loading for RoomSync.

The YAML config has ``matrix``, ``sync``, ``transport`` and ``logging``
sections. A ``.env`` file next to the config (or in the working directory)
and the process environment can override the Matrix connection settings.
"""

import logging
import os
from typing import Any, Dict, Optional

import yaml
from dotenv import load_dotenv

from .auth import load_credentials
from .cache import CacheLevel
from .client import MatrixClient
from .constants import (
    CONFIG_KEY_LOGGING,
    CONFIG_KEY_MATRIX,
    CONFIG_KEY_SYNC,
    CONFIG_KEY_TRANSPORT,
    DEFAULT_BAD_SYNC_TIMEOUT_LIMIT_SEC,
    DEFAULT_BAD_SYNC_TIMEOUT_SEC,
    DEFAULT_ENV_FILENAME,
    DEFAULT_RETRY_AFTER_MS,
    DEFAULT_SYNC_FILTER_LIMIT,
    ENV_MATRIX_ACCESS_TOKEN,
    ENV_MATRIX_HOMESERVER,
    ENV_MATRIX_USER_ID,
    ERROR_MISSING_HOMESERVER,
    FILE_ENCODING_UTF8,
    LOGGER_NAME,
    MSG_LOADING_ENV,
    MSG_NO_ENV_FILE,
    SYNC_TIMEOUT_MS,
)
from .errors import ValidationFailure
from .retry import RateLimitPolicy

logger = logging.getLogger(LOGGER_NAME)

DEFAULTS: Dict[str, Dict[str, Any]] = {
    CONFIG_KEY_MATRIX: {
        "homeserver": None,
        "user_id": None,
        "access_token": None,
        "device_id": None,
        "identity": None,
    },
    CONFIG_KEY_SYNC: {
        "timeout_ms": SYNC_TIMEOUT_MS,
        "filter_limit": DEFAULT_SYNC_FILTER_LIMIT,
        "cache_level": "all",
        "bad_sync_timeout": DEFAULT_BAD_SYNC_TIMEOUT_SEC,
        "bad_sync_timeout_limit": DEFAULT_BAD_SYNC_TIMEOUT_LIMIT_SEC,
    },
    CONFIG_KEY_TRANSPORT: {
        "use_authorization_header": True,
        "validate_cert": True,
        "default_429_wait_ms": DEFAULT_RETRY_AFTER_MS,
        "max_rate_limit_retries": None,
    },
    CONFIG_KEY_LOGGING: {},
}


def _with_defaults(config: Dict[str, Any]) -> Dict[str, Any]:
    merged = {}
    for section, defaults in DEFAULTS.items():
        values = config.get(section) or {}
        if not isinstance(values, dict):
            raise ValidationFailure(f"'{section}' must be a mapping in config")
        merged[section] = {**defaults, **values}
    for key, value in config.items():
        merged.setdefault(key, value)
    return merged


def load_config(config_file, log_loading=True) -> Optional[Dict[str, Any]]:
    """
    Load the YAML configuration and fill in defaults for every section.

    Parameters:
        config_file (str | Path): Path to the YAML configuration file.
        log_loading (bool): Log the "Loaded configuration" message.

    Returns:
        dict | None: The merged configuration, or None if the file cannot be read,
        is not valid YAML, or has a malformed section (the reason is logged).
    """
    try:
        with open(config_file, "r", encoding=FILE_ENCODING_UTF8) as f:
            raw = yaml.safe_load(f) or {}
    except (OSError, yaml.YAMLError):
        logger.exception(f"Error loading config from {config_file}")
        return None

    if not isinstance(raw, dict):
        logger.error(f"Config file {config_file} must contain a mapping")
        return None
    try:
        config = _with_defaults(raw)
    except ValidationFailure as e:
        logger.error(f"Invalid configuration in {config_file}: {e}")
        return None

    if log_loading:
        logger.info(f"Loaded configuration from {config_file}")
    return config


def load_environment(config: Dict[str, Any], config_path: Optional[str] = None) -> Dict[str, Any]:
    """
    Apply ``.env`` and environment overrides to the ``matrix`` section.

    The first ``.env`` found next to ``config_path`` or in the working directory is
    loaded; MATRIX_HOMESERVER, MATRIX_USER_ID and MATRIX_ACCESS_TOKEN then take
    precedence over the file values. Returns the updated config.
    """
    env_paths_to_check = []
    if config_path:
        env_paths_to_check.append(
            os.path.join(os.path.dirname(os.path.abspath(config_path)), DEFAULT_ENV_FILENAME)
        )
    env_paths_to_check.append(os.path.join(os.getcwd(), DEFAULT_ENV_FILENAME))

    for env_path in env_paths_to_check:
        if os.path.exists(env_path):
            load_dotenv(env_path)
            logger.debug(f"{MSG_LOADING_ENV} {env_path}")
            break
    else:
        logger.debug(MSG_NO_ENV_FILE)

    matrix = config.setdefault(CONFIG_KEY_MATRIX, dict(DEFAULTS[CONFIG_KEY_MATRIX]))
    overrides = {
        "homeserver": ENV_MATRIX_HOMESERVER,
        "user_id": ENV_MATRIX_USER_ID,
        "access_token": ENV_MATRIX_ACCESS_TOKEN,
    }
    for key, env_name in overrides.items():
        value = os.getenv(env_name)
        if value:
            matrix[key] = value
            logger.debug(f"{env_name} environment variable detected")
    return config


def client_kwargs_from_config(config: Dict[str, Any], use_saved_credentials: bool = True) -> Dict[str, Any]:
    """
    Translate a loaded config into :class:`MatrixClient` keyword arguments.

    Saved credentials (from ``roomsync auth login``) take precedence over the
    token in the config file.

    Raises:
        ValidationFailure: If no homeserver is configured or a value is invalid.
    """
    config = _with_defaults(config)
    matrix = config[CONFIG_KEY_MATRIX]
    sync = config[CONFIG_KEY_SYNC]
    transport = config[CONFIG_KEY_TRANSPORT]

    homeserver = matrix.get("homeserver")
    token = matrix.get("access_token")
    user_id = matrix.get("user_id")

    creds = load_credentials() if use_saved_credentials else None
    if creds and creds.access_token:
        homeserver = creds.homeserver or homeserver
        token = creds.access_token
        user_id = creds.user_id or user_id

    if not homeserver:
        raise ValidationFailure(ERROR_MISSING_HOMESERVER)

    return {
        "base_url": homeserver,
        "token": token,
        "user_id": user_id,
        "valid_cert_check": bool(transport["validate_cert"]),
        "sync_filter_limit": int(sync["filter_limit"]),
        "cache_level": CacheLevel.coerce(sync["cache_level"]),
        "bad_sync_timeout_limit": sync["bad_sync_timeout_limit"],
        "identity": matrix.get("identity"),
        "use_authorization_header": bool(transport["use_authorization_header"]),
        "rate_limit_policy": RateLimitPolicy(
            default_wait_ms=int(transport["default_429_wait_ms"]),
            max_retries=transport["max_rate_limit_retries"],
        ),
    }


def create_client(config: Dict[str, Any], use_saved_credentials: bool = True) -> MatrixClient:
    """Build a :class:`MatrixClient` from a loaded configuration."""
    return MatrixClient(**client_kwargs_from_config(config, use_saved_credentials))
