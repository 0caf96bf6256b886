"""Constants for configuration files, environment variables and credentials."""

import os
from pathlib import Path

from .app import APP_NAME

__all__ = [
    "CONFIG_DIR",
    "CONFIG_DIR_PERMISSIONS",
    "CREDENTIALS_FILE",
    "CREDENTIALS_FILE_PERMISSIONS",
    "DEFAULT_CONFIG_FILENAME",
    "DEFAULT_ENV_FILENAME",
    "SAMPLE_CONFIG_FILENAME",
    "CONFIG_KEY_MATRIX",
    "CONFIG_KEY_SYNC",
    "CONFIG_KEY_TRANSPORT",
    "CONFIG_KEY_LOGGING",
    "ENV_MATRIX_HOMESERVER",
    "ENV_MATRIX_USER_ID",
    "ENV_MATRIX_ACCESS_TOKEN",
    "CRED_KEY_HOMESERVER",
    "CRED_KEY_USER_ID",
    "CRED_KEY_ACCESS_TOKEN",
    "CRED_KEY_DEVICE_ID",
]

_CONFIG_HOME = Path(os.environ.get("XDG_CONFIG_HOME") or Path.home() / ".config")

# Paths
CONFIG_DIR = _CONFIG_HOME / APP_NAME
CREDENTIALS_FILE = CONFIG_DIR / "credentials.json"
CONFIG_DIR_PERMISSIONS = 0o700
CREDENTIALS_FILE_PERMISSIONS = 0o600

DEFAULT_CONFIG_FILENAME = "config.yaml"
DEFAULT_ENV_FILENAME = ".env"
SAMPLE_CONFIG_FILENAME = "sample_config.yaml"

# Top-level config sections
CONFIG_KEY_MATRIX = "matrix"
CONFIG_KEY_SYNC = "sync"
CONFIG_KEY_TRANSPORT = "transport"
CONFIG_KEY_LOGGING = "logging"

# Environment variables overriding the config file
ENV_MATRIX_HOMESERVER = "MATRIX_HOMESERVER"
ENV_MATRIX_USER_ID = "MATRIX_USER_ID"
ENV_MATRIX_ACCESS_TOKEN = "MATRIX_ACCESS_TOKEN"  # nosec B105

# Credential keys
CRED_KEY_HOMESERVER = "homeserver"
CRED_KEY_USER_ID = "user_id"
CRED_KEY_ACCESS_TOKEN = "access_token"  # nosec B105
CRED_KEY_DEVICE_ID = "device_id"
