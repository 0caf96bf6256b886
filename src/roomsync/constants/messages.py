"""Constants for log messages, errors, prompts and CLI output."""

__all__ = [
    "ERROR_CONFIG_NOT_FOUND",
    "ERROR_INVALID_YAML",
    "ERROR_MISSING_HOMESERVER",
    "ERROR_NO_CREDENTIALS",
    "ERROR_ENCRYPTION_UNSUPPORTED",
    "ERROR_NOT_LOGGED_IN",
    "CLI_DESCRIPTION",
    "MSG_CONFIG_EXISTS",
    "MSG_DELETE_EXISTING",
    "MSG_GENERATED_CONFIG",
    "MSG_CONFIG_VALID",
    "MSG_NO_ENV_FILE",
    "MSG_LOADING_ENV",
    "PROMPT_HOMESERVER",
    "PROMPT_USERNAME",
    "PROMPT_PASSWORD",
    "PROMPT_LOGIN_AGAIN",
    "RESPONSE_YES_PREFIX",
    "SUCCESS_CONFIG_GENERATED",
    "SUCCESS_LOGIN_COMPLETE",
    "SUCCESS_LOGOUT_COMPLETE",
    "ROOM_NAME_EMPTY",
]

# Error messages
ERROR_CONFIG_NOT_FOUND = "Config file not found"
ERROR_INVALID_YAML = "Invalid YAML in config file"
ERROR_MISSING_HOMESERVER = "No homeserver configured"
ERROR_NO_CREDENTIALS = "No credentials found"
ERROR_ENCRYPTION_UNSUPPORTED = "End-to-end encryption is not supported"
ERROR_NOT_LOGGED_IN = "Not logged in: no access token set"

CLI_DESCRIPTION = "RoomSync - Matrix client with an incremental sync engine"

# CLI messages
MSG_CONFIG_EXISTS = "A config file already exists at:"
MSG_DELETE_EXISTING = "If you want to regenerate it, delete the existing file first."
MSG_GENERATED_CONFIG = "Generated sample config file at: {}"
MSG_CONFIG_VALID = "Configuration is valid: {}"
MSG_NO_ENV_FILE = "No .env file found; relying on process environment"
MSG_LOADING_ENV = "Loading environment variables from"

# Auth prompts
PROMPT_HOMESERVER = "Matrix homeserver (e.g. matrix.org): "
PROMPT_USERNAME = "Matrix username (just the username part, e.g. myusername): "
PROMPT_PASSWORD = "Password: "  # nosec B105
PROMPT_LOGIN_AGAIN = (
    "Do you want to log in again? This will create a new device session. [y/N]: "
)
RESPONSE_YES_PREFIX = "y"

SUCCESS_CONFIG_GENERATED = "Configuration file generated successfully"
SUCCESS_LOGIN_COMPLETE = "Login completed successfully"
SUCCESS_LOGOUT_COMPLETE = "Logout completed successfully"

ROOM_NAME_EMPTY = "Empty room"
