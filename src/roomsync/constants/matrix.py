"""Constants specific to the Matrix protocol and the sync engine."""

__all__ = [
    "DEFAULT_RETRY_AFTER_MS",
    "DEFAULT_SYNC_FILTER_LIMIT",
    "DEFAULT_BAD_SYNC_TIMEOUT_SEC",
    "DEFAULT_BAD_SYNC_TIMEOUT_LIMIT_SEC",
    "EVENT_BUFFER_SIZE",
    "SYNC_TIMEOUT_MS",
    "LOGIN_TIMEOUT_SEC",
    "MATRIX_DEVICE_NAME",
    "ROOM_ID_SIGIL",
    "ROOM_ALIAS_SIGIL",
    "USER_ID_SIGIL",
    "ID_SERVER_SEPARATOR",
]

DEFAULT_RETRY_AFTER_MS = 5000  # Wait used when a 429 carries no retry_after_ms

DEFAULT_SYNC_FILTER_LIMIT = 20
DEFAULT_BAD_SYNC_TIMEOUT_SEC = 5
DEFAULT_BAD_SYNC_TIMEOUT_LIMIT_SEC = 3600

# Number of timeline events retained per room
EVENT_BUFFER_SIZE = 20

# Timeouts (in milliseconds/seconds)
SYNC_TIMEOUT_MS = 30000
LOGIN_TIMEOUT_SEC = 30

# Device name for Matrix login
MATRIX_DEVICE_NAME = "roomsync"

# Identifier sigils
ROOM_ID_SIGIL = "!"
ROOM_ALIAS_SIGIL = "#"
USER_ID_SIGIL = "@"
ID_SERVER_SEPARATOR = ":"
