"""Application-level constants."""

__all__ = [
    "APP_NAME",
    "APP_DISPLAY_NAME",
    "APP_DESCRIPTION",
    "LOGGER_NAME",
    "EXECUTABLE_NAME",
    "FILE_ENCODING_UTF8",
    "USER_AGENT_PREFIX",
]

# Application constants
APP_NAME = "matrix-roomsync"
APP_DISPLAY_NAME = "Matrix RoomSync"
APP_DESCRIPTION = "Matrix Client-Server API client with an incremental sync engine"
LOGGER_NAME = "RoomSync"

EXECUTABLE_NAME = "roomsync"

# File encoding
FILE_ENCODING_UTF8 = "utf-8"

# Sent as "<prefix>/<version>" unless the caller provides a User-Agent
USER_AGENT_PREFIX = APP_NAME
