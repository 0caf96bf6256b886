"""Constants for logging configuration."""

__all__ = [
    "COMPONENT_LOGGERS",
    "DEFAULT_LOG_BACKUP_COUNT",
    "DEFAULT_LOG_FILENAME",
    "DEFAULT_LOG_LEVEL",
    "DEFAULT_LOG_SIZE_MB",
    "LOG_LEVELS",
    "LOG_SIZE_BYTES_MULTIPLIER",
]

# External loggers whose level is driven by config["logging"]["debug"]
COMPONENT_LOGGERS = {
    "aiohttp": ("aiohttp", "aiohttp.access", "aiohttp.client"),
}

# Default log settings
DEFAULT_LOG_SIZE_MB = 10
DEFAULT_LOG_BACKUP_COUNT = 5
LOG_SIZE_BYTES_MULTIPLIER = 1024 * 1024
DEFAULT_LOG_FILENAME = "roomsync.log"

# Log levels
LOG_LEVELS = ("critical", "error", "warning", "info", "debug")
DEFAULT_LOG_LEVEL = "info"
