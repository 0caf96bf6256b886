"""
Logging utilities for RoomSync.

Provides rich console logging with timestamps and optional rotating file
logging. Library modules only call ``logging.getLogger(LOGGER_NAME)``; the CLI
(or an embedding application) calls :func:`configure_logging` and
:func:`get_logger` to attach handlers.
"""

import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path

from rich.console import Console
from rich.logging import RichHandler

from .constants import (
    COMPONENT_LOGGERS as _COMPONENT_LOGGERS,
    DEFAULT_LOG_BACKUP_COUNT,
    DEFAULT_LOG_FILENAME,
    DEFAULT_LOG_SIZE_MB,
    LOG_SIZE_BYTES_MULTIPLIER,
    LOGGER_NAME,
)

console = Console()

# Logging section of the active config; set by configure_logging()
config = None

# Path of the main log file once file logging is set up
log_file_path = None

_component_debug_configured = False


def configure_component_debug_logging():
    """
    Set levels of third-party loggers from ``config["logging"]["debug"]``.

    For each component in COMPONENT_LOGGERS:
    - missing or falsy: silence its loggers (level CRITICAL + 1)
    - True: DEBUG
    - a level name string: that level, DEBUG if the name is invalid

    Runs once per process; a no-op while no config is set.
    """
    global _component_debug_configured

    if _component_debug_configured or config is None:
        return

    debug_config = config.get("logging", {}).get("debug", {}) or {}

    for component, loggers in _COMPONENT_LOGGERS.items():
        component_config = debug_config.get(component)

        if component_config:
            log_level = logging.DEBUG
            if isinstance(component_config, str):
                level = logging.getLevelName(component_config.upper())
                if isinstance(level, int):
                    log_level = level
            for logger_name in loggers:
                logging.getLogger(logger_name).setLevel(log_level)
        else:
            for logger_name in loggers:
                logging.getLogger(logger_name).setLevel(logging.CRITICAL + 1)

    _component_debug_configured = True


def get_log_dir():
    """Return ``<config dir>/logs`` (may not exist yet)."""
    from .auth import get_config_dir

    return get_config_dir() / "logs"


def _max_log_bytes(value):
    # Accepts MB as a number or an explicit byte count like "1048576B"
    if isinstance(value, (int, float)):
        return int(value * LOG_SIZE_BYTES_MULTIPLIER)
    if isinstance(value, str) and value.lower().endswith("b"):
        return int(value[:-1])
    return DEFAULT_LOG_SIZE_MB * LOG_SIZE_BYTES_MULTIPLIER


def get_logger(name):
    """
    Create and configure a logger with console output and optional file logging.

    Parameters:
        name (str): The logger name, usually LOGGER_NAME.

    Returns:
        logging.Logger: The configured logger. Handlers are only attached once.
    """
    logger = logging.getLogger(name=name)
    logging_config = (config or {}).get("logging", {}) or {}

    log_level = logging.INFO
    if "level" in logging_config:
        level = logging.getLevelName(str(logging_config["level"]).upper())
        if isinstance(level, int):
            log_level = level
    color_enabled = logging_config.get("color_enabled", True)

    logger.setLevel(log_level)
    logger.propagate = False

    if logger.handlers:
        return logger

    if color_enabled:
        console_handler = RichHandler(
            rich_tracebacks=True,
            console=console,
            show_time=True,
            show_level=True,
            show_path=False,
            markup=False,
            log_time_format="%Y-%m-%d %H:%M:%S",
            omit_repeated_times=False,
        )
        console_handler.setFormatter(logging.Formatter("%(name)s: %(message)s"))
    else:
        console_handler = logging.StreamHandler()
        console_handler.setFormatter(
            logging.Formatter(
                fmt="%(asctime)s %(levelname)s:%(name)s:%(message)s",
                datefmt="%Y-%m-%d %H:%M:%S",
            )
        )
    logger.addHandler(console_handler)

    # File logging is opt-in for a library
    if logging_config.get("log_to_file", False):
        if logging_config.get("filename"):
            log_file = Path(logging_config["filename"]).expanduser()
        else:
            log_file = get_log_dir() / DEFAULT_LOG_FILENAME

        try:
            log_file.parent.mkdir(parents=True, exist_ok=True)
            file_handler = RotatingFileHandler(
                log_file,
                maxBytes=_max_log_bytes(logging_config.get("max_log_size")),
                backupCount=logging_config.get("backup_count", DEFAULT_LOG_BACKUP_COUNT),
                encoding="utf-8",
            )
            file_handler.setFormatter(
                logging.Formatter(
                    fmt="%(asctime)s %(levelname)s:%(name)s:%(message)s",
                    datefmt="%Y-%m-%d %H:%M:%S",
                )
            )
            logger.addHandler(file_handler)
            if name == LOGGER_NAME:
                global log_file_path
                log_file_path = str(log_file)
        except OSError as e:
            console.print(
                f"[yellow]Warning: Could not create log file at {log_file}: {e}[/yellow]"
            )
            logging.getLogger(__name__).debug(
                "File logging setup failed", exc_info=True
            )

    return logger


def configure_logging(config_dict=None):
    """
    Store the configuration used by :func:`get_logger` and apply component levels.

    Parameters:
        config_dict (dict | None): Full config mapping; only its ``logging`` section is
            read (``level``, ``color_enabled``, ``log_to_file``, ``filename``,
            ``max_log_size``, ``backup_count`` and a per-component ``debug`` mapping).
            None clears the stored configuration.
    """
    global config, _component_debug_configured
    config = config_dict
    _component_debug_configured = False

    configure_component_debug_logging()
