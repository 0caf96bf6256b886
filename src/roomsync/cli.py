#!/usr/bin/env python3
"""Command-line interface for RoomSync."""

import argparse
import asyncio
import logging
import os
import sys
from typing import Awaitable, TypeVar

from . import __version__
from .auth import interactive_login, interactive_logout, load_credentials
from .config import create_client, load_config, load_environment
from .constants import (
    CLI_DESCRIPTION,
    CONFIG_DIR,
    CONFIG_KEY_SYNC,
    DEFAULT_CONFIG_FILENAME,
    DEFAULT_LOG_LEVEL,
    ERROR_CONFIG_NOT_FOUND,
    ERROR_NO_CREDENTIALS,
    LOG_LEVELS,
    LOGGER_NAME,
    MSG_CONFIG_EXISTS,
    MSG_CONFIG_VALID,
    MSG_DELETE_EXISTING,
    MSG_GENERATED_CONFIG,
    SUCCESS_CONFIG_GENERATED,
    SUCCESS_LOGIN_COMPLETE,
    SUCCESS_LOGOUT_COMPLETE,
)
from .errors import MatrixError, ValidationFailure
from .log_utils import configure_logging, get_logger
from .tools import copy_sample_config_to

logger = logging.getLogger(LOGGER_NAME)

# Wrapper to ease testing (tests can patch roomsync.cli.run_async)
T = TypeVar("T")


def run_async(coro: Awaitable[T]) -> T:
    """Run a coroutine to completion with asyncio.run and return its result."""
    return asyncio.run(coro)


def get_default_config_path():
    return CONFIG_DIR / DEFAULT_CONFIG_FILENAME


def generate_config(config_path):
    """
    Copy the bundled sample config to config_path with owner-only permissions.

    Returns:
        bool: True if a new file was written, False if one already existed.
    """
    config_path = str(config_path)
    if os.path.exists(config_path):
        print(MSG_CONFIG_EXISTS)
        print(f"  {config_path}")
        print(MSG_DELETE_EXISTING)
        return False

    os.makedirs(os.path.dirname(config_path) or os.getcwd(), exist_ok=True)
    written = copy_sample_config_to(config_path)
    os.chmod(written, 0o600)

    print(MSG_GENERATED_CONFIG.format(written))
    print("📝 Edit the homeserver, then run 'roomsync auth login' to authenticate.")
    print(SUCCESS_CONFIG_GENERATED)
    return True


def validate_config(config_path) -> bool:
    """Load config_path and check it can produce a client; prints the outcome."""
    if not os.path.exists(config_path):
        print(f"{ERROR_CONFIG_NOT_FOUND}: {config_path}")
        return False
    config = load_config(config_path, log_loading=False)
    if config is None:
        return False
    config = load_environment(config, str(config_path))
    try:
        create_client(config, use_saved_credentials=True)
    except ValidationFailure as e:
        print(f"Invalid configuration: {e}")
        return False
    print(MSG_CONFIG_VALID.format(config_path))
    return True


def show_auth_status() -> bool:
    creds = load_credentials()
    if not creds:
        print(f"🔑 {ERROR_NO_CREDENTIALS}. Run 'roomsync auth login'.")
        return False
    print(f"🔑 Logged in as {creds.user_id} on {creds.homeserver}")
    if creds.device_id:
        print(f"   Device: {creds.device_id}")
    return True


async def listen(config) -> None:
    """Resume the configured session and log every timeline event until interrupted."""
    client = create_client(config)
    log = get_logger(LOGGER_NAME)

    def on_event(event):
        sender = event.get("sender", "?")
        log.info(f"{event.get('room_id')} {event.get('type')} from {sender}")

    def on_error(exc):
        log.error(f"Sync error: {exc}")

    client.add_listener(on_event)
    async with client:
        if client.token is None:
            raise MatrixError(ERROR_NO_CREDENTIALS)
        await client.restore_login(client.token, client.user_id, sync=False)
        log.info(f"Listening as {client.user_id}")
        sync = config[CONFIG_KEY_SYNC]
        await client.listen_forever(
            timeout_ms=sync["timeout_ms"],
            exception_handler=on_error,
            bad_sync_timeout=sync["bad_sync_timeout"],
        )


def build_parser(default_config_path) -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description=CLI_DESCRIPTION,
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  roomsync config generate          # Generate a sample config file
  roomsync auth login               # Log in to Matrix and save credentials
  roomsync listen                   # Sync and log incoming events
        """,
    )
    parser.add_argument(
        "--config",
        default=str(default_config_path),
        help=f"Path to config file (default: {default_config_path})",
    )
    parser.add_argument(
        "--log-level",
        choices=LOG_LEVELS,
        default=DEFAULT_LOG_LEVEL,
        help=f"Set logging level (default: {DEFAULT_LOG_LEVEL})",
    )
    parser.add_argument(
        "--version", action="version", version=f"RoomSync {__version__}"
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    config_parser = subparsers.add_parser("config", help="Configuration management")
    config_subparsers = config_parser.add_subparsers(dest="config_action")
    config_subparsers.add_parser("generate", help="Generate a sample config file")
    config_subparsers.add_parser("validate", help="Validate the configuration file")

    auth_parser = subparsers.add_parser("auth", help="Authentication management")
    auth_subparsers = auth_parser.add_subparsers(dest="auth_action")
    login_parser = auth_subparsers.add_parser(
        "login", help="Log in to Matrix and save credentials"
    )
    login_parser.add_argument("--homeserver", help="Matrix homeserver URL")
    login_parser.add_argument(
        "--username", help="Matrix username (with or without @ and :server)"
    )
    login_parser.add_argument(
        "--password",
        metavar="PWD",
        help="Matrix password. For security, prefer the interactive prompt.",
    )
    auth_subparsers.add_parser("logout", help="Log out and remove credentials")
    auth_subparsers.add_parser("status", help="Show authentication status")

    subparsers.add_parser("listen", help="Sync continuously and log events")
    return parser


def main(argv=None):
    """
    Run the RoomSync command-line interface.

    Subcommands: ``config generate|validate``, ``auth login|logout|status`` and
    ``listen``. Exits non-zero when a command fails.
    """
    default_config_path = get_default_config_path()
    parser = build_parser(default_config_path)
    args = parser.parse_args(argv)

    log_level = getattr(logging, args.log_level.upper())
    logging.basicConfig(
        level=log_level, format="%(asctime)s - %(levelname)s - %(message)s"
    )

    if args.command == "config":
        if args.config_action == "generate":
            generate_config(args.config)
            return
        if args.config_action == "validate":
            if not validate_config(args.config):
                sys.exit(1)
            return
        parser.parse_args(["config", "--help"])
        return

    if args.command == "auth":
        if args.auth_action == "login":
            ok = run_async(
                interactive_login(args.homeserver, args.username, args.password)
            )
            if not ok:
                sys.exit(1)
            print(SUCCESS_LOGIN_COMPLETE)
            return
        if args.auth_action == "logout":
            ok = run_async(interactive_logout())
            if not ok:
                sys.exit(1)
            print(SUCCESS_LOGOUT_COMPLETE)
            return
        if args.auth_action == "status":
            if not show_auth_status():
                sys.exit(1)
            return
        parser.parse_args(["auth", "--help"])
        return

    if args.command == "listen":
        config = load_config(args.config)
        if config is None:
            print(f"{ERROR_CONFIG_NOT_FOUND}: {args.config}")
            print("Run 'roomsync config generate' to create one.")
            sys.exit(1)
        config = load_environment(config, args.config)
        config.setdefault("logging", {}).setdefault("level", args.log_level)
        configure_logging(config)
        try:
            run_async(listen(config))
        except KeyboardInterrupt:
            logger.info("Stopped by user")
        except MatrixError as e:
            logger.error(f"Listener stopped: {e}")
            sys.exit(1)
        return

    parser.print_help()


if __name__ == "__main__":
    main()
