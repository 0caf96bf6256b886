"""Credential persistence and interactive login for RoomSync.

Logs in with a password, stores the resulting session in
`~/.config/matrix-roomsync/credentials.json` and loads it back so the CLI can
resume without asking again.
"""

from __future__ import annotations

import asyncio
import getpass
import json
import logging
import os
import tempfile
from dataclasses import dataclass
from typing import Optional
from urllib.parse import urlparse

from .api import MatrixHttpApi
from .constants import (
    CONFIG_DIR,
    CONFIG_DIR_PERMISSIONS,
    CRED_KEY_ACCESS_TOKEN,
    CRED_KEY_DEVICE_ID,
    CRED_KEY_HOMESERVER,
    CRED_KEY_USER_ID,
    CREDENTIALS_FILE,
    CREDENTIALS_FILE_PERMISSIONS,
    FILE_ENCODING_UTF8,
    LOGGER_NAME,
    LOGIN_TIMEOUT_SEC,
    MATRIX_DEVICE_NAME,
    PROMPT_HOMESERVER,
    PROMPT_LOGIN_AGAIN,
    PROMPT_PASSWORD,
    PROMPT_USERNAME,
    RESPONSE_YES_PREFIX,
    URL_PREFIX_HTTP,
    URL_PREFIX_HTTPS,
)
from .errors import MatrixError, RequestFailed, TransportFailure

logger = logging.getLogger(LOGGER_NAME)


@dataclass
class Credentials:
    homeserver: str
    user_id: str
    access_token: str
    device_id: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            CRED_KEY_HOMESERVER: self.homeserver,
            CRED_KEY_USER_ID: self.user_id,
            CRED_KEY_ACCESS_TOKEN: self.access_token,
            CRED_KEY_DEVICE_ID: self.device_id,
        }

    @staticmethod
    def from_dict(d: dict) -> "Credentials":
        """
        Build Credentials from a parsed credentials.json mapping.

        Missing string fields default to "" and device_id may be None.
        """
        return Credentials(
            homeserver=d.get(CRED_KEY_HOMESERVER, ""),
            user_id=d.get(CRED_KEY_USER_ID, ""),
            access_token=d.get(CRED_KEY_ACCESS_TOKEN, ""),
            device_id=d.get(CRED_KEY_DEVICE_ID),
        )


def get_config_dir():
    """
    Ensure the configuration directory exists and return its Path.

    Permissions are restricted to CONFIG_DIR_PERMISSIONS where the platform allows it.
    """
    CONFIG_DIR.mkdir(parents=True, exist_ok=True)
    try:
        os.chmod(CONFIG_DIR, CONFIG_DIR_PERMISSIONS)
    except OSError:
        logger.debug(
            f"Could not set config dir perms to {oct(CONFIG_DIR_PERMISSIONS)}",
            exc_info=True,
        )
    return CONFIG_DIR


def credentials_path():
    get_config_dir()
    return CREDENTIALS_FILE


def save_credentials(creds: Credentials) -> None:
    """
    Write credentials atomically: a temp file in the same directory, then os.replace.

    The file is created with CREDENTIALS_FILE_PERMISSIONS. Failures are logged, not raised.
    """
    path = credentials_path()

    data = json.dumps(creds.to_dict(), indent=2)
    tmp_name = None
    try:
        with tempfile.NamedTemporaryFile(
            "w", dir=str(path.parent), delete=False, encoding=FILE_ENCODING_UTF8
        ) as tmp:
            tmp_name = tmp.name
            tmp.write(data)
            tmp.flush()
            os.fsync(tmp.fileno())
    except OSError:
        logger.exception("Failed to create temporary file for credentials.")
        if tmp_name:
            _unlink_quietly(tmp_name)
        return

    try:
        os.chmod(tmp_name, CREDENTIALS_FILE_PERMISSIONS)
        os.replace(tmp_name, path)
        logger.info(f"Saved credentials to {path}")
    except OSError:
        logger.exception(f"Failed to save credentials to {path}")
        _unlink_quietly(tmp_name)


def _unlink_quietly(name: str) -> None:
    try:
        os.unlink(name)
    except OSError as e:
        logger.debug(f"Failed to clean up temp file: {e}")


def load_credentials() -> Optional[Credentials]:
    """Return saved credentials, or None if the file is missing or unreadable (logged)."""
    path = credentials_path()
    if not path.exists():
        return None
    try:
        data = json.loads(path.read_text(encoding=FILE_ENCODING_UTF8))
        return Credentials.from_dict(data)
    except (OSError, json.JSONDecodeError):
        logger.exception(f"Failed to read credentials from {path}")
        return None


def normalize_homeserver(homeserver: str) -> str:
    hs = homeserver.strip()
    if not (hs.startswith(URL_PREFIX_HTTP) or hs.startswith(URL_PREFIX_HTTPS)):
        hs = URL_PREFIX_HTTPS + hs
    return hs.rstrip("/")


async def discover_homeserver(api: MatrixHttpApi, timeout: float = 10.0) -> str:
    """
    Resolve the canonical homeserver URL through ``/.well-known/matrix/client``.

    Falls back to ``api.base_url`` on any error, timeout or malformed answer.
    """
    homeserver = api.base_url
    try:
        logger.debug(f"Attempting server discovery for {homeserver}")
        info = await asyncio.wait_for(
            api.send("GET", "/.well-known/matrix/client", api_path=""), timeout=timeout
        )
        discovered = (info.get("m.homeserver") or {}).get("base_url")
        if discovered:
            logger.debug(f"Server discovery successful: {discovered}")
            return discovered.rstrip("/")
        logger.debug("Server discovery response missing homeserver URL")
    except asyncio.TimeoutError:
        logger.debug("Server discovery timed out; using provided homeserver URL")
    except (MatrixError, AttributeError) as e:
        logger.debug(f"Server discovery failed: {type(e).__name__}: {e}")

    logger.debug(f"Using original homeserver URL: {homeserver}")
    return homeserver


async def interactive_login(
    homeserver: Optional[str] = None,
    username: Optional[str] = None,
    password: Optional[str] = None,
) -> bool:
    """
    Log in with a password and persist the session.

    Missing values are prompted for. If credentials already exist the user is asked
    whether to create a new device session; declining keeps the existing one and
    counts as success.

    Returns:
        bool: True on success or when the existing session was kept, False otherwise.
    """
    existing_creds = load_credentials()
    if existing_creds:
        logger.info(f"You are already logged in as {existing_creds.user_id}")
        try:
            resp = input(PROMPT_LOGIN_AGAIN).lower()
            if not resp.startswith(RESPONSE_YES_PREFIX):
                logger.info("Login cancelled.")
                return True
        except (EOFError, KeyboardInterrupt):
            logger.info("\nLogin cancelled.")
            return False

    hs = normalize_homeserver(homeserver or input(PROMPT_HOMESERVER))
    user_input = (username or input(PROMPT_USERNAME)).strip()
    pwd = password if password is not None else getpass.getpass(PROMPT_PASSWORD)

    async with MatrixHttpApi(hs) as discovery_api:
        hs = await discover_homeserver(discovery_api)

    if user_input.startswith("@"):
        user = user_input
    else:
        user = f"@{user_input}:{urlparse(hs).netloc}"
        logger.debug(f"Constructed MXID: {user}")

    logger.info(f"Logging in to {hs} as {user}")
    async with MatrixHttpApi(hs) as api:
        try:
            response = await asyncio.wait_for(
                api.login(
                    "m.login.password",
                    identifier={"type": "m.id.user", "user": user},
                    password=pwd,
                    initial_device_display_name=MATRIX_DEVICE_NAME,
                ),
                timeout=LOGIN_TIMEOUT_SEC,
            )
        except asyncio.TimeoutError:
            logger.error(f"Login timed out after {LOGIN_TIMEOUT_SEC} seconds")
            return False
        except RequestFailed as e:
            if e.errcode == "M_FORBIDDEN":
                logger.error(
                    "❌ Invalid username or password. Please check your credentials and try again."
                )
            elif e.errcode == "M_LIMIT_EXCEEDED":
                logger.error(
                    "❌ Too many login attempts. Please wait a few minutes and try again."
                )
            else:
                logger.error(f"❌ Login failed: {e}")
            return False
        except TransportFailure as e:
            logger.error(f"Network error during login: {e}")
            logger.error(
                "❌ Network error. Please check your internet connection and homeserver URL."
            )
            return False
        except MatrixError:
            logger.exception("Login error")
            return False

    creds = Credentials(
        homeserver=hs,
        user_id=response.get("user_id", user),
        access_token=response["access_token"],
        device_id=response.get("device_id"),
    )
    save_credentials(creds)
    logger.info("Login successful! Credentials saved.")
    return True


async def interactive_logout() -> bool:
    """Log out on the server (best effort) and remove local credentials.

    Returns True once the local cleanup ran, regardless of the remote outcome.
    """
    creds = load_credentials()
    if creds:
        try:
            async with MatrixHttpApi(
                creds.homeserver, token=creds.access_token
            ) as api:
                await api.logout()
            logger.info("Logged out from Matrix server")
        except MatrixError:
            logger.warning("Remote logout failed or skipped", exc_info=True)

    try:
        p = credentials_path()
        if p.exists():
            p.unlink()
            logger.info(f"Removed {p}")
    except OSError:
        logger.warning("Failed to remove credentials.json", exc_info=True)

    return True
