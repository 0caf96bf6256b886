"""Identifier and URL validation helpers."""

from urllib.parse import urlparse

from .constants import (
    ID_SERVER_SEPARATOR,
    MXC_SCHEME,
    ROOM_ALIAS_SIGIL,
    ROOM_ID_SIGIL,
    USER_ID_SIGIL,
)
from .errors import ValidationFailure


def _has_server_part(value: str) -> bool:
    localpart, sep, server = value[1:].partition(ID_SERVER_SEPARATOR)
    return bool(sep and server)


def check_room_id(room_id: str) -> str:
    """
    Validate a room id of the form ``!opaque:domain``.

    Returns the id unchanged so callers can validate inline.

    Raises:
        ValidationFailure: If the id lacks the ``!`` sigil or the ``:domain`` part.
    """
    if not isinstance(room_id, str) or not room_id.startswith(ROOM_ID_SIGIL):
        raise ValidationFailure(f"RoomIDs start with !: {room_id!r}")
    if not _has_server_part(room_id):
        raise ValidationFailure(f"RoomIDs must have a domain component: {room_id!r}")
    return room_id


def check_user_id(user_id: str) -> str:
    """
    Validate a user id of the form ``@localpart:domain``.

    Raises:
        ValidationFailure: If the id lacks the ``@`` sigil or the ``:domain`` part.
    """
    if not isinstance(user_id, str) or not user_id.startswith(USER_ID_SIGIL):
        raise ValidationFailure(f"UserIDs start with @: {user_id!r}")
    if not _has_server_part(user_id):
        raise ValidationFailure(f"UserIDs must have a domain component: {user_id!r}")
    return user_id


def check_room_alias(alias: str) -> str:
    """Validate a room alias of the form ``#name:domain``."""
    if not isinstance(alias, str) or not alias.startswith(ROOM_ALIAS_SIGIL):
        raise ValidationFailure(f"Room aliases start with #: {alias!r}")
    if not _has_server_part(alias):
        raise ValidationFailure(f"Room aliases must have a domain component: {alias!r}")
    return alias


def check_mxc_url(url: str) -> str:
    """Validate a content URI of the form ``mxc://server/media_id``."""
    parsed = urlparse(url) if isinstance(url, str) else None
    if parsed is None or parsed.scheme != MXC_SCHEME or not parsed.netloc:
        raise ValidationFailure(f"Not a valid mxc:// URL: {url!r}")
    if not parsed.path.strip("/"):
        raise ValidationFailure(f"mxc:// URL is missing a media id: {url!r}")
    return url


def check_homeserver_url(url: str) -> str:
    """
    Validate an absolute http(s) homeserver URL and return it without a trailing slash.

    Raises:
        ValidationFailure: If the URL has another scheme or no host.
    """
    parsed = urlparse(url) if isinstance(url, str) else None
    if parsed is None or parsed.scheme not in ("http", "https") or not parsed.netloc:
        raise ValidationFailure(f"Invalid homeserver URL: {url!r}")
    return url.rstrip("/")
