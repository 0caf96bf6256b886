"""
Endpoint caller for the Matrix Client-Server API.

:class:`MatrixHttpApi` exposes one coroutine per REST endpoint. Every wrapper
builds its path and body and delegates to :meth:`MatrixHttpApi.send`, which in
turn hands the request to a :class:`~roomsync.transport.Transport`.
"""

import json
import logging
import time
from typing import Any, Dict, Iterable, List, Optional
from urllib.parse import quote

import aiohttp

from .constants import (
    DEFAULT_RETRY_AFTER_MS,
    ERROR_NOT_LOGGED_IN,
    HEADER_CONTENT_TYPE,
    LOGGER_NAME,
    MATRIX_MEDIA_API_PATH,
    MATRIX_V2_API_PATH,
    SYNC_REQUEST_TIMEOUT_MARGIN_SEC,
    SYNC_TIMEOUT_MS,
    THUMBNAIL_METHODS,
)
from .errors import MatrixError, ValidationFailure
from .events import (
    ROOM_GUEST_ACCESS,
    ROOM_JOIN_RULES,
    ROOM_MEMBER,
    ROOM_MESSAGE,
    ROOM_NAME,
    ROOM_POWER_LEVELS,
    ROOM_TOPIC,
)
from .retry import RateLimitPolicy
from .transport import Transport
from .utils import check_mxc_url

logger = logging.getLogger(LOGGER_NAME)


def _q(segment: Any) -> str:
    """Percent-encode one path segment."""
    return quote(str(segment), safe="")


class MatrixHttpApi:
    """
    Thin wrapper around the Matrix Client-Server HTTP endpoints.

    Parameters:
        base_url: Homeserver base URL, e.g. ``https://matrix.org``.
        token: Access token, if already logged in.
        identity: Act as this user id (application services); sent as ``user_id``.
        default_429_wait_ms: Wait used when a 429 response carries no ``retry_after_ms``.
        use_authorization_header: Send the token as a Bearer header (default) or as the
            ``access_token`` query parameter.
        session: Optional ``aiohttp.ClientSession`` to reuse.
        rate_limit_policy: Optional :class:`RateLimitPolicy` capping 429 retries.
    """

    def __init__(
        self,
        base_url: str,
        token: Optional[str] = None,
        identity: Optional[str] = None,
        default_429_wait_ms: int = DEFAULT_RETRY_AFTER_MS,
        use_authorization_header: bool = True,
        session: Optional[aiohttp.ClientSession] = None,
        rate_limit_policy: Optional[RateLimitPolicy] = None,
    ):
        self.transport = Transport(
            base_url,
            token=token,
            identity=identity,
            default_429_wait_ms=default_429_wait_ms,
            use_authorization_header=use_authorization_header,
            session=session,
            rate_limit_policy=rate_limit_policy,
        )
        self._txn_counter = 0

    @property
    def base_url(self) -> str:
        return self.transport.base_url

    @property
    def token(self) -> Optional[str]:
        return self.transport.token

    @token.setter
    def token(self, value: Optional[str]) -> None:
        self.transport.token = value

    @property
    def identity(self) -> Optional[str]:
        return self.transport.identity

    def set_token(self, token: Optional[str]) -> None:
        self.transport.token = token

    def validate_certificate(self, valid: bool) -> None:
        self.transport.validate_certificate(valid)

    async def close(self) -> None:
        await self.transport.close()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.close()

    async def send(
        self,
        method: str,
        path: str,
        content: Any = None,
        query_params: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
        api_path: str = MATRIX_V2_API_PATH,
        return_json: bool = True,
        timeout: Optional[aiohttp.ClientTimeout] = None,
    ) -> Any:
        """Send a raw request; see :meth:`Transport.send` for the error contract."""
        return await self.transport.send(
            method,
            path,
            content=content,
            query_params=query_params,
            headers=headers,
            api_path=api_path,
            return_json=return_json,
            timeout=timeout,
        )

    def _make_txn_id(self) -> str:
        txn_id = f"{self._txn_counter}{int(time.time() * 1000)}"
        self._txn_counter += 1
        return txn_id

    # Session

    async def sync(
        self,
        since: Optional[str] = None,
        timeout_ms: int = SYNC_TIMEOUT_MS,
        filter: Optional[str] = None,
        full_state: bool = False,
        set_presence: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Perform a long-polling GET /sync.

        Parameters:
            since: Cursor returned as ``next_batch`` by the previous sync.
            timeout_ms: How long the server may hold the request open.
            filter: Filter id or inline JSON filter.
            full_state: Return the full state of every room.
            set_presence: ``offline``, ``online`` or ``unavailable``.
        """
        request = {"timeout": int(timeout_ms)}
        if since:
            request["since"] = since
        if filter:
            request["filter"] = filter
        if full_state:
            request["full_state"] = True
        if set_presence:
            request["set_presence"] = set_presence
        # The server may hold the poll open for timeout_ms, so widen the HTTP timeout
        http_timeout = aiohttp.ClientTimeout(
            total=timeout_ms / 1000 + SYNC_REQUEST_TIMEOUT_MARGIN_SEC
        )
        return await self.send("GET", "/sync", query_params=request, timeout=http_timeout)

    async def register(
        self,
        auth_body: Optional[Dict[str, Any]] = None,
        kind: str = "user",
        bind_email: bool = False,
        username: Optional[str] = None,
        password: Optional[str] = None,
        device_id: Optional[str] = None,
        initial_device_display_name: Optional[str] = None,
        inhibit_login: bool = False,
    ):
        """Perform POST /register; ``kind`` is ``user`` or ``guest``."""
        content: Dict[str, Any] = {"kind": kind}
        if auth_body:
            content["auth"] = auth_body
        if username:
            content["username"] = username
        if password:
            content["password"] = password
        if device_id:
            content["device_id"] = device_id
        if initial_device_display_name:
            content["initial_device_display_name"] = initial_device_display_name
        if bind_email:
            content["bind_email"] = bind_email
        if inhibit_login:
            content["inhibit_login"] = inhibit_login
        return await self.send("POST", "/register", content, {"kind": kind})

    async def login(self, login_type: str, **kwargs):
        """Perform POST /login with ``type`` set to ``login_type`` plus any extra fields."""
        content = {"type": login_type}
        content.update(kwargs)
        return await self.send("POST", "/login", content)

    async def logout(self):
        return await self.send("POST", "/logout")

    async def logout_all(self):
        return await self.send("POST", "/logout/all")

    async def whoami(self):
        """Return ``{"user_id": ...}`` for the current access token."""
        if not self.token:
            raise MatrixError(ERROR_NOT_LOGGED_IN)
        return await self.send("GET", "/account/whoami")

    # Rooms

    async def create_room(
        self,
        alias: Optional[str] = None,
        name: Optional[str] = None,
        is_public: bool = False,
        invitees: Optional[List[str]] = None,
        federate: Optional[bool] = None,
    ):
        content: Dict[str, Any] = {"visibility": "public" if is_public else "private"}
        if alias:
            content["room_alias_name"] = alias
        if invitees:
            content["invite"] = list(invitees)
        if name:
            content["name"] = name
        if federate is not None:
            content["creation_content"] = {"m.federate": federate}
        return await self.send("POST", "/createRoom", content)

    async def join_room(self, room_id_or_alias: str):
        return await self.send("POST", f"/join/{_q(room_id_or_alias)}")

    async def leave_room(self, room_id: str):
        return await self.send("POST", f"/rooms/{_q(room_id)}/leave")

    async def forget_room(self, room_id: str):
        return await self.send("POST", f"/rooms/{_q(room_id)}/forget", {})

    async def invite_user(self, room_id: str, user_id: str):
        return await self.send(
            "POST", f"/rooms/{_q(room_id)}/invite", {"user_id": user_id}
        )

    async def kick_user(self, room_id: str, user_id: str, reason: str = ""):
        return await self.set_membership(room_id, user_id, "leave", reason)

    async def ban_user(self, room_id: str, user_id: str, reason: str = ""):
        return await self.send(
            "POST",
            f"/rooms/{_q(room_id)}/ban",
            {"user_id": user_id, "reason": reason},
        )

    async def unban_user(self, room_id: str, user_id: str):
        return await self.send(
            "POST", f"/rooms/{_q(room_id)}/unban", {"user_id": user_id}
        )

    async def get_membership(self, room_id: str, user_id: str):
        return await self.send(
            "GET", f"/rooms/{_q(room_id)}/state/{ROOM_MEMBER}/{_q(user_id)}"
        )

    async def set_membership(
        self,
        room_id: str,
        user_id: str,
        membership: str,
        reason: str = "",
        profile: Optional[Dict[str, Any]] = None,
        timestamp: Optional[int] = None,
    ):
        body: Dict[str, Any] = {"membership": membership, "reason": reason}
        profile = profile or {}
        if "displayname" in profile:
            body["displayname"] = profile["displayname"]
        if "avatar_url" in profile:
            body["avatar_url"] = profile["avatar_url"]
        return await self.send_state_event(
            room_id, ROOM_MEMBER, body, state_key=user_id, timestamp=timestamp
        )

    async def get_room_members(self, room_id: str):
        return await self.send("GET", f"/rooms/{_q(room_id)}/members")

    # State and messages

    async def send_state_event(
        self,
        room_id: str,
        event_type: str,
        content: Dict[str, Any],
        state_key: str = "",
        timestamp: Optional[int] = None,
    ):
        """Perform PUT /rooms/{room_id}/state/{event_type}[/{state_key}]."""
        path = f"/rooms/{_q(room_id)}/state/{_q(event_type)}"
        if state_key:
            path += f"/{_q(state_key)}"
        params = {"ts": timestamp} if timestamp else None
        return await self.send("PUT", path, content, params)

    async def get_state_event(self, room_id: str, event_type: str):
        return await self.send(
            "GET", f"/rooms/{_q(room_id)}/state/{_q(event_type)}"
        )

    async def get_room_state(self, room_id: str):
        return await self.send("GET", f"/rooms/{_q(room_id)}/state")

    async def send_message_event(
        self,
        room_id: str,
        event_type: str,
        content: Dict[str, Any],
        txn_id: Optional[str] = None,
        timestamp: Optional[int] = None,
    ):
        """Perform PUT /rooms/{room_id}/send/{event_type}/{txn_id}."""
        if not txn_id:
            txn_id = self._make_txn_id()
        path = f"/rooms/{_q(room_id)}/send/{_q(event_type)}/{_q(txn_id)}"
        params = {"ts": timestamp} if timestamp else None
        return await self.send("PUT", path, content, params)

    async def redact_event(
        self,
        room_id: str,
        event_id: str,
        reason: Optional[str] = None,
        txn_id: Optional[str] = None,
        timestamp: Optional[int] = None,
    ):
        if not txn_id:
            txn_id = self._make_txn_id()
        path = f"/rooms/{_q(room_id)}/redact/{_q(event_id)}/{_q(txn_id)}"
        content = {"reason": reason} if reason else {}
        params = {"ts": timestamp} if timestamp else None
        return await self.send("PUT", path, content, params)

    async def send_content(
        self,
        room_id: str,
        item_url: str,
        item_name: str,
        msg_type: str,
        extra_information: Optional[Dict[str, Any]] = None,
        timestamp: Optional[int] = None,
    ):
        """Send an ``m.image``/``m.audio``/``m.video``/``m.file`` message pointing at ``item_url``."""
        content_pack = {
            "url": item_url,
            "msgtype": msg_type,
            "body": item_name,
            "info": extra_information or {},
        }
        return await self.send_message_event(
            room_id, ROOM_MESSAGE, content_pack, timestamp=timestamp
        )

    async def send_location(
        self,
        room_id: str,
        geo_uri: str,
        name: str,
        thumb_url: Optional[str] = None,
        thumb_info: Optional[Dict[str, Any]] = None,
        timestamp: Optional[int] = None,
    ):
        content_pack: Dict[str, Any] = {
            "geo_uri": geo_uri,
            "msgtype": "m.location",
            "body": name,
        }
        if thumb_url:
            content_pack["thumbnail_url"] = thumb_url
        if thumb_info:
            content_pack["thumbnail_info"] = thumb_info
        return await self.send_message_event(
            room_id, ROOM_MESSAGE, content_pack, timestamp=timestamp
        )

    def get_text_body(self, text: str, msg_type: str = "m.text") -> Dict[str, str]:
        return {"msgtype": msg_type, "body": text}

    def get_emote_body(self, text: str) -> Dict[str, str]:
        return self.get_text_body(text, "m.emote")

    async def send_message(
        self,
        room_id: str,
        text_content: str,
        msg_type: str = "m.text",
        timestamp: Optional[int] = None,
    ):
        return await self.send_message_event(
            room_id,
            ROOM_MESSAGE,
            self.get_text_body(text_content, msg_type),
            timestamp=timestamp,
        )

    async def send_emote(
        self, room_id: str, text_content: str, timestamp: Optional[int] = None
    ):
        return await self.send_message_event(
            room_id, ROOM_MESSAGE, self.get_emote_body(text_content), timestamp=timestamp
        )

    async def send_notice(
        self, room_id: str, text_content: str, timestamp: Optional[int] = None
    ):
        return await self.send_message_event(
            room_id,
            ROOM_MESSAGE,
            self.get_text_body(text_content, "m.notice"),
            timestamp=timestamp,
        )

    async def get_room_messages(
        self,
        room_id: str,
        token: str,
        direction: str,
        limit: int = 10,
        to: Optional[str] = None,
    ):
        """Perform GET /rooms/{room_id}/messages; ``direction`` is ``b`` or ``f``."""
        query: Dict[str, Any] = {"from": token, "dir": direction, "limit": limit}
        if to:
            query["to"] = to
        return await self.send(
            "GET", f"/rooms/{_q(room_id)}/messages", query_params=query
        )

    async def get_room_name(self, room_id: str):
        return await self.get_state_event(room_id, ROOM_NAME)

    async def set_room_name(
        self, room_id: str, name: str, timestamp: Optional[int] = None
    ):
        return await self.send_state_event(
            room_id, ROOM_NAME, {"name": name}, timestamp=timestamp
        )

    async def get_room_topic(self, room_id: str):
        return await self.get_state_event(room_id, ROOM_TOPIC)

    async def set_room_topic(
        self, room_id: str, topic: str, timestamp: Optional[int] = None
    ):
        return await self.send_state_event(
            room_id, ROOM_TOPIC, {"topic": topic}, timestamp=timestamp
        )

    async def get_power_levels(self, room_id: str):
        return await self.get_state_event(room_id, ROOM_POWER_LEVELS)

    async def set_power_levels(self, room_id: str, content: Dict[str, Any]):
        """
        Replace the room's power levels.

        Levels not present in ``content`` are reset to their defaults by the server.
        """
        # Synapse rejects power level events without an "events" key
        content = dict(content)
        content.setdefault("events", {})
        return await self.send_state_event(room_id, ROOM_POWER_LEVELS, content)

    async def set_join_rule(self, room_id: str, join_rule: str):
        return await self.send_state_event(
            room_id, ROOM_JOIN_RULES, {"join_rule": join_rule}
        )

    async def set_guest_access(self, room_id: str, guest_access: str):
        return await self.send_state_event(
            room_id, ROOM_GUEST_ACCESS, {"guest_access": guest_access}
        )

    # Tags and account data

    async def get_user_tags(self, user_id: str, room_id: str):
        return await self.send(
            "GET", f"/user/{_q(user_id)}/rooms/{_q(room_id)}/tags"
        )

    async def remove_user_tag(self, user_id: str, room_id: str, tag: str):
        return await self.send(
            "DELETE", f"/user/{_q(user_id)}/rooms/{_q(room_id)}/tags/{_q(tag)}"
        )

    async def add_user_tag(
        self,
        user_id: str,
        room_id: str,
        tag: str,
        order: Optional[float] = None,
        body: Optional[Dict[str, Any]] = None,
    ):
        body = dict(body or {})
        if order is not None:
            body["order"] = order
        return await self.send(
            "PUT", f"/user/{_q(user_id)}/rooms/{_q(room_id)}/tags/{_q(tag)}", body
        )

    async def set_account_data(
        self, user_id: str, data_type: str, account_data: Dict[str, Any]
    ):
        return await self.send(
            "PUT", f"/user/{_q(user_id)}/account_data/{_q(data_type)}", account_data
        )

    async def set_room_account_data(
        self, user_id: str, room_id: str, data_type: str, account_data: Dict[str, Any]
    ):
        path = f"/user/{_q(user_id)}/rooms/{_q(room_id)}/account_data/{_q(data_type)}"
        return await self.send("PUT", path, account_data)

    # Filters

    async def get_filter(self, user_id: str, filter_id: str):
        return await self.send("GET", f"/user/{_q(user_id)}/filter/{_q(filter_id)}")

    async def create_filter(self, user_id: str, filter_params: Dict[str, Any]):
        return await self.send("POST", f"/user/{_q(user_id)}/filter", filter_params)

    # Profile

    async def get_display_name(self, user_id: str) -> Optional[str]:
        content = await self.send("GET", f"/profile/{_q(user_id)}/displayname")
        return content.get("displayname")

    async def set_display_name(self, user_id: str, display_name: str):
        return await self.send(
            "PUT", f"/profile/{_q(user_id)}/displayname", {"displayname": display_name}
        )

    async def get_avatar_url(self, user_id: str) -> Optional[str]:
        content = await self.send("GET", f"/profile/{_q(user_id)}/avatar_url")
        return content.get("avatar_url")

    async def set_avatar_url(self, user_id: str, avatar_url: str):
        return await self.send(
            "PUT", f"/profile/{_q(user_id)}/avatar_url", {"avatar_url": avatar_url}
        )

    # Media

    async def media_upload(
        self, content: bytes, content_type: str, filename: Optional[str] = None
    ):
        """Upload raw bytes; the response carries the new ``content_uri``."""
        query = {"filename": filename} if filename else None
        return await self.send(
            "POST",
            "",
            content,
            query_params=query,
            headers={HEADER_CONTENT_TYPE: content_type},
            api_path=f"{MATRIX_MEDIA_API_PATH}/upload",
        )

    def get_download_url(self, mxc_url: str) -> str:
        """Translate ``mxc://server/id`` into an HTTP download URL."""
        check_mxc_url(mxc_url)
        return f"{self.base_url}{MATRIX_MEDIA_API_PATH}/download/{mxc_url[6:]}"

    async def media_download(self, mxc_url: str, allow_remote: bool = True) -> bytes:
        check_mxc_url(mxc_url)
        query = None if allow_remote else {"allow_remote": False}
        return await self.send(
            "GET",
            mxc_url[6:],
            query_params=query,
            api_path=f"{MATRIX_MEDIA_API_PATH}/download/",
            return_json=False,
        )

    async def get_thumbnail(
        self,
        mxc_url: str,
        width: int,
        height: int,
        method: str = "scale",
        allow_remote: bool = True,
    ) -> bytes:
        """
        Download a server-generated thumbnail.

        Raises:
            ValidationFailure: If ``mxc_url`` is malformed or ``method`` is not
                ``scale``/``crop``; no request is made in that case.
        """
        check_mxc_url(mxc_url)
        if method not in THUMBNAIL_METHODS:
            raise ValidationFailure(f"Unsupported thumb method {method}")
        query: Dict[str, Any] = {"width": width, "height": height, "method": method}
        if not allow_remote:
            query["allow_remote"] = False
        return await self.send(
            "GET",
            mxc_url[6:],
            query_params=query,
            api_path=f"{MATRIX_MEDIA_API_PATH}/thumbnail/",
            return_json=False,
        )

    async def get_url_preview(self, url: str, ts: Optional[int] = None):
        params: Dict[str, Any] = {"url": url}
        if ts:
            params["ts"] = ts
        return await self.send(
            "GET", "", query_params=params, api_path=f"{MATRIX_MEDIA_API_PATH}/preview_url"
        )

    # Directory

    async def get_room_id(self, room_alias: str) -> Optional[str]:
        content = await self.send("GET", f"/directory/room/{_q(room_alias)}")
        return content.get("room_id")

    async def set_room_alias(self, room_id: str, room_alias: str):
        return await self.send(
            "PUT", f"/directory/room/{_q(room_alias)}", {"room_id": room_id}
        )

    async def remove_room_alias(self, room_alias: str):
        return await self.send("DELETE", f"/directory/room/{_q(room_alias)}")

    # Devices

    async def get_devices(self):
        return await self.send("GET", "/devices")

    async def get_device(self, device_id: str):
        return await self.send("GET", f"/devices/{_q(device_id)}")

    async def update_device_info(self, device_id: str, display_name: str):
        return await self.send(
            "PUT", f"/devices/{_q(device_id)}", {"display_name": display_name}
        )

    async def delete_device(self, auth_body: Dict[str, Any], device_id: str):
        """
        Delete a device and invalidate its access token.

        This endpoint uses User-Interactive Authentication: the first call usually
        fails with ``RequestFailed(401)`` whose JSON content lists the auth flows.
        """
        return await self.send(
            "DELETE", f"/devices/{_q(device_id)}", {"auth": auth_body}
        )

    async def delete_devices(self, auth_body: Dict[str, Any], devices: Iterable[str]):
        return await self.send(
            "POST", "/delete_devices", {"auth": auth_body, "devices": list(devices)}
        )

    # End-to-end keys

    async def upload_keys(
        self,
        device_keys: Optional[Dict[str, Any]] = None,
        one_time_keys: Optional[Dict[str, Any]] = None,
    ):
        content: Dict[str, Any] = {}
        if device_keys:
            content["device_keys"] = device_keys
        if one_time_keys:
            content["one_time_keys"] = one_time_keys
        return await self.send("POST", "/keys/upload", content or None)

    async def query_keys(
        self,
        user_devices: Dict[str, List[str]],
        timeout: Optional[int] = None,
        token: Optional[str] = None,
    ):
        content: Dict[str, Any] = {"device_keys": user_devices}
        if timeout:
            content["timeout"] = timeout
        if token:
            content["token"] = token
        return await self.send("POST", "/keys/query", content)

    async def claim_keys(
        self, key_request: Dict[str, Dict[str, str]], timeout: Optional[int] = None
    ):
        content: Dict[str, Any] = {"one_time_keys": key_request}
        if timeout:
            content["timeout"] = timeout
        return await self.send("POST", "/keys/claim", content)

    async def key_changes(self, from_token: str, to_token: str):
        return await self.send(
            "GET", "/keys/changes", query_params={"from": from_token, "to": to_token}
        )

    async def send_to_device(
        self,
        event_type: str,
        messages: Dict[str, Dict[str, Any]],
        txn_id: Optional[str] = None,
    ):
        txn_id = txn_id or self._make_txn_id()
        return await self.send(
            "PUT",
            f"/sendToDevice/{_q(event_type)}/{_q(txn_id)}",
            {"messages": messages},
        )


def make_sync_filter(limit: int) -> str:
    """Serialise the timeline-limit filter sent with every sync."""
    return json.dumps({"room": {"timeline": {"limit": limit}}})
