"""
High-level Matrix client and incremental sync engine.

:class:`MatrixClient` owns the sync cursor, the room and user tables and the
global listener registries. Each :meth:`MatrixClient.sync_once` long-polls
``/sync`` once and applies the returned deltas in a fixed order: presence,
invites, leaves, then joined rooms (state, timeline, ephemeral).
"""

import asyncio
import inspect
import logging
from enum import Enum
from typing import Any, Callable, Dict, Optional

from .api import MatrixHttpApi, make_sync_filter
from .cache import CacheLevel
from .constants import (
    DEFAULT_BAD_SYNC_TIMEOUT_LIMIT_SEC,
    DEFAULT_BAD_SYNC_TIMEOUT_SEC,
    DEFAULT_SYNC_FILTER_LIMIT,
    ERROR_ENCRYPTION_UNSUPPORTED,
    HTTP_STATUS_SERVER_ERROR,
    LOGGER_NAME,
    SYNC_TIMEOUT_MS,
)
from .errors import (
    RequestFailed,
    UnexpectedResponse,
    UnsupportedMethod,
    ValidationFailure,
    status_of,
)
from .events import type_of
from .listeners import ListenerRegistry
from .retry import SyncBackoff
from .room import Room
from .user import User
from .utils import check_user_id

logger = logging.getLogger(LOGGER_NAME)


class SyncState(Enum):
    IDLE = "idle"
    POLLING = "polling"
    APPLYING = "applying"
    STOPPED = "stopped"


class MatrixClient:
    """
    Client for one Matrix account.

    Usage::

        async with MatrixClient("https://matrix.org") as client:
            await client.login("alice", "secret")
            client.add_listener(on_message, "m.room.message")
            await client.listen_forever()

    Parameters:
        base_url: Homeserver base URL.
        token: Existing access token; call :meth:`restore_login` to resume a session.
        user_id: User id belonging to ``token``, if known.
        valid_cert_check: Validate TLS certificates.
        sync_filter_limit: Timeline events per room requested on each sync.
        cache_level: How much state to fold; see :class:`CacheLevel`.
        encryption: Must be False; end-to-end encryption is not supported.
        api: Pre-built :class:`MatrixHttpApi` (tests, custom transports).
        bad_sync_timeout_limit: Ceiling in seconds for the failed-sync backoff.
        **api_kwargs: Passed to :class:`MatrixHttpApi` when ``api`` is not given.
    """

    def __init__(
        self,
        base_url: str,
        token: Optional[str] = None,
        user_id: Optional[str] = None,
        valid_cert_check: bool = True,
        sync_filter_limit: int = DEFAULT_SYNC_FILTER_LIMIT,
        cache_level=CacheLevel.ALL,
        encryption: bool = False,
        api: Optional[MatrixHttpApi] = None,
        bad_sync_timeout_limit: float = DEFAULT_BAD_SYNC_TIMEOUT_LIMIT_SEC,
        **api_kwargs: Any,
    ):
        if encryption:
            raise ValidationFailure(ERROR_ENCRYPTION_UNSUPPORTED)
        self._cache_level = CacheLevel.coerce(cache_level)
        if user_id is not None:
            check_user_id(user_id)

        self.api = api or MatrixHttpApi(base_url, token=token, **api_kwargs)
        self.api.validate_certificate(valid_cert_check)

        self.user_id = user_id
        self.device_id: Optional[str] = None
        self.hs: Optional[str] = None
        self.sync_filter = make_sync_filter(sync_filter_limit)
        self.sync_token: Optional[str] = None
        self.bad_sync_timeout_limit = bad_sync_timeout_limit

        self.rooms: Dict[str, Room] = {}
        self.users: Dict[str, User] = {}

        self.listeners = ListenerRegistry("timeline")
        self.presence_listeners = ListenerRegistry("presence")
        self.ephemeral_listeners = ListenerRegistry("ephemeral")
        self.invite_listeners = ListenerRegistry("invite")
        self.leave_listeners = ListenerRegistry("leave")

        self.should_listen = False
        self.sync_state = SyncState.IDLE
        self._sync_lock = asyncio.Lock()
        self._listener_task: Optional[asyncio.Task] = None
        self._stop_event: Optional[asyncio.Event] = None

    def __repr__(self) -> str:
        return f"<MatrixClient {self.user_id or 'anonymous'} @ {self.api.base_url}>"

    @property
    def cache_level(self) -> CacheLevel:
        return self._cache_level

    @property
    def token(self) -> Optional[str]:
        return self.api.token

    async def close(self) -> None:
        await self.stop_listener_task()
        await self.api.close()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.close()

    # Session

    async def login(
        self,
        username: str,
        password: str,
        sync: bool = True,
        limit: int = 10,
        device_id: Optional[str] = None,
    ) -> Optional[str]:
        """
        Log in with a password and return the new access token.

        With ``sync=True`` the timeline limit is set to ``limit`` and one sync is run
        so the room table is populated on return.
        """
        extra: Dict[str, Any] = {
            "identifier": {"type": "m.id.user", "user": username},
            "user": username,
            "password": password,
        }
        if device_id:
            extra["device_id"] = device_id
        response = await self.api.login("m.login.password", **extra)
        self.user_id = response.get("user_id")
        self.hs = response.get("home_server")
        self.device_id = response.get("device_id")
        self.api.set_token(response.get("access_token"))
        logger.info(f"Logged in as {self.user_id}")

        if sync:
            self.sync_filter = make_sync_filter(limit)
            await self.sync_once()
        return self.token

    async def register_as_guest(self) -> Optional[str]:
        response = await self.api.register(kind="guest")
        return await self._post_registration(response)

    async def register_with_password(self, username: str, password: str) -> Optional[str]:
        response = await self.api.register(
            {"type": "m.login.dummy"}, kind="user", username=username, password=password
        )
        return await self._post_registration(response)

    async def _post_registration(self, response: Dict[str, Any]) -> Optional[str]:
        self.user_id = response.get("user_id")
        self.hs = response.get("home_server")
        self.device_id = response.get("device_id")
        self.api.set_token(response.get("access_token"))
        await self.sync_once()
        return self.token

    async def restore_login(
        self,
        access_token: str,
        user_id: Optional[str] = None,
        device_id: Optional[str] = None,
        sync: bool = True,
    ) -> str:
        """Resume a session from a saved token; the user id is looked up when not given."""
        self.api.set_token(access_token)
        if user_id is None:
            user_id = (await self.api.whoami())["user_id"]
        self.user_id = check_user_id(user_id)
        self.device_id = device_id
        if sync:
            await self.sync_once()
        return self.user_id

    async def whoami(self) -> Dict[str, Any]:
        return await self.api.whoami()

    async def logout(self) -> None:
        self.stop_listener()
        await self.api.logout()
        self.api.set_token(None)

    # Rooms and users

    def _mkroom(self, room_id: str) -> Room:
        room = self.rooms.get(room_id)
        if room is None:
            room = Room(self, room_id)
            self.rooms[room_id] = room
        return room

    def get_rooms(self) -> Dict[str, Room]:
        return dict(self.rooms)

    def get_or_create_user(self, user_id: str) -> User:
        user = self.users.get(user_id)
        if user is None:
            user = User(self.api, user_id)
            self.users[user_id] = user
        return user

    def get_user(self, user_id: str) -> User:
        return self.get_or_create_user(user_id)

    async def create_room(
        self, alias: Optional[str] = None, is_public: bool = False, invitees=None
    ) -> Room:
        response = await self.api.create_room(
            alias=alias, is_public=is_public, invitees=invitees
        )
        return self._mkroom(response["room_id"])

    async def join_room(self, room_id_or_alias: str) -> Room:
        response = await self.api.join_room(room_id_or_alias)
        return self._mkroom(response.get("room_id", room_id_or_alias))

    async def forget_room(self, room_id: str) -> None:
        """Forget a room on the server and drop its local projection."""
        await self.api.forget_room(room_id)
        self.rooms.pop(room_id, None)

    async def remove_room_alias(self, room_alias: str) -> bool:
        try:
            await self.api.remove_room_alias(room_alias)
        except RequestFailed:
            return False
        return True

    async def upload(
        self, content: bytes, content_type: str, filename: Optional[str] = None
    ) -> str:
        """Upload media and return its ``mxc://`` content URI."""
        try:
            response = await self.api.media_upload(content, content_type, filename)
        except RequestFailed as e:
            raise RequestFailed(
                e.status_code, e.content, e.errcode, message=f"Upload failed: {e}"
            ) from e
        if "content_uri" in response:
            return response["content_uri"]
        raise UnexpectedResponse(
            message="The upload was successful, but content_uri wasn't found."
        )

    # Listeners

    def add_listener(self, callback: Callable, event_type: Optional[str] = None) -> str:
        """Register ``callback(event)`` for timeline events in any joined room."""
        return self.listeners.subscribe(callback, event_type)

    def remove_listener(self, listener_id: str) -> bool:
        return self.listeners.unsubscribe(listener_id)

    def add_presence_listener(self, callback: Callable) -> str:
        return self.presence_listeners.subscribe(callback)

    def remove_presence_listener(self, listener_id: str) -> bool:
        return self.presence_listeners.unsubscribe(listener_id)

    def add_ephemeral_listener(
        self, callback: Callable, event_type: Optional[str] = None
    ) -> str:
        return self.ephemeral_listeners.subscribe(callback, event_type)

    def remove_ephemeral_listener(self, listener_id: str) -> bool:
        return self.ephemeral_listeners.unsubscribe(listener_id)

    def add_invite_listener(self, callback: Callable) -> str:
        """Register ``callback(room_id, invite_state)``."""
        return self.invite_listeners.subscribe(callback)

    def remove_invite_listener(self, listener_id: str) -> bool:
        return self.invite_listeners.unsubscribe(listener_id)

    def add_leave_listener(self, callback: Callable) -> str:
        """Register ``callback(room_id, left_room)``; called before the room is dropped."""
        return self.leave_listeners.subscribe(callback)

    def remove_leave_listener(self, listener_id: str) -> bool:
        return self.leave_listeners.unsubscribe(listener_id)

    # Sync

    async def sync_once(self, timeout_ms: int = SYNC_TIMEOUT_MS) -> None:
        """
        Long-poll ``/sync`` once and apply the response.

        The cursor advances as soon as a response arrives, before any listener
        runs. Concurrent calls on the same client are serialised.
        """
        async with self._sync_lock:
            self.sync_state = SyncState.POLLING
            try:
                response = await self.api.sync(
                    self.sync_token, timeout_ms, filter=self.sync_filter
                )
                if "next_batch" not in response:
                    raise UnexpectedResponse(message="Sync response is missing next_batch")
                self.sync_token = response["next_batch"]
                self.sync_state = SyncState.APPLYING
                await self._apply_sync(response)
            finally:
                self.sync_state = SyncState.IDLE

    async def _apply_sync(self, response: Dict[str, Any]) -> None:
        for presence_update in response.get("presence", {}).get("events", []):
            await self.presence_listeners.dispatch(
                type_of(presence_update), presence_update
            )

        rooms = response.get("rooms", {})

        for room_id, invite_room in rooms.get("invite", {}).items():
            self._mkroom(room_id)
            await self.invite_listeners.dispatch(
                None, room_id, invite_room.get("invite_state", {})
            )

        for room_id, left_room in rooms.get("leave", {}).items():
            await self.leave_listeners.dispatch(None, room_id, left_room)
            self.rooms.pop(room_id, None)

        for room_id, sync_room in rooms.get("join", {}).items():
            room = self._mkroom(room_id)
            timeline = sync_room.get("timeline", {})
            room.prev_batch = timeline.get("prev_batch", room.prev_batch)

            for event in sync_room.get("state", {}).get("events", []):
                event["room_id"] = room_id
                await room.apply_state_event(event)

            for event in timeline.get("events", []):
                event["room_id"] = room_id
                await room.put_event(event)
                await self.listeners.dispatch(type_of(event), event)

            for event in sync_room.get("ephemeral", {}).get("events", []):
                event["room_id"] = room_id
                await room.put_ephemeral_event(event)
                await self.ephemeral_listeners.dispatch(type_of(event), event)

        one_time_keys = response.get("device_one_time_keys_count")
        if one_time_keys:
            logger.debug(f"Server reports one-time key counts: {one_time_keys}")

    def _arm_listener(self) -> None:
        self.should_listen = True
        self._stop_event = asyncio.Event()

    async def _wait_unless_stopped(self, delay: float) -> None:
        """Sleep up to ``delay`` seconds; a stop request ends the wait early."""
        try:
            await asyncio.wait_for(self._stop_event.wait(), timeout=delay)
        except asyncio.TimeoutError:
            pass

    async def listen_forever(
        self,
        timeout_ms: int = SYNC_TIMEOUT_MS,
        exception_handler: Optional[Callable[[Exception], Any]] = None,
        bad_sync_timeout: float = DEFAULT_BAD_SYNC_TIMEOUT_SEC,
    ) -> None:
        """
        Sync repeatedly until :meth:`stop_listener` is called.

        Server errors (status >= 500) are retried after a delay that starts at
        ``bad_sync_timeout`` seconds and doubles up to ``bad_sync_timeout_limit``;
        a successful sync resets it. A stop request cuts the delay short.
        Validation errors always propagate. Any other error is passed to
        ``exception_handler`` when one is given and re-raised otherwise, which
        ends the loop.
        """
        self._arm_listener()
        await self._listen_loop(timeout_ms, exception_handler, bad_sync_timeout)

    async def _listen_loop(
        self,
        timeout_ms: int,
        exception_handler: Optional[Callable[[Exception], Any]],
        bad_sync_timeout: float,
    ) -> None:
        backoff = SyncBackoff(bad_sync_timeout, self.bad_sync_timeout_limit)
        try:
            while self.should_listen:
                try:
                    await self.sync_once(timeout_ms)
                    backoff.reset()
                except (ValidationFailure, UnsupportedMethod):
                    raise
                except Exception as e:
                    status = status_of(e)
                    if status is not None and status >= HTTP_STATUS_SERVER_ERROR:
                        delay = backoff.next_delay()
                        logger.warning(
                            f"Sync failed with status {status}; retrying in {delay}s"
                        )
                        await self._wait_unless_stopped(delay)
                    elif exception_handler is not None:
                        result = exception_handler(e)
                        if inspect.isawaitable(result):
                            await result
                    else:
                        raise
        finally:
            self.should_listen = False
            self.sync_state = SyncState.STOPPED

    def stop_listener(self) -> None:
        """Ask :meth:`listen_forever` to stop after the in-flight sync completes."""
        self.should_listen = False
        if self._stop_event is not None:
            self._stop_event.set()

    def start_listener_task(
        self,
        timeout_ms: int = SYNC_TIMEOUT_MS,
        exception_handler: Optional[Callable[[Exception], Any]] = None,
        bad_sync_timeout: float = DEFAULT_BAD_SYNC_TIMEOUT_SEC,
    ) -> asyncio.Task:
        """
        Run the sync loop in a background task and return it.

        The loop is armed before the task is scheduled, so a stop issued right
        after this call is honoured.
        """
        if self._listener_task is not None and not self._listener_task.done():
            return self._listener_task
        self._arm_listener()
        self._listener_task = asyncio.create_task(
            self._listen_loop(timeout_ms, exception_handler, bad_sync_timeout)
        )
        return self._listener_task

    async def stop_listener_task(self) -> None:
        """Stop the background listener and wait for its current sync to finish."""
        self.stop_listener()
        task = self._listener_task
        self._listener_task = None
        if task is None or task.done():
            return
        try:
            await task
        except Exception:
            logger.exception("Listener task ended with an error")
