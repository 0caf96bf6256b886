"""
Local projection of one Matrix room.

A :class:`Room` folds state events into a handful of attributes (name, topic,
join rules, membership ...), keeps a bounded buffer of recent timeline events
and fans events out to per-room listeners. The :class:`~roomsync.client.MatrixClient`
creates rooms while syncing and feeds them events; rooms reach the network only
through the client's :class:`~roomsync.api.MatrixHttpApi`.
"""

import html
import logging
from collections import deque
from typing import TYPE_CHECKING, Any, Callable, Deque, Dict, List, Optional

from .cache import CacheLevel
from .constants import EVENT_BUFFER_SIZE, LOGGER_NAME, ROOM_NAME_EMPTY
from .errors import MatrixError, RequestFailed
from .events import (
    ENCRYPTION_ALGORITHM,
    GUEST_ACCESS_CAN_JOIN,
    GUEST_ACCESS_FORBIDDEN,
    JOIN_RULE_INVITE,
    JOIN_RULE_PUBLIC,
    MEMBERSHIP_INVITE,
    MEMBERSHIP_JOIN,
    MEMBERSHIP_KICK,
    MEMBERSHIP_LEAVE,
    ROOM_ALIASES,
    ROOM_CANONICAL_ALIAS,
    ROOM_ENCRYPTION,
    ROOM_GUEST_ACCESS,
    ROOM_JOIN_RULES,
    ROOM_MEMBER,
    ROOM_MESSAGE,
    ROOM_NAME,
    ROOM_TOPIC,
    Event,
    content_of,
    is_state_event,
    type_of,
)
from .listeners import ListenerRegistry
from .user import User
from .utils import check_room_id

if TYPE_CHECKING:
    from .api import MatrixHttpApi
    from .client import MatrixClient

logger = logging.getLogger(LOGGER_NAME)

# TODO: track invited users separately instead of dropping them from the
# joined roster on invite.
_MEMBERSHIP_REMOVALS = frozenset({MEMBERSHIP_LEAVE, MEMBERSHIP_KICK, MEMBERSHIP_INVITE})


class Room:
    """
    The client's view of one room.

    Attributes:
        name, canonical_alias, topic: Latest values folded from state.
        aliases: Local aliases from ``m.room.aliases``.
        invite_only: True when the join rule is ``invite``.
        guest_access: True when guests ``can_join``.
        encrypted: Set once an ``m.room.encryption`` event is seen; never reset.
        events: The most recent timeline events, oldest first.
        prev_batch: Pagination token for history before the first buffered event.
        members_displaynames: ``user_id -> display name`` for joined members.
    """

    def __init__(
        self,
        client: "MatrixClient",
        room_id: str,
        event_history_limit: int = EVENT_BUFFER_SIZE,
    ):
        check_room_id(room_id)
        self.client = client
        self._room_id = room_id

        self.name: Optional[str] = None
        self.canonical_alias: Optional[str] = None
        self.topic: Optional[str] = None
        self.aliases: List[str] = []
        self.invite_only = False
        self.guest_access = False
        self.encrypted = False
        self.prev_batch: Optional[str] = None

        self.events: Deque[Event] = deque(maxlen=event_history_limit)
        self._members: Dict[str, User] = {}
        self.members_displaynames: Dict[str, str] = {}

        self.listeners = ListenerRegistry("room-timeline")
        self.ephemeral_listeners = ListenerRegistry("room-ephemeral")
        self.state_listeners = ListenerRegistry("room-state")

    def __repr__(self) -> str:
        return f"<Room {self._room_id}>"

    @property
    def room_id(self) -> str:
        return self._room_id

    @property
    def api(self) -> "MatrixHttpApi":
        return self.client.api

    @property
    def event_history_limit(self) -> int:
        return self.events.maxlen

    # Listeners

    def add_listener(self, callback: Callable, event_type: Optional[str] = None) -> str:
        """Register a timeline listener called as ``callback(room, event)``."""
        return self.listeners.subscribe(callback, event_type)

    def remove_listener(self, listener_id: str) -> bool:
        return self.listeners.unsubscribe(listener_id)

    def add_ephemeral_listener(
        self, callback: Callable, event_type: Optional[str] = None
    ) -> str:
        return self.ephemeral_listeners.subscribe(callback, event_type)

    def remove_ephemeral_listener(self, listener_id: str) -> bool:
        return self.ephemeral_listeners.unsubscribe(listener_id)

    def add_state_listener(
        self, callback: Callable, event_type: Optional[str] = None
    ) -> str:
        """Register a listener called as ``callback(room, event)`` after each state fold."""
        return self.state_listeners.subscribe(callback, event_type)

    def remove_state_listener(self, listener_id: str) -> bool:
        return self.state_listeners.unsubscribe(listener_id)

    # Event intake

    async def put_event(self, event: Event) -> None:
        """Buffer a timeline event, fold it if it carries state, and notify room listeners."""
        self.events.append(event)
        if is_state_event(event):
            await self.apply_state_event(event)
        await self.listeners.dispatch(type_of(event), self, event)

    async def put_ephemeral_event(self, event: Event) -> None:
        """Notify ephemeral listeners; ephemeral events are never buffered."""
        await self.ephemeral_listeners.dispatch(type_of(event), self, event)

    async def apply_state_event(self, event: Event) -> None:
        """
        Fold one state event into the projection, then notify state listeners.

        Nothing is folded at ``CacheLevel.NONE``; membership is only tracked at
        ``CacheLevel.ALL``. Unknown event types are ignored.
        """
        etype = type_of(event)
        if etype is None:
            return

        cache_level = self.client.cache_level
        if cache_level >= CacheLevel.SOME:
            content = content_of(event)
            if etype == ROOM_NAME:
                self.name = content.get("name")
            elif etype == ROOM_CANONICAL_ALIAS:
                self.canonical_alias = content.get("alias")
            elif etype == ROOM_TOPIC:
                self.topic = content.get("topic")
            elif etype == ROOM_ALIASES:
                self.aliases = list(content.get("aliases") or [])
            elif etype == ROOM_JOIN_RULES:
                self.invite_only = content.get("join_rule") == JOIN_RULE_INVITE
            elif etype == ROOM_GUEST_ACCESS:
                self.guest_access = content.get("guest_access") == GUEST_ACCESS_CAN_JOIN
            elif etype == ROOM_ENCRYPTION:
                if content.get("algorithm"):
                    self.encrypted = True
            elif etype == ROOM_MEMBER and cache_level == CacheLevel.ALL:
                self._fold_membership(event, content)

        await self.state_listeners.dispatch(etype, self, event)

    def _fold_membership(self, event: Event, content: Dict[str, Any]) -> None:
        user_id = event.get("state_key")
        if not user_id:
            return
        membership = content.get("membership")
        if membership == MEMBERSHIP_JOIN:
            self._add_member(user_id, content.get("displayname"))
        elif membership in _MEMBERSHIP_REMOVALS:
            self._members.pop(user_id, None)
            self.members_displaynames.pop(user_id, None)

    def _add_member(self, user_id: str, displayname: Optional[str] = None) -> None:
        if displayname:
            self.members_displaynames[user_id] = displayname
        if user_id in self._members:
            return
        self._members[user_id] = self.client.get_or_create_user(user_id)

    # Derived views

    @property
    def members(self) -> List[User]:
        """Joined members known from state, without any I/O."""
        return list(self._members.values())

    def get_events(self) -> List[Event]:
        return list(self.events)

    def resolve_display_name(self, user_id: str) -> str:
        """Room-specific display name of ``user_id``, falling back to the id itself."""
        return self.members_displaynames.get(user_id) or user_id

    @property
    def display_name(self) -> str:
        """
        Human-readable room name.

        Uses the room name, then the canonical alias, then the names of the other
        joined members ("Empty room", "A", "A and B", "A and 2 others").
        """
        if self.name:
            return self.name
        if self.canonical_alias:
            return self.canonical_alias

        names = sorted(
            self.resolve_display_name(user_id)
            for user_id in self._members
            if user_id != self.client.user_id
        )
        if not names:
            return ROOM_NAME_EMPTY
        if len(names) == 1:
            return names[0]
        if len(names) == 2:
            return f"{names[0]} and {names[1]}"
        return f"{names[0]} and {len(names) - 1} others"

    async def get_joined_members(self) -> List[User]:
        """Return joined members, fetching the member list once if none is cached."""
        if self._members:
            return self.members
        response = await self.api.get_room_members(self._room_id)
        for event in response.get("chunk", []):
            content = content_of(event)
            if content.get("membership") == MEMBERSHIP_JOIN and event.get("state_key"):
                self._add_member(event["state_key"], content.get("displayname"))
        return self.members

    async def backfill_previous_messages(self, reverse: bool = False, limit: int = 10) -> None:
        """
        Fetch up to ``limit`` older events and feed them through :meth:`put_event`.

        With ``reverse=False`` the fetched events are replayed oldest first.
        """
        response = await self.api.get_room_messages(
            self._room_id, self.prev_batch, "b", limit=limit
        )
        events = list(response.get("chunk", []))
        if not reverse:
            events.reverse()
        for event in events:
            await self.put_event(event)
        if response.get("end"):
            self.prev_batch = response["end"]

    # Messaging

    async def send_text(self, text: str):
        return await self.api.send_message(self._room_id, text)

    def get_html_content(
        self, html_body: str, body: Optional[str] = None, msg_type: str = "m.text"
    ) -> Dict[str, str]:
        return {
            "body": body if body is not None else html.unescape(html_body),
            "msgtype": msg_type,
            "format": "org.matrix.custom.html",
            "formatted_body": html_body,
        }

    async def send_html(
        self, html_body: str, body: Optional[str] = None, msg_type: str = "m.text"
    ):
        content = self.get_html_content(html_body, body, msg_type)
        return await self.api.send_message_event(self._room_id, ROOM_MESSAGE, content)

    async def send_emote(self, text: str):
        return await self.api.send_emote(self._room_id, text)

    async def send_notice(self, text: str):
        return await self.api.send_notice(self._room_id, text)

    async def send_file(self, url: str, name: str, fileinfo: Optional[Dict] = None):
        return await self.api.send_content(self._room_id, url, name, "m.file", fileinfo)

    async def send_image(self, url: str, name: str, imageinfo: Optional[Dict] = None):
        return await self.api.send_content(self._room_id, url, name, "m.image", imageinfo)

    async def send_video(self, url: str, name: str, videoinfo: Optional[Dict] = None):
        return await self.api.send_content(self._room_id, url, name, "m.video", videoinfo)

    async def send_audio(self, url: str, name: str, audioinfo: Optional[Dict] = None):
        return await self.api.send_content(self._room_id, url, name, "m.audio", audioinfo)

    async def send_location(
        self,
        geo_uri: str,
        name: str,
        thumb_url: Optional[str] = None,
        thumb_info: Optional[Dict] = None,
    ):
        return await self.api.send_location(
            self._room_id, geo_uri, name, thumb_url, thumb_info
        )

    async def redact_message(self, event_id: str, reason: Optional[str] = None):
        return await self.api.redact_event(self._room_id, event_id, reason=reason)

    async def send_state_event(
        self, event_type: str, content: Dict[str, Any], state_key: str = ""
    ):
        return await self.api.send_state_event(
            self._room_id, event_type, content, state_key=state_key
        )

    # Account data and tags

    async def set_account_data(self, data_type: str, account_data: Dict[str, Any]):
        return await self.api.set_room_account_data(
            self.client.user_id, self._room_id, data_type, account_data
        )

    async def get_tags(self):
        return await self.api.get_user_tags(self.client.user_id, self._room_id)

    async def add_tag(
        self, tag: str, order: Optional[float] = None, content: Optional[Dict] = None
    ):
        return await self.api.add_user_tag(
            self.client.user_id, self._room_id, tag, order, content
        )

    async def remove_tag(self, tag: str):
        return await self.api.remove_user_tag(self.client.user_id, self._room_id, tag)

    async def set_user_profile(
        self,
        displayname: Optional[str] = None,
        avatar_url: Optional[str] = None,
        reason: str = "Changing room profile information",
    ):
        """Change the client user's display name and/or avatar in this room only."""
        member = await self.api.get_membership(self._room_id, self.client.user_id)
        if member.get("membership") != MEMBERSHIP_JOIN:
            raise MatrixError("Can't set profile if you have not joined the room.")
        profile = {
            "displayname": displayname or member.get("displayname"),
            "avatar_url": avatar_url or member.get("avatar_url"),
        }
        return await self.api.set_membership(
            self._room_id, self.client.user_id, MEMBERSHIP_JOIN, reason, profile
        )

    # Membership and moderation; these report failure as False

    async def invite_user(self, user_id: str) -> bool:
        try:
            await self.api.invite_user(self._room_id, user_id)
        except RequestFailed as e:
            logger.warning(f"Failed to invite {user_id} to {self._room_id}: {e}")
            return False
        return True

    async def kick_user(self, user_id: str, reason: str = "") -> bool:
        try:
            await self.api.kick_user(self._room_id, user_id, reason)
        except RequestFailed as e:
            logger.warning(f"Failed to kick {user_id} from {self._room_id}: {e}")
            return False
        return True

    async def ban_user(self, user_id: str, reason: str = "") -> bool:
        try:
            await self.api.ban_user(self._room_id, user_id, reason)
        except RequestFailed as e:
            logger.warning(f"Failed to ban {user_id} from {self._room_id}: {e}")
            return False
        return True

    async def unban_user(self, user_id: str) -> bool:
        try:
            await self.api.unban_user(self._room_id, user_id)
        except RequestFailed as e:
            logger.warning(f"Failed to unban {user_id} in {self._room_id}: {e}")
            return False
        return True

    async def leave(self) -> bool:
        """Leave the room, forget it on the server and drop it from the client."""
        try:
            await self.api.leave_room(self._room_id)
            await self.client.forget_room(self._room_id)
        except RequestFailed as e:
            logger.warning(f"Failed to leave {self._room_id}: {e}")
            return False
        return True

    async def update_room_name(self) -> bool:
        """Refresh the name from the server; True if it changed."""
        try:
            response = await self.api.get_room_name(self._room_id)
        except RequestFailed:
            return False
        new_name = response.get("name", self.name)
        if new_name != self.name:
            self.name = new_name
            return True
        return False

    async def set_room_name(self, name: str) -> bool:
        try:
            await self.api.set_room_name(self._room_id, name)
        except RequestFailed:
            return False
        self.name = name
        return True

    async def update_room_topic(self) -> bool:
        """Refresh the topic from the server; True if it changed."""
        try:
            response = await self.api.get_room_topic(self._room_id)
        except RequestFailed:
            return False
        new_topic = response.get("topic", self.topic)
        if new_topic != self.topic:
            self.topic = new_topic
            return True
        return False

    async def set_room_topic(self, topic: str) -> bool:
        try:
            await self.api.set_room_topic(self._room_id, topic)
        except RequestFailed:
            return False
        self.topic = topic
        return True

    async def update_aliases(self) -> bool:
        """Refresh aliases from the full room state; True if they changed."""
        try:
            response = await self.api.get_room_state(self._room_id)
        except RequestFailed:
            return False
        for chunk in response:
            aliases = content_of(chunk).get("aliases")
            if aliases is not None:
                changed = list(aliases) != self.aliases
                self.aliases = list(aliases)
                return changed
        return False

    async def add_room_alias(self, alias: str) -> bool:
        try:
            await self.api.set_room_alias(self._room_id, alias)
        except RequestFailed:
            return False
        return True

    async def modify_user_power_levels(
        self,
        users: Optional[Dict[str, Optional[int]]] = None,
        users_default: Optional[int] = None,
    ) -> bool:
        """
        Update per-user power levels.

        A ``None`` level in ``users`` removes that user's explicit level.
        """
        try:
            content = await self.api.get_power_levels(self._room_id)
            if users_default is not None:
                content["users_default"] = users_default
            if users:
                merged = dict(content.get("users", {}))
                merged.update(users)
                content["users"] = {
                    user_id: level
                    for user_id, level in merged.items()
                    if level is not None
                }
            await self.api.set_power_levels(self._room_id, content)
        except RequestFailed:
            return False
        return True

    async def modify_required_power_levels(
        self,
        events: Optional[Dict[str, Optional[int]]] = None,
        **kwargs: Optional[int],
    ) -> bool:
        """
        Update the levels required for actions (``ban=50`` ...) and event types.

        A ``None`` value removes the key so the server default applies.
        """
        try:
            content = await self.api.get_power_levels(self._room_id)
            content.update(kwargs)
            content = {key: value for key, value in content.items() if value is not None}
            if events:
                merged = dict(content.get("events", {}))
                merged.update(events)
                content["events"] = {
                    etype: level for etype, level in merged.items() if level is not None
                }
            await self.api.set_power_levels(self._room_id, content)
        except RequestFailed:
            return False
        return True

    async def set_invite_only(self, invite_only: bool) -> bool:
        join_rule = JOIN_RULE_INVITE if invite_only else JOIN_RULE_PUBLIC
        try:
            await self.api.set_join_rule(self._room_id, join_rule)
        except RequestFailed:
            return False
        self.invite_only = invite_only
        return True

    async def set_guest_access(self, allow_guests: bool) -> bool:
        guest_access = GUEST_ACCESS_CAN_JOIN if allow_guests else GUEST_ACCESS_FORBIDDEN
        try:
            await self.api.set_guest_access(self._room_id, guest_access)
        except RequestFailed:
            return False
        self.guest_access = allow_guests
        return True

    async def enable_encryption(self) -> bool:
        try:
            await self.send_state_event(
                ROOM_ENCRYPTION, {"algorithm": ENCRYPTION_ALGORITHM}
            )
        except RequestFailed:
            return False
        self.encrypted = True
        return True
