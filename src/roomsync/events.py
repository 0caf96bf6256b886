"""Event type names and small accessors for raw event dicts."""

from typing import Any, Dict, Optional

Event = Dict[str, Any]

ROOM_NAME = "m.room.name"
ROOM_CANONICAL_ALIAS = "m.room.canonical_alias"
ROOM_TOPIC = "m.room.topic"
ROOM_ALIASES = "m.room.aliases"
ROOM_JOIN_RULES = "m.room.join_rules"
ROOM_GUEST_ACCESS = "m.room.guest_access"
ROOM_ENCRYPTION = "m.room.encryption"
ROOM_MEMBER = "m.room.member"
ROOM_MESSAGE = "m.room.message"
ROOM_POWER_LEVELS = "m.room.power_levels"
TAG = "m.tag"

MEMBERSHIP_JOIN = "join"
MEMBERSHIP_LEAVE = "leave"
MEMBERSHIP_KICK = "kick"
MEMBERSHIP_INVITE = "invite"
MEMBERSHIP_BAN = "ban"

JOIN_RULE_INVITE = "invite"
JOIN_RULE_PUBLIC = "public"
GUEST_ACCESS_CAN_JOIN = "can_join"
GUEST_ACCESS_FORBIDDEN = "forbidden"
ENCRYPTION_ALGORITHM = "m.megolm.v1.aes-sha2"


def type_of(event: Event) -> Optional[str]:
    return event.get("type")


def content_of(event: Event) -> Dict[str, Any]:
    content = event.get("content")
    return content if isinstance(content, dict) else {}


def is_state_event(event: Event) -> bool:
    """Timeline events that carry a ``state_key`` also change room state."""
    return "state_key" in event
