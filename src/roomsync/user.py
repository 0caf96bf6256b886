"""User handle shared between the client and the rooms it tracks."""

import logging
from typing import TYPE_CHECKING, Optional

from .constants import LOGGER_NAME
from .utils import check_user_id

if TYPE_CHECKING:
    from .api import MatrixHttpApi
    from .room import Room

logger = logging.getLogger(LOGGER_NAME)


class User:
    """
    A Matrix user as seen by this client.

    Only the user id is known up front; the global display name is fetched on
    demand and cached.
    """

    def __init__(
        self,
        api: "MatrixHttpApi",
        user_id: str,
        displayname: Optional[str] = None,
    ):
        check_user_id(user_id)
        self.api = api
        self.user_id = user_id
        self.displayname = displayname

    def __repr__(self) -> str:
        return f"<User {self.user_id}>"

    async def get_display_name(self, room: Optional["Room"] = None) -> str:
        """
        Return the user's display name.

        With ``room`` the per-room name from that room's roster is used when known.
        Otherwise the global name is fetched once and cached; the user id is the
        final fallback.
        """
        if room is not None:
            room_name = room.members_displaynames.get(self.user_id)
            if room_name:
                return room_name
        if not self.displayname:
            self.displayname = await self.api.get_display_name(self.user_id)
        return self.displayname or self.user_id

    def get_friendly_name(self) -> str:
        """Cached display name or user id, without any I/O."""
        return self.displayname or self.user_id

    async def set_display_name(self, display_name: str) -> None:
        await self.api.set_display_name(self.user_id, display_name)
        self.displayname = display_name

    async def get_avatar_url(self) -> Optional[str]:
        mxc_url = await self.api.get_avatar_url(self.user_id)
        if mxc_url:
            return self.api.get_download_url(mxc_url)
        return None

    async def set_avatar_url(self, avatar_url: str) -> None:
        """Set the avatar to an ``mxc://`` content URI."""
        await self.api.set_avatar_url(self.user_id, avatar_url)
