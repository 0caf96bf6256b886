"""Tests for the endpoint wrappers in MatrixHttpApi."""

import json

import pytest

from roomsync.api import MatrixHttpApi, make_sync_filter
from roomsync.errors import MatrixError, RequestFailed, ValidationFailure

from conftest import HOMESERVER

CLIENT = f"{HOMESERVER}/_matrix/client/r0"
MEDIA = f"{HOMESERVER}/_matrix/media/r0"
ROOM_ID = "!abc:hs.example"
ENCODED_ROOM_ID = "%21abc%3Ahs.example"


async def test_sync_query_parameters(api, fake_session):
    fake_session.queue(200, {"next_batch": "s2"})

    result = await api.sync(since="s1", timeout_ms=1000, filter='{"x":1}', full_state=True)

    assert result == {"next_batch": "s2"}
    request = fake_session.last
    assert request["url"] == f"{CLIENT}/sync"
    assert request["params"] == {
        "timeout": "1000",
        "since": "s1",
        "filter": '{"x":1}',
        "full_state": "true",
    }
    # HTTP timeout must outlast the long poll
    assert request["timeout"].total > 1


async def test_first_sync_has_no_since(api, fake_session):
    fake_session.queue(200, {"next_batch": "s1"})

    await api.sync(timeout_ms=0)

    assert "since" not in fake_session.last["params"]


def test_make_sync_filter():
    assert json.loads(make_sync_filter(20)) == {"room": {"timeline": {"limit": 20}}}


async def test_room_id_is_percent_encoded(api, fake_session):
    fake_session.queue(200, {})

    await api.leave_room(ROOM_ID)

    assert fake_session.last["url"] == f"{CLIENT}/rooms/{ENCODED_ROOM_ID}/leave"
    assert fake_session.last["method"] == "POST"


async def test_send_message_builds_txn_path(api, fake_session):
    fake_session.queue(200, {"event_id": "$e"})

    await api.send_message_event(ROOM_ID, "m.room.message", {"body": "hi"}, txn_id="42")

    request = fake_session.last
    assert request["method"] == "PUT"
    assert request["url"] == f"{CLIENT}/rooms/{ENCODED_ROOM_ID}/send/m.room.message/42"
    assert fake_session.last_json() == {"body": "hi"}


async def test_generated_txn_ids_are_unique(api, fake_session):
    fake_session.queue(200, {}).queue(200, {})

    await api.send_message(ROOM_ID, "one")
    await api.send_message(ROOM_ID, "two")

    first, second = (r["url"].rsplit("/", 1)[1] for r in fake_session.requests)
    assert first != second


async def test_send_notice_body(api, fake_session):
    fake_session.queue(200, {})

    await api.send_notice(ROOM_ID, "heads up")

    assert fake_session.last_json() == {"msgtype": "m.notice", "body": "heads up"}


async def test_state_event_with_key_and_timestamp(api, fake_session):
    fake_session.queue(200, {})

    await api.send_state_event(
        ROOM_ID, "m.room.member", {"membership": "join"}, state_key="@bob:hs.example", timestamp=5
    )

    request = fake_session.last
    assert request["url"] == (
        f"{CLIENT}/rooms/{ENCODED_ROOM_ID}/state/m.room.member/%40bob%3Ahs.example"
    )
    assert request["params"] == {"ts": "5"}


async def test_kick_is_a_leave_membership(api, fake_session):
    fake_session.queue(200, {})

    await api.kick_user(ROOM_ID, "@bob:hs.example", reason="spam")

    assert fake_session.last_json() == {"membership": "leave", "reason": "spam"}


async def test_set_join_rule_uses_join_rules_event(api, fake_session):
    fake_session.queue(200, {})

    await api.set_join_rule(ROOM_ID, "invite")

    assert fake_session.last["url"].endswith("/state/m.room.join_rules")
    assert fake_session.last_json() == {"join_rule": "invite"}


async def test_power_levels_always_carry_events(api, fake_session):
    fake_session.queue(200, {})

    await api.set_power_levels(ROOM_ID, {"users": {"@a:hs.example": 100}})

    assert fake_session.last_json() == {"users": {"@a:hs.example": 100}, "events": {}}


async def test_create_room_body(api, fake_session):
    fake_session.queue(200, {"room_id": ROOM_ID})

    await api.create_room(alias="lobby", is_public=True, invitees=["@bob:hs.example"])

    assert fake_session.last_json() == {
        "visibility": "public",
        "room_alias_name": "lobby",
        "invite": ["@bob:hs.example"],
    }


async def test_login_body(api, fake_session):
    fake_session.queue(200, {"access_token": "t"})

    await api.login("m.login.password", user="alice", password="pw")

    assert fake_session.last["url"] == f"{CLIENT}/login"
    assert fake_session.last_json() == {
        "type": "m.login.password",
        "user": "alice",
        "password": "pw",
    }


async def test_whoami_requires_token(fake_session):
    api = MatrixHttpApi(HOMESERVER, session=fake_session)

    with pytest.raises(MatrixError):
        await api.whoami()

    assert fake_session.requests == []


async def test_delete_device_surfaces_interactive_auth(api, fake_session):
    fake_session.queue(401, {"flows": [{"stages": ["m.login.password"]}], "session": "x"})

    with pytest.raises(RequestFailed) as exc_info:
        await api.delete_device({}, "DEVICE1")

    assert exc_info.value.status_code == 401
    assert json.loads(exc_info.value.content)["session"] == "x"
    request = fake_session.last
    assert request["method"] == "DELETE"
    assert request["url"] == f"{CLIENT}/devices/DEVICE1"
    assert fake_session.last_json() == {"auth": {}}


async def test_get_room_id_for_alias(api, fake_session):
    fake_session.queue(200, {"room_id": ROOM_ID, "servers": []})

    assert await api.get_room_id("#lobby:hs.example") == ROOM_ID
    assert fake_session.last["url"] == f"{CLIENT}/directory/room/%23lobby%3Ahs.example"


class TestMedia:
    """Upload, download and thumbnails."""

    async def test_upload_uses_media_path_and_content_type(self, api, fake_session):
        fake_session.queue(200, {"content_uri": "mxc://hs.example/abc"})

        result = await api.media_upload(b"data", "image/png", filename="a.png")

        assert result == {"content_uri": "mxc://hs.example/abc"}
        request = fake_session.last
        assert request["url"] == f"{MEDIA}/upload"
        assert request["headers"]["Content-Type"] == "image/png"
        assert request["data"] == b"data"
        assert request["params"] == {"filename": "a.png"}

    def test_download_url(self, api):
        assert (
            api.get_download_url("mxc://hs.example/abc")
            == f"{MEDIA}/download/hs.example/abc"
        )

    def test_download_url_rejects_non_mxc(self, api):
        with pytest.raises(ValidationFailure):
            api.get_download_url("https://hs.example/abc")

    async def test_media_download_returns_bytes(self, api, fake_session):
        fake_session.queue(200, b"\x00\x01")

        assert await api.media_download("mxc://hs.example/abc") == b"\x00\x01"
        assert fake_session.last["url"] == f"{MEDIA}/download/hs.example/abc"

    async def test_thumbnail(self, api, fake_session):
        fake_session.queue(200, b"thumb")

        result = await api.get_thumbnail("mxc://hs.example/abc", 32, 32, method="crop")

        assert result == b"thumb"
        request = fake_session.last
        assert request["url"] == f"{MEDIA}/thumbnail/hs.example/abc"
        assert request["params"] == {"width": "32", "height": "32", "method": "crop"}

    async def test_thumbnail_rejects_unknown_method(self, api, fake_session):
        with pytest.raises(ValidationFailure):
            await api.get_thumbnail("mxc://hs.example/abc", 32, 32, method="cut")
        assert fake_session.requests == []


class TestProfile:
    async def test_get_display_name(self, api, fake_session):
        fake_session.queue(200, {"displayname": "Alice"})

        assert await api.get_display_name("@alice:hs.example") == "Alice"
        assert fake_session.last["url"] == f"{CLIENT}/profile/%40alice%3Ahs.example/displayname"

    async def test_set_avatar_url(self, api, fake_session):
        fake_session.queue(200, {})

        await api.set_avatar_url("@alice:hs.example", "mxc://hs.example/pic")

        assert fake_session.last["method"] == "PUT"
        assert fake_session.last_json() == {"avatar_url": "mxc://hs.example/pic"}
