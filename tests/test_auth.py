"""Tests for the auth module."""

import json
import os
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from roomsync import auth
from roomsync.errors import RequestFailed, TransportFailure


@pytest.fixture
def temp_config_dir(tmp_path):
    """
    Point auth's config directory and credentials file at a temp directory.

    Yields:
        pathlib.Path: The temporary ``matrix-roomsync`` directory.
    """
    config_dir = tmp_path / "matrix-roomsync"
    config_dir.mkdir(parents=True, exist_ok=True)

    with patch.object(auth, "CONFIG_DIR", config_dir):
        with patch.object(auth, "CREDENTIALS_FILE", config_dir / "credentials.json"):
            yield config_dir


def _mock_api(login=None, discovery=None):
    """An async-context-manager MatrixHttpApi stand-in."""
    api = MagicMock()
    api.base_url = "https://matrix.org"
    api.__aenter__ = AsyncMock(return_value=api)
    api.__aexit__ = AsyncMock(return_value=False)
    api.login = login or AsyncMock()
    api.logout = AsyncMock()
    api.send = discovery or AsyncMock(return_value={})
    return api


class TestCredentials:
    """Test the Credentials dataclass."""

    def test_credentials_round_trip_keys(self):
        creds = auth.Credentials(
            homeserver="https://matrix.org",
            user_id="@test:matrix.org",
            access_token="test_token",
            device_id="DEV",
        )

        assert creds.to_dict() == {
            "homeserver": "https://matrix.org",
            "user_id": "@test:matrix.org",
            "access_token": "test_token",
            "device_id": "DEV",
        }

    def test_credentials_from_dict_missing_fields(self):
        creds = auth.Credentials.from_dict(
            {"homeserver": "https://matrix.org", "user_id": "@test:matrix.org"}
        )

        assert creds.access_token == ""
        assert creds.device_id is None


class TestCredentialStorage:
    """Saving and loading credentials.json."""

    def test_save_and_load(self, temp_config_dir):
        creds = auth.Credentials("https://matrix.org", "@a:matrix.org", "tok", "DEV")

        auth.save_credentials(creds)

        path = temp_config_dir / "credentials.json"
        assert json.loads(path.read_text())["access_token"] == "tok"
        assert auth.load_credentials() == creds

    @pytest.mark.skipif(os.name == "nt", reason="POSIX permissions")
    def test_saved_file_is_owner_only(self, temp_config_dir):
        auth.save_credentials(auth.Credentials("https://m.org", "@a:m.org", "t"))

        mode = (temp_config_dir / "credentials.json").stat().st_mode & 0o777
        assert mode == 0o600

    def test_load_missing(self, temp_config_dir):
        assert auth.load_credentials() is None

    def test_load_corrupt(self, temp_config_dir):
        (temp_config_dir / "credentials.json").write_text("{not json")
        assert auth.load_credentials() is None

    def test_save_failure_is_logged(self, temp_config_dir):
        with patch("roomsync.auth.os.replace", side_effect=OSError("disk full")):
            auth.save_credentials(auth.Credentials("https://m.org", "@a:m.org", "t"))

        assert not (temp_config_dir / "credentials.json").exists()
        assert list(temp_config_dir.glob("tmp*")) == []


class TestHomeserverHelpers:
    @pytest.mark.parametrize(
        "raw, expected",
        [
            ("matrix.org", "https://matrix.org"),
            ("http://localhost:8008/", "http://localhost:8008"),
            ("  https://matrix.org  ", "https://matrix.org"),
        ],
    )
    def test_normalize_homeserver(self, raw, expected):
        assert auth.normalize_homeserver(raw) == expected

    async def test_discovery_uses_well_known(self):
        api = _mock_api(
            discovery=AsyncMock(
                return_value={"m.homeserver": {"base_url": "https://matrix-client.matrix.org/"}}
            )
        )

        result = await auth.discover_homeserver(api)

        assert result == "https://matrix-client.matrix.org"
        api.send.assert_awaited_once_with(
            "GET", "/.well-known/matrix/client", api_path=""
        )

    async def test_discovery_falls_back_on_error(self):
        api = _mock_api(discovery=AsyncMock(side_effect=RequestFailed(404, "")))
        assert await auth.discover_homeserver(api) == "https://matrix.org"


class TestInteractiveLogin:
    """interactive_login() against a mocked API."""

    async def test_login_saves_credentials(self, temp_config_dir):
        discovery_api = _mock_api()
        login_api = _mock_api(
            login=AsyncMock(
                return_value={
                    "user_id": "@alice:matrix.org",
                    "access_token": "tok",
                    "device_id": "DEV",
                }
            )
        )

        with patch("roomsync.auth.MatrixHttpApi", side_effect=[discovery_api, login_api]):
            ok = await auth.interactive_login("matrix.org", "alice", "pw")

        assert ok is True
        login_api.login.assert_awaited_once()
        kwargs = login_api.login.await_args.kwargs
        assert kwargs["identifier"] == {"type": "m.id.user", "user": "@alice:matrix.org"}
        creds = auth.load_credentials()
        assert creds.user_id == "@alice:matrix.org"
        assert creds.device_id == "DEV"

    @pytest.mark.parametrize("errcode", ["M_FORBIDDEN", "M_LIMIT_EXCEEDED", "M_UNKNOWN"])
    async def test_login_rejected(self, temp_config_dir, errcode):
        login_api = _mock_api(login=AsyncMock(side_effect=RequestFailed(403, "", errcode)))

        with patch("roomsync.auth.MatrixHttpApi", side_effect=[_mock_api(), login_api]):
            ok = await auth.interactive_login("matrix.org", "@alice:matrix.org", "pw")

        assert ok is False
        assert auth.load_credentials() is None

    async def test_network_error(self, temp_config_dir):
        failure = TransportFailure(OSError("down"), "POST", "https://matrix.org/login")
        login_api = _mock_api(login=AsyncMock(side_effect=failure))

        with patch("roomsync.auth.MatrixHttpApi", side_effect=[_mock_api(), login_api]):
            assert await auth.interactive_login("matrix.org", "alice", "pw") is False

    async def test_existing_session_kept_when_declined(self, temp_config_dir):
        auth.save_credentials(auth.Credentials("https://m.org", "@a:m.org", "t"))

        with patch("builtins.input", return_value="n"), patch(
            "roomsync.auth.MatrixHttpApi"
        ) as api_cls:
            assert await auth.interactive_login() is True

        api_cls.assert_not_called()


class TestInteractiveLogout:
    async def test_logout_removes_credentials(self, temp_config_dir):
        auth.save_credentials(auth.Credentials("https://m.org", "@a:m.org", "t"))
        api = _mock_api()

        with patch("roomsync.auth.MatrixHttpApi", return_value=api):
            assert await auth.interactive_logout() is True

        api.logout.assert_awaited_once()
        assert not (temp_config_dir / "credentials.json").exists()

    async def test_remote_failure_still_cleans_up(self, temp_config_dir):
        auth.save_credentials(auth.Credentials("https://m.org", "@a:m.org", "t"))
        api = _mock_api()
        api.logout = AsyncMock(side_effect=RequestFailed(401, "", "M_UNKNOWN_TOKEN"))

        with patch("roomsync.auth.MatrixHttpApi", return_value=api):
            assert await auth.interactive_logout() is True

        assert auth.load_credentials() is None
