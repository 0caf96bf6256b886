"""Tests for YAML config loading, environment overrides and client construction."""

from unittest.mock import patch

import pytest
import yaml

from roomsync import CacheLevel, MatrixClient
from roomsync import config as cfg
from roomsync.auth import Credentials
from roomsync.errors import ValidationFailure


@pytest.fixture
def no_saved_credentials():
    with patch("roomsync.config.load_credentials", return_value=None):
        yield


@pytest.fixture
def clean_env(monkeypatch, tmp_path):
    for name in ("MATRIX_HOMESERVER", "MATRIX_USER_ID", "MATRIX_ACCESS_TOKEN"):
        # setenv first so teardown removes values loaded from .env files
        monkeypatch.setenv(name, "")
        monkeypatch.delenv(name)
    monkeypatch.chdir(tmp_path)


def write_config(path, data):
    path.write_text(yaml.safe_dump(data))
    return path


class TestLoadConfig:
    def test_defaults_filled_in(self, tmp_path):
        path = write_config(
            tmp_path / "config.yaml", {"matrix": {"homeserver": "https://hs.example"}}
        )

        config = cfg.load_config(path)

        assert config["matrix"]["homeserver"] == "https://hs.example"
        assert config["sync"]["timeout_ms"] == 30000
        assert config["sync"]["cache_level"] == "all"
        assert config["transport"]["use_authorization_header"] is True

    def test_user_values_override_defaults(self, tmp_path):
        path = write_config(tmp_path / "config.yaml", {"sync": {"filter_limit": 5}})

        config = cfg.load_config(path)

        assert config["sync"]["filter_limit"] == 5
        assert config["sync"]["bad_sync_timeout"] == 5

    def test_missing_file(self, tmp_path):
        assert cfg.load_config(tmp_path / "absent.yaml") is None

    def test_invalid_yaml(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("matrix: [unclosed")
        assert cfg.load_config(path) is None

    def test_non_mapping_section(self, tmp_path):
        path = write_config(tmp_path / "config.yaml", {"sync": ["not", "a", "mapping"]})
        assert cfg.load_config(path) is None

    def test_empty_file(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("")
        assert cfg.load_config(path)["matrix"]["homeserver"] is None


class TestEnvironment:
    def test_env_vars_override(self, clean_env, monkeypatch):
        monkeypatch.setenv("MATRIX_HOMESERVER", "https://env.example")
        monkeypatch.setenv("MATRIX_ACCESS_TOKEN", "env_token")
        config = {"matrix": {"homeserver": "https://file.example"}}

        result = cfg.load_environment(config)

        assert result["matrix"]["homeserver"] == "https://env.example"
        assert result["matrix"]["access_token"] == "env_token"

    def test_dotenv_next_to_config(self, clean_env, tmp_path):
        conf_dir = tmp_path / "conf"
        conf_dir.mkdir()
        (conf_dir / ".env").write_text("MATRIX_USER_ID=@env:hs.example\n")
        config_path = write_config(conf_dir / "config.yaml", {})

        result = cfg.load_environment({}, str(config_path))

        assert result["matrix"]["user_id"] == "@env:hs.example"


class TestClientFromConfig:
    def test_kwargs(self, no_saved_credentials):
        config = {
            "matrix": {
                "homeserver": "https://hs.example",
                "access_token": "tok",
                "user_id": "@a:hs.example",
                "identity": "@as_user:hs.example",
            },
            "sync": {"cache_level": "some", "filter_limit": 7},
            "transport": {"max_rate_limit_retries": 3, "default_429_wait_ms": 100},
        }

        kwargs = cfg.client_kwargs_from_config(config)

        assert kwargs["base_url"] == "https://hs.example"
        assert kwargs["token"] == "tok"
        assert kwargs["cache_level"] is CacheLevel.SOME
        assert kwargs["sync_filter_limit"] == 7
        assert kwargs["identity"] == "@as_user:hs.example"
        assert kwargs["rate_limit_policy"].max_retries == 3
        assert kwargs["rate_limit_policy"].default_wait_ms == 100

    def test_missing_homeserver(self, no_saved_credentials):
        with pytest.raises(ValidationFailure):
            cfg.client_kwargs_from_config({})

    def test_saved_credentials_win(self):
        creds = Credentials("https://saved.example", "@saved:saved.example", "saved_tok")
        with patch("roomsync.config.load_credentials", return_value=creds):
            kwargs = cfg.client_kwargs_from_config(
                {"matrix": {"homeserver": "https://file.example", "access_token": "old"}}
            )

        assert kwargs["base_url"] == "https://saved.example"
        assert kwargs["token"] == "saved_tok"
        assert kwargs["user_id"] == "@saved:saved.example"

    def test_create_client(self, no_saved_credentials):
        client = cfg.create_client(
            {
                "matrix": {"homeserver": "https://hs.example", "access_token": "tok"},
                "transport": {"use_authorization_header": False, "validate_cert": False},
            }
        )

        assert isinstance(client, MatrixClient)
        assert client.token == "tok"
        assert client.api.transport.use_authorization_header is False
        assert client.api.transport.validate_cert is False

    def test_invalid_cache_level(self, no_saved_credentials):
        with pytest.raises(ValidationFailure):
            cfg.client_kwargs_from_config(
                {"matrix": {"homeserver": "https://hs.example"}, "sync": {"cache_level": "lots"}}
            )
