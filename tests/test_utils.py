"""Tests for identifier validation and small value types."""

import pytest

from roomsync.cache import CacheLevel
from roomsync.errors import ValidationFailure
from roomsync.retry import RateLimitPolicy, SyncBackoff
from roomsync.utils import (
    check_homeserver_url,
    check_mxc_url,
    check_room_alias,
    check_room_id,
    check_user_id,
)


class TestIdentifierValidation:
    """Room and user id format checks."""

    def test_valid_room_id(self):
        assert check_room_id("!abc:example.org") == "!abc:example.org"

    @pytest.mark.parametrize(
        "room_id", ["abc:example.org", "!abc", "!abc:", "#alias:example.org", ""]
    )
    def test_invalid_room_ids(self, room_id):
        with pytest.raises(ValidationFailure):
            check_room_id(room_id)

    def test_valid_user_id(self):
        assert check_user_id("@u:example.org") == "@u:example.org"

    @pytest.mark.parametrize("user_id", ["u:example.org", "@u", "!u:example.org"])
    def test_invalid_user_ids(self, user_id):
        with pytest.raises(ValidationFailure):
            check_user_id(user_id)

    def test_validation_failure_is_value_error(self):
        with pytest.raises(ValueError):
            check_user_id("nobody")

    def test_room_alias(self):
        assert check_room_alias("#room:example.org") == "#room:example.org"
        with pytest.raises(ValidationFailure):
            check_room_alias("room:example.org")


class TestUrlValidation:
    def test_mxc_url(self):
        assert check_mxc_url("mxc://example.org/abc") == "mxc://example.org/abc"

    @pytest.mark.parametrize(
        "url", ["http://example.org/abc", "mxc://example.org", "mxc:///abc", None]
    )
    def test_invalid_mxc_urls(self, url):
        with pytest.raises(ValidationFailure):
            check_mxc_url(url)

    def test_homeserver_url_trailing_slash_removed(self):
        assert check_homeserver_url("https://matrix.org/") == "https://matrix.org"

    @pytest.mark.parametrize("url", ["matrix.org", "ftp://matrix.org", "https://"])
    def test_invalid_homeserver_urls(self, url):
        with pytest.raises(ValidationFailure):
            check_homeserver_url(url)


class TestCacheLevel:
    def test_values(self):
        assert CacheLevel.NONE == -1
        assert CacheLevel.SOME == 0
        assert CacheLevel.ALL == 1

    @pytest.mark.parametrize(
        "value, expected",
        [(1, CacheLevel.ALL), ("some", CacheLevel.SOME), ("NONE", CacheLevel.NONE)],
    )
    def test_coerce(self, value, expected):
        assert CacheLevel.coerce(value) is expected

    @pytest.mark.parametrize("value", [2, "everything", True])
    def test_coerce_rejects_unknown(self, value):
        with pytest.raises(ValidationFailure):
            CacheLevel.coerce(value)


class TestRetryPolicies:
    def test_retry_after_top_level(self):
        assert RateLimitPolicy().retry_after_ms({"retry_after_ms": 250}) == 250

    def test_retry_after_nested(self):
        body = {"errcode": "M_LIMIT_EXCEEDED", "error": {"retry_after_ms": 1500}}
        assert RateLimitPolicy().retry_after_ms(body) == 1500

    def test_retry_after_default(self):
        assert RateLimitPolicy(default_wait_ms=700).retry_after_ms({}) == 700
        assert RateLimitPolicy().retry_after_ms("not json") == 5000

    def test_unbounded_by_default(self):
        assert RateLimitPolicy().should_retry(10_000)

    def test_bounded_retries(self):
        policy = RateLimitPolicy(max_retries=2)
        assert policy.should_retry(1)
        assert not policy.should_retry(2)

    def test_sync_backoff_doubles_to_ceiling_and_resets(self):
        backoff = SyncBackoff(5, ceiling=30)
        assert [backoff.next_delay() for _ in range(5)] == [5, 10, 20, 30, 30]
        backoff.reset()
        assert backoff.next_delay() == 5
