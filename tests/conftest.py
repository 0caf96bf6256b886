import json
import sys
from pathlib import Path
from typing import Any, List

import pytest

# Ensure src/ is importable without installation
PROJECT_ROOT = Path(__file__).resolve().parent.parent
SRC_DIR = PROJECT_ROOT / "src"
if str(SRC_DIR) not in sys.path:
    sys.path.insert(0, str(SRC_DIR))

from roomsync import CacheLevel, MatrixClient, MatrixHttpApi  # noqa: E402

HOMESERVER = "https://hs.example"
TOKEN = "syt_test_token"  # nosec B105
USER_ID = "@alice:hs.example"


class FakeResponse:
    """Stands in for aiohttp.ClientResponse inside ``async with``."""

    def __init__(self, status: int, body: Any = None):
        self.status = status
        if body is None:
            self._raw = b""
        elif isinstance(body, bytes):
            self._raw = body
        elif isinstance(body, str):
            self._raw = body.encode("utf-8")
        else:
            self._raw = json.dumps(body).encode("utf-8")

    async def read(self) -> bytes:
        return self._raw


class _RequestContext:
    def __init__(self, outcome):
        self._outcome = outcome

    async def __aenter__(self):
        if isinstance(self._outcome, BaseException):
            raise self._outcome
        return self._outcome

    async def __aexit__(self, exc_type, exc, tb):
        return False


class FakeSession:
    """
    Minimal aiohttp.ClientSession replacement.

    Scripted outcomes are consumed in order: ``(status, body)`` tuples become
    responses and exception instances are raised when the request is entered.
    Every request is recorded in ``requests``.
    """

    def __init__(self):
        self.outcomes: List[Any] = []
        self.requests: List[dict] = []
        self.closed = False

    def queue(self, status: int, body: Any = None) -> "FakeSession":
        self.outcomes.append(FakeResponse(status, body))
        return self

    def queue_error(self, exc: BaseException) -> "FakeSession":
        self.outcomes.append(exc)
        return self

    def request(self, method, url, **kwargs):
        self.requests.append({"method": method, "url": str(url), **kwargs})
        if not self.outcomes:
            raise AssertionError(f"Unexpected request: {method} {url}")
        return _RequestContext(self.outcomes.pop(0))

    async def close(self):
        self.closed = True

    @property
    def last(self) -> dict:
        return self.requests[-1]

    def last_json(self):
        return json.loads(self.last["data"])


@pytest.fixture
def fake_session():
    return FakeSession()


@pytest.fixture
def api(fake_session):
    return MatrixHttpApi(HOMESERVER, token=TOKEN, session=fake_session)


@pytest.fixture
def client(api):
    return MatrixClient(HOMESERVER, user_id=USER_ID, api=api, cache_level=CacheLevel.ALL)


def make_sync_response(
    next_batch="s1", presence=None, invite=None, leave=None, join=None, **extra
):
    """Build a /sync response body with only the given sections populated."""
    body = {
        "next_batch": next_batch,
        "presence": {"events": presence or []},
        "rooms": {"invite": invite or {}, "leave": leave or {}, "join": join or {}},
    }
    body.update(extra)
    return body


def joined_room(state=None, timeline=None, ephemeral=None, prev_batch="p1"):
    return {
        "state": {"events": state or []},
        "timeline": {"events": timeline or [], "prev_batch": prev_batch},
        "ephemeral": {"events": ephemeral or []},
    }
