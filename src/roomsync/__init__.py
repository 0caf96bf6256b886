"""Matrix Client-Server API client with an incremental room sync engine."""

__version__ = "0.1.0"

from .api import MatrixHttpApi  # noqa: E402
from .cache import CacheLevel  # noqa: E402
from .client import MatrixClient, SyncState  # noqa: E402
from .errors import (  # noqa: E402
    MatrixError,
    RequestFailed,
    TransportFailure,
    UnexpectedResponse,
    UnsupportedMethod,
    ValidationFailure,
)
from .room import Room  # noqa: E402
from .user import User  # noqa: E402

__all__ = [
    "__version__",
    "CacheLevel",
    "MatrixClient",
    "MatrixError",
    "MatrixHttpApi",
    "RequestFailed",
    "Room",
    "SyncState",
    "TransportFailure",
    "UnexpectedResponse",
    "UnsupportedMethod",
    "User",
    "ValidationFailure",
]
