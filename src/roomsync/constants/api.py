"""Constants for the HTTP transport and REST endpoints."""

__all__ = [
    "MATRIX_V2_API_PATH",
    "MATRIX_MEDIA_API_PATH",
    "SUPPORTED_METHODS",
    "HEADER_AUTHORIZATION",
    "HEADER_CONTENT_TYPE",
    "HEADER_USER_AGENT",
    "CONTENT_TYPE_JSON",
    "QUERY_ACCESS_TOKEN",
    "QUERY_USER_ID",
    "HTTP_STATUS_TOO_MANY_REQUESTS",
    "HTTP_STATUS_SERVER_ERROR",
    "THUMBNAIL_METHODS",
    "SYNC_REQUEST_TIMEOUT_MARGIN_SEC",
    "URL_PREFIX_HTTP",
    "URL_PREFIX_HTTPS",
    "MXC_SCHEME",
]

# API path prefixes
MATRIX_V2_API_PATH = "/_matrix/client/r0"
MATRIX_MEDIA_API_PATH = "/_matrix/media/r0"

SUPPORTED_METHODS = frozenset({"GET", "POST", "PUT", "DELETE"})

# Headers
HEADER_AUTHORIZATION = "Authorization"
HEADER_CONTENT_TYPE = "Content-Type"
HEADER_USER_AGENT = "User-Agent"
CONTENT_TYPE_JSON = "application/json"

# Query parameter names
QUERY_ACCESS_TOKEN = "access_token"  # nosec B105
QUERY_USER_ID = "user_id"

# Status codes
HTTP_STATUS_TOO_MANY_REQUESTS = 429
HTTP_STATUS_SERVER_ERROR = 500

THUMBNAIL_METHODS = frozenset({"scale", "crop"})

# Extra seconds allowed on top of the long-poll timeout for /sync
SYNC_REQUEST_TIMEOUT_MARGIN_SEC = 10

# URL prefixes
URL_PREFIX_HTTP = "http://"
URL_PREFIX_HTTPS = "https://"
MXC_SCHEME = "mxc"
