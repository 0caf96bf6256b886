"""
HTTP transport for the Matrix Client-Server API.

One :class:`Transport` performs a single logical request: it builds the URL,
attaches authentication and identity, retries while the server answers 429,
and turns every other failure into a typed exception from :mod:`roomsync.errors`.
"""

import asyncio
import json
import logging
import ssl
from typing import Any, Dict, Optional

import aiohttp
import certifi
from yarl import URL

from . import __version__
from .constants import (
    CONTENT_TYPE_JSON,
    DEFAULT_RETRY_AFTER_MS,
    FILE_ENCODING_UTF8,
    HEADER_AUTHORIZATION,
    HEADER_CONTENT_TYPE,
    HEADER_USER_AGENT,
    HTTP_STATUS_SERVER_ERROR,
    HTTP_STATUS_TOO_MANY_REQUESTS,
    LOGGER_NAME,
    MATRIX_V2_API_PATH,
    QUERY_ACCESS_TOKEN,
    QUERY_USER_ID,
    SUPPORTED_METHODS,
    USER_AGENT_PREFIX,
)
from .errors import (
    RequestFailed,
    TransportFailure,
    UnexpectedResponse,
    UnsupportedMethod,
)
from .retry import RateLimitPolicy
from .utils import check_homeserver_url

logger = logging.getLogger(LOGGER_NAME)


def _create_ssl_context():
    """
    Create an SSLContext backed by certifi's CA bundle.

    Returns:
        ssl.SSLContext | None: The certifi-backed context, the system default context if
        that fails, or None if no context could be created at all.
    """
    try:
        return ssl.create_default_context(cafile=certifi.where())
    except (OSError, ssl.SSLError) as e:
        logger.warning(
            f"Failed to create certifi-backed SSL context, falling back to system default: {e}"
        )
        try:
            return ssl.create_default_context()
        except (OSError, ssl.SSLError) as fallback_e:
            logger.error(f"Failed to create system default SSL context: {fallback_e}")
            return None


def encode_query_value(value: Any) -> str:
    """Render a query parameter the way Matrix servers expect (JSON booleans)."""
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def _find_header(headers: Dict[str, str], name: str) -> Optional[str]:
    lowered = name.lower()
    for key, value in headers.items():
        if key.lower() == lowered:
            return value
    return None


def _body_text(raw: bytes) -> str:
    return raw.decode(FILE_ENCODING_UTF8, errors="replace")


def _parse_json(text: str) -> Any:
    """Best-effort JSON parse of an error body; None when it is not JSON."""
    try:
        return json.loads(text)
    except ValueError:
        return None


def _errcode_of(body: Any) -> Optional[str]:
    if isinstance(body, dict):
        errcode = body.get("errcode")
        if isinstance(errcode, str):
            return errcode
    return None


class Transport:
    """Performs authenticated HTTP exchanges against one homeserver."""

    def __init__(
        self,
        base_url: str,
        token: Optional[str] = None,
        identity: Optional[str] = None,
        default_429_wait_ms: int = DEFAULT_RETRY_AFTER_MS,
        use_authorization_header: bool = True,
        session: Optional[aiohttp.ClientSession] = None,
        rate_limit_policy: Optional[RateLimitPolicy] = None,
    ):
        self.base_url = check_homeserver_url(base_url)
        self.token = token
        self.identity = identity
        self.use_authorization_header = use_authorization_header
        self.rate_limit_policy = rate_limit_policy or RateLimitPolicy(
            default_wait_ms=default_429_wait_ms
        )
        self.validate_cert = True
        self._ssl_context = None
        self._session = session
        self._owns_session = session is None

    @property
    def default_429_wait_ms(self) -> int:
        return self.rate_limit_policy.default_wait_ms

    def validate_certificate(self, valid: bool) -> None:
        """Enable or disable TLS certificate validation for subsequent requests."""
        self.validate_cert = bool(valid)

    def _ssl_option(self):
        if not self.validate_cert:
            return False
        if self._ssl_context is None:
            self._ssl_context = _create_ssl_context()
        # True lets aiohttp apply its own default verification
        return self._ssl_context if self._ssl_context is not None else True

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or getattr(self._session, "closed", False):
            self._session = aiohttp.ClientSession()
            self._owns_session = True
        return self._session

    async def close(self) -> None:
        """Close the HTTP session if this transport created it."""
        if self._session is not None and self._owns_session:
            await self._session.close()
        self._session = None

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.close()

    def _prepare_headers(self, headers: Optional[Dict[str, str]]) -> Dict[str, str]:
        prepared = dict(headers or {})
        if _find_header(prepared, HEADER_USER_AGENT) is None:
            prepared[HEADER_USER_AGENT] = f"{USER_AGENT_PREFIX}/{__version__}"
        if _find_header(prepared, HEADER_CONTENT_TYPE) is None:
            prepared[HEADER_CONTENT_TYPE] = CONTENT_TYPE_JSON
        if self.token and self.use_authorization_header:
            prepared[HEADER_AUTHORIZATION] = f"Bearer {self.token}"
        return prepared

    def _prepare_query(self, query_params: Optional[Dict[str, Any]]) -> Dict[str, str]:
        params = {
            key: encode_query_value(value)
            for key, value in (query_params or {}).items()
            if value is not None
        }
        if self.token and not self.use_authorization_header:
            params[QUERY_ACCESS_TOKEN] = self.token
        if self.identity:
            params[QUERY_USER_ID] = self.identity
        return params

    async def send(
        self,
        method: str,
        path: str,
        content: Any = None,
        query_params: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
        api_path: str = MATRIX_V2_API_PATH,
        return_json: bool = True,
        timeout: Optional[aiohttp.ClientTimeout] = None,
    ) -> Any:
        """
        Send one request and return the decoded response.

        Parameters:
            method: GET, POST, PUT or DELETE (case-insensitive).
            path: Endpoint path below ``api_path``; segments must already be percent-encoded.
            content: JSON-serialisable body, or raw bytes/str when a non-JSON Content-Type is given.
            query_params: Extra query parameters; booleans are sent as "true"/"false".
            headers: Extra headers; a caller-supplied User-Agent or Content-Type wins.
            api_path: API prefix, e.g. the client or media path.
            return_json: Decode the body as JSON (empty body gives ``{}``) or return raw bytes.
            timeout: Optional aiohttp timeout for this request only.

        Raises:
            UnsupportedMethod: Before any I/O for methods other than GET/POST/PUT/DELETE.
            TransportFailure: On network, TLS or timeout errors.
            UnexpectedResponse: On a status >= 500, or an undecodable JSON success body.
            RequestFailed: On any other non-2xx status, or when the rate-limit policy gives up.
        """
        method = method.upper()
        if method not in SUPPORTED_METHODS:
            raise UnsupportedMethod(method)

        request_headers = self._prepare_headers(headers)
        params = self._prepare_query(query_params)
        content_type = _find_header(request_headers, HEADER_CONTENT_TYPE)
        if content is not None and content_type == CONTENT_TYPE_JSON:
            data = json.dumps(content)
        else:
            data = content

        endpoint = self.base_url + api_path + path
        url = URL(endpoint, encoded=True)
        request_kwargs = {
            "params": params,
            "data": data,
            "headers": request_headers,
            "ssl": self._ssl_option(),
        }
        if timeout is not None:
            request_kwargs["timeout"] = timeout

        retries = 0
        while True:
            logger.debug(f"{method} {endpoint}")
            try:
                session = self._get_session()
                async with session.request(method, url, **request_kwargs) as response:
                    status = response.status
                    raw = await response.read()
            except (aiohttp.ClientError, asyncio.TimeoutError, OSError) as e:
                raise TransportFailure(e, method, endpoint) from e

            if status != HTTP_STATUS_TOO_MANY_REQUESTS:
                break

            text = _body_text(raw)
            body = _parse_json(text)
            if not self.rate_limit_policy.should_retry(retries):
                raise RequestFailed(status, text, _errcode_of(body))
            wait_ms = self.rate_limit_policy.retry_after_ms(body)
            logger.warning(
                f"Rate limited on {method} {endpoint}; retrying in {wait_ms} ms"
            )
            await asyncio.sleep(wait_ms / 1000)
            retries += 1

        if status >= HTTP_STATUS_SERVER_ERROR:
            raise UnexpectedResponse(status, _body_text(raw))
        if status < 200 or status >= 300:
            text = _body_text(raw)
            raise RequestFailed(status, text, _errcode_of(_parse_json(text)))

        if not return_json:
            return raw
        if not raw:
            return {}
        try:
            return json.loads(raw.decode(FILE_ENCODING_UTF8))
        except (UnicodeDecodeError, ValueError) as e:
            raise UnexpectedResponse(
                status,
                _body_text(raw),
                message=f"Invalid JSON from {method} {endpoint}: {e}",
            ) from e
