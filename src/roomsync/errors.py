"""Exception types raised by the transport, endpoint caller and sync engine."""

from typing import Optional


class MatrixError(Exception):
    """Base class for every error raised by roomsync."""

    pass


class ValidationFailure(MatrixError, ValueError):
    """Raised when an argument is malformed; nothing has been sent."""

    pass


class UnsupportedMethod(MatrixError):
    """Raised when a request uses an HTTP method other than GET/POST/PUT/DELETE."""

    def __init__(self, method: str):
        self.method = method
        super().__init__(f"Unsupported HTTP method: {method}")


class TransportFailure(MatrixError):
    """Raised when the HTTP exchange itself failed (network, TLS, timeout)."""

    def __init__(self, cause: BaseException, method: str, endpoint: str):
        self.cause = cause
        self.method = method
        self.endpoint = endpoint
        super().__init__(
            f"{method} {endpoint} failed: {type(cause).__name__}: {cause}"
        )


class RequestFailed(MatrixError):
    """
    Raised when the server answered with a non-2xx status below 500 (or an exhausted 429).

    ``content`` is the raw response body text; ``errcode`` is read from it when it is JSON.
    """

    def __init__(
        self,
        status_code: int,
        content: str = "",
        errcode: Optional[str] = None,
        message: Optional[str] = None,
    ):
        self.status_code = status_code
        self.content = content
        self.errcode = errcode
        super().__init__(message or f"{status_code}: {content}")


class UnexpectedResponse(MatrixError):
    """Raised on server errors (status >= 500) or malformed success payloads."""

    def __init__(
        self,
        status_code: Optional[int] = None,
        content: str = "",
        message: Optional[str] = None,
    ):
        self.status_code = status_code
        self.content = content
        if message is None:
            message = f"{status_code}: {content}" if status_code is not None else str(content)
        super().__init__(message)


def status_of(exc: BaseException) -> Optional[int]:
    """Return the HTTP status carried by ``exc``, if any."""
    return getattr(exc, "status_code", None)
