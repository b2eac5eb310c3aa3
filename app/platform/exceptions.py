import logging
import traceback
from enum import Enum
from typing import Dict, Optional, Tuple

from fastapi import Request, status
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException

from app.platform.config import settings
from app.platform.response import api_response


class FailureKind(str, Enum):
    # Request shape
    MISSING_INPUT = "MissingInput"
    MALFORMED_BODY = "MalformedBody"
    # URL validation / SSRF guard
    MISSING_URL = "MissingUrl"
    MALFORMED_URL = "MalformedUrl"
    UNSUPPORTED_SCHEME = "UnsupportedScheme"
    MISSING_HOST = "MissingHost"
    PRIVATE_ADDRESS = "PrivateAddress"
    LOOPBACK_HOST = "LoopbackHost"
    # Content policy
    UNSUPPORTED_CONTENT_TYPE = "UnsupportedContentType"
    PAYLOAD_TOO_LARGE = "PayloadTooLarge"
    # Fetch
    TOO_MANY_REDIRECTS = "TooManyRedirects"
    FETCH_TIMEOUT = "FetchTimeout"
    DNS_FAILURE = "DnsFailure"
    CONNECTION_REFUSED = "ConnectionRefused"
    ORIGIN_FORBIDDEN = "OriginForbidden"
    ORIGIN_NOT_FOUND = "OriginNotFound"
    ORIGIN_RATE_LIMITED = "OriginRateLimited"
    ORIGIN_SERVER_ERROR = "OriginServerError"
    ORIGIN_HTTP_ERROR = "OriginHttpError"
    NO_RESPONSE = "NoResponse"
    NETWORK_ERROR = "NetworkError"
    # Platform
    RATE_LIMITED = "RateLimited"
    ROUTE_NOT_FOUND = "RouteNotFound"
    INTERNAL_ERROR = "InternalError"


# kind -> (HTTP status, public message). Every FailureKind has exactly one entry.
FAILURE_STATUS: Dict[FailureKind, Tuple[int, str]] = {
    FailureKind.MISSING_INPUT: (400, "Either url or raw_html must be provided"),
    FailureKind.MALFORMED_BODY: (400, "Invalid JSON in request body"),
    FailureKind.MISSING_URL: (400, "URL is required and must be a string"),
    FailureKind.MALFORMED_URL: (400, "Invalid URL format"),
    FailureKind.UNSUPPORTED_SCHEME: (400, "URL must use HTTP or HTTPS protocol"),
    FailureKind.MISSING_HOST: (400, "URL must have a valid hostname"),
    FailureKind.PRIVATE_ADDRESS: (403, "Private/loopback IP addresses are not allowed"),
    FailureKind.LOOPBACK_HOST: (403, "Localhost addresses are not allowed"),
    FailureKind.UNSUPPORTED_CONTENT_TYPE: (400, "Invalid content type. Expected text/html"),
    FailureKind.PAYLOAD_TOO_LARGE: (413, "HTML content exceeds maximum size"),
    FailureKind.TOO_MANY_REDIRECTS: (400, "Too many redirects"),
    FailureKind.FETCH_TIMEOUT: (408, "Request timeout - the server took too long to respond"),
    FailureKind.DNS_FAILURE: (404, "Domain not found"),
    FailureKind.CONNECTION_REFUSED: (503, "Connection refused by the server"),
    FailureKind.ORIGIN_FORBIDDEN: (403, "Access forbidden - the server denied access to this resource"),
    FailureKind.ORIGIN_NOT_FOUND: (404, "Page not found - the requested URL does not exist"),
    FailureKind.ORIGIN_RATE_LIMITED: (429, "Too many requests - the website is rate limiting us"),
    FailureKind.ORIGIN_SERVER_ERROR: (503, "Server error - the website encountered an internal error"),
    FailureKind.ORIGIN_HTTP_ERROR: (500, "Unexpected response from the website"),
    FailureKind.NO_RESPONSE: (
        503,
        "Service temporarily unavailable - the website may be blocking automated requests",
    ),
    FailureKind.NETWORK_ERROR: (500, "Network error while fetching the page"),
    FailureKind.RATE_LIMITED: (
        429,
        "Too many requests from this IP, please try again after a minute",
    ),
    FailureKind.ROUTE_NOT_FOUND: (404, "Route not found"),
    FailureKind.INTERNAL_ERROR: (500, "Internal server error"),
}


class PreviewError(Exception):
    """Base for every failure the preview pipeline reports on purpose."""

    def __init__(self, kind: FailureKind, message: Optional[str] = None, field: Optional[str] = None):
        self.kind = kind
        self.message = message or FAILURE_STATUS[kind][1]
        self.field = field
        super().__init__(self.message)

    @property
    def status_hint(self) -> int:
        return FAILURE_STATUS[self.kind][0]

    def __repr__(self) -> str:
        return f"{type(self).__name__}(kind={self.kind.value!r}, message={self.message!r}, field={self.field!r})"


class ValidationFailure(PreviewError):
    """Client-supplied input is structurally or policy invalid. Never retried."""


class FetchFailure(PreviewError):
    """Network or origin-side failure while fetching a page."""


def show_tracebacks() -> bool:
    return settings.DEBUG and not settings.is_production


def error_payload(kind: FailureKind, field: Optional[str] = None, exc: Optional[BaseException] = None) -> dict:
    payload = {"error": kind.value, "field": field}
    if exc is not None and show_tracebacks():
        payload["traceback"] = "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))
    return payload


def add_exception_handlers(app):
    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        if exc.status_code == status.HTTP_404_NOT_FOUND:
            return api_response(
                message=f"Route {request.method} {request.url.path} not found",
                status_code=exc.status_code,
                data=error_payload(FailureKind.ROUTE_NOT_FOUND),
            )
        if exc.status_code == status.HTTP_413_REQUEST_ENTITY_TOO_LARGE:
            # Streamed request body went over the cap while being read
            return api_response(
                message=str(exc.detail),
                status_code=exc.status_code,
                data=error_payload(FailureKind.PAYLOAD_TOO_LARGE, "body"),
            )
        return api_response(message=str(exc.detail) or "Error", status_code=exc.status_code)

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        # Unparseable JSON or a body of the wrong shape
        return api_response(
            message=FAILURE_STATUS[FailureKind.MALFORMED_BODY][1],
            status_code=status.HTTP_400_BAD_REQUEST,
            data={**error_payload(FailureKind.MALFORMED_BODY, "body"), "errors": exc.errors()},
        )

    @app.exception_handler(Exception)
    async def general_exception_handler(request: Request, exc: Exception):
        logging.exception(f"Unhandled exception: {exc}")
        return api_response(
            message=FAILURE_STATUS[FailureKind.INTERNAL_ERROR][1],
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            data=error_payload(FailureKind.INTERNAL_ERROR, exc=exc),
        )
