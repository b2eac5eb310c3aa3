import asyncio
import socket
from typing import Optional

import httpx

from app.features.preview.schemas.preview import SecurityConfig
from app.platform.exceptions import FailureKind, FetchFailure, ValidationFailure
from app.platform.logger import get_logger
from app.platform.utils.url_validator import validate_content_type

logger = get_logger("fetcher_service")

BROWSER_HEADERS = {
    "Accept": (
        "text/html,application/xhtml+xml,application/xml;q=0.9,image/avif,"
        "image/webp,image/apng,*/*;q=0.8"
    ),
    "Accept-Language": "en-US,en;q=0.9",
    "Accept-Encoding": "gzip, deflate",
    "Upgrade-Insecure-Requests": "1",
    "Sec-Fetch-Dest": "document",
    "Sec-Fetch-Mode": "navigate",
    "Sec-Fetch-Site": "none",
    "Sec-Fetch-User": "?1",
    "Cache-Control": "max-age=0",
    "DNT": "1",
}

_DNS_ERROR_MARKERS = (
    "name or service not known",
    "nodename nor servname",
    "getaddrinfo failed",
    "temporary failure in name resolution",
    "no address associated with hostname",
)


def _iter_causes(exc: BaseException):
    seen = set()
    while exc is not None and id(exc) not in seen:
        seen.add(id(exc))
        yield exc
        exc = exc.__cause__ or exc.__context__


def _classify_connect_error(exc: httpx.ConnectError) -> FailureKind:
    for cause in _iter_causes(exc):
        if isinstance(cause, socket.gaierror):
            return FailureKind.DNS_FAILURE
        if isinstance(cause, ConnectionRefusedError):
            return FailureKind.CONNECTION_REFUSED
    message = str(exc).lower()
    if any(marker in message for marker in _DNS_ERROR_MARKERS):
        return FailureKind.DNS_FAILURE
    if "connection refused" in message or "errno 111" in message:
        return FailureKind.CONNECTION_REFUSED
    return FailureKind.NETWORK_ERROR


class ContentFetcher:
    """
    Bounded HTTP GET for a single page.

    One client and one connection per call, no retries. Every failure is
    raised as a FetchFailure (or ValidationFailure for content policy)
    with a stable kind.
    """

    def __init__(self, config: SecurityConfig, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.config = config
        self._transport = transport

    def _build_client(self) -> httpx.AsyncClient:
        headers = {"User-Agent": self.config.user_agent, **BROWSER_HEADERS}
        return httpx.AsyncClient(
            transport=self._transport,
            headers=headers,
            timeout=httpx.Timeout(self.config.timeout_seconds),
            follow_redirects=True,
            max_redirects=self.config.max_redirects,
        )

    async def fetch(self, url: str) -> str:
        """
        Fetch url and return the decoded HTML.

        The whole transfer (connect, redirects, body) is cancelled once
        timeout_ms elapses.

        Raises:
            FetchFailure: timeout, DNS, refused connection, origin HTTP error,
                no response, redirect cap, oversized body or other network error.
            ValidationFailure: response content type is not allowed, or the URL is malformed.
        """
        try:
            return await asyncio.wait_for(self._fetch(url), timeout=self.config.timeout_seconds)
        except asyncio.TimeoutError:
            logger.warning(f"Fetch of {url} exceeded {self.config.timeout_ms}ms")
            raise FetchFailure(
                FailureKind.FETCH_TIMEOUT,
                message=f"Request timeout after {self.config.timeout_ms}ms",
            )

    async def _fetch(self, url: str) -> str:
        async with self._build_client() as client:
            try:
                async with client.stream("GET", url) as response:
                    self._check_status(response)
                    validate_content_type(
                        response.headers.get("content-type", ""),
                        self.config.allowed_content_types,
                    )
                    body = await self._read_body(response)
                    encoding = response.encoding or "utf-8"
            except httpx.TooManyRedirects:
                raise FetchFailure(
                    FailureKind.TOO_MANY_REDIRECTS,
                    message=f"Exceeded the limit of {self.config.max_redirects} redirects",
                )
            except httpx.TimeoutException:
                raise FetchFailure(
                    FailureKind.FETCH_TIMEOUT,
                    message=f"Request timeout after {self.config.timeout_ms}ms",
                )
            except httpx.ConnectError as e:
                kind = _classify_connect_error(e)
                if kind == FailureKind.DNS_FAILURE:
                    raise FetchFailure(kind, message=f"Domain not found: {httpx.URL(url).host}")
                raise FetchFailure(kind, message=f"Could not connect to {httpx.URL(url).host}: {e}")
            except httpx.RemoteProtocolError:
                raise FetchFailure(FailureKind.NO_RESPONSE, message="No response received from server")
            except (httpx.InvalidURL, ValueError):
                # Reached only when a URL skipped validate_url; still the caller's input
                raise ValidationFailure(FailureKind.MALFORMED_URL, field="url")
            except httpx.HTTPError as e:
                raise FetchFailure(FailureKind.NETWORK_ERROR, message=f"Network error: {e}")

        # Servers may omit Content-Length, so measure what was actually received
        if len(body) > self.config.max_html_size_bytes:
            raise self._too_large()

        try:
            html = body.decode(encoding, errors="replace")
        except LookupError:
            html = body.decode("utf-8", errors="replace")

        logger.info(f"Fetched {len(body)} bytes from {url}")
        return html

    @staticmethod
    def _check_status(response: httpx.Response) -> None:
        code = response.status_code
        if code < 400:
            return
        if code == 403:
            raise FetchFailure(FailureKind.ORIGIN_FORBIDDEN)
        if code == 404:
            raise FetchFailure(FailureKind.ORIGIN_NOT_FOUND)
        if code == 429:
            raise FetchFailure(FailureKind.ORIGIN_RATE_LIMITED)
        if code >= 500:
            raise FetchFailure(FailureKind.ORIGIN_SERVER_ERROR, message=f"Server error - HTTP {code}")
        raise FetchFailure(
            FailureKind.ORIGIN_HTTP_ERROR,
            message=f"HTTP {code} {response.reason_phrase}".strip(),
        )

    async def _read_body(self, response: httpx.Response) -> bytes:
        limit = self.config.max_html_size_bytes

        declared = response.headers.get("content-length")
        if declared and declared.isdigit() and int(declared) > limit:
            raise self._too_large()

        chunks = []
        total = 0
        async for chunk in response.aiter_bytes():
            total += len(chunk)
            if total > limit:
                raise self._too_large()
            chunks.append(chunk)
        return b"".join(chunks)

    def _too_large(self) -> FetchFailure:
        return FetchFailure(
            FailureKind.PAYLOAD_TOO_LARGE,
            message=f"HTML content exceeds maximum size of {self.config.max_html_size_kb}KB",
            field="html",
        )
