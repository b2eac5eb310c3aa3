import time

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware

from app.platform.logger import get_logger

logger = get_logger("http")

SECURITY_HEADERS = {
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "DENY",
    "Referrer-Policy": "no-referrer",
    "Content-Security-Policy": (
        "default-src 'self'; style-src 'self' 'unsafe-inline'; "
        "script-src 'self'; img-src 'self' data: https:"
    ),
}

# FastAPI serves its docs with CDN assets, which the CSP above would block
DOCS_PATHS = ("/docs", "/redoc", "/openapi.json")


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Adds security headers and writes one access log line per request."""

    async def dispatch(self, request: Request, call_next):
        started = time.perf_counter()

        response = await call_next(request)

        if not request.url.path.startswith(DOCS_PATHS):
            for header, value in SECURITY_HEADERS.items():
                response.headers.setdefault(header, value)

        elapsed_ms = (time.perf_counter() - started) * 1000
        client_ip = request.client.host if request.client else "-"
        logger.info(
            f'{client_ip} "{request.method} {request.url.path}" {response.status_code} {elapsed_ms:.1f}ms'
        )
        return response
