"""
Test configuration and fixtures for the Link Preview API.

Outbound HTTP never leaves the process: fetcher tests and end-to-end
tests plug an httpx.MockTransport into ContentFetcher.
"""

import os
from typing import Callable, Generator

os.environ.setdefault("ENVIRONMENT", "local")
os.environ.setdefault("FORCE_IN_MEMORY_RATE_LIMITER", "true")

import httpx
import pytest
from fastapi.testclient import TestClient

from app.features.preview.routes.preview import get_preview_service
from app.features.preview.schemas.preview import SecurityConfig
from app.features.preview.services.fetcher_service import ContentFetcher
from app.features.preview.services.preview_service import PreviewService
from app.platform.config import settings

PRODUCT_HTML = """
<html>
  <head>
    <title>Example Domain</title>
    <meta property="og:site_name" content="Example Store" />
  </head>
  <body>
    <h1>Example Domain</h1>
    <p>Now only $49.99</p>
    <img src="https://example.com/hero.jpg" width="600" height="400" alt="Hero" />
  </body>
</html>
"""


@pytest.fixture
def security_config() -> SecurityConfig:
    return SecurityConfig(
        max_redirects=3,
        timeout_ms=2000,
        max_html_size_kb=16,
        user_agent="Mozilla/5.0 (test)",
        allowed_content_types=frozenset({"text/html"}),
    )


@pytest.fixture
def html_handler() -> Callable[[httpx.Request], httpx.Response]:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(
            200,
            headers={"content-type": "text/html; charset=utf-8"},
            text=PRODUCT_HTML,
        )

    return handler


@pytest.fixture
def make_fetcher(security_config):
    def _make(handler, config: SecurityConfig = None) -> ContentFetcher:
        return ContentFetcher(config or security_config, transport=httpx.MockTransport(handler))

    return _make


@pytest.fixture(autouse=True)
def no_rate_limit_for_testclient(monkeypatch):
    """The shared app keeps one limiter for the whole session; keep it out of the way."""
    monkeypatch.setattr(settings, "WHITELIST_IPS", ["testclient", "127.0.0.1"])
    yield


@pytest.fixture(scope="session")
def test_app():
    """Create FastAPI test application."""
    from app.main import app

    return app


@pytest.fixture(scope="function")
def client(test_app, security_config, html_handler) -> Generator[TestClient, None, None]:
    """
    TestClient whose preview service fetches from a fixture origin instead of the network.
    """
    service = PreviewService(
        security_config,
        fetcher=ContentFetcher(security_config, transport=httpx.MockTransport(html_handler)),
    )
    test_app.dependency_overrides[get_preview_service] = lambda: service
    with TestClient(test_app) as test_client:
        yield test_client
    test_app.dependency_overrides.pop(get_preview_service, None)
