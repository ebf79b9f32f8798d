"""
Shared fixtures for the embedcore test suite.
"""

import asyncio
from typing import AsyncGenerator, Dict, List, Optional, Tuple, Union
from unittest.mock import MagicMock

import pytest
import pytest_asyncio

from embedcore.config import Config
from embedcore.engine import EmbedEngine
from embedcore.errors import TransportError
from embedcore.models import ExecutionContext, Response, ResultRecord

# ============================================================================
# Pytest Configuration
# ============================================================================


def pytest_configure(config):
    config.addinivalue_line("markers", "unit: Unit tests for individual components")


@pytest_asyncio.fixture(autouse=True)
async def cleanup_tasks() -> AsyncGenerator[None, None]:
    """Cancel any task a test leaves behind."""
    tasks_before = asyncio.all_tasks()
    yield
    for task in asyncio.all_tasks() - tasks_before:
        if not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass


# ============================================================================
# Transport
# ============================================================================


class FakeTransport:
    """Request capability backed by a url -> Response table.

    Behaves like the default HTTP client: non-2xx answers and unknown URLs
    raise :class:`TransportError`.
    """

    def __init__(self) -> None:
        self.routes: Dict[str, Union[Response, Exception]] = {}
        self.calls: List[Tuple[str, dict]] = []

    def add(
        self,
        url: str,
        body: str = "",
        status: int = 200,
        content_type: str = "text/html",
        content: Optional[bytes] = None,
    ) -> None:
        self.routes[url] = Response(
            status_code=status,
            headers={"Content-Type": content_type},
            body=body,
            content=content if content is not None else body.encode("utf-8"),
            url=url,
        )

    def fail(self, url: str, error: Exception) -> None:
        self.routes[url] = error

    async def __call__(self, url: str, options=None) -> Response:
        self.calls.append((url, dict(options or {})))
        route = self.routes.get(url)
        if route is None:
            raise TransportError(f"Request to {url} failed: no route", url=url)
        if isinstance(route, Exception):
            raise route
        if not 200 <= route.status_code < 300:
            raise TransportError(f"Bad response code: {route.status_code}", status_code=route.status_code, url=url)
        return route

    def urls(self) -> List[str]:
        return [url for url, _ in self.calls]


# ============================================================================
# Engine fixtures
# ============================================================================


@pytest.fixture
def test_config() -> Config:
    config = Config()
    config.request.retries = 0
    return config


@pytest.fixture
def transport() -> FakeTransport:
    return FakeTransport()


@pytest.fixture
def make_engine(test_config, transport):
    """Build engines wired to the fake transport and an empty whitelist."""

    def _make(**kwargs) -> EmbedEngine:
        kwargs.setdefault("request", transport)
        kwargs.setdefault("whitelist", {})
        return EmbedEngine(test_config, **kwargs)

    return _make


@pytest.fixture
def engine(make_engine) -> EmbedEngine:
    return make_engine()


@pytest.fixture
def make_env():
    """Execution contexts for calling steps directly."""

    def _make(src: str = "https://example.com/page", engine=None, whitelist=None, **data) -> ExecutionContext:
        return ExecutionContext(
            src=src,
            result=ResultRecord(src=src, domain="example.com"),
            engine=engine if engine is not None else MagicMock(),
            whitelist=whitelist,
            data=dict(data),
        )

    return _make
