"""
Tests for the aiohttp request capability.
"""

from unittest.mock import patch

import aiohttp
import pytest
import pytest_asyncio
from aioresponses import aioresponses
from yarl import URL

from embedcore.config.config import RequestConfig
from embedcore.errors import TransportError
from embedcore.transport.http_client import HttpClient


@pytest.fixture
def no_backoff():
    with patch.object(HttpClient, "_calculate_backoff_delay", return_value=0):
        yield


@pytest_asyncio.fixture
async def http_client():
    client = HttpClient(RequestConfig(retries=1, timeout=5.0, headers={"X-Test": "1"}))
    yield client
    await client.close()


@pytest.mark.unit
class TestHttpClient:
    @pytest.mark.asyncio
    async def test_success(self, http_client):
        with aioresponses() as m:
            m.get("https://example.com/page", status=200, body="<p>héllo</p>", content_type="text/html")

            response = await http_client.request("https://example.com/page")

        assert response.status_code == 200
        assert response.body == "<p>héllo</p>"
        assert response.content == "<p>héllo</p>".encode("utf-8")
        assert response.header("content-type").startswith("text/html")
        assert response.url == "https://example.com/page"

    @pytest.mark.asyncio
    async def test_error_status_raises_with_code(self, http_client):
        with aioresponses() as m:
            m.get("https://example.com/missing", status=404, body="nope")

            with pytest.raises(TransportError) as exc_info:
                await http_client.request("https://example.com/missing")

        assert exc_info.value.status_code == 404
        assert exc_info.value.url == "https://example.com/missing"
        assert str(exc_info.value) == "Bad response code: 404"

    @pytest.mark.asyncio
    async def test_retry_on_503_then_success(self, http_client, no_backoff):
        with aioresponses() as m:
            m.get("https://example.com/page", status=503)
            m.get("https://example.com/page", status=200, body="ok", content_type="text/plain")

            response = await http_client.request("https://example.com/page")

        assert response.body == "ok"

    @pytest.mark.asyncio
    async def test_retries_exhausted(self, http_client, no_backoff):
        with aioresponses() as m:
            m.get("https://example.com/page", status=503, repeat=True)

            with pytest.raises(TransportError) as exc_info:
                await http_client.request("https://example.com/page")

            assert len(m.requests[("GET", URL("https://example.com/page"))]) == 2

        assert exc_info.value.status_code == 503

    @pytest.mark.asyncio
    async def test_connection_error(self, http_client, no_backoff):
        with aioresponses() as m:
            m.get("https://example.com/page", exception=aiohttp.ClientConnectionError("refused"), repeat=True)

            with pytest.raises(TransportError) as exc_info:
                await http_client.request("https://example.com/page")

        assert exc_info.value.status_code is None

    @pytest.mark.asyncio
    async def test_retry_count_can_be_overridden(self, http_client):
        with aioresponses() as m:
            m.get("https://example.com/page", status=429, repeat=True)

            with pytest.raises(TransportError):
                await http_client.request("https://example.com/page", {"retries": 0})

            assert len(m.requests[("GET", URL("https://example.com/page"))]) == 1

    @pytest.mark.asyncio
    async def test_head_request_with_headers(self, http_client):
        with aioresponses() as m:
            m.head("https://example.com/video", status=200, content_type="video/mp4")

            response = await http_client.request(
                "https://example.com/video", {"method": "head", "headers": {"Accept": "*/*"}}
            )

            call = m.requests[("HEAD", URL("https://example.com/video"))][0]

        assert response.header("Content-Type") == "video/mp4"
        assert call.kwargs["headers"]["Accept"] == "*/*"

    @pytest.mark.asyncio
    async def test_session_headers(self, http_client):
        await http_client.initialize()

        assert http_client.session.headers["X-Test"] == "1"
        assert http_client.session.headers["User-Agent"].startswith("embedcore/")

    @pytest.mark.asyncio
    async def test_close_is_idempotent(self):
        client = HttpClient()
        await client.close()
        async with client:
            assert client.session is not None
        assert client.session is None

    def test_backoff_grows(self):
        client = HttpClient()

        with patch("embedcore.transport.http_client.random.uniform", return_value=1.0):
            assert [client._calculate_backoff_delay(attempt) for attempt in (1, 2, 3)] == [1, 2, 4]
