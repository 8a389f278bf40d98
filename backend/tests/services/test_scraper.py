"""
Tests for ScrapeClient.
"""

import asyncio
import json

import httpx
import pytest

from lesson_ingest.services.scraper import (
    DEFAULT_TITLE,
    ScrapeClient,
    ScrapeError,
    ScrapeErrorKind,
)


def make_client(handler, **kwargs) -> ScrapeClient:
    kwargs.setdefault("api_key", "fc-test")
    http_client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return ScrapeClient(http_client=http_client, **kwargs)


def ok(markdown="# Volcanoes\n\nMagma rises.", metadata=None) -> httpx.Response:
    data = {"markdown": markdown}
    if metadata is not None:
        data["metadata"] = metadata
    return httpx.Response(200, json={"success": True, "data": data})


@pytest.mark.asyncio
class TestScrape:
    """Successful scrapes."""

    async def test_request_payload(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["url"] = str(request.url)
            seen["auth"] = request.headers.get("Authorization")
            seen["body"] = json.loads(request.content)
            return ok(metadata={"title": "Volcanoes"})

        client = make_client(handler, api_url="https://scrape.test/v1/scrape")
        await client.scrape("https://example.com/volcanoes")

        assert seen["url"] == "https://scrape.test/v1/scrape"
        assert seen["auth"] == "Bearer fc-test"
        assert seen["body"] == {
            "url": "https://example.com/volcanoes",
            "formats": ["markdown"],
            "waitFor": 5000,
            "timeout": 25000,
        }

    async def test_returns_markdown_title_and_metadata(self):
        metadata = {"title": "Volcanoes for Kids", "language": "en"}
        client = make_client(lambda request: ok(metadata=metadata))

        result = await client.scrape("https://example.com/volcanoes")

        assert result.markdown == "# Volcanoes\n\nMagma rises."
        assert result.title == "Volcanoes for Kids"
        assert result.metadata == metadata

    @pytest.mark.parametrize("metadata", [None, {}, {"title": ""}, {"title": "   "}])
    async def test_missing_title_uses_default(self, metadata):
        client = make_client(lambda request: ok(metadata=metadata))
        result = await client.scrape("https://example.com")
        assert result.title == DEFAULT_TITLE == "Untitled Resource"

    async def test_empty_markdown_is_not_an_error(self):
        client = make_client(lambda request: ok(markdown=""))
        result = await client.scrape("https://example.com")
        assert result.markdown == ""


@pytest.mark.asyncio
class TestScrapeFailures:
    """Failures are classified by kind."""

    async def test_forbidden_status(self):
        client = make_client(lambda request: httpx.Response(403, text="blocked"))

        with pytest.raises(ScrapeError) as exc_info:
            await client.scrape("https://example.com")

        assert exc_info.value.kind == ScrapeErrorKind.HTTP_ERROR
        assert exc_info.value.status_code == 403

    async def test_timeout(self):
        async def handler(request: httpx.Request) -> httpx.Response:
            await asyncio.sleep(5)
            return ok()

        client = make_client(handler, timeout=0.05)

        with pytest.raises(ScrapeError) as exc_info:
            await client.scrape("https://example.com")

        assert exc_info.value.kind == ScrapeErrorKind.TIMEOUT

    async def test_transport_timeout(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("read timed out", request=request)

        client = make_client(handler)

        with pytest.raises(ScrapeError) as exc_info:
            await client.scrape("https://example.com")

        assert exc_info.value.kind == ScrapeErrorKind.TIMEOUT

    async def test_network_error(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("name resolution failed", request=request)

        client = make_client(handler)

        with pytest.raises(ScrapeError) as exc_info:
            await client.scrape("https://example.com")

        assert exc_info.value.kind == ScrapeErrorKind.NETWORK

    async def test_upstream_reports_failure(self):
        client = make_client(lambda request: httpx.Response(
            200, json={"success": False, "error": "Site has bot protection"}
        ))

        with pytest.raises(ScrapeError) as exc_info:
            await client.scrape("https://example.com")

        assert exc_info.value.kind == ScrapeErrorKind.UPSTREAM_FAILURE
        assert exc_info.value.detail == "Site has bot protection"

    @pytest.mark.parametrize("response", [
        httpx.Response(200, text="not json"),
        httpx.Response(200, json={"success": True, "data": {}}),
        httpx.Response(200, json=["unexpected"]),
        httpx.Response(200, json={"success": True, "data": ["x"]}),
        httpx.Response(200, json={"success": True, "data": "markdown"}),
        httpx.Response(200, json={"success": False, "error": {"code": 500}}),
    ])
    async def test_unusable_body(self, response):
        client = make_client(lambda request: response)

        with pytest.raises(ScrapeError) as exc_info:
            await client.scrape("https://example.com")

        assert exc_info.value.kind == ScrapeErrorKind.UPSTREAM_FAILURE
