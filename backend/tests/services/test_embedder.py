"""
Tests for EmbeddingClient.

Upstream calls go through httpx.MockTransport, so no network is used.
"""

import asyncio
import json

import httpx
import pytest

from lesson_ingest.services.processors.embedder import (
    EmbeddingClient,
    EmbeddingError,
    EmbeddingErrorKind,
)


def make_client(handler, **kwargs) -> EmbeddingClient:
    kwargs.setdefault("api_key", "sk-test")
    kwargs.setdefault("dimension", 3)
    http_client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return EmbeddingClient(http_client=http_client, **kwargs)


def vector_response(vector) -> httpx.Response:
    return httpx.Response(200, json={"data": [{"embedding": vector, "index": 0}]})


@pytest.mark.asyncio
class TestEmbed:
    """Successful embedding requests."""

    async def test_posts_input_and_model(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["url"] = str(request.url)
            seen["auth"] = request.headers.get("Authorization")
            seen["body"] = json.loads(request.content)
            return vector_response([0.1, 0.2, 0.3])

        client = make_client(handler, model="text-embedding-3-small", api_url="https://emb.test/v1/embeddings")
        vector = await client.embed("Plants make sugar.")

        assert vector == [0.1, 0.2, 0.3]
        assert seen["url"] == "https://emb.test/v1/embeddings"
        assert seen["auth"] == "Bearer sk-test"
        assert seen["body"] == {"input": "Plants make sugar.", "model": "text-embedding-3-small"}

    async def test_integers_are_returned_as_floats(self):
        client = make_client(lambda request: vector_response([1, 0, 2]))
        vector = await client.embed("text")
        assert vector == [1.0, 0.0, 2.0]
        assert all(isinstance(value, float) for value in vector)

    async def test_default_dimension_from_settings(self):
        client = EmbeddingClient(http_client=httpx.AsyncClient())
        assert client.dimension == 1536
        assert client.timeout == 15.0
        await client.close()


@pytest.mark.asyncio
class TestEmbedFailures:
    """Every failure surfaces as EmbeddingError with a kind."""

    async def test_non_success_status(self):
        client = make_client(lambda request: httpx.Response(429, text="rate limited"))

        with pytest.raises(EmbeddingError) as exc_info:
            await client.embed("text")

        assert exc_info.value.kind == EmbeddingErrorKind.HTTP_ERROR
        assert exc_info.value.status_code == 429
        assert exc_info.value.body == "rate limited"

    async def test_timeout_cancels_request(self):
        cancelled = asyncio.Event()

        async def handler(request: httpx.Request) -> httpx.Response:
            try:
                await asyncio.sleep(5)
            except asyncio.CancelledError:
                cancelled.set()
                raise
            return vector_response([0.0, 0.0, 0.0])

        client = make_client(handler, timeout=0.05)

        with pytest.raises(EmbeddingError) as exc_info:
            await client.embed("text")

        assert exc_info.value.kind == EmbeddingErrorKind.TIMEOUT
        assert cancelled.is_set()

    async def test_network_error(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        client = make_client(handler)

        with pytest.raises(EmbeddingError) as exc_info:
            await client.embed("text")

        assert exc_info.value.kind == EmbeddingErrorKind.NETWORK

    @pytest.mark.parametrize("payload", [
        {"data": []},
        {"error": "nope"},
        {"data": [{"embedding": "not a vector"}]},
        {"data": [{"embedding": [0.1, "x", 0.3]}]},
        {"data": [{"embedding": [0.1, 0.2]}]},
    ])
    async def test_invalid_response(self, payload):
        client = make_client(lambda request: httpx.Response(200, json=payload))

        with pytest.raises(EmbeddingError) as exc_info:
            await client.embed("text")

        assert exc_info.value.kind == EmbeddingErrorKind.INVALID_RESPONSE

    async def test_non_json_response(self):
        client = make_client(lambda request: httpx.Response(200, text="<html>"))

        with pytest.raises(EmbeddingError) as exc_info:
            await client.embed("text")

        assert exc_info.value.kind == EmbeddingErrorKind.INVALID_RESPONSE

    async def test_empty_text_is_rejected_without_request(self):
        calls = []

        def handler(request):
            calls.append(request)
            return vector_response([0.0, 0.0, 0.0])

        client = make_client(handler)

        with pytest.raises(EmbeddingError) as exc_info:
            await client.embed("   ")

        assert exc_info.value.kind == EmbeddingErrorKind.INVALID_INPUT
        assert calls == []


@pytest.mark.asyncio
class TestLifecycle:
    """Owned HTTP clients are closed, injected ones are left alone."""

    async def test_close_keeps_injected_client_open(self):
        http_client = httpx.AsyncClient(transport=httpx.MockTransport(lambda r: vector_response([0.0])))
        client = EmbeddingClient(http_client=http_client, dimension=1)

        await client.close()

        assert not http_client.is_closed
        await http_client.aclose()

    async def test_context_manager_closes_owned_client(self):
        async with EmbeddingClient() as client:
            owned = client._client()
        assert owned.is_closed
