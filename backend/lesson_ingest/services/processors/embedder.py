"""
Embedding Client

Generates embeddings for chunk text through an OpenAI-compatible
embeddings API.

Model: text-embedding-3-small (default)
- 1536 dimensions
- One request per chunk: {"input": text, "model": model}

Failure Handling:
-----------------
Every failure surfaces as EmbeddingError with a kind:
- timeout: no response within EMBEDDING_TIMEOUT_SECONDS (request cancelled)
- http_error: non-success status (status code and body kept for logs)
- network: connection-level failure
- invalid_response: body is not JSON, has no vector, or the vector has
  the wrong dimension
- invalid_input: empty text

No retries happen here. The ingestion orchestrator decides what a failed
chunk means (it drops the chunk).
"""

import asyncio
import enum
from numbers import Real
from typing import Any, Optional

import httpx

from lesson_ingest.core.config import settings
from lesson_ingest.core.logging import get_logger

logger = get_logger(__name__)


# ========================================
# Custom Exceptions
# ========================================


class EmbeddingErrorKind(str, enum.Enum):
    """Category of an embedding failure."""

    TIMEOUT = "timeout"
    HTTP_ERROR = "http_error"
    NETWORK = "network"
    INVALID_RESPONSE = "invalid_response"
    INVALID_INPUT = "invalid_input"

    def __str__(self) -> str:
        return self.value


class EmbeddingError(Exception):
    """Raised when an embedding cannot be produced for a single text."""

    def __init__(
        self,
        kind: EmbeddingErrorKind,
        message: str,
        status_code: Optional[int] = None,
        body: Optional[str] = None
    ):
        self.kind = kind
        self.status_code = status_code
        self.body = body
        super().__init__(message)


# ========================================
# Embedding Client
# ========================================


class EmbeddingClient:
    """
    Async client for the embeddings API.

    The client can share an injected httpx.AsyncClient (connection pool
    owned by the caller) or lazily create its own, released by close().

    Usage:
    ------
    async with EmbeddingClient() as embedder:
        vector = await embedder.embed("Plants turn sunlight into sugar.")
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        api_url: Optional[str] = None,
        model: Optional[str] = None,
        dimension: Optional[int] = None,
        timeout: Optional[float] = None,
        http_client: Optional[httpx.AsyncClient] = None
    ):
        """
        Initialize the embedding client.

        Args:
            api_key: Bearer token for the embeddings API (default from settings)
            api_url: Embeddings endpoint (default from settings)
            model: Embedding model name (default from settings)
            dimension: Expected vector length (default from settings)
            timeout: Hard per-call timeout in seconds (default from settings)
            http_client: Shared httpx client; created on demand when omitted
        """
        self.api_key = api_key or settings.OPENAI_API_KEY
        self.api_url = api_url or settings.OPENAI_API_URL
        self.model = model or settings.EMBEDDING_MODEL
        self.dimension = dimension or settings.EMBEDDING_DIMENSION
        self.timeout = timeout or settings.EMBEDDING_TIMEOUT_SECONDS

        self._http = http_client
        self._owns_http = http_client is None

    async def __aenter__(self) -> "EmbeddingClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    def _client(self) -> httpx.AsyncClient:
        if self._http is None:
            self._http = httpx.AsyncClient()
        return self._http

    def _headers(self) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        return headers

    async def embed(self, text: str) -> list[float]:
        """
        Generate an embedding for a single text.

        Args:
            text: Text to embed

        Returns:
            Embedding vector as list of floats (self.dimension long)

        Raises:
            EmbeddingError: On timeout, non-success status, network failure
                or an unusable response
        """
        if not text or not text.strip():
            raise EmbeddingError(EmbeddingErrorKind.INVALID_INPUT, "Cannot embed empty text")

        payload = {"input": text, "model": self.model}

        try:
            # wait_for cancels the in-flight request when the deadline passes
            response = await asyncio.wait_for(
                self._client().post(self.api_url, json=payload, headers=self._headers()),
                timeout=self.timeout,
            )
        except (asyncio.TimeoutError, httpx.TimeoutException) as e:
            logger.warning("embedding_timeout", timeout_seconds=self.timeout)
            raise EmbeddingError(
                EmbeddingErrorKind.TIMEOUT,
                f"Embedding request timed out after {self.timeout}s"
            ) from e
        except httpx.HTTPError as e:
            logger.warning("embedding_network_error", error=str(e))
            raise EmbeddingError(
                EmbeddingErrorKind.NETWORK,
                f"Embedding request failed: {e}"
            ) from e

        if not response.is_success:
            body = response.text
            logger.warning(
                "embedding_http_error",
                status_code=response.status_code,
                body=body[:500],
            )
            raise EmbeddingError(
                EmbeddingErrorKind.HTTP_ERROR,
                f"Embedding API error: {response.status_code} - {body}",
                status_code=response.status_code,
                body=body,
            )

        return self._parse_embedding(response)

    def _parse_embedding(self, response: httpx.Response) -> list[float]:
        """Extract and validate the vector from an embeddings response."""
        try:
            data: Any = response.json()
            vector = data["data"][0]["embedding"]
        except (ValueError, KeyError, IndexError, TypeError) as e:
            raise EmbeddingError(
                EmbeddingErrorKind.INVALID_RESPONSE,
                f"Could not parse embedding response: {e}"
            ) from e

        if not isinstance(vector, list) or not all(
            isinstance(value, Real) and not isinstance(value, bool) for value in vector
        ):
            raise EmbeddingError(
                EmbeddingErrorKind.INVALID_RESPONSE,
                "Embedding response did not contain a numeric vector"
            )

        if len(vector) != self.dimension:
            raise EmbeddingError(
                EmbeddingErrorKind.INVALID_RESPONSE,
                f"Expected {self.dimension} dimensions, got {len(vector)}"
            )

        return [float(value) for value in vector]

    async def close(self) -> None:
        """Release the HTTP connection pool if this client created it."""
        if self._owns_http and self._http is not None:
            await self._http.aclose()
            self._http = None
