"""OpenAI-compatible embedding client."""

import logging
from typing import Optional

import httpx

from ctxpack.infrastructure.retry import RetryPolicy, with_retry

from .errors import BatchSizeError, EmbeddingClientError, NonRetryableError, RetryableError
from .interface import EmbeddingClientInterface
from .response_parser import is_token_limit_error, parse_embedding_response

logger = logging.getLogger(__name__)

_RETRYABLE_STATUS = frozenset({429, 500, 502, 503, 504})


class OpenAIEmbeddingClient(EmbeddingClientInterface):
    """
    Embedding client for OpenAI-compatible ``/embeddings`` endpoints.

    One pooled ``httpx.AsyncClient`` is reused across requests. Rate limits
    and server errors are retried with exponential backoff. When the
    provider rejects a batch for carrying too many tokens, the batch size is
    halved and the same texts are sent again; the reduced size is kept for
    the rest of the call.
    """

    def __init__(
        self,
        api_url: str,
        api_key: str,
        model: str = "text-embedding-3-small",
        dimension: int = 1536,
        batch_size: int = 100,
        timeout: float = 30.0,
        retry_policy: Optional[RetryPolicy] = None,
        enable_batch_fallback: bool = True,
        min_batch_size: int = 1,
    ):
        if batch_size < 1:
            raise ValueError("batch_size must be at least 1")
        if min_batch_size < 1:
            raise ValueError("min_batch_size must be at least 1")

        self._api_url = api_url.rstrip("/")
        self._api_key = api_key
        self._model = model
        self._dimension = dimension
        self._batch_size = batch_size
        self._timeout = timeout
        self._retry_policy = retry_policy or RetryPolicy(max_retries=3, base_delay=1.0, max_delay=60.0)
        self._enable_batch_fallback = enable_batch_fallback
        self._min_batch_size = min_batch_size
        self._client: Optional[httpx.AsyncClient] = None

    @property
    def batch_size(self) -> int:
        return self._batch_size

    def get_dimension(self) -> int:
        return self._dimension

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                timeout=self._timeout,
                limits=httpx.Limits(max_keepalive_connections=10, max_connections=20),
            )
        return self._client

    async def close(self) -> None:
        if self._client is not None and not self._client.is_closed:
            await self._client.aclose()
        self._client = None

    async def embed_batch(self, texts: list[str]) -> list[list[float]]:
        """
        Embed texts in batches of at most ``batch_size``.

        Raises:
            NonRetryableError: If a single text exceeds the token limit, or
                the request is rejected outright
            EmbeddingClientError: If transient failures outlast the retries
        """
        if not texts:
            return []

        embeddings: list[list[float]] = []
        batch_size = self._batch_size
        i = 0
        while i < len(texts):
            batch = texts[i : i + batch_size]
            try:
                embeddings.extend(await self._embed_with_retry(batch))
                i += len(batch)
            except BatchSizeError as e:
                if not self._enable_batch_fallback:
                    raise NonRetryableError(
                        f"Token limit exceeded and batch fallback is disabled: {e}"
                    ) from e
                if batch_size <= self._min_batch_size:
                    raise NonRetryableError(f"Text at index {i} exceeds the token limit: {e}") from e
                reduced = max(self._min_batch_size, batch_size // 2)
                logger.warning(f"Token limit exceeded, reducing batch size from {batch_size} to {reduced}")
                batch_size = reduced

        return embeddings

    async def _embed_with_retry(self, texts: list[str]) -> list[list[float]]:
        try:
            return await with_retry(
                lambda: self._call_api(texts),
                self._retry_policy,
                retry_on=(RetryableError,),
                description="Embedding request",
            )
        except RetryableError as e:
            raise EmbeddingClientError(
                f"Failed after {self._retry_policy.max_retries + 1} attempts: {e}"
            ) from e

    async def _call_api(self, texts: list[str]) -> list[list[float]]:
        headers = {
            "Authorization": f"Bearer {self._api_key}",
            "Content-Type": "application/json",
        }
        payload = {"input": texts, "model": self._model, "encoding_format": "float"}
        context = f"url={self._api_url}, model={self._model}, batch={len(texts)}"

        client = await self._get_client()
        try:
            response = await client.post(self._api_url, headers=headers, json=payload)
        except httpx.TimeoutException as e:
            raise RetryableError(f"Request timeout: {e}") from e
        except httpx.RequestError as e:
            raise RetryableError(f"Request error: {e}") from e

        status = response.status_code
        if status == 200:
            return parse_embedding_response(response.json(), len(texts), self._dimension)
        if is_token_limit_error(status, response.text):
            raise BatchSizeError(f"Token limit exceeded: {status} - {response.text} ({context})")
        if status in _RETRYABLE_STATUS:
            raise RetryableError(f"Transient API error: {status} - {response.text}")
        if status in (401, 403):
            raise NonRetryableError(f"Authentication failed: {status} ({context})")
        raise NonRetryableError(f"API error: {status} - {response.text} ({context})")


def create_embedding_client(
    api_url: str,
    api_key: str,
    model: str = "text-embedding-3-small",
    dimension: int = 1536,
    batch_size: int = 100,
    timeout: float = 30.0,
    max_retries: int = 3,
) -> EmbeddingClientInterface:
    """Factory for the HTTP embedding client."""
    return OpenAIEmbeddingClient(
        api_url=api_url,
        api_key=api_key,
        model=model,
        dimension=dimension,
        batch_size=batch_size,
        timeout=timeout,
        retry_policy=RetryPolicy(max_retries=max_retries, base_delay=1.0, max_delay=60.0),
    )
