"""Exception types for embedding clients."""


class EmbeddingClientError(Exception):
    """Base exception for embedding client errors."""

    pass


class RetryableError(EmbeddingClientError):
    """Rate limits, timeouts and server-side failures."""

    pass


class NonRetryableError(EmbeddingClientError):
    """Authentication failures, malformed requests and malformed responses."""

    pass


class BatchSizeError(EmbeddingClientError):
    """The request exceeded the provider's token limit.

    Raised for HTTP 413, or HTTP 400 with a token-limit message. The client
    halves its batch size and retries the same texts.
    """

    pass
