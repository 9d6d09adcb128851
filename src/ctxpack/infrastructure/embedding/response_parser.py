"""Parsing and classification of embedding API responses."""

import logging
import re

from .errors import NonRetryableError

logger = logging.getLogger(__name__)

_TOKEN_LIMIT_HINTS = re.compile(r"limit|exceed|maximum|too many|8192")


def parse_embedding_response(
    response_data: dict, expected_count: int, expected_dimension: int
) -> list[list[float]]:
    """
    Extract embeddings from an OpenAI-style ``{"data": [...]}`` response.

    Items are ordered by their ``index`` field, not by position.

    Raises:
        NonRetryableError: If the response is malformed or has the wrong count
    """
    try:
        data = response_data["data"]
        if len(data) != expected_count:
            raise NonRetryableError(f"Expected {expected_count} embeddings, got {len(data)}")

        embeddings = []
        for item in sorted(data, key=lambda x: x.get("index", 0)):
            embedding = [float(v) for v in item["embedding"]]
            if len(embedding) != expected_dimension:
                logger.warning(
                    f"Embedding dimension mismatch: expected {expected_dimension}, "
                    f"got {len(embedding)}"
                )
            embeddings.append(embedding)
        return embeddings

    except (KeyError, TypeError, ValueError) as e:
        raise NonRetryableError(f"Invalid response format: {e}") from e


def is_token_limit_error(status_code: int, response_text: str) -> bool:
    """
    True if an error response means the batch carried too many tokens.

    HTTP 413 always does; HTTP 400 does when the body mentions a token limit.
    """
    if status_code == 413:
        return True
    if status_code == 400:
        body = response_text.lower()
        return "token" in body and bool(_TOKEN_LIMIT_HINTS.search(body))
    return False
