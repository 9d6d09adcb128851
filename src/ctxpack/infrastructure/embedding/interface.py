"""Abstract interface for embedding clients."""

from abc import ABC, abstractmethod


class EmbeddingClientInterface(ABC):
    """Turns text into fixed-dimension vectors."""

    @abstractmethod
    async def embed_batch(self, texts: list[str]) -> list[list[float]]:
        """
        Generate embeddings for a batch of texts.

        Args:
            texts: List of text strings to embed

        Returns:
            List of embedding vectors, one per input text, in input order
        """
        pass

    async def embed(self, text: str) -> list[float]:
        """Generate the embedding of a single text."""
        vectors = await self.embed_batch([text])
        return vectors[0]

    @abstractmethod
    def get_dimension(self) -> int:
        """Return the embedding vector dimension."""
        pass

    async def close(self) -> None:
        """Release any held connections."""
        pass
