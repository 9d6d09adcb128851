"""
Qdrant-based vector store implementation.

Point ids must be UUID strings; the chunk index derives them with uuid5.
"""

import logging
from typing import Optional, Sequence

from qdrant_client import AsyncQdrantClient, models

from .base import PayloadFilter, VectorStoreError, VectorStoreInterface

logger = logging.getLogger(__name__)

# Payload fields indexed for filtering
_INDEXED_FIELDS = ("file_path", "kind", "chunk_id")


def _to_qdrant_filter(filter: Optional[PayloadFilter]) -> Optional[models.Filter]:
    if not filter:
        return None
    conditions = []
    for key, expected in filter.items():
        if isinstance(expected, (list, tuple, set, frozenset)):
            match = models.MatchAny(any=list(expected))
        else:
            match = models.MatchValue(value=expected)
        conditions.append(models.FieldCondition(key=key, match=match))
    return models.Filter(must=conditions)


class QdrantVectorStore(VectorStoreInterface):
    """Vector store on a Qdrant server through the async client."""

    def __init__(
        self,
        host: str = "localhost",
        port: int = 6333,
        collection_name: str = "ctxpack_chunks",
        vector_size: int = 1536,
        api_key: Optional[str] = None,
        url: Optional[str] = None,
    ):
        self._host = host
        self._port = port
        self._url = url
        self._collection_name = collection_name
        self._vector_size = vector_size
        self._api_key = api_key
        self._client: Optional[AsyncQdrantClient] = None
        self._initialized = False

    @property
    def collection_name(self) -> str:
        return self._collection_name

    async def _get_client(self) -> AsyncQdrantClient:
        if self._client is None:
            if self._url:
                self._client = AsyncQdrantClient(url=self._url, api_key=self._api_key)
            else:
                self._client = AsyncQdrantClient(host=self._host, port=self._port, api_key=self._api_key)
        return self._client

    async def initialize(self) -> None:
        """Create the collection and its payload indexes if missing."""
        if self._initialized:
            return

        client = await self._get_client()
        try:
            if not await client.collection_exists(self._collection_name):
                await client.create_collection(
                    collection_name=self._collection_name,
                    vectors_config=models.VectorParams(
                        size=self._vector_size,
                        distance=models.Distance.COSINE,
                    ),
                )
                for field_name in _INDEXED_FIELDS:
                    await client.create_payload_index(
                        collection_name=self._collection_name,
                        field_name=field_name,
                        field_schema=models.PayloadSchemaType.KEYWORD,
                    )
                logger.info(f"Created collection: {self._collection_name}")
            else:
                info = await client.get_collection(self._collection_name)
                params = info.config.params if info.config else None
                existing_size = params.vectors.size if params and params.vectors else None
                if existing_size and existing_size != self._vector_size:
                    raise VectorStoreError(
                        f"Existing collection '{self._collection_name}' has vector size "
                        f"{existing_size}, but config requested {self._vector_size}."
                    )
        except VectorStoreError:
            raise
        except Exception as e:
            raise VectorStoreError(f"Failed to initialize collection: {e}") from e

        self._initialized = True

    async def upsert(self, point_id: str, vector: list[float], payload: dict) -> None:
        await self.upsert_batch([(point_id, vector, payload)])

    async def upsert_batch(self, points: Sequence[tuple[str, list[float], dict]]) -> None:
        if not points:
            return
        await self.initialize()
        client = await self._get_client()
        try:
            await client.upsert(
                collection_name=self._collection_name,
                points=[
                    models.PointStruct(id=point_id, vector=list(vector), payload=payload)
                    for point_id, vector, payload in points
                ],
            )
        except Exception as e:
            raise VectorStoreError(f"Failed to upsert {len(points)} vector(s): {e}") from e

    async def query(
        self,
        vector: list[float],
        top_k: int = 10,
        filter: Optional[PayloadFilter] = None,
    ) -> list[tuple[str, float]]:
        if top_k <= 0:
            return []
        await self.initialize()
        client = await self._get_client()
        try:
            response = await client.query_points(
                collection_name=self._collection_name,
                query=list(vector),
                limit=top_k,
                query_filter=_to_qdrant_filter(filter),
                with_payload=False,
            )
        except Exception as e:
            raise VectorStoreError(f"Failed to query vectors: {e}") from e
        return [(str(point.id), float(point.score)) for point in response.points]

    async def delete(self, point_ids: Sequence[str]) -> int:
        if not point_ids:
            return 0
        await self.initialize()
        client = await self._get_client()
        try:
            existing = await client.retrieve(
                collection_name=self._collection_name,
                ids=list(point_ids),
                with_payload=False,
                with_vectors=False,
            )
            if existing:
                await client.delete(
                    collection_name=self._collection_name,
                    points_selector=models.PointIdsList(points=[p.id for p in existing]),
                )
        except Exception as e:
            raise VectorStoreError(f"Failed to delete {len(point_ids)} point(s): {e}") from e
        return len(existing)

    async def count(self) -> int:
        await self.initialize()
        client = await self._get_client()
        try:
            result = await client.count(collection_name=self._collection_name, exact=True)
        except Exception as e:
            raise VectorStoreError(f"Failed to count points: {e}") from e
        return result.count

    async def close(self) -> None:
        if self._client is not None:
            await self._client.close()
            self._client = None
            self._initialized = False
