# infrastructure/vector_stores.py
"""Networked vector store backed by a ChromaDB server"""
import asyncio
import logging
from typing import Any, List

from config import LOGGER_NAME
from core.domain import Chunk, ChunkSearchResult, RetrievalResult
from core.errors import VectorStoreError
from core.interfaces import IEmbeddingService, IVectorStore

logger = logging.getLogger(LOGGER_NAME)


class ChromaDBVectorStore(IVectorStore):
    """
    ChromaDB implementation with normalized cosine similarity scoring (0-1 scale).

    Embeddings are computed client-side with the injected embedding service and
    upserted keyed by chunk_id, so re-ingesting a source overwrites its records.
    Failures propagate as VectorStoreError; the caller decides retry or skip.
    """

    def __init__(
        self,
        client: Any,
        embedding_service: IEmbeddingService,
        collection_name: str = "zonneplan_knowledge_base"
    ):
        self._client = client
        self._embedding_service = embedding_service
        self._collection_name = collection_name
        self._collection: Any = None

    @property
    def name(self) -> str:
        return "ChromaDB"

    async def _ensure_collection(self):
        """Lazy initialization of collection"""
        if self._collection is None:
            self._collection = await asyncio.to_thread(
                self._client.get_or_create_collection,
                name=self._collection_name,
                metadata={"hnsw:space": "cosine"},
                embedding_function=None
            )

    async def probe(self) -> None:
        """
        Verify the server is usable: heartbeat plus a trivial similarity query.
        Raises VectorStoreError when either step fails.
        """
        try:
            await asyncio.to_thread(self._client.heartbeat)
        except Exception as e:
            raise VectorStoreError(f"ChromaDB heartbeat failed: {e}") from e
        await self.similarity_search("test", 1)

    async def add_chunks(self, chunks: List[Chunk]) -> List[Chunk]:
        """Embed and upsert a batch of chunks"""
        if not chunks:
            return []

        try:
            await self._ensure_collection()

            embeddings = await self._embedding_service.generate_embeddings(
                [chunk.content for chunk in chunks]
            )
            await asyncio.to_thread(
                self._collection.upsert,
                ids=[chunk.chunk_id for chunk in chunks],
                documents=[chunk.content for chunk in chunks],
                metadatas=[chunk.metadata for chunk in chunks],
                embeddings=embeddings
            )
        except Exception as e:
            raise VectorStoreError(f"Failed to add {len(chunks)} chunks to ChromaDB: {e}") from e

        return [chunk.with_embedding(vec) for chunk, vec in zip(chunks, embeddings)]

    async def similarity_search(self, query: str, k: int = 5) -> RetrievalResult:
        """
        Search with unified cosine similarity scores (0-1 scale).

        ChromaDB returns cosine distance in [0, 2]; similarity = 1 - distance/2.
        """
        try:
            await self._ensure_collection()

            query_embedding = await self._embedding_service.generate_query_embedding(query)
            results = await asyncio.to_thread(
                self._collection.query,
                query_embeddings=[query_embedding],
                n_results=k,
                include=['metadatas', 'documents', 'distances']
            )
        except Exception as e:
            raise VectorStoreError(f"Search failed in ChromaDB: {e}") from e

        # Chroma answers one list per query embedding; we sent exactly one
        rows = zip(
            (results.get('documents') or [[]])[0],
            (results.get('metadatas') or [[]])[0],
            (results.get('distances') or [[]])[0],
        )
        return RetrievalResult(results=[
            ChunkSearchResult(
                chunk=Chunk.from_metadata(content, metadata or {}),
                score=max(0.0, min(1.0, 1.0 - distance / 2.0))
            )
            for content, metadata, distance in rows
        ])

    async def count(self) -> int:
        """Number of records in the collection; 0 when the server cannot be asked."""
        try:
            await self._ensure_collection()
            return await asyncio.to_thread(self._collection.count)
        except Exception as e:
            logger.error(f"ChromaDB count failed for '{self._collection_name}': {e}")
            return 0
