# infrastructure/faiss_store.py
import asyncio
import json
import logging
import os
import tempfile
from typing import Any, Dict, List, Optional

import faiss
import numpy as np

from config import LOGGER_NAME
from core.domain import Chunk, ChunkSearchResult, RetrievalResult
from core.errors import SnapshotError, VectorStoreError
from core.interfaces import IEmbeddingService, IVectorStore
from infrastructure.embedding_services import l2_normalize
from utils.common import ensure_parent_dir

logger = logging.getLogger(LOGGER_NAME)


class FAISSVectorStore(IVectorStore):
    """
    In-memory exact index mirrored to a single JSON snapshot.

    - _chunks keeps FAISS row -> chunk (append-only, stable order)
    - IndexFlatIP over L2-normalized vectors is a brute-force cosine scan
    - The snapshot stores raw embeddings, so a reload never re-embeds

    Snapshot shape:
        {"documents": [{"pageContent": str, "metadata": {...}}, ...],
         "embeddings": [[float, ...], ...]}
    with documents[i] <-> embeddings[i].
    """

    def __init__(self, embedding_service: IEmbeddingService, embedding_batch_size: int = 500):
        self._embedding_service = embedding_service
        self._embedding_batch_size = embedding_batch_size
        self._index: Optional[faiss.IndexFlatIP] = None
        self._chunks: List[Chunk] = []

    @property
    def name(self) -> str:
        return "FAISS (in-memory)"

    @property
    def chunks(self) -> List[Chunk]:
        return list(self._chunks)

    def _append(self, chunks: List[Chunk]) -> None:
        """Add already-embedded chunks to the index (no awaits: safe without a lock)."""
        vectors = l2_normalize(np.array([c.embedding for c in chunks], dtype="float32"))

        if self._index is None:
            dim = vectors.shape[1]
            self._index = faiss.IndexFlatIP(dim)
            logger.info(f"[FAISS] Initialized new index with dimension {dim}")
        elif vectors.shape[1] != self._index.d:
            raise VectorStoreError(
                f"Embedding dimension {vectors.shape[1]} does not match index dimension {self._index.d}"
            )

        self._index.add(vectors)  # type: ignore
        self._chunks.extend(chunks)

    async def _embed(self, texts: List[str]) -> List[List[float]]:
        """Embed in batches to respect the embedding service's request limits."""
        vectors: List[List[float]] = []
        total_batches = (len(texts) + self._embedding_batch_size - 1) // self._embedding_batch_size
        for n, start in enumerate(range(0, len(texts), self._embedding_batch_size), start=1):
            batch = texts[start:start + self._embedding_batch_size]
            logger.debug(f"[FAISS] Embedding batch {n}/{total_batches} ({len(batch)} texts)")
            vectors.extend(
                await self._embedding_service.generate_embeddings(
                    batch, batch_size=self._embedding_batch_size
                )
            )
        return vectors

    async def add_chunks(self, chunks: List[Chunk]) -> List[Chunk]:
        """Append chunks, embedding only those that arrive without an embedding."""
        if not chunks:
            return []

        pending = [i for i, c in enumerate(chunks) if c.embedding is None]
        try:
            vectors = await self._embed([chunks[i].content for i in pending])
        except Exception as e:
            raise VectorStoreError(f"[FAISS] Failed to embed {len(pending)} chunks: {e}") from e

        embedded = list(chunks)
        for i, vector in zip(pending, vectors):
            embedded[i] = chunks[i].with_embedding(vector)

        self._append(embedded)
        logger.info(
            f"[FAISS] Added {len(embedded)} chunks ({len(pending)} newly embedded). "
            f"Total: {len(self._chunks)}"
        )
        return embedded

    async def similarity_search(self, query: str, k: int = 5) -> RetrievalResult:
        if not self._chunks:
            logger.warning("[FAISS] Search called but index is empty.")
            return RetrievalResult()

        query_embedding = await self._embedding_service.generate_query_embedding(query)
        return self.search_by_vector(query_embedding, k)

    def search_by_vector(self, vector: List[float], k: int = 5) -> RetrievalResult:
        """Exact top-k by cosine similarity, mapped to [0, 1] as (1 + cos) / 2."""
        if self._index is None or not self._chunks or k <= 0:
            return RetrievalResult()

        query_vector = l2_normalize(np.array([vector], dtype="float32"))
        scores, indices = self._index.search(query_vector, min(k, len(self._chunks)))  # type: ignore

        results = []
        for cosine, row in zip(scores[0], indices[0]):
            if row == -1:
                continue
            similarity = max(0.0, min(1.0, (1.0 + float(cosine)) / 2.0))
            results.append(ChunkSearchResult(chunk=self._chunks[row], score=similarity))

        return RetrievalResult(results=results)

    async def count(self) -> int:
        return len(self._chunks)

    # ============= Snapshot persistence =============

    def to_snapshot(self) -> Dict[str, Any]:
        return {
            "documents": [
                {"pageContent": c.content, "metadata": c.metadata} for c in self._chunks
            ],
            "embeddings": [c.embedding for c in self._chunks],
        }

    async def save(self, path: str) -> str:
        """
        Write the whole index to path in one atomic step.
        Call once, after every mutation of the ingestion run has completed.
        """
        data = self.to_snapshot()
        await asyncio.to_thread(_write_json_atomic, path, data)
        logger.info(f"[FAISS] Saved snapshot with {len(self._chunks)} chunks to {path}")
        return path

    @classmethod
    def from_snapshot(
        cls,
        data: Dict[str, Any],
        embedding_service: IEmbeddingService,
        embedding_batch_size: int = 500
    ) -> "FAISSVectorStore":
        documents = data.get("documents") if isinstance(data, dict) else None
        embeddings = data.get("embeddings") if isinstance(data, dict) else None
        if not isinstance(documents, list) or not isinstance(embeddings, list):
            raise SnapshotError("Snapshot must contain 'documents' and 'embeddings' lists")
        if len(documents) != len(embeddings):
            raise SnapshotError(
                f"Snapshot has {len(documents)} documents but {len(embeddings)} embeddings"
            )

        store = cls(embedding_service, embedding_batch_size)
        if not documents:
            return store

        try:
            chunks = [
                Chunk.from_metadata(doc["pageContent"], doc.get("metadata") or {}, embedding)
                for doc, embedding in zip(documents, embeddings)
            ]
            store._append(chunks)
        except (KeyError, TypeError, ValueError, VectorStoreError) as e:
            raise SnapshotError(f"Malformed snapshot: {e}") from e
        return store

    @classmethod
    async def load(
        cls,
        path: str,
        embedding_service: IEmbeddingService,
        embedding_batch_size: int = 500
    ) -> "FAISSVectorStore":
        """Rebuild the index from a snapshot. Raises FileNotFoundError if there is none."""
        try:
            data = await asyncio.to_thread(_read_json, path)
        except json.JSONDecodeError as e:
            raise SnapshotError(f"Snapshot {path} is not valid JSON: {e}") from e

        store = cls.from_snapshot(data, embedding_service, embedding_batch_size)
        logger.info(f"[FAISS] Loaded {len(store._chunks)} chunks from {path}")
        return store


def _read_json(path: str) -> Any:
    with open(path, 'r', encoding='utf-8') as f:
        return json.load(f)


def _write_json_atomic(path: str, data: Dict[str, Any]) -> None:
    target = ensure_parent_dir(path)
    fd, tmp_path = tempfile.mkstemp(dir=str(target.parent), prefix=f".{target.name}.", suffix=".tmp")
    try:
        with os.fdopen(fd, 'w', encoding='utf-8') as f:
            json.dump(data, f, indent=2, ensure_ascii=False)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp_path, target)
    except BaseException:
        if os.path.exists(tmp_path):
            os.unlink(tmp_path)
        raise
