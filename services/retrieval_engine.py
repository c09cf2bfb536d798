# services/retrieval_engine.py
"""Retrieval engine: owns the session's vector store and runs similarity search."""
import logging
from typing import Awaitable, Callable, Optional

from config import LOGGER_NAME
from core.domain import RetrievalResult
from core.errors import BackendNotLoadedError
from core.interfaces import IVectorStore

logger = logging.getLogger(LOGGER_NAME)


class RetrievalEngine:
    """
    Uninitialized -> load() -> Ready.

    The backend is chosen once by load() and kept for the whole session;
    it is never re-selected per query.
    """

    def __init__(
        self,
        backend_loader: Callable[[], Awaitable[IVectorStore]],
        default_top_k: int = 5
    ):
        self._backend_loader = backend_loader
        self._backend: Optional[IVectorStore] = None
        self.default_top_k = default_top_k

    @property
    def is_ready(self) -> bool:
        return self._backend is not None

    @property
    def backend(self) -> Optional[IVectorStore]:
        return self._backend

    async def load(self) -> IVectorStore:
        """Select and connect the backend. Calling it again keeps the first choice."""
        if self._backend is None:
            self._backend = await self._backend_loader()
            total = await self._backend.count()
            logger.info(f"Using {self._backend.name} for retrieval ({total} chunks)")
        return self._backend

    async def retrieve(self, query: str, top_k: Optional[int] = None) -> RetrievalResult:
        """
        Top-k chunks for the query, most similar first.

        Raises:
            BackendNotLoadedError: load() has not been called.
        """
        if self._backend is None:
            raise BackendNotLoadedError("Vector store not loaded. Call load() first.")

        if not query or not query.strip():
            logger.warning("Empty query string provided, returning empty results")
            return RetrievalResult()

        k = top_k or self.default_top_k
        result = await self._backend.similarity_search(query, k)
        logger.info(
            f"Retrieved {len(result)} chunks from {len(result.sources)} sources "
            f"(top_k={k}, backend={self._backend.name})"
        )
        return result
