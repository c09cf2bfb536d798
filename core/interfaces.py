# core/interfaces.py
"""Core interfaces for the RAG system"""
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

from core.domain import Chunk, ExtractedDocument, RetrievalResult

# ============= Vector Store Interface =============
class IVectorStore(ABC):
    """
    Store chunk vectors and retrieve them by similarity.

    Implementations: ChromaDBVectorStore (networked) and FAISSVectorStore
    (in-memory, JSON snapshot). Callers hold the handle without knowing which.
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Human readable backend name (for logs and status only)"""
        pass

    @abstractmethod
    async def add_chunks(self, chunks: List[Chunk]) -> List[Chunk]:
        """
        Embed and store chunks.

        Returns the stored chunks with their embeddings attached.
        Raises VectorStoreError when the batch could not be stored.
        """
        pass

    @abstractmethod
    async def similarity_search(self, query: str, k: int = 5) -> RetrievalResult:
        """Top-k chunks for the query, most similar first"""
        pass

    @abstractmethod
    async def count(self) -> int:
        """Get total number of chunks"""
        pass

# ============= Embedding Service Interface =============
class IEmbeddingService(ABC):
    """Interface for embedding generation"""

    @abstractmethod
    async def generate_embeddings(
        self,
        texts: List[str],
        batch_size: Optional[int] = None
    ) -> List[List[float]]:
        """Generate embeddings for text chunks"""
        pass

    @abstractmethod
    async def generate_query_embedding(self, query: str) -> List[float]:
        """Generate embedding for search query"""
        pass

# ============= Text Extraction Interface =============
class ITextExtractor(ABC):
    """Given raw document bytes, extract a title and the visible body text."""

    @abstractmethod
    def extract(self, raw: bytes, source_id: str) -> ExtractedDocument:
        """May raise on malformed input; callers treat that as a per-document failure."""
        pass

# ============= LLM Interface =============
class ILLMService(ABC):
    """Completion service used to phrase grounded answers."""

    @abstractmethod
    def chat(self, prompt: str) -> Dict[str, Any]:
        """
        Send a single prompt.

        Returns {"answer": str, "status": "success"} or
        {"error": str, "status": "error"}.
        """
        pass
