# infrastructure/embedding_services.py
"""Sentence-transformer embeddings, unit-normalised so every backend scores alike"""
import asyncio
import logging
from typing import Dict, List, Optional, Union

import numpy as np
from sentence_transformers import SentenceTransformer

from config import LOGGER_NAME
from core.interfaces import IEmbeddingService

logger = logging.getLogger(LOGGER_NAME)

# One model instance per name for the whole process
_MODEL_CACHE: Dict[str, SentenceTransformer] = {}


def l2_normalize(arr: np.ndarray) -> np.ndarray:
    """
    Scale each row to unit length.

    With unit vectors cosine similarity equals the dot product, so the FAISS
    inner-product index and ChromaDB's cosine space agree on scores.
    """
    norms = np.linalg.norm(arr, axis=1, keepdims=True)
    norms[norms == 0] = 1e-12
    return arr / norms


def load_model(model_name: str) -> SentenceTransformer:
    """Cached model; prefers the local HF cache and downloads only when it is missing."""
    model = _MODEL_CACHE.get(model_name)
    if model is not None:
        return model

    try:
        model = SentenceTransformer(model_name, local_files_only=True)
        logger.info(f"Embedding model '{model_name}' loaded from local cache")
    except Exception as e:
        logger.warning(f"Embedding model '{model_name}' not cached ({e}); downloading it")
        model = SentenceTransformer(model_name)
        logger.info(f"Embedding model '{model_name}' downloaded")

    _MODEL_CACHE[model_name] = model
    return model


class SentenceTransformerEmbedding(IEmbeddingService):
    def __init__(self, model_name: str, default_batch_size: int = 500):
        self.model_name = model_name
        self.model = load_model(model_name)
        self.default_batch_size = default_batch_size

    async def _encode(self, inputs: Union[str, List[str]], batch_size: int) -> np.ndarray:
        """Run the model off the event loop and return a 2-D float32 matrix of unit rows."""
        raw = await asyncio.to_thread(
            self.model.encode,
            inputs,
            batch_size=batch_size,
            convert_to_numpy=True,
            show_progress_bar=False
        )
        return l2_normalize(np.atleast_2d(np.asarray(raw, dtype="float32")))

    async def generate_embeddings(
        self,
        texts: List[str],
        batch_size: Optional[int] = None
    ) -> List[List[float]]:
        if not texts:
            return []
        matrix = await self._encode(texts, batch_size or self.default_batch_size)
        logger.debug(f"Embedded {len(texts)} texts with {self.model_name}")
        return matrix.tolist()

    async def generate_query_embedding(self, query: str) -> List[float]:
        matrix = await self._encode(query, 1)
        return matrix[0].tolist()
