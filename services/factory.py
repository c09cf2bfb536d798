# services/factory.py
"""Provider functions for each component, plus vector store selection"""
import asyncio
import logging
from pathlib import Path
from typing import Any, Callable, Optional

import chromadb

from config import LOGGER_NAME, Settings
from core.domain import BackendChoice, BackendProbeResult
from core.errors import BackendUnavailableError
from core.interfaces import IEmbeddingService, ILLMService, ITextExtractor, IVectorStore
from infrastructure.embedding_services import SentenceTransformerEmbedding
from infrastructure.faiss_store import FAISSVectorStore
from infrastructure.text_extractors import HtmlTextExtractor
from infrastructure.vector_stores import ChromaDBVectorStore
from services.document_processor import DocumentProcessor
from services.llm_service import LLMService

logger = logging.getLogger(LOGGER_NAME)


def get_embedding_service(settings: Settings) -> IEmbeddingService:
    """Create embedding service based on configuration."""
    return SentenceTransformerEmbedding(
        settings.EMBEDDING_MODEL_NAME,
        default_batch_size=settings.EMBEDDING_BATCH_SIZE
    )


def get_text_extractor() -> ITextExtractor:
    return HtmlTextExtractor()


def get_document_processor(settings: Settings, text_extractor: Optional[ITextExtractor] = None) -> DocumentProcessor:
    return DocumentProcessor(
        text_extractor or get_text_extractor(),
        chunk_size=settings.CHUNK_SIZE,
        chunk_overlap=settings.CHUNK_OVERLAP
    )


def get_llm_service(settings: Settings) -> ILLMService:
    return LLMService(
        base_url=settings.LLM_BASE_URL,
        model=settings.LLM_MODEL_NAME,
        temperature=settings.LLM_TEMPERATURE,
        max_tokens=settings.LLM_MAX_TOKENS,
        timeout=settings.REQUEST_TIMEOUT
    )


def create_local_store(settings: Settings, embedding_service: IEmbeddingService) -> FAISSVectorStore:
    """Fresh, empty in-memory store."""
    return FAISSVectorStore(embedding_service, embedding_batch_size=settings.EMBEDDING_BATCH_SIZE)


# ============= Backend selection =============

async def connect_networked_store(
    settings: Settings,
    embedding_service: IEmbeddingService,
    client_factory: Optional[Callable[..., Any]] = None
) -> BackendProbeResult:
    """
    Probe phase: build a ChromaDB client and verify it answers a trivial query.
    Never raises; failures come back as an Unavailable result.
    """
    address = f"{settings.CHROMA_HOST}:{settings.CHROMA_PORT}"
    logger.info(f"Attempting to connect to ChromaDB at {address}...")
    try:
        client = await asyncio.to_thread(
            client_factory or chromadb.HttpClient,
            host=settings.CHROMA_HOST,
            port=settings.CHROMA_PORT
        )
        store = ChromaDBVectorStore(client, embedding_service, settings.CHROMA_COLLECTION_NAME)
        await asyncio.wait_for(store.probe(), timeout=settings.REQUEST_TIMEOUT)
    except Exception as e:
        logger.warning(f"ChromaDB at {address} unavailable: {e}")
        return BackendProbeResult.unavailable(str(e))

    logger.info(f"Connected to ChromaDB collection '{settings.CHROMA_COLLECTION_NAME}'")
    return BackendProbeResult.connected(store)


def select_backend(networked_available: bool, snapshot_exists: bool, allow_empty: bool) -> BackendChoice:
    """
    Commit phase, as a decision table:

        networked | snapshot | allow_empty -> choice
        yes       | any      | any         -> NETWORKED
        no        | yes      | any         -> LOCAL_SNAPSHOT
        no        | no       | yes         -> LOCAL_EMPTY
        no        | no       | no          -> BackendUnavailableError
    """
    if networked_available:
        return BackendChoice.NETWORKED
    if snapshot_exists:
        return BackendChoice.LOCAL_SNAPSHOT
    if allow_empty:
        return BackendChoice.LOCAL_EMPTY
    raise BackendUnavailableError(
        "No vector store available. Start ChromaDB or run ingestion to create a local snapshot."
    )


async def load_vector_store(
    settings: Settings,
    embedding_service: IEmbeddingService,
    allow_empty: bool = False,
    client_factory: Optional[Callable[..., Any]] = None
) -> IVectorStore:
    """Select the backend once: networked if reachable, else the local snapshot."""
    probe = await connect_networked_store(settings, embedding_service, client_factory)
    choice = select_backend(
        probe.is_connected,
        Path(settings.SNAPSHOT_PATH).is_file(),
        allow_empty
    )

    if choice == BackendChoice.NETWORKED:
        return probe.backend
    if choice == BackendChoice.LOCAL_SNAPSHOT:
        logger.info(f"Loading local snapshot from {settings.SNAPSHOT_PATH}")
        return await FAISSVectorStore.load(
            settings.SNAPSHOT_PATH,
            embedding_service,
            embedding_batch_size=settings.EMBEDDING_BATCH_SIZE
        )
    logger.info("No snapshot on disk; starting with an empty local store")
    return create_local_store(settings, embedding_service)
