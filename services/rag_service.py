# services/rag_service.py
"""Chatbot facade: retrieval + grounded answer generation, plus a chat session with history."""
import logging
from collections import deque
from typing import Any, Callable, Deque, Dict, List, Optional

from config import LOGGER_NAME, Settings
from core.domain import ChatResponse
from core.errors import BackendNotLoadedError
from core.interfaces import IEmbeddingService, ILLMService
from services.answer_generator import AnswerGenerator
from services.factory import get_embedding_service, get_llm_service, load_vector_store
from services.retrieval_engine import RetrievalEngine

logger = logging.getLogger(LOGGER_NAME)


class RAGChatbot:
    def __init__(self, retrieval_engine: RetrievalEngine, answer_generator: AnswerGenerator):
        self.retrieval_engine = retrieval_engine
        self.answer_generator = answer_generator

    async def load_vector_store(self) -> None:
        """Commit to a backend for this session. Raises BackendUnavailableError if none exists."""
        await self.retrieval_engine.load()

    async def answer(
        self,
        query: str,
        history: Optional[List[Dict[str, str]]] = None
    ) -> ChatResponse:
        """
        Answer a question from the knowledge base.

        Retrieval and generation failures become the apology response;
        only calling this before load_vector_store() raises.
        """
        logger.info(f"Processing question: {query[:80]}")
        try:
            result = await self.retrieval_engine.retrieve(query)
        except BackendNotLoadedError:
            raise
        except Exception as e:
            logger.error(f"Retrieval failed: {e}", exc_info=True)
            return self.answer_generator.error_response()

        return await self.answer_generator.generate(query, result, history)

    def get_vector_store_info(self) -> Dict[str, Any]:
        backend = self.retrieval_engine.backend
        return {
            "type": backend.name if backend is not None else None,
            "is_connected": backend is not None,
        }


class ChatSession:
    """Interactive conversation keeping the last `history_limit` messages."""

    def __init__(self, chatbot: RAGChatbot, history_limit: int = 10):
        self.chatbot = chatbot
        self._history: Deque[Dict[str, str]] = deque(maxlen=history_limit)

    @property
    def history(self) -> List[Dict[str, str]]:
        return list(self._history)

    async def ask(self, query: str) -> ChatResponse:
        response = await self.chatbot.answer(query, history=self.history)
        self._history.append({"role": "user", "content": query})
        self._history.append({"role": "assistant", "content": response.answer})
        return response

    def clear_history(self) -> None:
        self._history.clear()
        logger.info("Chat history cleared")


def create_chatbot(
    settings: Settings,
    embedding_service: Optional[IEmbeddingService] = None,
    llm_service: Optional[ILLMService] = None,
    allow_empty: bool = False,
    client_factory: Optional[Callable[..., Any]] = None
) -> RAGChatbot:
    """Wire a chatbot from settings. The backend is selected later by load_vector_store()."""
    embedding_service = embedding_service or get_embedding_service(settings)
    engine = RetrievalEngine(
        lambda: load_vector_store(
            settings, embedding_service, allow_empty=allow_empty, client_factory=client_factory
        ),
        default_top_k=settings.TOP_K
    )
    generator = AnswerGenerator(
        llm_service or get_llm_service(settings),
        timeout=settings.REQUEST_TIMEOUT
    )
    return RAGChatbot(engine, generator)
