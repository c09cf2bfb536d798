# tests/test_rag_service.py
import time
from unittest.mock import AsyncMock, MagicMock

import pytest

from core.domain import ChunkSearchResult, RetrievalResult
from core.errors import BackendNotLoadedError, VectorStoreError
from infrastructure.faiss_store import FAISSVectorStore
from services.answer_generator import ERROR_ANSWER, NO_RELEVANT_INFO_ANSWER, AnswerGenerator
from services.factory import get_document_processor
from services.ingestion_service import IngestionService
from services.document_processor import discover_sources
from services.rag_service import ChatSession, RAGChatbot, create_chatbot
from services.retrieval_engine import RetrievalEngine

from conftest import make_chunk


def _chatbot(store, llm, top_k=5):
    engine = RetrievalEngine(AsyncMock(return_value=store), default_top_k=top_k)
    return RAGChatbot(engine, AnswerGenerator(llm, timeout=2))


def _result(*sources):
    return RetrievalResult(results=[
        ChunkSearchResult(chunk=make_chunk(f"tekst {i} uit {s}", s, i), score=0.9 - i * 0.1)
        for i, s in enumerate(sources)
    ])


@pytest.mark.asyncio
async def test_retrieve_before_load_raises(embedding_service):
    engine = RetrievalEngine(AsyncMock(return_value=FAISSVectorStore(embedding_service)))

    assert not engine.is_ready
    with pytest.raises(BackendNotLoadedError):
        await engine.retrieve("saldering")


@pytest.mark.asyncio
async def test_answer_before_load_raises(embedding_service, llm):
    chatbot = _chatbot(FAISSVectorStore(embedding_service), llm)

    with pytest.raises(BackendNotLoadedError):
        await chatbot.answer("Wat is saldering?")
    llm.chat.assert_not_called()


@pytest.mark.asyncio
async def test_backend_is_selected_once(embedding_service):
    loader = AsyncMock(return_value=FAISSVectorStore(embedding_service))
    engine = RetrievalEngine(loader)

    await engine.load()
    await engine.load()

    loader.assert_awaited_once()
    assert engine.is_ready


@pytest.mark.asyncio
async def test_empty_store_gives_fallback_without_calling_llm(embedding_service, llm):
    chatbot = _chatbot(FAISSVectorStore(embedding_service), llm)
    await chatbot.load_vector_store()

    response = await chatbot.answer("Wat kost een thuisbatterij?")

    assert response.answer == NO_RELEVANT_INFO_ANSWER
    assert response.sources == []
    assert not response.found_relevant_info
    assert llm.chat.call_count == 0


@pytest.mark.asyncio
async def test_sources_are_deduplicated_in_first_seen_order(llm):
    generator = AnswerGenerator(llm)

    response = await generator.generate("vraag", _result("A", "B", "A", "C"))

    assert response.sources == ["A", "B", "C"]
    assert response.found_relevant_info
    assert response.answer == "Een antwoord uit de context."
    llm.chat.assert_called_once()


@pytest.mark.asyncio
async def test_prompt_contains_numbered_context_and_question(llm):
    generator = AnswerGenerator(llm)

    await generator.generate("Hoe werkt saldering?", _result("A", "B"))

    prompt = llm.chat.call_args.args[0]
    assert "[1] tekst 0 uit A\n\n[2] tekst 1 uit B" in prompt
    assert "Vraag: Hoe werkt saldering?" in prompt
    assert "Gebruik ALLEEN de onderstaande context" in prompt


@pytest.mark.asyncio
async def test_history_is_included_in_prompt(llm):
    generator = AnswerGenerator(llm)
    history = [
        {"role": "user", "content": "Wat is saldering?"},
        {"role": "assistant", "content": "Verrekenen van teruglevering."},
    ]

    await generator.generate("En na 2027?", _result("A"), history)

    prompt = llm.chat.call_args.args[0]
    assert "Gebruiker: Wat is saldering?" in prompt
    assert "Assistent: Verrekenen van teruglevering." in prompt


@pytest.mark.parametrize("reply", [
    {"error": "Cannot connect to LLM service", "status": "error"},
    {"answer": "   ", "status": "success"},
    None,
])
@pytest.mark.asyncio
async def test_llm_failures_become_apology(reply):
    llm = MagicMock()
    llm.chat.return_value = reply

    response = await AnswerGenerator(llm).generate("vraag", _result("A"))

    assert response.answer == ERROR_ANSWER
    assert response.sources == []
    assert not response.found_relevant_info


@pytest.mark.asyncio
async def test_llm_exception_becomes_apology():
    llm = MagicMock()
    llm.chat.side_effect = RuntimeError("model crashed")

    response = await AnswerGenerator(llm).generate("vraag", _result("A"))

    assert response.answer == ERROR_ANSWER
    assert not response.found_relevant_info


@pytest.mark.asyncio
async def test_llm_timeout_becomes_apology():
    llm = MagicMock()
    llm.chat.side_effect = lambda prompt: time.sleep(0.5)

    response = await AnswerGenerator(llm, timeout=0.05).generate("vraag", _result("A"))

    assert response.answer == ERROR_ANSWER


@pytest.mark.asyncio
async def test_retrieval_error_after_load_becomes_apology(llm):
    store = MagicMock()
    store.name = "ChromaDB"
    store.count = AsyncMock(return_value=10)
    store.similarity_search = AsyncMock(side_effect=VectorStoreError("connection reset"))
    chatbot = _chatbot(store, llm)
    await chatbot.load_vector_store()

    response = await chatbot.answer("Wat is saldering?")

    assert response.answer == ERROR_ANSWER
    assert chatbot.retrieval_engine.is_ready
    llm.chat.assert_not_called()


@pytest.mark.asyncio
async def test_vector_store_info(embedding_service, llm):
    chatbot = _chatbot(FAISSVectorStore(embedding_service), llm)
    assert chatbot.get_vector_store_info() == {"type": None, "is_connected": False}

    await chatbot.load_vector_store()

    assert chatbot.get_vector_store_info() == {"type": "FAISS (in-memory)", "is_connected": True}


@pytest.mark.asyncio
async def test_chat_session_keeps_bounded_history(embedding_service, llm):
    store = FAISSVectorStore(embedding_service)
    await store.add_chunks([make_chunk("saldering van zonnepanelen", "a.html")])
    chatbot = _chatbot(store, llm)
    await chatbot.load_vector_store()
    session = ChatSession(chatbot, history_limit=4)

    await session.ask("eerste vraag")
    await session.ask("tweede vraag")
    await session.ask("derde vraag")

    assert len(session.history) == 4
    assert session.history[0] == {"role": "user", "content": "tweede vraag"}
    assert session.history[-1]["role"] == "assistant"
    assert "Gebruiker: eerste vraag" in llm.chat.call_args_list[1].args[0]

    session.clear_history()
    assert session.history == []


@pytest.mark.asyncio
async def test_saldering_question_end_to_end(settings, embedding_service, llm, knowledge_base):
    llm.chat.return_value = {
        "answer": "Bij saldering wordt teruggeleverde stroom verrekend met je verbruik.",
        "status": "success",
    }
    sources = discover_sources(knowledge_base, settings.DOCUMENT_EXTENSIONS)
    report = await IngestionService(
        settings, get_document_processor(settings), embedding_service
    ).ingest(sources, force_local=True)
    assert report.total_chunks >= 3

    def chroma_down(**kwargs):
        raise ConnectionError("Could not connect to a Chroma server")

    chatbot = create_chatbot(
        settings, embedding_service=embedding_service, llm_service=llm, client_factory=chroma_down
    )
    await chatbot.load_vector_store()
    response = await chatbot.answer("Wat is saldering bij zonnepanelen?")

    assert response.found_relevant_info
    assert response.sources[0] == "energie_terugleververgoeding-bij-zonnepanelen.html"
    assert "verrekend" in response.answer
    assert "Saldering is de regeling" in llm.chat.call_args.args[0]
