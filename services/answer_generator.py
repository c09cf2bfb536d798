# services/answer_generator.py
"""Grounded answer generation from retrieved context"""
import asyncio
import logging
from typing import Dict, List, Optional

from config import LOGGER_NAME
from core.domain import ChatResponse, RetrievalResult
from core.interfaces import ILLMService

logger = logging.getLogger(LOGGER_NAME)

NO_RELEVANT_INFO_ANSWER = (
    "Ik kan deze vraag niet beantwoorden op basis van de beschikbare informatie. "
    "Probeer een andere vraag over zonnepanelen, energie of financiering."
)

ERROR_ANSWER = (
    "Sorry, er is een fout opgetreden bij het verwerken van je vraag. "
    "Probeer het later nog eens."
)

PROMPT_TEMPLATE = """Je bent een behulpzame AI-assistent van Zonneplan die vragen beantwoordt over zonnepanelen, energie en financiering.

Gebruik ALLEEN de onderstaande context om de vraag te beantwoorden. Als de informatie niet in de context staat, zeg dan eerlijk dat je het niet weet.
{history}
Context:
{context}

Vraag: {question}

Instructies:
- Beantwoord in het Nederlands
- Wees beknopt maar informatief
- Gebruik alleen informatie uit de gegeven context
- Verwijs naar bronnen als dat relevant is
- Als je het antwoord niet weet op basis van de context, zeg dan: "Ik kan deze vraag niet beantwoorden op basis van de beschikbare informatie."

Antwoord:"""

ROLE_LABELS = {"user": "Gebruiker", "assistant": "Assistent"}


def build_context(result: RetrievalResult) -> str:
    """Numbered context block in retrieval order: [1] ..., [2] ..."""
    return "\n\n".join(
        f"[{i}] {chunk.content}" for i, chunk in enumerate(result.chunks, start=1)
    )


def format_history(history: Optional[List[Dict[str, str]]]) -> str:
    if not history:
        return ""
    lines = [
        f"{ROLE_LABELS.get(turn.get('role', ''), turn.get('role', ''))}: {turn.get('content', '')}"
        for turn in history
    ]
    return "\nEerdere berichten in dit gesprek:\n" + "\n".join(lines) + "\n"


class AnswerGenerator:
    """
    Builds one grounded prompt per question and calls the LLM.

    - empty retrieval: fixed fallback answer, the LLM is not called
    - any LLM failure: fixed apology, never an exception
    """

    def __init__(self, llm: ILLMService, timeout: Optional[float] = None):
        self.llm = llm
        self.timeout = timeout

    def build_prompt(
        self,
        question: str,
        context: str,
        history: Optional[List[Dict[str, str]]] = None
    ) -> str:
        return PROMPT_TEMPLATE.format(
            history=format_history(history),
            context=context,
            question=question
        )

    @staticmethod
    def no_relevant_info() -> ChatResponse:
        return ChatResponse(answer=NO_RELEVANT_INFO_ANSWER, sources=[], found_relevant_info=False)

    @staticmethod
    def error_response() -> ChatResponse:
        return ChatResponse(answer=ERROR_ANSWER, sources=[], found_relevant_info=False)

    async def generate(
        self,
        question: str,
        result: RetrievalResult,
        history: Optional[List[Dict[str, str]]] = None
    ) -> ChatResponse:
        if result.is_empty:
            logger.info("No relevant chunks retrieved; returning fallback answer")
            return self.no_relevant_info()

        sources = result.sources
        prompt = self.build_prompt(question, build_context(result), history)
        logger.info(f"Found {len(result)} relevant chunks from {len(sources)} sources")

        try:
            call = asyncio.to_thread(self.llm.chat, prompt)
            reply = await (asyncio.wait_for(call, timeout=self.timeout) if self.timeout else call)
        except Exception as e:
            logger.error(f"Error generating answer: {e!r}", exc_info=True)
            return self.error_response()

        reply = reply or {}
        answer = reply.get("answer") or ""
        if reply.get("status") != "success" or not answer.strip():
            logger.error(f"LLM did not produce an answer: {reply.get('error', 'empty answer')}")
            return self.error_response()

        return ChatResponse(answer=answer.strip(), sources=sources, found_relevant_info=True)
