# main.py
"""Command-line entry point: ingest the knowledge base, chat with it, or ask one question"""
import argparse
import asyncio
import logging
import sys
from typing import List, Optional

from config import LOGGER_NAME, Settings, load_settings
from core.domain import ChatResponse
from core.errors import RAGError
from services.diagnostics import run_store_smoke_test
from services.document_processor import discover_sources
from services.factory import get_document_processor, get_embedding_service
from services.ingestion_service import IngestionService
from services.logger_config import setup_logging
from services.rag_service import ChatSession, create_chatbot

logger = logging.getLogger(LOGGER_NAME)

HELP_TEXT = """
Beschikbare commando's:
  help    - Toon deze hulp
  clear   - Wis gesprekgeschiedenis
  quit    - Stop de chat (of: exit)
"""


def print_response(response: ChatResponse) -> None:
    print(f"\n{response.answer}")
    if response.found_relevant_info and response.sources:
        print(f"\nBronnen: {', '.join(response.sources)}")
    print()


async def run_ingest(settings: Settings, use_fallback: bool) -> None:
    sources = discover_sources(settings.DATA_PATH, settings.DOCUMENT_EXTENSIONS)
    logger.info(f"Found {len(sources)} source documents in {settings.DATA_PATH}")

    embedding_service = get_embedding_service(settings)
    service = IngestionService(settings, get_document_processor(settings), embedding_service)
    report = await service.ingest(sources, force_local=use_fallback)

    if report.failed_batches:
        logger.warning(
            f"Batches {report.failed_batches} failed and may be missing from {report.backend_name}; "
            f"re-run ingestion to fill the gap"
        )
    if report.snapshot_path:
        logger.info(f"Local snapshot written to {report.snapshot_path}")

    try:
        await run_store_smoke_test(report.backend)
    except Exception as e:
        # The data is already stored; a failing check must not fail the ingest
        logger.error(f"Post-ingestion smoke test failed: {e}", exc_info=True)


async def run_chat(settings: Settings) -> None:
    chatbot = create_chatbot(settings)
    await chatbot.load_vector_store()
    session = ChatSession(chatbot, history_limit=settings.CHAT_HISTORY_LIMIT)

    info = chatbot.get_vector_store_info()
    print(f"Welkom bij Zonneplan Chat! (vector store: {info['type']})")
    print('Typ "help" voor hulp of "quit" om te stoppen.\n')

    while True:
        try:
            query = (await asyncio.to_thread(input, "Vraag: ")).strip()
        except (EOFError, KeyboardInterrupt):
            query = "quit"

        if not query:
            continue
        command = query.lower()
        if command in ("quit", "exit"):
            print("\nTot ziens!")
            return
        if command == "help":
            print(HELP_TEXT)
            continue
        if command == "clear":
            session.clear_history()
            print("Gespreksgeschiedenis gewist.\n")
            continue

        print("Bezig met zoeken...")
        print_response(await session.ask(query))


async def run_ask(settings: Settings, question: str) -> None:
    chatbot = create_chatbot(settings)
    await chatbot.load_vector_store()
    print_response(await chatbot.answer(question))


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Knowledge-base RAG chatbot")
    subparsers = parser.add_subparsers(dest="command", required=True)

    ingest = subparsers.add_parser("ingest", help="Process documents and build the vector store")
    ingest.add_argument(
        "--use-fallback", "--useFallback",
        dest="use_fallback",
        action="store_true",
        help="Skip ChromaDB and build only the local FAISS store"
    )

    subparsers.add_parser("chat", help="Interactive chat session")

    ask = subparsers.add_parser("ask", help="Answer a single question")
    ask.add_argument("question")

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    try:
        settings = load_settings()
    except RAGError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return 1

    setup_logging(settings)

    try:
        if args.command == "ingest":
            asyncio.run(run_ingest(settings, args.use_fallback))
        elif args.command == "chat":
            asyncio.run(run_chat(settings))
        else:
            asyncio.run(run_ask(settings, args.question))
    except (RAGError, FileNotFoundError) as e:
        logger.error(f"{args.command} failed: {e}")
        return 1

    return 0


if __name__ == "__main__":
    sys.exit(main())
