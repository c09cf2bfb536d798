# services/diagnostics.py
"""Post-ingestion smoke test against a vector store"""
import asyncio
import logging
import time
from dataclasses import dataclass
from typing import List, Sequence

from config import LOGGER_NAME
from core.domain import RetrievalResult
from core.interfaces import IVectorStore

logger = logging.getLogger(LOGGER_NAME)

DEFAULT_QUERIES = (
    "wat is saldering?",
    "hoe werkt terugleververgoeding?",
    "zonnepanelen lening",
    "energiecontract opzeggen",
    "warmtepomp installatie",
)


@dataclass
class SmokeQueryResult:
    query: str
    result: RetrievalResult
    elapsed_ms: float


async def _timed_search(store: IVectorStore, query: str, k: int) -> SmokeQueryResult:
    start = time.perf_counter()
    result = await store.similarity_search(query, k)
    elapsed_ms = (time.perf_counter() - start) * 1000

    lines = [
        f"  {i}. [{hit.chunk.source_id}] {hit.chunk.content[:100]}... (score {hit.score:.3f})"
        for i, hit in enumerate(result.results, start=1)
    ]
    logger.info(f"Query '{query}' ({elapsed_ms:.0f}ms)\n" + "\n".join(lines))
    return SmokeQueryResult(query=query, result=result, elapsed_ms=elapsed_ms)


async def run_store_smoke_test(
    store: IVectorStore,
    queries: Sequence[str] = DEFAULT_QUERIES,
    k: int = 3
) -> List[SmokeQueryResult]:
    """Run the queries concurrently and log results plus timing. Search errors propagate."""
    logger.info(f"Running {len(queries)} test queries against {store.name}...")
    start = time.perf_counter()

    results = await asyncio.gather(*(_timed_search(store, q, k) for q in queries))

    total_ms = (time.perf_counter() - start) * 1000
    if queries:
        avg_ms = sum(r.elapsed_ms for r in results) / len(results)
        logger.info(
            f"Smoke test done: {len(results)} queries in {total_ms:.0f}ms "
            f"(average {avg_ms:.0f}ms per query)"
        )
    return list(results)
